"""
models/library_item.py – Immutable data models for installed library entries.
"""

from dataclasses import dataclass
from typing import Optional

from models.stat_bundle import HourValue, StatBundle


@dataclass(frozen=True)
class LibraryItem:
    """
    Represents one installed game as reported by the library source.

    Attributes
    ----------
    identity         : Stable Steam app id (kept as a string).
    name             : Human-readable game title.
    install_path     : Absolute install directory, empty when unknown.
    playtime_minutes : Cumulative playtime in minutes, None when unknown.
    """

    identity: str
    name: str
    install_path: str = ""
    playtime_minutes: Optional[int] = None

    @property
    def numeric_hint(self) -> Optional[int]:
        """The identity as an int when it is purely numeric."""
        ident = self.identity.strip()
        return int(ident) if ident.isdigit() else None

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class SortableItem:
    """
    A LibraryItem paired with its main-story projection.

    Replaced wholesale whenever the item's StatBundle arrives.
    """

    item: LibraryItem
    main_hours: HourValue = None
    bundle: Optional[StatBundle] = None

    @property
    def identity(self) -> str:
        return self.item.identity

    @property
    def name(self) -> str:
        return self.item.name

    @property
    def resolved(self) -> bool:
        return self.bundle is not None

    def with_bundle(self, bundle: StatBundle) -> "SortableItem":
        return SortableItem(item=self.item, main_hours=bundle.main, bundle=bundle)
