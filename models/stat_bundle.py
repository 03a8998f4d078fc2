"""
models/stat_bundle.py – Completion-time estimates for a single game.
"""

from dataclasses import dataclass
from typing import Optional

# None is the "unknown" sentinel.
HourValue = Optional[float]

HLTB_GAME_URL: str = "https://howlongtobeat.com/game/{record_id}"


@dataclass(frozen=True)
class LookupRecord:
    """
    Best-match record returned by a lookup capability.

    The four duration fields hold the raw strings as shown by the reference
    source (e.g. "7½ Hours" or "--").
    """

    main: str = "--"
    main_plus: str = "--"
    completionist: str = "--"
    all_styles: str = "--"
    record_id: Optional[str] = None

    @property
    def raw_fields(self) -> tuple:
        return (self.main, self.main_plus, self.completionist, self.all_styles)


@dataclass(frozen=True)
class StatBundle:
    """
    Normalised completion-time estimates for one library item.

    Attributes
    ----------
    main          : Main story hours.
    main_plus     : Main story plus extras hours.
    completionist : Completionist hours.
    all_styles    : Average over all play styles.
    record_id     : Reference-source record id, when matched.
    has_data      : True when at least one field was published.
    """

    main: HourValue = None
    main_plus: HourValue = None
    completionist: HourValue = None
    all_styles: HourValue = None
    record_id: Optional[str] = None
    has_data: bool = False

    @classmethod
    def empty(cls) -> "StatBundle":
        return cls()

    @property
    def external_url(self) -> Optional[str]:
        if not self.record_id:
            return None
        return HLTB_GAME_URL.format(record_id=self.record_id)
