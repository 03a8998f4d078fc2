"""
services/aggregation_view.py – Live, re-orderable view of the library.

Holds the loaded LibraryItems (arrival order) and one SortableItem per item.
Each item subscribes to its own cache key; when its StatBundle lands only that
item's SortableItem is replaced, through the pure apply_bundle() reducer, and
the ordered rows are recomputed from scratch.  Listeners registered through
``on_change`` receive a fresh ViewState after every change.

The first publish happens before any stat work is started, so the library
renders immediately with every estimate absent.
"""

import logging
from dataclasses import dataclass, field
from typing import (
    Awaitable,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

from models.library_item import LibraryItem, SortableItem
from models.stat_bundle import StatBundle
from services import sort_engine
from services.exceptions import LibraryLoadError
from services.sort_engine import SortMode
from services.stat_cache import StatCache, Subscription, make_key
from services.stat_resolver import StatResolver

logger = logging.getLogger(__name__)

# ── User-facing messages ─────────────────────────────────────────────────────

EMPTY_LIBRARY_MESSAGE: str = "No games found in your Steam library."
LOAD_FAILED_MESSAGE: str = (
    "Failed to load Steam library. Make sure Steam is installed and the "
    "library folders are readable."
)

# ── Types ────────────────────────────────────────────────────────────────────

LibrarySource = Callable[[], Awaitable[Sequence[LibraryItem]]]


@dataclass(frozen=True)
class ViewState:
    """Immutable snapshot handed to the presentation layer."""

    loading: bool = False
    error: Optional[str] = None
    mode: SortMode = sort_engine.DEFAULT_MODE
    rows: Tuple[SortableItem, ...] = ()
    expanded: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def total(self) -> int:
        return len(self.rows)

    @property
    def resolved(self) -> int:
        return sum(1 for row in self.rows if row.resolved)


ChangeListener = Callable[[ViewState], None]


def apply_bundle(
    sortables: Mapping[str, SortableItem],
    identity: str,
    bundle: StatBundle,
) -> Dict[str, SortableItem]:
    """
    Return a new mapping where only *identity* carries *bundle*.

    Unknown identities leave the mapping unchanged (a stale result for an
    item no longer in the library).
    """
    current = sortables.get(identity)
    if current is None:
        return dict(sortables)
    updated = dict(sortables)
    updated[identity] = current.with_bundle(bundle)
    return updated


class AggregationView:
    """
    Merges resolver output into the library listing as it arrives.

    Parameters
    ----------
    cache     : Shared StatCache the resolver writes into.
    resolver  : StatResolver used to request each item's stats.
    on_change : Optional listener called with a ViewState after every change.
    """

    def __init__(
        self,
        cache: StatCache,
        resolver: StatResolver,
        on_change: Optional[ChangeListener] = None,
    ) -> None:
        self._cache = cache
        self._resolver = resolver
        self._listeners: List[ChangeListener] = []
        if on_change is not None:
            self._listeners.append(on_change)

        self._items: Tuple[LibraryItem, ...] = ()
        self._sortables: Dict[str, SortableItem] = {}
        self._subscriptions: List[Subscription] = []
        self._expanded: FrozenSet[str] = frozenset()
        self._mode: SortMode = sort_engine.DEFAULT_MODE
        self._rows: Tuple[SortableItem, ...] = ()
        self._loading = False
        self._error: Optional[str] = None
        self._closed = False

    # ── Read side ────────────────────────────────────────────────────────────

    @property
    def items(self) -> Tuple[LibraryItem, ...]:
        return self._items

    @property
    def mode(self) -> SortMode:
        return self._mode

    @property
    def rows(self) -> Tuple[SortableItem, ...]:
        return self._rows

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def closed(self) -> bool:
        return self._closed

    def sortable(self, identity: str) -> Optional[SortableItem]:
        return self._sortables.get(identity)

    def estimate(self, identity: str) -> Optional[float]:
        row = self._sortables.get(identity)
        return row.main_hours if row is not None else None

    def external_url(self, identity: str) -> Optional[str]:
        row = self._sortables.get(identity)
        if row is None or row.bundle is None:
            return None
        return row.bundle.external_url

    def is_expanded(self, identity: str) -> bool:
        return identity in self._expanded

    def snapshot(self) -> ViewState:
        return ViewState(
            loading=self._loading,
            error=self._error,
            mode=self._mode,
            rows=self._rows,
            expanded=self._expanded,
        )

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    # ── Write side ───────────────────────────────────────────────────────────

    async def load_from(self, source: LibrarySource) -> None:
        """
        Await *source* and load its items.

        A failing or empty source puts the view into its error state; no
        resolution is attempted in that case.
        """
        self._reset()
        self._loading = True
        self._publish()
        try:
            items = list(await source())
        except LibraryLoadError as exc:
            logger.error("Library load failed: %s", exc)
            self._fail(LOAD_FAILED_MESSAGE)
            return
        except Exception:  # noqa: BLE001
            logger.exception("Library load failed")
            self._fail(LOAD_FAILED_MESSAGE)
            return

        if not items:
            self._fail(EMPTY_LIBRARY_MESSAGE)
            return
        self.load(items)

    def load(self, items: Iterable[LibraryItem]) -> None:
        """
        Replace the library and request stats for every item.

        Publishes once with every estimate absent before any lookup starts.
        """
        if self._closed:
            return
        self._reset()
        self._items = tuple(items)
        self._sortables = {item.identity: SortableItem(item) for item in self._items}
        self._recompute()
        self._publish()
        logger.info("Library loaded: %d games", len(self._items))

        for item in self._items:
            if self._closed:
                return
            self._subscriptions.append(
                self._cache.subscribe(
                    make_key(item),
                    lambda bundle, ident=item.identity: self._on_bundle(ident, bundle),
                )
            )
            self._resolver.resolve(item)

    def set_sort_mode(self, mode: SortMode) -> None:
        self._mode = mode
        self._recompute()
        self._publish()

    def toggle_expanded(self, identity: str) -> bool:
        """Flip the expanded flag for *identity*; returns the new state."""
        if identity in self._expanded:
            self._expanded = self._expanded - {identity}
        else:
            self._expanded = self._expanded | {identity}
        self._publish()
        return identity in self._expanded

    def close(self) -> None:
        """Unregister every subscription; later results are ignored."""
        self._closed = True
        self._cancel_subscriptions()
        self._listeners.clear()

    # ── Private helpers ──────────────────────────────────────────────────────

    def _on_bundle(self, identity: str, bundle: StatBundle) -> None:
        if self._closed:
            return
        self._sortables = apply_bundle(self._sortables, identity, bundle)
        self._recompute()
        self._publish()

    def _recompute(self) -> None:
        rows = [self._sortables[item.identity] for item in self._items]
        self._rows = tuple(sort_engine.order(rows, self._mode))

    def _fail(self, message: str) -> None:
        self._loading = False
        self._error = message
        self._publish()

    def _reset(self) -> None:
        self._cancel_subscriptions()
        self._items = ()
        self._sortables = {}
        self._rows = ()
        self._expanded = frozenset()
        self._loading = False
        self._error = None

    def _cancel_subscriptions(self) -> None:
        for sub in self._subscriptions:
            sub.cancel()
        self._subscriptions = []

    def _publish(self) -> None:
        if self._closed:
            return
        state = self.snapshot()
        for listener in list(self._listeners):
            listener(state)
