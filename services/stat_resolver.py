"""
services/stat_resolver.py – Resolve completion-time stats for library items.

resolve() is fire-and-forget: it schedules one lookup per cache key on the
running event loop and returns.  Results are observed only through the
StatCache (subscribe / wait).

Every per-item failure is absorbed here.  A lookup that raises is logged and
recorded exactly like a game with no published times, so nothing downstream
ever sees an exception from this layer.
"""

import asyncio
import logging
from typing import Dict, Optional, Protocol, Set

from models.library_item import LibraryItem
from models.stat_bundle import LookupRecord, StatBundle
from services import duration_parser
from services.stat_cache import CacheKey, StatCache, make_key

logger = logging.getLogger(__name__)


class StatLookup(Protocol):
    """The external lookup capability the resolver calls."""

    async def lookup(
        self, numeric_hint: Optional[int], name_hint: str
    ) -> Optional[LookupRecord]:
        ...


def bundle_from_record(record: Optional[LookupRecord]) -> StatBundle:
    """
    Normalise a lookup record into a StatBundle.

    A missing record yields the empty bundle.  A field whose text cannot be
    parsed becomes unknown without affecting the others.
    """
    if record is None:
        return StatBundle.empty()
    has_data = any(
        not duration_parser.is_placeholder(raw) for raw in record.raw_fields
    )
    return StatBundle(
        main=duration_parser.parse(record.main),
        main_plus=duration_parser.parse(record.main_plus),
        completionist=duration_parser.parse(record.completionist),
        all_styles=duration_parser.parse(record.all_styles),
        record_id=record.record_id or None,
        has_data=has_data,
    )


class StatResolver:
    """
    Orchestrates lookup → normalise → cache for each library item.

    Parameters
    ----------
    cache  : Shared StatCache; also used by the view for subscriptions.
    lookup : Object implementing StatLookup.
    """

    def __init__(self, cache: StatCache, lookup: StatLookup) -> None:
        self._cache = cache
        self._lookup = lookup
        self._tasks: Dict[CacheKey, asyncio.Task] = {}
        self._lookups_issued = 0

    @property
    def cache(self) -> StatCache:
        return self._cache

    @property
    def lookups_issued(self) -> int:
        """Number of external lookups started so far."""
        return self._lookups_issued

    @property
    def pending(self) -> Set[CacheKey]:
        return set(self._tasks)

    def resolve(self, item: LibraryItem) -> None:
        """
        Start resolving *item* unless its key is already in flight or done.

        Must be called from the thread running the event loop.
        """
        key = make_key(item)
        if not self._cache.begin_fetch(key):
            return

        loop = asyncio.get_running_loop()
        task = loop.create_task(self._resolve(item, key))
        self._tasks[key] = task
        task.add_done_callback(lambda _t, k=key: self._tasks.pop(k, None))

    async def drain(self) -> None:
        """Wait until every outstanding resolution has settled."""
        while True:
            outstanding = [t for t in self._tasks.values() if not t.done()]
            if not outstanding:
                return
            await asyncio.gather(*outstanding, return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding lookups and release their in-flight keys."""
        tasks = dict(self._tasks)
        for task in tasks.values():
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks.values(), return_exceptions=True)
        for key in tasks:
            self._cache.abandon(key)

    # ── Private helpers ──────────────────────────────────────────────────────

    async def _resolve(self, item: LibraryItem, key: CacheKey) -> None:
        self._lookups_issued += 1
        record: Optional[LookupRecord] = None
        try:
            record = await self._lookup.lookup(item.numeric_hint, item.name)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Stat lookup failed for %r: %s", item.name, exc)
            record = None

        if record is None:
            logger.debug("No completion times for %r", item.name)
        bundle = bundle_from_record(record)
        self._cache.complete(key, bundle)
