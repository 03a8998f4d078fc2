"""
services/stat_cache.py – In-memory store of resolved StatBundles.

One entry per CacheKey.  An entry is created IN_FLIGHT by the first
begin_fetch() for its key and becomes RESOLVED on complete().  Listeners
registered with subscribe() are notified on complete(); a listener added to
an already-resolved key fires immediately, on the caller's stack.

Every method is synchronous.  Under a single asyncio event loop each call is
therefore an indivisible step, which is what guarantees at most one
outstanding fetch per key.
"""

import asyncio
import enum
import logging
import unicodedata
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from models.library_item import LibraryItem
from models.stat_bundle import StatBundle

logger = logging.getLogger(__name__)

# ── Types ────────────────────────────────────────────────────────────────────

CacheKey = Tuple[str, str]
StatListener = Callable[[StatBundle], None]


class EntryState(enum.Enum):
    IN_FLIGHT = "in-flight"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class CacheEntry:
    state: EntryState
    bundle: Optional[StatBundle] = None

    @property
    def resolved(self) -> bool:
        return self.state is EntryState.RESOLVED


def normalize_name(name: str) -> str:
    """Casefold and collapse whitespace so cosmetic differences share a key."""
    text = unicodedata.normalize("NFKC", name or "")
    return " ".join(text.casefold().split())


def make_key(item: LibraryItem) -> CacheKey:
    """The lookup is name based, so the name is part of the key."""
    return (str(item.identity), normalize_name(item.name))


class Subscription:
    """Handle returned by StatCache.subscribe(); cancel() unregisters it."""

    def __init__(
        self,
        cache: "StatCache",
        key: CacheKey,
        callback: StatListener,
        once: bool,
    ) -> None:
        self.key = key
        self.callback = callback
        self.once = once
        self._cache = cache
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._cache.unsubscribe(self)


class StatCache:
    """
    Process-wide keyed store of StatBundles with fetch de-duplication.

    Pass one instance to the resolver and the view; tests build a fresh one.
    """

    def __init__(self) -> None:
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._listeners: Dict[CacheKey, List[Subscription]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def begin_fetch(self, key: CacheKey) -> bool:
        """
        Mark *key* in-flight.

        Returns
        -------
        True if this call initiated the fetch; False when a fetch is already
        in flight or the key is resolved.  Callers must not issue a lookup
        when False is returned.
        """
        if key in self._entries:
            return False
        self._entries[key] = CacheEntry(EntryState.IN_FLIGHT)
        return True

    def complete(self, key: CacheKey, bundle: StatBundle) -> None:
        """Record *bundle* for *key* and notify every pending listener."""
        previous = self._entries.get(key)
        if previous is not None and previous.resolved:
            logger.debug("Replacing resolved stats for %r", key)
        self._entries[key] = CacheEntry(EntryState.RESOLVED, bundle)

        listeners = list(self._listeners.get(key, ()))
        remaining = [sub for sub in listeners if not sub.once]
        if remaining:
            self._listeners[key] = remaining
        else:
            self._listeners.pop(key, None)

        for sub in listeners:
            # An earlier listener may have cancelled this one.
            if not sub._active:
                continue
            if sub.once:
                sub._active = False
            self._dispatch(sub, bundle)

    def abandon(self, key: CacheKey) -> None:
        """Forget an in-flight marker whose fetch was cancelled."""
        entry = self._entries.get(key)
        if entry is not None and not entry.resolved:
            del self._entries[key]

    def subscribe(
        self,
        key: CacheKey,
        callback: StatListener,
        *,
        once: bool = True,
    ) -> Subscription:
        """
        Register *callback* for the bundle of *key*.

        If the key is already resolved the callback runs immediately with the
        cached bundle; a one-shot subscription is then spent and not stored.
        """
        sub = Subscription(self, key, callback, once)
        entry = self._entries.get(key)
        if entry is not None and entry.resolved:
            if once:
                sub._active = False
            else:
                self._listeners.setdefault(key, []).append(sub)
            self._dispatch(sub, entry.bundle)
            return sub

        self._listeners.setdefault(key, []).append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        sub._active = False
        listeners = self._listeners.get(sub.key)
        if not listeners:
            return
        try:
            listeners.remove(sub)
        except ValueError:
            return
        if not listeners:
            del self._listeners[sub.key]

    def listener_count(self, key: Optional[CacheKey] = None) -> int:
        if key is not None:
            return len(self._listeners.get(key, ()))
        return sum(len(subs) for subs in self._listeners.values())

    async def wait(self, key: CacheKey) -> StatBundle:
        """Await the bundle for *key*."""
        future = asyncio.get_running_loop().create_future()

        def _deliver(bundle: StatBundle) -> None:
            if not future.done():
                future.set_result(bundle)

        sub = self.subscribe(key, _deliver)
        try:
            return await future
        finally:
            sub.cancel()

    def clear(self) -> None:
        """Drop every entry and listener (full library reload)."""
        for subs in self._listeners.values():
            for sub in subs:
                sub._active = False
        self._entries.clear()
        self._listeners.clear()

    # ── Private helpers ──────────────────────────────────────────────────────

    @staticmethod
    def _dispatch(sub: Subscription, bundle: StatBundle) -> None:
        try:
            sub.callback(bundle)
        except Exception:  # noqa: BLE001
            logger.exception("Stat listener for %r raised", sub.key)
