"""
workers/stats_worker.py – Background QThread hosting the stat engine.

The worker owns an asyncio event loop.  Every engine object (StatCache,
StatResolver, AggregationView) is touched only from that loop; calls coming
from the GUI thread are marshalled in with call_soon_threadsafe.

Signal contract
---------------
  snapshot(object) : ViewState after every change (game tree)
  status(str)      : Human-readable status message (log area)
  error(str)       : User-facing library load error
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from PySide6.QtCore import QThread, Signal

from services import library_service
from services.aggregation_view import AggregationView, ViewState
from services.hltb_service import HowLongToBeatClient
from services.sort_engine import DEFAULT_MODE, SortMode
from services.stat_cache import StatCache
from services.stat_resolver import StatResolver

logger = logging.getLogger(__name__)


class StatsWorker(QThread):
    """
    Loads the library and resolves completion times on a background thread.

    Instantiate, connect signals, then call start().  Call stop() then wait()
    before discarding the worker.
    """

    # ── Signals ───────────────────────────────────────────────────────────────
    snapshot = Signal(object)      # ViewState
    status   = Signal(str)         # status log message
    error    = Signal(str)         # user-facing error message

    def __init__(
        self,
        cache: StatCache,
        *,
        steam_root: Optional[Path] = None,
        mode: SortMode = DEFAULT_MODE,
        reload: bool = False,
        parent=None,
    ) -> None:
        super().__init__(parent)
        self._cache      = cache
        self._steam_root = steam_root
        self._mode       = mode
        self._reload     = reload
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._view: Optional[AggregationView] = None
        self._last_resolved = -1
        self._stop_requested = False

    # ── QThread entry point ───────────────────────────────────────────────────

    def run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            self._stop_event = asyncio.Event()
            self._loop = loop
            loop.run_until_complete(self._main())
        except Exception as exc:  # noqa: BLE001
            # Catch-all so the worker thread never silently dies.
            logger.exception("Stats worker crashed")
            self.error.emit(f"Unexpected error:\n{type(exc).__name__}: {exc}")
        finally:
            self._loop = None
            loop.close()

    # ── Thread-safe controls ──────────────────────────────────────────────────

    def set_sort_mode(self, mode: SortMode) -> None:
        self._mode = mode
        self._call_in_loop(self._apply_sort_mode, mode)

    def toggle_expanded(self, identity: str) -> None:
        self._call_in_loop(self._apply_toggle, identity)

    def stop(self) -> None:
        self._stop_requested = True
        self._call_in_loop(self._request_stop)

    # ── Engine lifecycle (loop thread) ───────────────────────────────────────

    async def _main(self) -> None:
        if self._reload:
            self._cache.clear()

        async with HowLongToBeatClient() as client:
            resolver = StatResolver(self._cache, client)
            view = AggregationView(self._cache, resolver, on_change=self._on_change)
            view.set_sort_mode(self._mode)
            self._view = view

            drained: Optional[asyncio.Future] = None
            self.status.emit("Loading your Steam library…")
            await view.load_from(lambda: library_service.load_library(self._steam_root))
            if view.error:
                self.error.emit(view.error)
            else:
                self.status.emit(f"Library loaded: {len(view.items)} games.")
                drained = asyncio.ensure_future(self._report_when_drained(resolver))

            if self._stop_requested:
                self._stop_event.set()
            await self._stop_event.wait()

            view.close()
            self._view = None
            if drained is not None:
                drained.cancel()
            await resolver.close()

    async def _report_when_drained(self, resolver: StatResolver) -> None:
        await resolver.drain()
        self.status.emit(
            f"Completion times settled ({resolver.lookups_issued} lookups)."
        )

    def _on_change(self, state: ViewState) -> None:
        if state.total and state.resolved != self._last_resolved:
            self._last_resolved = state.resolved
            logger.debug("Resolved %d/%d", state.resolved, state.total)
        self.snapshot.emit(state)

    def _apply_sort_mode(self, mode: SortMode) -> None:
        if self._view is not None:
            self._view.set_sort_mode(mode)

    def _apply_toggle(self, identity: str) -> None:
        if self._view is not None:
            self._view.toggle_expanded(identity)

    def _request_stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    def _call_in_loop(self, callback, *args) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            # Loop closed between the check and the call.
            pass
