"""Server status pipeline: cache-first delivery with background revalidation.

State transitions for one ``refresh()`` call:

    LOADING -> LOADED_CACHE -> REFRESHING -> LOADED_FRESH | LOADED_CACHE(error)
    LOADING -> LOADED_FRESH | ERROR                      (no cache)

Every transition is broadcast as a ``StatusUpdate`` carrying the server list
shown for that state. A background revalidation that finishes after a newer
``refresh()`` has started still broadcasts its result; subscribers see the
updates in emission order and the latest one wins.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Protocol

import structlog

from launcher.servers.errors import NetworkError
from launcher.servers.types import FreshnessState, ServerRecord, StatusUpdate
from shared.events import EventChannel

if TYPE_CHECKING:
    from collections.abc import Callable

    from launcher.servers.cache import ServerCache

logger = structlog.get_logger()

UNKNOWN_FETCH_ERROR = "Unknown error fetching server data"

_BUSY_STATES = frozenset({FreshnessState.LOADING, FreshnessState.REFRESHING})


class ServerFetcher(Protocol):
    async def fetch_fresh(self) -> list[ServerRecord]: ...


class ServerStatusPipeline:
    """Own the current FreshnessState and the server list broadcast to the UI.

    ``refresh()`` never raises: network and cache failures are turned into
    LOADED_CACHE-with-error or ERROR states.
    """

    def __init__(self, fetcher: ServerFetcher, cache: ServerCache) -> None:
        self._fetcher = fetcher
        self._cache = cache
        self._state = FreshnessState.LOADING
        self._servers: list[ServerRecord] = []
        self._updates: EventChannel[StatusUpdate] = EventChannel("server-status-update")
        self._revalidations: set[asyncio.Task[None]] = set()
        self._has_refreshed = False

    @property
    def current_state(self) -> FreshnessState:
        return self._state

    @property
    def servers(self) -> list[ServerRecord]:
        """Server list carried by the most recent update."""
        return list(self._servers)

    @property
    def is_busy(self) -> bool:
        """True while a fetch started by ``refresh()`` has not settled.

        The initial LOADING state before the first ``refresh()`` does not count.
        """
        return self._has_refreshed and self._state in _BUSY_STATES

    def subscribe(self, callback: Callable[[StatusUpdate], None]) -> Callable[[], None]:
        return self._updates.subscribe(callback)

    async def refresh(self) -> list[ServerRecord]:
        """Deliver cached servers immediately if available, otherwise wait for the network."""
        self._emit(FreshnessState.LOADING)

        cached = self._cache.load()
        if cached is not None:
            try:
                self._emit(FreshnessState.LOADED_CACHE, cached)
                self._emit(FreshnessState.REFRESHING, cached)
                self._start_revalidation(cached)
            except RuntimeError:
                logger.exception("failed to start background refresh")
            else:
                return cached

        try:
            servers = await self._fetcher.fetch_fresh()
        except NetworkError as exc:
            return self._fail(cached, exc.message)
        except Exception:
            logger.exception("unexpected error fetching server status")
            return self._fail(cached, UNKNOWN_FETCH_ERROR)

        self._emit(FreshnessState.LOADED_FRESH, servers)
        return servers

    async def wait_for_revalidation(self) -> None:
        """Wait until every background revalidation started so far has finished."""
        while self._revalidations:
            await asyncio.gather(*self._revalidations, return_exceptions=True)

    async def aclose(self) -> None:
        """Let in-flight revalidations finish so their results are still broadcast."""
        await self.wait_for_revalidation()

    def _fail(self, cached: list[ServerRecord] | None, error: str) -> list[ServerRecord]:
        logger.warning("failed to fetch server status", error=error, has_cache=cached is not None)
        if cached is not None:
            self._emit(FreshnessState.LOADED_CACHE, cached, error)
            return cached
        self._emit(FreshnessState.ERROR, [], error)
        return []

    def _start_revalidation(self, cached: list[ServerRecord]) -> None:
        task = asyncio.create_task(self._revalidate(cached))
        self._revalidations.add(task)
        task.add_done_callback(self._revalidations.discard)

    async def _revalidate(self, cached: list[ServerRecord]) -> None:
        try:
            servers = await self._fetcher.fetch_fresh()
        except NetworkError as exc:
            logger.warning("background fetch failed", error=exc.message)
            self._emit(FreshnessState.LOADED_CACHE, cached, exc.message)
            return
        except Exception:
            logger.exception("unexpected error in background fetch")
            self._emit(FreshnessState.LOADED_CACHE, cached, UNKNOWN_FETCH_ERROR)
            return
        self._emit(FreshnessState.LOADED_FRESH, servers)

    def _emit(
        self,
        state: FreshnessState,
        servers: list[ServerRecord] | None = None,
        error: str | None = None,
    ) -> None:
        self._state = state
        self._has_refreshed = True
        self._servers = list(servers or [])
        logger.debug("server status update", state=state, count=len(self._servers), error=error)
        self._updates.publish(StatusUpdate(state=state, servers=self._servers, error=error))


class StatusRefresher:
    """Periodically call ``refresh()`` on the pipeline.

    A tick is skipped while the pipeline is LOADING or REFRESHING so fetches
    never overlap. ``stop()`` only cancels the timer; a fetch already in
    flight is left to finish.
    """

    def __init__(self, pipeline: ServerStatusPipeline, interval_seconds: float = 30.0) -> None:
        self._pipeline = pipeline
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[list[ServerRecord]]] = set()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, *, refresh_now: bool = True) -> None:
        """Refresh now (unless ``refresh_now`` is False), then every interval.

        Restarts the loop if already running.
        """
        self.stop()
        self._task = asyncio.create_task(self._run(refresh_now=refresh_now))

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def tick(self) -> bool:
        """Run one guarded refresh. Returns False when skipped because a fetch is pending."""
        if self._pipeline.is_busy:
            logger.debug("skipping server refresh", state=self._pipeline.current_state)
            return False
        await self._refresh()
        return True

    async def _run(self, *, refresh_now: bool) -> None:
        with contextlib.suppress(asyncio.CancelledError):
            if refresh_now:
                await self._refresh()
            while True:
                await asyncio.sleep(self._interval_seconds)
                await self.tick()

    async def _refresh(self) -> None:
        # shielded: cancelling the loop must not abort a fetch mid-flight
        task = asyncio.ensure_future(self._pipeline.refresh())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        await asyncio.shield(task)
