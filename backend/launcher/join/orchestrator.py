"""Join a server: launch the client, watch it, and clean up when it exits."""

from __future__ import annotations

import asyncio
import functools
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

import structlog

from launcher.join.errors import JoinError
from launcher.servers.listing import is_server_online
from shared.events import EventChannel

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from launcher.join.strategies import LaunchStrategy
    from launcher.process.monitor import LivenessProbe, ProcessMonitor
    from launcher.servers.types import ServerRecord
    from launcher.settings import UserSettings

logger = structlog.get_logger()


@dataclass
class MonitoredJoin:
    """The one game session currently being watched."""

    server: ServerRecord
    strategy: LaunchStrategy
    last_known_alive: bool = False
    started_at: float = field(default_factory=time.monotonic)


class SessionHook(Protocol):
    """Side effect held for the duration of a game session."""

    async def on_session_start(self, server: ServerRecord) -> None: ...

    async def on_session_end(self, server: ServerRecord) -> None: ...


class AutoMuteHook:
    """Mute launcher music while the game runs, if the user asked for it.

    Only unmutes on session end if this hook did the muting, so a user who
    muted manually stays muted.
    """

    def __init__(self, get_settings: Callable[[], UserSettings], set_muted: Callable[[bool], None]) -> None:
        self._get_settings = get_settings
        self._set_muted = set_muted
        self._muted_by_session = False

    async def on_session_start(self, server: ServerRecord) -> None:  # noqa: ARG002
        settings = self._get_settings()
        if settings.auto_mute_in_game and not settings.is_muted and not self._muted_by_session:
            self._set_muted(True)
            self._muted_by_session = True

    async def on_session_end(self, server: ServerRecord) -> None:  # noqa: ARG002
        if self._muted_by_session:
            self._set_muted(False)
            self._muted_by_session = False


class JoinOrchestrator:
    """Sequence launch -> monitor -> exit handling for at most one session at a time.

    Starting a join for an online server ends the current session first: its monitor is stopped
    (its exit handler will never fire) and its session hooks are released.
    Hooks acquired on join are released exactly once per session, either on
    detected exit, on ``leave()``, or when the session is replaced.
    """

    def __init__(
        self,
        monitor: ProcessMonitor,
        *,
        poll_interval_seconds: float = 2.0,
        hooks: Sequence[SessionHook] = (),
    ) -> None:
        self._monitor = monitor
        self._poll_interval_seconds = poll_interval_seconds
        self._hooks = list(hooks)
        self._active: MonitoredJoin | None = None
        self._lock = asyncio.Lock()
        self._notices: EventChannel[str] = EventChannel("join-notice")

    @property
    def active(self) -> MonitoredJoin | None:
        return self._active

    def subscribe_notices(self, callback: Callable[[str], None]) -> Callable[[], None]:
        return self._notices.subscribe(callback)

    async def join(self, server: ServerRecord, strategy: LaunchStrategy) -> None:
        """Launch the client for ``server`` and start watching it. Raises JoinError."""
        async with self._lock:
            # refusing an offline server leaves the running session alone
            if not is_server_online(server):
                self._notices.publish(f"{server.name} is currently offline.")
                raise JoinError(f"{server.name} is currently offline")

            await self._end_session()

            log = logger.bind(server_id=server.server_id, method=strategy.method)
            log.info("joining server", target=server.connection_target)
            self._notices.publish(f"Joining {server.short_name} via {strategy.method}...")

            try:
                message = await strategy.launch(server)
            except JoinError as exc:
                log.warning("failed to launch game client", error=str(exc))
                self._notices.publish(f"Error joining {server.short_name}: {exc}")
                raise

            join = MonitoredJoin(server=server, strategy=strategy)
            self._active = join
            await self._run_hooks("on_session_start", server)
            self._monitor.start(
                self._probe_for(join),
                self._poll_interval_seconds,
                require_prior_liveness=strategy.monitor_mode.requires_prior_liveness,
                on_exit=functools.partial(self._handle_exit, join),
            )
            log.info("game client launched", detail=message, monitor_mode=strategy.monitor_mode)
            self._notices.publish(f"Started {strategy.method} for {server.short_name}")

    async def leave(self) -> None:
        """Stop watching the current session and release its hooks."""
        async with self._lock:
            await self._end_session()

    def _probe_for(self, join: MonitoredJoin) -> LivenessProbe:
        async def probe() -> bool:
            alive = await join.strategy.probe()
            join.last_known_alive = alive
            return alive

        return probe

    async def _handle_exit(self, join: MonitoredJoin) -> None:
        if self._active is not join:
            # replaced by a newer join; that join already released the hooks
            return
        self._active = None
        logger.info("game client exited", server_id=join.server.server_id)
        await self._run_hooks("on_session_end", join.server)
        self._notices.publish(f"Left {join.server.short_name}")

    async def _end_session(self) -> None:
        self._monitor.stop()
        join = self._active
        if join is None:
            return
        self._active = None
        logger.info("ending game session", server_id=join.server.server_id)
        await self._run_hooks("on_session_end", join.server)

    async def _run_hooks(self, method: str, server: ServerRecord) -> None:
        for hook in self._hooks:
            try:
                await getattr(hook, method)(server)
            except Exception:
                logger.exception("session hook failed", hook=type(hook).__name__, stage=method)
