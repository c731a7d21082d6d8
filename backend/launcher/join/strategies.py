"""Ways of starting the game client for a server.

Each strategy knows how to launch the client and how to tell whether it is
still running, and which monitor mode that liveness check needs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar, Protocol

import structlog

from launcher.join.errors import JoinError
from launcher.process.monitor import MonitorMode, ProbeError
from launcher.process.native import NativeCommandError
from launcher.settings import LaunchMethod

if TYPE_CHECKING:
    from launcher.process.native import NativeCommands
    from launcher.servers.types import ServerRecord
    from launcher.settings import UserSettings

logger = structlog.get_logger()


class LaunchStrategy(Protocol):
    method: LaunchMethod
    monitor_mode: MonitorMode

    async def launch(self, server: ServerRecord) -> str:
        """Start the client for ``server``. Returns a notice; raises JoinError."""
        ...

    async def probe(self) -> bool:
        """True while the client is running. Raises ProbeError when inconclusive."""
        ...


class UriHandoffStrategy:
    """Hand a ``byond://`` URI to the BYOND pager, which spawns DreamSeeker itself."""

    method: ClassVar[LaunchMethod] = LaunchMethod.BYOND_PAGER
    monitor_mode: ClassVar[MonitorMode] = MonitorMode.INDIRECT

    def __init__(self, native: NativeCommands) -> None:
        self._native = native

    async def launch(self, server: ServerRecord) -> str:
        uri = server.byond_uri
        try:
            await self._native.open_uri(uri)
        except NativeCommandError as exc:
            raise JoinError(f"Failed to open {uri}: {exc}") from exc
        return f"Opened {uri} in the BYOND pager"

    async def probe(self) -> bool:
        try:
            return await self._native.find_dreamseeker_process()
        except NativeCommandError as exc:
            raise ProbeError(str(exc)) from exc


class DirectLaunchStrategy:
    """Spawn DreamSeeker from the configured BYOND install and watch that process."""

    method: ClassVar[LaunchMethod] = LaunchMethod.DREAM_SEEKER
    monitor_mode: ClassVar[MonitorMode] = MonitorMode.DIRECT

    def __init__(self, native: NativeCommands, byond_path: str) -> None:
        self._native = native
        self._byond_path = byond_path

    async def launch(self, server: ServerRecord) -> str:
        if not self._byond_path.strip():
            raise JoinError("BYOND path is not configured")
        try:
            return await self._native.launch_dreamseeker(self._byond_path, server.connection_target)
        except NativeCommandError as exc:
            raise JoinError(str(exc)) from exc

    async def probe(self) -> bool:
        try:
            return await self._native.is_dreamseeker_running()
        except NativeCommandError as exc:
            raise ProbeError(str(exc)) from exc


def strategy_for(settings: UserSettings, native: NativeCommands) -> LaunchStrategy:
    """Pick the launch strategy configured in the user's settings."""
    if settings.launch_method is LaunchMethod.DREAM_SEEKER:
        return DirectLaunchStrategy(native, settings.byond_path)
    return UriHandoffStrategy(native)
