"""Wire the launcher core together and run it from the console.

The desktop UI subscribes to ``LauncherApp.pipeline`` status updates and to
join notices; ``main()`` stands in for it by printing both.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

from launcher.byond.check import check_byond_version
from launcher.join.errors import JoinError
from launcher.join.orchestrator import AutoMuteHook, JoinOrchestrator
from launcher.join.strategies import strategy_for
from launcher.process.monitor import ProcessMonitor
from launcher.process.native import LocalNativeCommands
from launcher.servers.cache import ServerCache
from launcher.servers.client import ServerDirectoryClient
from launcher.servers.listing import find_server, get_online_server_count, get_sorted_servers
from launcher.servers.status import ServerStatusPipeline, StatusRefresher
from launcher.servers.types import FreshnessState, StatusUpdate
from launcher.settings import LauncherSettings, UserSettingsStore
from shared.logging import setup_logging

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    import httpx

    from launcher.byond.check import ByondStatus
    from launcher.join.orchestrator import SessionHook
    from launcher.process.native import NativeCommands

logger = structlog.get_logger()

STATUS_NOTICES = {
    FreshnessState.LOADING: "Fetching server status...",
    FreshnessState.LOADED_FRESH: "Server status updated",
    FreshnessState.LOADED_CACHE: "Using cached data - connection failed",
    FreshnessState.REFRESHING: "Refreshing...",
    FreshnessState.ERROR: "Error updating servers - please try again",
}


def describe_update(update: StatusUpdate, *, show_invisible: bool = False) -> str:
    """One-line notice for a status update, as shown under the server buttons."""
    if update.state is FreshnessState.ERROR and update.error:
        return update.error
    text = STATUS_NOTICES[update.state]
    if update.state in (FreshnessState.LOADED_FRESH, FreshnessState.LOADED_CACHE):
        listed = get_sorted_servers(update.servers, show_invisible=show_invisible)
        text = f"{text} ({get_online_server_count(update.servers)} online, {len(listed)} listed)"
    if update.state is FreshnessState.LOADED_CACHE and update.error:
        text = f"{text}: {update.error}"
    return text


class LauncherApp:
    """Own one instance of every core component for the lifetime of the launcher.

    ``set_muted`` is the music player's mute switch. When given, an
    AutoMuteHook runs ahead of ``hooks`` so music is muted for each game
    session if the user enabled auto-mute.
    """

    def __init__(
        self,
        settings: LauncherSettings | None = None,
        *,
        native: NativeCommands | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        hooks: Sequence[SessionHook] = (),
        set_muted: Callable[[bool], None] | None = None,
    ) -> None:
        self.settings = settings or LauncherSettings()
        self.native = native or LocalNativeCommands()
        self.user_settings = UserSettingsStore(self.settings.user_settings_path)
        self._transport = transport

        self.cache = ServerCache(self.settings.cache_dir)
        self.client = ServerDirectoryClient(
            self.settings.directory_url,
            self.cache,
            connect_timeout=self.settings.connect_timeout_seconds,
            user_agent=self.settings.user_agent,
            transport=transport,
        )
        self.pipeline = ServerStatusPipeline(self.client, self.cache)
        self.refresher = StatusRefresher(self.pipeline, self.settings.refresh_interval_seconds)
        self.monitor = ProcessMonitor()
        session_hooks: list[SessionHook] = list(hooks)
        if set_muted is not None:
            session_hooks.insert(0, AutoMuteHook(self.user_settings.load, set_muted))
        self.orchestrator = JoinOrchestrator(
            self.monitor,
            poll_interval_seconds=self.settings.monitor_interval_seconds,
            hooks=session_hooks,
        )

    def start(self, *, refresh_now: bool = True) -> None:
        self.refresher.start(refresh_now=refresh_now)

    async def stop(self) -> None:
        self.refresher.stop()
        await self.orchestrator.leave()
        await self.pipeline.aclose()

    async def join(self, server_id: str) -> None:
        """Join a server from the most recent server list. Raises JoinError."""
        server = find_server(self.pipeline.servers, server_id)
        if server is None:
            raise JoinError(f"Unknown server: {server_id}")
        strategy = strategy_for(self.user_settings.load(), self.native)
        await self.orchestrator.join(server, strategy)

    async def check_byond(self) -> ByondStatus:
        user = self.user_settings.load()
        return await check_byond_version(
            self.native,
            user.byond_path,
            self.settings.byond_config_url,
            version_override=user.byond_version_override,
            transport=self._transport,
        )


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="launcher", description="Goonstation server launcher")
    parser.add_argument("--join", metavar="SERVER_ID", help="join this server once the list has loaded")
    parser.add_argument("--once", action="store_true", help="fetch the server list once and exit")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> None:
    def announce_mute(muted: bool) -> None:  # noqa: FBT001
        print("Music muted while in game" if muted else "Music unmuted")

    app = LauncherApp(set_muted=announce_mute)
    show_invisible = app.user_settings.load().show_invisible_servers

    def print_update(update: StatusUpdate) -> None:
        print(describe_update(update, show_invisible=show_invisible))
        if update.state in (FreshnessState.LOADED_FRESH, FreshnessState.LOADED_CACHE):
            for server in get_sorted_servers(update.servers, show_invisible=show_invisible):
                players = "?" if server.player_count is None else server.player_count
                print(f"  [{server.server_id}] {server.short_name} - {server.current_map or '-'} - {players} online")

    app.pipeline.subscribe(print_update)
    app.orchestrator.subscribe_notices(print)

    byond = await app.check_byond()
    if not byond.has_correct_version:
        print(f"BYOND {byond.required_version or '?'} required, found {byond.current_version or 'none'}")

    if args.once:
        await app.pipeline.refresh()
        await app.pipeline.aclose()
        return

    try:
        if args.join:
            await app.pipeline.refresh()
            await app.pipeline.wait_for_revalidation()
            try:
                await app.join(args.join)
            except JoinError as exc:
                print(f"Error joining server: {exc}")
        app.start(refresh_now=not args.join)
        await asyncio.Event().wait()
    finally:
        await app.stop()


def main(argv: Sequence[str] | None = None) -> None:
    settings = LauncherSettings()
    setup_logging(log_dir=settings.log_dir)
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_run(_parse_args(argv)))


if __name__ == "__main__":
    main()
