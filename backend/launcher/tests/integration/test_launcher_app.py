import logging
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from launcher.app import LauncherApp, describe_update, main
from launcher.byond.check import ByondStatus
from launcher.join.errors import JoinError
from launcher.servers.cache import ServerCache
from launcher.servers.client import ServerDirectoryClient
from launcher.servers.errors import NetworkError
from launcher.servers.types import FreshnessState, StatusUpdate
from launcher.settings import LaunchMethod
from launcher.tests.mocks import RecordingHook, make_server, wait_until


def _record(app: LauncherApp) -> list[StatusUpdate]:
    updates: list[StatusUpdate] = []
    app.pipeline.subscribe(updates.append)
    return updates


class TestServerStatus:
    async def test_first_run_fetches_and_caches(self, app, directory):
        updates = _record(app)

        servers = await app.pipeline.refresh()

        assert [u.state for u in updates] == [FreshnessState.LOADING, FreshnessState.LOADED_FRESH]
        assert servers == directory.servers
        assert app.cache.path.exists()
        assert app.cache.load() == directory.servers

    async def test_outage_on_next_run_serves_cache_with_error(self, app, directory):
        await app.pipeline.refresh()
        directory.down = True
        updates = _record(app)

        servers = await app.pipeline.refresh()
        await app.pipeline.wait_for_revalidation()

        assert servers == directory.servers
        assert [u.state for u in updates] == [
            FreshnessState.LOADING,
            FreshnessState.LOADED_CACHE,
            FreshnessState.REFRESHING,
            FreshnessState.LOADED_CACHE,
        ]
        assert "connection refused" in (updates[-1].error or "")
        assert app.pipeline.servers == directory.servers

    async def test_first_run_outage_is_an_error(self, app, directory):
        directory.status = 500
        updates = _record(app)

        assert await app.pipeline.refresh() == []
        assert updates[-1].state is FreshnessState.ERROR
        assert updates[-1].error == "HTTP error! Status: 500"

    async def test_periodic_refresh_runs_until_stopped(self, app, directory):
        app.start()
        await wait_until(lambda: app.pipeline.current_state is FreshnessState.LOADED_FRESH)
        await app.stop()

        assert directory.requests == 1
        assert app.refresher.is_running is False


class TestJoinServer:
    async def test_join_through_pager_until_client_exits(self, app, native):
        notices: list[str] = []
        app.orchestrator.subscribe_notices(notices.append)
        await app.pipeline.refresh()

        await app.join("main3")

        assert native.opened_uris == ["byond://goon3.goonhub.com:26103"]
        assert app.orchestrator.active is not None

        native.running = True
        await wait_until(lambda: app.orchestrator.active.last_known_alive)
        native.running = False
        await wait_until(lambda: app.orchestrator.active is None)

        assert notices == ["Joining Goon 3 via pager...", "Started pager for Goon 3", "Left Goon 3"]

    async def test_join_with_dreamseeker_setting(self, app, native):
        app.user_settings.update(launch_method=LaunchMethod.DREAM_SEEKER, byond_path="D:\\BYOND")
        await app.pipeline.refresh()

        await app.join("main1")

        assert native.launches == [("D:\\BYOND", "goon1.goonhub.com:26101")]

    async def test_join_unknown_server(self, app):
        await app.pipeline.refresh()

        with pytest.raises(JoinError, match="Unknown server: main9"):
            await app.join("main9")

    async def test_join_offline_server(self, app, native):
        await app.pipeline.refresh()

        with pytest.raises(JoinError, match="offline"):
            await app.join("main2")

        assert native.opened_uris == []

    async def test_auto_mute_follows_session(self, launcher_settings, native, directory):
        muted: list[bool] = []
        recorder = RecordingHook()
        app = LauncherApp(
            launcher_settings,
            native=native,
            transport=httpx.MockTransport(directory),
            hooks=[recorder],
            set_muted=muted.append,
        )
        try:
            await app.pipeline.refresh()
            native.running = True
            await app.join("main1")
            assert muted == [True]

            native.running = False
            await wait_until(lambda: app.orchestrator.active is None)
            assert muted == [True, False]
            assert recorder.events == [("start", "main1"), ("end", "main1")]
        finally:
            await app.stop()

    async def test_auto_mute_respects_user_setting(self, launcher_settings, native, directory):
        muted: list[bool] = []
        app = LauncherApp(
            launcher_settings,
            native=native,
            transport=httpx.MockTransport(directory),
            set_muted=muted.append,
        )
        app.user_settings.update(auto_mute_in_game=False)
        try:
            await app.pipeline.refresh()
            await app.join("main1")
            await app.orchestrator.leave()

            assert muted == []
        finally:
            await app.stop()

    async def test_offline_click_keeps_game_muted(self, launcher_settings, native, directory):
        muted: list[bool] = []
        app = LauncherApp(
            launcher_settings,
            native=native,
            transport=httpx.MockTransport(directory),
            set_muted=muted.append,
        )
        try:
            await app.pipeline.refresh()
            native.running = True
            await app.join("main1")

            with pytest.raises(JoinError):
                await app.join("main2")

            assert muted == [True]
            assert app.orchestrator.active is not None
        finally:
            await app.stop()


class TestByondCheck:
    async def test_matching_install(self, app):
        status = await app.check_byond()

        assert status.is_installed is True
        assert status.has_correct_version is True

    async def test_override_from_user_settings(self, app):
        app.user_settings.update(byond_version_override="515.1647")

        status = await app.check_byond()

        assert str(status.required_version) == "515.1647"
        assert status.has_correct_version is False


class TestDescribeUpdate:
    def test_fresh_update_counts_servers(self):
        servers = [make_server(1), make_server(2, invisible=True), make_server(3, active=False)]

        text = describe_update(StatusUpdate(state=FreshnessState.LOADED_FRESH, servers=servers))

        assert text == "Server status updated (2 online, 1 listed)"

    def test_cache_fallback_includes_error(self):
        update = StatusUpdate(state=FreshnessState.LOADED_CACHE, servers=[make_server(1)], error="timed out")

        assert describe_update(update) == "Using cached data - connection failed (1 online, 1 listed): timed out"

    def test_error_shows_error_text(self):
        update = StatusUpdate(state=FreshnessState.ERROR, error="HTTP error! Status: 502")

        assert describe_update(update) == "HTTP error! Status: 502"


class TestMain:
    @pytest.fixture(autouse=True)
    def _reset_root_logger(self):
        yield
        root = logging.getLogger()
        for handler in root.handlers[:]:
            handler.close()
            root.removeHandler(handler)

    def test_once_prints_cached_list_when_offline(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setenv("LAUNCHER_CACHE_DIR", str(tmp_path / "cache"))
        monkeypatch.setenv("LAUNCHER_DATA_DIR", str(tmp_path / "data"))
        ServerCache(tmp_path / "cache").save([make_server(1, player_count=12)])
        byond_ok = ByondStatus(is_installed=True, has_correct_version=True)

        with (
            patch.object(LauncherApp, "check_byond", AsyncMock(return_value=byond_ok)),
            patch.object(ServerDirectoryClient, "fetch_fresh", AsyncMock(side_effect=NetworkError("offline"))),
        ):
            main(["--once"])

        out = capsys.readouterr().out
        assert "Using cached data - connection failed (1 online, 1 listed): offline" in out
        assert "[main1] Goon 1 - - - 12 online" in out
