"""Shared fixtures for launcher integration tests."""

from __future__ import annotations

import httpx
import pytest

from launcher.app import LauncherApp
from launcher.settings import LauncherSettings
from launcher.tests.mocks import FakeNativeCommands, directory_payload, make_server

BUILD_CONFIG = "BYOND_MAJOR_VERSION=516\nBYOND_MINOR_VERSION=1663\n"


class FakeDirectory:
    """Serve the directory endpoint and buildByond.conf from memory.

    Set ``status`` to a non-200 code (or ``down`` to True) to simulate an outage.
    """

    def __init__(self) -> None:
        self.servers = [make_server(1), make_server(2, active=False, invisible=True), make_server(3)]
        self.status = 200
        self.down = False
        self.requests = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("buildByond.conf"):
            return httpx.Response(200, text=BUILD_CONFIG)
        self.requests += 1
        if self.down:
            raise httpx.ConnectError("connection refused", request=request)
        if self.status != 200:
            return httpx.Response(self.status)
        return httpx.Response(200, json=directory_payload(self.servers))


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture
def native():
    return FakeNativeCommands()


@pytest.fixture
def launcher_settings(tmp_path):
    return LauncherSettings(
        cache_dir=tmp_path / "cache",
        data_dir=tmp_path / "data",
        monitor_interval_seconds=0.001,
        refresh_interval_seconds=1,
    )


@pytest.fixture
async def app(launcher_settings, native, directory):
    app = LauncherApp(launcher_settings, native=native, transport=httpx.MockTransport(directory))
    yield app
    await app.stop()
