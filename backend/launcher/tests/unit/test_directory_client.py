import threading
from unittest.mock import patch

import httpx
import pytest

from launcher.servers.cache import ServerCache
from launcher.servers.client import ServerDirectoryClient
from launcher.servers.errors import NetworkError
from launcher.tests.mocks import directory_payload, make_server

DIRECTORY_URL = "http://directory.test/servers"


@pytest.fixture
def cache(tmp_path):
    return ServerCache(tmp_path / "cache")


def _client(cache: ServerCache, handler, **kwargs) -> ServerDirectoryClient:
    return ServerDirectoryClient(DIRECTORY_URL, cache, transport=httpx.MockTransport(handler), **kwargs)


class TestFetchFresh:
    async def test_returns_data_and_writes_cache(self, cache):
        servers = [make_server(1), make_server(2, active=False)]

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=directory_payload(servers))

        result = await _client(cache, handler).fetch_fresh()

        assert result == servers
        assert cache.load() == servers

    async def test_sends_user_agent(self, cache):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=directory_payload([]))

        await _client(cache, handler, user_agent="GoonstationLauncher/9.9").fetch_fresh()

        assert seen[0].method == "GET"
        assert str(seen[0].url) == DIRECTORY_URL
        assert seen[0].headers["User-Agent"] == "GoonstationLauncher/9.9"

    async def test_ignores_unknown_fields(self, cache):
        payload = directory_payload([make_server(1)])
        payload["data"][0]["round_id"] = 12345

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=payload)

        result = await _client(cache, handler).fetch_fresh()

        assert result[0].server_id == "main1"

    async def test_non_success_status_raises_with_code(self, cache):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="maintenance")

        with pytest.raises(NetworkError) as exc_info:
            await _client(cache, handler).fetch_fresh()

        assert exc_info.value.status_code == 503
        assert exc_info.value.message == "HTTP error! Status: 503"
        assert cache.load() is None

    async def test_undecodable_body_raises(self, cache):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>oops</html>")

        with pytest.raises(NetworkError, match="Invalid server directory response"):
            await _client(cache, handler).fetch_fresh()

        assert cache.load() is None

    async def test_missing_data_field_raises(self, cache):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"meta": {}})

        with pytest.raises(NetworkError):
            await _client(cache, handler).fetch_fresh()

    async def test_connection_failure_raises(self, cache):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NetworkError, match="connection refused") as exc_info:
            await _client(cache, handler).fetch_fresh()

        assert exc_info.value.status_code is None

    async def test_timeout_raises(self, cache):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(NetworkError, match="Timed out"):
            await _client(cache, handler).fetch_fresh()

    async def test_cache_write_failure_does_not_fail_fetch(self, tmp_path):
        blocker = tmp_path / "blocked"
        blocker.write_text("a file where the cache dir should be", encoding="utf-8")
        cache = ServerCache(blocker)
        servers = [make_server(1)]

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=directory_payload(servers))

        assert await _client(cache, handler).fetch_fresh() == servers

    async def test_cache_is_written_off_the_event_loop(self, cache):
        loop_thread = threading.get_ident()
        writer_threads: list[int] = []
        real_save = cache.save

        def recording_save(servers):
            writer_threads.append(threading.get_ident())
            return real_save(servers)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=directory_payload([make_server(1)]))

        with patch.object(cache, "save", side_effect=recording_save):
            await _client(cache, handler).fetch_fresh()

        assert len(writer_threads) == 1
        assert writer_threads[0] != loop_thread
        assert cache.load() == [make_server(1)]
