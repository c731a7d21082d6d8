from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import httpx
import structlog
from pydantic import ValidationError

from launcher.servers.errors import NetworkError
from launcher.servers.types import ServerDirectoryPage, ServerRecord

if TYPE_CHECKING:
    from launcher.servers.cache import ServerCache

logger = structlog.get_logger()

# Upper bound for reading the response once connected, so a stalled
# directory cannot leave the pipeline in REFRESHING forever.
_READ_TIMEOUT_SECONDS = 30.0


class ServerDirectoryClient:
    """Fetch the live server list from the directory API.

    A successful fetch is written to the cache before it is returned. The
    client never retries; the status pipeline and its periodic driver decide
    when to try again.
    """

    def __init__(
        self,
        url: str,
        cache: ServerCache,
        *,
        connect_timeout: float = 5.0,
        user_agent: str = "GoonstationLauncher",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._cache = cache
        self._timeout = httpx.Timeout(_READ_TIMEOUT_SECONDS, connect=connect_timeout)
        self._headers = {"User-Agent": user_agent}
        self._transport = transport

    async def fetch_fresh(self) -> list[ServerRecord]:
        """GET the directory and return its ``data`` list. Raises NetworkError."""
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                headers=self._headers,
                transport=self._transport,
            ) as client:
                response = await client.get(self._url)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"Timed out fetching server status from {self._url}") from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"Error fetching server status: {exc}") from exc

        if not response.is_success:
            raise NetworkError(f"HTTP error! Status: {response.status_code}", status_code=response.status_code)

        try:
            page = ServerDirectoryPage.model_validate_json(response.content)
        except ValidationError as exc:
            raise NetworkError(
                f"Invalid server directory response: {exc.error_count()} errors",
                status_code=response.status_code,
            ) from exc

        servers = page.data
        logger.info("fetched server status", count=len(servers))
        # blocking write (fsync + rename) runs in a worker thread
        await asyncio.to_thread(self._cache.save, servers)
        return servers
