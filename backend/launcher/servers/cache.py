"""Last-known server list, persisted between launcher runs."""

import contextlib
from pathlib import Path

import structlog
from pydantic import TypeAdapter, ValidationError

from launcher.servers.errors import CacheError
from launcher.servers.types import ServerRecord
from shared.storage import read_json, write_json_atomic

logger = structlog.get_logger()

CACHE_FILENAME = "servers.json"

_server_list = TypeAdapter(list[ServerRecord])


class ServerCache:
    """JSON-file cache of the most recent successful directory fetch.

    There is no TTL: a cached list is stale by definition because it was not
    fetched during this session. Read and write failures are logged and
    degrade to "no cache available"; they never reach the caller.
    """

    def __init__(self, cache_dir: Path | str) -> None:
        self._cache_dir = Path(cache_dir)

    @property
    def path(self) -> Path:
        return self._cache_dir / CACHE_FILENAME

    def save(self, servers: list[ServerRecord]) -> bool:
        """Overwrite the cache with ``servers``. Returns False if the write failed."""
        try:
            self._write(servers)
        except CacheError:
            logger.exception("failed to cache server data", path=str(self.path))
            return False
        logger.info("server data cached", count=len(servers))
        return True

    def load(self) -> list[ServerRecord] | None:
        """Return the cached server list, or None if there is none (or it is unreadable)."""
        try:
            servers = self._read()
        except CacheError:
            logger.exception("failed to load cached server data", path=str(self.path))
            return None
        if servers is None:
            logger.info("no cached server data found")
            return None
        logger.info("loaded cached server data", count=len(servers))
        return servers

    def clear(self) -> None:
        with contextlib.suppress(FileNotFoundError):
            self.path.unlink()

    def _write(self, servers: list[ServerRecord]) -> None:
        try:
            write_json_atomic(self.path, _server_list.dump_python(servers, mode="json"))
        except OSError as exc:
            raise CacheError(f"Failed to write {self.path}") from exc

    def _read(self) -> list[ServerRecord] | None:
        try:
            data = read_json(self.path)
        except (OSError, ValueError) as exc:
            raise CacheError(f"Failed to read {self.path}") from exc
        if data is None:
            return None
        try:
            return _server_list.validate_python(data)
        except ValidationError as exc:
            raise CacheError(f"Cached server data in {self.path} is invalid") from exc
