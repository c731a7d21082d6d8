from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ServerRecord(BaseModel):
    """One game server as listed by the server directory."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    server_id: str
    name: str
    short_name: str
    address: str
    port: int
    active: bool
    invisible: bool
    created_at: str
    updated_at: str
    current_map: str | None = None
    player_count: int | None = None

    @property
    def connection_target(self) -> str:
        """``address:port`` as passed to the game client."""
        return f"{self.address}:{self.port}"

    @property
    def byond_uri(self) -> str:
        return f"byond://{self.connection_target}"


class ServerDirectoryPage(BaseModel):
    """Paginated envelope returned by the directory endpoint. Only ``data`` is used."""

    data: list[ServerRecord]
    meta: dict[str, Any] = Field(default_factory=dict)
    links: dict[str, Any] = Field(default_factory=dict)


class FreshnessState(StrEnum):
    LOADING = "loading"
    LOADED_FRESH = "loaded_fresh"
    LOADED_CACHE = "loaded_cache"
    REFRESHING = "refreshing"
    ERROR = "error"


class StatusUpdate(BaseModel):
    """Notification broadcast on every freshness state transition."""

    model_config = ConfigDict(frozen=True)

    state: FreshnessState
    servers: list[ServerRecord] = Field(default_factory=list)
    error: str | None = None
