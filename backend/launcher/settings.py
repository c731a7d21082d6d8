"""Launcher configuration and persisted user preferences.

``LauncherSettings`` holds deployment configuration read from ``LAUNCHER_*``
environment variables. ``UserSettings`` is the JSON file the settings screen
edits; the core only reads the launch method, BYOND path and view flags.
"""

from enum import StrEnum
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings

from shared.storage import read_json, write_json_atomic

logger = structlog.get_logger()

LAUNCHER_VERSION = "0.1.0"
USER_SETTINGS_FILENAME = "user_settings.json"
DEFAULT_BYOND_PATH = "C:\\Program Files (x86)\\BYOND"


class LaunchMethod(StrEnum):
    DREAM_SEEKER = "dreamseeker"
    BYOND_PAGER = "pager"


class LauncherSettings(BaseSettings):
    model_config = {"env_prefix": "LAUNCHER_"}

    directory_url: str = Field(default="https://api.goonhub.com/servers", min_length=1)
    connect_timeout_seconds: float = Field(default=5.0, gt=0)
    refresh_interval_seconds: float = Field(default=30.0, ge=1)
    monitor_interval_seconds: float = Field(default=2.0, gt=0)
    cache_dir: Path = Path("data/cache")
    data_dir: Path = Path("data")
    log_dir: str | None = None
    byond_config_url: str = (
        "https://raw.githubusercontent.com/goonstation/goonstation/refs/heads/master/buildByond.conf"
    )
    user_agent: str = f"GoonstationLauncher/{LAUNCHER_VERSION}"

    @property
    def user_settings_path(self) -> Path:
        return self.data_dir / USER_SETTINGS_FILENAME


class UserSettings(BaseModel):
    """User preferences, stored with the camelCase keys the settings screen writes."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    byond_path: str = Field(default=DEFAULT_BYOND_PATH, alias="byondPath")
    launch_method: LaunchMethod = Field(default=LaunchMethod.BYOND_PAGER, alias="launchMethod")
    is_muted: bool = Field(default=False, alias="isMuted")
    volume: float = Field(default=0.5, ge=0, le=1)
    auto_mute_in_game: bool = Field(default=True, alias="autoMuteInGame")
    byond_version_override: str | None = Field(default=None, alias="byondVersionOverride")
    show_invisible_servers: bool = Field(default=False, alias="showInvisibleServers")


class UserSettingsStore:
    """Load and update ``user_settings.json``.

    A missing file is created with defaults. A file that cannot be read or
    does not validate is logged and replaced in memory by defaults; it is not
    overwritten until the user changes a setting.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._current: UserSettings | None = None

    def load(self) -> UserSettings:
        if self._current is not None:
            return self._current

        try:
            data = read_json(self._path)
        except (OSError, ValueError):
            logger.exception("failed to read user settings", path=str(self._path))
            self._current = UserSettings()
            return self._current

        if data is None:
            self._current = UserSettings()
            self._save(self._current)
            return self._current

        try:
            self._current = UserSettings.model_validate(data)
        except ValidationError:
            logger.warning("invalid user settings, using defaults", path=str(self._path))
            self._current = UserSettings()
        return self._current

    def update(self, **changes: object) -> UserSettings:
        """Merge ``changes`` (snake_case field names) into the settings and persist them."""
        current = self.load()
        merged = UserSettings.model_validate({**current.model_dump(), **changes})
        self._save(merged)
        self._current = merged
        logger.info("user settings updated", fields=sorted(changes))
        return merged

    def _save(self, settings: UserSettings) -> None:
        try:
            write_json_atomic(self._path, settings.model_dump(mode="json", by_alias=True), indent=2)
        except OSError:
            logger.exception("failed to save user settings", path=str(self._path))
