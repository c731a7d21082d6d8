"""Compare the installed BYOND client with the version the servers require."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import structlog
from pydantic import BaseModel

from launcher.byond.version import ByondVersion, parse_build_config
from launcher.process.native import NativeCommandError

if TYPE_CHECKING:
    from launcher.process.native import NativeCommands

logger = structlog.get_logger()


class ByondStatus(BaseModel):
    is_installed: bool
    has_correct_version: bool
    current_version: ByondVersion | None = None
    required_version: ByondVersion | None = None


async def fetch_required_version(
    url: str,
    *,
    timeout: float = 10.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ByondVersion | None:
    """Fetch buildByond.conf and parse the required version. Returns None on any failure."""
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(url)
    except httpx.HTTPError:
        logger.exception("error fetching required byond version", url=url)
        return None

    if not response.is_success:
        logger.error("failed to fetch byond config", status_code=response.status_code)
        return None

    version = parse_build_config(response.text)
    if version is None:
        logger.error("failed to parse byond version from config")
    return version


async def get_installed_version(native: NativeCommands, byond_path: str) -> ByondVersion | None:
    try:
        return await native.get_byond_version(byond_path)
    except NativeCommandError as exc:
        # missing dd.exe is the normal "not installed" answer
        logger.info("byond not installed or path incorrect", byond_path=byond_path, error=str(exc))
        return None


async def check_byond_version(
    native: NativeCommands,
    byond_path: str,
    config_url: str,
    *,
    version_override: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ByondStatus:
    """Report whether BYOND is installed and matches the required version.

    ``version_override`` (``"516.1663"``) replaces the version fetched from
    the game repository; an unparseable override is logged and ignored.
    """
    required: ByondVersion | None = None
    if version_override:
        try:
            required = ByondVersion.parse(version_override)
        except ValueError:
            logger.warning("ignoring invalid byond version override", override=version_override)
    if required is None:
        required = await fetch_required_version(config_url, transport=transport)
    if required is None:
        return ByondStatus(is_installed=False, has_correct_version=False)

    current = await get_installed_version(native, byond_path)
    status = ByondStatus(
        is_installed=current is not None,
        has_correct_version=current == required,
        current_version=current,
        required_version=required,
    )
    logger.info(
        "byond version checked",
        installed=str(current) if current else None,
        required=str(required),
        ok=status.has_correct_version,
    )
    return status
