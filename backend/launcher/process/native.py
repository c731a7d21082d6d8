"""Native command boundary: launching the game client and querying the OS.

The core only talks to ``NativeCommands``. ``LocalNativeCommands`` is the
implementation used by the desktop launcher; tests substitute fakes.
"""

from __future__ import annotations

import asyncio
import os
import subprocess
import sys
from pathlib import Path
from typing import Protocol

import psutil
import structlog

from launcher.byond.version import ByondVersion, parse_version_output

logger = structlog.get_logger()

DREAMSEEKER_EXECUTABLE = "dreamseeker.exe"
DREAM_DAEMON_EXECUTABLE = "dd.exe"

# Keeps dd.exe from flashing a console window on Windows.
_CREATE_NO_WINDOW = 0x08000000


class NativeCommandError(Exception):
    """A native command (spawn, URI handoff, process query) failed."""


class NativeCommands(Protocol):
    async def open_uri(self, uri: str) -> None: ...

    async def launch_dreamseeker(self, byond_path: str, target: str) -> str: ...

    async def is_dreamseeker_running(self) -> bool: ...

    async def find_dreamseeker_process(self) -> bool: ...

    async def get_byond_version(self, byond_path: str) -> ByondVersion: ...


def _open_with_system_handler(uri: str) -> None:
    if sys.platform == "win32":
        os.startfile(uri)  # noqa: S606
    elif sys.platform == "darwin":
        subprocess.run(["open", uri], check=True)  # noqa: S603, S607
    else:
        subprocess.run(["xdg-open", uri], check=True)  # noqa: S603, S607


class LocalNativeCommands:
    """Spawn and inspect DreamSeeker on the local machine.

    Tracks the one DreamSeeker process this launcher spawned directly; a new
    launch replaces the tracked handle.
    """

    def __init__(self, process_name: str = DREAMSEEKER_EXECUTABLE) -> None:
        self._process_name = process_name.lower()
        self._child: subprocess.Popen[bytes] | None = None

    async def open_uri(self, uri: str) -> None:
        logger.info("opening uri", uri=uri)
        try:
            await asyncio.to_thread(_open_with_system_handler, uri)
        except (OSError, subprocess.SubprocessError) as exc:
            raise NativeCommandError(f"Failed to open {uri}: {exc}") from exc

    async def launch_dreamseeker(self, byond_path: str, target: str) -> str:
        path = Path(byond_path) / "bin" / DREAMSEEKER_EXECUTABLE
        logger.info("launching dreamseeker", path=str(path), target=target)
        if not path.exists():
            raise NativeCommandError(f"DreamSeeker executable not found at {path}")
        try:
            self._child = subprocess.Popen([str(path), target])  # noqa: S603
        except OSError as exc:
            raise NativeCommandError(f"Failed to launch DreamSeeker: {exc}") from exc
        return f"Started DreamSeeker for {target}"

    async def is_dreamseeker_running(self) -> bool:
        """Whether the process spawned by ``launch_dreamseeker`` is still alive."""
        child = self._child
        if child is None:
            logger.debug("no dreamseeker process is being tracked")
            return False
        try:
            returncode = child.poll()
        except OSError as exc:
            raise NativeCommandError(f"Error checking DreamSeeker process: {exc}") from exc
        if returncode is None:
            return True
        logger.info("dreamseeker process exited", pid=child.pid, returncode=returncode)
        self._child = None
        return False

    async def find_dreamseeker_process(self) -> bool:
        """Whether any process named dreamseeker.exe is running, whoever started it."""
        try:
            return await asyncio.to_thread(self._scan_processes)
        except psutil.Error as exc:
            raise NativeCommandError(f"Failed to enumerate processes: {exc}") from exc

    async def get_byond_version(self, byond_path: str) -> ByondVersion:
        dd_path = Path(byond_path) / "bin" / DREAM_DAEMON_EXECUTABLE
        if not dd_path.exists():
            raise NativeCommandError(f"Dream Daemon executable not found at {dd_path}")

        kwargs = {"creationflags": _CREATE_NO_WINDOW} if sys.platform == "win32" else {}
        try:
            proc = await asyncio.create_subprocess_exec(
                str(dd_path),
                "-version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                **kwargs,
            )
            stdout, _ = await proc.communicate()
        except OSError as exc:
            raise NativeCommandError(f"Failed to execute {DREAM_DAEMON_EXECUTABLE}: {exc}") from exc

        if proc.returncode != 0:
            raise NativeCommandError(f"{DREAM_DAEMON_EXECUTABLE} failed with status: {proc.returncode}")

        try:
            return parse_version_output(stdout.decode("utf-8", errors="replace"))
        except ValueError as exc:
            raise NativeCommandError(str(exc)) from exc

    def _scan_processes(self) -> bool:
        for proc in psutil.process_iter(["pid", "name"]):
            name = (proc.info.get("name") or "").lower()
            if name == self._process_name:
                logger.debug("found dreamseeker process", pid=proc.info.get("pid"))
                return True
        return False
