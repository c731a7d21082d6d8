"""Polling supervisor for an external game client process."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import StrEnum

import structlog

logger = structlog.get_logger()

# Probe type: () -> Awaitable[bool], True while the process is alive
LivenessProbe = Callable[[], Awaitable[bool]]
ExitCallback = Callable[[], Awaitable[None]]


class ProbeError(Exception):
    """A liveness query failed. The tick is inconclusive, not an exit."""


class MonitorMode(StrEnum):
    # we spawned the process; the first negative probe means it exited
    DIRECT = "direct"
    # someone else spawned it; it must be seen alive before a negative counts
    INDIRECT = "indirect"

    @property
    def requires_prior_liveness(self) -> bool:
        return self is MonitorMode.INDIRECT


class ProcessMonitor:
    """Poll a liveness probe on a fixed interval and report when the process exits.

    Holds at most one polling task; ``start`` stops any previous one first.
    In indirect mode a monitor whose process never appears keeps polling
    until ``stop()`` is called.
    """

    def __init__(self) -> None:
        self._task: asyncio.Task[None] | None = None
        self._was_running = False

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def was_running(self) -> bool:
        """Whether the probe has reported the process alive since ``start``."""
        return self._was_running

    def start(
        self,
        probe: LivenessProbe,
        interval_seconds: float,
        *,
        require_prior_liveness: bool,
        on_exit: ExitCallback,
    ) -> None:
        self.stop()
        self._was_running = False
        self._task = asyncio.create_task(self._run(probe, interval_seconds, require_prior_liveness, on_exit))
        logger.info(
            "process monitor started",
            interval_seconds=interval_seconds,
            require_prior_liveness=require_prior_liveness,
        )

    def stop(self) -> None:
        """Cancel polling. No-op when nothing is being monitored."""
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
        self._task = None
        self._was_running = False
        logger.info("process monitor stopped")

    async def _run(
        self,
        probe: LivenessProbe,
        interval_seconds: float,
        require_prior_liveness: bool,  # noqa: FBT001
        on_exit: ExitCallback,
    ) -> None:
        try:
            while True:
                await asyncio.sleep(interval_seconds)
                if await self._poll_once(probe, require_prior_liveness=require_prior_liveness):
                    break
        except asyncio.CancelledError:
            return

        # Detach before the callback so a start() made from on_exit is not
        # torn down by this task finishing.
        self._task = None
        self._was_running = False
        logger.info("monitored process exited")
        try:
            await on_exit()
        except Exception:
            logger.exception("process exit handler failed")

    async def _poll_once(self, probe: LivenessProbe, *, require_prior_liveness: bool) -> bool:
        """Run the probe once. Returns True when the process should be treated as exited."""
        try:
            alive = await probe()
        except ProbeError as exc:
            logger.warning("liveness probe failed, skipping tick", error=str(exc))
            return False
        except Exception:
            # inconclusive tick
            logger.exception("liveness check raised unexpectedly, skipping tick")
            return False

        if alive:
            if not self._was_running:
                logger.info("monitored process is running")
            self._was_running = True
            return False

        if require_prior_liveness and not self._was_running:
            logger.debug("monitored process not seen yet")
            return False
        return True
