"""Observer registry for broadcasting state changes to UI subscribers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

logger = structlog.get_logger()


class EventChannel[T]:
    """One-to-many, in-emission-order delivery of events to subscriber callbacks.

    Subscribers are called synchronously from ``publish``. A subscriber that
    raises is logged and skipped; the remaining subscribers still receive the
    event and the publisher never sees the failure.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._subscribers: list[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register a callback. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: T) -> None:
        # snapshot so a subscriber may unsubscribe itself mid-delivery
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("event subscriber failed", channel=self._name)
