"""User-facing notifications with de-duplication."""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


class NotificationLevel(str, Enum):
    """Notification severity."""

    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Notification:
    """A message shown to the evaluator."""

    level: NotificationLevel
    message: str
    description: str = ""


NotificationSink = Callable[[Notification], None]


def log_sink(notification: Notification) -> None:
    """Default sink: write the notification to the structured log."""
    logger.info(
        "notification",
        level=notification.level.value,
        message=notification.message,
        description=notification.description,
    )


class Notifier:
    """Deliver notifications to sinks, suppressing repeats.

    The same (level, message) pair is delivered at most once per
    de-duplication window.
    """

    def __init__(
        self,
        sinks: Optional[list[NotificationSink]] = None,
        dedupe_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.sinks = sinks if sinks is not None else [log_sink]
        self.dedupe_seconds = dedupe_seconds
        self._clock = clock
        self._last_sent: dict[tuple[NotificationLevel, str], float] = {}

    def notify(
        self, level: NotificationLevel, message: str, description: str = ""
    ) -> bool:
        """Deliver a notification unless an identical one was just sent.

        Returns:
            True if delivered, False if suppressed as a duplicate
        """
        key = (level, message)
        now = self._clock()
        last = self._last_sent.get(key)
        if last is not None and now - last < self.dedupe_seconds:
            return False

        self._last_sent[key] = now
        notification = Notification(level=level, message=message, description=description)
        for sink in self.sinks:
            sink(notification)
        return True

    def success(self, message: str, description: str = "") -> bool:
        return self.notify(NotificationLevel.SUCCESS, message, description)

    def warning(self, message: str, description: str = "") -> bool:
        return self.notify(NotificationLevel.WARNING, message, description)

    def error(self, message: str, description: str = "") -> bool:
        return self.notify(NotificationLevel.ERROR, message, description)
