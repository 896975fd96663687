# src/sideai/notifications/console_sink.py

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from .scheduler import PendingNotification


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


class ConsoleNotificationSink:
    """NotificationSink that prints due notifications to the terminal."""

    def __init__(self, write: Callable[[str], None] = print) -> None:
        self._write = write

    async def deliver(self, notification: PendingNotification) -> None:
        line = f"[{_ts_local()}] [NOTIFY] {notification.title}"
        if notification.body:
            line += f" - {notification.body}"
        self._write(line)
