# src/sideai/notifications/dispatcher.py

from __future__ import annotations

"""
Notification dispatcher.

A small polling loop that:
- pops due notifications from the local scheduler,
- hands them to an injected sink (console, desktop bridge, ...),
- logs delivery failures and moves on (notifications are best-effort).

Presentation (formatting, sound, badges) belongs to the sink, not the dispatcher.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from ..core.ports import NotificationSink
from .scheduler import LocalNotificationScheduler, PendingNotification

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


async def dispatch_due(
        scheduler: LocalNotificationScheduler,
        sink: NotificationSink,
        *,
        now: datetime | None = None,
) -> list[PendingNotification]:
    """Deliver everything that is due right now. Returns what was delivered successfully."""
    delivered: list[PendingNotification] = []
    for item in scheduler.pop_due(now or _utc_now()):
        try:
            await sink.deliver(item)
        except Exception:
            # Not rescheduled: a missed notification is an accepted degraded mode.
            logger.exception("Notification delivery failed id=%s", item.identifier)
            continue
        logger.info("Notification delivered id=%s", item.identifier)
        delivered.append(item)
    return delivered


async def run_notification_dispatcher(
        scheduler: LocalNotificationScheduler,
        sink: NotificationSink,
        *,
        interval_seconds: float = 5.0,
        clock: Callable[[], datetime] = _utc_now,
) -> None:
    """
    Simple polling dispatcher.

    Every interval_seconds deliver the notifications whose fire time has passed.
    To stop the dispatcher, cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))

    while True:
        try:
            await dispatch_due(scheduler, sink, now=clock())
        except Exception:
            logger.exception("Notification dispatch round failed")

        await asyncio.sleep(sleep_s)
