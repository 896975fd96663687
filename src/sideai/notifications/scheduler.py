# src/sideai/notifications/scheduler.py

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """Normalize for comparisons; naive datetimes are taken as local wall-clock time."""
    return value.astimezone(UTC)


@dataclass(slots=True, frozen=True)
class PendingNotification:
    identifier: str
    title: str
    body: str
    fire_at: datetime


class LocalNotificationScheduler:
    """
    In-process NotificationScheduler.

    Keeps at most one pending request per identifier (scheduling an identifier
    again replaces the previous request, like the OS notification center does).
    Delivery is done by run_notification_dispatcher(), which pops due requests.

    Thread-safety:
    - all access goes through one lock; the dispatcher runs in another thread
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: dict[str, PendingNotification] = {}

    def schedule(self, identifier: str, title: str, body: str, fire_at: datetime) -> None:
        if not identifier:
            raise ValueError("identifier is required")
        item = PendingNotification(identifier=identifier, title=title, body=body, fire_at=fire_at)
        with self._lock:
            replaced = identifier in self._pending
            self._pending[identifier] = item
        logger.debug("Notification scheduled id=%s fire_at=%s replaced=%s", identifier, fire_at.isoformat(), replaced)

    def cancel(self, identifier: str) -> None:
        with self._lock:
            removed = self._pending.pop(identifier, None)
        if removed is not None:
            logger.debug("Notification cancelled id=%s", identifier)

    def cancel_all(self) -> None:
        with self._lock:
            n = len(self._pending)
            self._pending.clear()
        logger.debug("All notifications cancelled count=%d", n)

    # ---- inspection / delivery ----

    def get(self, identifier: str) -> PendingNotification | None:
        with self._lock:
            return self._pending.get(identifier)

    def pending(self) -> list[PendingNotification]:
        """Pending requests ordered by fire time."""
        with self._lock:
            items = list(self._pending.values())
        items.sort(key=lambda n: as_utc(n.fire_at))
        return items

    def pop_due(self, now: datetime) -> list[PendingNotification]:
        """Remove and return every request whose fire time is <= now."""
        now_utc = as_utc(now)
        with self._lock:
            due = [n for n in self._pending.values() if as_utc(n.fire_at) <= now_utc]
            for n in due:
                del self._pending[n.identifier]
        due.sort(key=lambda n: as_utc(n.fire_at))
        return due
