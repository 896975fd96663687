# src/sideai/records/manager.py

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Generic, TypeVar

from ..core.errors import DecryptionFailed, NotFound, SerializationFailed, StorageError
from ..core.ports import NotificationScheduler
from ..notifications.scheduler import as_utc
from ..storage.collection_store import (
    REMINDERS,
    SCHEDULE_EVENTS,
    TASKS,
    EncryptedCollectionStore,
)
from .models import Reminder, ScheduleEvent, Task, utc_now

logger = logging.getLogger(__name__)

R = TypeVar("R", Task, ScheduleEvent, Reminder)

DEFAULT_EVENT_LEAD = timedelta(minutes=15)


@dataclass(slots=True, frozen=True)
class CollectionSnapshot:
    """Immutable view of one collection, published after every mutation."""

    collection: str
    records: tuple[Task, ...] | tuple[ScheduleEvent, ...] | tuple[Reminder, ...]


@dataclass(slots=True, frozen=True)
class NotificationRequest:
    identifier: str
    title: str
    body: str
    fire_at: datetime


SnapshotListener = Callable[[CollectionSnapshot], None]
ErrorListener = Callable[[StorageError], None]


class _Collection(Generic[R]):
    def __init__(self, name: str, record_type: type[R]) -> None:
        self.name = name
        self.record_type = record_type
        self.records: list[R] = []
        self.retired: set[uuid.UUID] = set()
        # False while the file on disk could not be read; saving would overwrite it.
        self.loaded = True

    def index_of(self, record_id: uuid.UUID) -> int | None:
        for i, rec in enumerate(self.records):
            if rec.id == record_id:
                return i
        return None


def notification_id(record: Task | ScheduleEvent | Reminder) -> str:
    """
    Scheduler identifier of a record.

    Tasks use their own id; events and reminders are prefixed so the three kinds
    can never collide.
    """
    ident = str(record.id).upper()
    if isinstance(record, ScheduleEvent):
        return f"event-{ident}"
    if isinstance(record, Reminder):
        return f"reminder-{ident}"
    return ident


class RecordManager:
    """
    Owner of the three in-memory collections (tasks, schedule events, reminders).

    Every mutation:
    1) changes the in-memory collection,
    2) re-persists that whole collection through the encrypted store,
    3) brings the record's scheduled notification in line with the record,
    4) publishes a fresh snapshot to subscribers.

    Consistency rule: one pending notification per record iff
    - Task: reminder_date is set and the task is not completed
    - Reminder: not completed
    - ScheduleEvent: start_date - event_lead is strictly in the future

    Failures of the store or the scheduler never undo an applied mutation and are
    never raised to the caller: store failures are logged, kept in last_error()
    and passed to on_error; scheduler failures are only logged.

    A collection whose file could not be read at startup for a transient reason
    (see load_all) keeps working in memory but is never written back that session.

    All operations are serialized by one re-entrant lock (single writer).
    """

    def __init__(
        self,
        store: EncryptedCollectionStore,
        notifications: NotificationScheduler,
        *,
        clock: Callable[[], datetime] = utc_now,
        event_lead: timedelta = DEFAULT_EVENT_LEAD,
        on_error: ErrorListener | None = None,
    ) -> None:
        self._store = store
        self._notifications = notifications
        self._clock = clock
        self._event_lead = event_lead
        self._on_error = on_error

        self._lock = threading.RLock()
        self._tasks: _Collection[Task] = _Collection(TASKS, Task)
        self._events: _Collection[ScheduleEvent] = _Collection(SCHEDULE_EVENTS, ScheduleEvent)
        self._reminders: _Collection[Reminder] = _Collection(REMINDERS, Reminder)

        self._listeners: list[SnapshotListener] = []
        self._last_errors: dict[str, StorageError] = {}

    # ---- published state ----

    @property
    def tasks(self) -> tuple[Task, ...]:
        with self._lock:
            return tuple(self._tasks.records)

    @property
    def schedule_events(self) -> tuple[ScheduleEvent, ...]:
        with self._lock:
            return tuple(self._events.records)

    @property
    def reminders(self) -> tuple[Reminder, ...]:
        with self._lock:
            return tuple(self._reminders.records)

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a snapshot listener. Returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def last_error(self, collection: str) -> StorageError | None:
        """Most recent persistence failure of a collection, cleared by the next successful save."""
        with self._lock:
            return self._last_errors.get(collection)

    def is_loaded(self, collection: str) -> bool:
        """False when load_all() could not read the collection file; it is then never saved."""
        with self._lock:
            for coll in (self._tasks, self._events, self._reminders):
                if coll.name == collection:
                    return coll.loaded
        raise ValueError(f"unknown collection: {collection!r}")

    # ---- lookups ----

    def find_task(self, task_id: uuid.UUID) -> Task | None:
        return self._find(self._tasks, task_id)

    def find_schedule_event(self, event_id: uuid.UUID) -> ScheduleEvent | None:
        return self._find(self._events, event_id)

    def find_reminder(self, reminder_id: uuid.UUID) -> Reminder | None:
        return self._find(self._reminders, reminder_id)

    def require_task(self, task_id: uuid.UUID) -> Task:
        return self._require(self._tasks, task_id)

    def require_schedule_event(self, event_id: uuid.UUID) -> ScheduleEvent:
        return self._require(self._events, event_id)

    def require_reminder(self, reminder_id: uuid.UUID) -> Reminder:
        return self._require(self._reminders, reminder_id)

    # ---- tasks ----

    def add_task(self, task: Task) -> Task | None:
        return self._add(self._tasks, task)

    def update_task(self, task: Task) -> Task | None:
        return self._update(self._tasks, task.touch(self._clock()))

    def delete_task(self, task: Task) -> Task | None:
        return self._delete(self._tasks, task.id)

    def toggle_task_completion(self, task: Task) -> Task | None:
        now = self._clock()
        return self._toggle(self._tasks, task.id, lambda t: t.toggled(now))

    # ---- schedule events ----

    def add_schedule_event(self, event: ScheduleEvent) -> ScheduleEvent | None:
        return self._add(self._events, event)

    def update_schedule_event(self, event: ScheduleEvent) -> ScheduleEvent | None:
        return self._update(self._events, event)

    def delete_schedule_event(self, event: ScheduleEvent) -> ScheduleEvent | None:
        return self._delete(self._events, event.id)

    # ---- reminders ----

    def add_reminder(self, reminder: Reminder) -> Reminder | None:
        return self._add(self._reminders, reminder)

    def update_reminder(self, reminder: Reminder) -> Reminder | None:
        return self._update(self._reminders, reminder)

    def delete_reminder(self, reminder: Reminder) -> Reminder | None:
        return self._delete(self._reminders, reminder.id)

    def toggle_reminder_completion(self, reminder: Reminder) -> Reminder | None:
        return self._toggle(self._reminders, reminder.id, lambda r: r.toggled())

    # ---- startup ----

    def load_all(self) -> None:
        """
        Load the three collections from disk.

        Every failure is reported and the collection starts empty. Then:
        - bad content (DecryptionFailed, SerializationFailed): the file is moved
          aside, so the next save cannot overwrite it
        - anything else (keychain locked or unreachable, file unreadable): the file
          stays where it is and the collection is marked not loaded, so no save
          touches it this session; the next launch tries again
        """
        with self._lock:
            for coll in (self._tasks, self._events, self._reminders):
                coll.records = []
                try:
                    coll.records = list(self._store.load(coll.name, coll.record_type))
                except (DecryptionFailed, SerializationFailed) as exc:
                    self._report(coll, exc)
                    coll.loaded = True
                    try:
                        self._store.quarantine(coll.name)
                    except OSError:
                        # Could not move it: protect it like a transient failure.
                        logger.exception("Could not move unreadable collection=%s aside", coll.name)
                        coll.loaded = False
                except StorageError as exc:
                    self._report(coll, exc)
                    coll.loaded = False
                    logger.warning("Collection=%s left on disk untouched until the next launch", coll.name)
                else:
                    coll.loaded = True
                    self._last_errors.pop(coll.name, None)
                    logger.info("Loaded collection=%s records=%d", coll.name, len(coll.records))
                self._publish(coll)

    def resync_notifications(self) -> int:
        """
        Rebuild the scheduler state from the records: cancel everything, then
        schedule one notification per record that currently warrants one.

        Fire times already in the past are skipped: they were due in an earlier
        session and are not delivered again on every launch.

        Returns the number of notifications scheduled.
        """
        with self._lock:
            self._safe_cancel_all()
            now = as_utc(self._clock())
            n = skipped = 0
            for coll in (self._tasks, self._events, self._reminders):
                for rec in coll.records:
                    req = self.notification_request(rec)
                    if req is None:
                        continue
                    if as_utc(req.fire_at) <= now:
                        skipped += 1
                        continue
                    if self._schedule(req):
                        n += 1
            logger.info("Notifications resynced scheduled=%d past_due_skipped=%d", n, skipped)
            return n

    # ---- notification policy ----

    def notification_request(self, record: Task | ScheduleEvent | Reminder) -> NotificationRequest | None:
        """What should be pending for `record` right now, or None."""
        ident = notification_id(record)

        if isinstance(record, Task):
            if record.reminder_date is None or record.is_completed:
                return None
            return NotificationRequest(
                identifier=ident,
                title=f"Task Reminder: {record.title}",
                body=record.description,
                fire_at=record.reminder_date,
            )

        if isinstance(record, ScheduleEvent):
            fire_at = record.start_date - self._event_lead
            if as_utc(fire_at) <= as_utc(self._clock()):
                return None
            return NotificationRequest(
                identifier=ident,
                title=f"Upcoming Event: {record.title}",
                body=f"Starting at {_format_time(record.start_date)}",
                fire_at=fire_at,
            )

        if record.is_completed:
            return None
        return NotificationRequest(
            identifier=ident,
            title=record.title,
            body=record.notes,
            fire_at=record.reminder_date,
        )

    # ---- internals ----

    def _find(self, coll: _Collection[R], record_id: uuid.UUID) -> R | None:
        with self._lock:
            idx = coll.index_of(record_id)
            return None if idx is None else coll.records[idx]

    def _require(self, coll: _Collection[R], record_id: uuid.UUID) -> R:
        found = self._find(coll, record_id)
        if found is None:
            raise NotFound(coll.name, record_id)
        return found

    def _add(self, coll: _Collection[R], record: R) -> R | None:
        with self._lock:
            if record.id in coll.retired or coll.index_of(record.id) is not None:
                logger.warning("Refusing to add %s with an id already used id=%s", coll.name, record.id)
                return None
            coll.records.append(record)
            self._persist(coll)
            self._schedule_for(record)
            self._publish(coll)
            logger.debug("Added %s id=%s", coll.name, record.id)
            return record

    def _update(self, coll: _Collection[R], record: R) -> R | None:
        with self._lock:
            idx = coll.index_of(record.id)
            if idx is None:
                logger.warning("Update of unknown %s id=%s ignored", coll.name, record.id)
                return None
            # created_at is fixed at creation.
            record = replace(record, created_at=coll.records[idx].created_at)
            coll.records[idx] = record
            self._persist(coll)
            # Always cancel first: a changed fire time must not leave the old request behind.
            self._safe_cancel(notification_id(record))
            self._schedule_for(record)
            self._publish(coll)
            logger.debug("Updated %s id=%s", coll.name, record.id)
            return record

    def _delete(self, coll: _Collection[R], record_id: uuid.UUID) -> R | None:
        with self._lock:
            idx = coll.index_of(record_id)
            if idx is None:
                logger.warning("Delete of unknown %s id=%s ignored", coll.name, record_id)
                return None
            removed = coll.records.pop(idx)
            coll.retired.add(record_id)
            self._safe_cancel(notification_id(removed))
            self._persist(coll)
            self._publish(coll)
            logger.debug("Deleted %s id=%s", coll.name, record_id)
            return removed

    def _toggle(self, coll: _Collection[R], record_id: uuid.UUID, flip: Callable[[R], R]) -> R | None:
        with self._lock:
            idx = coll.index_of(record_id)
            if idx is None:
                logger.warning("Toggle of unknown %s id=%s ignored", coll.name, record_id)
                return None
            toggled = flip(coll.records[idx])
            coll.records[idx] = toggled
            self._safe_cancel(notification_id(toggled))
            if not toggled.is_completed:
                self._schedule_for(toggled)
            self._persist(coll)
            self._publish(coll)
            logger.debug("Toggled %s id=%s completed=%s", coll.name, record_id, toggled.is_completed)
            return toggled

    def _persist(self, coll: _Collection[R]) -> None:
        if not coll.loaded:
            self._report(
                coll,
                StorageError(
                    f"{coll.name} was not loaded at startup; not saving over the file on disk",
                    collection=coll.name,
                ),
            )
            return
        try:
            self._store.save(coll.name, coll.records)
        except StorageError as exc:
            self._report(coll, exc)
        else:
            self._last_errors.pop(coll.name, None)

    def _report(self, coll: _Collection[R], exc: StorageError) -> None:
        if exc.collection is None:
            exc.collection = coll.name
        self._last_errors[coll.name] = exc
        logger.error("Persistence failure collection=%s (%s): %s", coll.name, type(exc).__name__, exc)
        if self._on_error is not None:
            try:
                self._on_error(exc)
            except Exception:
                logger.exception("on_error listener failed")

    def _schedule_for(self, record: Task | ScheduleEvent | Reminder) -> bool:
        req = self.notification_request(record)
        if req is None:
            return False
        return self._schedule(req)

    def _schedule(self, req: NotificationRequest) -> bool:
        try:
            self._notifications.schedule(req.identifier, req.title, req.body, req.fire_at)
        except Exception:
            logger.exception("Scheduling notification failed id=%s", req.identifier)
            return False
        return True

    def _safe_cancel(self, identifier: str) -> None:
        try:
            self._notifications.cancel(identifier)
        except Exception:
            logger.exception("Cancelling notification failed id=%s", identifier)

    def _safe_cancel_all(self) -> None:
        try:
            self._notifications.cancel_all()
        except Exception:
            logger.exception("Cancelling all notifications failed")

    def _publish(self, coll: _Collection[R]) -> None:
        snap = CollectionSnapshot(collection=coll.name, records=tuple(coll.records))
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception:
                logger.exception("Snapshot listener failed collection=%s", coll.name)


def _format_time(value: datetime) -> str:
    """Short local time, e.g. 14:30."""
    local = value.astimezone() if value.tzinfo is not None else value
    return local.strftime("%H:%M")
