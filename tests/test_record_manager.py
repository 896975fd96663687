# tests/test_record_manager.py

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import timedelta

import pytest

from sideai.core.errors import CredentialStoreUnavailable, DecryptionFailed, NotFound, SerializationFailed, StorageError
from sideai.notifications.scheduler import LocalNotificationScheduler
from sideai.records.manager import CollectionSnapshot, RecordManager, notification_id
from sideai.records.models import Priority, Reminder, ScheduleEvent, Task
from sideai.security.key_manager import KeyManager
from sideai.storage.collection_store import REMINDERS, SCHEDULE_EVENTS, TASKS, EncryptedCollectionStore

from .fakes import FakeClock, InMemoryCredentialStore, RecordingScheduler


def test_buy_milk_task_lifecycle(
    manager: RecordManager, scheduler: RecordingScheduler, store: EncryptedCollectionStore, clock: FakeClock
) -> None:
    task = Task(title="Buy milk", description="2 litres", reminder_date=clock() + timedelta(hours=1))
    assert manager.add_task(task) == task

    ident = str(task.id).upper()
    assert notification_id(task) == ident
    assert list(scheduler.pending) == [ident]
    pending = scheduler.pending[ident]
    assert pending.title == "Task Reminder: Buy milk"
    assert pending.body == "2 litres"
    assert pending.fire_at == task.reminder_date
    assert store.load(TASKS, Task) == [task]

    done = manager.toggle_task_completion(task)
    assert done is not None and done.is_completed
    assert done.updated_at == clock()
    assert scheduler.pending == {}
    assert store.load(TASKS, Task)[0].is_completed


def test_task_without_reminder_schedules_nothing(manager: RecordManager, scheduler: RecordingScheduler) -> None:
    manager.add_task(Task(title="Someday", priority=Priority.LOW))
    assert scheduler.scheduled() == []


def test_update_leaves_exactly_one_pending_notification(
    manager: RecordManager, scheduler: RecordingScheduler, clock: FakeClock
) -> None:
    task = Task(title="Report", reminder_date=clock() + timedelta(hours=1))
    manager.add_task(task)

    clock.advance(minutes=1)
    moved = replace(task, reminder_date=clock() + timedelta(hours=3))
    updated = manager.update_task(moved)
    assert updated is not None
    assert updated.updated_at == clock()
    assert manager.require_task(task.id).reminder_date == moved.reminder_date

    ident = notification_id(task)
    assert list(scheduler.pending) == [ident]
    assert scheduler.pending[ident].fire_at == moved.reminder_date
    ops = [c.op for c in scheduler.calls if c.identifier == ident]
    assert ops == ["schedule", "cancel", "schedule"]


def test_update_that_clears_reminder_cancels(manager: RecordManager, scheduler: RecordingScheduler, clock: FakeClock) -> None:
    task = Task(title="Report", reminder_date=clock() + timedelta(hours=1))
    manager.add_task(task)
    manager.update_task(replace(task, reminder_date=None))
    assert scheduler.pending == {}


def test_delete_cancels_and_removes_from_file(
    manager: RecordManager, scheduler: RecordingScheduler, store: EncryptedCollectionStore, clock: FakeClock
) -> None:
    keep = Task(title="keep")
    gone = Task(title="gone", reminder_date=clock() + timedelta(hours=2))
    manager.add_task(keep)
    manager.add_task(gone)

    assert manager.delete_task(gone) == gone
    assert manager.tasks == (keep,)
    assert scheduler.pending == {}
    assert store.load(TASKS, Task) == [keep]

    # A deleted id is retired for the rest of the session.
    assert manager.add_task(gone) is None
    assert manager.tasks == (keep,)


def test_event_notification_fires_before_start(
    manager: RecordManager, scheduler: RecordingScheduler, clock: FakeClock
) -> None:
    start = clock() + timedelta(hours=1)
    event = ScheduleEvent(title="Demo", start_date=start, end_date=start + timedelta(hours=1))
    manager.add_schedule_event(event)

    ident = f"event-{str(event.id).upper()}"
    assert list(scheduler.pending) == [ident]
    pending = scheduler.pending[ident]
    assert pending.title == "Upcoming Event: Demo"
    assert pending.fire_at == start - timedelta(minutes=15)
    assert pending.body == f"Starting at {start.astimezone().strftime('%H:%M')}"


@pytest.mark.parametrize("minutes_ahead", [-30, 10, 15])
def test_event_too_close_or_past_schedules_nothing(
    manager: RecordManager, scheduler: RecordingScheduler, clock: FakeClock, minutes_ahead: int
) -> None:
    start = clock() + timedelta(minutes=minutes_ahead)
    event = ScheduleEvent(title="Too late", start_date=start, end_date=start + timedelta(hours=1))
    assert manager.add_schedule_event(event) == event
    assert scheduler.scheduled() == []
    assert manager.schedule_events == (event,)


def test_event_lead_is_configurable(store: EncryptedCollectionStore, scheduler: RecordingScheduler, clock: FakeClock) -> None:
    manager = RecordManager(store, scheduler, clock=clock, event_lead=timedelta(minutes=5))
    start = clock() + timedelta(minutes=10)
    manager.add_schedule_event(ScheduleEvent(title="Soon", start_date=start, end_date=start))
    (call,) = scheduler.scheduled()
    assert call.fire_at == start - timedelta(minutes=5)


def test_event_update_and_delete(manager: RecordManager, scheduler: RecordingScheduler, clock: FakeClock) -> None:
    start = clock() + timedelta(days=1)
    event = ScheduleEvent(title="Lunch", start_date=start, end_date=start + timedelta(hours=1))
    manager.add_schedule_event(event)

    later = replace(event, start_date=start + timedelta(hours=2), end_date=start + timedelta(hours=3))
    assert manager.update_schedule_event(later) == later
    (pending,) = scheduler.pending.values()
    assert pending.fire_at == later.start_date - timedelta(minutes=15)

    manager.delete_schedule_event(later)
    assert scheduler.pending == {}
    assert manager.schedule_events == ()


def test_reminder_complete_and_reopen(
    manager: RecordManager, scheduler: RecordingScheduler, store: EncryptedCollectionStore, clock: FakeClock
) -> None:
    reminder = Reminder(title="Call mom", notes="Sunday", reminder_date=clock() + timedelta(hours=5))
    manager.add_reminder(reminder)

    ident = f"reminder-{str(reminder.id).upper()}"
    assert scheduler.pending[ident].title == "Call mom"
    assert scheduler.pending[ident].body == "Sunday"

    done = manager.toggle_reminder_completion(reminder)
    assert done is not None and done.is_completed
    assert scheduler.pending == {}

    reopened = manager.toggle_reminder_completion(done)
    assert reopened is not None and not reopened.is_completed
    assert list(scheduler.pending) == [ident]
    assert store.load(REMINDERS, Reminder) == [reopened]


def test_reopened_task_is_rescheduled(manager: RecordManager, scheduler: RecordingScheduler, clock: FakeClock) -> None:
    task = Task(title="Water plants", reminder_date=clock() + timedelta(hours=1))
    manager.add_task(task)
    manager.toggle_task_completion(task)
    manager.toggle_task_completion(task)
    assert list(scheduler.pending) == [notification_id(task)]


def test_unknown_ids_are_ignored(manager: RecordManager, scheduler: RecordingScheduler, caplog) -> None:
    stranger = Task(title="stranger")
    with caplog.at_level("WARNING", logger="sideai.records.manager"):
        assert manager.update_task(stranger) is None
        assert manager.delete_task(stranger) is None
        assert manager.toggle_task_completion(stranger) is None
        assert manager.toggle_reminder_completion(Reminder(title="r", reminder_date=stranger.created_at)) is None
    assert "Update of unknown tasks" in caplog.text
    assert scheduler.calls == []
    assert manager.tasks == ()

    assert manager.find_task(stranger.id) is None
    with pytest.raises(NotFound) as excinfo:
        manager.require_task(stranger.id)
    assert excinfo.value.collection == TASKS
    with pytest.raises(LookupError):
        manager.require_schedule_event(uuid.uuid4())
    with pytest.raises(NotFound):
        manager.require_reminder(uuid.uuid4())


def test_duplicate_add_is_refused(manager: RecordManager) -> None:
    task = Task(title="once")
    assert manager.add_task(task) == task
    assert manager.add_task(task) is None
    assert manager.tasks == (task,)


def test_each_mutation_persists_only_its_collection(manager: RecordManager, store: EncryptedCollectionStore) -> None:
    manager.add_task(Task(title="only tasks"))
    assert store.exists(TASKS)
    assert not store.exists(SCHEDULE_EVENTS)
    assert not store.exists(REMINDERS)


def test_scheduler_failure_keeps_the_mutation(
    manager: RecordManager, scheduler: RecordingScheduler, store: EncryptedCollectionStore, clock: FakeClock
) -> None:
    scheduler.fail = True
    task = Task(title="still saved", reminder_date=clock() + timedelta(hours=1))
    assert manager.add_task(task) == task
    assert manager.toggle_task_completion(task) is not None
    assert manager.delete_task(task) is not None
    assert store.load(TASKS, Task) == []
    assert manager.last_error(TASKS) is None


def test_persist_failure_is_reported_not_raised(
    store: EncryptedCollectionStore,
    scheduler: RecordingScheduler,
    clock: FakeClock,
    credentials: InMemoryCredentialStore,
) -> None:
    seen: list[StorageError] = []
    manager = RecordManager(store, scheduler, clock=clock, on_error=seen.append)

    credentials.available = False
    task = Task(title="offline", reminder_date=clock() + timedelta(hours=1))
    assert manager.add_task(task) == task
    assert manager.tasks == (task,)
    assert notification_id(task) in scheduler.pending

    err = manager.last_error(TASKS)
    assert isinstance(err, CredentialStoreUnavailable)
    assert err.collection == TASKS
    assert seen == [err]

    credentials.available = True
    manager.add_task(Task(title="online"))
    assert manager.last_error(TASKS) is None
    assert [t.title for t in store.load(TASKS, Task)] == ["offline", "online"]


def test_failing_error_listener_is_contained(
    store: EncryptedCollectionStore, scheduler: RecordingScheduler, credentials: InMemoryCredentialStore
) -> None:
    def boom(_exc: StorageError) -> None:
        raise RuntimeError("listener bug")

    manager = RecordManager(store, scheduler, on_error=boom)
    credentials.available = False
    assert manager.add_task(Task(title="x")) is not None


def test_snapshots_are_published(manager: RecordManager) -> None:
    snapshots: list[CollectionSnapshot] = []
    unsubscribe = manager.subscribe(snapshots.append)

    task = Task(title="observed")
    manager.add_task(task)
    assert snapshots == [CollectionSnapshot(collection=TASKS, records=(task,))]

    def broken(_snap: CollectionSnapshot) -> None:
        raise RuntimeError("bad listener")

    manager.subscribe(broken)
    manager.delete_task(task)
    assert snapshots[-1].records == ()

    unsubscribe()
    manager.add_task(Task(title="unobserved"))
    assert len(snapshots) == 2


def test_load_all_and_resync(
    manager: RecordManager, store: EncryptedCollectionStore, clock: FakeClock
) -> None:
    manager.add_task(Task(title="with reminder", reminder_date=clock() + timedelta(hours=1)))
    manager.add_task(Task(title="done", reminder_date=clock() + timedelta(hours=1), is_completed=True))
    start = clock() + timedelta(days=1)
    manager.add_schedule_event(ScheduleEvent(title="future", start_date=start, end_date=start))
    manager.add_schedule_event(ScheduleEvent(title="past", start_date=clock(), end_date=clock()))
    manager.add_reminder(Reminder(title="open", reminder_date=start))

    # Next process start: same files and keychain, empty scheduler.
    fresh_scheduler = RecordingScheduler()
    restarted = RecordManager(store, fresh_scheduler, clock=clock)
    restarted.load_all()
    assert restarted.tasks == manager.tasks
    assert restarted.schedule_events == manager.schedule_events
    assert restarted.reminders == manager.reminders

    assert restarted.resync_notifications() == 3
    assert fresh_scheduler.calls[0].op == "cancel_all"
    assert len(fresh_scheduler.pending) == 3


def test_load_all_quarantines_unreadable_collection(
    manager: RecordManager, store: EncryptedCollectionStore, scheduler: RecordingScheduler, clock: FakeClock
) -> None:
    manager.add_task(Task(title="lost"))
    manager.add_reminder(Reminder(title="kept", reminder_date=clock() + timedelta(hours=1)))

    path = store.path_for(TASKS)
    data = bytearray(path.read_bytes())
    data[-1] ^= 0xFF
    path.write_bytes(bytes(data))

    restarted = RecordManager(store, scheduler, clock=clock)
    restarted.load_all()
    assert restarted.tasks == ()
    assert [r.title for r in restarted.reminders] == ["kept"]
    assert isinstance(restarted.last_error(TASKS), (DecryptionFailed, SerializationFailed))
    assert restarted.last_error(REMINDERS) is None

    assert not store.exists(TASKS)
    assert any(p.name.startswith("tasks.json.unreadable-") for p in store.data_dir.iterdir())


def test_load_all_without_files_starts_empty(manager: RecordManager) -> None:
    manager.load_all()
    assert manager.tasks == () and manager.schedule_events == () and manager.reminders == ()
    assert manager.last_error(TASKS) is None


def test_locked_keychain_at_startup_keeps_the_file(settings, credentials: InMemoryCredentialStore, clock: FakeClock) -> None:
    def launch() -> tuple[RecordManager, EncryptedCollectionStore]:
        # Each launch is a new process: new key cache, new store, new manager.
        store = EncryptedCollectionStore(settings.data_dir, KeyManager(credentials))
        return RecordManager(store, RecordingScheduler(), clock=clock), store

    first, _ = launch()
    original = Task(title="Renew passport")
    first.add_task(original)

    credentials.available = False
    second, store = launch()
    second.load_all()
    assert second.tasks == ()
    assert not second.is_loaded(TASKS)
    assert isinstance(second.last_error(TASKS), CredentialStoreUnavailable)
    assert store.exists(TASKS)
    assert not any("unreadable" in p.name for p in store.data_dir.iterdir())

    # Keychain unlocks mid-session: the empty in-memory list must still not be saved.
    credentials.available = True
    assert second.add_task(Task(title="added while not loaded")) is not None
    assert isinstance(second.last_error(TASKS), StorageError)
    assert store.load(TASKS, Task) == [original]

    third, _ = launch()
    third.load_all()
    assert third.tasks == (original,)
    assert third.is_loaded(TASKS)
    assert third.last_error(TASKS) is None


def test_unreadable_file_at_startup_is_not_overwritten(
    store: EncryptedCollectionStore, scheduler: RecordingScheduler, clock: FakeClock, monkeypatch: pytest.MonkeyPatch
) -> None:
    first = RecordManager(store, scheduler, clock=clock)
    first.add_task(Task(title="keep me"))
    before = store.path_for(TASKS).read_bytes()

    real_load = store.load

    def failing_load(name, record_type):
        if name == TASKS:
            raise StorageError("cannot read tasks.json: [Errno 5] Input/output error", collection=TASKS)
        return real_load(name, record_type)

    monkeypatch.setattr(store, "load", failing_load)
    restarted = RecordManager(store, scheduler, clock=clock)
    restarted.load_all()
    assert not restarted.is_loaded(TASKS)
    assert restarted.is_loaded(REMINDERS)

    restarted.add_task(Task(title="new"))
    restarted.add_reminder(Reminder(title="saved", reminder_date=clock() + timedelta(hours=1)))
    assert store.path_for(TASKS).read_bytes() == before
    assert [r.title for r in real_load(REMINDERS, Reminder)] == ["saved"]


def test_is_loaded_rejects_unknown_collection(manager: RecordManager) -> None:
    with pytest.raises(ValueError):
        manager.is_loaded("notes")


def test_past_due_notifications_are_not_redelivered_on_launch(
    store: EncryptedCollectionStore, clock: FakeClock
) -> None:
    stale = Reminder(title="Call the bank", reminder_date=clock() - timedelta(days=2))
    upcoming = Reminder(title="Dentist", reminder_date=clock() + timedelta(hours=2))
    overdue_task = Task(title="Pay rent", reminder_date=clock() - timedelta(days=1))
    setup = RecordManager(store, LocalNotificationScheduler(), clock=clock)
    setup.add_reminder(stale)
    setup.add_reminder(upcoming)
    setup.add_task(overdue_task)

    delivered: list[str] = []
    for _ in range(3):
        notifications = LocalNotificationScheduler()
        launched = RecordManager(store, notifications, clock=clock)
        launched.load_all()
        assert launched.resync_notifications() == 1
        delivered += [n.identifier for n in notifications.pop_due(clock())]
        assert [n.identifier for n in notifications.pending()] == [notification_id(upcoming)]

    assert delivered == []


def test_update_keeps_stored_created_at(manager: RecordManager, store: EncryptedCollectionStore, clock: FakeClock) -> None:
    task = Task(title="Draft", created_at=clock())
    manager.add_task(task)
    clock.advance(days=3)
    updated = manager.update_task(replace(task, title="Final", created_at=clock() + timedelta(days=30)))
    assert updated is not None
    assert updated.title == "Final"
    assert updated.created_at == task.created_at
    assert store.load(TASKS, Task)[0].created_at == task.created_at

    reminder = Reminder(title="Water plants", reminder_date=clock() + timedelta(hours=1), created_at=clock())
    manager.add_reminder(reminder)
    moved = manager.update_reminder(replace(reminder, created_at=clock() - timedelta(days=400)))
    assert moved is not None and moved.created_at == reminder.created_at

    start = clock() + timedelta(days=1)
    event = ScheduleEvent(title="Standup", start_date=start, end_date=start, created_at=clock())
    manager.add_schedule_event(event)
    kept = manager.update_schedule_event(replace(event, created_at=start))
    assert kept is not None and kept.created_at == event.created_at
