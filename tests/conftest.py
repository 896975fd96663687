# tests/conftest.py

from __future__ import annotations

from pathlib import Path

import pytest

from sideai.cli.bootstrap import create_initial_state
from sideai.config import Settings
from sideai.core.state import AppState
from sideai.records.manager import RecordManager
from sideai.security.key_manager import KeyManager
from sideai.storage.collection_store import EncryptedCollectionStore

from .fakes import FakeClock, InMemoryCredentialStore, RecordingScheduler


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """
    Settings pointing at a per-test tmp directory.

    Built directly instead of via Settings.from_env() to keep unit tests
    isolated from the developer's environment and .env file.
    """
    return Settings(
        app_name="sideai-test",
        log_level="DEBUG",
        log_dir=tmp_path / "logs",
        data_dir=tmp_path / "data",
        keyring_service="sideai-tests",
        notifications_enabled=False,
        event_lead_minutes=15,
        dispatch_interval_seconds=0.01,
        console_enabled=False,
    )


@pytest.fixture()
def credentials() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture()
def key_manager(credentials: InMemoryCredentialStore) -> KeyManager:
    return KeyManager(credentials)


@pytest.fixture()
def store(settings: Settings, key_manager: KeyManager) -> EncryptedCollectionStore:
    return EncryptedCollectionStore(settings.data_dir, key_manager)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture()
def manager(
    store: EncryptedCollectionStore, scheduler: RecordingScheduler, clock: FakeClock
) -> RecordManager:
    """
    RecordManager wired with a real encrypted store (tmp dir, in-memory keychain)
    and a recording scheduler.
    """
    return RecordManager(store, scheduler, clock=clock)


@pytest.fixture()
def state(settings: Settings, credentials: InMemoryCredentialStore) -> AppState:
    """AppState from the real composition root, with the keychain replaced by a fake."""
    return create_initial_state(settings=settings, credentials=credentials)
