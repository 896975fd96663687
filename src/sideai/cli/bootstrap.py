# src/sideai/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures the private data directory exists,
- wires concrete implementations into AppState
  (keyring credential store -> key manager -> encrypted store -> record manager),
- restores the collections and the pending notifications.
"""

from __future__ import annotations

import contextlib
import logging
import os
from datetime import timedelta

from ..config import Settings, get_settings
from ..core.ports import CredentialStore
from ..core.state import AppState
from ..notifications.scheduler import LocalNotificationScheduler
from ..records.manager import RecordManager
from ..security.credential_store import KeyringCredentialStore
from ..security.key_manager import KeyManager
from ..storage.collection_store import EncryptedCollectionStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    with contextlib.suppress(OSError):
        # The collections are encrypted, but keep the directory private anyway.
        os.chmod(settings.data_dir, 0o700)
    settings.log_dir.mkdir(parents=True, exist_ok=True)


def create_initial_state(
    *,
    settings: Settings | None = None,
    credentials: CredentialStore | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings and the credential store injectable makes the app easy to test and
    avoids hidden global state. If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if credentials is None:
        credentials = KeyringCredentialStore(settings.keyring_service)

    key_manager = KeyManager(credentials)
    store = EncryptedCollectionStore(settings.data_dir, key_manager)
    notifications = LocalNotificationScheduler()
    records = RecordManager(
        store,
        notifications,
        event_lead=timedelta(minutes=settings.event_lead_minutes),
    )

    return AppState(
        settings=settings,
        key_manager=key_manager,
        store=store,
        notifications=notifications,
        records=records,
    )


def restore_state(state: AppState) -> None:
    """Load the collections and rebuild pending notifications (the scheduler is in-memory)."""
    state.records.load_all()
    scheduled = state.records.resync_notifications()
    logger.info(
        "State restored tasks=%d events=%d reminders=%d notifications=%d",
        len(state.records.tasks),
        len(state.records.schedule_events),
        len(state.records.reminders),
        scheduled,
    )
