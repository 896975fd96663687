# src/sideai/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from ..config import Settings
from ..notifications.scheduler import LocalNotificationScheduler
from ..records.manager import RecordManager
from ..security.key_manager import KeyManager
from ..storage.collection_store import EncryptedCollectionStore


@dataclass
class AppState:
    # Store Settings on the state for easy access in command handlers.
    settings: Settings

    key_manager: KeyManager
    store: EncryptedCollectionStore
    notifications: LocalNotificationScheduler
    records: RecordManager

    lock: threading.RLock = field(default_factory=threading.RLock)
