# src/sideai/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the credential store, cipher and notification delivery swappable
and makes testing easier (see tests/fakes.py).
"""

from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Protocol

if TYPE_CHECKING:
    from ..notifications.scheduler import PendingNotification


class CredentialStore(Protocol):
    """
    Opaque string secrets addressed by key name (OS keychain / secret service).

    Implementations raise CredentialStoreUnavailable when the backend cannot be reached.
    """

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> bool: ...


class Cipher(Protocol):
    """Symmetric transform applied to a serialized collection before it hits the disk."""

    def encrypt(self, plaintext: bytes, key: bytes) -> bytes: ...
    def decrypt(self, ciphertext: bytes, key: bytes) -> bytes: ...


class NotificationScheduler(Protocol):
    """
    Time-triggered alerts by identifier.

    Treated as fire-and-forget: callers log failures and never roll back
    a record mutation because of them.
    """

    def schedule(self, identifier: str, title: str, body: str, fire_at: datetime) -> None: ...
    def cancel(self, identifier: str) -> None: ...
    def cancel_all(self) -> None: ...


class NotificationSink(Protocol):
    """Where due notifications are finally shown (console, desktop bridge, ...)."""

    def deliver(self, notification: PendingNotification) -> Awaitable[None]: ...
