# src/sideai/security/key_manager.py

from __future__ import annotations

import logging
import secrets
import threading
from collections.abc import Callable
from dataclasses import dataclass, field

from ..core.errors import CredentialStoreUnavailable
from ..core.ports import CredentialStore

logger = logging.getLogger(__name__)

ENCRYPTION_KEY_PREFIX = "encryption-"
LEGACY_FILE_SUFFIX = ".json"
SECRET_KEY_PREFIX = "secret-"


def generate_key() -> str:
    return secrets.token_hex(32)


@dataclass(frozen=True, slots=True)
class KeyMaterial:
    """Per-collection symmetric secret. Stored as an opaque string; its UTF-8 bytes key the cipher."""

    secret: str = field(repr=False)

    def __post_init__(self) -> None:
        if not self.secret:
            raise ValueError("key material must not be empty")

    @property
    def key_bytes(self) -> bytes:
        return self.secret.encode("utf-8")


class KeyManager:
    """
    Get-or-create per-collection keys on top of a CredentialStore.

    - keys live under `encryption-<collection>`; once stored they are never regenerated
      by this class (a new key would orphan every file encrypted with the old one)
    - a key stored by the macOS app under `encryption-<collection>.json` is found too
    - lookups are cached for the life of the process, so a credential store that is
      cleared mid-session does not change the key in use
    - if the store cannot be reached the call fails; no key is invented in memory

    Caller-supplied secrets unrelated to the collections live under `secret-<name>`.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        *,
        key_factory: Callable[[], str] = generate_key,
    ) -> None:
        self._credentials = credentials
        self._key_factory = key_factory
        self._lock = threading.Lock()
        self._cache: dict[str, KeyMaterial] = {}

    @staticmethod
    def credential_key(collection_name: str) -> str:
        if not collection_name:
            raise ValueError("collection_name is required")
        return f"{ENCRYPTION_KEY_PREFIX}{collection_name}"

    @staticmethod
    def legacy_credential_key(collection_name: str) -> str:
        """Account used by the macOS app, which keyed files by file name (encryption-tasks.json)."""
        return f"{KeyManager.credential_key(collection_name)}{LEGACY_FILE_SUFFIX}"

    def _lookup(self, collection_name: str) -> KeyMaterial | None:
        # Caller holds self._lock. The legacy account is only read, never written.
        account = self.credential_key(collection_name)
        cached = self._cache.get(account)
        if cached is not None:
            return cached
        for candidate in (account, self.legacy_credential_key(collection_name)):
            raw = self._credentials.get(candidate)
            if raw:
                if candidate != account:
                    logger.info("Using legacy key account for collection=%s", collection_name)
                key = KeyMaterial(raw)
                self._cache[account] = key
                return key
        return None

    def get_key(self, collection_name: str) -> KeyMaterial | None:
        """Return the stored key for a collection, or None if none was ever created."""
        with self._lock:
            return self._lookup(collection_name)

    def get_or_create_key(self, collection_name: str) -> KeyMaterial:
        account = self.credential_key(collection_name)
        with self._lock:
            existing = self._lookup(collection_name)
            if existing is not None:
                return existing

            self._credentials.set(account, self._key_factory())

            # Read back: the stored value is the only one that survives a restart.
            stored = self._credentials.get(account)
            if not stored:
                raise CredentialStoreUnavailable(
                    f"credential store did not retain key for {collection_name!r}",
                    collection=collection_name,
                )
            key = KeyMaterial(stored)
            self._cache[account] = key
            logger.info("Created encryption key for collection=%s", collection_name)
            return key

    def forget_key(self, collection_name: str) -> bool:
        """
        Delete a collection key from the store and the cache.

        Files encrypted with it become unreadable; only call this after the
        collection file itself has been removed or quarantined.
        """
        account = self.credential_key(collection_name)
        with self._lock:
            self._cache.pop(account, None)
            removed = self._credentials.delete(account)
        logger.warning("Forgot encryption key for collection=%s", collection_name)
        return removed

    # ---- caller secrets ----

    @staticmethod
    def _secret_key(name: str) -> str:
        if not name:
            raise ValueError("secret name is required")
        return f"{SECRET_KEY_PREFIX}{name}"

    def store_secret(self, name: str, value: str) -> None:
        self._credentials.set(self._secret_key(name), value)

    def load_secret(self, name: str) -> str | None:
        return self._credentials.get(self._secret_key(name))

    def delete_secret(self, name: str) -> bool:
        return self._credentials.delete(self._secret_key(name))
