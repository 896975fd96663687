# src/sideai/security/credential_store.py

from __future__ import annotations

import logging

import keyring
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError

from ..config import DEFAULT_KEYRING_SERVICE
from ..core.errors import CredentialStoreUnavailable

logger = logging.getLogger(__name__)


class KeyringCredentialStore:
    """
    CredentialStore backed by the OS secret store through `keyring`.

    Every secret is a generic password under one service name; the key name is the
    account. By default the process-wide keyring backend is used (macOS Keychain,
    Secret Service, Windows Credential Locker, ...); a concrete backend can be
    injected instead, which tests use to stay off the real keychain.

    Values are never logged.
    """

    def __init__(
        self,
        service: str = DEFAULT_KEYRING_SERVICE,
        *,
        backend: KeyringBackend | None = None,
    ) -> None:
        if not service or not service.strip():
            raise ValueError("service is required")
        self._service = service.strip()
        self._backend = backend

    @property
    def service(self) -> str:
        return self._service

    def _kr(self) -> KeyringBackend:
        return self._backend if self._backend is not None else keyring.get_keyring()

    def get(self, key: str) -> str | None:
        try:
            return self._kr().get_password(self._service, key)
        except KeyringError as exc:
            logger.error("Credential store read failed service=%s key=%s: %s", self._service, key, exc)
            raise CredentialStoreUnavailable(f"cannot read {key!r} from credential store") from exc

    def set(self, key: str, value: str) -> None:
        # Replace semantics: drop whatever is stored under the key first.
        self.delete(key)
        try:
            self._kr().set_password(self._service, key, value)
        except KeyringError as exc:
            logger.error("Credential store write failed service=%s key=%s: %s", self._service, key, exc)
            raise CredentialStoreUnavailable(f"cannot write {key!r} to credential store") from exc
        logger.debug("Credential stored service=%s key=%s", self._service, key)

    def delete(self, key: str) -> bool:
        """Remove a secret. A key that was never stored counts as deleted."""
        try:
            self._kr().delete_password(self._service, key)
        except PasswordDeleteError:
            return True
        except KeyringError as exc:
            logger.error("Credential store delete failed service=%s key=%s: %s", self._service, key, exc)
            raise CredentialStoreUnavailable(f"cannot delete {key!r} from credential store") from exc
        logger.debug("Credential deleted service=%s key=%s", self._service, key)
        return True
