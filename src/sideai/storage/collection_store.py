# src/sideai/storage/collection_store.py

from __future__ import annotations

import contextlib
import logging
import os
import threading
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path

from ..core.errors import (
    CredentialStoreUnavailable,
    DecryptionFailed,
    SerializationFailed,
    StorageError,
)
from ..core.ports import Cipher
from ..security.key_manager import KeyManager
from .cipher import XorStreamCipher
from .codec import R, encode_collection, parse_document, records_from_document

logger = logging.getLogger(__name__)

TASKS = "tasks"
SCHEDULE_EVENTS = "scheduleEvents"
REMINDERS = "reminders"


class EncryptedCollectionStore:
    """
    Whole-collection encrypted files in a private directory.

    Pipeline: records -> canonical JSON -> cipher(key of the collection) -> atomic replace.

    - one file per collection: <data_dir>/<collection>.json
    - save() writes a temp file next to the target, fsyncs it and os.replace()s it,
      so a crash never leaves a half-written file behind
    - saves of the same collection are serialized by a per-collection lock
    - load() of a missing file is an empty collection (first run), every other
      failure is raised, never turned into an empty list
    - load() only looks keys up; it never creates one, so a missing key cannot
      silently replace the one the file was written with
    - load() separates "cannot try right now" (CredentialStoreUnavailable, or a
      plain StorageError for an unreadable file) from "tried and the content is bad"
      (DecryptionFailed, SerializationFailed); only the latter is worth quarantining
    """

    def __init__(
        self,
        data_dir: str | Path,
        key_manager: KeyManager,
        *,
        cipher: Cipher | None = None,
    ) -> None:
        self._dir = Path(data_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        with contextlib.suppress(OSError):
            os.chmod(self._dir, 0o700)
        self._keys = key_manager
        self._cipher: Cipher = cipher or XorStreamCipher()
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        logger.info("EncryptedCollectionStore ready dir=%s cipher=%s", self._dir, type(self._cipher).__name__)

    @property
    def data_dir(self) -> Path:
        return self._dir

    def path_for(self, collection_name: str) -> Path:
        if not collection_name or "/" in collection_name or collection_name.startswith("."):
            raise ValueError(f"invalid collection name: {collection_name!r}")
        return self._dir / f"{collection_name}.json"

    def exists(self, collection_name: str) -> bool:
        return self.path_for(collection_name).exists()

    def _lock_for(self, collection_name: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(collection_name)
            if lock is None:
                lock = threading.Lock()
                self._locks[collection_name] = lock
            return lock

    # ---- public API ----

    def save(self, collection_name: str, records: Sequence[R]) -> None:
        """
        Replace the stored collection with `records`.

        Raises SerializationFailed for unencodable records, CredentialStoreUnavailable
        when no key can be obtained, and StorageError when the file cannot be written.
        """
        path = self.path_for(collection_name)
        try:
            plaintext = encode_collection(records)
        except SerializationFailed as exc:
            exc.collection = collection_name
            raise

        key = self._keys.get_or_create_key(collection_name)
        ciphertext = self._cipher.encrypt(plaintext, key.key_bytes)

        with self._lock_for(collection_name):
            tmp = path.with_suffix(".tmp")
            try:
                # Created 0600: the temp file is never readable by others, not even briefly.
                fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
                with os.fdopen(fd, "wb") as fh:
                    fh.write(ciphertext)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp, path)
            except OSError as exc:
                with contextlib.suppress(OSError):
                    tmp.unlink()
                raise StorageError(
                    f"cannot write {path.name}: {exc}", collection=collection_name
                ) from exc

        logger.debug("Saved collection=%s records=%d bytes=%d", collection_name, len(records), len(ciphertext))

    def load(self, collection_name: str, record_type: type[R]) -> list[R]:
        """
        Read and decrypt a collection.

        Raises StorageError when the file cannot be read, CredentialStoreUnavailable when
        the key cannot be looked up, DecryptionFailed for a missing key or content that
        does not decrypt to JSON, and SerializationFailed for JSON that is not records.
        """
        path = self.path_for(collection_name)
        with self._lock_for(collection_name):
            if not path.exists():
                logger.debug("No file for collection=%s; starting empty", collection_name)
                return []
            try:
                ciphertext = path.read_bytes()
            except OSError as exc:
                raise StorageError(f"cannot read {path.name}: {exc}", collection=collection_name) from exc

        try:
            key = self._keys.get_key(collection_name)
        except CredentialStoreUnavailable as exc:
            exc.collection = collection_name
            raise
        if key is None:
            raise DecryptionFailed(
                f"no encryption key stored for {collection_name!r}", collection=collection_name
            )

        plaintext = self._cipher.decrypt(ciphertext, key.key_bytes)
        try:
            document = parse_document(plaintext)
        except ValueError as exc:
            raise DecryptionFailed(
                f"{path.name} does not decrypt to a readable document", collection=collection_name
            ) from exc

        try:
            records = records_from_document(document, record_type)
        except SerializationFailed as exc:
            exc.collection = collection_name
            raise

        logger.debug("Loaded collection=%s records=%d", collection_name, len(records))
        return records

    def quarantine(self, collection_name: str) -> Path | None:
        """
        Move an unreadable collection file aside so the next save does not overwrite it.

        Returns the new path, or None if there was no file.
        """
        path = self.path_for(collection_name)
        with self._lock_for(collection_name):
            if not path.exists():
                return None
            stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
            target = path.with_name(f"{path.name}.unreadable-{stamp}")
            n = 1
            while target.exists():
                target = path.with_name(f"{path.name}.unreadable-{stamp}-{n}")
                n += 1
            os.replace(path, target)
        logger.warning("Quarantined unreadable collection=%s -> %s", collection_name, target)
        return target
