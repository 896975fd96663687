# src/sideai/core/errors.py

from __future__ import annotations

"""
Error taxonomy.

Persistence failures derive from StorageError; the record manager catches exactly that
family, reports it and keeps going with the in-memory state.
"""


class SideAIError(Exception):
    """Base class for all errors raised by sideai."""


class StorageError(SideAIError):
    """A collection could not be persisted or restored."""

    def __init__(self, message: str, *, collection: str | None = None) -> None:
        super().__init__(message)
        self.collection = collection


class CredentialStoreUnavailable(StorageError):
    """Reading or writing key material in the credential store failed."""


class DecryptionFailed(StorageError):
    """Wrong or missing key, or ciphertext that does not decode to structured data."""


class SerializationFailed(StorageError):
    """Records could not be encoded, or decoded data does not describe valid records."""


class NotFound(SideAIError, LookupError):
    """No record with the requested identifier exists in the collection."""

    def __init__(self, collection: str, record_id: object) -> None:
        super().__init__(f"{collection}: no record with id {record_id}")
        self.collection = collection
        self.record_id = record_id
