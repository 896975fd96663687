# src/sideai/storage/cipher.py

from __future__ import annotations

"""
Collection ciphers.

XorStreamCipher reproduces the on-disk format of existing data files: the key bytes
repeat over the plaintext and each byte is XOR-ed with its key byte.

It is NOT encryption in any cryptographic sense (no IV, no authentication, trivially
recoverable with a known plaintext). It exists for format compatibility only; an
authenticated cipher can be plugged into EncryptedCollectionStore through the Cipher port
without changing the serialize -> cipher -> atomic write pipeline.
"""

from itertools import cycle


class XorStreamCipher:
    """Repeating-key byte-wise XOR. Encryption and decryption are the same operation."""

    def encrypt(self, plaintext: bytes, key: bytes) -> bytes:
        return self._apply(plaintext, key)

    def decrypt(self, ciphertext: bytes, key: bytes) -> bytes:
        return self._apply(ciphertext, key)

    @staticmethod
    def _apply(data: bytes, key: bytes) -> bytes:
        if not key:
            raise ValueError("cipher key must not be empty")
        return bytes(b ^ k for b, k in zip(data, cycle(key)))
