"""Password-derived AES-256-GCM encryption for stored file payloads.

Blob layout: ``salt(16) || nonce(12) || ciphertext+tag``. The key is the
32-byte Argon2id output for the password and the embedded salt.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from argon2.exceptions import HashingError as Argon2HashingError
from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.core.errors import CryptoError, DecryptionFailed, HashingError, TruncatedInput

SALT_LEN = 16
NONCE_LEN = 12
KEY_LEN = 32
HEADER_LEN = SALT_LEN + NONCE_LEN


@dataclass(frozen=True)
class KdfParams:
    """Argon2id cost parameters used to stretch upload passwords."""

    time_cost: int = 2
    memory_cost: int = 19456  # KiB
    parallelism: int = 1


class PasswordCipher:
    """AES-GCM cipher keyed per blob from a password and a random salt."""

    def __init__(self, params: KdfParams | None = None) -> None:
        self._params = params or KdfParams()

    def derive_key(self, password: str, salt: bytes) -> bytes:
        try:
            return hash_secret_raw(
                secret=password.encode("utf-8"),
                salt=salt,
                time_cost=self._params.time_cost,
                memory_cost=self._params.memory_cost,
                parallelism=self._params.parallelism,
                hash_len=KEY_LEN,
                type=Type.ID,
            )
        except Argon2HashingError as exc:
            raise HashingError(f"Key derivation failed: {exc}") from exc

    def encrypt(self, plaintext: bytes, password: str) -> bytes:
        salt = os.urandom(SALT_LEN)
        nonce = os.urandom(NONCE_LEN)
        key = self.derive_key(password, salt)
        try:
            sealed = AESGCM(key).encrypt(nonce, plaintext, None)
        except (OverflowError, ValueError) as exc:
            raise CryptoError(f"Encryption failed: {exc}") from exc
        return salt + nonce + sealed

    def decrypt(self, blob: bytes, password: str) -> bytes:
        if len(blob) < HEADER_LEN:
            raise TruncatedInput(len(blob))
        salt = blob[:SALT_LEN]
        nonce = blob[SALT_LEN:HEADER_LEN]
        sealed = blob[HEADER_LEN:]
        key = self.derive_key(password, salt)
        try:
            return AESGCM(key).decrypt(nonce, sealed, None)
        except InvalidTag as exc:
            raise DecryptionFailed() from exc


_cipher = PasswordCipher()


def encrypt_bytes(plaintext: bytes, password: str) -> bytes:
    """Encrypt a payload with a password-derived key."""
    return _cipher.encrypt(plaintext, password)


def decrypt_bytes(blob: bytes, password: str) -> bytes:
    """Decrypt a payload produced by :func:`encrypt_bytes`."""
    return _cipher.decrypt(blob, password)


__all__ = [
    "HEADER_LEN",
    "KdfParams",
    "NONCE_LEN",
    "PasswordCipher",
    "SALT_LEN",
    "decrypt_bytes",
    "encrypt_bytes",
]
