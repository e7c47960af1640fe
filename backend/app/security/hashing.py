"""One-way Argon2id hashing for passwords and ephemeral tokens."""

from __future__ import annotations

from argon2 import PasswordHasher
from argon2.exceptions import (
    HashingError as Argon2HashingError,
    InvalidHashError,
    VerificationError,
    VerifyMismatchError,
)

from app.core.errors import HashingError

_hasher = PasswordHasher()


def _as_bytes(secret: bytes | str) -> bytes:
    if isinstance(secret, str):
        return secret.encode("utf-8")
    return secret


def hash_secret(secret: bytes | str) -> str:
    """Return a PHC-formatted Argon2id digest with a fresh random salt."""
    try:
        return _hasher.hash(_as_bytes(secret))
    except Argon2HashingError as exc:
        raise HashingError(f"Unable to hash secret: {exc}") from exc


def verify_secret(digest: str, candidate: bytes | str) -> bool:
    """Check a candidate against a stored digest in constant time."""
    try:
        return _hasher.verify(digest, _as_bytes(candidate))
    except VerifyMismatchError:
        return False
    except InvalidHashError as exc:
        raise HashingError("Stored digest is malformed") from exc
    except VerificationError:
        return False


# Password helpers keep call sites readable.
get_password_hash = hash_secret


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return verify_secret(hashed_password, plain_password)


__all__ = ["get_password_hash", "hash_secret", "verify_password", "verify_secret"]
