"""Argon2id secret hashing."""

import pytest

from app.core.errors import HashingError
from app.security.hashing import hash_secret, verify_password, verify_secret


def test_hash_is_salted_phc_string() -> None:
    first = hash_secret("s3cret")
    second = hash_secret("s3cret")
    assert first.startswith("$argon2id$")
    assert first != second
    assert verify_secret(first, "s3cret")
    assert verify_secret(second, b"s3cret")


def test_mismatch_returns_false() -> None:
    digest = hash_secret("s3cret")
    assert verify_secret(digest, "other") is False
    assert verify_password("other", digest) is False


def test_malformed_digest_raises() -> None:
    with pytest.raises(HashingError):
        verify_secret("not-a-digest", "s3cret")
