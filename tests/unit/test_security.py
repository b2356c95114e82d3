"""Tests for password hashing."""
import pytest

from nearserve.lib.security import hash_password, verify_password


@pytest.mark.unit
def test_hash_is_not_plaintext():
    hashed = hash_password("secret123")

    assert hashed != "secret123"
    assert hashed.startswith("$2")


@pytest.mark.unit
def test_verify_password():
    hashed = hash_password("secret123")

    assert verify_password("secret123", hashed) is True
    assert verify_password("wrong-password", hashed) is False


@pytest.mark.unit
def test_verify_password_without_hash():
    """Accounts created through Google sign-in have no hash and never match."""
    assert verify_password("secret123", None) is False
    assert verify_password("secret123", "") is False
    assert verify_password("secret123", "not-a-bcrypt-hash") is False
