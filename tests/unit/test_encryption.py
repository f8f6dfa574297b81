"""
Test encryption of stored Zoom credentials.
"""

import pytest

from webinarwise.services.infrastructure.encryption_service import (
    EncryptionError,
    decrypt_optional,
    decrypt_secret,
    encrypt_optional,
    encrypt_secret,
)


def test_basic_encryption_decryption():
    """Test that encryption and decryption work correctly."""
    secret = "fake_zoom_access_token_12345"

    encrypted = encrypt_secret(secret)

    assert isinstance(encrypted, bytes)
    assert secret.encode() not in encrypted
    assert decrypt_secret(encrypted) == secret


def test_decrypt_accepts_memoryview():
    """psycopg returns BYTEA columns as memoryview."""
    encrypted = encrypt_secret("refresh-token")

    assert decrypt_secret(memoryview(encrypted)) == "refresh-token"


@pytest.mark.parametrize(
    "secret",
    [
        "simple_token",
        "token_with_special_chars_!@#$%^&*()",
        "very_long_token_" + "x" * 500,
    ],
)
def test_encryption_with_different_tokens(secret):
    assert decrypt_secret(encrypt_secret(secret)) == secret


def test_empty_secret_rejected():
    with pytest.raises(EncryptionError):
        encrypt_secret("")


def test_corrupted_ciphertext_rejected():
    with pytest.raises(EncryptionError):
        decrypt_secret(b"not-a-fernet-token")


def test_optional_helpers_pass_none_through():
    assert encrypt_optional(None) is None
    assert decrypt_optional(None) is None
    assert decrypt_optional(encrypt_optional("client-secret")) == "client-secret"
