"""
Encryption service for Zoom credentials.
Access tokens, refresh tokens and client secrets are stored as Fernet
ciphertext (BYTEA) and only decrypted inside repository code.
"""

from cryptography.fernet import Fernet, InvalidToken

from webinarwise.config import settings
from webinarwise.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EncryptionError(Exception):
    """Custom exception for encryption/decryption errors."""


def _get_fernet() -> Fernet:
    """
    Get Fernet instance with encryption key from environment.

    Raises:
        EncryptionError: If encryption key is not configured
    """
    if not settings.ENCRYPTION_KEY:
        raise EncryptionError("ENCRYPTION_KEY not configured in environment")

    try:
        return Fernet(settings.ENCRYPTION_KEY.encode("utf-8"))
    except Exception as e:
        logger.error("Failed to initialize Fernet cipher", error=str(e))
        raise EncryptionError(f"Invalid encryption key: {e}") from e


def encrypt_secret(value: str) -> bytes:
    """
    Encrypt a credential for database storage.

    Raises:
        EncryptionError: If encryption fails
    """
    if not value or not isinstance(value, str):
        raise EncryptionError("Secret must be a non-empty string")

    try:
        return _get_fernet().encrypt(value.encode("utf-8"))
    except EncryptionError:
        raise
    except Exception as e:
        logger.error("Failed to encrypt secret", error=str(e))
        raise EncryptionError(f"Encryption failed: {e}") from e


def decrypt_secret(encrypted_value: bytes | memoryview) -> str:
    """
    Decrypt a credential read from the database.

    Raises:
        EncryptionError: If decryption fails or the ciphertext is invalid
    """
    if isinstance(encrypted_value, memoryview):
        encrypted_value = encrypted_value.tobytes()
    if not encrypted_value or not isinstance(encrypted_value, bytes):
        raise EncryptionError("Encrypted secret must be non-empty bytes")

    try:
        return _get_fernet().decrypt(encrypted_value).decode("utf-8")
    except InvalidToken as e:
        logger.error("Secret decryption failed - invalid token")
        raise EncryptionError("Invalid or corrupted secret") from e


def encrypt_optional(value: str | None) -> bytes | None:
    return encrypt_secret(value) if value else None


def decrypt_optional(encrypted_value: bytes | memoryview | None) -> str | None:
    return decrypt_secret(encrypted_value) if encrypted_value else None
