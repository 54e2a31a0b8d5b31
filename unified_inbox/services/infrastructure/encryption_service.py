"""
Encryption service for channel credentials.
Uses Fernet symmetric encryption for tokens persisted in the key/value store.
"""

from cryptography.fernet import Fernet, InvalidToken

from unified_inbox.config import settings
from unified_inbox.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EncryptionError(Exception):
    """Custom exception for encryption/decryption errors."""

    pass


def encryption_enabled() -> bool:
    return bool(settings.ENCRYPTION_KEY)


def _get_fernet() -> Fernet:
    """
    Get Fernet instance with encryption key from environment.

    Raises:
        EncryptionError: If encryption key is not configured or invalid
    """
    if not settings.ENCRYPTION_KEY:
        raise EncryptionError("ENCRYPTION_KEY not configured in environment")

    try:
        return Fernet(settings.ENCRYPTION_KEY.encode("utf-8"))
    except Exception as e:
        logger.error("Failed to initialize Fernet cipher", error=str(e))
        raise EncryptionError(f"Invalid encryption key: {e}") from e


def encrypt_token(token: str) -> str:
    """
    Encrypt a token string for JSON storage.

    Args:
        token: Plain text token to encrypt

    Returns:
        str: Fernet token (urlsafe base64 text)

    Raises:
        EncryptionError: If encryption fails
    """
    if not token or not isinstance(token, str):
        raise EncryptionError("Token must be a non-empty string")

    fernet = _get_fernet()
    encrypted = fernet.encrypt(token.encode("utf-8")).decode("ascii")
    logger.debug("Token encrypted successfully", token_length=len(token))
    return encrypted


def decrypt_token(encrypted_token: str) -> str:
    """
    Decrypt a token read from storage.

    Raises:
        EncryptionError: If decryption fails or token is invalid
    """
    if not encrypted_token or not isinstance(encrypted_token, str):
        raise EncryptionError("Encrypted token must be a non-empty string")

    fernet = _get_fernet()
    try:
        return fernet.decrypt(encrypted_token.encode("ascii")).decode("utf-8")
    except InvalidToken as e:
        logger.error("Token decryption failed - invalid token")
        raise EncryptionError("Invalid or corrupted token") from e
