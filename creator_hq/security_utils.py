"""
Security utilities: signed timed tokens and token encryption at rest.
"""

import base64
import hashlib
import logging
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .config import Settings

logger = logging.getLogger(__name__)


# ============================================================================
# TIMED TOKENS
# ============================================================================


def generate_timed_token(secret_key: str, data: dict[str, Any], salt: str) -> str:
    """
    Sign data into a URL-safe token using itsdangerous.
    The signing timestamp is embedded so the token can be aged out on load.
    """
    serializer = URLSafeTimedSerializer(secret_key)
    return serializer.dumps(data, salt=salt)


def verify_timed_token(secret_key: str, token: str, salt: str, max_age: int) -> Optional[dict[str, Any]]:
    """
    Verify and decode a timed token

    Returns:
        Decoded data if valid, None if tampered with or expired
    """
    serializer = URLSafeTimedSerializer(secret_key)
    try:
        return serializer.loads(token, salt=salt, max_age=max_age)
    except SignatureExpired:
        logger.warning("Token expired")
        return None
    except BadSignature:
        logger.warning("Invalid token signature")
        return None


# ============================================================================
# TOKEN ENCRYPTION
# ============================================================================


def get_token_cipher(settings: Settings) -> Fernet:
    """
    Fernet cipher for provider tokens stored in the database.
    Uses TOKEN_ENCRYPTION_KEY, or a key derived from SECRET_KEY when unset.
    """
    if settings.token_encryption_key:
        return Fernet(settings.token_encryption_key.encode())
    digest = hashlib.sha256(settings.secret_key.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt_token(cipher: Fernet, value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return cipher.encrypt(value.encode()).decode()


def decrypt_token(cipher: Fernet, value: Optional[str]) -> Optional[str]:
    """
    Raises:
        ValueError: If the stored value was not encrypted with this key
    """
    if value is None:
        return None
    try:
        return cipher.decrypt(value.encode()).decode()
    except InvalidToken as e:
        raise ValueError("Stored token could not be decrypted") from e

