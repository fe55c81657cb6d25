"""
Encryption of integration secrets stored on source configs.

Slack/Figma API tokens, Notion tokens and AI keys are encrypted with
Fernet when ENCRYPTION_KEY is set. Without a key values pass through
unchanged so local development keeps working.
"""

import logging
from typing import Optional
from cryptography.fernet import Fernet, InvalidToken
from config.settings import settings

logger = logging.getLogger(__name__)


class SecretEncryption:
    """Encrypts and decrypts stored integration secrets."""

    def __init__(self, key: Optional[str] = None):
        self._cipher: Optional[Fernet] = None

        key = key if key is not None else settings.encryption_key
        if not key:
            logger.warning("ENCRYPTION_KEY not configured - integration secrets are stored in plaintext")
            return

        try:
            self._cipher = Fernet(key.encode() if isinstance(key, str) else key)
        except (ValueError, TypeError) as e:
            logger.error(f"Invalid ENCRYPTION_KEY, secrets will be stored in plaintext: {e}")

    @property
    def enabled(self) -> bool:
        return self._cipher is not None

    def encrypt(self, plaintext: str) -> str:
        if not self._cipher or self.is_encrypted(plaintext):
            return plaintext
        return self._cipher.encrypt(plaintext.encode()).decode()

    def decrypt(self, value: str) -> str:
        """Decrypt a stored secret. Values saved before encryption was enabled come back as-is."""
        if not self._cipher:
            return value
        try:
            return self._cipher.decrypt(value.encode()).decode()
        except InvalidToken:
            logger.debug("Stored secret is not a Fernet token, returning as plaintext")
            return value

    def is_encrypted(self, value: str) -> bool:
        # Fernet tokens are urlsafe base64 of a 0x80 version byte
        return bool(value) and value.startswith("gAAAAA") and len(value) > 50


def mask_secret(value: Optional[str], visible: int = 4) -> Optional[str]:
    """Mask a secret for API responses, keeping the last few characters."""
    if not value:
        return value
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * 8 + value[-visible:]


_encryption_instance: Optional[SecretEncryption] = None


def get_secret_encryption() -> SecretEncryption:
    """Get the secret encryption singleton."""
    global _encryption_instance
    if _encryption_instance is None:
        _encryption_instance = SecretEncryption()
    return _encryption_instance
