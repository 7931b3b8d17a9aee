"""
Encryption utilities

Provides encryption/decryption for sensitive data such as realtor payout
account numbers. Uses Fernet symmetric encryption.
"""

from cryptography.fernet import Fernet
from django.conf import settings
import base64
import hashlib


def get_encryption_key() -> bytes:
    """
    Get encryption key from settings

    Any string is accepted and stretched to a 32-byte url-safe key,
    so operators can supply a passphrase or a generated Fernet key.
    """
    key = getattr(settings, 'ENCRYPTION_KEY', None)

    if not key:
        raise ValueError(
            "ENCRYPTION_KEY not configured in settings. "
            "Generate one with: python -c 'from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())'"
        )

    if isinstance(key, str):
        key = base64.urlsafe_b64encode(
            hashlib.sha256(key.encode()).digest()
        )

    return key


def encrypt_string(plaintext: str) -> str:
    if not plaintext:
        return ''

    fernet = Fernet(get_encryption_key())
    return fernet.encrypt(plaintext.encode()).decode()


def decrypt_string(encrypted: str) -> str:
    if not encrypted:
        return ''

    fernet = Fernet(get_encryption_key())
    return fernet.decrypt(encrypted.encode()).decode()


def mask_value(value: str, visible: int = 4) -> str:
    """Hide all but the last ``visible`` characters (for API responses)."""
    if not value:
        return ''
    if len(value) <= visible:
        return value
    return '*' * (len(value) - visible) + value[-visible:]
