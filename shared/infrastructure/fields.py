"""
Model fields for data we must not store in clear text.

Realtor payout account numbers are the main user: the gateway needs the
real value when creating a transfer recipient, but a database dump
should not expose it.
"""

import logging

from cryptography.fernet import InvalidToken
from django.db import models  # type: ignore

from .encryption import encrypt_string, decrypt_string

logger = logging.getLogger(__name__)


class EncryptedCharField(models.TextField):  # type: ignore
    """Text column holding a Fernet token; Python code only ever sees the plain value."""

    description = "Fernet-encrypted text"

    def __init__(self, *args, **kwargs):
        # max_length applies to the plain value; tokens are much longer
        self.plain_max_length = kwargs.pop('max_length', None)
        super().__init__(*args, **kwargs)

    def deconstruct(self):
        name, path, args, kwargs = super().deconstruct()
        if self.plain_max_length is not None:
            kwargs['max_length'] = self.plain_max_length
        return name, path, args, kwargs

    def from_db_value(self, value, expression, connection):
        if not value:
            return value
        try:
            return decrypt_string(value)
        except InvalidToken:
            logger.warning(f"Could not decrypt {self.model.__name__}.{self.name}; was ENCRYPTION_KEY rotated?")
            return ''

    def get_prep_value(self, value):
        if value in (None, ''):
            return ''
        return encrypt_string(str(value))

    def to_python(self, value):
        return value if value is None else str(value)
