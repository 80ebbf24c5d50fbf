"""
Secret Cipher
Symmetric encryption for two-factor columns stored at rest
"""

import base64
import hashlib
import json
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken

from .exceptions import ConfigurationError, StorageError


class SecretCipher:
    """Fernet (AES-128-CBC + HMAC) wrapper used by the record store"""

    def __init__(self, key: Optional[str] = None, secret_key: Optional[str] = None):
        """
        Args:
            key: A urlsafe base64 Fernet key
            secret_key: Application secret to derive a key from when `key` is not given
        """
        if key is None:
            if not secret_key:
                raise ConfigurationError('TWO_FACTOR_ENCRYPTION_KEY or SECRET_KEY is required')
            key = self.derive_key(secret_key)

        try:
            self._fernet = Fernet(key)
        except (ValueError, TypeError) as e:
            raise ConfigurationError('Invalid two-factor encryption key') from e

    @staticmethod
    def derive_key(secret_key: str) -> bytes:
        digest = hashlib.sha256(f'two-factor:{secret_key}'.encode('utf-8')).digest()
        return base64.urlsafe_b64encode(digest)

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode('ascii')

    def encrypt(self, value: str) -> str:
        return self._fernet.encrypt(value.encode('utf-8')).decode('ascii')

    def decrypt(self, token: str) -> str:
        try:
            return self._fernet.decrypt(token.encode('ascii')).decode('utf-8')
        except InvalidToken as e:
            raise StorageError('Stored two-factor data cannot be decrypted') from e

    def encrypt_json(self, value: Any) -> str:
        return self.encrypt(json.dumps(value))

    def decrypt_json(self, token: str) -> Any:
        return json.loads(self.decrypt(token))
