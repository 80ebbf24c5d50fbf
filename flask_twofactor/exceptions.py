"""
Two-Factor Exceptions
Error types raised by the two-factor core and its storage adapters
"""

from typing import Any, Dict, Optional


class TwoFactorError(Exception):
    """Base exception for two-factor authentication errors"""

    def __init__(self, message: str, code: str = 'TWO_FACTOR_ERROR', details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


class ConfigurationError(TwoFactorError):
    """Raised when a tunable is outside of its safe range"""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message, 'CONFIGURATION_ERROR', details)


class InvalidSecretError(TwoFactorError):
    """Raised when a shared secret is not valid Base32"""

    def __init__(self, message: str = 'Invalid Base32 secret', details: Optional[Any] = None):
        super().__init__(message, 'INVALID_SECRET', details)


class StorageError(TwoFactorError):
    """Raised when the record store or the code cache cannot be reached"""

    def __init__(self, message: str = 'Two-factor storage unavailable', details: Optional[Any] = None):
        super().__init__(message, 'STORAGE_ERROR', details)


class ConcurrentUpdateError(StorageError):
    """Raised when a record was modified by another request since it was loaded"""

    def __init__(self, message: str = 'Two-factor record was modified concurrently', details: Optional[Any] = None):
        super().__init__(message, details)
        self.code = 'CONCURRENT_UPDATE'


class TwoFactorValidationError(TwoFactorError):
    """
    Raised by the "or fails" calling convention when an attempt is denied.

    Carries the input field name so the caller's form layer can attach the
    message to the right field.
    """

    def __init__(self, field: str, message: str):
        super().__init__(message, 'VALIDATION_ERROR', {field: [message]})
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error': self.message,
            'code': self.code,
            'errors': {self.field: [self.message]},
        }
