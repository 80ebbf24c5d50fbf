"""
Flask Two-Factor
TOTP second factor with recovery codes and safe devices for Flask apps
"""

from .account import AccountWithTwoFactor, TwoFactorAccountMixin
from .config import TwoFactorConfig
from .exceptions import (
    ConcurrentUpdateError,
    ConfigurationError,
    InvalidSecretError,
    StorageError,
    TwoFactorError,
    TwoFactorValidationError,
)
from .extension import TwoFactor
from .gate import AttemptState, AuthenticationAttempt, Decision, TwoFactorGate, attempt_from_request, has_code, has_code_or_fails
from .models import db
from .record import TwoFactorRecord
from .routes import challenge_response, remember_device
from .service import TwoFactorService

__version__ = '1.0.0'
