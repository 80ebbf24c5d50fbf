"""
Two-Factor Validation Rules
Form-level predicates for TOTP and confirmation codes
"""

import re
from typing import Any

from .account import AccountWithTwoFactor

CODE_PATTERN = re.compile(r'[A-Za-z0-9]+')


def is_well_formed_code(value: Any) -> bool:
    """Non-empty alphanumeric string, TOTP and recovery codes both qualify"""
    return isinstance(value, str) and CODE_PATTERN.fullmatch(value) is not None


def totp_code_rule(user: Any, value: Any) -> bool:
    """Valid TOTP or recovery code of an account with 2FA enabled"""
    return (
        is_well_formed_code(value)
        and isinstance(user, AccountWithTwoFactor)
        and user.validate_two_factor_code(value)
    )


def two_factor_auth_rule(user: Any, value: Any) -> bool:
    """Confirms a pending enrollment, see TwoFactorService.confirm"""
    if value is None or not hasattr(user, 'confirm_two_factor_auth'):
        return False
    return user.confirm_two_factor_auth(str(value))
