"""
Two-Factor Gate
Decides whether an authentication attempt passes the second factor
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from flask import current_app, request

from .account import AccountWithTwoFactor
from .config import TwoFactorConfig
from .exceptions import StorageError, TwoFactorValidationError
from .rules import is_well_formed_code

logger = logging.getLogger(__name__)

# Opt-in flag for trusting the current device
SAFE_DEVICE_INPUT = 'safe_device'


class AttemptState(str, Enum):
    START = 'start'
    NOT_2FA_USER = 'not_2fa_user'
    BYPASSED_SAFE_DEVICE = 'bypassed_safe_device'
    CODE_REQUIRED = 'code_required'
    GRANTED = 'granted'
    DENIED = 'denied'


@dataclass
class AuthenticationAttempt:
    """Everything the gate needs from the request that carries the login"""
    code: Optional[str] = None
    device_token: Optional[str] = None
    remember_device: bool = False
    ip: Optional[str] = None
    credentials: Dict[str, Any] = field(default_factory=dict)
    remember: bool = False


@dataclass
class Decision:
    """
    Outcome of an attempt

    `state` is the last state reached: GRANTED, DENIED, or the pass-through
    states NOT_2FA_USER and BYPASSED_SAFE_DEVICE. `error` is set when a code
    was presented and rejected. `device_token` is only set when a new safe
    device was registered; the caller hands it back to the device for
    `device_max_age_days`.
    """
    granted: bool
    state: AttemptState
    error: bool = False
    device_token: Optional[str] = None
    device_max_age_days: Optional[int] = None

    def __bool__(self) -> bool:
        return self.granted


class TwoFactorGate:
    """Single decision procedure behind every way of checking the second factor"""

    def __init__(self, config: TwoFactorConfig):
        self.config = config

    def decide(self, account: Any, attempt: AuthenticationAttempt) -> Decision:
        if not isinstance(account, AccountWithTwoFactor):
            return Decision(True, AttemptState.NOT_2FA_USER)

        presented = bool(attempt.code)

        try:
            if not account.has_two_factor_enabled():
                return Decision(True, AttemptState.NOT_2FA_USER)

            if self.config.safe_devices_enabled and account.is_safe_device(attempt.device_token):
                return Decision(True, AttemptState.BYPASSED_SAFE_DEVICE)

            if not is_well_formed_code(attempt.code) or not account.validate_two_factor_code(attempt.code):
                return Decision(False, AttemptState.DENIED, error=presented)

            decision = Decision(True, AttemptState.GRANTED)
            if self.config.safe_devices_enabled and attempt.remember_device:
                decision.device_token = account.add_safe_device(attempt.ip)
                decision.device_max_age_days = self.config.safe_devices_expiration_days
            return decision
        except StorageError:
            logger.exception('Two-factor storage failure, denying attempt')
            return Decision(False, AttemptState.DENIED, error=presented)

    def validate(self, account: Any, attempt: AuthenticationAttempt) -> bool:
        return self.decide(account, attempt).granted

    def validate_or_fail(self, account: Any, attempt: AuthenticationAttempt,
                         message: Optional[str] = None, input_name: Optional[str] = None) -> Decision:
        """
        Same as `validate`, but a denial raises

        Raises:
            TwoFactorValidationError: Carrying the input name (configured one by default) and the message
        """
        decision = self.decide(account, attempt)
        if not decision:
            raise TwoFactorValidationError(input_name or self.config.input_name, message or self.config.message)
        return decision


# ==================== FLASK HELPERS ====================

def _request_data() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def attempt_from_request(input_name: Optional[str] = None, credentials: Optional[Dict[str, Any]] = None,
                         remember: bool = False) -> AuthenticationAttempt:
    """Build an attempt from the current request body and trust cookie"""
    config: TwoFactorConfig = current_app.extensions['twofactor'].config
    data = _request_data()

    code = data.get(input_name or config.input_name)
    if code is not None:
        code = str(code).strip()

    return AuthenticationAttempt(
        code=code,
        device_token=request.cookies.get(config.safe_devices_cookie),
        remember_device=bool(data.get(SAFE_DEVICE_INPUT)),
        ip=request.remote_addr,
        credentials=credentials or {},
        remember=remember,
    )


def has_code(input_name: Optional[str] = None) -> Callable[[Any], bool]:
    """
    Predicate for the current request, to chain after the credentials check

    Usage:
        if not has_code()(user):
            return jsonify({'error': 'Invalid two-factor code'}), 422
    """
    def check(user: Any) -> bool:
        gate = current_app.extensions['twofactor'].gate
        return gate.validate(user, attempt_from_request(input_name))
    return check


def has_code_or_fails(input_name: Optional[str] = None, message: Optional[str] = None) -> Callable[[Any], bool]:
    """Like `has_code`, but a denial raises TwoFactorValidationError"""
    def check(user: Any) -> bool:
        gate = current_app.extensions['twofactor'].gate
        gate.validate_or_fail(user, attempt_from_request(input_name), message, input_name)
        return True
    return check
