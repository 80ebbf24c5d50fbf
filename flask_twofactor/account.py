"""
Two-Factor Accounts
Capability protocol and a mixin that gives host user models two-factor methods
"""

from typing import List, Optional, Protocol, runtime_checkable

from flask import current_app

from .recovery import RecoveryCode
from .record import TwoFactorRecord


@runtime_checkable
class AccountWithTwoFactor(Protocol):
    """Anything the orchestrator can challenge for a second factor"""

    def has_two_factor_enabled(self) -> bool:
        ...

    def validate_two_factor_code(self, code: Optional[str]) -> bool:
        ...

    def is_safe_device(self, token: Optional[str]) -> bool:
        ...

    def add_safe_device(self, ip: Optional[str] = None) -> str:
        ...


def _service():
    return current_app.extensions['twofactor'].service


class TwoFactorAccountMixin:
    """
    Two-factor methods for a Flask-SQLAlchemy user model

    Usage:
        class User(db.Model, TwoFactorAccountMixin):
            id = Column(Integer, primary_key=True)
            email = Column(String(255))

    The owner reference defaults to "<table>:<id>" and the URI label to the
    `email` attribute; override the two getters to change them.
    """

    def get_two_factor_owner(self) -> str:
        prefix = getattr(self, '__tablename__', None) or type(self).__name__.lower()
        return f'{prefix}:{self.id}'

    def two_factor_label(self) -> Optional[str]:
        return getattr(self, 'email', None)

    @property
    def two_factor_auth(self) -> TwoFactorRecord:
        return _service().get(self)

    def has_two_factor_enabled(self) -> bool:
        return _service().is_enabled(self)

    def create_two_factor_auth(self) -> TwoFactorRecord:
        """Start enrollment, a fresh secret replaces any previous one"""
        return _service().create(self, self.two_factor_label())

    def confirm_two_factor_auth(self, code: Optional[str]) -> bool:
        return _service().confirm(self, code)

    def disable_two_factor_auth(self) -> None:
        _service().disable(self)

    def validate_two_factor_code(self, code: Optional[str]) -> bool:
        return _service().validate_two_factor_code(self, code)

    def make_two_factor_code(self, at=None, offset: int = 0) -> str:
        return _service().make_code(self, at, offset)

    def generate_recovery_codes(self) -> List[RecoveryCode]:
        return _service().generate_recovery_codes(self)

    def get_recovery_codes(self) -> List[RecoveryCode]:
        return _service().get_recovery_codes(self)

    def add_safe_device(self, ip: Optional[str] = None) -> str:
        return _service().add_safe_device(self, ip)

    def is_safe_device(self, token: Optional[str]) -> bool:
        return _service().is_safe_device(self, token)

    def flush_safe_devices(self) -> None:
        _service().flush_safe_devices(self)
