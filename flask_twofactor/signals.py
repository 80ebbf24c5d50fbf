"""
Two-Factor Signals
Blinker signals fired on two-factor lifecycle changes
"""

from typing import Any, Protocol

from blinker import Namespace

_signals = Namespace()

two_factor_enabled = _signals.signal('two-factor-enabled', doc='Sent when an owner confirms and enables 2FA')
two_factor_disabled = _signals.signal('two-factor-disabled', doc='Sent when an owner turns 2FA off')
recovery_codes_generated = _signals.signal('recovery-codes-generated', doc='Sent when a new recovery batch replaces the old one')
recovery_codes_depleted = _signals.signal('recovery-codes-depleted', doc='Sent when the last unused recovery code is consumed')

SIGNALS = {
    'two_factor_enabled': two_factor_enabled,
    'two_factor_disabled': two_factor_disabled,
    'recovery_codes_generated': recovery_codes_generated,
    'recovery_codes_depleted': recovery_codes_depleted,
}


class Notifier(Protocol):
    def emit(self, event: str, owner: Any) -> None:
        ...


class SignalNotifier:
    """Sends lifecycle events through the blinker signals above, with the owner as sender"""

    def emit(self, event: str, owner: Any) -> None:
        SIGNALS[event].send(owner)
