"""
Two-Factor Service
Record lifecycle: creation, confirmation, code validation, recovery codes and safe devices
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from . import recovery
from .config import TwoFactorConfig
from .devices import SafeDevice, SafeDeviceRegistry
from .record import TwoFactorRecord
from .recovery import RecoveryCode
from .replay import ReplayGuard
from .signals import Notifier, SignalNotifier
from .store import RecordStore
from .totp import Timestamp

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def owner_key(owner: Any) -> str:
    """Opaque owner reference: strings are used as-is, accounts provide their own"""
    if isinstance(owner, str):
        return owner
    return owner.get_two_factor_owner()


class TwoFactorService:
    """
    Service for two-factor operations on behalf of an owner

    `owner` arguments are either an owner reference string or an account
    exposing `get_two_factor_owner()`. Events are sent with the owner as
    given.
    """

    def __init__(
        self,
        config: TwoFactorConfig,
        store: RecordStore,
        replay_guard: ReplayGuard,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.store = store
        self.replay_guard = replay_guard
        self.notifier = notifier or SignalNotifier()
        self.clock = clock
        self.devices = SafeDeviceRegistry(config.safe_devices_max, config.safe_devices_expiration_days)

    def now(self) -> datetime:
        return self.clock()

    def timestamp(self) -> int:
        return int(self.clock().timestamp())

    # ==================== RECORD ====================

    def get(self, owner: Any) -> TwoFactorRecord:
        """Stored record of the owner, or a disabled default one that is not yet persisted"""
        key = owner_key(owner)
        record = self.store.load(key)
        if record is None:
            record = TwoFactorRecord.new(key, self.config.totp_parameters(), self.config.secret_length)
        return record

    def _save(self, record: TwoFactorRecord) -> None:
        now = self.now()
        if record.created_at is None:
            record.created_at = now
        record.updated_at = now
        self.store.save(record)

    def create(self, owner: Any, label: Optional[str] = None) -> TwoFactorRecord:
        """
        Provision a fresh secret for enrollment

        The existing record (if any) is flushed and reused, so the owner keeps
        a single record with the same id.
        """
        record = self.get(owner)
        record.flush(self.config.totp_parameters(), self.config.secret_length)
        if label is not None:
            record.label = label
        self._save(record)
        return record

    def flush(self, owner: Any, cycle_secret: bool = True) -> TwoFactorRecord:
        record = self.get(owner)
        record.flush(self.config.totp_parameters(), self.config.secret_length, cycle_secret)
        self._save(record)
        return record

    def is_enabled(self, owner: Any) -> bool:
        return self.get(owner).is_enabled()

    def enable(self, owner: Any, record: Optional[TwoFactorRecord] = None) -> TwoFactorRecord:
        record = record or self.get(owner)
        record.enabled_at = self.now()

        if self.config.recovery_enabled:
            self._replace_recovery_codes(record)

        self._save(record)
        logger.info('Two-factor authentication enabled for %s', record.owner_ref)

        self.notifier.emit('two_factor_enabled', owner)
        if self.config.recovery_enabled:
            self.notifier.emit('recovery_codes_generated', owner)
        return record

    def disable(self, owner: Any) -> TwoFactorRecord:
        """Erase every usable secret, code and device, keeping a disabled placeholder"""
        record = self.flush(owner)
        logger.info('Two-factor authentication disabled for %s', record.owner_ref)
        self.notifier.emit('two_factor_disabled', owner)
        return record

    def confirm(self, owner: Any, code: Optional[str]) -> bool:
        """
        Enable 2FA once the owner proves the authenticator holds the secret

        Already enabled records are confirmed without checking the code.
        """
        record = self.get(owner)
        if record.is_enabled():
            return True

        if not code or not self._validate_totp(record, code):
            return False

        self.enable(owner, record)
        return True

    # ==================== CODES ====================

    def make_code(self, owner: Any, at: Timestamp = None, offset: int = 0) -> str:
        return self.get(owner).make_code(self.timestamp() if at is None else at, offset)

    def _validate_totp(self, record: TwoFactorRecord, code: str) -> bool:
        at = self.timestamp()
        params = record.totp_params

        if self.replay_guard.has_been_used(record.owner_ref, code):
            logger.warning('Two-factor code replay rejected for owner %s', record.owner_ref)
            return False

        if not record.validate_code(code, at):
            return False

        return self.replay_guard.claim(record.owner_ref, code, at, params)

    def validate_code(self, owner: Any, code: Optional[str]) -> bool:
        """TOTP check only, each code is accepted once"""
        if not code:
            return False
        return self._validate_totp(self.get(owner), code)

    def validate_two_factor_code(self, owner: Any, code: Optional[str]) -> bool:
        """
        Validate a TOTP code, falling back to a recovery code

        Returns:
            False when 2FA is disabled, the code is empty, or neither check passes
        """
        if not code:
            return False

        record = self.get(owner)
        if record.is_disabled():
            return False

        return self._validate_totp(record, code) or self._use_recovery_code(owner, record, code)

    # ==================== RECOVERY CODES ====================

    def _replace_recovery_codes(self, record: TwoFactorRecord) -> None:
        record.recovery_codes = recovery.generate(self.config.recovery_codes, self.config.recovery_length)
        record.recovery_codes_generated_at = self.now()

    def _use_recovery_code(self, owner: Any, record: TwoFactorRecord, code: str) -> bool:
        if not record.set_recovery_code_as_used(code, self.now()):
            return False

        # Conditional update, a concurrent consumer makes this raise
        self._save(record)

        if not record.contains_unused_recovery_codes():
            logger.info('Recovery codes depleted for %s', record.owner_ref)
            self.notifier.emit('recovery_codes_depleted', owner)
        return True

    def generate_recovery_codes(self, owner: Any) -> List[RecoveryCode]:
        """Replace the whole batch, previous codes stop working immediately"""
        record = self.get(owner)
        self._replace_recovery_codes(record)
        self._save(record)
        logger.info('Recovery codes regenerated for %s', record.owner_ref)
        self.notifier.emit('recovery_codes_generated', owner)
        return record.recovery_codes

    def get_recovery_codes(self, owner: Any) -> List[RecoveryCode]:
        return self.get(owner).recovery_codes or []

    # ==================== SAFE DEVICES ====================

    def add_safe_device(self, owner: Any, ip: Optional[str] = None) -> str:
        """
        Trust the current device

        Returns:
            The token the transport layer must hand back to the device
        """
        record = self.get(owner)
        record.safe_devices, token = self.devices.register(record.safe_devices, ip, self.timestamp())
        self._save(record)
        return token

    def is_safe_device(self, owner: Any, token: Optional[str]) -> bool:
        if not token:
            return False
        return self.devices.is_trusted(self.get(owner).safe_devices, token, self.timestamp())

    def safe_devices(self, owner: Any) -> List[SafeDevice]:
        return self.get(owner).safe_devices or []

    def flush_safe_devices(self, owner: Any) -> None:
        record = self.get(owner)
        record.safe_devices = None
        self._save(record)

    # ==================== SERIALIZATION ====================

    def to_uri(self, owner: Any) -> str:
        return self.get(owner).to_uri(self.config.issuer)

    def to_qr(self, owner: Any) -> bytes:
        return self.get(owner).to_qr(self.config.issuer, self.config.qr_size, self.config.qr_margin, self.config.qr_format)
