"""
Two-Factor Record
Aggregate binding one owner to its secret, TOTP parameters, recovery codes and safe devices
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from urllib.parse import quote, urlencode

from . import codec, qr, recovery
from .devices import SafeDevice, SafeDeviceRegistry
from .recovery import RecoveryCode
from .totp import Timestamp, TotpEngine, TotpParameters


@dataclass
class TwoFactorRecord:
    """In-memory two-factor state of one owner, storage adapters handle encryption"""

    owner_ref: str
    shared_secret: str
    totp_params: TotpParameters = field(default_factory=TotpParameters)
    label: Optional[str] = None
    recovery_codes: Optional[List[RecoveryCode]] = None
    recovery_codes_generated_at: Optional[datetime] = None
    safe_devices: Optional[List[SafeDevice]] = None
    enabled_at: Optional[datetime] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    @classmethod
    def new(cls, owner_ref: str, params: TotpParameters, secret_length: int = codec.DEFAULT_SECRET_BYTES,
            label: Optional[str] = None) -> 'TwoFactorRecord':
        """Disabled record with a brand-new secret"""
        return cls(
            owner_ref=owner_ref,
            shared_secret=codec.generate_secret(secret_length),
            totp_params=params,
            label=label,
        )

    # ==================== STATE ====================

    def is_enabled(self) -> bool:
        return self.enabled_at is not None

    def is_disabled(self) -> bool:
        return not self.is_enabled()

    def flush(self, params: TotpParameters, secret_length: int = codec.DEFAULT_SECRET_BYTES,
              cycle_secret: bool = True) -> 'TwoFactorRecord':
        """
        Reset the record to a disabled state

        Recovery codes and safe devices are erased, TOTP parameters are taken
        again from the current defaults. The label survives.
        """
        self.enabled_at = None
        self.recovery_codes = None
        self.recovery_codes_generated_at = None
        self.safe_devices = None
        self.totp_params = params

        if cycle_secret:
            self.shared_secret = codec.generate_secret(secret_length)

        return self

    # ==================== CODES ====================

    def totp(self) -> TotpEngine:
        return TotpEngine(self.shared_secret, self.totp_params)

    def make_code(self, at: Timestamp = None, offset: int = 0) -> str:
        return self.totp().make_code(at, offset)

    def validate_code(self, code: str, at: Timestamp = None, window: Optional[int] = None) -> bool:
        """Pure TOTP check, replay protection is applied by the service"""
        return self.totp().validate_code(code, at, window)

    # ==================== RECOVERY CODES ====================

    def contains_unused_recovery_codes(self) -> bool:
        return recovery.has_unused(self.recovery_codes)

    def set_recovery_code_as_used(self, code: str, at: datetime) -> bool:
        return recovery.mark_used(self.recovery_codes, code, at)

    # ==================== SAFE DEVICES ====================

    def safe_device(self, token: Optional[str]) -> Optional[SafeDevice]:
        return SafeDeviceRegistry.find(self.safe_devices, token)

    # ==================== SERIALIZATION ====================

    def to_uri(self, issuer: str) -> str:
        """otpauth:// provisioning URI, query values percent-encoded per RFC 3986"""
        label = self.label or ''
        query = urlencode({
            'issuer': issuer,
            'label': label,
            'secret': self.shared_secret,
            'algorithm': self.totp_params.algorithm.value,
            'digits': self.totp_params.digits,
        }, quote_via=quote)

        return f"otpauth://totp/{quote(issuer, safe='')}%3A{label}?{query}"

    def to_qr(self, issuer: str, size: int = 400, margin: int = 4, image_format: str = 'png') -> bytes:
        return qr.render(self.to_uri(issuer), size, margin, image_format)

    def to_grouped_string(self) -> str:
        return codec.group(self.shared_secret)

    def to_string(self) -> str:
        return self.shared_secret

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f'<TwoFactorRecord {self.owner_ref} enabled={self.is_enabled()}>'
