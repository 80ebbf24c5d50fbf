"""
Two-Factor Configuration
All tunables collected in one object, built from the Flask app config
"""

from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

from .codec import DEFAULT_SECRET_BYTES, MAX_SECRET_BYTES, MIN_SECRET_BYTES
from .exceptions import ConfigurationError
from .totp import Algorithm, TotpParameters

DEFAULT_MESSAGE = 'The Code is invalid or has expired.'


@dataclass(frozen=True)
class TwoFactorConfig:
    """Two-factor settings passed into every component at composition time"""

    issuer: str = 'Flask'
    input_name: str = '2fa_code'
    cache_prefix: str = '2fa.code'
    cache_store: str = 'database'

    recovery_enabled: bool = True
    recovery_codes: int = 10
    recovery_length: int = 8

    safe_devices_enabled: bool = False
    safe_devices_max: int = 3
    safe_devices_expiration_days: int = 14
    safe_devices_cookie: str = '2fa_remember'

    secret_length: int = DEFAULT_SECRET_BYTES

    totp_digits: int = 6
    totp_seconds: int = 30
    totp_window: int = 1
    totp_algorithm: str = 'sha1'

    qr_size: int = 400
    qr_margin: int = 4
    qr_format: str = 'png'

    confirm_timeout: int = 10800
    confirm_key: str = '_2fa.totp_confirmed_at'

    encryption_key: Optional[str] = None
    url_prefix: str = '/api/auth/2fa'
    message: str = DEFAULT_MESSAGE

    def __post_init__(self):
        if not MIN_SECRET_BYTES <= self.secret_length <= MAX_SECRET_BYTES:
            raise ConfigurationError(
                f'Secret length must be between {MIN_SECRET_BYTES} and {MAX_SECRET_BYTES} bytes',
                {'secret_length': self.secret_length}
            )
        if self.recovery_codes < 1 or self.recovery_length < 1:
            raise ConfigurationError('Recovery codes amount and length must be positive')
        if self.safe_devices_max < 1:
            raise ConfigurationError('At least one safe device must be allowed')
        if self.safe_devices_expiration_days < 1:
            raise ConfigurationError('Safe devices must expire after at least one day')
        if self.qr_format not in ('png', 'svg'):
            raise ConfigurationError(f'Unsupported QR format: {self.qr_format}')
        if self.cache_store not in ('database', 'memory'):
            raise ConfigurationError(f'Unsupported cache store: {self.cache_store}')

        # Fails fast on invalid TOTP defaults
        self.totp_parameters()

    def totp_parameters(self) -> TotpParameters:
        """TOTP parameters new records are created with"""
        return TotpParameters(
            digits=self.totp_digits,
            period_seconds=self.totp_seconds,
            window=self.totp_window,
            algorithm=Algorithm.parse(self.totp_algorithm),
        )

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any], app_name: Optional[str] = None) -> 'TwoFactorConfig':
        """
        Build the configuration from `TWO_FACTOR_*` keys

        Args:
            config: A Flask app config (or any mapping)
            app_name: Fallback issuer when TWO_FACTOR_ISSUER is not set

        Returns:
            TwoFactorConfig with unset keys left at their defaults
        """
        values = {}
        for field in fields(cls):
            key = f'TWO_FACTOR_{field.name.upper()}'
            if key in config:
                values[field.name] = config[key]

        if 'issuer' not in values:
            values['issuer'] = config.get('APP_NAME') or app_name or cls.issuer

        return cls(**values)
