"""
TOTP Engine
RFC 6238 code generation and past-only validation on top of pyotp
"""

import enum
import hashlib
import hmac
import math
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional, Union

import pyotp

from .codec import normalize
from .exceptions import ConfigurationError

Timestamp = Union[int, float, str, date, datetime, None]


class Algorithm(str, enum.Enum):
    """HMAC algorithms allowed by RFC 6238"""
    SHA1 = 'SHA1'
    SHA256 = 'SHA256'
    SHA512 = 'SHA512'

    @classmethod
    def parse(cls, value: Union[str, 'Algorithm']) -> 'Algorithm':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ConfigurationError(f'Unsupported TOTP algorithm: {value}') from None


# pyotp takes the hashlib constructor as its digest
DIGESTS = {
    Algorithm.SHA1: hashlib.sha1,
    Algorithm.SHA256: hashlib.sha256,
    Algorithm.SHA512: hashlib.sha512,
}


@dataclass(frozen=True)
class TotpParameters:
    """Per-record TOTP settings, copied from the configured defaults at creation"""
    digits: int = 6
    period_seconds: int = 30
    window: int = 1
    algorithm: Algorithm = Algorithm.SHA1

    def __post_init__(self):
        object.__setattr__(self, 'algorithm', Algorithm.parse(self.algorithm))

        if not 6 <= self.digits <= 10:
            raise ConfigurationError('TOTP digits must be between 6 and 10', {'digits': self.digits})
        if self.period_seconds <= 0:
            raise ConfigurationError('TOTP period must be positive', {'period_seconds': self.period_seconds})
        if self.window < 0:
            raise ConfigurationError('TOTP window cannot be negative', {'window': self.window})


def normalize_timestamp(at: Timestamp = None) -> int:
    """
    Normalize a point in time to epoch seconds

    Accepts epoch numbers, ISO-8601 strings, dates and datetimes. Values
    without timezone information are read as UTC. None means now.
    """
    if at is None:
        return int(time.time())

    if isinstance(at, str):
        text = at.strip()
        # fromisoformat only reads a 'Z' designator from Python 3.11 on
        if text[-1:] in ('Z', 'z'):
            text = text[:-1] + '+00:00'
        at = datetime.fromisoformat(text)

    if isinstance(at, datetime):
        if at.tzinfo is None:
            at = at.replace(tzinfo=timezone.utc)
        return math.floor(at.timestamp())

    if isinstance(at, date):
        return math.floor(datetime(at.year, at.month, at.day, tzinfo=timezone.utc).timestamp())

    return math.floor(at)


def period_index(at: Timestamp, period_seconds: int) -> int:
    return normalize_timestamp(at) // period_seconds


def period_start(at: Timestamp, period_seconds: int) -> int:
    return period_index(at, period_seconds) * period_seconds


class TotpEngine:
    """Generates and checks codes for one shared secret"""

    def __init__(self, secret: str, params: Optional[TotpParameters] = None):
        self.params = params or TotpParameters()
        self._totp = pyotp.TOTP(
            normalize(secret),
            digits=self.params.digits,
            digest=DIGESTS[self.params.algorithm],
            interval=self.params.period_seconds,
        )

    def hotp(self, counter: int) -> str:
        """HOTP value for a raw counter"""
        return self._totp.generate_otp(counter)

    def timestamp_for(self, at: Timestamp = None, offset: int = 0) -> int:
        """Start of the period containing `at`, shifted by `offset` whole periods"""
        period = self.params.period_seconds
        periods = normalize_timestamp(at) / period + offset
        return math.floor(periods) * period

    def make_code(self, at: Timestamp = None, offset: int = 0) -> str:
        """
        Create the code for a point in time

        Args:
            at: Point in time (defaults to now)
            offset: Whole periods to shift, negative for past periods

        Returns:
            Zero-padded decimal code
        """
        return self.hotp(self.timestamp_for(at, offset) // self.params.period_seconds)

    def validate_code(self, candidate: str, at: Timestamp = None, window: Optional[int] = None) -> bool:
        """
        Check a code against the current period and `window` past periods

        Future periods are never accepted, unlike pyotp's `verify`.
        """
        if not candidate:
            return False

        window = self.params.window if window is None else window
        at = normalize_timestamp(at)
        candidate = str(candidate).encode('utf-8')

        for i in range(window + 1):
            if hmac.compare_digest(self.make_code(at, -i).encode('ascii'), candidate):
                return True

        return False
