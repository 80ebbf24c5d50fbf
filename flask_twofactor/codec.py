"""
Secret Codec
Shared secret generation, Base32 encoding and HOTP counter framing
"""

import base64
import binascii
import secrets
import struct

import pyotp

from .exceptions import ConfigurationError, InvalidSecretError

# RFC 4226 allows down to 128-bit secrets, 160-bit is the recommendation
MIN_SECRET_BYTES = 16
MAX_SECRET_BYTES = 32
DEFAULT_SECRET_BYTES = 20


def generate_secret(byte_length: int = DEFAULT_SECRET_BYTES) -> str:
    """
    Generate a new shared secret

    Args:
        byte_length: Number of random bytes (16-32)

    Returns:
        Uppercase Base32 text without padding
    """
    if not MIN_SECRET_BYTES <= byte_length <= MAX_SECRET_BYTES:
        raise ConfigurationError(
            f'Secret length must be between {MIN_SECRET_BYTES} and {MAX_SECRET_BYTES} bytes',
            {'secret_length': byte_length}
        )

    raw = secrets.token_bytes(byte_length)
    return base64.b32encode(raw).decode('ascii').rstrip('=')


def to_binary(secret: str) -> bytes:
    """Decode a Base32 secret, case-insensitive and tolerant of grouping spaces and missing padding"""
    normalized = ''.join(secret.split()).upper()
    if not normalized:
        raise InvalidSecretError('Shared secret is empty')

    try:
        # pyotp re-adds the '=' padding authenticator apps leave out
        return pyotp.OTP(normalized).byte_secret()
    except (binascii.Error, ValueError) as e:
        raise InvalidSecretError() from e


def normalize(secret: str) -> str:
    """Canonical representation: uppercase Base32, no padding, no spaces"""
    return base64.b32encode(to_binary(secret)).decode('ascii').rstrip('=')


def counter_to_bytes(counter: int) -> bytes:
    """8-byte big-endian counter (RFC 4226 section 5.3), the framing pyotp feeds to HMAC"""
    return struct.pack('>Q', counter)


def group(secret: str, size: int = 4) -> str:
    """Split a secret into space separated groups for manual entry"""
    return ' '.join(secret[i:i + size] for i in range(0, len(secret), size))
