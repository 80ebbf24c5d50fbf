"""
Safe Device Registry
Bounded, expiring list of trusted device tokens that bypass the second factor
"""

import secrets
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

SECONDS_PER_DAY = 86400

# 75 random bytes encode to 100 URL-safe characters
TOKEN_BYTES = 75


@dataclass(frozen=True)
class SafeDevice:
    token: str
    ip: Optional[str]
    added_at: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SafeDevice':
        return cls(token=data['token'], ip=data.get('ip'), added_at=int(data['added_at']))


def generate_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


class SafeDeviceRegistry:
    """Registration and lookup rules for safe devices"""

    def __init__(self, max_devices: int = 3, expiration_days: int = 14):
        self.max_devices = max_devices
        self.expiration_days = expiration_days

    @property
    def expiration_seconds(self) -> int:
        return self.expiration_days * SECONDS_PER_DAY

    def register(self, devices: Optional[List[SafeDevice]], ip: Optional[str], now: int) -> Tuple[List[SafeDevice], str]:
        """
        Add a new device, evicting the oldest ones past `max_devices`

        Args:
            devices: Current devices of the owner
            ip: Address of the request, informational only
            now: Epoch seconds

        Returns:
            Tuple of (new device list, new token)
        """
        token = generate_token()
        updated = list(devices or [])
        updated.append(SafeDevice(token=token, ip=ip, added_at=int(now)))

        # sorted() is stable, equal timestamps keep their insertion order
        updated = sorted(updated, key=lambda device: device.added_at, reverse=True)
        return updated[:self.max_devices], token

    @staticmethod
    def find(devices: Optional[List[SafeDevice]], token: Optional[str]) -> Optional[SafeDevice]:
        if not token:
            return None
        for device in devices or []:
            if secrets.compare_digest(device.token.encode(), token.encode()):
                return device
        return None

    @classmethod
    def added_at(cls, devices: Optional[List[SafeDevice]], token: Optional[str]) -> Optional[int]:
        device = cls.find(devices, token)
        return device.added_at if device is not None else None

    def is_trusted(self, devices: Optional[List[SafeDevice]], token: Optional[str], now: int) -> bool:
        """Expired devices are untrusted but stay in the list until evicted or flushed"""
        added_at = self.added_at(devices, token)
        if added_at is None:
            return False
        return added_at + self.expiration_seconds > now
