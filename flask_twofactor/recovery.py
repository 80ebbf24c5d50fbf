"""
Recovery Code Vault
Single-use backup codes for accounts without access to their authenticator
"""

import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

ALPHABET = string.ascii_uppercase + string.digits


@dataclass
class RecoveryCode:
    """One backup code, `used_at` only ever goes from None to a timestamp"""
    code: str
    used_at: Optional[datetime] = None

    @property
    def is_used(self) -> bool:
        return self.used_at is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'used_at': self.used_at.isoformat() if self.used_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RecoveryCode':
        used_at = data.get('used_at')
        return cls(
            code=data['code'],
            used_at=datetime.fromisoformat(used_at) if used_at else None,
        )


def generate(amount: int = 10, length: int = 8) -> List[RecoveryCode]:
    """Generate a new batch of unused codes made of uppercase letters and digits"""
    return [
        RecoveryCode(code=''.join(secrets.choice(ALPHABET) for _ in range(length)))
        for _ in range(amount)
    ]


def find_unused(codes: Optional[List[RecoveryCode]], code: str) -> Optional[int]:
    """Index of the entry matching `code` that is still unused"""
    for index, item in enumerate(codes or []):
        if item.used_at is None and secrets.compare_digest(item.code.encode(), code.encode()):
            return index
    return None


def mark_used(codes: Optional[List[RecoveryCode]], code: str, at: datetime) -> bool:
    """
    Consume a recovery code in place

    Returns:
        True if an unused matching code was found and marked, False otherwise
    """
    index = find_unused(codes, code)
    if index is None:
        return False

    codes[index] = RecoveryCode(code=codes[index].code, used_at=at)
    return True


def has_unused(codes: Optional[List[RecoveryCode]]) -> bool:
    return any(item.used_at is None for item in codes or [])
