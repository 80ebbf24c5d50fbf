"""
Replay Guard
Keeps consumed TOTP codes in an expiring cache so each code works only once
"""

import logging
import math
import threading
import time
from typing import Any, Dict, Protocol, Tuple

from .totp import Timestamp, TotpParameters, normalize_timestamp, period_start

logger = logging.getLogger(__name__)


class CacheStore(Protocol):
    """
    Expiring key-value store used by the replay guard

    Implementations report backend failures as StorageError so callers
    can fail closed.
    """

    def has(self, key: str) -> bool:
        ...

    def set(self, key: str, value: Any, expire_at: int) -> None:
        ...

    def add(self, key: str, value: Any, expire_at: int) -> bool:
        """Store only when the key is absent or expired, returning whether it was stored"""
        ...


class MemoryCache:
    """
    Process-local cache store

    Expired keys are dropped when read, and swept in bulk on writes once
    the map holds `sweep_threshold` entries and any of them has expired.
    """

    def __init__(self, clock=time.time, sweep_threshold: int = 1000):
        self._clock = clock
        self._items: Dict[str, Tuple[Any, int]] = {}
        self._lock = threading.Lock()
        self.sweep_threshold = sweep_threshold
        self._earliest_expiry = math.inf

    def __len__(self) -> int:
        return len(self._items)

    def _alive(self, key: str) -> bool:
        item = self._items.get(key)
        if item is None:
            return False
        if item[1] <= self._clock():
            del self._items[key]
            return False
        return True

    def _store(self, key: str, value: Any, expire_at: int) -> None:
        self._items[key] = (value, expire_at)
        self._earliest_expiry = min(self._earliest_expiry, expire_at)
        if len(self._items) >= self.sweep_threshold and self._earliest_expiry <= self._clock():
            self._sweep()

    def _sweep(self) -> None:
        now = self._clock()
        expired = [key for key, (_, expire_at) in self._items.items() if expire_at <= now]
        for key in expired:
            del self._items[key]
        self._earliest_expiry = min((expire_at for _, expire_at in self._items.values()), default=math.inf)
        logger.debug('Swept %d expired entries from the memory cache', len(expired))

    def has(self, key: str) -> bool:
        with self._lock:
            return self._alive(key)

    def set(self, key: str, value: Any, expire_at: int) -> None:
        with self._lock:
            self._store(key, value, expire_at)

    def add(self, key: str, value: Any, expire_at: int) -> bool:
        with self._lock:
            if self._alive(key):
                return False
            self._store(key, value, expire_at)
            return True

    def flush(self) -> None:
        with self._lock:
            self._items.clear()
            self._earliest_expiry = math.inf


class ReplayGuard:
    """Tracks codes already used by an owner for the rest of their validity"""

    def __init__(self, cache: CacheStore, prefix: str = '2fa.code'):
        self.cache = cache
        self.prefix = prefix

    def key(self, owner: str, code: str) -> str:
        return f'{self.prefix}|{owner}|{code}'

    @staticmethod
    def expires_at(at: Timestamp, params: TotpParameters) -> int:
        """End of the widest window a code seen at `at` can still validate in"""
        return period_start(at, params.period_seconds) + (params.window + 1) * params.period_seconds

    def has_been_used(self, owner: str, code: str) -> bool:
        return self.cache.has(self.key(owner, code))

    def mark_used(self, owner: str, code: str, at: Timestamp, params: TotpParameters) -> None:
        at = normalize_timestamp(at)
        self.cache.set(self.key(owner, code), at, self.expires_at(at, params))

    def claim(self, owner: str, code: str, at: Timestamp, params: TotpParameters) -> bool:
        """
        Atomically mark a code as used

        Returns:
            False when another request already consumed the code
        """
        at = normalize_timestamp(at)
        claimed = self.cache.add(self.key(owner, code), at, self.expires_at(at, params))
        if not claimed:
            logger.warning('Two-factor code replay rejected for owner %s', owner)
        return claimed
