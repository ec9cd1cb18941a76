"""
In-process TTL cache.

Entries expire a fixed time after they are written. Reads never touch
I/O and the lock is only held for dictionary operations, so the cache
is safe to share between request handlers and worker threads.
"""

import threading
import time
from typing import Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

from willcraft.config.settings import settings


V = TypeVar("V")


class TTLCache(Generic[V]):
    """
    Fixed-TTL key/value cache.

    Stale values may be served until their entry expires; callers that
    need fresh data evict the key explicitly.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 10_000,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (expires_at, value)
        self._items: Dict[Hashable, Tuple[float, V]] = {}

    def get(self, key: Hashable) -> Optional[V]:
        now = self._clock()
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            expires_at, value = item
            if expires_at <= now:
                # expired -> drop
                del self._items[key]
                return None
            return value

    def set(self, key: Hashable, value: V) -> None:
        now = self._clock()
        with self._lock:
            if len(self._items) >= self.max_entries and key not in self._items:
                self._purge_expired_unlocked(now)
                if len(self._items) >= self.max_entries:
                    # evict the entry closest to expiry
                    oldest = min(self._items, key=lambda k: self._items[k][0])
                    del self._items[oldest]
            self._items[key] = (now + self.ttl_seconds, value)

    def evict(self, key: Hashable) -> None:
        with self._lock:
            self._items.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def _purge_expired_unlocked(self, now: float) -> None:
        expired = [k for k, (expires_at, _) in self._items.items() if expires_at <= now]
        for k in expired:
            del self._items[k]


_will_list_cache: Optional[TTLCache] = None


def get_will_list_cache() -> TTLCache:
    """Process-wide cache of will list results, keyed by owner id."""
    global _will_list_cache

    if _will_list_cache is None:
        _will_list_cache = TTLCache(ttl_seconds=settings.will_list_cache_ttl_seconds)

    return _will_list_cache
