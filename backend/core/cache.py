# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261017v1
# ---------------------------------------------------------------------------
"""
In-process key/value cache with per-entry TTL.

Backs the brute-force counters and the pending two-factor challenges.  The
store is best-effort: it lives only as long as the process and is bounded by
``maxsize``.  Every public method takes the lock, so a single instance can be
shared by all request threads.
"""

import time
from threading import Lock
from typing import Any, Callable, Optional


class TTLCache:
    """Thread-safe dict whose entries expire ``ttl`` seconds after being set."""

    def __init__(self, maxsize: int = 100_000, clock: Callable[[], float] = time.monotonic):
        self.maxsize = maxsize
        self._clock = clock
        self._data: dict[str, tuple[Any, float]] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            self._purge(self._clock())
            return len(self._data)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return default
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._data[key]
                return default
            return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        with self._lock:
            self._store(key, value, ttl)

    def incr(self, key: str, ttl: float) -> int:
        """
        Increment the counter at *key* and push its expiry to now + *ttl*.
        A missing or expired counter starts at 1.
        """
        with self._lock:
            now = self._clock()
            entry = self._data.get(key)
            count = 1
            if entry is not None and entry[1] > now:
                count = entry[0] + 1
            self._store(key, count, ttl)
            return count

    def pop(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._data.pop(key, None)
            if entry is None or entry[1] <= self._clock():
                return default
            return entry[0]

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def ttl(self, key: str) -> Optional[float]:
        """Seconds left before *key* expires, or None if it is absent."""
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            remaining = entry[1] - self._clock()
            return remaining if remaining > 0 else None

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    # -- internals (caller holds the lock) ---------------------------------

    def _store(self, key: str, value: Any, ttl: float) -> None:
        now = self._clock()
        if key not in self._data and len(self._data) >= self.maxsize:
            self._purge(now)
            if len(self._data) >= self.maxsize:
                # Evict the entry closest to expiry
                oldest = min(self._data, key=lambda k: self._data[k][1])
                del self._data[oldest]
        self._data[key] = (value, now + ttl)

    def _purge(self, now: float) -> None:
        expired = [k for k, (_, exp) in self._data.items() if exp <= now]
        for k in expired:
            del self._data[k]
