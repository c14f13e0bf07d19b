"""Time-bounded cache for AI judgments.

Entries are keyed by a content hash (see ``create_cache_key``) and expire
after a fixed TTL. Expiry is checked on read: an entry older than the TTL is
treated as absent and evicted. Values are pure functions of their keys, so
concurrent writers can only ever store the same value; the lock exists only
to keep the underlying dict consistent.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from echo_pdk.constants import JUDGE_CACHE_TTL_SECONDS

__all__ = [
    "CacheEntry",
    "JudgeCache",
    "default_judge_cache",
]


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A cached judgment.

    Attributes:
        result: The judge's answer.
        timestamp: Clock reading when the answer was stored.
    """

    result: bool
    timestamp: float


class JudgeCache:
    """In-memory TTL cache of judge results.

    Args:
        ttl: Seconds an entry stays live.
        clock: Monotonic clock returning seconds. Injectable for tests.

    Example:
        ```python
        now = [0.0]
        cache = JudgeCache(ttl=300, clock=lambda: now[0])
        cache.set("k", True)
        now[0] = 301
        assert cache.get("k") is None
        ```
    """

    def __init__(
        self,
        ttl: float = JUDGE_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> bool | None:
        """Return the live cached result for ``key``, or None."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.timestamp > self.ttl:
                del self._entries[key]
                return None
            return entry.result

    def set(self, key: str, result: bool) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(result=result, timestamp=self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_default_cache = JudgeCache()


def default_judge_cache() -> JudgeCache:
    """The process-wide cache shared by judges created without one."""
    return _default_cache
