"""
Time-bounded memoization for oracle responses.

Entries are keyed by a composite tuple and expire after a fixed TTL.
There is no explicit invalidation beyond expiry.
"""

import hashlib
import logging
import threading
import time
from typing import Any, Callable, Hashable, Optional

# Configure module logger
logger = logging.getLogger(__name__)


def content_key(*parts: Any) -> str:
    """Stable digest of the given parts, for use inside composite keys."""
    joined = "\x1f".join("" if p is None else str(p) for p in parts)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:16]


class TTLCache:
    """
    In-process key -> (value, stored_at) map with a fixed time-to-live.

    Args:
        ttl_seconds: Lifetime of an entry
        clock: Callable returning monotonic seconds; injectable for tests
    """

    def __init__(self, ttl_seconds: float, clock: Optional[Callable[[], float]] = None):
        if ttl_seconds < 0:
            raise ValueError(f"ttl_seconds cannot be negative, got {ttl_seconds}")
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: dict[Hashable, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            value, stored_at = entry
            if now - stored_at >= self.ttl_seconds:
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock())

    def purge_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, ts) in self._entries.items() if now - ts >= self.ttl_seconds]
            for k in expired:
                del self._entries[k]
        if expired:
            logger.debug(f"Purged {len(expired)} expired cache entries")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
