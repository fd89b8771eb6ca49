"""In-memory TTL cache for ranked results.

The cache is advisory: a miss or an expired entry only means the ranking is
recomputed. Entries are keyed per organization so a profile change can drop
everything cached for that organization at once.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, NamedTuple, Optional

logger = logging.getLogger(__name__)


class CacheKey(NamedTuple):
    """Identity of a cached ranking."""
    kind: str
    organization_id: str
    taxonomy_version: str
    locale: str
    max_reasons: Optional[int]
    fingerprint: str = ""  # digest of the profile, candidate records and reference date


class ResultCache:
    """Thread-safe TTL cache with oldest-first eviction."""

    def __init__(
        self,
        ttl_seconds: float = 86400,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[CacheKey, tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> Optional[Any]:
        """Return the cached value, or None on a miss or after expiry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                logger.debug("Cache entry expired: %s/%s", key.kind, key.organization_id)
                return None
            return value

    def set(self, key: CacheKey, value: Any) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (self._clock() + self.ttl_seconds, value)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Cache full, evicted %s/%s", evicted.kind, evicted.organization_id)

    def invalidate(self, organization_id: str) -> int:
        """Drop every entry for an organization. Returns the number removed."""
        with self._lock:
            stale = [k for k in self._entries if k.organization_id == organization_id]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
