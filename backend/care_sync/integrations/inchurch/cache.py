"""
Read-through response cache for InChurch GET requests.
"""

import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class CacheStats:
    """Cache counters."""
    keys: int
    hits: int
    misses: int


class ResponseCache:
    """
    TTL cache bounded by key count.

    Entries expire `ttl_seconds` after insertion. When the key bound is
    reached the oldest entry is evicted.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_keys: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_keys = max_keys
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(method: str, endpoint: str, body: Optional[Any] = None) -> str:
        """Builds the cache key from method, endpoint and serialized body."""
        serialized = json.dumps(body or {}, sort_keys=True, default=str)
        return f"{method.upper()}:{endpoint}:{serialized}"

    def get(self, key: str) -> Any:
        """Returns the cached value, or None when absent or expired."""
        entry = self._entries.get(key, _MISSING)
        if entry is _MISSING:
            self.misses += 1
            return None

        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            self.misses += 1
            return None

        self.hits += 1
        return value

    def set(self, key: str, value: Any) -> None:
        """Stores a value, evicting expired and then oldest entries."""
        if self.ttl_seconds <= 0:
            return

        now = self._clock()
        if key in self._entries:
            del self._entries[key]

        if len(self._entries) >= self.max_keys:
            self._purge_expired(now)
        while len(self._entries) >= self.max_keys:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Cache full, evicted {evicted}")

        self._entries[key] = (now + self.ttl_seconds, value)

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

    def clear(self) -> None:
        """Drops every entry."""
        self._entries.clear()

    def stats(self) -> CacheStats:
        self._purge_expired(self._clock())
        return CacheStats(keys=len(self._entries), hits=self.hits, misses=self.misses)

    def __len__(self) -> int:
        return len(self._entries)
