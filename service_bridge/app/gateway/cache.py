"""
In-memory response cache with per-entry expiry.
"""

import hashlib
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from shared.logging import get_logger


DEFAULT_TTL_MS = 60000
DEFAULT_MAX_ENTRIES = 1000


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class ResponseCache:
    """Process-local cache keyed by (function name, normalized arguments).

    Expired entries are treated as absent and dropped on read; a sweep runs when
    the cache grows past ``max_entries``.
    """

    def __init__(
        self,
        enabled: bool = True,
        ttl_ms: int = DEFAULT_TTL_MS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.enabled = enabled
        self.ttl_ms = ttl_ms
        self.max_entries = max_entries
        self.clock = clock
        self.logger = get_logger("gateway.cache")

        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def make_key(function_name: str, args: Optional[Mapping[str, Any]] = None) -> str:
        """Deterministic key: argument order never changes the key."""
        serialized = json.dumps(
            args or {}, sort_keys=True, separators=(",", ":"), default=str, ensure_ascii=False
        )
        digest = hashlib.sha256(serialized.encode("utf-8")).hexdigest()
        return f"{function_name}:{digest}"

    def get(self, key: str, default: Any = None) -> Any:
        if not self.enabled:
            return default

        now = self.clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(now):
                del self._entries[key]
                entry = None

            if entry is None:
                self._misses += 1
                return default

            self._hits += 1
            return entry.value

    def put(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None:
        if not self.enabled:
            return

        ttl = self.ttl_ms if ttl_ms is None else ttl_ms
        entry = CacheEntry(key=key, value=value, expires_at=self.clock() + ttl / 1000.0)

        with self._lock:
            self._entries[key] = entry
            if len(self._entries) > self.max_entries:
                self._evict()

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_function(self, function_name: str) -> int:
        """Drop every entry cached for one logical function."""
        prefix = f"{function_name}:"
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for key in keys:
                del self._entries[key]
        if keys:
            self.logger.debug("Invalidated cached responses", function_name=function_name, count=len(keys))
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def _evict(self) -> None:
        """Purge expired entries, then the soonest-to-expire ones, down to ``max_entries``."""
        self.purge_expired()
        overflow = len(self._entries) - self.max_entries
        if overflow > 0:
            oldest = sorted(self._entries.values(), key=lambda e: e.expires_at)[:overflow]
            for entry in oldest:
                del self._entries[entry.key]
            self.logger.debug("Cache capacity reached, evicted entries", evicted=overflow)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "enabled": self.enabled,
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hit_ratio": self._hits / total if total else 0.0,
                "ttl_ms": self.ttl_ms,
            }
