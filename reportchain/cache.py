"""
Advisory read cache.

Holds values derived from ledger reads (resolved roles, institution
snapshots) for a bounded time. Entries are hints for display and for
stale-role detection; write-gating checks always read the ledger.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, Optional, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


# ════════════════════════════════════════════════════════════════════════════
# CACHE ENTRY
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class CacheEntry(Generic[V]):
    """A cached value with its expiry."""
    value: V
    expires_at: Optional[float] = None

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and time.monotonic() > self.expires_at


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    expirations: int = 0
    evictions: int = 0
    invalidations: int = 0

    @property
    def hit_ratio(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "expirations": self.expirations,
            "evictions": self.evictions,
            "invalidations": self.invalidations,
            "hit_ratio": round(self.hit_ratio, 4),
        }


# ════════════════════════════════════════════════════════════════════════════
# TTL CACHE
# ════════════════════════════════════════════════════════════════════════════


class TTLCache(Generic[K, V]):
    """
    Size-bounded cache with time-to-live expiry.

    Least recently used entries are evicted first when full. A TTL of zero
    disables caching entirely.

    Example:
        cache = TTLCache(max_size=256, default_ttl_seconds=30)
        cache.set(address, Role.VALIDATOR)
        cache.get(address)            # Role.VALIDATOR until 30s elapse
    """

    def __init__(
        self,
        max_size: int = 1024,
        default_ttl_seconds: float = 30.0,
        on_invalidate: Optional[Callable[[K], None]] = None,
    ):
        self._max_size = max_size
        self._default_ttl = default_ttl_seconds
        self._entries: "OrderedDict[K, CacheEntry[V]]" = OrderedDict()
        self._lock = threading.RLock()
        self._stats = CacheStats()
        self._on_invalidate = on_invalidate

    @property
    def enabled(self) -> bool:
        return self._default_ttl > 0

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                return default
            if entry.is_expired:
                del self._entries[key]
                self._stats.expirations += 1
                self._stats.misses += 1
                return default
            self._entries.move_to_end(key)
            self._stats.hits += 1
            return entry.value

    def set(self, key: K, value: V, ttl: Optional[float] = None) -> None:
        ttl = self._default_ttl if ttl is None else ttl
        if ttl <= 0:
            return
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            while len(self._entries) >= self._max_size and key not in self._entries:
                self._entries.popitem(last=False)
                self._stats.evictions += 1
            self._entries[key] = CacheEntry(value=value, expires_at=time.monotonic() + ttl)

    def invalidate(self, key: K) -> bool:
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            if removed:
                self._stats.invalidations += 1
        if removed and self._on_invalidate:
            self._on_invalidate(key)
        return removed

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._stats.invalidations += count
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._entries.get(key)  # type: ignore[call-overload]
            return entry is not None and not entry.is_expired

    @property
    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(**vars(self._stats))
