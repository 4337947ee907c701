"""Bounded in-memory result cache.

LRU eviction bounded both by entry count and by the estimated byte size of the
stored values; per-entry TTL checked lazily on access. All operations take a
lock, so one cache can be shared between the event loop and worker threads.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from treeflow.core.config import CacheSettings

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 1000
DEFAULT_MAX_SIZE_BYTES = 50 * 1024 * 1024
DEFAULT_TTL_SECONDS = 3600.0

# Size charged for values that cannot be JSON-encoded
FALLBACK_SIZE = 1000


@dataclass
class CacheMetrics:
    hits: int
    misses: int
    evictions: int
    size: int
    size_bytes: int
    hit_rate: float  # Percentage of lookups that hit, 0-100


@dataclass
class _Entry:
    value: Any
    size: int
    expires_at: float | None


def estimate_size(value: Any) -> int:
    """Length of the JSON encoding of `value`, or FALLBACK_SIZE."""
    try:
        return len(json.dumps(value))
    except (TypeError, ValueError, RecursionError):
        return FALLBACK_SIZE


class ResultCache:
    """Thread-safe LRU cache with byte-size bound and lazy expiry.

    Args:
        max_items: Maximum number of live entries.
        max_size_bytes: Maximum total estimated size. Single values larger
            than this are never stored.
        default_ttl: Seconds an entry lives when `set` gets no ttl.
            None means entries never expire by default.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        max_items: int = DEFAULT_MAX_ITEMS,
        max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES,
        default_ttl: float | None = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_items <= 0:
            raise ValueError(f"max_items must be positive, got {max_items}")
        if max_size_bytes <= 0:
            raise ValueError(f"max_size_bytes must be positive, got {max_size_bytes}")
        self.max_items = max_items
        self.max_size_bytes = max_size_bytes
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = threading.Lock()
        self._size_bytes = 0
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @classmethod
    def from_settings(cls, settings: CacheSettings, **kwargs: Any) -> ResultCache:
        return cls(
            max_items=settings.max_items,
            max_size_bytes=settings.max_size_bytes,
            default_ttl=settings.default_ttl_seconds,
            **kwargs,
        )

    # Callers must hold self._lock for the helpers below

    def _is_expired(self, entry: _Entry) -> bool:
        return entry.expires_at is not None and self._clock() >= entry.expires_at

    def _remove(self, key: str) -> None:
        entry = self._entries.pop(key)
        self._size_bytes -= entry.size

    def _evict_over_capacity(self) -> None:
        while len(self._entries) > self.max_items or self._size_bytes > self.max_size_bytes:
            key, entry = self._entries.popitem(last=False)
            self._size_bytes -= entry.size
            self._evictions += 1
            logger.debug(f"Evicted cache entry {key[:16]}")

    def _prune(self) -> int:
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry)]
        for key in expired:
            self._remove(key)
        return len(expired)

    # Public API

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for `key` and mark it recently used."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._is_expired(entry):
                self._remove(key)
                entry = None
            if entry is None:
                self._misses += 1
                return default
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None, size: int | None = None) -> bool:
        """Store `value`, evicting least recently used entries as needed.

        Args:
            ttl: Seconds until expiry; defaults to `default_ttl`. 0 expires
                immediately.
            size: Size to charge; defaults to `estimate_size(value)`.

        Returns:
            False if the value alone exceeds `max_size_bytes` and was not stored.
        """
        if ttl is None:
            ttl = self.default_ttl
        if ttl is not None and ttl < 0:
            raise ValueError(f"ttl must not be negative, got {ttl}")
        if size is None:
            size = estimate_size(value)

        with self._lock:
            if key in self._entries:
                self._remove(key)
            if size > self.max_size_bytes:
                logger.debug(
                    f"Value for {key[:16]} not cached: {size} bytes exceeds "
                    f"the {self.max_size_bytes} byte limit"
                )
                return False
            expires_at = self._clock() + ttl if ttl is not None else None
            self._entries[key] = _Entry(value=value, size=size, expires_at=expires_at)
            self._size_bytes += size
            self._evict_over_capacity()
        return True

    def has(self, key: str) -> bool:
        """True if a live entry exists. Does not affect recency or metrics."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if self._is_expired(entry):
                self._remove(key)
                return False
            return True

    def invalidate(self, key: str) -> bool:
        with self._lock:
            if key not in self._entries:
                return False
            self._remove(key)
            return True

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every key starting with `prefix`; returns how many were dropped."""
        with self._lock:
            matching = [key for key in self._entries if key.startswith(prefix)]
            for key in matching:
                self._remove(key)
            return len(matching)

    def prune_expired(self) -> int:
        with self._lock:
            return self._prune()

    def clear(self) -> None:
        """Drop all entries and reset metrics."""
        with self._lock:
            self._entries.clear()
            self._size_bytes = 0
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def keys(self) -> list[str]:
        """Live keys, least recently used first."""
        with self._lock:
            self._prune()
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            self._prune()
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def metrics(self) -> CacheMetrics:
        with self._lock:
            total = self._hits + self._misses
            return CacheMetrics(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                size=len(self._entries),
                size_bytes=self._size_bytes,
                hit_rate=(self._hits / total) * 100 if total else 0.0,
            )
