"""In-process TTL cache.

``CacheBackend`` is the interface callers depend on; ``TTLCache`` is the
single-node implementation (a lock-protected dict). A distributed store can
replace it by implementing the same methods.

Expiry is lazy on read plus a periodic sweep (``CacheSweeper``) so entries
that are never read again still get evicted. Nothing is durable: state is
lost on restart.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Iterable, List, Optional, TypeVar

from src.common.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """Cached value with its absolute expiry (clock seconds)."""

    value: T
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class CacheStats:
    namespace: str
    keys: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class CacheBackend(ABC, Generic[T]):
    """Namespaced key-value store with per-entry expiry."""

    namespace: str
    default_ttl: float

    @abstractmethod
    def get(self, key: str) -> Optional[T]:
        """Return the value, or None on a miss. A miss is never an error."""

    @abstractmethod
    def set(self, key: str, value: T, ttl: Optional[float] = None) -> None:
        """Store value; ``ttl`` defaults to the namespace TTL."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove key; True if it existed."""

    @abstractmethod
    def has(self, key: str) -> bool:
        """True if key holds an unexpired value."""

    @abstractmethod
    def clear(self) -> None:
        """Drop every entry."""

    @abstractmethod
    def sweep(self) -> int:
        """Evict all expired entries; returns the number evicted."""

    @abstractmethod
    def stats(self) -> CacheStats:
        """Current size and hit/miss counters."""


class TTLCache(CacheBackend[T]):
    """Thread-safe TTL map for one namespace.

    Args:
        namespace: Name used in logs and stats.
        default_ttl: TTL in seconds used when ``set`` gets no explicit ttl.
        clock: Monotonic seconds source; injectable for tests.
    """

    def __init__(
        self,
        namespace: str,
        default_ttl: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if default_ttl <= 0:
            raise ValueError(f"default_ttl must be positive, got {default_ttl}")
        self.namespace = namespace
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[T]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(now):
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def set(self, key: str, value: T, ttl: Optional[float] = None) -> None:
        effective_ttl = self.default_ttl if ttl is None else ttl
        if effective_ttl <= 0:
            raise ValueError(f"ttl must be positive, got {effective_ttl}")
        entry = CacheEntry(value=value, expires_at=self._clock() + effective_ttl)
        with self._lock:
            self._entries[key] = entry

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def has(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.is_expired(now):
                del self._entries[key]
                return False
            return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                namespace=self.namespace,
                keys=len(self._entries),
                hits=self._hits,
                misses=self._misses,
            )


class CacheSweeper:
    """Background thread that sweeps a set of caches on a fixed interval."""

    def __init__(self, caches: Iterable[CacheBackend], interval_sec: float = 60.0):
        self._caches: List[CacheBackend] = list(caches)
        self.interval_sec = interval_sec
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def sweep_once(self) -> int:
        evicted = 0
        for cache in self._caches:
            try:
                evicted += cache.sweep()
            except Exception as exc:
                logger.warning(
                    "cache_sweep_failed",
                    extra={"event": "cache_sweep_failed", "namespace": cache.namespace, "error": str(exc)},
                )
        if evicted:
            logger.debug("cache_sweep", extra={"event": "cache_sweep", "evicted": evicted})
        return evicted

    def _run(self) -> None:
        while not self._stop.wait(self.interval_sec):
            self.sweep_once()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="cache-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
