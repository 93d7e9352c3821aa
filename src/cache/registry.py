"""One TTL cache per semantic namespace, plus key helpers."""

from __future__ import annotations

import hashlib
import time
from typing import Callable, Dict, Optional

from src.cache.ttl_cache import CacheBackend, CacheStats, CacheSweeper, TTLCache
from src.common.config import CacheSettings, load_cache_settings

USERS = "users"
TALKS = "talks"
GENERATED = "generated"
VALIDATION = "validation"
CHURCH_CONTENT = "church_content"


class CacheRegistry:
    """Owns the namespace caches and their sweeper."""

    def __init__(
        self,
        settings: Optional[CacheSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or load_cache_settings()
        self._caches: Dict[str, CacheBackend] = {
            namespace: TTLCache(namespace, ttl, clock=clock)
            for namespace, ttl in self.settings.namespace_ttls.items()
        }
        self._sweeper = CacheSweeper(self._caches.values(), interval_sec=self.settings.sweep_interval_sec)

    def namespace(self, name: str) -> CacheBackend:
        try:
            return self._caches[name]
        except KeyError as exc:
            raise KeyError(f"Unknown cache namespace: {name}") from exc

    def register(self, cache: CacheBackend) -> None:
        """Add or replace a namespace (e.g. with a distributed backend)."""
        self._caches[cache.namespace] = cache
        was_running = self.sweeper_running
        self._sweeper.stop(timeout=1.0)
        self._sweeper = CacheSweeper(self._caches.values(), interval_sec=self.settings.sweep_interval_sec)
        if was_running:
            self._sweeper.start()

    def start_sweeper(self) -> None:
        self._sweeper.start()

    def stop_sweeper(self) -> None:
        self._sweeper.stop(timeout=1.0)

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper.running

    def sweep(self) -> int:
        return self._sweeper.sweep_once()

    def stats(self) -> Dict[str, CacheStats]:
        return {name: cache.stats() for name, cache in self._caches.items()}


# ============================================================================
# Key helpers
# ============================================================================


def content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:32]


def talk_generation_key(prompt_fragment: str, duration_minutes: int) -> str:
    """Key for a generated talk: the full sanitized prompt fragment and duration.

    Two requests share a key only when the model would receive the same
    questionnaire text.
    """
    return f"generation:{duration_minutes}:{content_hash(prompt_fragment)}"


def host_validation_key(hostname: str) -> str:
    return f"host_validation:{hostname.lower()}"


def content_validation_key(c_hash: str) -> str:
    return f"content_validation:{c_hash}"
