"""
Bounded in-memory cache with per-entry time-to-live.

Used for generation results (keyed by request text + diagram kind) and for
rendered images (keyed by diagram text + format). Staleness is acceptable, so
there is no cross-request coordination beyond the lock guarding the map.
"""

import hashlib
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    value: T
    stored_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.stored_at > self.ttl


class MemoryCache(Generic[T]):
    """Insertion-ordered map that evicts expired entries first, then the oldest."""

    def __init__(
        self,
        max_size: int = 100,
        default_ttl: float = 300.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> T | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expired(self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: T, ttl: float | None = None) -> None:
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_size:
                evicted_key, _ = self._entries.popitem(last=False)
                logger.debug("Cache full (%s entries); evicted %s", self.max_size, evicted_key)
            self._entries[key] = CacheEntry(
                value=value,
                stored_at=now,
                ttl=self.default_ttl if ttl is None else ttl,
            )

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired(self._clock())
            return len(self._entries)

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if entry.expired(now)]
        for key in expired:
            del self._entries[key]


class NullCache(MemoryCache[Any]):
    """Cache that never stores anything."""

    def __init__(self) -> None:
        super().__init__(max_size=1, default_ttl=0.0)

    def get(self, key: str) -> Any:
        return None

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        return None


def make_cache_key(*parts: str) -> str:
    joined = "\x1f".join(parts)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


def diagram_cache_key(description: str, diagram_kind: str) -> str:
    return make_cache_key(description.strip().lower(), diagram_kind)


def render_cache_key(plantuml: str, fmt: str) -> str:
    return make_cache_key(plantuml.strip(), fmt)
