from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

T = TypeVar("T")

__all__ = ["CacheEntry", "TtlCache"]


@dataclass(slots=True)
class CacheEntry(Generic[T]):
    value: T
    expires_at: float


class TtlCache(Generic[T]):
    """Bounded key/value cache with per-entry expiry.

    Expired entries are dropped lazily when read. When the cache is full the
    oldest inserted key is evicted. Access is guarded by a lock so a single
    instance can be shared between threads as well as coroutines.
    """

    def __init__(
        self,
        *,
        max_size: int = 256,
        default_ttl: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._clock = clock
        self._storage: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> T | None:
        with self._lock:
            entry = self._storage.get(key)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._storage[key]
                return None
            return entry.value

    def set(self, key: str, value: T, ttl: float | None = None) -> None:
        effective_ttl = self._default_ttl if ttl is None else ttl
        if effective_ttl <= 0:
            return
        with self._lock:
            if key in self._storage:
                del self._storage[key]
            elif len(self._storage) >= self._max_size:
                self._storage.popitem(last=False)
            self._storage[key] = CacheEntry(value=value, expires_at=self._clock() + effective_ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._storage.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [key for key in self._storage if key.startswith(prefix)]
            for key in doomed:
                del self._storage[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._storage.clear()

    def __len__(self) -> int:
        return len(self._storage)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None
