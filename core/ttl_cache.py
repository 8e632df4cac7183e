# core/ttl_cache.py
import threading
import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, Optional, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class TTLCache(Generic[K, V]):
    """
    Bounded LRU cache with per-entry expiry.

    - get() refreshes recency on a hit and drops expired entries.
    - set() evicts the least recently used entry once over capacity.
    - All operations hold one lock, so reorder-on-hit and eviction stay consistent
      when called from several threads or tasks.
    """

    def __init__(
        self,
        max_size: int = 50,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self._max = max_size
        self._ttl = ttl_seconds
        self._clock = clock
        self._data: "OrderedDict[K, tuple[V, float]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                self.misses += 1
                return None
            value, stored_at = entry
            if self._clock() - stored_at > self._ttl:
                del self._data[key]
                self.misses += 1
                return None
            self._data.move_to_end(key)
            self.hits += 1
            return value

    def set(self, key: K, value: V) -> None:
        with self._lock:
            self._data[key] = (value, self._clock())
            self._data.move_to_end(key)
            while len(self._data) > self._max:
                self._data.popitem(last=False)

    def get_or_set(self, key: K, factory: Callable[[], V]) -> V:
        with self._lock:
            entry = self._data.get(key)
            now = self._clock()
            if entry is not None and now - entry[1] <= self._ttl:
                self._data.move_to_end(key)
                self.hits += 1
                return entry[0]
            self.misses += 1
            value = factory()
            self._data[key] = (value, now)
            self._data.move_to_end(key)
            while len(self._data) > self._max:
                self._data.popitem(last=False)
            return value

    def evict(self, key: K) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            stale = [k for k, (_, t) in self._data.items() if now - t > self._ttl]
            for k in stale:
                del self._data[k]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def keys(self) -> list[K]:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._data.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
