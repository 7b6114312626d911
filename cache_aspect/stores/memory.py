"""
Bounded in-memory cache store with lazy TTL expiry and FIFO eviction.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from .base import CacheItem, CacheStore, normalize_keys, validate_ttl

DEFAULT_MAX_ENTRIES = 2 ** 24 - 1


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass
class CacheEntry:
    """Stored value plus optional absolute expiry in clock milliseconds."""
    value: Any
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class InMemoryCacheStore(CacheStore):
    """Reference cache store.

    Entries expire lazily: an expired entry is removed by the ``get`` that
    finds it. When a new key is inserted at capacity the single oldest
    surviving entry is evicted. Overwriting an existing key keeps its
    insertion position and never evicts.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES, clock: Optional[Callable[[], float]] = None):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._clock = clock or _monotonic_ms
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        """Number of stored entries, expired ones included until read."""
        return len(self._entries)

    def _read(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None
        return entry.value

    def _write(self, key: str, value: Any, ttl: Optional[int]) -> bool:
        ttl = validate_ttl(ttl)
        expires_at = self._clock() + ttl if ttl else None

        if key not in self._entries and len(self._entries) >= self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]

        self._entries[key] = CacheEntry(value=value, expires_at=expires_at)
        return True

    async def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._read(key)

    async def get_many(self, keys: Sequence[str]) -> List[Optional[Any]]:
        with self._lock:
            return [self._read(key) for key in keys]

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        with self._lock:
            return self._write(key, value, ttl)

    async def set_many(self, entries: Iterable[CacheItem]) -> List[bool]:
        with self._lock:
            return [self._write(entry.key, entry.value, entry.ttl) for entry in entries]

    async def delete(self, key: Union[str, Sequence[str]]) -> bool:
        with self._lock:
            for k in normalize_keys(key):
                self._entries.pop(k, None)
        return True

    async def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()
