"""
Cache store contract.

Any backend registered with the cache registry must expose the five async
operations below. Subclassing ``CacheStore`` is optional; registration only
probes for the capabilities with ``is_valid_store``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Union

from shared.errors import ValidationError

STORE_METHODS = ("get", "get_many", "set", "set_many", "delete")


@dataclass
class CacheItem:
    """One ``set_many`` entry. ``ttl`` is in milliseconds."""
    key: str
    value: Any
    ttl: Optional[int] = None


class CacheStore(ABC):
    """Abstract cache store."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the value for ``key`` or None when missing or expired."""

    @abstractmethod
    async def get_many(self, keys: Sequence[str]) -> List[Optional[Any]]:
        """Return values aligned to ``keys``."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store ``value`` under ``key``, replacing value and expiry."""

    @abstractmethod
    async def set_many(self, entries: Iterable[CacheItem]) -> List[bool]:
        """Store every entry, returning per-entry results in order."""

    @abstractmethod
    async def delete(self, key: Union[str, Sequence[str]]) -> bool:
        """Remove one key or several. Missing keys are not an error."""


def is_valid_store(store: Any) -> bool:
    """Check that ``store`` exposes every method of the store contract."""
    return store is not None and all(
        callable(getattr(store, method, None)) for method in STORE_METHODS
    )


def validate_ttl(ttl: Optional[int]) -> Optional[int]:
    """Reject negative TTLs; None and 0 mean no expiry."""
    if ttl is None:
        return None
    if isinstance(ttl, bool) or not isinstance(ttl, int):
        raise ValidationError("TTL must be an integer number of milliseconds", {"ttl": ttl})
    if ttl < 0:
        raise ValidationError("TTL cannot be negative", {"ttl": ttl})
    return ttl


def normalize_keys(key: Union[str, Sequence[str]]) -> List[str]:
    """Turn a single key or a sequence of keys into a list."""
    if isinstance(key, str):
        return [key]
    return [str(k) for k in key]
