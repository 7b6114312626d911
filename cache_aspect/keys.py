"""
Cache key generation strategies.
"""

import base64
import dataclasses
import inspect
import json
import re
from abc import ABC, abstractmethod
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union
from uuid import UUID

from pydantic import BaseModel

from shared.errors import ValidationError

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_SEPARATORS = re.compile(r"[\s_]+")


def to_kebab_case(value: str) -> str:
    """``UserService:find_by_id`` -> ``user-service:find-by-id``."""
    value = _ACRONYM_BOUNDARY.sub(r"\1-\2", value)
    value = _CAMEL_BOUNDARY.sub(r"\1-\2", value)
    value = _SEPARATORS.sub("-", value)
    return value.strip("-").lower()


def _json_key(key: Any) -> str:
    if isinstance(key, str):
        return key
    if key is None or isinstance(key, (bool, int, float)):
        return json.dumps(key)
    return canonical_json(key)


def _with_string_keys(value: Any) -> Any:
    """Stringify mapping keys the way JSON would, so mixed key types still sort."""
    if isinstance(value, dict):
        return {_json_key(k): _with_string_keys(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_with_string_keys(v) for v in value]
    return value


def _object_fields(value: Any) -> Optional[Dict[str, Any]]:
    fields: Dict[str, Any] = {}
    for cls in reversed(type(value).__mro__):
        slots = cls.__dict__.get("__slots__", ())
        for slot in ([slots] if isinstance(slots, str) else slots):
            if slot not in ("__dict__", "__weakref__") and hasattr(value, slot):
                fields[slot] = getattr(value, slot)
    if hasattr(value, "__dict__"):
        fields.update(vars(value))
    elif not fields:
        return None
    return fields


def _to_json(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=canonical_json)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, type) or inspect.isroutine(value):
        return f"{getattr(value, '__module__', '')}.{getattr(value, '__qualname__', value.__name__)}"

    fields = _object_fields(value)
    if fields is not None:
        return fields
    return str(value)


def _json_default(value: Any) -> Any:
    return _with_string_keys(_to_json(value))


def canonical_json(value: Any) -> str:
    """Serialize ``value`` deterministically.

    Plain objects serialize as their instance fields, never their repr.
    """
    return json.dumps(
        _with_string_keys(value), sort_keys=True, separators=(",", ":"), default=_json_default
    )


def receiver_type_name(target: Any) -> Optional[str]:
    """Type name used for keys and log labels; None when there is no receiver."""
    if target is None:
        return None
    if isinstance(target, type):
        return target.__name__
    return type(target).__name__


class CacheKeyGenerator(ABC):
    """Turns (receiver, operation name, arguments) into a cache key."""

    @abstractmethod
    def generate(self, target: Any, method: str, *args: Any, **kwargs: Any) -> str:
        """Generate the key for one call."""


class DefaultCacheKeyGenerator(CacheKeyGenerator):
    """``<receiver-type>:<operation>:<base64 canonical JSON of the arguments>``.

    Positional-only calls serialize the argument list. Calls with keyword
    arguments serialize ``{"args": [...], "kwargs": {...}}``.
    """

    def __init__(self, namespace: Optional[str] = None):
        self.namespace = namespace

    def generate(self, target: Any, method: str, *args: Any, **kwargs: Any) -> str:
        payload: Any = list(args)
        if kwargs:
            payload = {"args": list(args), "kwargs": kwargs}
        encoded = base64.b64encode(canonical_json(payload).encode("utf-8")).decode("ascii")

        owner = receiver_type_name(target) or self.namespace or "function"
        return f"{to_kebab_case(f'{owner}:{method}')}:{encoded}"


class FixedCacheKeyGenerator(CacheKeyGenerator):
    """Always returns the same literal, sharing one entry across all calls."""

    def __init__(self, cache_key: str):
        self.cache_key = cache_key

    def generate(self, target: Any, method: str, *args: Any, **kwargs: Any) -> str:
        return self.cache_key


class DerivedCacheKeyGenerator(CacheKeyGenerator):
    """Delegates to a caller-supplied function of the call's arguments.

    The receiver, when there is one, is passed first so the function can
    read state owned by it.
    """

    def __init__(self, fn: Callable[..., str]):
        self.fn = fn

    def generate(self, target: Any, method: str, *args: Any, **kwargs: Any) -> str:
        if target is not None:
            key = self.fn(target, *args, **kwargs)
        else:
            key = self.fn(*args, **kwargs)

        if not isinstance(key, str):
            raise ValidationError(
                "Cache key function must return a string",
                {"method": method, "type": type(key).__name__},
            )
        return key


DEFAULT_KEY_GENERATOR = DefaultCacheKeyGenerator()

KeySpec = Union[None, str, Callable[..., str], CacheKeyGenerator]


def key_generator_from(value: KeySpec) -> CacheKeyGenerator:
    """Select a strategy: instance as-is, str -> fixed, callable -> derived, else default."""
    if isinstance(value, CacheKeyGenerator):
        return value
    if isinstance(value, str):
        return FixedCacheKeyGenerator(value)
    if callable(value):
        return DerivedCacheKeyGenerator(value)
    return DEFAULT_KEY_GENERATOR
