"""
Cache interception.

``wrap_operation`` is the single integration seam: it takes a cache mode,
options and an async operation, and returns a replacement with the same
call contract. ``use_cache``, ``use_cache_put`` and ``use_cache_evict``
are decorator spellings of the same call.

Modes:

- READ_THROUGH: return the stored value on a hit, otherwise run the
  operation and store its result when cacheable.
- WRITE_THROUGH: always run the operation and overwrite the stored value
  when cacheable.
- INVALIDATE: always run the operation, then delete the configured keys.

Store failures propagate to the caller. The only swallowed condition is a
named store that is not registered, which bypasses the cache with a
warning. Concurrent misses on the same key may both run the operation.
"""

import functools
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from shared.errors import StoreNotFoundError
from .keys import KeySpec, canonical_json, key_generator_from, receiver_type_name
from .registry import CacheRegistry, get_registry

KeysSpec = Union[None, str, Sequence[str], Callable[..., Union[str, Sequence[str]]]]


class CacheMode(str, Enum):
    """Interception modes."""
    READ_THROUGH = "read_through"
    WRITE_THROUGH = "write_through"
    INVALIDATE = "invalidate"


@dataclass
class CacheOptions:
    """Per-operation cache options.

    ``ttl`` is in milliseconds and falls back to the registry default.
    ``registry`` defaults to the process-wide registry, resolved per call.
    """
    name: Optional[str] = None
    skip: Optional[Callable[..., bool]] = None
    key: KeySpec = None
    keys: KeysSpec = None
    ttl: Optional[int] = None
    is_cacheable: Optional[Callable[..., bool]] = None
    registry: Optional[CacheRegistry] = None


@dataclass
class CacheCall:
    """One intercepted invocation."""
    operation: Callable[..., Awaitable[Any]]
    operation_name: str
    receiver: Any
    args: Tuple[Any, ...]
    kwargs: Dict[str, Any] = field(default_factory=dict)
    raw_args: Tuple[Any, ...] = ()

    @property
    def context_args(self) -> Tuple[Any, ...]:
        """Arguments for option callables: receiver first when there is one."""
        if self.receiver is not None:
            return (self.receiver, *self.args)
        return self.args

    @property
    def label(self) -> str:
        owner = receiver_type_name(self.receiver) or "function"
        return f"[{owner}:{self.operation_name}]"

    async def invoke(self) -> Any:
        return await self.operation(*self.raw_args, **self.kwargs)


def _defined_in_class(operation: Callable[..., Any]) -> bool:
    parts = getattr(operation, "__qualname__", "").split(".")
    return len(parts) > 1 and parts[-2] != "<locals>"


def _record(registry: CacheRegistry, call: CacheCall, mode: "CacheMode", result: str) -> None:
    if registry.metrics is not None:
        registry.metrics.record(call.label.strip("[]"), mode.value, result)


def _generate_key(call: CacheCall, options: CacheOptions) -> str:
    generator = key_generator_from(options.key)
    return generator.generate(call.receiver, call.operation_name, *call.args, **call.kwargs)


async def _store_if_cacheable(
    store: Any,
    registry: CacheRegistry,
    call: CacheCall,
    options: CacheOptions,
    mode: CacheMode,
    value: Any,
    key: Optional[str] = None,
) -> bool:
    call_site_ok = True
    if options.is_cacheable is not None:
        call_site_ok = bool(options.is_cacheable(value, *call.args, **call.kwargs))

    if not (registry.is_cacheable(value) and call_site_ok):
        registry.logger.warning(f"{call.label} Cache not saved. is_cacheable returned false")
        _record(registry, call, mode, "not_cacheable")
        return False

    if key is None:
        key = _generate_key(call, options)
    ttl = options.ttl if options.ttl is not None else registry.default_ttl

    await store.set(key, value, ttl)
    _record(registry, call, mode, "stored")
    return True


async def _read_through(store: Any, registry: CacheRegistry, call: CacheCall, options: CacheOptions) -> Any:
    logger = registry.logger
    key = _generate_key(call, options)

    cached = await store.get(key)
    if cached is not None:
        logger.info(f"{call.label} Cache hit: {key}")
        _record(registry, call, CacheMode.READ_THROUGH, "hit")
        return cached

    logger.info(f"{call.label} Cache miss: {key}")
    _record(registry, call, CacheMode.READ_THROUGH, "miss")

    value = await call.invoke()
    await _store_if_cacheable(store, registry, call, options, CacheMode.READ_THROUGH, value, key)
    return value


async def _write_through(store: Any, registry: CacheRegistry, call: CacheCall, options: CacheOptions) -> Any:
    value = await call.invoke()
    await _store_if_cacheable(store, registry, call, options, CacheMode.WRITE_THROUGH, value)
    return value


def _resolve_keys(call: CacheCall, spec: KeysSpec) -> List[str]:
    if callable(spec):
        spec = spec(*call.context_args, **call.kwargs)
    if isinstance(spec, str):
        return [spec]
    return [str(key) for key in spec]


async def _invalidate(store: Any, registry: CacheRegistry, call: CacheCall, options: CacheOptions) -> Any:
    value = await call.invoke()

    if options.keys is None or options.keys == "":
        registry.logger.warning(f"{call.label} keys must be supplied to invalidate cache entries")
        return value

    keys = _resolve_keys(call, options.keys)
    await store.delete(keys)
    registry.logger.info(f"{call.label} Cache evicted: {', '.join(keys)}")
    _record(registry, call, CacheMode.INVALIDATE, "evicted")
    return value


_RUNNERS = {
    CacheMode.READ_THROUGH: _read_through,
    CacheMode.WRITE_THROUGH: _write_through,
    CacheMode.INVALIDATE: _invalidate,
}


async def _intercept(mode: CacheMode, call: CacheCall, options: CacheOptions) -> Any:
    registry = options.registry or get_registry()
    logger = registry.logger

    if registry.is_disabled:
        logger.info(
            f"{call.label} Cache skipped. Cache registry is disabled. "
            "Call enable() on the registry to enable cache."
        )
        _record(registry, call, mode, "bypass")
        return await call.invoke()

    if options.skip is not None and options.skip(*call.context_args, **call.kwargs):
        logger.info(f"{call.label} Cache skipped. Skip predicate matched {canonical_json(list(call.args))}")
        _record(registry, call, mode, "bypass")
        return await call.invoke()

    if options.name:
        try:
            store = registry.require_store(options.name)
        except StoreNotFoundError as e:
            logger.warning(f"{call.label} Cache skipped. {e.message}")
            _record(registry, call, mode, "bypass")
            return await call.invoke()
    else:
        store = registry.get_default_store()

    return await _RUNNERS[mode](store, registry, call, options)


def wrap_operation(
    mode: Union[CacheMode, str],
    operation: Callable[..., Awaitable[Any]],
    options: Optional[CacheOptions] = None,
    *,
    method: Optional[bool] = None,
) -> Callable[..., Awaitable[Any]]:
    """Wrap an async operation with cache interception.

    The receiver used for keys and option callables is ``__self__`` for
    bound methods. For functions defined in a class body it is the first
    positional argument. Pass ``method`` to override the detection, e.g.
    for static methods.
    """
    mode = CacheMode(mode)
    if not inspect.iscoroutinefunction(operation):
        raise TypeError(
            f"Cache {mode.value} can only wrap async functions, "
            f"but {getattr(operation, '__name__', operation)!r} is not one"
        )

    options = options or CacheOptions()
    operation_name = getattr(operation, "__name__", type(operation).__name__)
    bound_receiver = operation.__self__ if inspect.ismethod(operation) else None
    receiver_in_args = method if method is not None else (
        bound_receiver is None and _defined_in_class(operation)
    )

    @functools.wraps(operation)
    async def wrapper(*args, **kwargs) -> Any:
        if receiver_in_args and args:
            receiver, call_args = args[0], args[1:]
        else:
            receiver, call_args = bound_receiver, args

        call = CacheCall(
            operation=operation,
            operation_name=operation_name,
            receiver=receiver,
            args=call_args,
            kwargs=kwargs,
            raw_args=args,
        )
        return await _intercept(mode, call, options)

    return wrapper


def _decorator(mode: CacheMode, func: Optional[Callable[..., Awaitable[Any]]], method: Optional[bool], options: CacheOptions):
    def decorator(f: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        return wrap_operation(mode, f, options, method=method)

    if func is not None:
        return decorator(func)
    return decorator


def use_cache(
    func: Optional[Callable[..., Awaitable[Any]]] = None,
    *,
    name: Optional[str] = None,
    skip: Optional[Callable[..., bool]] = None,
    key: KeySpec = None,
    ttl: Optional[int] = None,
    is_cacheable: Optional[Callable[..., bool]] = None,
    registry: Optional[CacheRegistry] = None,
    method: Optional[bool] = None,
):
    """Read-through caching decorator. Usable bare or with options."""
    options = CacheOptions(name=name, skip=skip, key=key, ttl=ttl, is_cacheable=is_cacheable, registry=registry)
    return _decorator(CacheMode.READ_THROUGH, func, method, options)


def use_cache_put(
    func: Optional[Callable[..., Awaitable[Any]]] = None,
    *,
    name: Optional[str] = None,
    skip: Optional[Callable[..., bool]] = None,
    key: KeySpec = None,
    ttl: Optional[int] = None,
    is_cacheable: Optional[Callable[..., bool]] = None,
    registry: Optional[CacheRegistry] = None,
    method: Optional[bool] = None,
):
    """Write-through caching decorator."""
    options = CacheOptions(name=name, skip=skip, key=key, ttl=ttl, is_cacheable=is_cacheable, registry=registry)
    return _decorator(CacheMode.WRITE_THROUGH, func, method, options)


def use_cache_evict(
    func: Optional[Callable[..., Awaitable[Any]]] = None,
    *,
    keys: KeysSpec = None,
    name: Optional[str] = None,
    skip: Optional[Callable[..., bool]] = None,
    registry: Optional[CacheRegistry] = None,
    method: Optional[bool] = None,
):
    """Invalidation decorator; ``keys`` is a key, a list of keys or a function returning either."""
    options = CacheOptions(name=name, skip=skip, keys=keys, registry=registry)
    return _decorator(CacheMode.INVALIDATE, func, method, options)
