"""
Method-level caching for async operations.

Wrap an async operation with ``wrap_operation`` (or the ``use_cache``,
``use_cache_put`` and ``use_cache_evict`` decorators) to memoize its
results in one of the stores registered with the cache registry.
"""

from .interception import (
    CacheMode,
    CacheOptions,
    use_cache,
    use_cache_evict,
    use_cache_put,
    wrap_operation,
)
from .keys import (
    CacheKeyGenerator,
    DefaultCacheKeyGenerator,
    DerivedCacheKeyGenerator,
    FixedCacheKeyGenerator,
    key_generator_from,
)
from .loggers import DisabledCacheLogger, JsonCacheLogger, is_valid_logger
from .registry import (
    CacheRegistry,
    RegistryConfig,
    configure_from_settings,
    get_registry,
    is_cacheable,
    reset_registry,
)
from .stores import CacheItem, CacheStore, InMemoryCacheStore, RedisCacheStore, is_valid_store

__all__ = [
    "CacheItem",
    "CacheKeyGenerator",
    "CacheMode",
    "CacheOptions",
    "CacheRegistry",
    "CacheStore",
    "DefaultCacheKeyGenerator",
    "DerivedCacheKeyGenerator",
    "DisabledCacheLogger",
    "FixedCacheKeyGenerator",
    "InMemoryCacheStore",
    "JsonCacheLogger",
    "RedisCacheStore",
    "RegistryConfig",
    "configure_from_settings",
    "get_registry",
    "is_cacheable",
    "is_valid_logger",
    "is_valid_store",
    "key_generator_from",
    "reset_registry",
    "use_cache",
    "use_cache_evict",
    "use_cache_put",
    "wrap_operation",
]
