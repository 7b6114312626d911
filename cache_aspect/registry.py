"""
Cache registry.

Holds named store registrations and the process-wide cache defaults:
enable flag, default TTL, cacheability predicate and logger. One registry
is shared by the process through ``get_registry``; tests call
``reset_registry`` or inject their own instance through ``CacheOptions``.

Mutating operations carry no locking. Callers must serialize them
relative to concurrent interception traffic.
"""

from collections.abc import Collection
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from shared.config import CacheSettings
from shared.errors import DuplicateRegistrationError, StoreNotFoundError, ValidationError
from shared.logging import configure_logging, get_logger
from shared.metrics import CacheMetrics
from .loggers import JsonCacheLogger, resolve_logger
from .stores import InMemoryCacheStore, RedisCacheStore, is_valid_store, STORE_METHODS

DEFAULT_STORE_NAME = "default"


def is_cacheable(value: Any) -> bool:
    """Default predicate: reject None and empty collections."""
    if value is None:
        return False
    if isinstance(value, (str, bytes, bytearray)):
        return True
    if isinstance(value, Collection):
        return len(value) > 0
    return True


class RegistryConfig(BaseModel):
    """Registry defaults. ``initialize`` replaces all of them at once."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    enabled: bool = True
    default_ttl: Optional[int] = Field(default=None, ge=0)
    is_cacheable: Optional[Callable[[Any], bool]] = None
    logger: Optional[Any] = None
    metrics: Optional[CacheMetrics] = None


class CacheRegistry:
    """Named cache stores plus cache-wide defaults."""

    def __init__(self):
        self._config = RegistryConfig()
        self._stores: Dict[str, Any] = {}
        self._logger: Any = JsonCacheLogger()
        self._log = get_logger("cache_aspect.registry")

    def initialize(self, config: Optional[RegistryConfig] = None, **fields: Any) -> None:
        """Replace the configuration wholesale.

        Fields left unset revert to their defaults, except ``logger``: an
        absent logger keeps the current one.
        """
        if config is None:
            config = RegistryConfig(**fields)
        else:
            config = config.model_copy(update=fields)

        self._config = config
        self._logger = resolve_logger(config.logger, self._logger)

    def register(self, name: str, store: Any) -> None:
        """Register ``store`` under ``name``."""
        if not isinstance(name, str) or not name.strip():
            raise ValidationError(
                "Invalid cache name. Cache's name must be a non-empty string",
                {"name": name},
            )

        if not is_valid_store(store):
            raise ValidationError(
                "Invalid cache store. Cache store must provide "
                + ", ".join(f"'{method}'" for method in STORE_METHODS),
                {"name": name, "type": type(store).__name__},
            )

        if name in self._stores:
            raise DuplicateRegistrationError(name)

        self._stores[name] = store
        self._log.debug("Cache store registered", name=name, type=type(store).__name__)

    def get_store(self, name: str) -> Optional[Any]:
        """Get a store by name, or None."""
        return self._stores.get(name)

    def require_store(self, name: str) -> Any:
        """Get a store by name, raising StoreNotFoundError when missing."""
        store = self._stores.get(name)
        if store is None:
            raise StoreNotFoundError(name)
        return store

    def get_default_store(self) -> Any:
        """First-registered store; registers an in-memory one when empty."""
        if not self._stores:
            self._stores[DEFAULT_STORE_NAME] = InMemoryCacheStore()
            self._log.debug("Registered default in-memory cache store")

        return next(iter(self._stores.values()))

    def all_stores(self) -> List[Tuple[str, Any]]:
        """All registrations in insertion order."""
        return list(self._stores.items())

    def remove_all(self) -> None:
        """Clear every registration."""
        self._stores.clear()
        self._log.debug("Cache stores cleared")

    def enable(self) -> None:
        self._config.enabled = True

    def disable(self) -> None:
        self._config.enabled = False

    @property
    def is_enabled(self) -> bool:
        return self._config.enabled

    @property
    def is_disabled(self) -> bool:
        return not self._config.enabled

    @property
    def default_ttl(self) -> Optional[int]:
        """Default TTL in milliseconds."""
        return self._config.default_ttl

    @property
    def logger(self) -> Any:
        return self._logger

    @property
    def metrics(self) -> Optional[CacheMetrics]:
        return self._config.metrics

    def is_cacheable(self, value: Any) -> bool:
        """Apply the configured cacheability predicate."""
        predicate = self._config.is_cacheable or is_cacheable
        return bool(predicate(value))


_registry: Optional[CacheRegistry] = None


def get_registry() -> CacheRegistry:
    """Get the process-wide registry, creating it on first use."""
    global _registry
    if _registry is None:
        _registry = CacheRegistry()
    return _registry


def reset_registry() -> CacheRegistry:
    """Replace the process-wide registry with a fresh one."""
    global _registry
    _registry = CacheRegistry()
    return _registry


def configure_from_settings(
    settings: CacheSettings,
    registry: Optional[CacheRegistry] = None,
    metrics: Optional[CacheMetrics] = None,
) -> CacheRegistry:
    """Apply environment settings to a registry and register configured stores."""
    registry = registry or get_registry()
    configure_logging(settings.service_name, settings.log_level)

    registry.initialize(
        enabled=settings.enabled,
        default_ttl=settings.default_ttl_ms,
        logger=settings.logger == "json",
        metrics=metrics,
    )

    if settings.store_capacity is not None and registry.get_store(DEFAULT_STORE_NAME) is None:
        registry.register(DEFAULT_STORE_NAME, InMemoryCacheStore(max_entries=settings.store_capacity))

    if settings.redis_url and registry.get_store("redis") is None:
        registry.register("redis", RedisCacheStore(settings.redis_url, prefix=settings.redis_prefix))

    return registry
