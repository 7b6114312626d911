"""
Unit tests for read-through cache interception.
"""

import asyncio
import io
import json

import pytest
from unittest.mock import AsyncMock
from prometheus_client import CollectorRegistry

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from cache_aspect.interception import CacheMode, CacheOptions, use_cache, wrap_operation
from cache_aspect.keys import FixedCacheKeyGenerator
from cache_aspect.loggers import JsonCacheLogger
from cache_aspect.registry import CacheRegistry, get_registry, reset_registry
from cache_aspect.stores import InMemoryCacheStore
from shared.errors import StoreOperationError
from shared.metrics import CacheMetrics


class CountingStore(InMemoryCacheStore):
    """In-memory store that counts get/set calls."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.gets = 0
        self.sets = []

    async def get(self, key):
        self.gets += 1
        return await super().get(key)

    async def set(self, key, value, ttl=None):
        self.sets.append((key, value, ttl))
        return await super().set(key, value, ttl)


def make_registry(**config):
    registry = CacheRegistry()
    registry.initialize(logger=False, **config)
    return registry


def as_operation(mock):
    """Expose an AsyncMock as a plain coroutine function."""
    async def operation(*args, **kwargs):
        return await mock(*args, **kwargs)
    return operation


class TestReadThrough:
    """Test cases for read-through interception."""

    @pytest.fixture
    def registry(self):
        return make_registry()

    @pytest.fixture
    def store(self, registry):
        store = CountingStore()
        registry.register("users", store)
        return store

    @pytest.fixture
    def service(self, registry, store):
        class UserService:
            def __init__(self):
                self.calls = 0
                self.tenant = "t-1"

            @use_cache(registry=registry)
            async def find_by_id(self, user_id):
                self.calls += 1
                return {"id": user_id, "call": self.calls}

            @use_cache(registry=registry, key=lambda self, user_id: f"{self.tenant}:users:{user_id}")
            async def find_scoped(self, user_id):
                self.calls += 1
                return {"id": user_id}

            @use_cache(registry=registry)
            async def find_nothing(self, user_id):
                self.calls += 1
                return None

            @use_cache(registry=registry)
            async def find_zero(self):
                self.calls += 1
                return 0

        return UserService()

    @pytest.mark.asyncio
    async def test_miss_then_hit(self, service, store):
        """Test the first call computes and stores, the second is served from cache."""
        first = await service.find_by_id(1)
        second = await service.find_by_id(1)

        assert first == {"id": 1, "call": 1}
        assert second == first
        assert service.calls == 1
        assert len(store.sets) == 1

    @pytest.mark.asyncio
    async def test_different_arguments_miss(self, service):
        await service.find_by_id(1)
        await service.find_by_id(2)

        assert service.calls == 2

    @pytest.mark.asyncio
    async def test_default_key_uses_receiver_and_operation(self, service, store):
        await service.find_by_id(1)

        key = store.sets[0][0]
        assert key.startswith("user-service:find-by-id:")

    @pytest.mark.asyncio
    async def test_derived_key_reads_receiver_state(self, service, store):
        await service.find_scoped(5)

        assert store.sets[0][0] == "t-1:users:5"
        assert await store.get("t-1:users:5") == {"id": 5}

    @pytest.mark.asyncio
    async def test_falsy_cached_value_is_a_hit(self, service, store):
        """Test a present-but-falsy value is returned without recomputing."""
        assert await service.find_zero() == 0
        assert await service.find_zero() == 0

        assert service.calls == 1

    @pytest.mark.asyncio
    async def test_uncacheable_value_is_returned_not_stored(self, service, store):
        """Test the default predicate blocks storage but not the return value."""
        assert await service.find_nothing(1) is None
        assert await service.find_nothing(1) is None

        assert service.calls == 2
        assert store.sets == []

    @pytest.mark.asyncio
    async def test_registry_predicate(self, store):
        registry = make_registry(is_cacheable=lambda value: value.get("public", False))
        registry.register("users", store)
        operation = AsyncMock(return_value={"public": False})
        cached = wrap_operation(CacheMode.READ_THROUGH, as_operation(operation), CacheOptions(registry=registry))

        assert await cached(1) == {"public": False}
        assert store.sets == []

    @pytest.mark.asyncio
    async def test_call_site_predicate(self, registry, store):
        """Test the call-site predicate gets the value and call arguments."""
        seen = []

        def only_even(value, user_id):
            seen.append((value, user_id))
            return user_id % 2 == 0

        async def load(user_id):
            return {"id": user_id}

        cached = wrap_operation(
            CacheMode.READ_THROUGH, load,
            CacheOptions(registry=registry, is_cacheable=only_even),
        )

        await cached(1)
        await cached(2)

        assert seen == [({"id": 1}, 1), ({"id": 2}, 2)]
        assert [value for _, value, _ in store.sets] == [{"id": 2}]

    @pytest.mark.asyncio
    async def test_ttl_option_and_registry_default(self, store):
        registry = make_registry(default_ttl=1000)
        registry.register("users", store)

        async def load(user_id):
            return [user_id]

        with_default = wrap_operation(CacheMode.READ_THROUGH, load, CacheOptions(registry=registry))
        with_option = wrap_operation(CacheMode.READ_THROUGH, load, CacheOptions(registry=registry, ttl=50, key="k"))

        await with_default(1)
        await with_option(1)

        assert [ttl for _, _, ttl in store.sets] == [1000, 50]

    @pytest.mark.asyncio
    async def test_ttl_expiry_recomputes(self, registry):
        now = [0.0]
        store = CountingStore(clock=lambda: now[0])
        registry.register("ttl", store)
        operation = AsyncMock(side_effect=[["a"], ["b"]])

        cached = wrap_operation(
            CacheMode.READ_THROUGH, as_operation(operation),
            CacheOptions(registry=registry, name="ttl", ttl=100, key="fixed"),
        )

        assert await cached() == ["a"]
        now[0] = 50
        assert await cached() == ["a"]
        now[0] = 150
        assert await cached() == ["b"]
        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_fixed_key_shared_across_arguments(self, registry, store):
        operation = AsyncMock(return_value=["all"])
        cached = wrap_operation(
            CacheMode.READ_THROUGH, as_operation(operation),
            CacheOptions(registry=registry, key=FixedCacheKeyGenerator("all-users")),
        )

        await cached({"filter": 1})
        await cached({"filter": 2})

        operation.assert_awaited_once_with({"filter": 1})
        assert store.sets[0][0] == "all-users"

    @pytest.mark.asyncio
    async def test_named_store(self, registry, store):
        other = CountingStore()
        registry.register("other", other)

        async def load(user_id):
            return {"id": user_id}

        cached = wrap_operation(CacheMode.READ_THROUGH, load, CacheOptions(registry=registry, name="other"))
        await cached(1)

        assert len(other.sets) == 1
        assert store.sets == []

    @pytest.mark.asyncio
    async def test_missing_named_store_bypasses_with_warning(self, registry, store):
        """Test an unknown store name runs the operation and warns, without raising."""
        stream = io.StringIO()
        registry.initialize(logger=JsonCacheLogger(stream=stream))
        operation = AsyncMock(return_value={"id": 1})

        cached = wrap_operation(CacheMode.READ_THROUGH, as_operation(operation), CacheOptions(registry=registry, name="nope"))

        assert await cached(1) == {"id": 1}
        assert await cached(1) == {"id": 1}
        assert operation.await_count == 2
        assert store.gets == 0
        records = [json.loads(line) for line in stream.getvalue().splitlines()]
        assert [r["level"] for r in records] == ["warning", "warning"]
        assert "'nope' does not exist" in records[0]["message"]

    @pytest.mark.asyncio
    async def test_skip_predicate_bypasses(self, registry, store):
        stream = io.StringIO()
        registry.initialize(logger=JsonCacheLogger(stream=stream))
        operation = AsyncMock(return_value={"id": 1})

        cached = wrap_operation(
            CacheMode.READ_THROUGH, as_operation(operation),
            CacheOptions(registry=registry, skip=lambda user_id, fresh=False: fresh),
        )

        await cached(1, fresh=True)
        await cached(1, fresh=True)

        assert operation.await_count == 2
        assert store.gets == 0
        assert "Skip predicate matched" in json.loads(stream.getvalue().splitlines()[0])["message"]

    @pytest.mark.asyncio
    async def test_mixed_key_mapping_argument(self, registry, store):
        """Test a mapping with int and str keys is cached and logged on skip."""
        stream = io.StringIO()
        registry.initialize(logger=JsonCacheLogger(stream=stream))
        operation = AsyncMock(return_value={"id": 1})

        cached = wrap_operation(
            CacheMode.READ_THROUGH, as_operation(operation),
            CacheOptions(registry=registry, skip=lambda query, fresh=False: fresh),
        )

        assert await cached({1: "a", "b": 2}) == {"id": 1}
        assert await cached({"b": 2, 1: "a"}) == {"id": 1}
        assert operation.await_count == 1

        await cached({1: "a", "b": 2}, fresh=True)
        messages = [json.loads(line)["message"] for line in stream.getvalue().splitlines()]
        assert messages[-1].endswith('Skip predicate matched [{"1":"a","b":2}]')

    @pytest.mark.asyncio
    async def test_disabled_registry_bypasses(self, registry, store):
        operation = AsyncMock(return_value={"id": 1})
        cached = wrap_operation(CacheMode.READ_THROUGH, as_operation(operation), CacheOptions(registry=registry))
        registry.disable()

        await cached(1)
        await cached(1)

        assert operation.await_count == 2
        assert store.gets == 0
        assert store.sets == []

        registry.enable()
        await cached(1)
        await cached(1)
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_hit_and_miss_are_logged(self, registry, store):
        stream = io.StringIO()
        registry.initialize(logger=JsonCacheLogger(stream=stream))

        async def load(user_id):
            return {"id": user_id}

        cached = wrap_operation(CacheMode.READ_THROUGH, load, CacheOptions(registry=registry, key="user"))
        await cached(1)
        await cached(1)

        messages = [json.loads(line)["message"] for line in stream.getvalue().splitlines()]
        assert messages == ["[function:load] Cache miss: user", "[function:load] Cache hit: user"]

    @pytest.mark.asyncio
    async def test_operation_errors_propagate(self, registry, store):
        operation = AsyncMock(side_effect=RuntimeError("boom"))
        cached = wrap_operation(CacheMode.READ_THROUGH, as_operation(operation), CacheOptions(registry=registry))

        with pytest.raises(RuntimeError):
            await cached(1)
        assert store.sets == []

    @pytest.mark.asyncio
    async def test_store_get_failure_propagates(self, registry):
        """Test store failures are not swallowed and the operation is not run."""
        broken = CountingStore()
        broken.get = AsyncMock(side_effect=StoreOperationError("get", "down"))
        registry.register("broken", broken)
        operation = AsyncMock(return_value=1)

        cached = wrap_operation(CacheMode.READ_THROUGH, as_operation(operation), CacheOptions(registry=registry, name="broken"))

        with pytest.raises(StoreOperationError):
            await cached()
        operation.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_set_failure_propagates(self, registry):
        broken = CountingStore()
        broken.set = AsyncMock(side_effect=StoreOperationError("set", "down"))
        registry.register("broken", broken)
        operation = AsyncMock(return_value=1)

        cached = wrap_operation(CacheMode.READ_THROUGH, as_operation(operation), CacheOptions(registry=registry, name="broken"))

        with pytest.raises(StoreOperationError):
            await cached()
        operation.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_concurrent_misses_may_compute_twice(self, registry, store):
        """Test concurrent misses are not coalesced."""
        started = asyncio.Event()
        release = asyncio.Event()
        calls = 0

        async def slow(user_id):
            nonlocal calls
            calls += 1
            if calls == 2:
                started.set()
            await release.wait()
            return {"id": user_id}

        cached = wrap_operation(CacheMode.READ_THROUGH, slow, CacheOptions(registry=registry))

        tasks = [asyncio.create_task(cached(1)), asyncio.create_task(cached(1))]
        await started.wait()
        release.set()
        results = await asyncio.gather(*tasks)

        assert results == [{"id": 1}, {"id": 1}]
        assert calls == 2
        assert len(store.sets) == 2

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, store):
        metrics = CacheMetrics(registry=CollectorRegistry())
        registry = make_registry(metrics=metrics)
        registry.register("users", store)

        async def load(user_id):
            return {"id": user_id}

        cached = wrap_operation(CacheMode.READ_THROUGH, load, CacheOptions(registry=registry))
        await cached(1)
        await cached(1)

        assert metrics.get_value("function:load", "read_through", "miss") == 1
        assert metrics.get_value("function:load", "read_through", "stored") == 1
        assert metrics.get_value("function:load", "read_through", "hit") == 1


class TestWrapOperation:
    """Test cases for wrap_operation itself."""

    def test_rejects_sync_callables(self):
        def load(user_id):
            return user_id

        with pytest.raises(TypeError):
            wrap_operation(CacheMode.READ_THROUGH, load)

    def test_accepts_mode_strings(self):
        async def load():
            return 1

        assert wrap_operation("read_through", load) is not None

        with pytest.raises(ValueError):
            wrap_operation("sometimes", load)

    def test_preserves_metadata(self):
        async def load_user(user_id):
            """Load a user."""
            return user_id

        cached = wrap_operation(CacheMode.READ_THROUGH, load_user)

        assert cached.__name__ == "load_user"
        assert cached.__doc__ == "Load a user."
        assert asyncio.iscoroutinefunction(cached)

    @pytest.mark.asyncio
    async def test_bound_method_uses_instance_as_receiver(self):
        registry = make_registry()
        store = CountingStore()
        registry.register("users", store)

        class AccountService:
            def __init__(self, region):
                self.region = region

            async def find(self, account_id):
                return {"id": account_id, "region": self.region}

        service = AccountService("eu")
        cached = wrap_operation(
            CacheMode.READ_THROUGH, service.find,
            CacheOptions(registry=registry, key=lambda svc, account_id: f"{svc.region}:{account_id}"),
        )

        assert await cached(3) == {"id": 3, "region": "eu"}
        assert store.sets[0][0] == "eu:3"

    @pytest.mark.asyncio
    async def test_static_method_override(self):
        registry = make_registry()
        store = CountingStore()
        registry.register("users", store)

        class Lookup:
            @staticmethod
            @use_cache(registry=registry, method=False)
            async def code(value):
                return [value]

        assert await Lookup.code("x") == ["x"]
        assert store.sets[0][0].startswith("function:code:")

    @pytest.mark.asyncio
    async def test_bare_decorator_uses_process_registry(self):
        reset_registry()
        get_registry().initialize(logger=False)
        calls = []

        @use_cache
        async def load(user_id):
            calls.append(user_id)
            return {"id": user_id}

        await load(1)
        await load(1)

        assert calls == [1]
        assert get_registry().all_stores()[0][0] == "default"
        reset_registry()
