"""
Shared metrics configuration for the cache aspect.
"""

import threading
from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, REGISTRY


class CacheMetrics:
    """Prometheus counters for cache interception traffic."""

    def __init__(self, service_name: str = "cache_aspect", registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else REGISTRY
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up cache metrics."""
        self._metrics["cache_operations_total"] = Counter(
            "cache_operations_total",
            "Total cache interception outcomes",
            ["service", "operation", "mode", "result"],
            registry=self.registry
        )

    def record(self, operation: str, mode: str, result: str) -> None:
        """Record one interception outcome (hit, miss, stored, bypass, ...)."""
        with self._lock:
            self._metrics["cache_operations_total"].labels(
                service=self.service_name,
                operation=operation,
                mode=mode,
                result=result
            ).inc()

    def get_value(self, operation: str, mode: str, result: str) -> float:
        """Read back a counter value."""
        value = self.registry.get_sample_value(
            "cache_operations_total",
            {
                "service": self.service_name,
                "operation": operation,
                "mode": mode,
                "result": result,
            },
        )
        return value or 0.0
