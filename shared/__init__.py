"""
Shared utilities for the cache aspect.

This package aggregates common building blocks consumed by the cache
packages:

- config: Cache settings via pydantic-settings
- logging: Structured logging with process context
- metrics: Prometheus counters for cache traffic
- errors: Canonical error types

Any cross-package logic should live here to avoid import cycles. Do not
import from cache_aspect into shared/.
"""
