"""
Shared error handling for the cache aspect.
"""

from typing import Dict, Any, Optional


class CacheLayerException(Exception):
    """Base exception for cache aspect components."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a serializable error payload."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(CacheLayerException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class DuplicateRegistrationError(CacheLayerException):
    """A cache store with the same name is already registered."""

    def __init__(self, name: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            "DUPLICATE_REGISTRATION",
            f"A cache store named '{name}' is already registered",
            {"name": name, **(details or {})},
        )


class StoreNotFoundError(CacheLayerException):
    """Named cache store is not registered."""

    def __init__(self, name: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            "STORE_NOT_FOUND",
            f"Cache store '{name}' does not exist in the registry",
            {"name": name, **(details or {})},
        )


class StoreOperationError(CacheLayerException):
    """A cache store failed to complete get/set/delete."""

    def __init__(self, operation: str, message: str = "Cache store operation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_OPERATION_FAILED", f"{operation}: {message}", {"operation": operation, **(details or {})})
