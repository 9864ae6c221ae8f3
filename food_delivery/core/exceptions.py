"""
Order Service Exceptions

Every failure of the order workflow is one of five kinds. Each carries a
human-readable message and a machine-readable code; the HTTP layer maps
the class to a status code.
"""

from typing import Any, Optional


class OrderServiceError(Exception):
    """Base class for all order workflow errors."""

    code = "order_error"

    def __init__(self, message: str, code: Optional[str] = None, **details: Any):
        self.message = message
        if code is not None:
            self.code = code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON responses."""
        payload: dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.details:
            payload["details"] = {k: str(v) for k, v in self.details.items()}
        return payload


class ValidationError(OrderServiceError):
    """Malformed or out-of-range input. Nothing was written."""

    code = "validation_error"


class NotFoundError(OrderServiceError):
    """A referenced store, menu item or order does not exist."""

    code = "not_found"


class InvalidTransitionError(OrderServiceError):
    """The requested status change is illegal from the current status."""

    code = "invalid_transition"


class ConcurrencyConflictError(OrderServiceError):
    """The order changed underneath the caller; re-read and retry."""

    code = "concurrency_conflict"


class StorageError(OrderServiceError):
    """The database failed. Partial writes were rolled back."""

    code = "storage_error"
