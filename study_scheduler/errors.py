"""
Scheduler Exceptions

Every failure the scheduler reports is a ServiceError subclass carrying
an HTTP-style status code and a stable error code, so the API layer can
translate it into a response without knowing scheduler internals.

Usage:
    from study_scheduler.errors import NotFoundError, ServiceError

    try:
        await service.record_review(item_id, owner_id, quality)
    except ServiceError as e:
        return {"error": e.error_code, "message": e.message}, e.status_code
"""

from typing import Optional


class ServiceError(Exception):
    """
    Base exception for service errors.

    Provides consistent error handling with:
    - HTTP status code
    - Error code for categorization
    - Optional details for debugging

    Example:
        raise ServiceError("Database connection failed", status_code=503)
    """

    status_code: int = 500
    error_code: str = "service_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code:
            self.status_code = status_code
        if error_code:
            self.error_code = error_code
        self.details = details

    def to_dict(self) -> dict:
        """Serialize for an error response body."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(ServiceError):
    """
    Input validation error.

    Raised before any read when quality, identifiers or paging
    arguments are invalid.
    """

    status_code = 422
    error_code = "validation_error"


class NotFoundError(ServiceError):
    """
    Resource not found error.

    Raised when a referenced item doesn't exist.
    """

    status_code = 404
    error_code = "not_found"


class AuthorizationError(ServiceError):
    """
    Authorization error.

    Raised when the caller does not own the item.
    """

    status_code = 403
    error_code = "forbidden"


class ConflictError(ServiceError):
    """
    State conflict error.

    Raised when a suspended item is reviewed, or when a concurrent write
    kept winning after all optimistic retries. Callers may retry.
    """

    status_code = 409
    error_code = "conflict"


class StorageError(ServiceError):
    """
    Persistence failure.

    The surrounding transaction has been rolled back; nothing from the
    failed operation is visible.
    """

    status_code = 503
    error_code = "storage_error"
