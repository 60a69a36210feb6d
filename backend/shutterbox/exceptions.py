"""
ShutterBox Backend — Errors
=============================

Every error raised on purpose by ShutterBox code derives from
ShutterBoxError and carries two things:

    message  text that may be shown to the client
    context  dict of debugging facts for the server log

main.ERROR_ROUTES decides the HTTP status for each class:

    ValidationError            400
    UnauthorizedError          401
    NotFoundError              404
    ConflictError              409
    RateLimitExceededError     429
    DatabaseError              500  (TransactionRollbackError included)
    FileStorageError           500
    VisionServiceError         503
    CircuitBreakerOpenError    503
    SerializationError         523

SQLAlchemy's own exceptions are not wrapped. The stores log and re-raise
them, and main.py answers IntegrityError with 409 and the rest with 500.
"""

from typing import Any, Dict, Optional


class ShutterBoxError(Exception):
    """Base class. Subclasses without extra fields only override default_message."""

    default_message = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.context = dict(context or {})
        super().__init__(self.message)


class ValidationError(ShutterBoxError):
    """Bad client input: empty or non-image upload, bad limit, self-follow."""

    default_message = "Validation failed"

    def __init__(
        self,
        message: Optional[str] = None,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.field = field
        if field:
            self.context["field"] = field


class UnauthorizedError(ShutterBoxError):
    """No valid bearer token, wrong credentials, or a missing permissions grant."""

    default_message = "You are not authorized to perform this action"


class NotFoundError(ShutterBoxError):
    """
    A looked-up row or file does not exist. Stores raise this where
    SQLAlchemy hands back None.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if resource_id:
            message = f"{resource} '{resource_id}' was not found"
        else:
            message = f"The requested {resource} was not found"
        super().__init__(message, context)
        self.context["resource"] = resource
        if resource_id:
            self.context["resource_id"] = resource_id


class ConflictError(ShutterBoxError):
    """Taken username or email, repeated favorite, repeated follow."""

    default_message = "The resource already exists"


class FileStorageError(ShutterBoxError):
    default_message = "File storage operation failed"


class SerializationError(ShutterBoxError):
    """A response body could not be encoded as JSON (NaN, infinity)."""

    default_message = "Unable to write JSON"


class VisionServiceError(ShutterBoxError):
    """Gemini failed every retry or sent back something unreadable."""

    default_message = "Image analysis service is temporarily unavailable"

    def __init__(
        self,
        message: Optional[str] = None,
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.retry_after = retry_after
        if retry_after:
            self.context["retry_after"] = retry_after


class CircuitBreakerOpenError(ShutterBoxError):
    """Detection is being shed until the breaker's cool-down runs out."""

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            "Image analysis is paused after repeated failures. "
            f"It will be tried again in about {recovery_time} seconds.",
            context,
        )
        self.recovery_time = recovery_time
        self.context["recovery_time"] = recovery_time


class DatabaseError(ShutterBoxError):
    """
    Bookkeeping went wrong outside of SQLAlchemy's own errors, e.g. an
    image row without its metadata row. Clients only see a generic message.
    """

    default_message = "A database error occurred. Please try again later."


class TransactionRollbackError(DatabaseError):
    """
    A write failed and so did the rollback after it. `original` is the
    write error (also the __cause__), `rollback_error` the rollback's.
    """

    def __init__(
        self,
        original: BaseException,
        rollback_error: BaseException,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            "The transaction failed and could not be rolled back cleanly.",
            context,
        )
        self.original = original
        self.rollback_error = rollback_error
        self.context["original_error"] = f"{type(original).__name__}: {original}"
        self.context["rollback_error"] = f"{type(rollback_error).__name__}: {rollback_error}"


class RateLimitExceededError(ShutterBoxError):
    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests.",
            context,
        )
        self.retry_after = retry_after
        self.context["retry_after"] = retry_after
