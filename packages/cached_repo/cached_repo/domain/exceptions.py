"""Domain-specific exceptions for cached_repo.

This module defines the exception hierarchy for the caching data-access
layer. Domain errors describe invalid keys, values and entities; application
errors describe what happened to a particular load (producer failure,
timeout, closed cache).
"""

from __future__ import annotations

from typing import Any


class CachedRepoError(Exception):
    """Base exception for all cached_repo errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code for programmatic handling
            details: Additional error context
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}


class DomainError(CachedRepoError):
    """Base class for domain-layer errors."""

    pass


class ValidationError(DomainError):
    """Raised when domain validation fails."""

    def __init__(self, message: str, field: str | None = None, **kwargs: Any) -> None:
        """
        Initialize validation error.

        Args:
            message: Validation error message
            field: Field that failed validation
            **kwargs: Additional error details
        """
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        error_code = kwargs.pop("error_code", "VALIDATION_ERROR")
        super().__init__(message, error_code=error_code, details=details)


class InvalidKeyError(ValidationError):
    """Raised when a cache key is empty, malformed or of the wrong kind."""

    def __init__(self, key: Any, reason: str, **kwargs: Any) -> None:
        """
        Initialize invalid key error.

        Args:
            key: The rejected key (or key-like object)
            reason: Why the key was rejected
            **kwargs: Additional error details
        """
        message = f"Invalid cache key {key!r}: {reason}"
        details = {
            "key": repr(key),
            "reason": reason,
            **kwargs.pop("details", {}),
        }
        super().__init__(message, field="key", details=details, error_code="INVALID_KEY")


class UnmaterializedResultError(ValidationError):
    """Raised when a producer returns a lazy result instead of concrete data.

    Generators, cursors, query objects and un-awaited coroutines can be tied
    to a connection that is gone by the time the cache is read, so they are
    never stored.
    """

    def __init__(self, key: str, result_type: str, **kwargs: Any) -> None:
        """
        Initialize unmaterialized result error.

        Args:
            key: Cache key being populated
            result_type: Type name of the rejected result
            **kwargs: Additional error details
        """
        message = (
            f"Producer for '{key}' returned a lazy {result_type}; "
            "materialize it (e.g. list(...)) before caching"
        )
        details = {
            "key": key,
            "result_type": result_type,
            **kwargs.pop("details", {}),
        }
        super().__init__(message, details=details, error_code="UNMATERIALIZED_RESULT")


class ConflictError(DomainError):
    """Raised when an operation conflicts with existing state."""

    def __init__(
        self, message: str, conflicting_resource: str | None = None, **kwargs: Any
    ) -> None:
        """
        Initialize conflict error.

        Args:
            message: Conflict description
            conflicting_resource: Identifier of conflicting resource
            **kwargs: Additional error details
        """
        details = kwargs.pop("details", {})
        if conflicting_resource:
            details["conflicting_resource"] = conflicting_resource
        super().__init__(message, error_code=kwargs.pop("error_code", "CONFLICT"), details=details)


class KeyCollisionError(ConflictError):
    """Raised when two distinct types would resolve to the same cache key."""

    def __init__(self, key: str, existing_type: str, new_type: str, **kwargs: Any) -> None:
        """
        Initialize key collision error.

        Args:
            key: The contested cache key
            existing_type: Fully qualified name of the type owning the key
            new_type: Fully qualified name of the type that collided
            **kwargs: Additional error details
        """
        message = (
            f"Cache key '{key}' is already owned by {existing_type}; "
            f"refusing to share it with {new_type}"
        )
        super().__init__(
            message,
            conflicting_resource=key,
            details={"existing_type": existing_type, "new_type": new_type},
            error_code="KEY_COLLISION",
        )


class EntityValidationError(DomainError):
    """Raised by a data layer when entities fail validation on save.

    This package never raises it itself. ``Repository.save`` and
    ``UnitOfWork.commit`` implementations raise it; ``UnitOfWork`` rolls back
    and ``CachedRepository`` propagates it without invalidating cached reads.
    """

    def __init__(self, errors: list[tuple[str, str]], **kwargs: Any) -> None:
        """
        Initialize entity validation error.

        Args:
            errors: ``(property_name, error_message)`` pairs
            **kwargs: Additional error details
        """
        self.errors = list(errors)
        details = {
            "errors": [{"property": name, "error": msg} for name, msg in self.errors],
            **kwargs.pop("details", {}),
        }
        super().__init__(
            self.full_error_text, error_code="ENTITY_VALIDATION_ERROR", details=details
        )

    @property
    def full_error_text(self) -> str:
        """All validation failures, one per line."""
        return "\n".join(f"Property: {name} Error: {msg}" for name, msg in self.errors)


class ApplicationError(CachedRepoError):
    """Base class for application-layer errors."""

    pass


class ProducerFailureError(ApplicationError):
    """Raised to every caller that joined a computation whose producer failed.

    The producer's own exception is available as ``cause`` and is chained as
    ``__cause__``. Nothing is cached for a failed computation.
    """

    def __init__(self, key: str, cause: BaseException, **kwargs: Any) -> None:
        """
        Initialize producer failure error.

        Args:
            key: Cache key whose population failed
            cause: Exception raised by the producer
            **kwargs: Additional error details
        """
        message = f"Producer for '{key}' failed: {type(cause).__name__}: {cause}"
        details = {
            "key": key,
            "cause_type": type(cause).__name__,
            **kwargs.pop("details", {}),
        }
        super().__init__(message, error_code="PRODUCER_FAILURE", details=details)
        self.key = key
        self.cause = cause
        self.__cause__ = cause


class LoadTimeoutError(ApplicationError):
    """Raised when a caller stops waiting for a cache population.

    The underlying computation keeps running and still publishes its result.
    """

    def __init__(self, key: str, timeout_seconds: float, **kwargs: Any) -> None:
        """
        Initialize load timeout error.

        Args:
            key: Cache key being waited on
            timeout_seconds: Wait bound in seconds
            **kwargs: Additional error details
        """
        message = f"Waiting for '{key}' timed out after {timeout_seconds} seconds"
        details = {
            "key": key,
            "timeout_seconds": timeout_seconds,
            **kwargs.pop("details", {}),
        }
        super().__init__(message, error_code="TIMEOUT", details=details)


class CacheClosedError(ApplicationError):
    """Raised when a cache is used after it has been closed."""

    def __init__(self, cache_name: str, **kwargs: Any) -> None:
        """
        Initialize cache closed error.

        Args:
            cache_name: Name of the closed cache
            **kwargs: Additional error details
        """
        super().__init__(
            f"Cache '{cache_name}' is closed",
            error_code="CACHE_CLOSED",
            details={"cache_name": cache_name, **kwargs.pop("details", {})},
        )


class CacheNotInitializedError(ApplicationError):
    """Raised when the process-wide cache is requested before initialization."""

    def __init__(self, **kwargs: Any) -> None:
        """
        Initialize cache not initialized error.

        Args:
            **kwargs: Additional error details
        """
        super().__init__(
            "Process cache has not been initialized; call initialize_cache() at startup",
            error_code="CACHE_NOT_INITIALIZED",
            details=kwargs.pop("details", {}),
        )
