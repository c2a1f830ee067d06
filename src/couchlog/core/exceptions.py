"""Error taxonomy for couchlog.

Every failure raised by the transport derives from CouchlogError so callers
can catch the whole family with a single except clause. Store adapters map
driver-level failures onto these types.
"""

from typing import Any


class CouchlogError(Exception):
    """Base exception for all couchlog errors.

    Attributes:
        message: Human-readable error message.
        original_error: The exception that caused this error, if any.
        context: Additional context about the failed operation.
    """

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.original_error = original_error
        self.context = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        error_str = self.message
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            error_str += f" (Context: {context_str})"
        return error_str

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(message={self.message!r}, "
            f"original_error={self.original_error!r}, context={self.context!r})"
        )


class StoreConnectionError(CouchlogError):
    """Raised when the document store cannot be reached."""


class StoreError(CouchlogError):
    """Raised when the document store rejects a request.

    Attributes:
        status_code: HTTP status returned by the store, if known.
        reason: The store's short error identifier (e.g. ``not_found``).
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        reason: str | None = None,
        original_error: Exception | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.status_code = status_code
        self.reason = reason
        super().__init__(message, original_error, context)


class NotFoundError(StoreError):
    """Raised when a database or document does not exist."""


class ConflictError(StoreError):
    """Raised when a document write conflicts with an existing revision."""


class ProvisioningError(CouchlogError):
    """Raised when the database or the log view could not be ensured."""


class FeedError(CouchlogError):
    """Raised when a change feed fails after it has been opened."""


class QueryError(CouchlogError, ValueError):
    """Raised when query options cannot be normalized."""
