"""Error taxonomy shared by the client provider, collection services and the
UI binding.

Every error carries a ``user_message`` that is safe to show to end users;
``message`` and ``details`` may contain raw store detail and are meant for
logs only.
"""

from typing import Any, Dict, Optional


class RemoteListsError(Exception):
    """Base class for all access layer errors."""

    user_message = "Something went wrong. Please try again."

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "UNKNOWN_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class Uninitialized(RemoteListsError):
    """The client provider was used before ``set_client`` ran."""

    user_message = "The service is not ready yet."

    def __init__(self, message: str = "Client has not been initialized", **kwargs) -> None:
        super().__init__(message, "UNINITIALIZED", kwargs)


class ClientAlreadyInitialized(RemoteListsError):
    user_message = "The service is not ready yet."

    def __init__(self, message: str = "Client already initialized with a different context", **kwargs) -> None:
        super().__init__(message, "ALREADY_INITIALIZED", kwargs)


class RemoteFault(RemoteListsError):
    """Transport or authorization failure talking to the store. Retryable."""

    user_message = "Could not reach the server. Please try again."

    def __init__(self, message: str, collection: Optional[str] = None, code: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, "REMOTE_FAULT", {"collection": collection, "code": code, **kwargs})


class NotFound(RemoteListsError):
    user_message = "The requested item no longer exists."

    def __init__(self, message: str, collection: Optional[str] = None, item_id: Any = None, **kwargs) -> None:
        super().__init__(message, "NOT_FOUND", {"collection": collection, "item_id": item_id, **kwargs})


class InvalidProjection(RemoteListsError):
    user_message = "The request referenced fields that do not exist."

    def __init__(self, message: str, collection: Optional[str] = None, fields: Any = None, **kwargs) -> None:
        super().__init__(message, "INVALID_PROJECTION", {"collection": collection, "fields": fields, **kwargs})


class ValidationFault(RemoteListsError):
    user_message = "The submitted data is not valid."

    def __init__(self, message: str, collection: Optional[str] = None, field: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, "VALIDATION_FAULT", {"collection": collection, "field": field, **kwargs})


class NoMorePages(RemoteListsError):
    """``next()`` was called on a page or cursor without a continuation."""

    user_message = "There are no more results."

    def __init__(self, message: str = "No more pages to fetch", **kwargs) -> None:
        super().__init__(message, "NO_MORE_PAGES", kwargs)


def user_safe_message(exc: BaseException) -> str:
    """Return the end-user summary for ``exc`` without leaking raw detail."""
    if isinstance(exc, RemoteListsError):
        return exc.user_message
    return RemoteListsError.user_message
