"""Error taxonomy shared by the API client and the evaluation services."""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Failure categories with distinct handling policies."""

    NETWORK = "network"
    AUTH = "auth"
    PERMISSION = "permission"
    NOT_FOUND = "not_found"
    SERVER = "server"
    CLIENT = "client"
    VALIDATION = "validation"


def _get_error_message(kind: ErrorKind) -> str:
    """Get user-friendly error message for an error kind."""
    messages = {
        ErrorKind.NETWORK: "No response received from the server.",
        ErrorKind.AUTH: "Authentication expired. Please log in again.",
        ErrorKind.PERMISSION: "You do not have permission to perform this action.",
        ErrorKind.NOT_FOUND: "Resource not found.",
        ErrorKind.SERVER: "Server error. Please try again later.",
    }
    return messages.get(kind, "An unexpected error occurred.")


class EvaluationError(Exception):
    """Base class for every failure surfaced to an evaluator.

    Attributes:
        kind: Failure category
        user_message: Plain-language message suitable for a notification
        retryable: Whether re-invoking the same operation may succeed
    """

    kind: ErrorKind = ErrorKind.CLIENT
    retryable: bool = False

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message


class ApiError(EvaluationError):
    """Non-2xx response or transport failure from the backend."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
        user_message: Optional[str] = None,
    ):
        super().__init__(message, user_message or _get_error_message(self.kind))
        self.status_code = status_code
        self.detail = detail


class NetworkError(ApiError):
    """No response was received (connection failure or timeout)."""

    kind = ErrorKind.NETWORK
    retryable = True


class AuthenticationError(ApiError):
    """401: the session is no longer valid."""

    kind = ErrorKind.AUTH


class PermissionDeniedError(ApiError):
    """403: the operation is not allowed for this user."""

    kind = ErrorKind.PERMISSION


class NotFoundError(ApiError):
    """404: the resource does not exist."""

    kind = ErrorKind.NOT_FOUND


class ServerError(ApiError):
    """5xx: the backend failed; the user may retry."""

    kind = ErrorKind.SERVER
    retryable = True


class ScoreValidationError(EvaluationError):
    """A submission failed a local precondition; nothing was sent."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, missing_metrics: Optional[list[str]] = None):
        super().__init__(message)
        self.missing_metrics = missing_metrics or []


class MissingImageIdentityError(EvaluationError):
    """The target image has no backend identity to save against."""

    kind = ErrorKind.VALIDATION


class SessionClosedError(EvaluationError):
    """The evaluation session was closed and accepts no more submissions."""

    kind = ErrorKind.VALIDATION


class BulkSubmissionError(EvaluationError):
    """Bulk finalize stopped at the first failure.

    Attributes:
        saved: Number of model outputs re-sent before the failure
        cause: The underlying error
    """

    def __init__(self, saved: int, cause: Exception):
        user_message = getattr(cause, "user_message", None) or "Failed to submit case"
        super().__init__(f"Bulk submission failed after {saved} saves: {cause}", user_message)
        self.saved = saved
        self.cause = cause
        self.kind = getattr(cause, "kind", ErrorKind.CLIENT)
        self.retryable = getattr(cause, "retryable", False)


def error_for_status(status_code: int, data: Any = None) -> ApiError:
    """Build the ApiError subclass matching an HTTP status code.

    Args:
        status_code: Response status code (non-2xx)
        data: Decoded response body, if any

    Returns:
        ApiError instance carrying the body's ``detail`` when present
    """
    detail = None
    if isinstance(data, dict):
        detail = data.get("detail") or data.get("message")
        if detail is not None:
            detail = str(detail)

    message = f"HTTP {status_code}"
    if status_code == 401:
        return AuthenticationError(message, status_code, detail)
    if status_code == 403:
        return PermissionDeniedError(message, status_code, detail)
    if status_code == 404:
        return NotFoundError(message, status_code, detail)
    if status_code >= 500:
        return ServerError(message, status_code, detail)
    return ApiError(message, status_code, detail, user_message=detail)
