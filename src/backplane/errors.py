"""Error taxonomy and the uniform error envelope.

Every failure the core surfaces is a ``BackplaneError`` subclass carrying an
HTTP-style ``status_code``, a stable ``code`` and an optional ``details``
payload for diagnostics.  ``format_error_response()`` turns any exception
into the envelope consumed by callers:

    {"error": {"message", "code", "statusCode", "details"?, "timestamp"}}

Usage:
    from backplane.errors import NotFoundError, format_error_response

    try:
        await service.get_record("users", "42")
    except BackplaneError as e:
        body = format_error_response(e, include_details=False)
"""

from datetime import datetime, timezone
from typing import Any


class BackplaneError(Exception):
    """Base class for all classified failures."""

    status_code: int = 500
    code: str = "INTERNAL_SERVER_ERROR"
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, details: Any = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class ValidationError(BackplaneError):
    """Malformed caller input."""

    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class UnauthorizedError(BackplaneError):
    """Missing, invalid or expired credentials."""

    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"


class ForbiddenError(BackplaneError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Forbidden"


class NotFoundError(BackplaneError):
    """Missing project, table or row."""

    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class DatabaseError(BackplaneError):
    """Schema, table or query failure on the target database."""

    status_code = 500
    code = "DATABASE_ERROR"
    default_message = "Database error"


class ConnectionError(BackplaneError):
    """Network or authentication failure reaching the target database."""

    status_code = 500
    code = "CONNECTION_ERROR"
    default_message = "Could not connect to database"


class InternalServerError(BackplaneError):
    pass


def format_error_response(error: BaseException, include_details: bool = True) -> dict:
    """Build the uniform error envelope for any exception.

    Args:
        error: The exception to render.  Non-Backplane exceptions are
            reported as ``INTERNAL_SERVER_ERROR`` with status 500.
        include_details: Whether to attach the ``details`` payload.  Turn
            this off in production so driver messages never leak.

    Returns:
        Dict with a single ``error`` key.

    Example:
        >>> body = format_error_response(NotFoundError("Record not found"))
        >>> body["error"]["statusCode"]
        404
    """
    if isinstance(error, BackplaneError):
        message = error.message
        code = error.code
        status_code = error.status_code
        details = error.details
    else:
        message = str(error) or "An unexpected error occurred"
        code = InternalServerError.code
        status_code = InternalServerError.status_code
        details = f"{type(error).__name__}: {error}"

    body: dict[str, Any] = {
        "message": message,
        "code": code,
        "statusCode": status_code,
    }
    if include_details and details:
        body["details"] = details
    body["timestamp"] = datetime.now(timezone.utc).isoformat()

    return {"error": body}
