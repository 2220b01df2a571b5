"""
Application error taxonomy.

Services raise these; the handlers registered in ``main.py`` turn them into
``{"error": ..., "details": ...}`` responses with the matching status code.
"""
from typing import Any, Optional


class AppError(Exception):
    """Base class for expected, user-visible failures."""

    status_code: int = 500
    code: str = "APP_ERROR"
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid input data"


class AuthenticationError(AppError):
    status_code = 401
    code = "AUTHENTICATION_ERROR"
    default_message = "Authentication required"


class AuthorizationError(AppError):
    status_code = 403
    code = "AUTHORIZATION_ERROR"
    default_message = "Access denied"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND_ERROR"
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT_ERROR"
    default_message = "Resource conflict"


class RateLimitError(AppError):
    status_code = 429
    code = "RATE_LIMIT_ERROR"
    default_message = "Too many requests. Please try again later."

    def __init__(
        self,
        message: Optional[str] = None,
        details: Any = None,
        retry_after: Optional[int] = None,
    ):
        super().__init__(message, details)
        self.retry_after = retry_after
