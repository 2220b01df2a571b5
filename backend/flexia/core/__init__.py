"""
Core module exports
"""
from flexia.core.config import settings
from flexia.core.security import (
    hash_password,
    verify_password,
    create_access_token,
    decode_access_token,
    get_token_payload,
)
from flexia.core.logging import logger, get_logger, log_audit_event
from flexia.core.exceptions import (
    AppError,
    ValidationError,
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    ConflictError,
    RateLimitError,
)

__all__ = [
    "settings",
    "hash_password",
    "verify_password",
    "create_access_token",
    "decode_access_token",
    "get_token_payload",
    "logger",
    "get_logger",
    "log_audit_event",
    "AppError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ConflictError",
    "RateLimitError",
]
