"""
Logging configuration with field masking for sensitive data
"""
import logging
import re
from typing import Any

from flexia.core.config import settings
from flexia.core.data_classification import detect_and_mask_pii


# Patterns to mask in logs
MASK_PATTERNS = [
    (r'"email":\s*"[^"]*"', '"email": "***@***"'),
    (r"'email':\s*'[^']*'", "'email': '***@***'"),
    (r'"password":\s*"[^"]*"', '"password": "***"'),
    (r'"payment_details":\s*"[^"]*"', '"payment_details": "***"'),
    (r"'payment_details':\s*'[^']*'", "'payment_details': '***'"),
    (r'"payment_reference":\s*"[^"]*"', '"payment_reference": "***"'),
    (r"'payment_reference':\s*'[^']*'", "'payment_reference': '***'"),
]

ROOT_LOGGER_NAME = "flexia"


class MaskingFormatter(logging.Formatter):
    """Custom formatter that masks sensitive fields."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for pattern, replacement in MASK_PATTERNS:
            message = re.sub(pattern, replacement, message, flags=re.IGNORECASE)
        return detect_and_mask_pii(message)


def setup_logging() -> logging.Logger:
    """Configure application logging."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

    # Reloads (uvicorn --reload, test collection) must not stack handlers
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

    formatter = MaskingFormatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    console_handler.setFormatter(formatter)

    logger.addHandler(console_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a child of the application logger for a module."""
    if name.startswith(f"{ROOT_LOGGER_NAME}.") or name == ROOT_LOGGER_NAME:
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


# Global logger instance
logger = setup_logging()


def log_audit_event(
    event_type: str,
    actor_id: str,
    actor_type: str,
    details: dict[str, Any],
) -> None:
    """Log an audit event (also persisted to database separately)."""
    logger.info(
        f"AUDIT: {event_type} | actor={actor_id} ({actor_type}) | details={details}"
    )
