"""
Data classification and PII handling for Flex.IA.
Defines sensitivity levels and provides utilities for data protection.
"""

from enum import Enum
from typing import Any
import re


class DataClassification(Enum):
    """Data sensitivity classification levels."""
    PUBLIC = "public"
    INTERNAL = "internal"
    CONFIDENTIAL = "confidential"
    RESTRICTED = "restricted"  # credentials and payout details


_RANK = {
    DataClassification.PUBLIC: 0,
    DataClassification.INTERNAL: 1,
    DataClassification.CONFIDENTIAL: 2,
    DataClassification.RESTRICTED: 3,
}


# Field classifications for different data types
FIELD_CLASSIFICATIONS: dict[str, DataClassification] = {
    # User fields
    "email": DataClassification.CONFIDENTIAL,
    "password": DataClassification.RESTRICTED,
    "password_hash": DataClassification.RESTRICTED,
    "phone": DataClassification.CONFIDENTIAL,
    "license_number": DataClassification.CONFIDENTIAL,

    # Claim fields
    "claim_number": DataClassification.INTERNAL,
    "address": DataClassification.CONFIDENTIAL,
    "estimated_value": DataClassification.INTERNAL,

    # Payout fields
    "payment_details": DataClassification.RESTRICTED,
    "payment_reference": DataClassification.CONFIDENTIAL,
    "bank_account": DataClassification.RESTRICTED,
    "routing_number": DataClassification.RESTRICTED,
}


# Regex patterns for detecting sensitive data
SENSITIVE_PATTERNS = {
    "ssn": re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    "credit_card": re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b"),
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b"),
    "phone": re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"),
}


def get_field_classification(field_name: str) -> DataClassification:
    """Get the classification level for a field."""
    return FIELD_CLASSIFICATIONS.get(
        field_name.lower(),
        DataClassification.INTERNAL
    )


def mask_value(value: str, classification: DataClassification) -> str:
    """Mask a value based on its classification."""
    if classification in (DataClassification.PUBLIC, DataClassification.INTERNAL):
        return value
    elif classification == DataClassification.CONFIDENTIAL:
        # Show first and last characters
        if len(value) <= 4:
            return "*" * len(value)
        return f"{value[0]}{'*' * (len(value) - 2)}{value[-1]}"
    else:  # RESTRICTED
        return "*" * min(len(value), 8)


def detect_and_mask_pii(text: str) -> str:
    """Detect and mask PII in free-form text."""
    masked = SENSITIVE_PATTERNS["ssn"].sub("***-**-****", text)
    masked = SENSITIVE_PATTERNS["credit_card"].sub("****-****-****-****", masked)

    # Keep the email domain visible
    def mask_email(match: re.Match) -> str:
        local, domain = match.group().rsplit("@", 1)
        return f"{local[0]}***@{domain}"
    masked = SENSITIVE_PATTERNS["email"].sub(mask_email, masked)

    def mask_phone(match: re.Match) -> str:
        return f"***-***-{match.group()[-4:]}"
    masked = SENSITIVE_PATTERNS["phone"].sub(mask_phone, masked)

    return masked


def sanitize_for_logging(data: dict[str, Any]) -> dict[str, Any]:
    """Sanitize a dictionary for safe logging."""
    sanitized = {}

    for key, value in data.items():
        classification = get_field_classification(key)

        if value is None:
            sanitized[key] = None
        elif isinstance(value, str):
            if classification in (DataClassification.CONFIDENTIAL, DataClassification.RESTRICTED):
                sanitized[key] = mask_value(value, classification)
            else:
                sanitized[key] = value
        elif isinstance(value, dict):
            sanitized[key] = sanitize_for_logging(value)
        elif isinstance(value, list):
            sanitized[key] = [
                sanitize_for_logging(item) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            sanitized[key] = value

    return sanitized


def classify_request_body(body: dict[str, Any]) -> DataClassification:
    """Determine the highest classification level in a request body."""
    highest = DataClassification.PUBLIC

    for key, value in body.items():
        field_class = get_field_classification(key)
        if _RANK[field_class] > _RANK[highest]:
            highest = field_class
        if isinstance(value, dict):
            nested = classify_request_body(value)
            if _RANK[nested] > _RANK[highest]:
                highest = nested

    return highest
