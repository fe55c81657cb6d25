"""Utility modules for Discubot."""

from .constants import SYSTEM_USER_ID
from .retry import (
    RetryExhausted,
    retry_with_backoff,
    retry_with_fixed_delay,
    with_retry,
)
from .validation import (
    ValidationResult,
    validate_email,
    validate_required_fields,
    sanitize_string,
    sanitize_object,
)

__all__ = [
    "SYSTEM_USER_ID",
    "RetryExhausted",
    "retry_with_backoff",
    "retry_with_fixed_delay",
    "with_retry",
    "ValidationResult",
    "validate_email",
    "validate_required_fields",
    "sanitize_string",
    "sanitize_object",
]
