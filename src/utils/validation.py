"""
Input validation and sanitization.

Webhook payloads and API bodies are sanitized before they are stored:
control characters and script tags are stripped and string lengths are
capped.
"""

import re
import logging
from typing import Optional, List, Any, Dict, Iterable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

MAX_STRING_LENGTH = 100_000
MAX_NESTING_DEPTH = 10

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_SCRIPT_TAGS = re.compile(r"<script\b[^>]*>[\s\S]*?</script\s*>", re.IGNORECASE)
_EVENT_HANDLERS = re.compile(r"\son\w+\s*=\s*(\"[^\"]*\"|'[^']*'|[^\s>]+)", re.IGNORECASE)
_JS_URLS = re.compile(r"javascript\s*:", re.IGNORECASE)


@dataclass
class ValidationResult:
    """Result of a validation check."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def success(cls, warnings: Optional[List[str]] = None) -> "ValidationResult":
        """Create a successful validation result."""
        return cls(is_valid=True, errors=[], warnings=warnings or [])

    @classmethod
    def failure(cls, errors: List[str], warnings: Optional[List[str]] = None) -> "ValidationResult":
        """Create a failed validation result."""
        return cls(is_valid=False, errors=errors, warnings=warnings or [])

    @classmethod
    def from_messages(cls, errors: List[str], warnings: List[str]) -> "ValidationResult":
        return cls(is_valid=not errors, errors=list(errors), warnings=list(warnings))

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.is_valid, "errors": self.errors, "warnings": self.warnings}


def validate_email(email: str) -> bool:
    """Basic email format check."""
    if not email:
        return False
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return bool(re.match(pattern, email))


def validate_required_fields(data: Dict[str, Any], fields: Iterable[str]) -> ValidationResult:
    """Every field must be present and non-empty."""
    missing = []
    for name in fields:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    if missing:
        return ValidationResult.failure([f"Missing required field: {name}" for name in missing])
    return ValidationResult.success()


def sanitize_string(value: str, max_length: int = MAX_STRING_LENGTH) -> str:
    """Strip control characters, script tags and inline JS, then cap the length."""
    if not isinstance(value, str):
        return value
    cleaned = _CONTROL_CHARS.sub("", value)
    cleaned = _SCRIPT_TAGS.sub("", cleaned)
    cleaned = _EVENT_HANDLERS.sub("", cleaned)
    cleaned = _JS_URLS.sub("", cleaned)
    if len(cleaned) > max_length:
        logger.debug(f"Truncating string from {len(cleaned)} to {max_length} chars")
        cleaned = cleaned[:max_length]
    return cleaned


def sanitize_object(value: Any, max_length: int = MAX_STRING_LENGTH, _depth: int = 0) -> Any:
    """Recursively sanitize strings inside dicts and lists.

    Anything nested deeper than MAX_NESTING_DEPTH is dropped.
    """
    if _depth > MAX_NESTING_DEPTH:
        return None
    if isinstance(value, str):
        return sanitize_string(value, max_length)
    if isinstance(value, dict):
        return {
            sanitize_string(str(k), 256): sanitize_object(v, max_length, _depth + 1)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [sanitize_object(v, max_length, _depth + 1) for v in value]
    return value
