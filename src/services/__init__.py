"""
Services for business logic.
"""

from .rate_limiter import (
    RATE_LIMITS,
    RateLimitConfig,
    RateLimitResult,
    RateLimiter,
    check_rate_limit,
    get_rate_limiter,
)
from .oauth_state import OAuthStateStore, get_oauth_state_store
from .user_mapping import resolve_user_mentions, bulk_import_mappings
from .processor import (
    ProcessingError,
    ProcessingOptions,
    process_discussion,
    process_discussion_by_id,
    retry_failed_discussion,
    build_confirmation_message,
    filter_bot_mentions,
)

__all__ = [
    "RATE_LIMITS",
    "RateLimitConfig",
    "RateLimitResult",
    "RateLimiter",
    "check_rate_limit",
    "get_rate_limiter",
    "OAuthStateStore",
    "get_oauth_state_store",
    "resolve_user_mentions",
    "bulk_import_mappings",
    "ProcessingError",
    "ProcessingOptions",
    "process_discussion",
    "process_discussion_by_id",
    "retry_failed_discussion",
    "build_confirmation_message",
    "filter_bot_mentions",
]
