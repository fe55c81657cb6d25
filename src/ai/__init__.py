"""AI analysis of discussion threads."""

from .analyzer import (
    DiscussionAnalyzer,
    get_discussion_analyzer,
    clear_cache,
    get_cache_stats,
    cleanup_expired_cache,
)
from .prompts import PromptTemplates

__all__ = [
    "DiscussionAnalyzer",
    "get_discussion_analyzer",
    "clear_cache",
    "get_cache_stats",
    "cleanup_expired_cache",
    "PromptTemplates",
]
