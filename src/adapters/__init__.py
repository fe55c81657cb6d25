"""Discussion source adapters."""

from .base import AdapterError, DiscussionSourceAdapter, get_adapter
from .slack import SlackAdapter, is_bot_event
from .figma import FigmaAdapter
from .notion import NotionAdapter, check_for_trigger, fetch_comment, DEFAULT_TRIGGER_KEYWORD

__all__ = [
    "AdapterError",
    "DiscussionSourceAdapter",
    "get_adapter",
    "SlackAdapter",
    "is_bot_event",
    "FigmaAdapter",
    "NotionAdapter",
    "check_for_trigger",
    "fetch_comment",
    "DEFAULT_TRIGGER_KEYWORD",
]
