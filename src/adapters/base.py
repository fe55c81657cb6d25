"""
Source adapter contract.

Every discussion source (Slack, Figma email, Notion comments) implements
DiscussionSourceAdapter so the processor can treat them uniformly:
parse the inbound payload, fetch the full thread, reply, and mark status.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Any

from ..models.discussion import ParsedDiscussion, DiscussionThread, SourceConfig
from ..utils.validation import ValidationResult

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 50


def extract_title(text: str, fallback: str = "Slack Message") -> str:
    """First line of the message, truncated to 50 characters."""
    if not text:
        return fallback
    first_line = text.split("\n")[0].strip()
    if len(first_line) > TITLE_MAX_LENGTH:
        return first_line[:TITLE_MAX_LENGTH - 3] + "..."
    return first_line or fallback


class AdapterError(Exception):
    """Raised when a source payload or API call cannot be handled."""

    def __init__(
        self,
        message: str,
        source_type: Optional[str] = None,
        thread_id: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.source_type = source_type
        self.thread_id = thread_id
        self.status_code = status_code
        self.retryable = retryable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "source_type": self.source_type,
            "thread_id": self.thread_id,
            "status_code": self.status_code,
            "retryable": self.retryable,
        }


class DiscussionSourceAdapter(ABC):
    """Base class for discussion sources."""

    source_type: str = ""

    @abstractmethod
    async def parse_incoming(self, payload: Dict[str, Any],
                             config: Optional[SourceConfig] = None) -> ParsedDiscussion:
        """Normalize a webhook/email payload. Raises AdapterError if unusable."""

    @abstractmethod
    async def fetch_thread(self, thread_id: str, config: SourceConfig,
                           hint: Optional[str] = None) -> DiscussionThread:
        """
        Fetch the complete thread from the source API.

        ``hint`` is the text the discussion was parsed with; sources that
        cannot address a thread directly use it to locate the root message.
        """

    @abstractmethod
    async def post_reply(self, thread_id: str, message: str, config: SourceConfig) -> bool:
        """Post a reply into the thread. Returns False instead of raising."""

    @abstractmethod
    async def update_status(self, thread_id: str, status: str, config: SourceConfig) -> bool:
        """Reflect the processing status on the source (e.g. a reaction)."""

    @abstractmethod
    async def validate_config(self, config: SourceConfig) -> ValidationResult:
        """Check a source config for missing or malformed settings."""

    @abstractmethod
    async def test_connection(self, config: SourceConfig) -> bool:
        """Verify the configured credentials against the source API."""

    def _error(self, message: str, **kwargs) -> AdapterError:
        return AdapterError(message, source_type=self.source_type, **kwargs)

    def _validate_common(self, config: SourceConfig, errors: list) -> None:
        if not (config.notion_token or "").strip():
            errors.append("Notion API token is required")
        if not (config.notion_database_id or "").strip():
            errors.append("Notion database ID is required")
        if config.source_type != self.source_type:
            errors.append(
                f"Source type mismatch: expected '{self.source_type}', got '{config.source_type}'"
            )


_adapters: Dict[str, DiscussionSourceAdapter] = {}


def _registry() -> Dict[str, type]:
    from .slack import SlackAdapter
    from .figma import FigmaAdapter
    from .notion import NotionAdapter

    return {
        "slack": SlackAdapter,
        "figma": FigmaAdapter,
        # Figma notifications arrive by email
        "email": FigmaAdapter,
        "notion": NotionAdapter,
    }


def get_adapter(source_type: str) -> DiscussionSourceAdapter:
    """Adapter instance for a source type. Raises ValueError when unknown."""
    registry = _registry()
    if source_type not in registry:
        raise ValueError(
            f"Unknown source type: {source_type}. Supported: {', '.join(sorted(registry))}"
        )
    if source_type not in _adapters:
        _adapters[source_type] = registry[source_type]()
    return _adapters[source_type]

