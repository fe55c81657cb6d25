"""Discussion data models shared by adapters, the AI analyzer and the processor."""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field

from .enums import SourceType


class Attachment(BaseModel):
    """A file or link attached to a message."""
    type: str = "file"  # file, image, link
    url: str
    name: Optional[str] = None
    mime_type: Optional[str] = None


class ThreadMessage(BaseModel):
    """A single message in a discussion thread."""
    id: str
    author_handle: str
    content: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    attachments: List[Attachment] = Field(default_factory=list)


class DiscussionThread(BaseModel):
    """A full thread: root message, replies and who took part."""
    id: str
    root_message: ThreadMessage
    replies: List[ThreadMessage] = Field(default_factory=list)
    participants: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def messages(self) -> List[ThreadMessage]:
        return [self.root_message] + list(self.replies)

    @property
    def total_messages(self) -> int:
        return 1 + len(self.replies)


class ParsedDiscussion(BaseModel):
    """A webhook or email payload normalized by an adapter."""
    source_type: str
    source_thread_id: str
    source_url: str
    team_id: str
    author_handle: str
    title: str
    content: str
    participants: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SourceConfig(BaseModel):
    """Runtime view of a source configuration with secrets decrypted."""
    id: Optional[str] = None
    team_id: str
    source_type: str
    name: str = ""
    api_token: str = ""
    notion_token: str = ""
    notion_database_id: str = ""
    ai_api_key: Optional[str] = None
    ai_enabled: bool = True
    ai_summary_prompt: Optional[str] = None
    ai_task_prompt: Optional[str] = None
    notion_field_mapping: Dict[str, Any] = Field(default_factory=dict)
    auto_sync: bool = True
    post_confirmation: bool = True
    webhook_url: Optional[str] = None
    active: bool = True
    source_metadata: Dict[str, Any] = Field(default_factory=dict)
    settings: Dict[str, Any] = Field(default_factory=dict)


def is_known_source_type(value: str) -> bool:
    return value in {s.value for s in SourceType}
