"""
Notion source adapter.

Discussions are Notion comment threads. Notion's webhook only carries
ids, so the comment body is read back through the comments API and a
thread is only processed when it mentions the trigger keyword.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional, List

from config import settings
from .base import DiscussionSourceAdapter, extract_title
from ..models.discussion import ParsedDiscussion, DiscussionThread, ThreadMessage, SourceConfig
from ..utils.http import request_json
from ..utils.validation import ValidationResult

logger = logging.getLogger(__name__)

DEFAULT_TRIGGER_KEYWORD = "@discubot"
SUPPORTED_EVENT = "comment.created"
PAGE_SIZE = 100


def notion_headers(token: str, json_body: bool = False) -> Dict[str, str]:
    headers = {
        "Authorization": f"Bearer {token}",
        "Notion-Version": settings.notion_api_version,
    }
    if json_body:
        headers["Content-Type"] = "application/json"
    return headers


def rich_text_to_plain(rich_text: Optional[List[Dict[str, Any]]]) -> str:
    if not rich_text:
        return ""
    return "".join(
        item.get("plain_text") or (item.get("text") or {}).get("content", "")
        for item in rich_text
    )


def check_for_trigger(rich_text: Optional[List[Dict[str, Any]]],
                      keyword: str = DEFAULT_TRIGGER_KEYWORD) -> bool:
    """True when the comment text contains ``keyword`` (case-insensitive)."""
    if not rich_text:
        return False
    return keyword.lower() in rich_text_to_plain(rich_text).lower()


async def fetch_comment(comment_id: str, token: str) -> Optional[Dict[str, Any]]:
    """Retrieve a single comment. Returns None on any failure."""
    try:
        status, data = await request_json(
            "GET", f"{settings.notion_api_url}/comments/{comment_id}", headers=notion_headers(token)
        )
    except Exception as e:
        logger.error(f"Failed to fetch Notion comment {comment_id}: {e}")
        return None

    if status >= 400 or not isinstance(data, dict) or data.get("object") == "error":
        logger.warning(f"Notion comment {comment_id} not retrievable: HTTP {status}")
        return None
    return data


def _parse_time(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.now(timezone.utc)


def _split_thread_id(thread_id: str):
    parent_id, _, discussion_id = (thread_id or "").partition(":")
    return parent_id, discussion_id


class NotionAdapter(DiscussionSourceAdapter):
    source_type = "notion"

    @staticmethod
    def _token(config: Optional[SourceConfig]) -> str:
        if config is None:
            return ""
        return config.api_token or config.notion_token or ""

    async def parse_incoming(self, payload: Dict[str, Any],
                             config: Optional[SourceConfig] = None) -> ParsedDiscussion:
        event_type = payload.get("type")
        if event_type != SUPPORTED_EVENT:
            raise self._error(f"Unsupported event type: {event_type}")

        data = payload.get("data") or {}
        parent = data.get("parent") or {}
        comment_id = data.get("id")
        discussion_id = data.get("discussion_id")
        parent_type = parent.get("type")
        parent_id = parent.get("page_id") or parent.get("block_id")

        if not comment_id or not discussion_id or not parent_id:
            raise self._error("Missing required IDs in Notion webhook payload")

        # The webhook may already carry the fetched comment body
        comment = data if data.get("rich_text") is not None else None
        token = self._token(config)
        if comment is None and token:
            comment = await fetch_comment(comment_id, token)

        content = rich_text_to_plain((comment or {}).get("rich_text"))
        author = ((comment or {}).get("created_by") or {}).get("id") or "unknown"

        return ParsedDiscussion(
            source_type=self.source_type,
            source_thread_id=f"{parent_id}:{discussion_id}",
            source_url=f"https://www.notion.so/{parent_id.replace('-', '')}?d={discussion_id}",
            team_id=payload.get("workspace_id") or "default",
            author_handle=author,
            title=extract_title(content, fallback="Notion Comment"),
            content=content,
            participants=[author] if author != "unknown" else [],
            timestamp=_parse_time((comment or {}).get("created_time") or payload.get("timestamp")),
            metadata={
                "commentId": comment_id,
                "discussionId": discussion_id,
                "parentId": parent_id,
                "parentType": parent_type,
                "notionWorkspaceId": payload.get("workspace_id"),
            },
        )

    async def fetch_thread(self, thread_id: str, config: SourceConfig,
                           hint: Optional[str] = None) -> DiscussionThread:
        parent_id, discussion_id = _split_thread_id(thread_id)
        if not parent_id or not discussion_id:
            raise self._error(
                'Invalid thread ID format, expected "parent_id:discussion_id"',
                thread_id=thread_id,
            )

        token = self._token(config)
        comments: List[Dict[str, Any]] = []
        cursor = None

        while True:
            params = {"block_id": parent_id, "page_size": str(PAGE_SIZE)}
            if cursor:
                params["start_cursor"] = cursor
            try:
                status, data = await request_json(
                    "GET",
                    f"{settings.notion_api_url}/comments",
                    headers=notion_headers(token),
                    params=params,
                )
            except Exception as e:
                raise self._error(
                    f"Failed to fetch Notion thread: {e}", thread_id=thread_id, retryable=True
                ) from e

            if status >= 400 or not isinstance(data, dict):
                raise self._error(
                    f"Notion API error: {status}",
                    thread_id=thread_id,
                    status_code=status,
                    retryable=status >= 500 or status == 429,
                )

            comments.extend(
                c for c in data.get("results") or [] if c.get("discussion_id") == discussion_id
            )
            if not data.get("has_more") or not data.get("next_cursor"):
                break
            cursor = data["next_cursor"]

        if not comments:
            raise self._error(
                "No comments found in discussion", thread_id=thread_id, status_code=404
            )

        comments.sort(key=lambda c: _parse_time(c.get("created_time")))
        messages = [self._to_thread_message(c) for c in comments]

        participants = []
        for message in messages:
            if message.author_handle not in participants:
                participants.append(message.author_handle)

        return DiscussionThread(
            id=discussion_id,
            root_message=messages[0],
            replies=messages[1:],
            participants=participants,
            metadata={
                "pageId": parent_id,
                "discussionId": discussion_id,
                "commentCount": len(messages),
            },
        )

    async def post_reply(self, thread_id: str, message: str, config: SourceConfig) -> bool:
        _, discussion_id = _split_thread_id(thread_id)
        if not discussion_id:
            logger.warning("No Notion discussion id in thread id, cannot post reply")
            return False

        try:
            status, data = await request_json(
                "POST",
                f"{settings.notion_api_url}/comments",
                headers=notion_headers(self._token(config), json_body=True),
                json={
                    "discussion_id": discussion_id,
                    "rich_text": [{"type": "text", "text": {"content": message}}],
                },
            )
        except Exception as e:
            logger.error(f"Failed to post Notion reply: {e}")
            return False

        if status >= 400 or not isinstance(data, dict) or not data.get("id"):
            logger.error(f"Failed to post Notion reply: HTTP {status}")
            return False
        return True

    async def update_status(self, thread_id: str, status: str, config: SourceConfig) -> bool:
        # Notion comments have no reactions API
        return True

    async def validate_config(self, config: SourceConfig) -> ValidationResult:
        errors = []
        warnings = []

        token = self._token(config).strip()
        if not token:
            errors.append("Notion API token is required")
        elif not token.startswith(("secret_", "ntn_")):
            warnings.append(
                'Notion API token should start with "secret_" or "ntn_" '
                '(internal integration token format)'
            )

        if config.source_type != self.source_type:
            errors.append(
                f"Source type mismatch: expected '{self.source_type}', got '{config.source_type}'"
            )
        return ValidationResult.from_messages(errors, warnings)

    async def test_connection(self, config: SourceConfig) -> bool:
        token = self._token(config)
        if not token:
            return False
        try:
            status, data = await request_json(
                "GET", f"{settings.notion_api_url}/users/me", headers=notion_headers(token)
            )
        except Exception as e:
            logger.error(f"Failed to test Notion connection: {e}")
            return False
        return status < 400 and isinstance(data, dict) and data.get("object") == "user"

    def _to_thread_message(self, comment: Dict[str, Any]) -> ThreadMessage:
        return ThreadMessage(
            id=comment.get("id", ""),
            author_handle=(comment.get("created_by") or {}).get("id") or "unknown",
            content=rich_text_to_plain(comment.get("rich_text")),
            timestamp=_parse_time(comment.get("created_time")),
        )
