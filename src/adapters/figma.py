"""
Figma source adapter.

Figma has no comment webhooks, so discussions arrive as notification
emails (Mailgun or Resend). The email identifies the file; the comment
thread itself is read back through the Figma REST API.
"""

import re
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional, List
from urllib.parse import quote

from config import settings
from .base import DiscussionSourceAdapter, AdapterError
from ..models.discussion import ParsedDiscussion, DiscussionThread, ThreadMessage, SourceConfig
from ..utils.email_parser import parse_figma_email, fuzzy_find_text
from ..utils.http import request_json
from ..utils.validation import ValidationResult

logger = logging.getLogger(__name__)

STATUS_REACTIONS = {
    "pending": ":eyes:",
    "processing": ":hourglass:",
    "analyzed": ":robot:",
    "completed": ":white_check_mark:",
    "failed": ":x:",
    "retrying": ":arrows_counterclockwise:",
}

MIN_TOKEN_LENGTH = 20

_RECIPIENT_LOCAL_PART = re.compile(r"^([^@]+)@")


def team_from_recipient(recipient: Optional[str]) -> str:
    """Local part of ``<team-slug>@domain``, or "default"."""
    if not recipient:
        return "default"
    match = _RECIPIENT_LOCAL_PART.match(recipient.strip())
    return match.group(1) if match else "default"


def _parse_created_at(value: Optional[str]) -> datetime:
    if not value:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.fromtimestamp(0, tz=timezone.utc)


class FigmaAdapter(DiscussionSourceAdapter):
    source_type = "figma"

    @property
    def api_base(self) -> str:
        return f"{settings.figma_api_url}/v1"

    def _headers(self, config: SourceConfig, json_body: bool = False) -> Dict[str, str]:
        headers = {"X-Figma-Token": config.api_token or ""}
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def parse_incoming(self, payload: Dict[str, Any],
                             config: Optional[SourceConfig] = None) -> ParsedDiscussion:
        try:
            parsed = parse_figma_email(payload)
        except Exception as e:
            raise self._error(f"Failed to parse Figma email: {e}") from e

        if not parsed.file_key:
            raise self._error("No Figma file key found in email")
        if not parsed.text or not parsed.text.strip():
            raise self._error("No comment text found in email")

        recipient = payload.get("recipient")
        email_slug = team_from_recipient(recipient)

        source_thread_id = parsed.file_key
        if parsed.comment_id:
            source_thread_id = f"{parsed.file_key}:{parsed.comment_id}"

        return ParsedDiscussion(
            source_type=self.source_type,
            source_thread_id=source_thread_id,
            source_url=parsed.file_url or f"https://www.figma.com/file/{parsed.file_key}",
            team_id=email_slug,
            author_handle=parsed.author or "unknown",
            title=parsed.subject or "Figma Comment",
            content=parsed.text,
            participants=[parsed.author] if parsed.author else [],
            timestamp=parsed.timestamp or datetime.now(timezone.utc),
            metadata={
                "fileKey": parsed.file_key,
                "commentId": parsed.comment_id,
                "emailType": parsed.email_type,
                "fileName": parsed.file_name,
                "links": parsed.links,
                "emailSlug": email_slug,
                "recipientEmail": recipient,
            },
        )

    async def fetch_thread(self, thread_id: str, config: SourceConfig,
                           hint: Optional[str] = None) -> DiscussionThread:
        file_key, _, target_comment_id = (thread_id or "").partition(":")
        if not file_key:
            raise self._error("Missing Figma file key", thread_id=thread_id)

        try:
            status, data = await request_json(
                "GET", f"{self.api_base}/files/{file_key}/comments", headers=self._headers(config)
            )
        except Exception as e:
            raise self._error(
                f"Failed to fetch Figma thread: {e}", thread_id=thread_id, retryable=True
            ) from e

        if status >= 400:
            raise self._api_error(status, data, thread_id)

        comments = data.get("comments") or [] if isinstance(data, dict) else []
        root = self._find_root_comment(comments, target_comment_id, hint)
        if root is None:
            raise self._error("Comment not found in file", thread_id=thread_id, status_code=404)

        replies = sorted(
            (c for c in comments if c.get("parent_id") == root["id"]),
            key=lambda c: _parse_created_at(c.get("created_at")),
        )

        root_message = self._to_thread_message(root)
        reply_messages = [self._to_thread_message(c) for c in replies]

        participants = [root_message.author_handle]
        for reply in reply_messages:
            if reply.author_handle not in participants:
                participants.append(reply.author_handle)

        return DiscussionThread(
            id=root["id"],
            root_message=root_message,
            replies=reply_messages,
            participants=participants,
            metadata={
                "fileKey": file_key,
                "commentId": root["id"],
                "resolved": root.get("resolved_at") is not None,
                "createdAt": root.get("created_at"),
            },
        )

    def _find_root_comment(self, comments: List[Dict[str, Any]], comment_id: str,
                           hint: Optional[str]) -> Optional[Dict[str, Any]]:
        if comment_id:
            match = next((c for c in comments if c.get("id") == comment_id), None)
            if match:
                return match

        roots = [c for c in comments if not c.get("parent_id")]
        if not roots:
            return None

        if hint:
            # The email quotes the comment; replies may be what triggered it
            by_message = {c.get("message", ""): c for c in comments}
            matched_text = fuzzy_find_text(hint, list(by_message))
            if matched_text is not None:
                matched = by_message[matched_text]
                parent_id = matched.get("parent_id")
                if parent_id:
                    parent = next((c for c in roots if c.get("id") == parent_id), None)
                    if parent:
                        return parent
                else:
                    return matched

        return max(roots, key=lambda c: _parse_created_at(c.get("created_at")))

    async def post_reply(self, thread_id: str, message: str, config: SourceConfig) -> bool:
        file_key, _, comment_id = (thread_id or "").partition(":")
        if not comment_id:
            logger.warning("No Figma comment id in thread id, cannot post reply")
            return False

        try:
            status, data = await request_json(
                "POST",
                f"{self.api_base}/files/{file_key}/comments",
                headers=self._headers(config, json_body=True),
                json={"message": message, "comment_id": comment_id},
            )
        except Exception as e:
            logger.error(f"Failed to post Figma reply: {e}")
            return False

        if status >= 400:
            logger.error(f"Failed to post Figma reply: {self._api_error(status, data, thread_id).message}")
            return False
        return True

    async def update_status(self, thread_id: str, status: str, config: SourceConfig) -> bool:
        file_key, _, comment_id = (thread_id or "").partition(":")
        if not comment_id:
            logger.warning("No Figma comment id in thread id, cannot update status")
            return False

        emoji = STATUS_REACTIONS.get(str(getattr(status, "value", status)))
        if not emoji:
            return False

        try:
            http_status, data = await request_json(
                "POST",
                f"{self.api_base}/files/{file_key}/comments/{comment_id}/reactions",
                headers=self._headers(config, json_body=True),
                json={"emoji": emoji},
            )
        except Exception as e:
            logger.error(f"Failed to update Figma status: {e}")
            return False

        if http_status >= 400:
            logger.error(
                f"Failed to update Figma status: {self._api_error(http_status, data, thread_id).message}"
            )
            return False
        return True

    async def remove_reaction(self, thread_id: str, emoji: str, config: SourceConfig) -> bool:
        """Remove a reaction; a missing reaction counts as removed."""
        file_key, _, comment_id = (thread_id or "").partition(":")
        if not comment_id:
            logger.warning("No Figma comment id in thread id, cannot remove reaction")
            return False

        figma_emoji = emoji if emoji.startswith(":") else f":{emoji}:"
        url = (
            f"{self.api_base}/files/{file_key}/comments/{comment_id}/reactions"
            f"?emoji={quote(figma_emoji)}"
        )

        try:
            status, data = await request_json("DELETE", url, headers=self._headers(config))
        except Exception as e:
            logger.error(f"Failed to remove Figma reaction: {e}")
            return False

        if status == 404:
            logger.debug("Figma reaction not found (already removed or never added)")
            return True
        if status >= 400:
            logger.error(f"Failed to remove Figma reaction: {self._api_error(status, data, thread_id).message}")
            return False
        return True

    async def validate_config(self, config: SourceConfig) -> ValidationResult:
        errors = []
        warnings = []

        token = (config.api_token or "").strip()
        if not token:
            errors.append("Figma API token is required")
        elif len(token) < MIN_TOKEN_LENGTH:
            warnings.append("Figma API token appears to be too short")

        self._validate_common(config, errors)
        return ValidationResult.from_messages(errors, warnings)

    async def test_connection(self, config: SourceConfig) -> bool:
        try:
            status, _ = await request_json("GET", f"{self.api_base}/me", headers=self._headers(config))
        except Exception as e:
            logger.error(f"Failed to test Figma connection: {e}")
            return False
        return status < 400

    def _to_thread_message(self, comment: Dict[str, Any]) -> ThreadMessage:
        user = comment.get("user") or {}
        return ThreadMessage(
            id=comment.get("id", ""),
            author_handle=user.get("handle") or "unknown",
            content=comment.get("message") or "",
            timestamp=_parse_created_at(comment.get("created_at")),
        )

    def _api_error(self, status: int, data: Any, thread_id: Optional[str] = None) -> AdapterError:
        message = f"Figma API error: {status}"
        if isinstance(data, dict) and (data.get("err") or data.get("message")):
            message = data.get("err") or data.get("message")
        return self._error(
            message,
            thread_id=thread_id,
            status_code=status,
            retryable=status >= 500 or status == 429,
        )
