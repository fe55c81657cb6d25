"""
Slack source adapter.

Parses Events API payloads, reads threads with conversations.replies,
replies with chat.postMessage and shows pipeline status as reactions.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from config import settings
from .base import DiscussionSourceAdapter, extract_title
from ..models.discussion import ParsedDiscussion, DiscussionThread, ThreadMessage, SourceConfig
from ..utils.emoji import convert_slack_emojis
from ..utils.http import request_json
from ..utils.validation import ValidationResult

logger = logging.getLogger(__name__)

SUPPORTED_EVENTS = ("message", "app_mention")

STATUS_REACTIONS = {
    "pending": "eyes",
    "processing": "hourglass_flowing_sand",
    "analyzed": "robot_face",
    "completed": "white_check_mark",
    "failed": "x",
    "retrying": "arrows_counterclockwise",
}


def is_bot_event(payload: Dict[str, Any], bot_user_id: Optional[str] = None) -> bool:
    """True for events a bot posted, including this app's own replies."""
    event = payload.get("event") or {}
    if event.get("bot_id") or event.get("subtype") == "bot_message":
        return True

    user = event.get("user")
    if not user:
        return False
    bot_users = {bot_user_id} if bot_user_id else set()
    for authorization in payload.get("authorizations") or []:
        if authorization.get("is_bot") and authorization.get("user_id"):
            bot_users.add(authorization["user_id"])
    return user in bot_users


def _ts_to_datetime(ts: str) -> datetime:
    try:
        return datetime.fromtimestamp(float(ts), tz=timezone.utc)
    except (TypeError, ValueError):
        return datetime.now(timezone.utc)


def _split_thread_id(thread_id: str):
    channel_id, _, thread_ts = (thread_id or "").partition(":")
    return channel_id, thread_ts


class SlackAdapter(DiscussionSourceAdapter):
    source_type = "slack"

    def _headers(self, config: SourceConfig) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {config.api_token}",
            "Content-Type": "application/json; charset=utf-8",
        }

    async def parse_incoming(self, payload: Dict[str, Any],
                             config: Optional[SourceConfig] = None) -> ParsedDiscussion:
        if payload.get("type") == "url_verification":
            raise self._error("URL verification challenge received - handle separately")

        event = payload.get("event")
        if not event:
            raise self._error("No event found in Slack payload")

        event_type = event.get("type")
        if event_type not in SUPPORTED_EVENTS:
            raise self._error(f"Unsupported event type: {event_type}")

        # Edits, deletes, bot messages...
        if event_type == "message" and event.get("subtype"):
            raise self._error(f"Message subtype not supported: {event['subtype']}")

        bot_user_id = config.source_metadata.get("botUserId") if config else None
        if is_bot_event(payload, bot_user_id):
            raise self._error("Ignoring event posted by a bot")

        text = event.get("text") or ""
        if not text.strip():
            raise self._error("No message text found in event")
        if not event.get("channel"):
            raise self._error("No channel ID found in event")
        if not event.get("user"):
            raise self._error("No user ID found in event")

        slack_team_id = payload.get("team_id") or "default"
        channel = event["channel"]
        ts = event.get("ts", "")
        thread_ts = event.get("thread_ts") or ts
        content = convert_slack_emojis(text)

        return ParsedDiscussion(
            source_type=self.source_type,
            source_thread_id=f"{channel}:{thread_ts}",
            source_url=(
                f"https://slack.com/app_redirect?team={slack_team_id}"
                f"&channel={channel}&message_ts={ts}"
            ),
            team_id=slack_team_id,
            author_handle=event["user"],
            title=extract_title(content),
            content=content,
            participants=[event["user"]],
            timestamp=_ts_to_datetime(ts),
            metadata={
                "slackTeamId": slack_team_id,
                "channelId": channel,
                "messageTs": ts,
                "threadTs": event.get("thread_ts"),
                "channelType": event.get("channel_type"),
                "eventType": event_type,
            },
        )

    async def fetch_thread(self, thread_id: str, config: SourceConfig,
                           hint: Optional[str] = None) -> DiscussionThread:
        channel_id, thread_ts = _split_thread_id(thread_id)
        if not channel_id or not thread_ts:
            raise self._error(
                'Invalid thread ID format, expected "channel:thread_ts"',
                thread_id=thread_id,
            )

        try:
            status, data = await request_json(
                "GET",
                f"{settings.slack_api_url}/conversations.replies",
                headers=self._headers(config),
                params={"channel": channel_id, "ts": thread_ts, "limit": "100"},
            )
        except Exception as e:
            raise self._error(
                f"Failed to fetch Slack thread: {e}", thread_id=thread_id, retryable=True
            ) from e

        if status >= 400:
            raise self._error(
                f"Slack API error: {status}",
                thread_id=thread_id,
                status_code=status,
                retryable=status >= 500 or status == 429,
            )

        if not isinstance(data, dict) or not data.get("ok"):
            error = data.get("error") if isinstance(data, dict) else None
            raise self._error(
                f"Slack API error: {error or 'Unknown error'}",
                thread_id=thread_id,
                retryable=error == "rate_limited",
            )

        messages = data.get("messages") or []
        if not messages:
            raise self._error(
                "No messages found in thread", thread_id=thread_id, status_code=404
            )

        root, replies = messages[0], messages[1:]
        participants = []
        for message in messages:
            user = message.get("user")
            if user and user not in participants:
                participants.append(user)

        return DiscussionThread(
            id=thread_ts,
            root_message=self._to_thread_message(root),
            replies=[self._to_thread_message(m) for m in replies],
            participants=participants,
            metadata={
                "channelId": channel_id,
                "threadTs": thread_ts,
                "messageCount": len(messages),
                "hasMore": bool(data.get("has_more")),
            },
        )

    async def post_reply(self, thread_id: str, message: str, config: SourceConfig) -> bool:
        channel_id, thread_ts = _split_thread_id(thread_id)
        if not channel_id or not thread_ts:
            logger.warning("Invalid Slack thread ID format, cannot post reply")
            return False

        try:
            status, data = await request_json(
                "POST",
                f"{settings.slack_api_url}/chat.postMessage",
                headers=self._headers(config),
                json={"channel": channel_id, "text": message, "thread_ts": thread_ts},
            )
        except Exception as e:
            logger.error(f"Failed to post Slack reply: {e}")
            return False

        if status >= 400 or not isinstance(data, dict) or not data.get("ok"):
            error = data.get("error") if isinstance(data, dict) else status
            logger.error(f"Failed to post Slack reply: {error}")
            return False
        return True

    async def update_status(self, thread_id: str, status: str, config: SourceConfig) -> bool:
        channel_id, thread_ts = _split_thread_id(thread_id)
        if not channel_id or not thread_ts:
            logger.warning("Invalid Slack thread ID format, cannot update status")
            return False

        emoji = STATUS_REACTIONS.get(str(getattr(status, "value", status)))
        if not emoji:
            logger.warning(f"No Slack reaction for status {status}")
            return False

        try:
            http_status, data = await request_json(
                "POST",
                f"{settings.slack_api_url}/reactions.add",
                headers=self._headers(config),
                json={"channel": channel_id, "timestamp": thread_ts, "name": emoji},
            )
        except Exception as e:
            logger.error(f"Failed to update Slack status: {e}")
            return False

        if http_status >= 400 or not isinstance(data, dict):
            logger.error(f"Failed to update Slack status: HTTP {http_status}")
            return False

        if not data.get("ok"):
            if data.get("error") == "already_reacted":
                return True
            logger.error(f"Failed to update Slack status: {data.get('error') or 'Unknown error'}")
            return False
        return True

    async def validate_config(self, config: SourceConfig) -> ValidationResult:
        errors = []
        warnings = []

        token = (config.api_token or "").strip()
        if not token:
            errors.append("Slack API token is required")
        elif not token.startswith(("xoxb-", "xoxp-")):
            warnings.append(
                'Slack API token should start with "xoxb-" (bot token) or "xoxp-" (user token)'
            )

        self._validate_common(config, errors)

        workspace_id = config.settings.get("workspaceId") or config.source_metadata.get("slackTeamId")
        if not workspace_id:
            warnings.append(
                "Slack workspace ID not found in settings - deep links may not work correctly"
            )

        return ValidationResult.from_messages(errors, warnings)

    async def test_connection(self, config: SourceConfig) -> bool:
        try:
            status, data = await request_json(
                "POST", f"{settings.slack_api_url}/auth.test", headers=self._headers(config)
            )
        except Exception as e:
            logger.error(f"Failed to test Slack connection: {e}")
            return False
        return status < 400 and isinstance(data, dict) and bool(data.get("ok"))

    def _to_thread_message(self, message: Dict[str, Any]) -> ThreadMessage:
        return ThreadMessage(
            id=message.get("ts", ""),
            author_handle=message.get("user") or message.get("bot_id") or "unknown",
            content=convert_slack_emojis(message.get("text") or ""),
            timestamp=_ts_to_datetime(message.get("ts")),
        )
