"""
Notion task creation.

Turns detected tasks into pages in a team's Notion database: a "Name"
title plus any properties configured through the field mapping, and a
page body with the AI summary, action items, participants, thread
content, metadata and a link back to the source discussion.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Dict, Any, Optional, List

from config import settings
from ..models.analysis import AISummary, DetectedTask, NotionTaskConfig, NotionTaskResult
from ..models.discussion import DiscussionThread
from ..monitoring.metrics import metrics_collector, METRICS
from ..monitoring.prometheus import notion_requests_total
from ..utils.emoji import rich_text, parse_content_with_links
from ..utils.http import request_json
from ..utils.retry import retry_with_backoff, NOTION_RETRY, RetryExhausted

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 2000
SELECT_TYPES = ("select", "multi_select", "status")


class NotionAPIError(Exception):
    """Error response from the Notion API."""

    def __init__(self, message: str, status_code: int = 0, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    @property
    def retryable(self) -> bool:
        return self.status_code == 0 or self.status_code == 429 or self.status_code >= 500


def _headers(api_key: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Notion-Version": settings.notion_api_version,
        "Content-Type": "application/json",
    }


async def notion_request(method: str, path: str, api_key: str, *,
                         json: Any = None, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Call the Notion API, raising NotionAPIError for error responses."""
    if not api_key:
        raise NotionAPIError("Notion API key is not configured", status_code=401, code="unauthorized")

    try:
        status, data = await request_json(
            method, f"{settings.notion_api_url}{path}", headers=_headers(api_key), json=json, params=params
        )
    except Exception as e:
        raise NotionAPIError(f"Notion request failed: {e}") from e

    if status >= 400 or not isinstance(data, dict):
        message = data.get("message") if isinstance(data, dict) else None
        code = data.get("code") if isinstance(data, dict) else None
        raise NotionAPIError(message or f"Notion API error: {status}", status_code=status, code=code)
    return data


def _truncate(value: Any) -> str:
    return str(value)[:MAX_TEXT_LENGTH]


def format_notion_property(value: Any, property_type: str) -> Optional[Dict[str, Any]]:
    """Format a value as a Notion property of the given type."""
    if property_type == "title":
        return {"title": [{"text": {"content": _truncate(value)}}]}

    if property_type == "rich_text":
        return {"rich_text": [{"text": {"content": _truncate(value)}}]}

    if property_type == "number":
        try:
            return {"number": float(value)}
        except (TypeError, ValueError):
            return {"number": 0}

    if property_type == "select":
        return {"select": {"name": str(value)}}

    if property_type == "status":
        return {"status": {"name": str(value)}}

    if property_type == "multi_select":
        values = value if isinstance(value, (list, tuple)) else [value]
        return {"multi_select": [{"name": str(v)} for v in values]}

    if property_type == "date":
        start = value.isoformat() if isinstance(value, datetime) else str(value)
        return {"date": {"start": start}}

    if property_type == "checkbox":
        return {"checkbox": bool(value)}

    if property_type in ("url", "email", "phone_number"):
        return {property_type: str(value)}

    if property_type == "people":
        ids = value if isinstance(value, (list, tuple)) else [value]
        ids = [i for i in ids if i is not None and i != ""]
        if not ids:
            return None
        return {"people": [{"object": "user", "id": str(i)} for i in ids]}

    return {"rich_text": [{"text": {"content": _truncate(value)}}]}


def transform_value(value: str, value_map: Optional[Dict[str, str]] = None) -> str:
    """Map an AI value onto a Notion option name via ``value_map``."""
    if not value_map:
        return value
    if value in value_map:
        return value_map[value]
    lowered = value.lower()
    for key, mapped in value_map.items():
        if key.lower() == lowered:
            return mapped
    return value


def _mapping_target(mapping: Dict[str, Any]):
    name = mapping.get("notionProperty") or mapping.get("name")
    property_type = mapping.get("propertyType") or mapping.get("type") or "rich_text"
    return name, property_type


def build_task_properties(task: DetectedTask, field_mapping: Optional[Dict[str, Any]] = None,
                          user_mappings: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Page properties: "Name" plus any mapped task fields."""
    properties: Dict[str, Any] = {"Name": format_notion_property(task.title, "title")}

    if not field_mapping:
        return properties

    task_values = {
        "priority": task.priority.value if task.priority else None,
        "type": task.type.value if task.type else None,
        "assignee": task.assignee,
        "dueDate": task.due_date,
        "tags": task.tags or None,
    }

    for field_name, value in task_values.items():
        if value is None:
            continue
        mapping = field_mapping.get(field_name) or field_mapping.get(
            "due_date" if field_name == "dueDate" else field_name
        )
        if not isinstance(mapping, dict):
            continue
        property_name, property_type = _mapping_target(mapping)
        if not property_name:
            continue

        if property_type == "people":
            notion_user_id = (user_mappings or {}).get(str(value))
            if not notion_user_id:
                logger.warning(f"No Notion user mapping for assignee: {value}")
                continue
            value = notion_user_id
        elif property_type in SELECT_TYPES and isinstance(value, str):
            value = transform_value(value, mapping.get("valueMap"))

        formatted = format_notion_property(value, property_type)
        if formatted:
            properties[property_name] = formatted
            logger.debug(f"Mapped {field_name} -> {property_name} ({property_type})")

    return properties


def _block(block_type: str, **content) -> Dict[str, Any]:
    return {"object": "block", "type": block_type, block_type: content}


def _divider() -> Dict[str, Any]:
    return _block("divider")


def build_task_content(task: DetectedTask, thread: DiscussionThread, summary: AISummary,
                       source_url: str = "", source_type: str = "",
                       user_mentions: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
    """Page body blocks for a task."""
    blocks: List[Dict[str, Any]] = []

    if summary.summary:
        blocks.append(_block(
            "callout",
            icon={"emoji": "🤖"},
            rich_text=[rich_text(_truncate(f"AI Summary: {summary.summary}"))],
        ))

    action_items = task.action_items or summary.key_points
    if action_items:
        blocks.append(_block("heading_3", rich_text=[rich_text("📋 Key Action Items")]))
        for item in action_items:
            blocks.append(_block("to_do", checked=False, rich_text=[rich_text(_truncate(item))]))

    participants = [p for p in thread.participants if p]
    if participants:
        participant_text = [rich_text("👥 Participants: ")]
        for index, participant in enumerate(participants):
            notion_user_id = (user_mentions or {}).get(participant)
            if notion_user_id:
                participant_text.append(build_mention(notion_user_id))
            else:
                participant_text.append(rich_text(f"@{participant}"))
            if index < len(participants) - 1:
                participant_text.append(rich_text(", "))
        blocks.append(_block("paragraph", rich_text=participant_text))

    blocks.append(_divider())

    blocks.append(_block("heading_2", rich_text=[rich_text("Thread Content")]))
    blocks.append(_block(
        "paragraph",
        rich_text=parse_content_with_links(_truncate(task.description or thread.root_message.content)),
    ))

    blocks.append(_divider())

    blocks.append(_block("heading_2", rich_text=[rich_text("Metadata")]))
    metadata_items = [
        f"Source: {source_type}",
        f"Thread ID: {thread.id}",
        f"Thread Size: {thread.total_messages} messages",
        f"Created By: @{thread.root_message.author_handle}",
        f"Priority: {task.priority.value if task.priority else 'medium'}",
        f"Sentiment: {summary.sentiment.value if summary.sentiment else 'neutral'}",
        f"Confidence: {round((summary.confidence or 0) * 100)}%",
        f"Timestamp: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')}",
    ]
    if task.assignee:
        metadata_items.append(f"Assignee: @{task.assignee}")
    if task.tags:
        metadata_items.append(f"Tags: {', '.join(task.tags)}")

    for item in metadata_items:
        blocks.append(_block("bulleted_list_item", rich_text=[rich_text(item)]))

    if source_url:
        blocks.append(_divider())
        blocks.append(_block("paragraph", rich_text=[
            rich_text("🔗 "),
            rich_text(
                f"View Discussion in {source_type.capitalize()}",
                url=source_url,
                bold=True,
                color="blue",
            ),
        ]))

    return blocks


def build_mention(notion_user_id: str) -> Dict[str, Any]:
    """Rich text @mention of a Notion user."""
    return {"type": "mention", "mention": {"type": "user", "user": {"id": notion_user_id}}}


def _is_retryable(error: Exception) -> bool:
    return not isinstance(error, NotionAPIError) or error.retryable


async def create_notion_task(task: DetectedTask, thread: DiscussionThread, summary: AISummary,
                             config: NotionTaskConfig,
                             user_mentions: Optional[Dict[str, str]] = None) -> NotionTaskResult:
    """Create one page in the configured database."""
    properties = build_task_properties(task, config.field_mapping, config.user_mappings)
    children = build_task_content(
        task, thread, summary,
        source_url=config.source_url,
        source_type=config.source_type,
        user_mentions=user_mentions if user_mentions is not None else config.user_mappings,
    )

    logger.info(f"Creating Notion task '{task.title}' in database {config.database_id}")
    timer = metrics_collector.start(METRICS.NOTION_CREATE_TASK)

    try:
        page = await retry_with_backoff(
            notion_request,
            "POST",
            "/pages",
            config.api_key,
            json={
                "parent": {"database_id": config.database_id},
                "properties": properties,
                "children": children,
            },
            should_retry=_is_retryable,
            **NOTION_RETRY,
        )
    except RetryExhausted as e:
        timer.end(success=False)
        notion_requests_total.labels(operation="create_page", status="error").inc()
        raise e.last_exception or e
    except Exception:
        timer.end(success=False)
        notion_requests_total.labels(operation="create_page", status="error").inc()
        raise

    duration = timer.end(success=True)
    notion_requests_total.labels(operation="create_page", status="success").inc()
    logger.info(f"Created Notion task {page.get('id')} in {duration:.0f}ms")

    return NotionTaskResult(
        id=page["id"],
        url=page.get("url") or f"https://notion.so/{page['id'].replace('-', '')}",
        created_at=datetime.now(timezone.utc),
    )


async def create_notion_tasks(tasks: List[DetectedTask], thread: DiscussionThread, summary: AISummary,
                              config: NotionTaskConfig,
                              user_mentions: Optional[Dict[str, str]] = None) -> List[NotionTaskResult]:
    """
    Create tasks one after another, pausing between requests to stay
    under Notion's rate limit. Stops at the first failure.
    """
    results: List[NotionTaskResult] = []
    timer = metrics_collector.start(METRICS.NOTION_CREATE_TASKS)
    delay = settings.notion_task_delay_ms / 1000

    try:
        for index, task in enumerate(tasks):
            result = await create_notion_task(task, thread, summary, config, user_mentions)
            results.append(result)
            logger.debug(f"Created task {index + 1}/{len(tasks)}: {result.id}")
            if index < len(tasks) - 1 and delay > 0:
                await asyncio.sleep(delay)
    except Exception as e:
        timer.end(success=False, created=len(results))
        logger.error(f"Failed to create Notion task {len(results) + 1}/{len(tasks)}: {e}")
        raise

    timer.end(success=True, created=len(results))
    return results


async def test_notion_connection(database_id: str, api_key: str) -> Dict[str, Any]:
    """Check the API key can read the database."""
    try:
        database = await retry_with_backoff(
            notion_request, "GET", f"/databases/{database_id}", api_key,
            max_attempts=2, base_delay=0.5, should_retry=_is_retryable,
        )
    except RetryExhausted as e:
        error = e.last_exception or e
        logger.error(f"Notion connection test failed: {error}")
        return {"connected": False, "error": getattr(error, "message", str(error))}
    except Exception as e:
        logger.error(f"Notion connection test failed: {e}")
        return {"connected": False, "error": getattr(e, "message", str(e)) or "Unknown error"}

    return {
        "connected": True,
        "details": {
            "database_id": database_id,
            "title": database_title(database),
            "url": database.get("url") or f"https://notion.so/{database_id.replace('-', '')}",
        },
    }


def database_title(database: Dict[str, Any], default: str = "Untitled Database") -> str:
    title = database.get("title") or []
    if title and isinstance(title, list):
        return title[0].get("plain_text") or default
    return default


async def get_database_schema(database_id: str, api_key: str) -> Dict[str, Any]:
    """Property names, types and select options of a database."""
    database = await notion_request("GET", f"/databases/{database_id}", api_key)

    properties = {}
    for name, prop in (database.get("properties") or {}).items():
        property_type = prop.get("type")
        info: Dict[str, Any] = {"type": property_type, "id": prop.get("id")}
        if property_type in SELECT_TYPES:
            options = (prop.get(property_type) or {}).get("options") or []
            info["options"] = [
                {"name": o.get("name"), "color": o.get("color"), "id": o.get("id")} for o in options
            ]
        properties[name] = info

    return {
        "database_id": database_id,
        "database_title": database_title(database, default="Unknown Database"),
        "properties": properties,
    }


async def list_users(api_key: str, include_bots: bool = False) -> List[Dict[str, Any]]:
    """Workspace users, people only unless ``include_bots``."""
    users: List[Dict[str, Any]] = []
    cursor = None

    while True:
        params = {"page_size": "100"}
        if cursor:
            params["start_cursor"] = cursor
        data = await notion_request("GET", "/users", api_key, params=params)

        for user in data.get("results") or []:
            person = user.get("person") or {}
            bot_owner = ((user.get("bot") or {}).get("owner") or {}).get("user") or {}
            users.append({
                "id": user.get("id"),
                "name": user.get("name") or "Unknown",
                "email": person.get("email") or (bot_owner.get("person") or {}).get("email"),
                "type": user.get("type"),
                "avatar_url": user.get("avatar_url"),
            })

        if not data.get("has_more") or not data.get("next_cursor"):
            break
        cursor = data["next_cursor"]

    if include_bots:
        return users
    return [u for u in users if u["type"] == "person"]
