"""
Tests for Notion task creation (integrations/notion.py).
"""

import pytest
from datetime import datetime
from unittest.mock import AsyncMock, patch

from src.integrations import notion as notion_api
from src.integrations.notion import (
    NotionAPIError,
    build_mention,
    build_task_content,
    build_task_properties,
    create_notion_task,
    create_notion_tasks,
    format_notion_property,
    get_database_schema,
    list_users,
    notion_request,
    transform_value,
)
from src.models.analysis import AISummary, DetectedTask, NotionTaskConfig
from src.models.discussion import DiscussionThread, ThreadMessage


@pytest.fixture
def no_sleep():
    # Also silences the backoff waits in src.utils.retry
    with patch('src.integrations.notion.asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


@pytest.fixture
def thread():
    return DiscussionThread(
        id="C1:1.0",
        root_message=ThreadMessage(id="1.0", author_handle="U1", content="Login broken :link: https://example.com/bug"),
        replies=[ThreadMessage(id="2.0", author_handle="U2", content="On it")],
        participants=["U1", "U2"],
    )


@pytest.fixture
def summary():
    return AISummary(summary="Safari login is broken.", key_points=["Fix login"], sentiment="negative", confidence=0.87)


@pytest.fixture
def task():
    return DetectedTask(
        title="Fix Safari login",
        description="Form does not submit",
        action_items=["Reproduce", "Patch"],
        priority="high",
        type="bug",
        assignee="U2",
        due_date="2026-02-01",
        tags=["frontend", "auth"],
    )


@pytest.fixture
def notion_config():
    return NotionTaskConfig(
        database_id="db-1",
        api_key="ntn_test",
        source_type="slack",
        source_url="https://slack.com/app_redirect?channel=C1",
        field_mapping={
            "priority": {"notionProperty": "Priority", "propertyType": "select", "valueMap": {"high": "P1"}},
            "type": {"notionProperty": "Kind", "propertyType": "multi_select"},
            "assignee": {"notionProperty": "Owner", "propertyType": "people"},
            "dueDate": {"notionProperty": "Due", "propertyType": "date"},
        },
        user_mappings={"U2": "notion-user-2"},
    )


class TestFormatProperty:

    def test_title_truncated(self):
        value = format_notion_property("x" * 2500, "title")
        assert len(value["title"][0]["text"]["content"]) == 2000

    def test_number(self):
        assert format_notion_property("3.5", "number") == {"number": 3.5}
        assert format_notion_property("abc", "number") == {"number": 0}

    def test_selects(self):
        assert format_notion_property("High", "select") == {"select": {"name": "High"}}
        assert format_notion_property("Done", "status") == {"status": {"name": "Done"}}
        assert format_notion_property(["a", "b"], "multi_select") == {"multi_select": [{"name": "a"}, {"name": "b"}]}

    def test_date(self):
        assert format_notion_property(datetime(2026, 1, 2), "date") == {"date": {"start": "2026-01-02T00:00:00"}}
        assert format_notion_property("2026-01-02", "date") == {"date": {"start": "2026-01-02"}}

    def test_checkbox_url(self):
        assert format_notion_property(1, "checkbox") == {"checkbox": True}
        assert format_notion_property("https://a.b", "url") == {"url": "https://a.b"}

    def test_people(self):
        assert format_notion_property("u1", "people") == {"people": [{"object": "user", "id": "u1"}]}
        assert format_notion_property([None, ""], "people") is None

    def test_unknown_type_falls_back_to_rich_text(self):
        assert format_notion_property(5, "formula") == {"rich_text": [{"text": {"content": "5"}}]}


class TestProperties:

    def test_value_map_case_insensitive(self):
        assert transform_value("High", {"high": "P1"}) == "P1"
        assert transform_value("low", {"high": "P1"}) == "low"
        assert transform_value("x", None) == "x"

    def test_name_only_without_mapping(self, task):
        assert list(build_task_properties(task)) == ["Name"]

    def test_mapped_properties(self, task, notion_config):
        properties = build_task_properties(task, notion_config.field_mapping, notion_config.user_mappings)

        assert properties["Name"]["title"][0]["text"]["content"] == "Fix Safari login"
        assert properties["Priority"] == {"select": {"name": "P1"}}
        assert properties["Kind"] == {"multi_select": [{"name": "bug"}]}
        assert properties["Owner"] == {"people": [{"object": "user", "id": "notion-user-2"}]}
        assert properties["Due"] == {"date": {"start": "2026-02-01"}}

    def test_unmapped_assignee_skipped(self, task, notion_config):
        properties = build_task_properties(task, notion_config.field_mapping, {})
        assert "Owner" not in properties


class TestContent:

    def test_blocks(self, task, thread, summary):
        blocks = build_task_content(
            task, thread, summary,
            source_url="https://slack.com/x", source_type="slack",
            user_mentions={"U2": "notion-user-2"},
        )
        types = [b["type"] for b in blocks]

        assert types[0] == "callout"
        assert blocks[0]["callout"]["rich_text"][0]["text"]["content"] == "AI Summary: Safari login is broken."
        assert types.count("to_do") == 2
        assert "heading_2" in types

        participants = next(
            b for b in blocks
            if b["type"] == "paragraph" and b["paragraph"]["rich_text"][0]["text"]["content"] == "👥 Participants: "
        )
        assert build_mention("notion-user-2") in participants["paragraph"]["rich_text"]

        bullets = [b["bulleted_list_item"]["rich_text"][0]["text"]["content"] for b in blocks if b["type"] == "bulleted_list_item"]
        assert "Source: slack" in bullets
        assert "Thread Size: 2 messages" in bullets
        assert "Confidence: 87%" in bullets
        assert "Tags: frontend, auth" in bullets

        link = blocks[-1]["paragraph"]["rich_text"][1]
        assert link["text"]["link"] == {"url": "https://slack.com/x"}
        assert link["text"]["content"] == "View Discussion in Slack"

    def test_key_points_used_without_action_items(self, thread, summary):
        blocks = build_task_content(DetectedTask(title="t"), thread, summary)
        todos = [b["to_do"]["rich_text"][0]["text"]["content"] for b in blocks if b["type"] == "to_do"]

        assert todos == ["Fix login"]


class TestNotionRequest:

    @pytest.mark.asyncio
    async def test_missing_key(self):
        with pytest.raises(NotionAPIError) as exc_info:
            await notion_request("GET", "/users", "")
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_error_response(self):
        body = {"object": "error", "code": "object_not_found", "message": "Could not find database"}
        with patch('src.integrations.notion.request_json', new=AsyncMock(return_value=(404, body))):
            with pytest.raises(NotionAPIError, match="Could not find database") as exc_info:
                await notion_request("GET", "/databases/x", "ntn_test")

        assert exc_info.value.code == "object_not_found"
        assert not exc_info.value.retryable

    def test_retryable_statuses(self):
        assert NotionAPIError("x", status_code=429).retryable
        assert NotionAPIError("x", status_code=502).retryable
        assert NotionAPIError("x", status_code=0).retryable
        assert not NotionAPIError("x", status_code=400).retryable


class TestCreateTasks:

    @pytest.mark.asyncio
    async def test_create_one(self, task, thread, summary, notion_config, no_sleep):
        page = {"id": "page-1234-abcd", "url": "https://notion.so/page1234abcd"}
        with patch('src.integrations.notion.request_json', new=AsyncMock(return_value=(200, page))) as mock_request:
            result = await create_notion_task(task, thread, summary, notion_config)

        assert result.id == "page-1234-abcd"
        assert result.url == "https://notion.so/page1234abcd"
        body = mock_request.call_args.kwargs["json"]
        assert body["parent"] == {"database_id": "db-1"}
        assert "Priority" in body["properties"]
        assert mock_request.call_args.args[1].endswith("/pages")

    @pytest.mark.asyncio
    async def test_url_fallback(self, task, thread, summary, notion_config, no_sleep):
        with patch('src.integrations.notion.request_json', new=AsyncMock(return_value=(200, {"id": "ab-cd"}))):
            result = await create_notion_task(task, thread, summary, notion_config)

        assert result.url == "https://notion.so/abcd"

    @pytest.mark.asyncio
    async def test_retries_server_errors(self, task, thread, summary, notion_config, no_sleep):
        mock_request = AsyncMock(side_effect=[(503, {"message": "busy"}), (200, {"id": "p1", "url": "u"})])
        with patch('src.integrations.notion.request_json', new=mock_request):
            result = await create_notion_task(task, thread, summary, notion_config)

        assert result.id == "p1"
        assert mock_request.await_count == 2

    @pytest.mark.asyncio
    async def test_validation_error_not_retried(self, task, thread, summary, notion_config, no_sleep):
        mock_request = AsyncMock(return_value=(400, {"message": "Priority is not a property"}))
        with patch('src.integrations.notion.request_json', new=mock_request):
            with pytest.raises(NotionAPIError, match="Priority is not a property"):
                await create_notion_task(task, thread, summary, notion_config)

        assert mock_request.await_count == 1

    @pytest.mark.asyncio
    async def test_exhausted_raises_last_error(self, task, thread, summary, notion_config, no_sleep):
        with patch('src.integrations.notion.request_json', new=AsyncMock(return_value=(500, {"message": "down"}))):
            with pytest.raises(NotionAPIError, match="down"):
                await create_notion_task(task, thread, summary, notion_config)

    @pytest.mark.asyncio
    async def test_create_many_sequentially(self, task, thread, summary, notion_config, no_sleep):
        pages = [(200, {"id": f"p{i}", "url": f"u{i}"}) for i in range(3)]
        with patch('src.integrations.notion.request_json', new=AsyncMock(side_effect=pages)):
            results = await create_notion_tasks([task, task, task], thread, summary, notion_config)

        assert [r.id for r in results] == ["p0", "p1", "p2"]
        assert no_sleep.await_count == 2


class TestSchemaAndUsers:

    @pytest.mark.asyncio
    async def test_connection_ok(self, no_sleep):
        database = {"title": [{"plain_text": "Tasks"}], "url": "https://notion.so/db1"}
        with patch('src.integrations.notion.request_json', new=AsyncMock(return_value=(200, database))):
            result = await notion_api.test_notion_connection("db-1", "ntn_test")

        assert result == {
            "connected": True,
            "details": {"database_id": "db-1", "title": "Tasks", "url": "https://notion.so/db1"},
        }

    @pytest.mark.asyncio
    async def test_connection_unauthorized(self, no_sleep):
        with patch('src.integrations.notion.request_json', new=AsyncMock(return_value=(401, {"message": "API token is invalid."}))):
            result = await notion_api.test_notion_connection("db-1", "ntn_bad")

        assert result == {"connected": False, "error": "API token is invalid."}

    @pytest.mark.asyncio
    async def test_database_schema(self):
        database = {
            "title": [{"plain_text": "Tasks"}],
            "properties": {
                "Name": {"id": "title", "type": "title"},
                "Priority": {"id": "p", "type": "select", "select": {"options": [{"id": "1", "name": "P1", "color": "red"}]}},
            },
        }
        with patch('src.integrations.notion.request_json', new=AsyncMock(return_value=(200, database))):
            schema = await get_database_schema("db-1", "ntn_test")

        assert schema["database_title"] == "Tasks"
        assert schema["properties"]["Name"] == {"type": "title", "id": "title"}
        assert schema["properties"]["Priority"]["options"] == [{"name": "P1", "color": "red", "id": "1"}]

    @pytest.mark.asyncio
    async def test_list_users_paginates_and_filters_bots(self):
        page_one = {
            "results": [
                {"id": "u1", "type": "person", "name": "Ada", "person": {"email": "ada@example.com"}},
                {"id": "b1", "type": "bot", "name": "Discubot", "bot": {"owner": {"user": {"person": {"email": "owner@example.com"}}}}},
            ],
            "has_more": True,
            "next_cursor": "c2",
        }
        page_two = {"results": [{"id": "u2", "type": "person"}], "has_more": False}
        mock_request = AsyncMock(side_effect=[(200, page_one), (200, page_two)] * 2)

        with patch('src.integrations.notion.request_json', new=mock_request):
            people = await list_users("ntn_test")
            everyone = await list_users("ntn_test", include_bots=True)

        assert [u["id"] for u in people] == ["u1", "u2"]
        assert people[1]["name"] == "Unknown"
        assert [u["id"] for u in everyone] == ["u1", "b1", "u2"]
        assert everyone[1]["email"] == "owner@example.com"
