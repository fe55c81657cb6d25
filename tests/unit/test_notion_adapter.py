"""
Tests for the Notion comments source adapter (adapters/notion.py).
"""

import pytest
from unittest.mock import AsyncMock, patch

from src.adapters import AdapterError, NotionAdapter, check_for_trigger, fetch_comment
from src.adapters.notion import rich_text_to_plain
from src.models.discussion import SourceConfig


def text(content):
    return [{"type": "text", "plain_text": content, "text": {"content": content}}]


def comment(comment_id, content, discussion_id="disc-1", user="user-1", created="2026-01-01T10:00:00.000Z"):
    return {
        "object": "comment",
        "id": comment_id,
        "discussion_id": discussion_id,
        "rich_text": text(content),
        "created_by": {"object": "user", "id": user},
        "created_time": created,
    }


@pytest.fixture
def adapter():
    return NotionAdapter()


@pytest.fixture
def config():
    return SourceConfig(
        team_id="team-1",
        source_type="notion",
        notion_token="ntn_test",
        notion_database_id="db-1",
        source_metadata={"notionWorkspaceId": "ws-1"},
    )


@pytest.fixture
def webhook_payload():
    return {
        "type": "comment.created",
        "workspace_id": "ws-1",
        "timestamp": "2026-01-01T10:00:00.000Z",
        "data": {
            "id": "comment-1",
            "discussion_id": "disc-1",
            "parent": {"type": "page", "page_id": "page-abc-123"},
        },
    }


class TestTriggers:

    def test_rich_text_to_plain(self):
        assert rich_text_to_plain(text("a") + [{"text": {"content": "b"}}]) == "ab"
        assert rich_text_to_plain(None) == ""

    def test_trigger_case_insensitive(self):
        assert check_for_trigger(text("Hey @DiscuBot make a task"))
        assert not check_for_trigger(text("Nothing to see"))
        assert not check_for_trigger([])

    def test_custom_trigger(self):
        assert check_for_trigger(text("ping !task"), keyword="!task")


class TestFetchComment:

    @pytest.mark.asyncio
    async def test_success(self):
        data = comment("comment-1", "hi")
        with patch('src.adapters.notion.request_json', new=AsyncMock(return_value=(200, data))) as mock_request:
            assert await fetch_comment("comment-1", "ntn_test") == data

        assert mock_request.call_args.kwargs["headers"]["Authorization"] == "Bearer ntn_test"
        assert "Notion-Version" in mock_request.call_args.kwargs["headers"]

    @pytest.mark.asyncio
    async def test_not_found_returns_none(self):
        with patch('src.adapters.notion.request_json', new=AsyncMock(return_value=(404, {"object": "error"}))):
            assert await fetch_comment("comment-1", "ntn_test") is None

    @pytest.mark.asyncio
    async def test_network_error_returns_none(self):
        with patch('src.adapters.notion.request_json', new=AsyncMock(side_effect=OSError("down"))):
            assert await fetch_comment("comment-1", "ntn_test") is None


class TestParseIncoming:

    @pytest.mark.asyncio
    async def test_fetches_comment_body(self, adapter, config, webhook_payload):
        fetched = comment("comment-1", "@discubot please track this")
        with patch('src.adapters.notion.fetch_comment', new=AsyncMock(return_value=fetched)):
            parsed = await adapter.parse_incoming(webhook_payload, config)

        assert parsed.source_thread_id == "page-abc-123:disc-1"
        assert parsed.source_url == "https://www.notion.so/pageabc123?d=disc-1"
        assert parsed.content == "@discubot please track this"
        assert parsed.author_handle == "user-1"
        assert parsed.team_id == "ws-1"
        assert parsed.metadata["notionWorkspaceId"] == "ws-1"
        assert parsed.metadata["parentType"] == "page"

    @pytest.mark.asyncio
    async def test_uses_inline_rich_text(self, adapter, webhook_payload):
        webhook_payload["data"]["rich_text"] = text("inline body")
        webhook_payload["data"]["created_by"] = {"id": "user-9"}

        with patch('src.adapters.notion.fetch_comment', new=AsyncMock()) as mock_fetch:
            parsed = await adapter.parse_incoming(webhook_payload)

        mock_fetch.assert_not_awaited()
        assert parsed.content == "inline body"
        assert parsed.author_handle == "user-9"

    @pytest.mark.asyncio
    async def test_unsupported_event(self, adapter, webhook_payload):
        webhook_payload["type"] = "page.created"
        with pytest.raises(AdapterError, match="Unsupported event type"):
            await adapter.parse_incoming(webhook_payload)

    @pytest.mark.asyncio
    async def test_missing_ids(self, adapter, webhook_payload):
        del webhook_payload["data"]["discussion_id"]
        with pytest.raises(AdapterError, match="Missing required IDs"):
            await adapter.parse_incoming(webhook_payload)


class TestFetchThread:

    @pytest.mark.asyncio
    async def test_paginates_and_filters_by_discussion(self, adapter, config):
        page_one = {
            "results": [
                comment("c2", "second", created="2026-01-01T11:00:00Z", user="user-2"),
                comment("x1", "other thread", discussion_id="disc-2"),
            ],
            "has_more": True,
            "next_cursor": "cursor-2",
        }
        page_two = {
            "results": [comment("c1", "first", created="2026-01-01T10:00:00Z")],
            "has_more": False,
            "next_cursor": None,
        }
        mock_request = AsyncMock(side_effect=[(200, page_one), (200, page_two)])

        with patch('src.adapters.notion.request_json', new=mock_request):
            thread = await adapter.fetch_thread("page-1:disc-1", config)

        assert thread.id == "disc-1"
        assert thread.root_message.content == "first"
        assert [r.content for r in thread.replies] == ["second"]
        assert thread.participants == ["user-1", "user-2"]
        assert mock_request.await_args_list[1].kwargs["params"]["start_cursor"] == "cursor-2"

    @pytest.mark.asyncio
    async def test_empty_discussion(self, adapter, config):
        with patch('src.adapters.notion.request_json', new=AsyncMock(return_value=(200, {"results": []}))):
            with pytest.raises(AdapterError, match="No comments"):
                await adapter.fetch_thread("page-1:disc-1", config)

    @pytest.mark.asyncio
    async def test_invalid_thread_id(self, adapter, config):
        with pytest.raises(AdapterError, match="Invalid thread ID"):
            await adapter.fetch_thread("page-1", config)


class TestRepliesAndConfig:

    @pytest.mark.asyncio
    async def test_post_reply(self, adapter, config):
        with patch('src.adapters.notion.request_json', new=AsyncMock(return_value=(200, {"id": "new"}))) as mock_request:
            assert await adapter.post_reply("page-1:disc-1", "Task created", config)

        body = mock_request.call_args.kwargs["json"]
        assert body["discussion_id"] == "disc-1"
        assert body["rich_text"][0]["text"]["content"] == "Task created"

    @pytest.mark.asyncio
    async def test_update_status_is_noop(self, adapter, config):
        assert await adapter.update_status("page-1:disc-1", "completed", config)

    @pytest.mark.asyncio
    async def test_validate_token_prefix(self, adapter, config):
        config.notion_token = "bogus"
        result = await adapter.validate_config(config)

        assert result.is_valid
        assert len(result.warnings) == 1

    @pytest.mark.asyncio
    async def test_validate_missing_token(self, adapter):
        result = await adapter.validate_config(SourceConfig(team_id="t", source_type="notion"))
        assert "Notion API token is required" in result.errors

    @pytest.mark.asyncio
    async def test_connection(self, adapter, config):
        with patch('src.adapters.notion.request_json', new=AsyncMock(return_value=(200, {"object": "user"}))):
            assert await adapter.test_connection(config)
        with patch('src.adapters.notion.request_json', new=AsyncMock(return_value=(401, {"object": "error"}))):
            assert not await adapter.test_connection(config)
