"""
Tests for user mapping resolution and bulk import (user_mapping.py).
"""

import pytest
from unittest.mock import AsyncMock, Mock, patch

from src.services.user_mapping import (
    MAX_IMPORT_MAPPINGS,
    bulk_import_mappings,
    resolve_user_mentions,
)


def mapping_row(**kwargs):
    row = Mock()
    row.id = kwargs.get("id", "m-1")
    row.source_user_id = kwargs.get("source_user_id")
    row.source_user_email = kwargs.get("source_user_email")
    row.source_user_name = kwargs.get("source_user_name")
    row.notion_user_id = kwargs.get("notion_user_id")
    return row


@pytest.fixture
def repo():
    repository = Mock()
    repository.get_active_for_source = AsyncMock(return_value=[])
    repository.find_mapping = AsyncMock(return_value=None)
    repository.create = AsyncMock()
    repository.update_system = AsyncMock()
    with patch('src.services.user_mapping.get_user_mapping_repository', return_value=repository):
        yield repository


class TestResolveUserMentions:

    @pytest.mark.asyncio
    async def test_matches_id_email_and_name(self, repo):
        repo.get_active_for_source.return_value = [
            mapping_row(source_user_id="U1", notion_user_id="n-1"),
            mapping_row(source_user_id="x", source_user_email="jane@example.com", notion_user_id="n-2"),
            mapping_row(source_user_id="y", source_user_name="Bob", notion_user_id="n-3"),
        ]

        resolved = await resolve_user_mentions("team-1", "slack", ["U1", "jane@example.com", "Bob", "Unknown"])

        assert resolved == {"U1": "n-1", "jane@example.com": "n-2", "Bob": "n-3"}
        repo.get_active_for_source.assert_awaited_once_with("team-1", "slack")

    @pytest.mark.asyncio
    async def test_empty_handles_skip_lookup(self, repo):
        assert await resolve_user_mentions("team-1", "slack", ["", None]) == {}
        repo.get_active_for_source.assert_not_awaited()


class TestBulkImport:

    @pytest.mark.asyncio
    async def test_empty_list(self, repo):
        assert await bulk_import_mappings([], "team-1") == {"successful": 0, "failed": 0, "errors": []}

    @pytest.mark.asyncio
    async def test_too_many(self, repo):
        mappings = [{"sourceType": "slack"}] * (MAX_IMPORT_MAPPINGS + 1)

        result = await bulk_import_mappings(mappings, "team-1")

        assert result["successful"] == 0
        assert result["failed"] == MAX_IMPORT_MAPPINGS + 1
        assert "Too many mappings" in result["errors"][0]
        repo.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_creates_new_mapping(self, repo):
        result = await bulk_import_mappings(
            [{"sourceType": "slack", "sourceUserId": "U1", "notionUserId": "n-1", "sourceUserName": "Jane"}],
            "team-1",
            owner_id="user-1",
        )

        assert result == {"successful": 1, "failed": 0, "errors": []}
        values = repo.create.await_args.args[0]
        assert values["team_id"] == "team-1"
        assert values["owner"] == "user-1"
        assert values["source_user_name"] == "Jane"
        assert values["mapping_type"] == "imported"
        assert values["active"] is True

    @pytest.mark.asyncio
    async def test_updates_existing_mapping(self, repo):
        repo.find_mapping.return_value = mapping_row(id="m-9")

        result = await bulk_import_mappings(
            [{"sourceType": "figma", "sourceUserId": "jane", "notionUserId": "n-2"}], "team-1"
        )

        assert result["successful"] == 1
        repo.update_system.assert_awaited_once()
        assert repo.update_system.await_args.args[0] == "m-9"
        repo.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_fields_reported(self, repo):
        result = await bulk_import_mappings([{"sourceType": "slack"}], "team-1")

        assert result["failed"] == 1
        assert result["errors"][0].startswith("Mapping 1: missing or invalid fields")
        assert "source_user_id" in result["errors"][0]

    @pytest.mark.asyncio
    async def test_unknown_source_type(self, repo):
        result = await bulk_import_mappings(
            [
                {"sourceType": "myspace", "sourceUserId": "a", "notionUserId": "n"},
                {"sourceType": "slack", "sourceUserId": "U1", "notionUserId": "n-1"},
            ],
            "team-1",
        )

        assert result["successful"] == 1
        assert result["failed"] == 1
        assert result["errors"] == ["Mapping 1: Invalid sourceType 'myspace'"]

    @pytest.mark.asyncio
    async def test_repository_failure_counted(self, repo):
        repo.create.side_effect = RuntimeError("db down")

        result = await bulk_import_mappings(
            [{"sourceType": "slack", "sourceUserId": "U1", "notionUserId": "n-1"}], "team-1"
        )

        assert result["failed"] == 1
        assert result["errors"] == ["Mapping 1: db down"]
