"""
Unit tests for TeamScopedRepository, exercised through DiscussionRepository.

Tests team scoping, owner checks and system writes.
"""

import pytest
from unittest.mock import Mock
from sqlalchemy.exc import IntegrityError

from src.database.exceptions import (
    DatabaseConstraintError,
    DatabaseOperationError,
    EntityNotFoundError,
)
from src.database.models import DiscussionDB
from src.database.repositories.discussions import DiscussionRepository


@pytest.fixture
def discussion_repository(mock_database):
    """Create DiscussionRepository with mocked database."""
    db, session = mock_database
    repo = DiscussionRepository()
    repo.db = db
    return repo, session


@pytest.fixture
def sample_discussion():
    return DiscussionDB(
        id="disc-1",
        team_id="team-1",
        owner="user-1",
        created_by="user-1",
        updated_by="user-1",
        source_type="slack",
        source_thread_id="C1:1.0",
        source_url="https://acme.slack.com/archives/C1/p10",
        title="Login broken",
        content="Login is broken on Safari",
        author_handle="U1",
        status="pending",
    )


def scalar_result(value):
    result = Mock()
    result.scalar_one_or_none.return_value = value
    return result


# ============================================================
# FIELD MAPPING
# ============================================================

class TestFieldMapping:

    def test_metadata_column_maps_to_attribute(self, discussion_repository):
        repo, _ = discussion_repository

        values = repo._to_attributes({"metadata": {"a": 1}, "title": "t", "bogus": 1})

        assert values == {"extra_metadata": {"a": 1}, "title": "t"}

    def test_exclude(self, discussion_repository):
        repo, _ = discussion_repository

        assert repo._to_attributes({"id": "x", "title": "t"}, exclude={"id"}) == {"title": "t"}


# ============================================================
# CREATE TESTS
# ============================================================

class TestCreate:

    @pytest.mark.asyncio
    async def test_create_sets_audit_fields(self, discussion_repository):
        repo, session = discussion_repository

        record = await repo.create({
            "team_id": "team-1",
            "owner": "user-1",
            "source_type": "slack",
            "title": "Login broken",
            "metadata": {"slackTeamId": "T1"},
        })

        assert record.team_id == "team-1"
        assert record.created_by == "user-1"
        assert record.updated_by == "user-1"
        assert record.extra_metadata == {"slackTeamId": "T1"}
        session.add.assert_called_once_with(record)
        session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_create_requires_team_and_owner(self, discussion_repository):
        repo, session = discussion_repository

        with pytest.raises(DatabaseOperationError, match="team_id and owner"):
            await repo.create({"team_id": "team-1", "title": "x"})

        session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_create_system_owner(self, discussion_repository):
        repo, _ = discussion_repository

        record = await repo.create_system({"team_id": "team-1", "title": "x"})

        assert record.owner == "system"
        assert record.created_by == "system"

    @pytest.mark.asyncio
    async def test_create_constraint_violation(self, discussion_repository):
        repo, session = discussion_repository
        session.flush.side_effect = IntegrityError("insert", {}, Exception("duplicate"))

        with pytest.raises(DatabaseConstraintError):
            await repo.create({"team_id": "team-1", "owner": "user-1", "title": "x"})


# ============================================================
# UPDATE / DELETE TESTS
# ============================================================

class TestUpdate:

    @pytest.mark.asyncio
    async def test_update_owned_record(self, discussion_repository, sample_discussion):
        repo, session = discussion_repository
        session.execute.return_value = scalar_result(sample_discussion)

        record = await repo.update("disc-1", "team-1", "user-1", {"title": "New title", "status": "completed"})

        assert record.title == "New title"
        assert record.status == "completed"
        assert record.updated_by == "user-1"
        session.refresh.assert_awaited_once_with(sample_discussion)

    @pytest.mark.asyncio
    async def test_update_ignores_protected_fields(self, discussion_repository, sample_discussion):
        repo, session = discussion_repository
        session.execute.return_value = scalar_result(sample_discussion)

        record = await repo.update("disc-1", "team-1", "user-1", {"team_id": "team-2", "owner": "mallory"})

        assert record.team_id == "team-1"
        assert record.owner == "user-1"

    @pytest.mark.asyncio
    async def test_update_not_owned(self, discussion_repository):
        repo, session = discussion_repository
        session.execute.return_value = scalar_result(None)

        with pytest.raises(EntityNotFoundError, match="not found or unauthorized"):
            await repo.update("disc-1", "team-1", "someone-else", {"title": "x"})

    @pytest.mark.asyncio
    async def test_update_system(self, discussion_repository, sample_discussion):
        repo, session = discussion_repository
        session.execute.return_value = scalar_result(sample_discussion)

        record = await repo.update_system("disc-1", {"status": "failed"})

        assert record.status == "failed"
        assert record.updated_by == "system"
        session.refresh.assert_awaited_once_with(sample_discussion)

    @pytest.mark.asyncio
    async def test_update_system_missing(self, discussion_repository):
        repo, session = discussion_repository
        session.execute.return_value = scalar_result(None)

        with pytest.raises(EntityNotFoundError):
            await repo.update_system("missing", {"status": "failed"})

    @pytest.mark.asyncio
    async def test_update_database_failure(self, discussion_repository, sample_discussion):
        repo, session = discussion_repository
        session.execute.return_value = scalar_result(sample_discussion)
        session.flush.side_effect = RuntimeError("connection reset")

        with pytest.raises(DatabaseOperationError, match="connection reset"):
            await repo.update_system("disc-1", {"status": "failed"})


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_owned_record(self, discussion_repository, sample_discussion):
        repo, session = discussion_repository
        session.execute.return_value = scalar_result(sample_discussion)

        assert await repo.delete("disc-1", "team-1", "user-1") == {"success": True}
        session.delete.assert_awaited_once_with(sample_discussion)

    @pytest.mark.asyncio
    async def test_delete_not_owned(self, discussion_repository):
        repo, session = discussion_repository
        session.execute.return_value = scalar_result(None)

        with pytest.raises(EntityNotFoundError):
            await repo.delete("disc-1", "team-1", "someone-else")
        session.delete.assert_not_awaited()


# ============================================================
# READ TESTS
# ============================================================

class TestReads:

    @pytest.mark.asyncio
    async def test_get_by_ids_empty_skips_query(self, discussion_repository):
        repo, session = discussion_repository

        assert await repo.get_by_ids("team-1", []) == []
        session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_all(self, discussion_repository, sample_discussion):
        repo, session = discussion_repository
        result = Mock()
        result.scalars.return_value.all.return_value = [sample_discussion]
        session.execute.return_value = result

        assert await repo.get_all("team-1") == [sample_discussion]
