"""
Team and membership repository.

Membership is what authorizes a user to read and write a team's
collections.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..connection import get_database
from ..models import TeamDB, TeamMemberDB
from ..exceptions import DatabaseConstraintError, DatabaseOperationError

logger = logging.getLogger(__name__)


class TeamRepository:
    """Repository for teams and their members."""

    def __init__(self):
        self.db = get_database()

    async def create_team(self, name: str, slug: Optional[str] = None,
                          team_id: Optional[str] = None) -> TeamDB:
        async with self.db.session() as session:
            try:
                team = TeamDB(name=name, slug=slug)
                if team_id:
                    team.id = team_id
                session.add(team)
                await session.flush()
                logger.info(f"Created team {team.id} ({name})")
                return team
            except IntegrityError as e:
                logger.error(f"Constraint violation creating team: {e}")
                raise DatabaseConstraintError(f"Cannot create team {slug or name}: duplicate")
            except Exception as e:
                logger.error(f"Failed to create team: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to create team: {e}")

    async def get_team(self, team_id: str) -> Optional[TeamDB]:
        """Look a team up by id, falling back to slug."""
        async with self.db.session() as session:
            result = await session.execute(select(TeamDB).where(TeamDB.id == team_id))
            team = result.scalar_one_or_none()
            if team:
                return team
            result = await session.execute(select(TeamDB).where(TeamDB.slug == team_id))
            return result.scalar_one_or_none()

    async def add_member(self, team_id: str, user_id: str, role: str = "member") -> TeamMemberDB:
        async with self.db.session() as session:
            try:
                member = TeamMemberDB(team_id=team_id, user_id=user_id, role=role)
                session.add(member)
                await session.flush()
                logger.info(f"Added {user_id} to team {team_id} as {role}")
                return member
            except IntegrityError as e:
                logger.error(f"Constraint violation adding member: {e}")
                raise DatabaseConstraintError(f"{user_id} is already a member of {team_id}")
            except Exception as e:
                logger.error(f"Failed to add member: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to add member: {e}")

    async def get_membership(self, team_id: str, user_id: str) -> Optional[TeamMemberDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(TeamMemberDB).where(
                    TeamMemberDB.team_id == team_id,
                    TeamMemberDB.user_id == user_id,
                )
            )
            return result.scalar_one_or_none()


_team_repository: Optional[TeamRepository] = None


def get_team_repository() -> TeamRepository:
    """Get the team repository singleton."""
    global _team_repository
    if _team_repository is None:
        _team_repository = TeamRepository()
    return _team_repository
