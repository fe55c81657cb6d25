"""Repository for source user to Notion user mappings."""

import logging
from typing import Optional, List

from sqlalchemy import select

from .base import TeamScopedRepository
from ..models import UserMappingDB

logger = logging.getLogger(__name__)


class UserMappingRepository(TeamScopedRepository):
    """Repository for user mapping operations."""

    model = UserMappingDB
    entity_name = "User mapping"

    async def get_active_for_source(self, team_id: str, source_type: str) -> List[UserMappingDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(UserMappingDB).where(
                    UserMappingDB.team_id == team_id,
                    UserMappingDB.source_type == source_type,
                    UserMappingDB.active.is_(True),
                )
            )
            return list(result.scalars().all())

    async def find_mapping(
        self, team_id: str, source_type: str, source_user_id: str
    ) -> Optional[UserMappingDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(UserMappingDB).where(
                    UserMappingDB.team_id == team_id,
                    UserMappingDB.source_type == source_type,
                    UserMappingDB.source_user_id == source_user_id,
                    UserMappingDB.active.is_(True),
                )
            )
            return result.scalar_one_or_none()


_user_mapping_repository: Optional[UserMappingRepository] = None


def get_user_mapping_repository() -> UserMappingRepository:
    """Get the user mapping repository singleton."""
    global _user_mapping_repository
    if _user_mapping_repository is None:
        _user_mapping_repository = UserMappingRepository()
    return _user_mapping_repository
