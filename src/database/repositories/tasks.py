"""Repository for tasks created in Notion from discussions."""

import logging
from typing import Optional, List

from sqlalchemy import select

from .base import TeamScopedRepository
from ..models import DiscussionTaskDB

logger = logging.getLogger(__name__)


class TaskRepository(TeamScopedRepository):
    """Repository for task operations."""

    model = DiscussionTaskDB
    entity_name = "Task"

    async def get_for_discussion(self, discussion_id: str) -> List[DiscussionTaskDB]:
        """Tasks of a discussion in creation order."""
        async with self.db.session() as session:
            result = await session.execute(
                select(DiscussionTaskDB)
                .where(DiscussionTaskDB.discussion_id == discussion_id)
                .order_by(DiscussionTaskDB.task_index.asc())
            )
            return list(result.scalars().all())


_task_repository: Optional[TaskRepository] = None


def get_task_repository() -> TaskRepository:
    """Get the task repository singleton."""
    global _task_repository
    if _task_repository is None:
        _task_repository = TaskRepository()
    return _task_repository
