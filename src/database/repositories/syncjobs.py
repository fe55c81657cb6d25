"""Repository for sync jobs."""

import logging
from datetime import datetime, timedelta
from typing import Optional, List

from sqlalchemy import select, delete

from .base import TeamScopedRepository
from ..models import SyncJobDB
from ..exceptions import DatabaseOperationError
from ...models.enums import SyncJobStatus

logger = logging.getLogger(__name__)

FINISHED_STATUSES = (SyncJobStatus.COMPLETED.value, SyncJobStatus.FAILED.value)


class SyncJobRepository(TeamScopedRepository):
    """Repository for sync job operations."""

    model = SyncJobDB
    entity_name = "Syncjob"

    async def get_for_discussion(self, discussion_id: str) -> List[SyncJobDB]:
        async with self.db.session() as session:
            result = await session.execute(
                select(SyncJobDB)
                .where(SyncJobDB.discussion_id == discussion_id)
                .order_by(SyncJobDB.created_at.desc())
            )
            return list(result.scalars().all())

    async def delete_finished_before(self, days: int) -> int:
        """Delete completed or failed jobs that finished more than ``days`` ago."""
        cutoff = datetime.utcnow() - timedelta(days=days)
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    delete(SyncJobDB).where(
                        SyncJobDB.status.in_(FINISHED_STATUSES),
                        SyncJobDB.completed_at.is_not(None),
                        SyncJobDB.completed_at < cutoff,
                    )
                )
                deleted = result.rowcount or 0
                logger.info(f"Deleted {deleted} sync jobs finished before {cutoff.isoformat()}")
                return deleted
            except Exception as e:
                logger.error(f"Failed to clean up sync jobs: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to clean up sync jobs: {e}")


_syncjob_repository: Optional[SyncJobRepository] = None


def get_syncjob_repository() -> SyncJobRepository:
    """Get the sync job repository singleton."""
    global _syncjob_repository
    if _syncjob_repository is None:
        _syncjob_repository = SyncJobRepository()
    return _syncjob_repository
