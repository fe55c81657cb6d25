"""Repository for ingested discussions."""

import logging
from typing import Optional

from .base import TeamScopedRepository
from ..models import DiscussionDB

logger = logging.getLogger(__name__)


class DiscussionRepository(TeamScopedRepository):
    """Repository for discussion operations."""

    model = DiscussionDB
    entity_name = "Discussion"


_discussion_repository: Optional[DiscussionRepository] = None


def get_discussion_repository() -> DiscussionRepository:
    """Get the discussion repository singleton."""
    global _discussion_repository
    if _discussion_repository is None:
        _discussion_repository = DiscussionRepository()
    return _discussion_repository
