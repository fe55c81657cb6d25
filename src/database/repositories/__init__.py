"""
Repository classes for database operations.

Each collection repository shares the team-scoped CRUD of
``TeamScopedRepository`` and adds the queries the pipeline needs.
"""

from .base import TeamScopedRepository
from .discussions import DiscussionRepository, get_discussion_repository
from .sourceconfigs import SourceConfigRepository, get_sourceconfig_repository, to_source_config
from .syncjobs import SyncJobRepository, get_syncjob_repository
from .tasks import TaskRepository, get_task_repository
from .teams import TeamRepository, get_team_repository
from .user_mappings import UserMappingRepository, get_user_mapping_repository

__all__ = [
    "TeamScopedRepository",
    "DiscussionRepository",
    "get_discussion_repository",
    "SourceConfigRepository",
    "get_sourceconfig_repository",
    "to_source_config",
    "SyncJobRepository",
    "get_syncjob_repository",
    "TaskRepository",
    "get_task_repository",
    "TeamRepository",
    "get_team_repository",
    "UserMappingRepository",
    "get_user_mapping_repository",
]
