"""
Database module for Discubot.

Handles:
- Teams and membership
- Discussions, source configs, sync jobs and tasks
- Source user to Notion user mappings
"""

from .connection import (
    get_database,
    Database,
    init_database,
    close_database,
)
from .models import (
    Base,
    TeamDB,
    TeamMemberDB,
    SourceConfigDB,
    DiscussionDB,
    SyncJobDB,
    DiscussionTaskDB,
    UserMappingDB,
)

__all__ = [
    "get_database",
    "Database",
    "init_database",
    "close_database",
    "Base",
    "TeamDB",
    "TeamMemberDB",
    "SourceConfigDB",
    "DiscussionDB",
    "SyncJobDB",
    "DiscussionTaskDB",
    "UserMappingDB",
]
