"""
SQLAlchemy models for the discussion collections.

Schema includes:
- Teams and team membership
- Discussions ingested from Slack, Figma and Notion
- Source configurations per team and integration
- Sync jobs tracking each pipeline run
- Tasks created in Notion
- Source user to Notion user mappings
"""

import uuid
from datetime import datetime
from typing import Optional, Any, Dict
from sqlalchemy import (
    String,
    Text,
    Integer,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    JSON,
    Index,
    UniqueConstraint,
    inspect,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

from ..models.enums import DiscussionStatus, SyncJobStatus, MappingType


def generate_id() -> str:
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """Base class for all models."""

    def to_dict(self) -> Dict[str, Any]:
        """Column values keyed by column name (not attribute name)."""
        mapper = inspect(self).mapper
        return {
            attr.columns[0].name: getattr(self, attr.key)
            for attr in mapper.column_attrs
        }


class TeamOwnedMixin:
    """Ownership and audit columns shared by every team-scoped collection."""

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    team_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    owner: Mapped[str] = mapped_column(String(100), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    updated_by: Mapped[str] = mapped_column(String(100), nullable=False)


# ==================== TEAMS ====================

class TeamDB(Base):
    """Tenants. Every collection row belongs to exactly one team."""
    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String(100), primary_key=True, default=generate_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class TeamMemberDB(Base):
    """Membership of a user in a team."""
    __tablename__ = "team_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    team_id: Mapped[str] = mapped_column(String(100), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(50), default="member")  # owner, admin, member
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),
        Index("idx_team_members_user", "user_id"),
    )


# ==================== SOURCE CONFIGS ====================

class SourceConfigDB(TeamOwnedMixin, Base):
    """Per-team settings for one discussion source."""
    __tablename__ = "sourceconfigs"

    source_type: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email_address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email_slug: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    webhook_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    webhook_secret: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Stored encrypted
    api_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notion_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_api_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    notion_database_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notion_field_mapping: Mapped[Optional[Dict]] = mapped_column(JSON, nullable=True)

    ai_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    ai_summary_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_task_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    auto_sync: Mapped[bool] = mapped_column(Boolean, default=True)
    post_confirmation: Mapped[bool] = mapped_column(Boolean, default=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    onboarding_complete: Mapped[bool] = mapped_column(Boolean, default=False)

    # slackTeamId, notionWorkspaceId, botUserId, scopes...
    source_metadata: Mapped[Optional[Dict]] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_sourceconfigs_team_source", "team_id", "source_type", "active"),
    )


# ==================== DISCUSSIONS ====================

class DiscussionDB(TeamOwnedMixin, Base):
    """A normalized thread ingested from a source."""
    __tablename__ = "discussions"

    source_type: Mapped[str] = mapped_column(String(20), nullable=False)
    source_thread_id: Mapped[str] = mapped_column(String(255), nullable=False)
    source_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    source_config_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("sourceconfigs.id", ondelete="SET NULL"), nullable=True
    )

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    author_handle: Mapped[str] = mapped_column(String(255), nullable=False)
    participants: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    status: Mapped[str] = mapped_column(String(20), default=DiscussionStatus.PENDING.value)

    thread_data: Mapped[Optional[Dict]] = mapped_column(JSON, nullable=True)
    total_messages: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    ai_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_key_points: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    ai_tasks: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    is_multi_task: Mapped[bool] = mapped_column(Boolean, default=False)

    sync_job_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    notion_task_ids: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    raw_payload: Mapped[Optional[Dict]] = mapped_column(JSON, nullable=True)
    extra_metadata: Mapped[Optional[Dict]] = mapped_column("metadata", JSON, nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_discussions_source_thread", "source_type", "source_thread_id"),
        Index("idx_discussions_status", "status"),
    )


# ==================== SYNC JOBS ====================

class SyncJobDB(TeamOwnedMixin, Base):
    """One run of the processing pipeline for a discussion."""
    __tablename__ = "syncjobs"

    discussion_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("discussions.id", ondelete="CASCADE"), nullable=False
    )
    source_config_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("sourceconfigs.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), default=SyncJobStatus.PENDING.value)
    stage: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_stack: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    processing_time: Mapped[Optional[float]] = mapped_column(Float, nullable=True)  # ms
    task_ids: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    extra_metadata: Mapped[Optional[Dict]] = mapped_column("metadata", JSON, nullable=True)

    __table_args__ = (
        Index("idx_syncjobs_status_completed", "status", "completed_at"),
        Index("idx_syncjobs_discussion", "discussion_id"),
    )


# ==================== TASKS ====================

class DiscussionTaskDB(TeamOwnedMixin, Base):
    """A task created in Notion from a discussion."""
    __tablename__ = "tasks"

    discussion_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("discussions.id", ondelete="CASCADE"), nullable=False
    )
    sync_job_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("syncjobs.id", ondelete="SET NULL"), nullable=True
    )
    notion_page_id: Mapped[str] = mapped_column(String(100), nullable=False)
    notion_page_url: Mapped[str] = mapped_column(String(500), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(50), default="todo")
    priority: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    assignee: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    is_multi_task_child: Mapped[bool] = mapped_column(Boolean, default=False)
    task_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    extra_metadata: Mapped[Optional[Dict]] = mapped_column("metadata", JSON, nullable=True)

    __table_args__ = (
        Index("idx_tasks_discussion", "discussion_id"),
    )


# ==================== USER MAPPINGS ====================

class UserMappingDB(TeamOwnedMixin, Base):
    """Maps a source user (Slack/Figma/Notion handle) to a Notion user."""
    __tablename__ = "user_mappings"

    source_type: Mapped[str] = mapped_column(String(20), nullable=False)
    source_workspace_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    source_user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    source_user_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    source_user_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notion_user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    notion_user_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notion_user_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    mapping_type: Mapped[str] = mapped_column(String(20), default=MappingType.MANUAL.value)
    confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("team_id", "source_type", "source_user_id", name="uq_user_mappings_source_user"),
    )
