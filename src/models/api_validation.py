"""
Pydantic models for API endpoint input validation.

Create models carry required fields; update models are all-optional and
are applied with ``model_dump(exclude_unset=True)`` so PATCH only touches
what the caller sent.
"""

from datetime import datetime
from typing import Optional, Literal, List, Dict, Any
from pydantic import BaseModel, Field, field_validator

from .enums import SourceType, DiscussionStatus, SyncJobStatus, ProcessingStage, TaskPriority
from .discussion import ParsedDiscussion, DiscussionThread


# ============================================
# SOURCE CONFIGS
# ============================================

class SourceConfigCreate(BaseModel):
    source_type: SourceType
    name: str = Field(..., min_length=1, max_length=255)
    email_address: Optional[str] = Field(None, max_length=255)
    email_slug: Optional[str] = Field(None, max_length=100)
    webhook_url: Optional[str] = Field(None, max_length=500)
    webhook_secret: Optional[str] = Field(None, max_length=255)
    api_token: Optional[str] = Field(None, max_length=500)
    notion_token: Optional[str] = Field(None, max_length=500)
    notion_database_id: Optional[str] = Field(None, max_length=100)
    notion_field_mapping: Optional[Dict[str, Any]] = None
    ai_api_key: Optional[str] = Field(None, max_length=500)
    ai_enabled: bool = True
    ai_summary_prompt: Optional[str] = Field(None, max_length=5000)
    ai_task_prompt: Optional[str] = Field(None, max_length=5000)
    auto_sync: bool = True
    post_confirmation: bool = True
    active: bool = True
    onboarding_complete: bool = False
    source_metadata: Optional[Dict[str, Any]] = None


class SourceConfigUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email_address: Optional[str] = Field(None, max_length=255)
    email_slug: Optional[str] = Field(None, max_length=100)
    webhook_url: Optional[str] = Field(None, max_length=500)
    webhook_secret: Optional[str] = Field(None, max_length=255)
    api_token: Optional[str] = Field(None, max_length=500)
    notion_token: Optional[str] = Field(None, max_length=500)
    notion_database_id: Optional[str] = Field(None, max_length=100)
    notion_field_mapping: Optional[Dict[str, Any]] = None
    ai_api_key: Optional[str] = Field(None, max_length=500)
    ai_enabled: Optional[bool] = None
    ai_summary_prompt: Optional[str] = Field(None, max_length=5000)
    ai_task_prompt: Optional[str] = Field(None, max_length=5000)
    auto_sync: Optional[bool] = None
    post_confirmation: Optional[bool] = None
    active: Optional[bool] = None
    onboarding_complete: Optional[bool] = None
    source_metadata: Optional[Dict[str, Any]] = None


# ============================================
# DISCUSSIONS
# ============================================

class DiscussionCreate(BaseModel):
    source_type: SourceType
    source_thread_id: str = Field(..., min_length=1, max_length=255)
    source_url: str = Field(..., min_length=1, max_length=1000)
    source_config_id: Optional[str] = None
    title: str = Field(..., min_length=1, max_length=500)
    content: str = Field(..., min_length=1)
    author_handle: str = Field(..., min_length=1, max_length=255)
    participants: List[str] = Field(default_factory=list)
    status: DiscussionStatus = DiscussionStatus.PENDING
    metadata: Optional[Dict[str, Any]] = None


class DiscussionUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    content: Optional[str] = None
    status: Optional[DiscussionStatus] = None
    participants: Optional[List[str]] = None
    ai_summary: Optional[str] = None
    ai_key_points: Optional[List[str]] = None
    is_multi_task: Optional[bool] = None
    metadata: Optional[Dict[str, Any]] = None


# ============================================
# SYNC JOBS
# ============================================

class SyncJobCreate(BaseModel):
    discussion_id: str
    source_config_id: Optional[str] = None
    status: SyncJobStatus = SyncJobStatus.PENDING
    stage: Optional[ProcessingStage] = None
    max_attempts: int = Field(default=3, ge=1, le=10)
    metadata: Optional[Dict[str, Any]] = None


class SyncJobUpdate(BaseModel):
    status: Optional[SyncJobStatus] = None
    stage: Optional[ProcessingStage] = None
    attempts: Optional[int] = Field(None, ge=0)
    max_attempts: Optional[int] = Field(None, ge=1, le=10)
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None


# ============================================
# TASKS
# ============================================

class TaskCreate(BaseModel):
    discussion_id: str
    sync_job_id: Optional[str] = None
    notion_page_id: str = Field(..., min_length=1, max_length=100)
    notion_page_url: str = Field(..., min_length=1, max_length=500)
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    status: str = Field(default="todo", max_length=50)
    priority: Optional[TaskPriority] = None
    assignee: Optional[str] = Field(None, max_length=255)
    summary: Optional[str] = None
    source_url: Optional[str] = Field(None, max_length=1000)
    is_multi_task_child: bool = False
    task_index: Optional[int] = Field(None, ge=0)
    metadata: Optional[Dict[str, Any]] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    status: Optional[str] = Field(None, max_length=50)
    priority: Optional[TaskPriority] = None
    assignee: Optional[str] = Field(None, max_length=255)
    summary: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


# ============================================
# PIPELINE
# ============================================

class ProcessDiscussionRequest(BaseModel):
    """Body of POST /api/discussions/process."""
    type: Literal["direct", "reprocess", "retry"] = "direct"
    parsed: Optional[ParsedDiscussion] = None
    discussion_id: Optional[str] = None
    thread: Optional[DiscussionThread] = None
    skip_ai: bool = False
    skip_notion: bool = False

    @field_validator("discussion_id")
    @classmethod
    def _strip(cls, value):
        return value.strip() if value else value


class ConnectionTestRequest(BaseModel):
    """Body of POST /api/configs/test-connection."""
    config_id: Optional[str] = None
    config: Optional[SourceConfigCreate] = None


class UserMappingInput(BaseModel):
    source_type: str
    source_user_id: str
    notion_user_id: str
    source_workspace_id: Optional[str] = None
    source_user_email: Optional[str] = None
    source_user_name: Optional[str] = None
    notion_user_name: Optional[str] = None
    notion_user_email: Optional[str] = None
    confidence: Optional[float] = Field(None, ge=0, le=1)


class UserMappingImportRequest(BaseModel):
    mappings: List[Dict[str, Any]] = Field(default_factory=list)
