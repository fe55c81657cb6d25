"""AI analysis, Notion task and pipeline result models."""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, field_validator

from .enums import TaskPriority, TaskType, Sentiment


class AISummary(BaseModel):
    """Summary of a thread produced by the analyzer."""
    summary: str
    key_points: List[str] = Field(default_factory=list)
    sentiment: Optional[Sentiment] = None
    confidence: Optional[float] = None


class DetectedTask(BaseModel):
    """An actionable task detected in a thread."""
    title: str
    description: str = ""
    action_items: List[str] = Field(default_factory=list)
    priority: Optional[TaskPriority] = None
    type: Optional[TaskType] = None
    assignee: Optional[str] = None
    due_date: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("priority", "type", mode="before")
    @classmethod
    def _drop_unknown(cls, value, info):
        """LLMs occasionally return values outside the enum; treat them as unset."""
        if value is None:
            return None
        enum_cls = TaskPriority if info.field_name == "priority" else TaskType
        try:
            return enum_cls(str(value).lower())
        except ValueError:
            return None


class TaskDetectionResult(BaseModel):
    is_multi_task: bool = False
    tasks: List[DetectedTask] = Field(default_factory=list)
    confidence: float = 0.0


class AIAnalysisResult(BaseModel):
    summary: AISummary
    task_detection: TaskDetectionResult
    processing_time: float = 0.0  # ms
    cached: bool = False


class AIAnalysisOptions(BaseModel):
    skip_cache: bool = False
    custom_prompt: Optional[str] = None
    custom_summary_prompt: Optional[str] = None
    custom_task_prompt: Optional[str] = None
    source_type: Optional[str] = None
    max_tasks: int = Field(default=5, ge=1, le=20)


class NotionTaskConfig(BaseModel):
    """Where and how to create Notion pages."""
    database_id: str
    api_key: str
    source_type: str = ""
    source_url: str = ""
    field_mapping: Dict[str, Any] = Field(default_factory=dict)
    user_mappings: Dict[str, str] = Field(default_factory=dict)


class NotionTaskResult(BaseModel):
    id: str
    url: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ProcessingResult(BaseModel):
    """What a pipeline run produced."""
    discussion_id: str
    sync_job_id: Optional[str] = None
    ai_analysis: AIAnalysisResult
    notion_tasks: List[NotionTaskResult] = Field(default_factory=list)
    processing_time: float = 0.0  # ms
    is_multi_task: bool = False
    retryable: Optional[bool] = None
