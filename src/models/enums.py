"""Enumerations shared by the API, pipeline and storage layers."""

import enum


class SourceType(str, enum.Enum):
    SLACK = "slack"
    FIGMA = "figma"
    NOTION = "notion"


class DiscussionStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    ANALYZED = "analyzed"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


class SyncJobStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


class ProcessingStage(str, enum.Enum):
    VALIDATION = "validation"
    CONFIG_LOADING = "config_loading"
    THREAD_BUILDING = "thread_building"
    AI_ANALYSIS = "ai_analysis"
    TASK_CREATION = "task_creation"
    NOTIFICATION = "notification"
    FINALIZATION = "finalization"


class TaskPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskType(str, enum.Enum):
    BUG = "bug"
    FEATURE = "feature"
    QUESTION = "question"
    IMPROVEMENT = "improvement"


class Sentiment(str, enum.Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class MappingType(str, enum.Enum):
    MANUAL = "manual"
    AUTO_EMAIL = "auto-email"
    AUTO_NAME = "auto-name"
    IMPORTED = "imported"
