"""Data models for discussions, analysis results and API inputs."""

from .enums import (
    SourceType,
    DiscussionStatus,
    SyncJobStatus,
    ProcessingStage,
    TaskPriority,
    TaskType,
    Sentiment,
    MappingType,
)
from .discussion import (
    Attachment,
    ThreadMessage,
    DiscussionThread,
    ParsedDiscussion,
    SourceConfig,
)
from .analysis import (
    AISummary,
    DetectedTask,
    TaskDetectionResult,
    AIAnalysisResult,
    AIAnalysisOptions,
    NotionTaskConfig,
    NotionTaskResult,
    ProcessingResult,
)

__all__ = [
    "SourceType",
    "DiscussionStatus",
    "SyncJobStatus",
    "ProcessingStage",
    "TaskPriority",
    "TaskType",
    "Sentiment",
    "MappingType",
    "Attachment",
    "ThreadMessage",
    "DiscussionThread",
    "ParsedDiscussion",
    "SourceConfig",
    "AISummary",
    "DetectedTask",
    "TaskDetectionResult",
    "AIAnalysisResult",
    "AIAnalysisOptions",
    "NotionTaskConfig",
    "NotionTaskResult",
    "ProcessingResult",
]
