"""
Discussion processing pipeline.

Takes a discussion parsed by an adapter and runs it through:

1. Validation - required fields are present
2. Config loading - resolve the team's source config
3. Thread building - fetch the full thread from the source
4. AI analysis - summary and task detection
5. Task creation - pages in the team's Notion database
6. Notification - confirmation reply and status reaction on the source
7. Finalization - persist results on the discussion and sync job

Every run is recorded as a sync job. The discussion and job are owned by
the system user.
"""

import re
import time
import logging
import traceback
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Any, List, Optional

from pydantic import BaseModel

from ..adapters import AdapterError, get_adapter
from ..adapters.base import extract_title
from ..ai import get_discussion_analyzer
from ..database.repositories import (
    get_discussion_repository,
    get_sourceconfig_repository,
    get_syncjob_repository,
    get_task_repository,
    to_source_config,
)
from ..integrations.notion import NotionAPIError, create_notion_tasks
from ..models.analysis import (
    AIAnalysisOptions,
    AIAnalysisResult,
    AISummary,
    DetectedTask,
    NotionTaskConfig,
    NotionTaskResult,
    ProcessingResult,
    TaskDetectionResult,
)
from ..models.discussion import DiscussionThread, ParsedDiscussion, SourceConfig
from ..models.enums import DiscussionStatus, ProcessingStage, SyncJobStatus
from ..monitoring import (
    METRICS,
    discussions_processed_total,
    metrics_collector,
    processing_failures_total,
    processing_stage_duration,
    tasks_created_total,
)
from ..utils.retry import DISCUSSION_RETRY, RetryExhausted, retry_with_backoff
from .user_mapping import resolve_user_mentions

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "source_type",
    "source_thread_id",
    "source_url",
    "team_id",
    "author_handle",
    "title",
    "content",
)

_WHITESPACE = re.compile(r"\s+")


class ProcessingError(Exception):
    """A pipeline failure tied to the stage it happened in."""

    def __init__(
        self,
        message: str,
        stage: str,
        context: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.stage = getattr(stage, "value", stage)
        self.context = context or {}
        self.retryable = retryable
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "stage": self.stage,
            "retryable": self.retryable,
            "context": self.context,
        }


class ProcessingOptions(BaseModel):
    """Knobs for a single pipeline run."""
    thread: Optional[DiscussionThread] = None
    config: Optional[SourceConfig] = None
    discussion_id: Optional[str] = None
    skip_ai: bool = False
    skip_notion: bool = False
    skip_notification: bool = False


@contextmanager
def _stage(stage: ProcessingStage, operation: Optional[str] = None):
    timer = metrics_collector.start(operation) if operation else None
    start = time.perf_counter()
    try:
        yield
    except Exception:
        if timer:
            timer.end(success=False)
        raise
    else:
        if timer:
            timer.end(success=True)
    finally:
        processing_stage_duration.labels(stage=stage.value).observe(time.perf_counter() - start)


def validate_parsed_discussion(parsed: ParsedDiscussion) -> None:
    missing = [name for name in REQUIRED_FIELDS if not getattr(parsed, name, None)]
    if missing:
        raise ProcessingError(
            f"Missing required fields: {', '.join(missing)}",
            ProcessingStage.VALIDATION,
            {"missing": missing},
            retryable=False,
        )


async def load_source_config(parsed: ParsedDiscussion) -> SourceConfig:
    """
    Find the source config a discussion belongs to.

    Adapters only know the source-side workspace (Slack team, inbound
    email slug, Notion workspace), so look the config up by that first and
    fall back to treating ``team_id`` as an internal team id.
    """
    repo = get_sourceconfig_repository()
    metadata = parsed.metadata or {}
    record = None

    if parsed.source_type == "slack" and metadata.get("slackTeamId"):
        record = await repo.find_by_metadata("slack", "slackTeamId", metadata["slackTeamId"])
    elif parsed.source_type == "figma" and metadata.get("emailSlug"):
        record = await repo.get_by_email_slug(metadata["emailSlug"])
    elif parsed.source_type == "notion" and metadata.get("notionWorkspaceId"):
        record = await repo.find_by_metadata("notion", "notionWorkspaceId", metadata["notionWorkspaceId"])

    if record is None:
        record = await repo.get_active_config(parsed.team_id, parsed.source_type)

    if record is None:
        raise ProcessingError(
            f"No active {parsed.source_type} config found for team {parsed.team_id}",
            ProcessingStage.CONFIG_LOADING,
            {"team_id": parsed.team_id, "source_type": parsed.source_type},
            retryable=False,
        )

    return to_source_config(record)


def filter_bot_mentions(text: str, source_type: str, source_metadata: Optional[Dict[str, Any]] = None) -> str:
    """Remove mentions of the bot itself from message text."""
    if not text:
        return text
    source_metadata = source_metadata or {}

    if source_type == "slack" and source_metadata.get("botUserId"):
        text = text.replace(f"<@{source_metadata['botUserId']}>", "")
    elif source_type == "figma" and source_metadata.get("botHandle"):
        handle = str(source_metadata["botHandle"]).lstrip("@")
        text = re.sub(rf"@{re.escape(handle)}(?!\S)", "", text, flags=re.IGNORECASE)
    else:
        return text

    return _WHITESPACE.sub(" ", text).strip()


def _strip_thread_mentions(thread: DiscussionThread, config: SourceConfig) -> DiscussionThread:
    if not config.source_metadata:
        return thread

    def clean(message):
        return message.model_copy(update={
            "content": filter_bot_mentions(message.content, config.source_type, config.source_metadata),
        })

    return thread.model_copy(update={
        "root_message": clean(thread.root_message),
        "replies": [clean(reply) for reply in thread.replies],
    })


def build_fallback_analysis(thread: DiscussionThread, summary: str = "",
                            fallback_title: str = "Discussion") -> AIAnalysisResult:
    """One task made from the thread's root message, used when AI is skipped."""
    content = thread.root_message.content
    return AIAnalysisResult(
        summary=AISummary(
            summary=summary or content[:200],
            key_points=[],
        ),
        task_detection=TaskDetectionResult(
            is_multi_task=False,
            tasks=[DetectedTask(title=extract_title(content, fallback=fallback_title), description=content)],
            confidence=0.0,
        ),
        processing_time=0.0,
        cached=False,
    )


def build_confirmation_message(tasks: List[NotionTaskResult]) -> str:
    """Reply posted back to the source thread."""
    if not tasks:
        return "✅ Discussion processed (no tasks created)"

    if len(tasks) == 1:
        return f"✅ Task created in Notion\n🔗 {tasks[0].url}"

    task_list = "\n".join(f"{index}. {task.url}" for index, task in enumerate(tasks, start=1))
    return f"✅ Created {len(tasks)} tasks in Notion:\n{task_list}"


async def _set_status(parsed: ParsedDiscussion, config: SourceConfig, status: DiscussionStatus) -> None:
    """Best-effort status reaction on the source."""
    try:
        adapter = get_adapter(parsed.source_type)
        await adapter.update_status(parsed.source_thread_id, status.value, config)
    except Exception as e:
        logger.warning(f"Could not update {parsed.source_type} status to {status.value}: {e}")


class _PipelineRun:
    """State of one pipeline run."""

    def __init__(self, parsed: ParsedDiscussion, options: ProcessingOptions):
        self.parsed = parsed
        self.options = options
        self.config: Optional[SourceConfig] = None
        self.discussion_id: Optional[str] = options.discussion_id
        self.sync_job_id: Optional[str] = None
        self.stage = ProcessingStage.VALIDATION
        self.started = time.perf_counter()

        self.discussions = get_discussion_repository()
        self.jobs = get_syncjob_repository()
        self.tasks = get_task_repository()

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started) * 1000

    async def advance(self, stage: ProcessingStage) -> None:
        self.stage = stage
        if self.sync_job_id:
            await self.jobs.update_system(self.sync_job_id, {"stage": stage.value})

    async def update_discussion(self, updates: Dict[str, Any]) -> None:
        if self.discussion_id:
            await self.discussions.update_system(self.discussion_id, updates)

    async def start_records(self) -> None:
        parsed, config = self.parsed, self.config

        if self.discussion_id:
            await self.update_discussion({"status": DiscussionStatus.PROCESSING.value})
            previous_jobs = await self.jobs.get_for_discussion(self.discussion_id)
            attempts = len(previous_jobs) + 1
        else:
            timer = metrics_collector.start(METRICS.DB_CREATE_DISCUSSION)
            try:
                discussion = await self.discussions.create_system({
                    "team_id": config.team_id,
                    "source_type": parsed.source_type,
                    "source_thread_id": parsed.source_thread_id,
                    "source_url": parsed.source_url,
                    "source_config_id": config.id,
                    "title": parsed.title,
                    "content": parsed.content,
                    "author_handle": parsed.author_handle,
                    "participants": parsed.participants,
                    "status": DiscussionStatus.PROCESSING.value,
                    "raw_payload": parsed.model_dump(mode="json"),
                    "metadata": parsed.metadata,
                })
            except Exception:
                timer.end(success=False)
                raise
            timer.end(success=True)
            self.discussion_id = discussion.id
            attempts = 1

        timer = metrics_collector.start(METRICS.DB_CREATE_JOB)
        try:
            job = await self.jobs.create_system({
                "team_id": config.team_id,
                "discussion_id": self.discussion_id,
                "source_config_id": config.id,
                "status": SyncJobStatus.PROCESSING.value,
                "stage": self.stage.value,
                "attempts": attempts,
                "started_at": datetime.utcnow(),
            })
        except Exception:
            timer.end(success=False)
            raise
        timer.end(success=True)

        self.sync_job_id = job.id
        await self.update_discussion({"sync_job_id": job.id})
        logger.info(
            f"Started sync job {job.id} (attempt {attempts}) for discussion {self.discussion_id}"
        )

    async def build_thread(self) -> DiscussionThread:
        if self.options.thread:
            logger.info("Using provided thread input")
            thread = self.options.thread
        else:
            adapter = get_adapter(self.parsed.source_type)
            try:
                thread = await adapter.fetch_thread(
                    self.parsed.source_thread_id, self.config, hint=self.parsed.content
                )
            except AdapterError as e:
                raise ProcessingError(
                    f"Failed to fetch thread: {e}",
                    ProcessingStage.THREAD_BUILDING,
                    {"thread_id": self.parsed.source_thread_id, "status_code": e.status_code},
                    retryable=e.retryable,
                    original_error=e,
                )

        thread = _strip_thread_mentions(thread, self.config)
        await self.update_discussion({
            "thread_data": thread.model_dump(mode="json"),
            "total_messages": thread.total_messages,
        })
        logger.info(
            f"Thread {thread.id} built: {thread.total_messages} messages, "
            f"{len(thread.participants)} participants"
        )
        return thread

    async def analyze(self, thread: DiscussionThread) -> AIAnalysisResult:
        config = self.config

        if self.options.skip_ai:
            analysis = build_fallback_analysis(thread, summary="Mock summary", fallback_title=self.parsed.title)
            analysis.summary.key_points = ["Mock point 1"]
        elif not config.ai_enabled:
            logger.info(f"AI disabled for config {config.id}, creating a single task")
            analysis = build_fallback_analysis(thread, fallback_title=self.parsed.title)
        else:
            analyzer = get_discussion_analyzer(config.ai_api_key)
            try:
                analysis = await analyzer.analyze_discussion(thread, AIAnalysisOptions(
                    source_type=self.parsed.source_type,
                    custom_summary_prompt=config.ai_summary_prompt,
                    custom_task_prompt=config.ai_task_prompt,
                ))
            except ValueError as e:
                raise ProcessingError(
                    f"AI analysis failed: {e}",
                    ProcessingStage.AI_ANALYSIS,
                    retryable=False,
                    original_error=e,
                )
            except Exception as e:
                raise ProcessingError(
                    f"AI analysis failed: {e}",
                    ProcessingStage.AI_ANALYSIS,
                    retryable=True,
                    original_error=e,
                )

        await self.update_discussion({
            "status": DiscussionStatus.ANALYZED.value,
            "ai_summary": analysis.summary.summary,
            "ai_key_points": analysis.summary.key_points,
            "ai_tasks": [task.model_dump(mode="json") for task in analysis.task_detection.tasks],
            "is_multi_task": analysis.task_detection.is_multi_task,
        })
        logger.info(
            f"Analysis for discussion {self.discussion_id}: "
            f"{len(analysis.task_detection.tasks)} task(s), cached={analysis.cached}"
        )
        return analysis

    async def create_tasks(self, thread: DiscussionThread,
                           analysis: AIAnalysisResult) -> List[NotionTaskResult]:
        detected = analysis.task_detection.tasks

        if self.options.skip_notion:
            logger.info("Skipping Notion task creation")
            return []
        if not detected:
            logger.info("No tasks detected, skipping Notion creation")
            return []

        config, parsed = self.config, self.parsed
        if not config.notion_token or not config.notion_database_id:
            raise ProcessingError(
                "Notion token and database ID are required to create tasks",
                ProcessingStage.TASK_CREATION,
                {"config_id": config.id},
                retryable=False,
            )

        handles = list(thread.participants) + [t.assignee for t in detected if t.assignee]
        user_mentions = await resolve_user_mentions(config.team_id, parsed.source_type, handles)

        notion_config = NotionTaskConfig(
            database_id=config.notion_database_id,
            api_key=config.notion_token,
            source_type=parsed.source_type,
            source_url=parsed.source_url,
            field_mapping=config.notion_field_mapping,
            user_mappings=user_mentions,
        )

        try:
            results = await create_notion_tasks(detected, thread, analysis.summary, notion_config)
        except NotionAPIError as e:
            raise ProcessingError(
                f"Notion task creation failed: {e}",
                ProcessingStage.TASK_CREATION,
                {"status_code": e.status_code, "code": e.code},
                retryable=e.retryable,
                original_error=e,
            )

        is_multi_task = analysis.task_detection.is_multi_task
        for index, (task, result) in enumerate(zip(detected, results)):
            timer = metrics_collector.start(METRICS.DB_CREATE_TASK)
            try:
                await self.tasks.create_system({
                    "team_id": config.team_id,
                    "discussion_id": self.discussion_id,
                    "sync_job_id": self.sync_job_id,
                    "notion_page_id": result.id,
                    "notion_page_url": result.url,
                    "title": task.title,
                    "description": task.description,
                    "priority": task.priority.value if task.priority else None,
                    "assignee": task.assignee,
                    "summary": analysis.summary.summary,
                    "source_url": parsed.source_url,
                    "is_multi_task_child": is_multi_task,
                    "task_index": index,
                    "metadata": {
                        "type": task.type.value if task.type else None,
                        "tags": task.tags,
                        "due_date": task.due_date,
                    },
                })
            except Exception:
                timer.end(success=False)
                raise
            timer.end(success=True)

        tasks_created_total.labels(source_type=parsed.source_type).inc(len(results))
        logger.info(f"Created {len(results)} Notion task(s) for discussion {self.discussion_id}")
        return results

    async def notify(self, notion_tasks: List[NotionTaskResult]) -> None:
        if self.options.skip_notification:
            return

        config, parsed = self.config, self.parsed
        if config.post_confirmation:
            timer = metrics_collector.start(METRICS.ADAPTER_POST_REPLY)
            try:
                adapter = get_adapter(parsed.source_type)
                posted = await adapter.post_reply(
                    parsed.source_thread_id, build_confirmation_message(notion_tasks), config
                )
            except Exception as e:
                logger.warning(f"Failed to post confirmation for discussion {self.discussion_id}: {e}")
                posted = False
            timer.end(success=bool(posted))

        await _set_status(parsed, config, DiscussionStatus.COMPLETED)

    async def finalize(self, analysis: AIAnalysisResult, notion_tasks: List[NotionTaskResult]) -> float:
        task_ids = [task.id for task in notion_tasks]
        await self.update_discussion({
            "status": DiscussionStatus.COMPLETED.value,
            "notion_task_ids": task_ids,
            "processed_at": datetime.utcnow(),
        })
        processing_time = self.elapsed_ms
        if self.sync_job_id:
            await self.jobs.update_system(self.sync_job_id, {
                "status": SyncJobStatus.COMPLETED.value,
                "completed_at": datetime.utcnow(),
                "processing_time": processing_time,
                "task_ids": task_ids,
            })
        return processing_time

    async def record_failure(self, error: ProcessingError) -> None:
        """Mark the discussion and job failed without masking ``error``."""
        try:
            if self.discussion_id:
                metadata = dict(self.parsed.metadata or {})
                metadata["error"] = error.message
                await self.update_discussion({
                    "status": DiscussionStatus.FAILED.value,
                    "metadata": metadata,
                })
            if self.sync_job_id:
                original = error.original_error or error
                await self.jobs.update_system(self.sync_job_id, {
                    "status": SyncJobStatus.FAILED.value,
                    "stage": error.stage,
                    "error": error.message,
                    "error_stack": "".join(traceback.format_exception(
                        type(original), original, original.__traceback__
                    )),
                    "completed_at": datetime.utcnow(),
                    "processing_time": self.elapsed_ms,
                })
        except Exception as e:
            logger.error(f"Failed to record failure for discussion {self.discussion_id}: {e}")

        if self.config and not self.options.skip_notification:
            await _set_status(self.parsed, self.config, DiscussionStatus.FAILED)


async def process_discussion(parsed: ParsedDiscussion,
                             options: Optional[ProcessingOptions] = None) -> ProcessingResult:
    """Run a parsed discussion through the full pipeline."""
    options = options or ProcessingOptions()
    run = _PipelineRun(parsed, options)
    full_timer = metrics_collector.start(METRICS.PROCESS_FULL)

    logger.info(
        f"Processing {parsed.source_type} discussion {parsed.source_thread_id}: {parsed.title}"
    )

    try:
        with _stage(ProcessingStage.VALIDATION, METRICS.PROCESS_VALIDATION):
            validate_parsed_discussion(parsed)

        run.stage = ProcessingStage.CONFIG_LOADING
        with _stage(ProcessingStage.CONFIG_LOADING, METRICS.PROCESS_CONFIG_LOAD):
            run.config = options.config or await load_source_config(parsed)
            run.parsed = parsed = parsed.model_copy(update={"team_id": run.config.team_id})
            await run.start_records()

        if not options.skip_notification:
            await _set_status(parsed, run.config, DiscussionStatus.PROCESSING)

        await run.advance(ProcessingStage.THREAD_BUILDING)
        with _stage(ProcessingStage.THREAD_BUILDING, METRICS.PROCESS_THREAD_BUILD):
            thread = await run.build_thread()

        await run.advance(ProcessingStage.AI_ANALYSIS)
        with _stage(ProcessingStage.AI_ANALYSIS, METRICS.PROCESS_AI_ANALYSIS):
            analysis = await run.analyze(thread)

        await run.advance(ProcessingStage.TASK_CREATION)
        with _stage(ProcessingStage.TASK_CREATION, METRICS.PROCESS_TASK_CREATE):
            notion_tasks = await run.create_tasks(thread, analysis)

        await run.advance(ProcessingStage.NOTIFICATION)
        with _stage(ProcessingStage.NOTIFICATION, METRICS.PROCESS_NOTIFICATION):
            await run.notify(notion_tasks)

        await run.advance(ProcessingStage.FINALIZATION)
        with _stage(ProcessingStage.FINALIZATION):
            processing_time = await run.finalize(analysis, notion_tasks)

    except Exception as e:
        if isinstance(e, ProcessingError):
            error = e
        else:
            error = ProcessingError(
                str(e) or type(e).__name__,
                run.stage,
                {"error_type": type(e).__name__},
                retryable=True,
                original_error=e,
            )

        logger.error(
            f"Processing failed at {error.stage} for {parsed.source_type} "
            f"discussion {parsed.source_thread_id}: {error.message}"
        )
        full_timer.end(success=False, stage=error.stage)
        discussions_processed_total.labels(source_type=parsed.source_type, status="failed").inc()
        processing_failures_total.labels(stage=error.stage, retryable=str(error.retryable).lower()).inc()

        await run.record_failure(error)

        if error is e:
            raise
        raise error from e

    full_timer.end(success=True, tasks=len(notion_tasks))
    discussions_processed_total.labels(source_type=parsed.source_type, status="completed").inc()
    logger.info(
        f"Processed discussion {run.discussion_id} in {processing_time:.0f}ms "
        f"({len(notion_tasks)} task(s))"
    )

    return ProcessingResult(
        discussion_id=run.discussion_id,
        sync_job_id=run.sync_job_id,
        ai_analysis=analysis,
        notion_tasks=notion_tasks,
        processing_time=processing_time,
        is_multi_task=analysis.task_detection.is_multi_task,
    )


async def process_discussion_by_id(discussion_id: str,
                                   options: Optional[ProcessingOptions] = None) -> ProcessingResult:
    """Reprocess a stored discussion, e.g. from the admin UI."""
    discussion = await get_discussion_repository().get_by_id(discussion_id)
    if not discussion:
        raise ProcessingError(
            f"Discussion {discussion_id} not found",
            ProcessingStage.VALIDATION,
            {"discussion_id": discussion_id},
            retryable=False,
        )

    metadata = dict(discussion.extra_metadata or {})
    metadata.pop("error", None)

    parsed = ParsedDiscussion(
        source_type=discussion.source_type,
        source_thread_id=discussion.source_thread_id,
        source_url=discussion.source_url,
        team_id=discussion.team_id,
        author_handle=discussion.author_handle,
        title=discussion.title,
        content=discussion.content,
        participants=discussion.participants or [],
        timestamp=discussion.created_at or datetime.utcnow(),
        metadata=metadata,
    )

    options = (options or ProcessingOptions()).model_copy(update={"discussion_id": discussion_id})
    if options.config is None and discussion.source_config_id:
        record = await get_sourceconfig_repository().get_by_id(discussion.source_config_id)
        if record and record.active:
            options.config = to_source_config(record)

    logger.info(f"Reprocessing discussion {discussion_id}")
    return await process_discussion(parsed, options)


def _is_retryable(error: Exception) -> bool:
    return not isinstance(error, ProcessingError) or error.retryable


async def retry_failed_discussion(discussion_id: str,
                                  options: Optional[ProcessingOptions] = None) -> ProcessingResult:
    """Reprocess a failed discussion with exponential backoff."""
    logger.info(f"Retrying failed discussion {discussion_id}")
    await get_discussion_repository().update_system(
        discussion_id, {"status": DiscussionStatus.RETRYING.value}
    )

    try:
        return await retry_with_backoff(
            process_discussion_by_id,
            discussion_id,
            options,
            should_retry=_is_retryable,
            **DISCUSSION_RETRY,
        )
    except RetryExhausted as e:
        raise e.last_exception or e
