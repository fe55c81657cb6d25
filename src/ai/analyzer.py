"""
Discussion analysis with an OpenAI-compatible chat model.

Produces a summary and a list of detected tasks for a thread. Results
are cached in memory per thread content so re-processing the same
discussion does not hit the API again.
"""

import re
import json
import time
import asyncio
import hashlib
import logging
from typing import Dict, Any, Optional, List

from openai import AsyncOpenAI
from tenacity import retry, stop_after_attempt, wait_exponential

from config import settings
from .prompts import PromptTemplates
from ..models.analysis import (
    AISummary,
    DetectedTask,
    TaskDetectionResult,
    AIAnalysisResult,
    AIAnalysisOptions,
)
from ..models.discussion import DiscussionThread
from ..monitoring.metrics import metrics_collector, METRICS
from ..monitoring.prometheus import ai_requests_total, ai_request_duration, ai_cache_entries

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

# Shared across analyzer instances (teams may bring their own API key)
_analysis_cache: Dict[str, Dict[str, Any]] = {}


def generate_cache_key(thread: DiscussionThread) -> str:
    content = "|".join([thread.root_message.content] + [r.content for r in thread.replies])
    digest = hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]
    return f"thread_{thread.id}_{digest}"


def extract_json(text: str) -> Dict[str, Any]:
    """Pull the JSON object out of a model response."""
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise ValueError("Failed to parse JSON from AI response")
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ValueError(f"Failed to parse JSON from AI response: {e}") from e


def get_cached_analysis(cache_key: str) -> Optional[AIAnalysisResult]:
    entry = _analysis_cache.get(cache_key)
    if entry is None:
        return None
    if time.time() >= entry["expires_at"]:
        del _analysis_cache[cache_key]
        return None
    return entry["data"].model_copy(update={"cached": True})


def set_cached_analysis(cache_key: str, analysis: AIAnalysisResult,
                        ttl_seconds: Optional[int] = None) -> None:
    ttl = settings.ai_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
    now = time.time()
    _analysis_cache[cache_key] = {"data": analysis, "timestamp": now, "expires_at": now + ttl}
    ai_cache_entries.set(len(_analysis_cache))


def clear_cache() -> int:
    size = len(_analysis_cache)
    _analysis_cache.clear()
    ai_cache_entries.set(0)
    logger.info(f"Cleared {size} cached analyses")
    return size


def get_cache_stats() -> Dict[str, Any]:
    now = time.time()
    valid = sum(1 for entry in _analysis_cache.values() if now < entry["expires_at"])
    return {
        "total": len(_analysis_cache),
        "valid": valid,
        "expired": len(_analysis_cache) - valid,
        "timestamp": now,
    }


def cleanup_expired_cache() -> int:
    """Drop expired entries. Returns how many were removed."""
    now = time.time()
    expired = [key for key, entry in _analysis_cache.items() if now >= entry["expires_at"]]
    for key in expired:
        del _analysis_cache[key]
    ai_cache_entries.set(len(_analysis_cache))
    if expired:
        logger.info(f"Cleaned up {len(expired)} expired AI cache entries")
    return len(expired)


class DiscussionAnalyzer:
    """Summarizes threads and detects the tasks they contain."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 model: Optional[str] = None):
        self.api_key = api_key or settings.ai_api_key
        self.client = AsyncOpenAI(
            api_key=self.api_key or "not-configured",
            base_url=base_url or settings.ai_base_url,
        )
        self.model = model or settings.ai_model
        self.prompts = PromptTemplates()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=10), reraise=True)
    async def _call_api(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Make a chat completion call."""
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens or settings.ai_max_tokens,
                response_format={"type": "json_object"},
            )
            return response.choices[0].message.content or ""
        except Exception as e:
            logger.error(f"AI API error: {e}")
            raise

    async def _complete(self, operation: str, prompt: str, max_tokens: int) -> Dict[str, Any]:
        if not self.configured:
            raise ValueError("AI API key is not configured")

        messages = [
            {"role": "system", "content": self.prompts.SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

        timer = metrics_collector.start(f"ai.{operation}")
        start = time.perf_counter()
        try:
            response = await self._call_api(messages=messages, max_tokens=max_tokens)
            result = extract_json(response)
        except Exception:
            timer.end(success=False)
            ai_requests_total.labels(operation=operation, status="error").inc()
            raise
        finally:
            ai_request_duration.labels(operation=operation).observe(time.perf_counter() - start)

        timer.end(success=True)
        ai_requests_total.labels(operation=operation, status="success").inc()
        return result

    async def generate_summary(self, thread: DiscussionThread, source_type: Optional[str] = None,
                               custom_prompt: Optional[str] = None) -> AISummary:
        """2-3 sentence summary, key points, sentiment and confidence."""
        prompt = self.prompts.summary_prompt(
            self.prompts.format_thread(thread), source_type=source_type, custom_prompt=custom_prompt
        )
        result = await self._complete("generate_summary", prompt, max_tokens=1024)

        summary = AISummary(
            summary=result.get("summary") or "",
            key_points=result.get("keyPoints") or result.get("key_points") or [],
            sentiment=result.get("sentiment") if result.get("sentiment") in ("positive", "neutral", "negative") else None,
            confidence=result.get("confidence"),
        )
        logger.debug(f"Generated summary for thread {thread.id}")
        return summary

    async def detect_tasks(self, thread: DiscussionThread, max_tasks: int = 5,
                           custom_prompt: Optional[str] = None) -> TaskDetectionResult:
        """Actionable tasks in the thread, at most ``max_tasks``."""
        prompt = self.prompts.task_detection_prompt(
            self.prompts.format_thread(thread), max_tasks=max_tasks, custom_prompt=custom_prompt
        )
        result = await self._complete("detect_tasks", prompt, max_tokens=2048)

        tasks = [self._to_task(raw) for raw in (result.get("tasks") or []) if isinstance(raw, dict)]
        tasks = [t for t in tasks if t is not None][:max_tasks]
        is_multi_task = bool(result.get("isMultiTask") or result.get("is_multi_task")) or len(tasks) > 1

        logger.info(f"Detected {len(tasks)} task(s) in thread {thread.id}")
        return TaskDetectionResult(
            is_multi_task=is_multi_task,
            tasks=tasks,
            confidence=float(result.get("confidence") or 0.0),
        )

    @staticmethod
    def _to_task(raw: Dict[str, Any]) -> Optional[DetectedTask]:
        title = (raw.get("title") or "").strip()
        if not title:
            return None
        return DetectedTask(
            title=title,
            description=raw.get("description") or "",
            action_items=raw.get("actionItems") or raw.get("action_items") or [],
            priority=raw.get("priority"),
            type=raw.get("type"),
            assignee=raw.get("assignee") or None,
            due_date=raw.get("dueDate") or raw.get("due_date") or None,
            tags=raw.get("tags") or [],
        )

    async def analyze_discussion(self, thread: DiscussionThread,
                                 options: Optional[AIAnalysisOptions] = None) -> AIAnalysisResult:
        """Summary and task detection run concurrently, cached per thread content."""
        options = options or AIAnalysisOptions()
        start = time.perf_counter()

        cache_key = generate_cache_key(thread)
        if not options.skip_cache:
            cached = get_cached_analysis(cache_key)
            if cached is not None:
                logger.info(f"AI cache hit for thread {thread.id}")
                return cached
            logger.debug(f"AI cache miss for thread {thread.id}")

        summary, task_detection = await asyncio.gather(
            self.generate_summary(
                thread,
                source_type=options.source_type,
                custom_prompt=options.custom_summary_prompt,
            ),
            self.detect_tasks(
                thread,
                max_tasks=options.max_tasks,
                custom_prompt=options.custom_task_prompt or options.custom_prompt,
            ),
        )

        result = AIAnalysisResult(
            summary=summary,
            task_detection=task_detection,
            processing_time=(time.perf_counter() - start) * 1000,
            cached=False,
        )

        if not options.skip_cache:
            set_cached_analysis(cache_key, result)

        logger.info(f"Analyzed thread {thread.id} in {result.processing_time:.0f}ms")
        return result


_analyzer: Optional[DiscussionAnalyzer] = None


def get_discussion_analyzer(api_key: Optional[str] = None) -> DiscussionAnalyzer:
    """Shared analyzer, or a dedicated one for a team-specific API key."""
    global _analyzer
    if api_key and api_key != settings.ai_api_key:
        return DiscussionAnalyzer(api_key=api_key)
    if _analyzer is None:
        _analyzer = DiscussionAnalyzer()
    return _analyzer
