"""
Tests for the discussion analyzer (ai/analyzer.py).

The chat completion call is mocked; these tests cover response parsing,
caching and option handling.
"""

import json
import time
import pytest
from unittest.mock import AsyncMock, patch

from src.ai import analyzer as analyzer_module
from src.ai.analyzer import (
    DiscussionAnalyzer,
    cleanup_expired_cache,
    clear_cache,
    extract_json,
    generate_cache_key,
    get_cache_stats,
    get_discussion_analyzer,
    set_cached_analysis,
)
from src.ai.prompts import PromptTemplates
from src.models.analysis import AIAnalysisOptions
from src.models.discussion import DiscussionThread, ThreadMessage

SUMMARY_RESPONSE = {
    "summary": "The team agreed the login page breaks on Safari.",
    "keyPoints": ["Safari login broken", "Fix before release"],
    "sentiment": "neutral",
    "confidence": 0.9,
}

TASKS_RESPONSE = {
    "isMultiTask": False,
    "tasks": [
        {
            "title": "Fix Safari login",
            "description": "Login form does not submit on Safari 17",
            "actionItems": ["Reproduce", "Patch form handler"],
            "priority": "HIGH",
            "type": "bug",
            "assignee": "U2",
            "dueDate": "2026-02-01",
            "tags": ["frontend"],
        },
        {"title": "   ", "description": "no title, dropped"},
    ],
    "confidence": 0.8,
}


def fake_completion(messages, **kwargs):
    prompt = messages[-1]["content"]
    if "keyPoints" in prompt:
        return "Here you go:\n" + json.dumps(SUMMARY_RESPONSE)
    return json.dumps(TASKS_RESPONSE)


@pytest.fixture(autouse=True)
def empty_cache():
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def thread():
    return DiscussionThread(
        id="C1:1.0",
        root_message=ThreadMessage(id="1.0", author_handle="U1", content="Login is broken on Safari"),
        replies=[ThreadMessage(id="2.0", author_handle="U2", content="I can fix it this week")],
        participants=["U1", "U2"],
    )


@pytest.fixture
def analyzer():
    instance = DiscussionAnalyzer(api_key="sk-test")
    instance._call_api = AsyncMock(side_effect=lambda messages, **kwargs: fake_completion(messages))
    return instance


class TestHelpers:

    def test_extract_json_from_prose(self):
        assert extract_json('Sure! {"a": 1} Hope that helps') == {"a": 1}

    def test_extract_json_failure(self):
        with pytest.raises(ValueError):
            extract_json("no json here")
        with pytest.raises(ValueError):
            extract_json("{not: valid}")

    def test_cache_key_depends_on_content(self, thread):
        key = generate_cache_key(thread)
        changed = thread.model_copy(update={"replies": []})

        assert key.startswith("thread_C1:1.0_")
        assert generate_cache_key(changed) != key

    def test_format_thread(self, thread):
        text = PromptTemplates.format_thread(thread)

        assert "Root message by U1:" in text
        assert "Reply by U2:\nI can fix it this week" in text


class TestAnalyzeDiscussion:

    @pytest.mark.asyncio
    async def test_summary_and_tasks(self, analyzer, thread):
        result = await analyzer.analyze_discussion(thread)

        assert result.summary.summary.startswith("The team agreed")
        assert result.summary.key_points == ["Safari login broken", "Fix before release"]
        assert result.summary.sentiment.value == "neutral"
        assert len(result.task_detection.tasks) == 1

        task = result.task_detection.tasks[0]
        assert task.title == "Fix Safari login"
        assert task.priority.value == "high"
        assert task.type.value == "bug"
        assert task.action_items == ["Reproduce", "Patch form handler"]
        assert task.due_date == "2026-02-01"
        assert not result.task_detection.is_multi_task
        assert result.cached is False

    @pytest.mark.asyncio
    async def test_second_call_is_cached(self, analyzer, thread):
        await analyzer.analyze_discussion(thread)
        calls = analyzer._call_api.await_count

        result = await analyzer.analyze_discussion(thread)

        assert result.cached is True
        assert analyzer._call_api.await_count == calls

    @pytest.mark.asyncio
    async def test_skip_cache(self, analyzer, thread):
        await analyzer.analyze_discussion(thread, AIAnalysisOptions(skip_cache=True))
        result = await analyzer.analyze_discussion(thread, AIAnalysisOptions(skip_cache=True))

        assert result.cached is False
        assert analyzer._call_api.await_count == 4
        assert get_cache_stats()["total"] == 0

    @pytest.mark.asyncio
    async def test_custom_prompts_reach_model(self, analyzer, thread):
        options = AIAnalysisOptions(
            custom_summary_prompt="Focus on deadlines.",
            custom_task_prompt="Use imperative titles.",
            source_type="slack",
            max_tasks=2,
        )
        await analyzer.analyze_discussion(thread, options)

        prompts = [call.kwargs["messages"][-1]["content"] for call in analyzer._call_api.await_args_list]
        summary_prompt = next(p for p in prompts if "keyPoints" in p)
        task_prompt = next(p for p in prompts if "isMultiTask" in p)

        assert "Focus on deadlines." in summary_prompt
        assert "from slack" in summary_prompt
        assert "Use imperative titles." in task_prompt
        assert "Maximum 2 tasks" in task_prompt

    @pytest.mark.asyncio
    async def test_max_tasks_and_multi_task_flag(self, analyzer, thread):
        many = {"isMultiTask": False, "tasks": [{"title": f"Task {i}"} for i in range(5)]}
        analyzer._call_api = AsyncMock(
            side_effect=lambda messages, **kwargs: json.dumps(
                SUMMARY_RESPONSE if "keyPoints" in messages[-1]["content"] else many
            )
        )

        result = await analyzer.analyze_discussion(thread, AIAnalysisOptions(max_tasks=3))

        assert len(result.task_detection.tasks) == 3
        assert result.task_detection.is_multi_task

    @pytest.mark.asyncio
    async def test_unconfigured_key_raises(self, thread):
        with patch.object(analyzer_module.settings, "ai_api_key", ""):
            instance = DiscussionAnalyzer(api_key="")
            with pytest.raises(ValueError, match="not configured"):
                await instance.analyze_discussion(thread)

    @pytest.mark.asyncio
    async def test_invalid_sentiment_dropped(self, analyzer, thread):
        odd = dict(SUMMARY_RESPONSE, sentiment="ecstatic")
        analyzer._call_api = AsyncMock(
            side_effect=lambda messages, **kwargs: json.dumps(
                odd if "keyPoints" in messages[-1]["content"] else TASKS_RESPONSE
            )
        )

        result = await analyzer.analyze_discussion(thread)

        assert result.summary.sentiment is None


class TestCacheMaintenance:

    def test_cleanup_expired(self, thread):
        from src.models.analysis import AIAnalysisResult, AISummary, TaskDetectionResult

        result = AIAnalysisResult(summary=AISummary(summary="s"), task_detection=TaskDetectionResult())
        set_cached_analysis("fresh", result, ttl_seconds=3600)
        set_cached_analysis("stale", result, ttl_seconds=0)

        assert cleanup_expired_cache() == 1
        stats = get_cache_stats()
        assert stats["total"] == 1
        assert stats["valid"] == 1

    def test_shared_vs_dedicated_analyzer(self):
        with patch.object(analyzer_module.settings, "ai_api_key", "sk-shared"):
            analyzer_module._analyzer = None
            shared = get_discussion_analyzer()

            assert get_discussion_analyzer() is shared
            assert get_discussion_analyzer("sk-shared") is shared
            assert get_discussion_analyzer("sk-team").api_key == "sk-team"
            analyzer_module._analyzer = None

    def test_expired_entry_not_returned(self):
        from src.models.analysis import AIAnalysisResult, AISummary, TaskDetectionResult

        result = AIAnalysisResult(summary=AISummary(summary="s"), task_detection=TaskDetectionResult())
        set_cached_analysis("k", result, ttl_seconds=60)

        with patch('src.ai.analyzer.time.time', return_value=time.time() + 120):
            assert analyzer_module.get_cached_analysis("k") is None
