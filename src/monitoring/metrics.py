"""
In-process operation metrics.

Records durations and outcomes per named operation (webhook handling,
pipeline stages, AI and Notion calls) and serves the aggregates behind
GET /api/metrics. Prometheus covers long-term scraping; this collector
answers "what is slow or failing right now" without one.
"""

import math
import time
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Dict, Any, Optional, List, Deque

logger = logging.getLogger(__name__)

MAX_DATA_POINTS = 1000


class METRICS:
    """Well-known operation names."""
    WEBHOOK_SLACK = "webhook.slack"
    WEBHOOK_MAILGUN = "webhook.mailgun"
    WEBHOOK_RESEND = "webhook.resend"
    WEBHOOK_NOTION = "webhook.notion"

    PROCESS_FULL = "process.full"
    PROCESS_VALIDATION = "process.validation"
    PROCESS_CONFIG_LOAD = "process.config_load"
    PROCESS_THREAD_BUILD = "process.thread_build"
    PROCESS_AI_ANALYSIS = "process.ai_analysis"
    PROCESS_TASK_CREATE = "process.task_create"
    PROCESS_NOTIFICATION = "process.notification"

    AI_GENERATE_SUMMARY = "ai.generate_summary"
    AI_DETECT_TASKS = "ai.detect_tasks"

    NOTION_CREATE_TASK = "notion.create_task"
    NOTION_CREATE_TASKS = "notion.create_tasks"

    ADAPTER_FETCH_THREAD = "adapter.fetch_thread"
    ADAPTER_POST_REPLY = "adapter.post_reply"

    DB_CREATE_DISCUSSION = "db.create_discussion"
    DB_CREATE_JOB = "db.create_job"
    DB_CREATE_TASK = "db.create_task"


def iso_now() -> str:
    """UTC timestamp with millisecond precision, e.g. 2026-01-01T12:00:00.000Z."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def _percentile(sorted_values: List[float], pct: float) -> float:
    if not sorted_values:
        return 0.0
    index = max(0, math.ceil(pct / 100 * len(sorted_values)) - 1)
    return sorted_values[index]


class _DataPoint:
    __slots__ = ("duration", "success", "timestamp", "metadata")

    def __init__(self, duration: float, success: bool, metadata: Optional[Dict[str, Any]] = None):
        self.duration = duration
        self.success = success
        self.timestamp = time.time()
        self.metadata = metadata or {}


class Timer:
    """Returned by MetricsCollector.start(); call end() once the operation finishes."""

    def __init__(self, collector: "MetricsCollector", operation: str):
        self._collector = collector
        self._operation = operation
        self._start = time.perf_counter()

    def end(self, success: bool = True, **metadata) -> float:
        """Record the elapsed time and return it in milliseconds."""
        duration = (time.perf_counter() - self._start) * 1000
        self._collector.record(self._operation, duration, success, metadata)
        return duration


class MetricsCollector:
    """Bounded per-operation history of durations and outcomes."""

    def __init__(self, max_data_points: int = MAX_DATA_POINTS):
        self.max_data_points = max_data_points
        self._data: Dict[str, Deque[_DataPoint]] = {}
        self._last_updated: Dict[str, float] = {}

    def start(self, operation: str) -> Timer:
        return Timer(self, operation)

    def record(self, operation: str, duration_ms: float, success: bool = True,
               metadata: Optional[Dict[str, Any]] = None) -> None:
        points = self._data.get(operation)
        if points is None:
            points = self._data[operation] = deque(maxlen=self.max_data_points)
        points.append(_DataPoint(duration_ms, success, metadata))
        self._last_updated[operation] = time.time()

    def get_stats(self, operation: str) -> Optional[Dict[str, Any]]:
        points = self._data.get(operation)
        if not points:
            return None

        durations = sorted(p.duration for p in points)
        count = len(points)
        success_count = sum(1 for p in points if p.success)

        return {
            "operation": operation,
            "count": count,
            "success_count": success_count,
            "failure_count": count - success_count,
            "success_rate": round(success_count / count * 100, 2),
            "durations": {
                "min": durations[0],
                "max": durations[-1],
                "avg": round(sum(durations) / count, 2),
                "p95": _percentile(durations, 95),
                "p99": _percentile(durations, 99),
            },
            "last_updated": datetime.fromtimestamp(
                self._last_updated[operation], tz=timezone.utc
            ).isoformat(),
        }

    def get_all_stats(self) -> Dict[str, Dict[str, Any]]:
        return {op: self.get_stats(op) for op in self._data if self._data[op]}

    def get_operation_count(self) -> int:
        return len(self._data)

    def get_total_data_points(self) -> int:
        return sum(len(points) for points in self._data.values())

    def clear(self, operation: str) -> None:
        self._data.pop(operation, None)
        self._last_updated.pop(operation, None)

    def clear_all(self) -> None:
        self._data.clear()
        self._last_updated.clear()

    def get_report(self, top_n: int = 10) -> Dict[str, Any]:
        """Aggregate view served by GET /api/metrics."""
        operations = self.get_all_stats()

        average_success_rate = 0.0
        if operations:
            average_success_rate = round(
                sum(s["success_rate"] for s in operations.values()) / len(operations), 2
            )

        top_slowest = sorted(
            (
                {
                    "operation": name,
                    "p95_duration": stats["durations"]["p95"],
                    "avg_duration": stats["durations"]["avg"],
                    "count": stats["count"],
                }
                for name, stats in operations.items()
            ),
            key=lambda item: item["p95_duration"],
            reverse=True,
        )[:top_n]

        top_errors = sorted(
            (
                {
                    "operation": name,
                    "failure_count": stats["failure_count"],
                    "error_rate": round(100 - stats["success_rate"], 2),
                    "count": stats["count"],
                }
                for name, stats in operations.items()
                if stats["failure_count"] > 0
            ),
            key=lambda item: item["error_rate"],
            reverse=True,
        )[:top_n]

        return {
            "timestamp": iso_now(),
            "summary": {
                "total_operations": len(operations),
                "total_data_points": self.get_total_data_points(),
                "average_success_rate": average_success_rate,
            },
            "operations": operations,
            "top_slowest": top_slowest,
            "top_errors": top_errors,
        }


metrics_collector = MetricsCollector()
