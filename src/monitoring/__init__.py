"""
Monitoring: Prometheus metrics and the in-process operation collector.
"""
from .prometheus import (
    http_requests_total,
    http_request_duration,
    webhooks_received_total,
    discussions_processed_total,
    processing_stage_duration,
    processing_failures_total,
    tasks_created_total,
    ai_requests_total,
    ai_request_duration,
    ai_cache_entries,
    notion_requests_total,
    syncjobs_cleaned_total,
    errors_total,
)
from .metrics import METRICS, MetricsCollector, metrics_collector
from .middleware import metrics_middleware

__all__ = [
    'http_requests_total',
    'http_request_duration',
    'webhooks_received_total',
    'discussions_processed_total',
    'processing_stage_duration',
    'processing_failures_total',
    'tasks_created_total',
    'ai_requests_total',
    'ai_request_duration',
    'ai_cache_entries',
    'notion_requests_total',
    'syncjobs_cleaned_total',
    'errors_total',
    'METRICS',
    'MetricsCollector',
    'metrics_collector',
    'metrics_middleware',
]
