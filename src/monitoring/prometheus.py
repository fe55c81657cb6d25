"""
Prometheus metrics for monitoring.

Scraped from GET /metrics.
"""
from prometheus_client import Counter, Histogram, Gauge
import logging

logger = logging.getLogger(__name__)

# HTTP Metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration',
    ['method', 'endpoint']
)

# Webhook Metrics
webhooks_received_total = Counter(
    'webhooks_received_total',
    'Inbound webhooks by source and outcome',
    ['source', 'outcome']  # accepted, ignored, rejected, failed
)

# Pipeline Metrics
discussions_processed_total = Counter(
    'discussions_processed_total',
    'Discussions run through the pipeline',
    ['source_type', 'status']  # completed, failed
)

processing_stage_duration = Histogram(
    'processing_stage_duration_seconds',
    'Duration of each pipeline stage',
    ['stage'],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60)
)

processing_failures_total = Counter(
    'processing_failures_total',
    'Pipeline failures by stage and retryability',
    ['stage', 'retryable']
)

tasks_created_total = Counter(
    'tasks_created_total',
    'Notion tasks created',
    ['source_type']
)

# AI Metrics
ai_requests_total = Counter(
    'ai_requests_total',
    'Total AI API requests',
    ['operation', 'status']
)

ai_request_duration = Histogram(
    'ai_request_duration_seconds',
    'AI request duration',
    ['operation']
)

ai_cache_entries = Gauge(
    'ai_cache_entries',
    'Entries in the AI analysis cache'
)

# Notion Metrics
notion_requests_total = Counter(
    'notion_requests_total',
    'Total Notion API requests',
    ['operation', 'status']
)

# Maintenance
syncjobs_cleaned_total = Counter(
    'syncjobs_cleaned_total',
    'Finished sync jobs deleted by the cleanup job'
)

errors_total = Counter(
    'errors_total',
    'Total errors by type',
    ['type', 'severity']
)
