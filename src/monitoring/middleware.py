"""
Metrics collection middleware.

Tracks request counts and durations per normalized endpoint.
"""
import re
import time
import logging
from fastapi import Request
from .prometheus import (
    http_requests_total,
    http_request_duration,
    errors_total,
)

logger = logging.getLogger(__name__)

_HEX_ID = re.compile(r"^[0-9a-f]{16,}$", re.IGNORECASE)


async def metrics_middleware(request: Request, call_next):
    """Collect HTTP metrics for all requests."""
    start_time = time.time()

    try:
        response = await call_next(request)
    except Exception as e:
        errors_total.labels(type=type(e).__name__, severity="critical").inc()
        raise

    duration = time.time() - start_time
    endpoint = normalize_endpoint(request.url.path)

    http_requests_total.labels(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code
    ).inc()

    http_request_duration.labels(
        method=request.method,
        endpoint=endpoint
    ).observe(duration)

    if response.status_code >= 500:
        errors_total.labels(type="http_5xx", severity="critical").inc()
    elif response.status_code >= 400:
        errors_total.labels(type="http_4xx", severity="warning").inc()

    return response


def normalize_endpoint(path: str) -> str:
    """
    Normalize endpoint paths to reduce cardinality.

    Examples:
    - /api/teams/acme/discussion-collections-tasks/3f2a...9c -> /api/teams/{team_id}/discussion-collections-tasks/{id}
    - /api/notion/schema/<database id> -> /api/notion/schema/{id}
    """
    parts = path.split('/')

    normalized = []
    for i, part in enumerate(parts):
        if i > 0 and parts[i - 1] == 'teams':
            normalized.append('{team_id}')
        elif _HEX_ID.match(part.replace('-', '')) or (part.isdigit() and len(part) > 3):
            normalized.append('{id}')
        else:
            normalized.append(part)

    return '/'.join(normalized)
