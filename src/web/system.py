"""
Health and metrics endpoints.
"""

import os
import time
import resource
import logging
from datetime import datetime, timezone
from typing import Dict, Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from config import settings
from ..database import get_database
from ..database.repositories import get_sourceconfig_repository
from ..monitoring import metrics_collector
from ..scheduler.jobs import get_scheduler_manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])

STARTED_AT = time.time()


def _service(status: str, message: str = None) -> Dict[str, Any]:
    entry = {"status": status, "last_check": datetime.now(timezone.utc).isoformat()}
    if message:
        entry["message"] = message
    return entry


def memory_usage() -> Dict[str, Any]:
    """Process RSS against physical memory, in megabytes."""
    # ru_maxrss is KiB on Linux
    used = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss / 1024
    try:
        total = os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES") / (1024 * 1024)
    except (ValueError, OSError, AttributeError):
        total = 0
    return {
        "used": round(used, 1),
        "total": round(total, 1),
        "percentage": round(used / total * 100, 2) if total else 0,
    }


async def check_services() -> Dict[str, Dict[str, Any]]:
    db_health = await get_database().health_check()
    services = {}

    if db_health.get("status") == "healthy":
        services["database"] = _service("healthy")
    else:
        services["database"] = _service("unhealthy", db_health.get("error"))

    if settings.ai_api_key:
        services["ai"] = _service("healthy")
    else:
        services["ai"] = _service("degraded", "AI_API_KEY not configured")

    if services["database"]["status"] != "healthy":
        services["notion"] = _service("degraded", "Cannot read source configs")
    else:
        try:
            configs = await get_sourceconfig_repository().list_active()
            if any(config.notion_token for config in configs):
                services["notion"] = _service("healthy")
            else:
                services["notion"] = _service("degraded", "No active config has a Notion token")
        except Exception as e:
            logger.warning(f"Notion health check failed: {e}")
            services["notion"] = _service("degraded", str(e))

    return services


@router.get("/api/health")
async def health_check():
    """Overall service health. 503 when the database is down."""
    services = await check_services()

    if services["database"]["status"] != "healthy":
        status = "unhealthy"
    elif any(service["status"] != "healthy" for service in services.values()):
        status = "degraded"
    else:
        status = "healthy"

    body = {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.app_version,
        "uptime": int(time.time() - STARTED_AT),
        "memory": memory_usage(),
        "services": services,
        "scheduler": get_scheduler_manager().get_job_status(),
    }
    return JSONResponse(status_code=503 if status == "unhealthy" else 200, content=body)


@router.get("/api/metrics")
async def metrics_report():
    return metrics_collector.get_report()


@router.get("/metrics")
async def prometheus_metrics():
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
