"""
Scheduler manager for background maintenance jobs.

- Sync job cleanup (every JOB_CLEANUP_INTERVAL_HOURS, plus once at startup)
- AI analysis cache cleanup (hourly)
- Rate limit window and OAuth state cleanup (every 5 minutes)
"""

import logging
from typing import Optional
from datetime import datetime
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
import pytz

from config import settings
from ..ai.analyzer import cleanup_expired_cache
from ..database.repositories import get_syncjob_repository
from ..monitoring import syncjobs_cleaned_total
from ..services.oauth_state import get_oauth_state_store
from ..services.rate_limiter import get_rate_limiter

logger = logging.getLogger(__name__)


class SchedulerManager:
    """
    Manages the periodic cleanup jobs.
    """

    def __init__(self):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.timezone = pytz.timezone(settings.timezone)

    def start(self) -> None:
        """Start the scheduler with all jobs."""
        self.scheduler = AsyncIOScheduler(timezone=self.timezone)

        # Old sync jobs, first run right away
        self.scheduler.add_job(
            self._job_cleanup_job,
            IntervalTrigger(hours=settings.job_cleanup_interval_hours),
            id="job_cleanup",
            name="Sync Job Cleanup",
            next_run_time=datetime.now(self.timezone),
            replace_existing=True
        )

        self.scheduler.add_job(
            self._ai_cache_cleanup_job,
            IntervalTrigger(hours=1),
            id="ai_cache_cleanup",
            name="AI Cache Cleanup",
            replace_existing=True
        )

        self.scheduler.add_job(
            self._memory_cleanup_job,
            IntervalTrigger(minutes=5),
            id="memory_cleanup",
            name="Rate Limit and OAuth State Cleanup",
            replace_existing=True
        )

        self.scheduler.start()
        logger.info(
            f"Scheduler started: job retention {settings.job_retention_days} days, "
            f"cleanup every {settings.job_cleanup_interval_hours}h"
        )

    def stop(self) -> None:
        """Stop the scheduler."""
        if self.scheduler:
            self.scheduler.shutdown()
            self.scheduler = None
            logger.info("Scheduler stopped")

    async def _job_cleanup_job(self) -> int:
        """Delete completed and failed sync jobs past the retention window."""
        try:
            deleted = await get_syncjob_repository().delete_finished_before(settings.job_retention_days)
            if deleted:
                syncjobs_cleaned_total.inc(deleted)
            logger.info(f"Job cleanup removed {deleted} sync jobs")
            return deleted
        except Exception as e:
            logger.error(f"Error in job cleanup: {e}", exc_info=True)
            return 0

    async def _ai_cache_cleanup_job(self) -> int:
        try:
            return cleanup_expired_cache()
        except Exception as e:
            logger.error(f"Error in AI cache cleanup: {e}", exc_info=True)
            return 0

    async def _memory_cleanup_job(self) -> dict:
        try:
            removed = {
                "rate_limits": get_rate_limiter().cleanup_expired(),
                "oauth_states": get_oauth_state_store().cleanup_expired(),
            }
            if any(removed.values()):
                logger.debug(f"In-memory cleanup: {removed}")
            return removed
        except Exception as e:
            logger.error(f"Error in in-memory cleanup: {e}", exc_info=True)
            return {"rate_limits": 0, "oauth_states": 0}

    def get_job_status(self) -> dict:
        """Get status of all scheduled jobs."""
        if not self.scheduler:
            return {}

        jobs = {}
        for job in self.scheduler.get_jobs():
            jobs[job.id] = {
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger)
            }

        return jobs


# Singleton instance
scheduler_manager = SchedulerManager()


def get_scheduler_manager() -> SchedulerManager:
    """Get the scheduler manager instance."""
    return scheduler_manager
