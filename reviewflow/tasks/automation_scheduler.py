"""Automation Scheduler - in-process trigger for the executor.

The cron endpoint is the primary way the executor runs. When
AUTOMATION_SCHEDULER_ENABLED is set, APScheduler also runs:

- the automation executor every EXECUTOR_INTERVAL_MINUTES
- the missed-review reminder sweep hourly
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from reviewflow.config import settings
from reviewflow.database import async_session_maker
from reviewflow.services.automation.job_executor import AutomationExecutor
from reviewflow.services.automation.review_requests import enqueue_missed_review_reminders

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler instance."""
    global scheduler
    if scheduler is None:
        scheduler = AsyncIOScheduler()
    return scheduler


async def run_automation_executor() -> Optional[dict]:
    """Run one executor pass in its own session."""
    try:
        async with async_session_maker() as db:
            summary = await AutomationExecutor(db).run_once()
            return summary.to_dict()
    except Exception as e:
        logger.error(f"Fatal error in automation executor: {e}", exc_info=True)
        return None


async def run_missed_review_recovery() -> Optional[int]:
    try:
        async with async_session_maker() as db:
            queued = await enqueue_missed_review_reminders(db)
            await db.commit()
            return queued
    except Exception as e:
        logger.error(f"Fatal error in missed review recovery: {e}", exc_info=True)
        return None


def start_automation_scheduler() -> bool:
    """Register the automation jobs and start the scheduler.

    Returns False (and does nothing) when the scheduler is disabled.
    """
    if not settings.AUTOMATION_SCHEDULER_ENABLED:
        logger.info("Automation scheduler disabled, relying on cron endpoint")
        return False

    scheduler = get_scheduler()

    scheduler.add_job(
        run_automation_executor,
        IntervalTrigger(minutes=settings.EXECUTOR_INTERVAL_MINUTES),
        id="automation_executor",
        name="Automation executor",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.add_job(
        run_missed_review_recovery,
        CronTrigger(minute=15),
        id="missed_review_recovery",
        name="Missed review recovery",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    if not scheduler.running:
        scheduler.start()
        logger.info("Automation scheduler started")
        for job in scheduler.get_jobs():
            logger.info(f"  - {job.name}: {job.trigger}")
    return True


def stop_automation_scheduler():
    """Stop the automation scheduler."""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Automation scheduler stopped")
    scheduler = None
