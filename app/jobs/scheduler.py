"""
APScheduler Configuration

Background job scheduler for the monthly payout batch. One process runs one
scheduler; `max_instances=1` keeps two batch runs from overlapping.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from app.config import settings

logger = logging.getLogger(__name__)

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 3600,  # A batch missed by up to an hour still runs
}

# Create scheduler
scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.SCHEDULER_TIMEZONE
)


async def run_payout_job():
    """
    Wrapper to run the monthly payout batch from the scheduler.

    Errors are logged; the scheduler keeps running for next month.
    """
    from app.jobs.payout_jobs import run_monthly_payouts

    try:
        result = await run_monthly_payouts()
        logger.info(
            f"Job 'monthly_payouts' completed: "
            f"{result.get('created', 0)}/{result.get('creators', 0)} payouts created"
        )
    except Exception as e:
        logger.error(f"Job 'monthly_payouts' failed: {e}")


def start_scheduler():
    """Start the background job scheduler with the monthly payout job."""
    if not scheduler.running:
        # Generate last month's payouts on the configured day and hour
        scheduler.add_job(
            run_payout_job,
            'cron',
            day=settings.PAYOUT_CRON_DAY,
            hour=settings.PAYOUT_CRON_HOUR,
            minute=0,
            id='monthly_payouts',
            name='Monthly Creator Payouts',
            replace_existing=True,
        )

        scheduler.start()
        logger.info("Background job scheduler started")

        # Log all scheduled jobs
        jobs = scheduler.get_jobs()
        for job in jobs:
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Get status of all scheduled jobs."""
    jobs = scheduler.get_jobs()
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in jobs
    ]
