"""
Job Scheduler
=============
APScheduler-based scheduler for the alert sweep and reaggregation.
"""

import asyncio
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
import structlog

from backend.config import settings
from backend.jobs.aggregation import ReaggregationJob
from backend.jobs.alerts import AlertSweepJob

logger = structlog.get_logger()


class JobScheduler:
    """
    Manages scheduled background jobs.
    """

    def __init__(
        self,
        sweep_job: AlertSweepJob | None = None,
        reaggregation_job: ReaggregationJob | None = None,
    ):
        self.scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self.sweep_job = sweep_job or AlertSweepJob()
        self.reaggregation_job = reaggregation_job or ReaggregationJob()

    async def run_alert_sweep(self) -> None:
        """Execute one alert sweep."""
        try:
            await self.sweep_job.run()
        except Exception as e:
            logger.error("Alert sweep failed", error=str(e))

    async def run_reaggregation(self) -> None:
        """Rebuild recent daily stats from raw events."""
        try:
            logger.info("Running scheduled reaggregation", days=settings.reconcile_lookback_days)
            count = await self.reaggregation_job.run_recent(settings.reconcile_lookback_days)
            logger.info("Reaggregation finished", buckets=count)
        except Exception as e:
            logger.error("Reaggregation failed", error=str(e))

    def setup(self) -> None:
        """Configure scheduled jobs."""
        # Alert sweep - every N seconds, optionally right away
        # (an explicit next_run_time=None would add the job paused)
        first_run = {}
        if settings.alert_sweep_on_startup:
            first_run["next_run_time"] = datetime.now(timezone.utc)

        self.scheduler.add_job(
            self.run_alert_sweep,
            IntervalTrigger(seconds=settings.alert_sweep_interval_seconds),
            id="alert_sweep",
            name="Alert Sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **first_run,
        )

        # Reaggregation - daily at configured hour (default 3 AM UTC)
        self.scheduler.add_job(
            self.run_reaggregation,
            CronTrigger(hour=settings.reconcile_hour, minute=0),
            id="reaggregation",
            name="Daily Stats Reaggregation",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        logger.info(
            "Scheduler configured",
            sweep_interval=settings.alert_sweep_interval_seconds,
            reconcile_hour=settings.reconcile_hour,
        )

    def start(self) -> None:
        """Start the scheduler."""
        self.scheduler.start()
        logger.info("Scheduler started")

    async def stop(self) -> None:
        """Stop the scheduler and release the notification client."""
        self.scheduler.shutdown(wait=False)
        await self.sweep_job.close()
        logger.info("Scheduler stopped")


async def run_scheduler() -> None:
    """Run the job scheduler."""
    scheduler = JobScheduler()
    scheduler.setup()
    scheduler.start()

    try:
        # Keep the scheduler running
        while True:
            await asyncio.sleep(60)
    finally:
        await scheduler.stop()


def run() -> None:
    """Entry point for a standalone scheduler worker."""
    if not settings.scheduler_enabled:
        logger.warning("Scheduler is disabled")
        return

    logger.info("Starting APImetrics Scheduler")
    asyncio.run(run_scheduler())


if __name__ == "__main__":
    run()
