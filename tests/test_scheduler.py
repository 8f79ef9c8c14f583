"""
Scheduler Tests
===============
Tests for job registration and failure containment.
"""

from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from backend.jobs.scheduler import JobScheduler


class StubSweep:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.runs = 0
        self.closed = False

    async def run(self):
        self.runs += 1
        if self.error:
            raise self.error

    async def close(self):
        self.closed = True


class StubReaggregation:
    def __init__(self):
        self.days: list[int] = []

    async def run_recent(self, days: int) -> int:
        self.days.append(days)
        return 0


class TestJobScheduler:
    """Tests for the background job scheduler."""

    def test_setup_registers_jobs(self):
        scheduler = JobScheduler(StubSweep(), StubReaggregation())

        scheduler.setup()

        jobs = {job.id: job for job in scheduler.scheduler.get_jobs()}
        assert set(jobs) == {"alert_sweep", "reaggregation"}
        assert isinstance(jobs["alert_sweep"].trigger, IntervalTrigger)
        assert jobs["alert_sweep"].trigger.interval.total_seconds() == 300
        assert isinstance(jobs["reaggregation"].trigger, CronTrigger)

    async def test_sweep_failure_is_contained(self):
        sweep = StubSweep(error=RuntimeError("database unavailable"))
        scheduler = JobScheduler(sweep, StubReaggregation())

        await scheduler.run_alert_sweep()

        assert sweep.runs == 1

    async def test_reaggregation_uses_lookback(self):
        reaggregation = StubReaggregation()
        scheduler = JobScheduler(StubSweep(), reaggregation)

        await scheduler.run_reaggregation()

        assert reaggregation.days == [2]

    async def test_start_and_stop(self):
        sweep = StubSweep()
        scheduler = JobScheduler(sweep, StubReaggregation())
        scheduler.setup()

        scheduler.start()
        await scheduler.stop()

        assert sweep.closed is True
