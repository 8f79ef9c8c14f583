"""
Background Jobs
================
Scheduled alert sweeps and daily stats reaggregation.
"""

from backend.jobs.aggregation import ReaggregationJob
from backend.jobs.alerts import AlertSweepJob, SweepResult

__all__ = ["ReaggregationJob", "AlertSweepJob", "SweepResult"]
