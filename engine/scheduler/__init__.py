"""
Scheduler Module

Periodic and manual hourly bar aggregation.
"""

from .aggregation import AggregationPassResult, AggregationScheduler, SchedulerStatus

__all__ = [
    "AggregationPassResult",
    "AggregationScheduler",
    "SchedulerStatus",
]
