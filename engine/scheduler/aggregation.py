"""
Aggregation Scheduler

Runs hourly bar pre-aggregation for every configured city on a fixed
interval, and on demand for a single city.

Each pass fans out one job per city and waits for all of them; a failing
city is counted and logged but never stops the others. Passes are not
serialized: if a pass outlives the interval, the next one starts anyway.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Set, Union

from pydantic import BaseModel

from dataflow.candle_aggregation.service import AggregateService
from engine.config.loader import SchedulerConfig
from schemas.weather_data import parse_timestamp

logger = logging.getLogger(__name__)

TimeBound = Optional[Union[str, datetime]]


class SchedulerStatus(BaseModel):
    """Snapshot of scheduler state"""
    is_running: bool
    config: SchedulerConfig
    next_run_time: Optional[datetime] = None  # Approximate


@dataclass
class AggregationPassResult:
    """Outcome of one aggregation pass across all cities"""
    started_at: datetime
    success_count: int = 0
    failure_count: int = 0
    failures: Dict[str, str] = field(default_factory=dict)


class AggregationScheduler:
    """
    Periodic and manual hourly bar aggregation.

    Example usage:
        scheduler = AggregationScheduler(AggregateService(store), SchedulerConfig())

        scheduler.start()                         # inside a running event loop
        status = scheduler.get_status()
        await scheduler.aggregate_city("Berlin")  # manual, raises on error
        scheduler.stop()
    """

    def __init__(self, service: AggregateService, config: Optional[SchedulerConfig] = None):
        self.service = service
        self.config = config or SchedulerConfig()

        self._is_running = False
        self._timer_task: Optional[asyncio.Task] = None
        self._pass_tasks: Set[asyncio.Task] = set()

        # Metrics
        self.passes_completed = 0
        self.last_result: Optional[AggregationPassResult] = None

    @property
    def is_running(self) -> bool:
        return self._is_running

    def start(self) -> None:
        """Start periodic aggregation; runs a pass immediately"""
        if self._is_running:
            logger.warning("Scheduler is already running")
            return

        if not self.config.enabled:
            logger.info("Scheduler is disabled")
            return

        logger.info(
            f"Starting scheduler - will run every {self.config.interval_minutes:g} minutes "
            f"for cities: {', '.join(self.config.cities)}"
        )

        self._timer_task = asyncio.get_running_loop().create_task(self._run_periodically())
        self._is_running = True
        logger.info("Scheduler started")

    def stop(self) -> None:
        """Stop the periodic timer; passes already running are left to finish"""
        if not self._is_running:
            logger.warning("Scheduler is not running")
            return

        if self._timer_task is not None:
            self._timer_task.cancel()
            self._timer_task = None

        self._is_running = False
        logger.info("Scheduler stopped")

    def get_status(self) -> SchedulerStatus:
        """Current run flag, config and approximate next run time"""
        next_run_time = None
        if self._is_running:
            next_run_time = datetime.now(timezone.utc) + timedelta(
                minutes=self.config.interval_minutes
            )

        return SchedulerStatus(
            is_running=self._is_running,
            config=self.config,
            next_run_time=next_run_time,
        )

    async def _run_periodically(self) -> None:
        interval = self.config.interval_minutes * 60
        while True:
            self._launch_pass()
            await asyncio.sleep(interval)

    def _launch_pass(self) -> None:
        task = asyncio.get_running_loop().create_task(self._run_scheduled_pass())
        self._pass_tasks.add(task)
        task.add_done_callback(self._pass_tasks.discard)

    async def _run_scheduled_pass(self) -> None:
        try:
            await self.run_aggregation()
        except Exception as e:
            logger.error(f"Scheduled aggregation failed: {e}", exc_info=True)

    async def run_aggregation(self) -> AggregationPassResult:
        """
        Run one aggregation pass over the configured lookback window.

        All cities are aggregated concurrently; exceptions and False
        results both count as failures for that city.
        """
        logger.info("Starting periodic aggregation...")

        end = datetime.now(timezone.utc)
        start = end - timedelta(hours=self.config.aggregation_time_window_hours)
        cities = list(self.config.cities)
        result = AggregationPassResult(started_at=end)

        outcomes = await asyncio.gather(
            *(self.service.pre_aggregate(city, start, end) for city in cities),
            return_exceptions=True,
        )

        for city, outcome in zip(cities, outcomes):
            if isinstance(outcome, BaseException):
                result.failure_count += 1
                result.failures[city] = repr(outcome)
                logger.error(f"Aggregation failed for {city}: {outcome!r}")
            elif outcome:
                result.success_count += 1
                logger.debug(f"Successfully aggregated data for {city}")
            else:
                result.failure_count += 1
                result.failures[city] = "store rejected hourly bars"
                logger.warning(f"Aggregation returned false for {city}")

        self.passes_completed += 1
        self.last_result = result

        logger.info(
            f"Aggregation completed - Success: {result.success_count}, "
            f"Failures: {result.failure_count}"
        )
        return result

    async def aggregate_city(
        self, city: str, start: TimeBound = None, end: TimeBound = None
    ) -> bool:
        """
        Aggregate a single city on demand.

        Args:
            city: City to aggregate
            start: Inclusive lower bound (datetime or ISO-8601 string)
            end: Exclusive upper bound (datetime or ISO-8601 string)

        Returns:
            Result of pre-aggregation (False if the store rejected the bars)

        Raises:
            ValueError/TypeError for unparseable bounds, and any store error
        """
        logger.info(f"Manual aggregation for city: {city}")

        try:
            start_at = parse_timestamp(start) if start is not None else None
            end_at = parse_timestamp(end) if end is not None else None
            result = await self.service.pre_aggregate(city, start_at, end_at)
        except Exception as e:
            logger.error(f"Manual aggregation failed for {city}: {e}")
            raise

        if result:
            logger.info(f"Manual aggregation successful for {city}")
        else:
            logger.warning(f"Manual aggregation returned false for {city}")

        return result

    async def join(self) -> None:
        """Wait for aggregation passes that are currently running"""
        while self._pass_tasks:
            await asyncio.gather(*list(self._pass_tasks), return_exceptions=True)
