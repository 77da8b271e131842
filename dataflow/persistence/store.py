"""
Weather Store Contract

Durable storage for raw readings and hourly bars. Implementations must
make each write call all-or-nothing and keyed for idempotent rewrites:
- raw readings are unique on (city, timestamp)
- hourly bars are unique on (city, hour_start)
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence

from schemas.weather_data import HourlyBar, WeatherReading


class WeatherStore(ABC):
    """Async storage interface consumed by ingestion and aggregation"""

    async def connect(self) -> None:
        """Open underlying resources (no-op by default)"""

    async def ensure_schema(self) -> None:
        """Create tables and indexes if missing (no-op by default)"""

    async def close(self) -> None:
        """Release underlying resources (no-op by default)"""

    @abstractmethod
    async def append_readings(self, readings: Sequence[WeatherReading]) -> bool:
        """
        Insert a batch of raw readings, possibly spanning several cities.

        Returns:
            True if the whole batch was written, False if it was rejected
        """

    @abstractmethod
    async def upsert_bars(self, bars: Sequence[HourlyBar]) -> bool:
        """
        Insert or replace a batch of hourly bars keyed by (city, hour_start).

        Returns:
            True if the whole batch was written, False if it was rejected
        """

    @abstractmethod
    async def aggregate_readings(
        self,
        city: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[HourlyBar]:
        """Compute hourly bars from stored readings in [start, end) without persisting"""

    @abstractmethod
    async def get_bars(
        self,
        city: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[HourlyBar]:
        """Read persisted hourly bars with hour_start in [start, end), ascending"""
