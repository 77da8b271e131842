"""
In-Memory Weather Store

Dictionary-backed WeatherStore for local runs without a database.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from dataflow.candle_aggregation.aggregator import build_hourly_bars
from dataflow.persistence.store import WeatherStore
from schemas.weather_data import HourlyBar, WeatherReading

logger = logging.getLogger(__name__)


class InMemoryWeatherStore(WeatherStore):
    """Keeps readings and bars in dicts keyed like the database tables"""

    def __init__(self):
        self._readings: Dict[Tuple[str, datetime], WeatherReading] = {}
        self._bars: Dict[Tuple[str, datetime], HourlyBar] = {}

    async def append_readings(self, readings: Sequence[WeatherReading]) -> bool:
        for reading in readings:
            # Last write for the same key wins
            self._readings[(reading.city, reading.timestamp)] = reading
        logger.debug(f"Stored {len(readings)} readings (total: {len(self._readings)})")
        return True

    async def upsert_bars(self, bars: Sequence[HourlyBar]) -> bool:
        for bar in bars:
            self._bars[(bar.city, bar.hour_start)] = bar
        logger.debug(f"Stored {len(bars)} bars (total: {len(self._bars)})")
        return True

    async def aggregate_readings(
        self,
        city: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[HourlyBar]:
        return build_hourly_bars(city, list(self._readings.values()), start, end)

    async def get_bars(
        self,
        city: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[HourlyBar]:
        bars = [
            bar for (bar_city, hour), bar in self._bars.items()
            if bar_city == city
            and (start is None or hour >= start)
            and (end is None or hour < end)
        ]
        return sorted(bars, key=lambda bar: bar.hour_start)

    def readings_for(self, city: str) -> List[WeatherReading]:
        """All stored readings for a city, oldest first"""
        readings = [r for r in self._readings.values() if r.city == city]
        return sorted(readings, key=lambda r: r.timestamp)
