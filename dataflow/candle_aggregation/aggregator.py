"""
Hourly Bar Aggregator

Rolls raw temperature readings up into hourly open/high/low/close bars.
Pure functions over readings; persistence lives in the store layer.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from schemas.weather_data import HourlyBar, WeatherReading

BAR_SECONDS = 3600


def hour_start(timestamp: datetime) -> datetime:
    """Get the start time of the clock hour containing this timestamp"""
    epoch = timestamp.timestamp()
    aligned = (epoch // BAR_SECONDS) * BAR_SECONDS
    return datetime.fromtimestamp(aligned, tz=timestamp.tzinfo)


class HourlyBarBuilder:
    """Builds a bar from readings fed in timestamp order"""

    def __init__(self, city: str, start_time: datetime):
        self.city = city
        self.start_time = start_time
        self.open: Optional[float] = None
        self.high: Optional[float] = None
        self.low: Optional[float] = None
        self.close: Optional[float] = None
        self.reading_count: int = 0

    def add_reading(self, reading: WeatherReading) -> None:
        """Add a reading to this bar"""
        temperature = reading.temperature

        if self.open is None:
            self.open = temperature
            self.high = temperature
            self.low = temperature

        self.high = max(self.high, temperature)
        self.low = min(self.low, temperature)
        self.close = temperature
        self.reading_count += 1

    def is_empty(self) -> bool:
        """Check if bar has any data"""
        return self.open is None

    def build(self) -> HourlyBar:
        """Build the final HourlyBar object"""
        if self.is_empty():
            raise ValueError("Cannot build empty bar")

        return HourlyBar(
            city=self.city,
            hour_start=self.start_time,
            open=self.open,
            high=self.high,
            low=self.low,
            close=self.close,
            reading_count=self.reading_count,
        )


def build_hourly_bars(
    city: str,
    readings: Iterable[WeatherReading],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[HourlyBar]:
    """
    Aggregate readings for one city into hourly bars.

    Readings for other cities and readings outside the half-open range
    [start, end) are ignored. Open is the temperature of the earliest
    reading in the hour and close the latest; readings sharing a timestamp
    keep their input order. Bars are returned ascending by hour.

    Args:
        city: City to aggregate
        readings: Raw readings, in any order
        start: Inclusive lower bound (optional)
        end: Exclusive upper bound (optional)

    Returns:
        One HourlyBar per non-empty hour, empty list if nothing matched
    """
    selected = [
        r for r in readings
        if r.city == city
        and (start is None or r.timestamp >= start)
        and (end is None or r.timestamp < end)
    ]
    # sorted() is stable, so equal timestamps stay in input order
    selected = sorted(selected, key=lambda r: r.timestamp)

    builders: Dict[datetime, HourlyBarBuilder] = {}
    for reading in selected:
        bucket = hour_start(reading.timestamp)
        builder = builders.get(bucket)
        if builder is None:
            builder = HourlyBarBuilder(city, bucket)
            builders[bucket] = builder
        builder.add_reading(reading)

    return [builders[bucket].build() for bucket in sorted(builders)]
