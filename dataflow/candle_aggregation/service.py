"""
Aggregate Service

Runs the hourly rollup against stored readings, persists the resulting
bars, and serves bar queries with an on-demand fallback.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from dataflow.persistence.store import WeatherStore
from schemas.weather_data import HourlyBar, parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_QUERY_WINDOW = timedelta(days=182)
MAX_QUERY_LOOKBACK = timedelta(days=365)


class AggregateService:
    """
    Hourly bar aggregation over a WeatherStore.

    Example usage:
        service = AggregateService(store)

        # Roll up the last day for Berlin and persist the bars
        ok = await service.pre_aggregate("Berlin", start, end)

        # Query bars, falling back to on-demand aggregation
        bars = await service.get_candle_bars("Berlin")
    """

    def __init__(self, store: WeatherStore):
        self.store = store

    async def aggregate_readings(
        self,
        city: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[HourlyBar]:
        """Compute bars for a city from raw readings without persisting them"""
        start, end = _normalize_bounds(start, end)
        logger.debug(f"Aggregating readings for {city}")

        try:
            bars = await self.store.aggregate_readings(city, start, end)
        except Exception as e:
            logger.error(f"Error aggregating readings for {city}: {e}")
            raise

        logger.debug(f"Computed {len(bars)} hourly bars for {city}")
        return bars

    async def pre_aggregate(
        self,
        city: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> bool:
        """
        Aggregate a city's readings in [start, end) and persist the bars.

        Safe to rerun over overlapping ranges: bars are upserted by
        (city, hour_start), so unchanged readings reproduce the same bars.

        Returns:
            True if there was nothing to aggregate or the bars were saved,
            False if the store rejected the batch

        Raises:
            Whatever the store raises while reading or writing
        """
        logger.info(f"Pre-aggregating weather readings for {city}")

        bars = await self.aggregate_readings(city, start, end)

        if not bars:
            logger.info(f"No data to aggregate for {city}")
            return True

        try:
            saved = await self.store.upsert_bars(bars)
        except Exception as e:
            logger.error(f"Error saving hourly bars for {city}: {e}")
            raise

        if saved:
            logger.info(f"Pre-aggregated {len(bars)} hourly bars for {city}")
        else:
            logger.error(f"Failed to save pre-aggregated bars for {city}")

        return saved

    async def get_candle_bars(
        self,
        city: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        use_pre_aggregated: bool = True,
    ) -> List[HourlyBar]:
        """
        Get hourly bars for a city.

        Persisted bars are returned when any exist in the window; otherwise
        the bars are computed on demand from raw readings.
        """
        start, end = resolve_query_window(start, end)

        if use_pre_aggregated:
            bars = await self.store.get_bars(city, start, end)
            if bars:
                logger.info(f"Using pre-aggregated bars for {city}")
                return bars

        logger.info(f"Using on-demand aggregation for {city}")
        return await self.aggregate_readings(city, start, end)


def resolve_query_window(
    start: Optional[datetime],
    end: Optional[datetime],
    now: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """
    Fill in missing query bounds.

    Missing bounds default to a six-month window ending now, and the start
    is never earlier than one year before now.
    """
    start, end = _normalize_bounds(start, end)
    now = parse_timestamp(now) if now is not None else datetime.now(timezone.utc)

    if end is None:
        end = now
    if start is None:
        start = now - DEFAULT_QUERY_WINDOW

    oldest = now - MAX_QUERY_LOOKBACK
    if start < oldest:
        start = oldest

    return start, end


def _normalize_bounds(
    start: Optional[datetime], end: Optional[datetime]
) -> Tuple[Optional[datetime], Optional[datetime]]:
    # Naive bounds are UTC, like feed timestamps
    return (
        parse_timestamp(start) if start is not None else None,
        parse_timestamp(end) if end is not None else None,
    )
