"""
PostgreSQL Weather Store

Persists raw weather readings and hourly bars to PostgreSQL.
Tables:
- weather_events       -> raw readings, unique on (city, timestamp)
- weather_hourly_ohlc  -> hourly bars, unique on (city, timestamp)

Every write runs in a single transaction so a failed batch leaves
nothing behind.
"""

import logging
from datetime import datetime
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import asyncpg

from dataflow.persistence.store import WeatherStore
from schemas.weather_data import HourlyBar, WeatherReading

logger = logging.getLogger(__name__)

EVENTS_TABLE = "weather_events"
BARS_TABLE = "weather_hourly_ohlc"

SCHEMA_STATEMENTS = [
    f"""
    CREATE TABLE IF NOT EXISTS {EVENTS_TABLE} (
        id BIGSERIAL PRIMARY KEY,
        city TEXT NOT NULL,
        timestamp TIMESTAMPTZ NOT NULL,
        temperature DOUBLE PRECISION NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        UNIQUE (city, timestamp)
    )
    """,
    f"""
    CREATE INDEX IF NOT EXISTS idx_weather_city_timestamp
        ON {EVENTS_TABLE} (city, timestamp)
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {BARS_TABLE} (
        id BIGSERIAL PRIMARY KEY,
        city TEXT NOT NULL,
        timestamp TIMESTAMPTZ NOT NULL,
        open DOUBLE PRECISION NOT NULL,
        high DOUBLE PRECISION NOT NULL,
        low DOUBLE PRECISION NOT NULL,
        close DOUBLE PRECISION NOT NULL,
        reading_count INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        UNIQUE (city, timestamp)
    )
    """,
    f"""
    CREATE INDEX IF NOT EXISTS idx_ohlc_city_timestamp
        ON {BARS_TABLE} (city, timestamp DESC)
    """,
]

INSERT_READINGS_SQL = f"""
    INSERT INTO {EVENTS_TABLE} (city, timestamp, temperature)
    VALUES ($1, $2, $3)
    ON CONFLICT (city, timestamp) DO UPDATE SET
        temperature = EXCLUDED.temperature,
        updated_at = now()
"""

UPSERT_BARS_SQL = f"""
    INSERT INTO {BARS_TABLE} (city, timestamp, open, high, low, close, reading_count)
    VALUES ($1, $2, $3, $4, $5, $6, $7)
    ON CONFLICT (city, timestamp) DO UPDATE SET
        open = EXCLUDED.open,
        high = EXCLUDED.high,
        low = EXCLUDED.low,
        close = EXCLUDED.close,
        reading_count = EXCLUDED.reading_count,
        updated_at = now()
"""


# Hours are truncated in UTC so buckets match hour_start(); ties on timestamp
# cannot occur because (city, timestamp) is unique
AGGREGATE_SQL = f"""
    SELECT
        city,
        date_trunc('hour', timestamp AT TIME ZONE 'UTC') AT TIME ZONE 'UTC' AS timestamp,
        (array_agg(temperature ORDER BY timestamp ASC, id ASC))[1] AS open,
        max(temperature) AS high,
        min(temperature) AS low,
        (array_agg(temperature ORDER BY timestamp DESC, id DESC))[1] AS close,
        count(*) AS reading_count
    FROM {EVENTS_TABLE}
    {{where}}
    GROUP BY city, 2
    ORDER BY 2 ASC
"""


def _range_clause(
    start: Optional[datetime], end: Optional[datetime], params: List[Any]
) -> str:
    """Build the half-open time filter, appending bind values to params"""
    clause = ""
    if start is not None:
        params.append(start)
        clause += f" AND timestamp >= ${len(params)}"
    if end is not None:
        params.append(end)
        clause += f" AND timestamp < ${len(params)}"
    return clause


def _bar_from_row(row: Mapping[str, Any]) -> HourlyBar:
    return HourlyBar(
        city=row["city"],
        hour_start=row["timestamp"],
        open=float(row["open"]),
        high=float(row["high"]),
        low=float(row["low"]),
        close=float(row["close"]),
        reading_count=row["reading_count"],
    )


class PostgresWeatherStore(WeatherStore):
    """
    asyncpg-backed store.

    Features:
    - Pooled connections
    - Transactional batch writes
    - Idempotent upserts keyed like the unique constraints
    """

    def __init__(
        self,
        db_url: str,
        min_size: int = 2,
        max_size: int = 10,
        command_timeout: float = 60,
    ):
        self.db_url = db_url
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout

        self._pool: Optional[asyncpg.Pool] = None

        # Metrics
        self._readings_written = 0
        self._bars_written = 0

    async def connect(self) -> None:
        """Connect to PostgreSQL"""
        if self._pool is not None:
            return

        logger.info("Connecting to PostgreSQL...")

        self._pool = await asyncpg.create_pool(
            self.db_url,
            min_size=self.min_size,
            max_size=self.max_size,
            command_timeout=self.command_timeout,
        )

        logger.info("Connected to PostgreSQL")

    async def close(self) -> None:
        """Close database connection"""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info(
                f"PostgreSQL connection closed. "
                f"Total written: {self._readings_written} readings, {self._bars_written} bars"
            )

    def _require_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Weather store not connected")
        return self._pool

    async def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist"""
        pool = self._require_pool()
        logger.info("Running database migrations...")

        async with pool.acquire() as conn:
            async with conn.transaction():
                for statement in SCHEMA_STATEMENTS:
                    await conn.execute(statement)

        logger.info("Database migrations completed")

    async def drop_tables(self) -> None:
        """Drop both tables (development/test resets)"""
        pool = self._require_pool()
        logger.warning("Dropping weather tables...")

        async with pool.acquire() as conn:
            await conn.execute(f"DROP TABLE IF EXISTS {EVENTS_TABLE}")
            await conn.execute(f"DROP TABLE IF EXISTS {BARS_TABLE}")

    async def _write_batch(self, sql: str, rows: List[Tuple]) -> None:
        pool = self._require_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                await conn.executemany(sql, rows)

    async def append_readings(self, readings: Sequence[WeatherReading]) -> bool:
        if not readings:
            return True

        self._require_pool()
        rows = [
            (reading.city, reading.timestamp, reading.temperature)
            for reading in readings
        ]

        try:
            await self._write_batch(INSERT_READINGS_SQL, rows)
        except Exception as e:
            logger.error(f"Failed to save {len(rows)} weather readings: {e}")
            return False

        self._readings_written += len(rows)
        logger.debug(f"Saved {len(rows)} readings (total: {self._readings_written})")
        return True

    async def upsert_bars(self, bars: Sequence[HourlyBar]) -> bool:
        if not bars:
            return True

        self._require_pool()
        rows = [
            (
                bar.city,
                bar.hour_start,
                bar.open,
                bar.high,
                bar.low,
                bar.close,
                bar.reading_count,
            )
            for bar in bars
        ]

        try:
            await self._write_batch(UPSERT_BARS_SQL, rows)
        except Exception as e:
            logger.error(f"Failed to save {len(rows)} hourly bars: {e}")
            return False

        self._bars_written += len(rows)
        logger.debug(f"Saved {len(rows)} bars (total: {self._bars_written})")
        return True

    async def aggregate_readings(
        self,
        city: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[HourlyBar]:
        """Roll raw readings in [start, end) up into hourly bars, oldest first"""
        pool = self._require_pool()
        params: List[Any] = [city]
        where = "WHERE city = $1" + _range_clause(start, end, params)

        async with pool.acquire() as conn:
            rows = await conn.fetch(AGGREGATE_SQL.format(where=where), *params)

        return [_bar_from_row(row) for row in rows]

    async def get_bars(
        self,
        city: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[HourlyBar]:
        pool = self._require_pool()
        params: List[Any] = [city]
        where = "WHERE city = $1" + _range_clause(start, end, params)

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT city, timestamp, open, high, low, close, reading_count
                FROM {BARS_TABLE}
                {where}
                ORDER BY timestamp ASC
                """,
                *params,
            )

        return [_bar_from_row(row) for row in rows]
