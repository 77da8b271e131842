"""Tests for the PostgreSQL store against a fake asyncpg pool."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from dataflow.persistence.postgres import (
    INSERT_READINGS_SQL,
    SCHEMA_STATEMENTS,
    UPSERT_BARS_SQL,
    PostgresWeatherStore,
)
from schemas.weather_data import HourlyBar


def at(hour: int, minute: int) -> datetime:
    return datetime(2025, 6, 15, hour, minute, tzinfo=timezone.utc)


class FakeConnection:
    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None) -> None:
        self.rows = rows or []
        self.executed: List[str] = []
        self.batches: List[Tuple[str, List[Tuple]]] = []
        self.fetches: List[Tuple[str, Tuple]] = []
        self.transactions = 0
        self.fail_with: Optional[Exception] = None

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        yield

    async def execute(self, sql: str, *args) -> str:
        self.executed.append(sql)
        return "OK"

    async def executemany(self, sql: str, rows) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.batches.append((sql, list(rows)))

    async def fetch(self, sql: str, *args) -> List[Dict[str, Any]]:
        self.fetches.append((sql, args))
        return self.rows


class FakePool:
    def __init__(self, conn: FakeConnection) -> None:
        self.conn = conn
        self.acquired = 0
        self.closed = False

    @asynccontextmanager
    async def acquire(self):
        self.acquired += 1
        yield self.conn

    async def close(self) -> None:
        self.closed = True


def _connected_store(rows=None) -> Tuple[PostgresWeatherStore, FakePool]:
    store = PostgresWeatherStore("postgresql://test")
    pool = FakePool(FakeConnection(rows))
    store._pool = pool
    return store, pool


def test_append_writes_batch_in_one_transaction(make_reading) -> None:
    store, pool = _connected_store()
    readings = [make_reading("Berlin", 9, 0, 10.0), make_reading("Tokyo", 9, 0, 20.0)]

    assert asyncio.run(store.append_readings(readings)) is True

    assert pool.conn.transactions == 1
    assert pool.conn.batches == [
        (INSERT_READINGS_SQL, [("Berlin", at(9, 0), 10.0), ("Tokyo", at(9, 0), 20.0)])
    ]


def test_append_failure_returns_false(make_reading) -> None:
    store, pool = _connected_store()
    pool.conn.fail_with = ConnectionError("server closed the connection")

    assert asyncio.run(store.append_readings([make_reading("Berlin", 9, 0, 10.0)])) is False


def test_empty_batch_skips_database() -> None:
    store, pool = _connected_store()

    assert asyncio.run(store.append_readings([])) is True
    assert asyncio.run(store.upsert_bars([])) is True
    assert pool.acquired == 0


def test_upsert_bars_rows() -> None:
    store, pool = _connected_store()
    bar = HourlyBar("Berlin", at(9, 0), 10.0, 14.0, 8.0, 9.0, reading_count=4)

    assert asyncio.run(store.upsert_bars([bar])) is True

    assert pool.conn.batches == [
        (UPSERT_BARS_SQL, [("Berlin", at(9, 0), 10.0, 14.0, 8.0, 9.0, 4)])
    ]


def test_unconnected_store_raises(make_reading) -> None:
    store = PostgresWeatherStore("postgresql://test")

    with pytest.raises(RuntimeError):
        asyncio.run(store.append_readings([make_reading("Berlin", 9, 0, 10.0)]))
    with pytest.raises(RuntimeError):
        asyncio.run(store.get_bars("Berlin"))


def test_range_filter_is_half_open() -> None:
    store, pool = _connected_store()
    start, end = at(0, 0), at(0, 0) + timedelta(days=1)

    asyncio.run(store.aggregate_readings("Berlin", start, end))
    asyncio.run(store.get_bars("Berlin", start, end))

    for sql, args in pool.conn.fetches:
        assert "timestamp >= $2" in sql
        assert "timestamp < $3" in sql
        assert args == ("Berlin", start, end)


def test_aggregate_readings_groups_by_utc_hour_in_sql() -> None:
    rows = [
        {
            "city": "Berlin",
            "timestamp": at(9, 0),
            "open": 10.0,
            "high": 14.0,
            "low": 10.0,
            "close": 14.0,
            "reading_count": 2,
        },
        {
            "city": "Berlin",
            "timestamp": at(10, 0),
            "open": 7.5,
            "high": 7.5,
            "low": 7.5,
            "close": 7.5,
            "reading_count": 1,
        },
    ]
    store, pool = _connected_store(rows)

    bars = asyncio.run(store.aggregate_readings("Berlin"))

    assert [(b.hour_start, b.open, b.high, b.low, b.close, b.reading_count) for b in bars] == [
        (at(9, 0), 10.0, 14.0, 10.0, 14.0, 2),
        (at(10, 0), 7.5, 7.5, 7.5, 7.5, 1),
    ]
    sql, args = pool.conn.fetches[0]
    assert "date_trunc('hour', timestamp AT TIME ZONE 'UTC')" in sql
    assert "ORDER BY timestamp ASC, id ASC" in sql
    assert "ORDER BY timestamp DESC, id DESC" in sql
    assert "{where}" not in sql
    assert args == ("Berlin",)


def test_get_bars_maps_rows() -> None:
    rows = [
        {
            "city": "Tokyo",
            "timestamp": at(9, 0),
            "open": 20.0,
            "high": 22.0,
            "low": 19.0,
            "close": 21.0,
            "reading_count": 3,
        }
    ]
    store, pool = _connected_store(rows)

    bars = asyncio.run(store.get_bars("Tokyo"))

    assert bars == [HourlyBar("Tokyo", at(9, 0), 20.0, 22.0, 19.0, 21.0, reading_count=3)]
    assert "ORDER BY timestamp ASC" in pool.conn.fetches[0][0]


def test_ensure_schema_runs_all_statements() -> None:
    store, pool = _connected_store()

    asyncio.run(store.ensure_schema())

    assert pool.conn.executed == SCHEMA_STATEMENTS
    assert pool.conn.transactions == 1


def test_close_releases_pool() -> None:
    store, pool = _connected_store()

    asyncio.run(store.close())

    assert pool.closed
    assert store._pool is None


def test_drop_tables_drops_both_tables() -> None:
    store, pool = _connected_store()

    asyncio.run(store.drop_tables())

    assert pool.conn.executed == [
        "DROP TABLE IF EXISTS weather_events",
        "DROP TABLE IF EXISTS weather_hourly_ohlc",
    ]
