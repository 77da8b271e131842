"""Tests for pre-aggregation and the bar query fallback."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from dataflow.candle_aggregation.aggregator import hour_start
from dataflow.candle_aggregation.service import AggregateService, resolve_query_window
from schemas.weather_data import WeatherReading

WINDOW_START = datetime(2025, 6, 15, 0, tzinfo=timezone.utc)
WINDOW_END = datetime(2025, 6, 16, 0, tzinfo=timezone.utc)


def test_nothing_to_aggregate_succeeds_without_write(store) -> None:
    async def scenario() -> None:
        service = AggregateService(store)

        assert await service.aggregate_readings("Berlin", WINDOW_START, WINDOW_END) == []
        assert await service.pre_aggregate("Berlin", WINDOW_START, WINDOW_END) is True
        assert store.upsert_calls == []

    asyncio.run(scenario())


def test_pre_aggregate_persists_bars(store, make_reading) -> None:
    async def scenario() -> None:
        await store.append_readings(
            [
                make_reading("Berlin", 9, 5, 10.0),
                make_reading("Berlin", 9, 40, 14.0),
                make_reading("Berlin", 9, 58, 8.0),
                make_reading("Berlin", 10, 15, 9.0),
            ]
        )
        service = AggregateService(store)

        assert await service.pre_aggregate("Berlin", WINDOW_START, WINDOW_END) is True

        bars = await store.get_bars("Berlin")
        assert [(b.open, b.high, b.low, b.close) for b in bars] == [
            (10.0, 14.0, 8.0, 8.0),
            (9.0, 9.0, 9.0, 9.0),
        ]

    asyncio.run(scenario())


def test_rerun_is_idempotent_and_picks_up_late_readings(store, make_reading) -> None:
    async def scenario() -> None:
        await store.append_readings([make_reading("Berlin", 9, 5, 10.0), make_reading("Berlin", 9, 30, 12.0)])
        service = AggregateService(store)

        await service.pre_aggregate("Berlin", WINDOW_START, WINDOW_END)
        first = await store.get_bars("Berlin")
        await service.pre_aggregate("Berlin", WINDOW_START, WINDOW_END)
        assert await store.get_bars("Berlin") == first

        await store.append_readings([make_reading("Berlin", 9, 50, 3.0)])
        await service.pre_aggregate("Berlin", WINDOW_START, WINDOW_END)

        bars = await store.get_bars("Berlin")
        assert len(bars) == 1
        assert (bars[0].low, bars[0].close) == (3.0, 3.0)

    asyncio.run(scenario())


def test_pre_aggregate_reports_rejected_write(store, make_reading) -> None:
    async def scenario() -> None:
        await store.append_readings([make_reading("Berlin", 9, 5, 10.0)])
        store.upsert_fail_cities = {"Berlin"}

        assert await AggregateService(store).pre_aggregate("Berlin") is False

    asyncio.run(scenario())


def test_pre_aggregate_propagates_store_errors(store) -> None:
    async def failing_aggregate(city, start=None, end=None):
        raise ConnectionError("read failed")

    store.aggregate_readings = failing_aggregate

    with pytest.raises(ConnectionError):
        asyncio.run(AggregateService(store).pre_aggregate("Berlin"))


def test_query_prefers_persisted_bars(store) -> None:
    async def scenario() -> None:
        hour = hour_start(datetime.now(timezone.utc) - timedelta(hours=2))
        service = AggregateService(store)

        await store.append_readings([WeatherReading("Tokyo", hour + timedelta(minutes=10), 21.0)])

        # Nothing persisted yet: computed on demand
        on_demand = await service.get_candle_bars("Tokyo")
        assert len(on_demand) == 1
        assert store.upsert_calls == []

        await service.pre_aggregate("Tokyo")
        await store.append_readings([WeatherReading("Tokyo", hour + timedelta(minutes=20), 30.0)])

        persisted = await service.get_candle_bars("Tokyo")
        assert persisted[0].high == 21.0

        fresh = await service.get_candle_bars("Tokyo", use_pre_aggregated=False)
        assert fresh[0].high == 30.0

    asyncio.run(scenario())


def test_query_window_defaults_and_clamp() -> None:
    now = datetime(2025, 6, 15, 12, tzinfo=timezone.utc)

    start, end = resolve_query_window(None, None, now=now)
    assert end == now
    assert timedelta(days=180) <= end - start <= timedelta(days=185)

    start, end = resolve_query_window(now - timedelta(days=800), None, now=now)
    assert start == now - timedelta(days=365)

    explicit = now - timedelta(days=3)
    assert resolve_query_window(explicit, now, now=now) == (explicit, now)


def test_naive_bounds_are_treated_as_utc(store, make_reading) -> None:
    async def scenario() -> None:
        await store.append_readings([make_reading("Berlin", 9, 5, 10.0), make_reading("Berlin", 11, 5, 12.0)])
        service = AggregateService(store)

        naive_start = datetime(2025, 6, 15, 9)
        naive_end = datetime(2025, 6, 15, 10)

        assert await service.pre_aggregate("Berlin", naive_start, naive_end) is True
        bars = await store.get_bars("Berlin")
        assert [bar.hour_start for bar in bars] == [datetime(2025, 6, 15, 9, tzinfo=timezone.utc)]

    asyncio.run(scenario())


def test_query_window_accepts_naive_start() -> None:
    now = datetime(2025, 6, 15, 12, tzinfo=timezone.utc)

    start, end = resolve_query_window(datetime(2025, 6, 10), None, now=now)

    assert start == datetime(2025, 6, 10, tzinfo=timezone.utc)
    assert end == now
