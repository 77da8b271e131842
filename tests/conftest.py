"""Shared fakes and factories for the pipeline tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

import pytest

from dataflow.adapters.feed_transport import FeedTransport
from dataflow.persistence.memory import InMemoryWeatherStore
from schemas.weather_data import HourlyBar, WeatherReading


class RecordingStore(InMemoryWeatherStore):
    """In-memory store that records writes and can be told to fail or block."""

    def __init__(self) -> None:
        super().__init__()
        self.append_calls: List[List[WeatherReading]] = []
        self.upsert_calls: List[List[HourlyBar]] = []
        self.append_result = True
        self.append_error: Optional[Exception] = None
        self.upsert_fail_cities: set[str] = set()
        self.append_gate: Optional[asyncio.Event] = None

    async def append_readings(self, readings: Sequence[WeatherReading]) -> bool:
        self.append_calls.append(list(readings))
        if self.append_gate is not None:
            await self.append_gate.wait()
        if self.append_error is not None:
            raise self.append_error
        if not self.append_result:
            return False
        return await super().append_readings(readings)

    async def upsert_bars(self, bars: Sequence[HourlyBar]) -> bool:
        self.upsert_calls.append(list(bars))
        if any(bar.city in self.upsert_fail_cities for bar in bars):
            return False
        return await super().upsert_bars(bars)


class FakeTransport(FeedTransport):
    """Feed transport driven by the test through push() and drop()."""

    def __init__(self) -> None:
        self.open_count = 0
        self.close_count = 0
        self.failures_remaining = 0
        self._queue: asyncio.Queue = asyncio.Queue()

    async def open(self) -> None:
        self.open_count += 1
        if self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise ConnectionRefusedError("feed unavailable")
        self._queue = asyncio.Queue()

    async def messages(self):
        while True:
            item = await self._queue.get()
            if item is None:
                return
            yield item

    async def close(self) -> None:
        self.close_count += 1
        self._queue.put_nowait(None)

    def push(self, message) -> None:
        self._queue.put_nowait(message)

    def drop(self) -> None:
        """Simulate the remote end closing the connection."""
        self._queue.put_nowait(None)


async def _settle(turns: int = 10) -> None:
    """Let scheduled callbacks and tasks run for a few loop turns."""
    for _ in range(turns):
        await asyncio.sleep(0)


def at(hour: int, minute: int, day: int = 15) -> datetime:
    return datetime(2025, 6, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def make_reading() -> Callable[..., WeatherReading]:
    def _make(city: str, hour: int, minute: int, temperature: float, day: int = 15) -> WeatherReading:
        return WeatherReading(city=city, timestamp=at(hour, minute, day), temperature=temperature)

    return _make


@pytest.fixture
def settle() -> Callable[..., object]:
    return _settle
