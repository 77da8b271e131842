"""
Ingestion Buffer

Per-city in-memory queue of readings waiting to be persisted.

Flushing:
- A city is marked once its pending count reaches the flush threshold
- Marked cities are flushed together by one deferred pass on the next
  event loop turn, so a burst of cities crossing the threshold shares a write
- A city with a write already in flight is skipped by the pass
- Readings taken for a failed write are dropped and counted, not requeued
- flush_all() waits for in-flight writes, then flushes everything left
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Set

from dataflow.persistence.store import WeatherStore
from schemas.weather_data import WeatherReading

logger = logging.getLogger(__name__)


class IngestionBuffer:
    """
    Buffers readings per city and flushes them to a WeatherStore in batches.

    Example usage:
        buffer = IngestionBuffer(store, flush_threshold=50)

        # Called for each decoded feed message (inside the event loop)
        buffer.record(reading)

        # On shutdown
        await buffer.flush_all()
    """

    def __init__(self, store: WeatherStore, flush_threshold: int = 50):
        if flush_threshold < 1:
            raise ValueError(f"flush_threshold must be positive, got {flush_threshold}")

        self.store = store
        self.flush_threshold = flush_threshold

        self._pending: Dict[str, List[WeatherReading]] = {}
        self._cities_to_flush: Set[str] = set()
        self._in_flight: Set[str] = set()
        self._flush_handle: Optional[asyncio.Handle] = None
        self._flush_tasks: Set[asyncio.Task] = set()

        # Metrics
        self.readings_written = 0
        self.readings_lost = 0
        self.flush_passes = 0

    def record(self, reading: WeatherReading) -> None:
        """Append a reading to its city's pending list"""
        pending = self._pending.setdefault(reading.city, [])
        pending.append(reading)

        if len(pending) >= self.flush_threshold:
            self._schedule_city_flush(reading.city)

    def pending_count(self, city: Optional[str] = None) -> int:
        """Number of buffered readings for a city, or across all cities"""
        if city is not None:
            return len(self._pending.get(city, ()))
        return sum(len(items) for items in self._pending.values())

    @property
    def in_flight(self) -> Set[str]:
        """Cities with a write currently in progress"""
        return set(self._in_flight)

    def _schedule_city_flush(self, city: str) -> None:
        self._cities_to_flush.add(city)

        if self._flush_handle is None:
            loop = asyncio.get_running_loop()
            self._flush_handle = loop.call_soon(self._start_flush_pass)

    def _start_flush_pass(self) -> None:
        self._flush_handle = None
        cities = list(self._cities_to_flush)
        self._cities_to_flush.clear()

        if not cities:
            return

        task = asyncio.get_running_loop().create_task(self._flush_cities(cities))
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)

    def _take(self, cities: Iterable[str]) -> Dict[str, List[WeatherReading]]:
        """Detach pending lists for cities without a write in flight"""
        taken: Dict[str, List[WeatherReading]] = {}

        for city in cities:
            if city in self._in_flight:
                logger.debug(f"Skipping flush for {city}: write already in flight")
                continue

            # New readings for this city start a fresh list
            readings = self._pending.pop(city, None)
            if readings:
                taken[city] = readings
                self._in_flight.add(city)

        return taken

    async def _flush_cities(self, cities: Iterable[str]) -> bool:
        taken = self._take(cities)
        if not taken:
            return True

        self.flush_passes += 1
        batch = [reading for readings in taken.values() for reading in readings]

        try:
            saved = await self.store.append_readings(batch)
        except Exception as e:
            logger.error(f"Error saving weather readings for {sorted(taken)}: {e}")
            saved = False
        finally:
            self._in_flight.difference_update(taken)

        if saved:
            self.readings_written += len(batch)
            logger.debug(f"Flushed {len(batch)} readings for {sorted(taken)}")
        else:
            self.readings_lost += len(batch)
            logger.error(
                f"Failed to batch save {len(batch)} weather readings for "
                f"{sorted(taken)}; readings dropped"
            )

        return saved

    async def flush_all(self) -> bool:
        """
        Flush every buffered city now, regardless of the threshold.

        Cancels a pending deferred pass and waits for writes already in
        flight, so readings that arrived during those writes are flushed
        too. Readings recorded while this call is waiting stay buffered.
        """
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        self._cities_to_flush.clear()

        if self._flush_tasks:
            await asyncio.gather(*list(self._flush_tasks), return_exceptions=True)

        saved = await self._flush_cities(list(self._pending))

        left = self.pending_count()
        if left:
            logger.warning(f"{left} weather readings still buffered for {sorted(self._pending)}")

        return saved

    async def join(self) -> None:
        """Wait until no deferred pass is scheduled and no flush is running"""
        while self._flush_handle is not None or self._flush_tasks:
            if self._flush_tasks:
                await asyncio.gather(*list(self._flush_tasks), return_exceptions=True)
            else:
                await asyncio.sleep(0)
