"""
Weather Feed Client

Holds one connection to the weather feed, decodes each message into a
WeatherReading and records it in the IngestionBuffer.

Connection policy:
- A malformed message is logged and dropped; the connection stays up
- On connection loss a reconnect is attempted after a fixed delay,
  repeated with the same delay until it succeeds or the client is stopped
- disconnect() cancels any pending reconnect and flushes the buffer
"""

import asyncio
import logging
import time
from typing import Optional

from dataflow.adapters.feed_transport import FeedTransport, RawMessage
from dataflow.ingestion.buffer import IngestionBuffer
from schemas.weather_data import WeatherReading

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY = 5.0


class WeatherFeedClient:
    """
    Streams readings from a feed transport into an IngestionBuffer.

    Example usage:
        transport = WebSocketTransport("ws://localhost:8765")
        client = WeatherFeedClient(transport, buffer)

        await client.connect()
        ...
        await client.disconnect()
    """

    def __init__(
        self,
        transport: FeedTransport,
        buffer: IngestionBuffer,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        log_throughput: bool = False,
        throughput_interval: float = 10.0,
    ):
        self.transport = transport
        self.buffer = buffer
        self.reconnect_delay = reconnect_delay
        self.log_throughput = log_throughput
        self.throughput_interval = throughput_interval

        self._connected = False
        self._connecting = False
        self._closing = False
        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_timer: Optional[asyncio.TimerHandle] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._throughput_task: Optional[asyncio.Task] = None

        # Metrics
        self.messages_received = 0
        self.messages_dropped = 0
        self.reconnect_attempts = 0
        self._window_count = 0

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer is not None

    async def connect(self) -> None:
        """
        Connect to the feed and start reading.

        Returns once connected. If the attempt fails, a reconnect is
        scheduled and the error is raised to the caller.
        """
        if self._connected or self._connecting:
            return

        self._closing = False
        self._connecting = True
        logger.info(f"Connecting to weather feed: {self.transport.description}")

        try:
            await self.transport.open()
        except Exception as e:
            logger.error(f"Failed to connect to weather feed: {e}")
            self._schedule_reconnect()
            raise
        finally:
            self._connecting = False

        self._connected = True
        self._reader_task = asyncio.create_task(self._read_loop())

        if self.log_throughput and self._throughput_task is None:
            self._throughput_task = asyncio.create_task(self._report_throughput())

        logger.info("Connected to weather feed")

    async def disconnect(self) -> None:
        """Close the feed connection and flush buffered readings"""
        logger.info("Disconnecting from weather feed...")
        self._closing = True

        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

        for task in (self._reconnect_task, self._reader_task, self._throughput_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._reconnect_task = None
        self._reader_task = None
        self._throughput_task = None

        try:
            await self.transport.close()
        except Exception as e:
            logger.warning(f"Error closing weather feed connection: {e}")
        self._connected = False

        await self.buffer.flush_all()

        logger.info(
            f"Disconnected from weather feed. "
            f"Received {self.messages_received} messages, dropped {self.messages_dropped}"
        )

    def handle_message(self, raw: RawMessage) -> Optional[WeatherReading]:
        """Decode one feed message and record it; bad messages are dropped"""
        try:
            reading = WeatherReading.from_json(raw)
        except (ValueError, KeyError, TypeError, OverflowError) as e:
            self.messages_dropped += 1
            logger.error(f"Error parsing weather data: {e}")
            return None

        self.buffer.record(reading)
        self.messages_received += 1
        self._window_count += 1
        return reading

    async def _read_loop(self) -> None:
        try:
            async for raw in self.transport.messages():
                self.handle_message(raw)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Weather feed connection error: {e}")

        if self._closing:
            return

        logger.warning("Disconnected from weather feed")
        self._connected = False
        try:
            await self.transport.close()
        except Exception as e:
            logger.debug(f"Error closing dropped feed connection: {e}")
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._closing or self._reconnect_timer is not None:
            return

        loop = asyncio.get_running_loop()
        self._reconnect_timer = loop.call_later(self.reconnect_delay, self._on_reconnect_timer)
        logger.info(f"Reconnecting to weather feed in {self.reconnect_delay:g}s")

    def _on_reconnect_timer(self) -> None:
        self._reconnect_timer = None
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect())

    async def _reconnect(self) -> None:
        self.reconnect_attempts += 1
        logger.info("Attempting to reconnect to weather feed...")
        try:
            await self.connect()
        except Exception as e:
            # connect() has already scheduled the next attempt
            logger.error(f"Reconnection failed: {e}")

    async def _report_throughput(self) -> None:
        started = time.monotonic()
        while True:
            await asyncio.sleep(self.throughput_interval)

            now = time.monotonic()
            if not self._connected:
                self._window_count = 0
                started = now
                continue

            rate = self._window_count / max(now - started, 1e-9)
            logger.info(f"Throughput: {rate:.2f} events/sec")
            self._window_count = 0
            started = now
