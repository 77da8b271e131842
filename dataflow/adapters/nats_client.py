"""
NATS Client Adapter

Async NATS connection used as an alternative weather feed: the simulator
publishes one JSON reading per message and the pipeline subscribes to all
city subjects.

Library-level reconnection is off: a lost connection is reported through
on_disconnect and the feed client decides when to reconnect.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

import nats
from nats.aio.client import Client as NatsConnection
from nats.aio.msg import Msg

from schemas.weather_data import WeatherReading

logger = logging.getLogger(__name__)

SUBJECT_PREFIX = "weather.events"


@dataclass
class NatsConfig:
    """NATS connection configuration"""
    servers: list[str] = field(default_factory=lambda: ["nats://localhost:4222"])
    name: str = "weather-pipeline"
    connect_timeout: float = 2.0
    ping_interval: int = 20
    max_outstanding_pings: int = 3
    allow_reconnect: bool = False

    @classmethod
    def from_env(cls, prefix: str = "NATS") -> "NatsConfig":
        """Create config from <prefix>_SERVERS and <prefix>_CLIENT_NAME"""
        servers = os.getenv(f"{prefix}_SERVERS", "nats://localhost:4222")
        return cls(
            servers=[s.strip() for s in servers.split(",") if s.strip()],
            name=os.getenv(f"{prefix}_CLIENT_NAME", "weather-pipeline"),
        )


class NatsClient:
    """
    Thin wrapper over a single nats-py connection.

    Subjects:
    - weather.events.{city}   - one JSON weather reading per message
    """

    def __init__(
        self,
        config: Optional[NatsConfig] = None,
        on_disconnect: Optional[Callable[[], None]] = None,
    ):
        self.config = config or NatsConfig()
        self.on_disconnect = on_disconnect
        self._nc: Optional[NatsConnection] = None
        self._subscriptions: Dict[str, Any] = {}

    @property
    def is_connected(self) -> bool:
        return self._nc is not None and self._nc.is_connected

    async def connect(self) -> None:
        """Open the connection; raises if no server is reachable"""
        if self.is_connected:
            return

        try:
            self._nc = await nats.connect(
                servers=self.config.servers,
                name=self.config.name,
                connect_timeout=self.config.connect_timeout,
                allow_reconnect=self.config.allow_reconnect,
                ping_interval=self.config.ping_interval,
                max_outstanding_pings=self.config.max_outstanding_pings,
                error_cb=self._on_error,
                disconnected_cb=self._on_disconnected,
                closed_cb=self._on_closed,
            )
        except Exception as e:
            logger.error(f"Failed to connect to NATS {self.config.servers}: {e}")
            raise

        logger.info(f"Connected to NATS: {self.config.servers}")

    async def _on_error(self, e: Exception) -> None:
        logger.error(f"NATS error: {e}")

    async def _on_disconnected(self) -> None:
        logger.warning("NATS disconnected")
        self._notify_lost()

    async def _on_closed(self) -> None:
        logger.info("NATS connection closed")
        self._notify_lost()

    def _notify_lost(self) -> None:
        if self.on_disconnect is not None:
            self.on_disconnect()

    async def close(self) -> None:
        """Drain subscriptions and close; safe when not connected"""
        nc, self._nc = self._nc, None
        self._subscriptions.clear()
        if nc is None or nc.is_closed:
            return
        await nc.drain()

    async def publish_reading(self, reading: WeatherReading) -> str:
        """
        Publish one reading as JSON on its city subject.

        Returns:
            The subject the reading was published on
        """
        if self._nc is None or not self._nc.is_connected:
            raise RuntimeError("NATS client not connected")

        subject = Topics.weather_events(reading.city)
        payload = reading.to_json().encode("utf-8")
        await self._nc.publish(subject, payload)
        logger.debug(f"Published to {subject}: {len(payload)} bytes")
        return subject

    async def subscribe(
        self,
        subject: str,
        callback: Callable[[Msg], Awaitable[None]],
    ) -> None:
        """Subscribe a callback to a subject pattern (wildcards * and > allowed)"""
        if self._nc is None or not self._nc.is_connected:
            raise RuntimeError("NATS client not connected")

        self._subscriptions[subject] = await self._nc.subscribe(subject, cb=callback)
        logger.info(f"Subscribed to {subject}")


class Topics:
    """Weather subject names"""

    @staticmethod
    def _sanitize(name: str) -> str:
        # Subject tokens: alphanumerics, '-' and '_' only
        return "".join(c if c.isalnum() or c in "-_" else "_" for c in name)

    @staticmethod
    def weather_events(city: str) -> str:
        return f"{SUBJECT_PREFIX}.{Topics._sanitize(city)}"

    @staticmethod
    def all_weather_events() -> str:
        return f"{SUBJECT_PREFIX}.*"
