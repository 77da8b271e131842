"""
Feed Transports

Connections that deliver one JSON weather message per feed unit.
The feed client drives a transport through open -> messages -> close and
treats the end of the message stream as a lost connection.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional, Union

import websockets
from nats.aio.msg import Msg

from dataflow.adapters.nats_client import NatsClient, NatsConfig, Topics

logger = logging.getLogger(__name__)

RawMessage = Union[str, bytes]


class FeedTransport(ABC):
    """A single long-lived connection to the weather feed"""

    @abstractmethod
    async def open(self) -> None:
        """Connect; raises if the connection cannot be established"""

    @abstractmethod
    def messages(self) -> AsyncIterator[RawMessage]:
        """Iterate inbound messages until the connection drops"""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection (safe to call when not connected)"""

    @property
    def description(self) -> str:
        return type(self).__name__


class WebSocketTransport(FeedTransport):
    """Weather feed over a WebSocket connection"""

    def __init__(
        self,
        url: str = "ws://localhost:8765",
        ping_interval: float = 20,
        ping_timeout: float = 10,
        close_timeout: float = 5,
    ):
        self.url = url
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self.close_timeout = close_timeout
        self._ws = None

    @property
    def description(self) -> str:
        return self.url

    async def open(self) -> None:
        self._ws = await websockets.connect(
            self.url,
            ping_interval=self.ping_interval,
            ping_timeout=self.ping_timeout,
            close_timeout=self.close_timeout,
        )

    async def messages(self) -> AsyncIterator[RawMessage]:
        ws = self._ws
        if ws is None:
            raise RuntimeError("WebSocket not connected")
        async for message in ws:
            yield message

    async def close(self) -> None:
        if self._ws is not None:
            ws, self._ws = self._ws, None
            await ws.close()


class NatsTransport(FeedTransport):
    """Weather feed from a NATS subject"""

    def __init__(
        self,
        config: Optional[NatsConfig] = None,
        subject: Optional[str] = None,
    ):
        self.subject = subject or Topics.all_weather_events()
        self._client = NatsClient(config, on_disconnect=self._on_disconnect)
        self._queue: asyncio.Queue = asyncio.Queue()

    @property
    def description(self) -> str:
        return f"{','.join(self._client.config.servers)} [{self.subject}]"

    async def open(self) -> None:
        self._queue = asyncio.Queue()
        await self._client.connect()
        await self._client.subscribe(self.subject, self._on_message)

    async def _on_message(self, msg: Msg) -> None:
        self._queue.put_nowait(msg.data)

    def _on_disconnect(self) -> None:
        # None ends the current messages() iteration
        self._queue.put_nowait(None)

    async def messages(self) -> AsyncIterator[RawMessage]:
        while True:
            data = await self._queue.get()
            if data is None:
                return
            yield data

    async def close(self) -> None:
        await self._client.close()
        self._queue.put_nowait(None)
