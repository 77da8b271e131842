"""
Weather Stream Simulator

Development feed that emits mock weather readings for a handful of cities.

Environment Variables:
    FEED_TRANSPORT: "websocket" (default) or "nats"
    HOST / PORT: WebSocket bind address (default: 0.0.0.0:8765)
    EVENTS_PER_SECOND: Emission rate (default: 20)
    NATS_SERVERS: NATS server URLs when publishing to NATS
"""

import asyncio
import logging
import math
import os
import random
from datetime import datetime, timezone

import websockets

from dataflow.adapters.nats_client import NatsClient, NatsConfig
from schemas.weather_data import WeatherReading

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# base temperature, daily range (C), base wind speed (km/h)
CITY_CLIMATE = {
    "Berlin": (15, 25, 12),
    "NewYork": (18, 30, 10),
    "Tokyo": (20, 28, 8),
    "SaoPaulo": (22, 15, 6),
    "CapeTown": (17, 20, 15),
}


def mock_reading(city: str, now: datetime) -> WeatherReading:
    """Build one reading with a day/night temperature curve"""
    base_temp, temp_range, wind_base = CITY_CLIMATE.get(city, CITY_CLIMATE["Berlin"])

    # Peak at 18:00, minimum at 06:00
    time_of_day = 0.5 + 0.5 * math.sin((now.hour - 6) * math.pi / 12)
    noise = 0.8 + 0.4 * random.random()

    return WeatherReading(
        city=city,
        timestamp=now.replace(second=0, microsecond=0),
        temperature=round(base_temp + temp_range * time_of_day * noise, 1),
        windspeed=round(wind_base * (0.5 + 0.8 * random.random()), 1),
        winddirection=random.randrange(360),
    )


def next_reading() -> WeatherReading:
    city = random.choice(list(CITY_CLIMATE))
    return mock_reading(city, datetime.now(timezone.utc))


async def serve_websocket(host: str, port: int, interval: float) -> None:
    async def handler(websocket):
        logger.info("Client connected")
        try:
            while True:
                await websocket.send(next_reading().to_json())
                await asyncio.sleep(interval)
        except websockets.ConnectionClosed:
            logger.info("Client disconnected")

    async with websockets.serve(handler, host, port):
        logger.info(f"Weather WebSocket server running at ws://{host}:{port}")
        await asyncio.Future()


async def publish_nats(interval: float) -> None:
    client = NatsClient(NatsConfig.from_env())
    await client.connect()
    try:
        while True:
            await client.publish_reading(next_reading())
            await asyncio.sleep(interval)
    finally:
        await client.close()


async def main():
    transport = os.getenv("FEED_TRANSPORT", "websocket")
    events_per_second = float(os.getenv("EVENTS_PER_SECOND", "20"))
    interval = 1.0 / events_per_second

    logger.info(f"EVENTS_PER_SECOND: {events_per_second:g}")

    if transport == "nats":
        await publish_nats(interval)
    else:
        host = os.getenv("HOST", "0.0.0.0")
        port = int(os.getenv("PORT", "8765"))
        await serve_websocket(host, port, interval)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Simulator stopped")
