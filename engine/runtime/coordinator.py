"""
Pipeline Coordinator

Builds and owns the pipeline components and drives their lifecycle.
"""

import logging
from typing import Any, Dict, Optional

from dataflow.adapters.feed_transport import FeedTransport, NatsTransport, WebSocketTransport
from dataflow.adapters.nats_client import NatsConfig
from dataflow.candle_aggregation.service import AggregateService
from dataflow.ingestion.buffer import IngestionBuffer
from dataflow.ingestion.feed_client import WeatherFeedClient
from dataflow.persistence.memory import InMemoryWeatherStore
from dataflow.persistence.postgres import PostgresWeatherStore
from dataflow.persistence.store import WeatherStore
from engine.config.loader import DatabaseConfig, FeedConfig, PipelineConfig
from engine.scheduler.aggregation import AggregationScheduler

logger = logging.getLogger(__name__)


def build_store(config: DatabaseConfig) -> WeatherStore:
    """Create the configured weather store backend"""
    if config.backend == "memory":
        return InMemoryWeatherStore()
    return PostgresWeatherStore(
        config.url,
        min_size=config.min_size,
        max_size=config.max_size,
        command_timeout=config.command_timeout,
    )


def build_transport(config: FeedConfig) -> FeedTransport:
    """Create the configured feed transport"""
    if config.transport == "nats":
        return NatsTransport(NatsConfig(servers=config.nats_servers), subject=config.nats_subject)
    return WebSocketTransport(config.url)


class PipelineCoordinator:
    """
    Wires store -> buffer -> feed client, and store -> aggregate service -> scheduler.

    Example usage:
        coordinator = PipelineCoordinator(ConfigLoader().load())
        await coordinator.start()
        ...
        await coordinator.scheduler.aggregate_city("Berlin")
        ...
        await coordinator.stop()
    """

    def __init__(
        self,
        config: PipelineConfig,
        store: Optional[WeatherStore] = None,
        transport: Optional[FeedTransport] = None,
    ):
        """
        Initialize components from config.

        Args:
            config: Pipeline configuration
            store: Store override (defaults to the configured backend)
            transport: Feed transport override (defaults to the configured transport)
        """
        self.config = config

        self.store = store or build_store(config.database)
        self.buffer = IngestionBuffer(self.store, flush_threshold=config.ingestion.flush_threshold)
        self.feed_client = WeatherFeedClient(
            transport or build_transport(config.feed),
            self.buffer,
            reconnect_delay=config.feed.reconnect_delay_seconds,
            log_throughput=config.ingestion.log_throughput,
            throughput_interval=config.ingestion.throughput_interval_seconds,
        )
        self.aggregate_service = AggregateService(self.store)
        self.scheduler = AggregationScheduler(self.aggregate_service, config.scheduler)

        logger.info(
            f"Pipeline initialized: store={type(self.store).__name__}, "
            f"flush_threshold={self.buffer.flush_threshold}"
        )

    async def start(self) -> bool:
        """
        Start the pipeline.

        Returns:
            True if the feed connected; False if it did not (the client
            keeps retrying in the background)
        """
        await self.store.connect()
        await self.store.ensure_schema()

        connected = True
        try:
            await self.feed_client.connect()
        except Exception as e:
            logger.warning(f"Starting without weather feed connection: {e}")
            connected = False

        self.scheduler.start()
        return connected

    async def stop(self) -> None:
        """Stop the scheduler, disconnect the feed (flushing the buffer), close the store"""
        logger.info("Stopping pipeline...")

        if self.scheduler.is_running:
            self.scheduler.stop()

        await self.feed_client.disconnect()
        await self.buffer.join()
        await self.scheduler.join()
        await self.store.close()

        logger.info("Pipeline stopped")

    def get_metrics(self) -> Dict[str, Any]:
        """
        Get pipeline metrics.

        Returns:
            Dictionary with pipeline statistics
        """
        last = self.scheduler.last_result
        return {
            "feed_connected": self.feed_client.is_connected,
            "messages_received": self.feed_client.messages_received,
            "messages_dropped": self.feed_client.messages_dropped,
            "readings_pending": self.buffer.pending_count(),
            "readings_written": self.buffer.readings_written,
            "readings_lost": self.buffer.readings_lost,
            "scheduler_running": self.scheduler.is_running,
            "aggregation_passes": self.scheduler.passes_completed,
            "last_pass_failures": last.failure_count if last else 0,
        }
