"""
Weather Pipeline - Main Entry Point

Starts feed ingestion and the hourly aggregation scheduler.

Environment Variables:
    CONFIG_FILE: Optional YAML config path
    STATS_INTERVAL: Seconds between metrics log lines (default: 60)
    plus the overrides listed in engine.config.loader.ENV_OVERRIDES
"""

import asyncio
import logging
import os
from pathlib import Path

from engine.config.loader import ConfigLoader
from engine.runtime.coordinator import PipelineCoordinator

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def main():
    """Main entry point"""
    config_file = os.getenv("CONFIG_FILE")
    stats_interval = float(os.getenv("STATS_INTERVAL", "60"))

    config = ConfigLoader(Path(config_file) if config_file else None).load()
    coordinator = PipelineCoordinator(config)

    logger.info("=" * 60)
    logger.info("Weather Pipeline Starting")
    logger.info("=" * 60)

    try:
        connected = await coordinator.start()
        if not connected:
            logger.warning("Weather feed not connected; retrying in background")

        logger.info("Pipeline running. Press Ctrl+C to stop.")
        while True:
            await asyncio.sleep(stats_interval)
            metrics = coordinator.get_metrics()
            logger.info(
                f"Stats: {metrics['messages_received']} received, "
                f"{metrics['readings_written']} written, "
                f"{metrics['readings_pending']} pending, "
                f"{metrics['readings_lost']} lost, "
                f"{metrics['aggregation_passes']} aggregation passes"
            )

    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Shutting down...")
    finally:
        await coordinator.stop()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
