"""
Ingestion

Feed client and in-memory buffering in front of the weather store.
"""

from dataflow.ingestion.buffer import IngestionBuffer
from dataflow.ingestion.feed_client import WeatherFeedClient

__all__ = ["IngestionBuffer", "WeatherFeedClient"]
