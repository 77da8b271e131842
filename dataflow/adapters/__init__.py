"""
Feed Adapters

Provides connection wrappers for the inbound weather feed.
"""

from dataflow.adapters.feed_transport import FeedTransport, NatsTransport, WebSocketTransport
from dataflow.adapters.nats_client import NatsClient, NatsConfig, Topics

__all__ = [
    "FeedTransport",
    "NatsClient",
    "NatsConfig",
    "NatsTransport",
    "Topics",
    "WebSocketTransport",
]
