"""
Dataflow Layer

Event I/O layer for the weather pipeline. Contains:
- adapters: feed transports (WebSocket, NATS)
- ingestion: feed client and per-city ingestion buffer
- persistence: PostgreSQL and in-memory weather stores
- candle_aggregation: hourly OHLC rollups
"""
