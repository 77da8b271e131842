"""
Hourly Bar Aggregation

Rolls raw temperature readings up into hourly OHLC bars and persists them.
"""

from dataflow.candle_aggregation.aggregator import HourlyBarBuilder, build_hourly_bars, hour_start
from dataflow.candle_aggregation.service import AggregateService

__all__ = ["AggregateService", "HourlyBarBuilder", "build_hourly_bars", "hour_start"]
