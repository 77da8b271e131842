"""
Weather Pipeline - Typed Message Catalog

All readings and rollups flowing through the system use strongly-typed schemas.
"""

from schemas.weather_data import HourlyBar, WeatherReading, parse_timestamp

__all__ = [
    "HourlyBar",
    "WeatherReading",
    "parse_timestamp",
]
