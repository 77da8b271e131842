"""
Persistence Layer

Durable storage for raw readings and hourly bars.
"""

from dataflow.persistence.memory import InMemoryWeatherStore
from dataflow.persistence.postgres import PostgresWeatherStore
from dataflow.persistence.store import WeatherStore

__all__ = ["InMemoryWeatherStore", "PostgresWeatherStore", "WeatherStore"]
