"""
Config Module

YAML and environment configuration loading and validation.
"""

from .loader import (
    ConfigLoader,
    DatabaseConfig,
    FeedConfig,
    IngestionConfig,
    PipelineConfig,
    SchedulerConfig,
)

__all__ = [
    "ConfigLoader",
    "DatabaseConfig",
    "FeedConfig",
    "IngestionConfig",
    "PipelineConfig",
    "SchedulerConfig",
]
