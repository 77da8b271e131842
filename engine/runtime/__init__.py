"""
Runtime Module

Pipeline wiring and lifecycle.
"""

from .coordinator import PipelineCoordinator

__all__ = [
    "PipelineCoordinator",
]
