"""Time-series simulation driver."""

from .runner import SimulationRunner

__all__ = ["SimulationRunner"]
