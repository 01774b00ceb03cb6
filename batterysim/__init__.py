"""Battery energy-storage simulation: electrochemical, thermal and cycle-life
models with schedule-driven PV/load dispatch."""

__version__ = "0.1.0"
