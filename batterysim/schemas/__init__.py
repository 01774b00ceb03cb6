"""Pydantic configuration schemas for batteries and dispatch."""

from .battery import (
    BasicVoltageConfig,
    BatteryConfig,
    DispatchConfig,
    DynamicVoltageConfig,
    KiBaMCapacityConfig,
    LithiumIonCapacityConfig,
    ThermalConfig,
)

__all__ = [
    "BasicVoltageConfig",
    "BatteryConfig",
    "DispatchConfig",
    "DynamicVoltageConfig",
    "KiBaMCapacityConfig",
    "LithiumIonCapacityConfig",
    "ThermalConfig",
]
