"""
Battery engine module.

Provides the Kinetic Battery Model and coulomb-counting capacity models,
empirical terminal-voltage models, online rainflow cycle counting with
capacity-fade lookup, a lumped thermal model, and the battery / bank
orchestration that steps them together.
"""

from .capacity import (
    CapacityModel,
    ChargeDirection,
    ChargeSnapshot,
    KiBaMCapacity,
    LithiumIonCapacity,
)
from .voltage import BasicVoltage, DynamicVoltage, VoltageModel
from .lifetime import LifetimeModel, LifetimeTable
from .thermal import ThermalModel
from .losses import LossesModel
from .battery_system import Battery, BatteryBank, StepResult, build_battery

__all__ = [
    "CapacityModel",
    "ChargeDirection",
    "ChargeSnapshot",
    "KiBaMCapacity",
    "LithiumIonCapacity",
    "VoltageModel",
    "BasicVoltage",
    "DynamicVoltage",
    "LifetimeModel",
    "LifetimeTable",
    "ThermalModel",
    "LossesModel",
    "Battery",
    "BatteryBank",
    "StepResult",
    "build_battery",
]
