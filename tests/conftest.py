"""Shared test fixtures for batterysim engine tests."""

from __future__ import annotations

import logging
from typing import Callable

import numpy as np
import pytest

from batterysim.battery import (
    BasicVoltage,
    Battery,
    BatteryBank,
    KiBaMCapacity,
    LifetimeModel,
    LithiumIonCapacity,
    ThermalModel,
)


# ======================================================================
# Model input tables
# ======================================================================

@pytest.fixture
def lifetime_table() -> list[list[float]]:
    """Two fade curves: shallow (20 % DOD) and deep (80 % DOD) cycling."""
    return [
        [20.0, 0.0, 100.0],
        [20.0, 5000.0, 80.0],
        [20.0, 10000.0, 60.0],
        [80.0, 0.0, 100.0],
        [80.0, 1000.0, 80.0],
        [80.0, 2000.0, 60.0],
    ]


@pytest.fixture
def capacity_vs_temperature() -> list[list[float]]:
    """Retention (%) vs temperature (degC); flat at 100 % from 25 to 40 degC."""
    return [[-10.0, 60.0], [0.0, 80.0], [25.0, 100.0], [40.0, 100.0]]


@pytest.fixture
def make_thermal(capacity_vs_temperature) -> Callable[..., ThermalModel]:
    def _make(
        room_temperature_c: float = 25.0,
        resistance: float = 0.001,
        method: str = "trapezoidal",
    ) -> ThermalModel:
        return ThermalModel(
            mass=507.0,
            length=0.58,
            width=0.58,
            height=0.58,
            cp=1004.0,
            h=20.0,
            room_temperature_c=room_temperature_c,
            resistance=resistance,
            capacity_vs_temperature=capacity_vs_temperature,
            method=method,
        )

    return _make


# ======================================================================
# Battery fixtures
# ======================================================================

@pytest.fixture
def make_battery(lifetime_table, make_thermal) -> Callable[..., Battery]:
    """Coulomb-counting battery with a constant terminal voltage.

    Defaults give a 100 Ah, 10 V battery: 100 W moves exactly 10 Ah per
    hourly step.
    """

    def _make(q: float = 100.0, cell_voltage: float = 10.0, num_cells: int = 1, dt: float = 1.0) -> Battery:
        return Battery(
            LithiumIonCapacity(q),
            BasicVoltage(num_cells=num_cells, cell_voltage=cell_voltage),
            LifetimeModel(lifetime_table),
            make_thermal(),
            dt=dt,
        )

    return _make


@pytest.fixture
def kibam_params() -> dict[str, float]:
    """Lead-acid discharge capacities at 20 h, 10 h and 1 h."""
    return {"q20": 100.0, "t1": 1.0, "q_t1": 58.12, "q10": 93.2}


@pytest.fixture
def kibam_battery(kibam_params, lifetime_table, make_thermal) -> Battery:
    """12 V lead-acid battery (6 cells at 2 V) on the Kinetic Battery Model."""
    return Battery(
        KiBaMCapacity(**kibam_params),
        BasicVoltage(num_cells=6, cell_voltage=2.0),
        LifetimeModel(lifetime_table),
        make_thermal(),
    )


@pytest.fixture
def large_bank(make_battery) -> BatteryBank:
    """100 kWh bank (1000 Ah at 100 V) for dispatch tests."""
    return BatteryBank(make_battery(q=1000.0, cell_voltage=100.0))


@pytest.fixture
def single_profile_schedule() -> np.ndarray:
    return np.ones((12, 24), dtype=np.int64)


@pytest.fixture
def sample_battery_config(lifetime_table, capacity_vs_temperature) -> dict:
    """Lithium-ion battery configuration as accepted by ``build_battery``."""
    return {
        "capacity": {"chemistry": "lithium_ion", "q_nominal": 100.0},
        "voltage": {"type": "basic", "num_cells": 4, "nominal_voltage": 3.2},
        "lifetime_table": lifetime_table,
        "thermal": {
            "room_temperature_c": 25.0,
            "capacity_vs_temperature": capacity_vs_temperature,
        },
        "num_series": 2,
        "num_parallel": 3,
        "dt_hours": 1.0,
    }


# ======================================================================
# Logging isolation
# ======================================================================

@pytest.fixture
def restore_root_logger():
    """Undo handler and level changes made by ``setup_logging``."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    battery_level = logging.getLogger("batterysim.battery").level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("batterysim.battery").setLevel(battery_level)
