"""Manual (schedule-driven) battery dispatch.

Each hour of the year is mapped to a dispatch profile through a
12-month x 24-hour schedule.  A profile is a set of three permissions
(charge from PV, discharge to load, charge from grid) that decide how
the PV/load balance is routed through the battery bank:

**Surplus (PV > load):** charge with the whole surplus, topped up from the
grid to the fill amount when grid charging is allowed; with only grid
charging allowed, charge exactly the fill amount.

**Deficit (load >= PV):** discharge the shortfall; with only grid charging
allowed, charge the fill amount from the grid.

The battery may clamp the request, so the realised energy is recomputed
from the battery current after each step.  Served load is allocated to
PV first, then the battery, then the grid.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
from pydantic import ValidationError

from batterysim.battery.battery_system import BatteryBank, StepResult
from batterysim.core.errors import ConfigurationError
from batterysim.schemas.battery import DispatchConfig

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

HOURS_PER_YEAR = 8760

# Days per month (non-leap year).
MONTH_LENGTHS = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)

# Cumulative hours at the start of each month (non-leap year).
_MONTH_START_HOURS = np.concatenate(([0], np.cumsum(MONTH_LENGTHS)[:-1] * 24)).astype(np.int64)


def month_and_hour(hour_of_year: int) -> tuple[int, int]:
    """Convert an hour index to (month, hour_of_day).

    Indices past the end of the year wrap, so multi-year runs can pass a
    running hour counter.

    Returns
    -------
    month : int
        Month of year, 1 -- 12.
    hour_of_day : int
        Hour of day, 1 -- 24.
    """
    h = int(hour_of_year) % HOURS_PER_YEAR
    month = int(np.searchsorted(_MONTH_START_HOURS, h, side="right"))
    hour_of_day = (h + 1) - 24 * (h // 24)
    return month, hour_of_day


@dataclass(frozen=True)
class DispatchRecord:
    """Energy flows (kWh) of one dispatch step.

    ``energy_to_from_battery`` is positive when discharging and
    ``energy_to_from_grid`` positive when exporting.  The three
    ``*_to_load`` flows are non-negative and sum to the load up to
    floating-point rounding (a few ulp of the load).  ``grid_to_load`` is
    exactly zero whenever PV and battery cover the load.
    """

    month: int
    hour: int
    profile: int
    commanded_battery_kwh: float
    energy_to_from_battery: float
    energy_to_from_grid: float
    pv_to_load: float
    battery_to_load: float
    grid_to_load: float
    step: StepResult


class ManualDispatch:
    """Schedule-driven dispatch of a battery bank against PV and load.

    Parameters
    ----------
    bank : BatteryBank
        The bank to dispatch.  Not owned; the caller keeps it alive.
    schedule : array-like of int, shape (12, 24)
        Profile number (1-based) for every month and hour of day.
    can_charge, can_discharge, can_grid_charge : sequence of bool
        Permissions per profile; entry ``p - 1`` belongs to profile ``p``.
    dt : float
        Time step in hours.  Default 1.0.
    """

    def __init__(
        self,
        bank: BatteryBank,
        schedule: Sequence[Sequence[int]] | np.ndarray,
        can_charge: Sequence[bool],
        can_discharge: Sequence[bool],
        can_grid_charge: Sequence[bool],
        dt: float = 1.0,
    ) -> None:
        sched = np.asarray(schedule)
        if sched.shape != (12, 24):
            raise ConfigurationError(f"schedule must have shape (12, 24), got {sched.shape}")
        if not np.issubdtype(sched.dtype, np.integer):
            if not np.all(np.mod(sched, 1) == 0):
                raise ConfigurationError("schedule entries must be whole profile numbers")
            sched = sched.astype(np.int64)
        if not (len(can_charge) == len(can_discharge) == len(can_grid_charge)):
            raise ConfigurationError(
                "can_charge, can_discharge and can_grid_charge must have equal length"
            )
        if len(can_charge) == 0:
            raise ConfigurationError("at least one dispatch profile is required")
        if dt <= 0:
            raise ConfigurationError(f"dt must be positive, got {dt}")

        self.bank = bank
        self.schedule: np.ndarray = sched
        self.can_charge: tuple[bool, ...] = tuple(bool(v) for v in can_charge)
        self.can_discharge: tuple[bool, ...] = tuple(bool(v) for v in can_discharge)
        self.can_grid_charge: tuple[bool, ...] = tuple(bool(v) for v in can_grid_charge)
        self.dt: float = dt

    @classmethod
    def from_config(cls, bank: BatteryBank, config: DispatchConfig | dict) -> ManualDispatch:
        if not isinstance(config, DispatchConfig):
            try:
                config = DispatchConfig.model_validate(config)
            except ValidationError as exc:
                raise ConfigurationError(f"Invalid dispatch configuration: {exc}") from exc
        return cls(
            bank,
            config.schedule,
            config.can_charge,
            config.can_discharge,
            config.can_grid_charge,
            dt=config.dt_hours,
        )

    @property
    def num_profiles(self) -> int:
        return len(self.can_charge)

    def energy_needed_to_fill(self) -> float:
        """Energy (kWh) to bring the bank from its present charge to full."""
        return self.bank.bank_charge_needed() * self.bank.battery.battery_voltage / 1000.0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def dispatch(self, hour_of_year: int, e_pv: float, e_load: float) -> DispatchRecord:
        """Dispatch one step of *e_pv* PV energy against *e_load* load (kWh)."""
        month, hour = month_and_hour(hour_of_year)
        profile = int(self.schedule[month - 1, hour - 1]) - 1

        can_charge = self.can_charge[profile]
        can_discharge = self.can_discharge[profile]
        can_grid_charge = self.can_grid_charge[profile]

        fill = self.energy_needed_to_fill()
        bank_voltage = self.bank.bank_voltage

        e_batt = 0.0
        if e_pv > e_load:
            if can_charge:
                e_batt = -(e_pv - e_load)
                if e_pv - e_load < fill and can_grid_charge:
                    e_batt = -fill
            elif can_grid_charge:
                e_batt = -fill
        else:
            if can_discharge:
                e_batt = e_load - e_pv
            elif can_grid_charge:
                e_batt = -fill
        commanded = e_batt

        step = self.bank.run(1000.0 * e_batt / self.dt)

        # Realised energy of the whole bank after physical limits
        e_batt = self.bank.bank_current * bank_voltage * self.dt / 1000.0
        e_grid = e_pv + e_batt - e_load

        if e_pv > e_load:
            pv_to_load = e_load
            battery_to_load = 0.0
            grid_to_load = 0.0
        else:
            shortfall = e_load - e_pv
            pv_to_load = e_pv
            battery_to_load = min(max(e_batt, 0.0), shortfall)
            grid_to_load = shortfall - battery_to_load

        return DispatchRecord(
            month=month,
            hour=hour,
            profile=profile + 1,
            commanded_battery_kwh=commanded,
            energy_to_from_battery=e_batt,
            energy_to_from_grid=e_grid,
            pv_to_load=pv_to_load,
            battery_to_load=battery_to_load,
            grid_to_load=grid_to_load,
            step=step,
        )

    def __repr__(self) -> str:
        return f"ManualDispatch(profiles={self.num_profiles}, dt={self.dt}, bank={self.bank!r})"
