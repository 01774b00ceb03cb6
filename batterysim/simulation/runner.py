"""Time-series battery simulation.

``SimulationRunner`` steps a :class:`ManualDispatch` through PV and load
series one step at a time, collects the per-step energy flows and battery
state, closes the battery session once at the end, and summarises the run.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import numpy as np
from numpy.typing import ArrayLike

from batterysim.battery.battery_system import BatteryBank
from batterysim.config import settings
from batterysim.core.errors import ConfigurationError
from batterysim.core.logging import new_run_id
from batterysim.dispatch.manual import ManualDispatch

logger = logging.getLogger(__name__)


class SimulationRunner:
    """Drive a battery bank through a PV/load time series.

    Parameters
    ----------
    bank : BatteryBank
        The bank under simulation; it must not have been finished.
    dispatch : ManualDispatch
        Dispatch strategy bound to *bank*.
    pv_kwh : array-like, shape (n,)
        PV energy per step in kWh.
    load_kwh : array-like, shape (n,)
        Load energy per step in kWh.
    start_hour : int
        Hour-of-year index of the first step.  Default 0.
    progress_callback : callable or None
        Optional ``callback(step: str, fraction: float)`` invoked every
        ``settings.progress_interval_hours`` simulated hours and at the
        end.  *fraction* ranges from 0.0 to 1.0.
    """

    def __init__(
        self,
        bank: BatteryBank,
        dispatch: ManualDispatch,
        pv_kwh: ArrayLike,
        load_kwh: ArrayLike,
        start_hour: int = 0,
        progress_callback: Callable[[str, float], None] | None = None,
    ) -> None:
        self.bank = bank
        self.dispatch = dispatch
        self.pv_kwh = np.asarray(pv_kwh, dtype=np.float64)
        self.load_kwh = np.asarray(load_kwh, dtype=np.float64)
        self.start_hour = int(start_hour)
        self._progress = progress_callback

        if dispatch.bank is not bank:
            raise ConfigurationError("dispatch must be bound to the simulated bank")
        if self.pv_kwh.ndim != 1 or self.load_kwh.ndim != 1:
            raise ConfigurationError("pv_kwh and load_kwh must be one-dimensional")
        if self.pv_kwh.shape != self.load_kwh.shape:
            raise ConfigurationError(
                f"pv_kwh and load_kwh must have equal length, "
                f"got {self.pv_kwh.shape[0]} and {self.load_kwh.shape[0]}"
            )
        if not (np.all(np.isfinite(self.pv_kwh)) and np.all(np.isfinite(self.load_kwh))):
            raise ConfigurationError("pv_kwh and load_kwh must be finite")
        if np.any(self.pv_kwh < 0) or np.any(self.load_kwh < 0):
            raise ConfigurationError("pv_kwh and load_kwh must be non-negative")
        if self.start_hour < 0:
            raise ConfigurationError(f"start_hour must be >= 0, got {start_hour}")

    # ------------------------------------------------------------------
    # Progress reporting
    # ------------------------------------------------------------------

    def _report(self, step: str, fraction: float) -> None:
        """Fire the progress callback if one was provided."""
        if self._progress is not None:
            try:
                self._progress(step, fraction)
            except Exception:
                logger.warning("Progress callback failed at %s", step, exc_info=True)
        logger.debug("Simulation step: %s (%.0f %%)", step, fraction * 100)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self) -> dict[str, Any]:
        """Run every step, finish the battery session and return the results."""
        run_id = new_run_id()
        n = self.pv_kwh.shape[0]
        dt = self.dispatch.dt
        started = time.perf_counter()

        logger.info("Simulation %s started: %d steps of %.3g h", run_id, n, dt)

        ts_battery = np.zeros(n, dtype=np.float64)
        ts_grid = np.zeros(n, dtype=np.float64)
        ts_pv_to_load = np.zeros(n, dtype=np.float64)
        ts_battery_to_load = np.zeros(n, dtype=np.float64)
        ts_grid_to_load = np.zeros(n, dtype=np.float64)
        ts_soc = np.zeros(n, dtype=np.float64)
        ts_dod = np.zeros(n, dtype=np.float64)
        ts_temperature = np.zeros(n, dtype=np.float64)
        ts_cycles = np.zeros(n, dtype=np.int64)
        ts_capacity = np.zeros(n, dtype=np.float64)
        ts_clamped = np.zeros(n, dtype=bool)

        progress_interval = max(1, int(round(settings.progress_interval_hours / dt)))

        for i in range(n):
            # The hour index only advances once per whole hour for sub-hourly steps.
            hour = self.start_hour + int(i * dt)
            record = self.dispatch.dispatch(hour, float(self.pv_kwh[i]), float(self.load_kwh[i]))
            step = record.step

            ts_battery[i] = record.energy_to_from_battery
            ts_grid[i] = record.energy_to_from_grid
            ts_pv_to_load[i] = record.pv_to_load
            ts_battery_to_load[i] = record.battery_to_load
            ts_grid_to_load[i] = record.grid_to_load
            ts_soc[i] = step.soc
            ts_dod[i] = step.dod
            ts_temperature[i] = step.temperature
            ts_cycles[i] = step.cycles
            ts_capacity[i] = step.capacity_percent
            ts_clamped[i] = step.clamped

            if (i + 1) % progress_interval == 0 and i + 1 < n:
                logger.info(
                    "Simulated %d/%d steps",
                    i + 1,
                    n,
                    extra={"hour": hour, "soc": step.soc, "cycles": step.cycles},
                )
                self._report("Dispatching", (i + 1) / n)

        self.bank.finish()
        lifetime = self.bank.battery.lifetime

        results: dict[str, Any] = {
            # Time-series.
            "battery_kwh": ts_battery,
            "grid_kwh": ts_grid,
            "pv_to_load_kwh": ts_pv_to_load,
            "battery_to_load_kwh": ts_battery_to_load,
            "grid_to_load_kwh": ts_grid_to_load,
            "soc": ts_soc,
            "dod": ts_dod,
            "temperature_k": ts_temperature,
            "cycles": ts_cycles,
            "capacity_percent": ts_capacity,
            "clamped": ts_clamped,
            # Summary scalars.
            "annual_load_kwh": float(np.sum(self.load_kwh)),
            "total_pv_to_load_kwh": float(np.sum(ts_pv_to_load)),
            "battery_discharge_kwh": float(np.sum(np.maximum(ts_battery, 0.0))),
            "battery_charge_kwh": float(-np.sum(np.minimum(ts_battery, 0.0))),
            "grid_import_kwh": float(-np.sum(np.minimum(ts_grid, 0.0))),
            "grid_export_kwh": float(np.sum(np.maximum(ts_grid, 0.0))),
            "final_cycles": lifetime.cycles,
            "final_capacity_percent": lifetime.capacity_percent,
            "clamped_steps": int(np.count_nonzero(ts_clamped)),
        }

        duration_ms = (time.perf_counter() - started) * 1000.0
        logger.info(
            "Simulation %s complete: %d cycles, capacity %.2f %%, %d clamped steps",
            run_id,
            results["final_cycles"],
            results["final_capacity_percent"],
            results["clamped_steps"],
            extra={
                "cycles": results["final_cycles"],
                "capacity_percent": results["final_capacity_percent"],
                "duration_ms": round(duration_ms, 1),
            },
        )
        self._report("Simulation complete", 1.0)
        return results
