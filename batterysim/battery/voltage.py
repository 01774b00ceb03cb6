"""
Terminal-voltage models.

``DynamicVoltage`` fits an empirical discharge curve from four points read
off a manufacturer datasheet (fully charged, end of the exponential zone,
end of the nominal zone) and a reference C-rate, following

    Tremblay, O. & Dessaint, L.-A. (2009). Experimental validation of a
    battery dynamic model for EV applications. World Electric Vehicle
    Journal, 3(1).

``BasicVoltage`` holds a constant cell voltage and is used when no
empirical parameters are available.

Voltage models never hold a reference to the capacity model; each update
receives a read-only :class:`~batterysim.battery.capacity.ChargeSnapshot`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np

from batterysim.core.errors import ConfigurationError

from .capacity import ChargeSnapshot

# Coulombic efficiency assumed when deriving the internal resistance.
_ETA = 0.995


class VoltageModel(ABC):
    """Shared state for all voltage models.

    Parameters
    ----------
    num_cells : int
        Cells in series inside one battery.
    cell_voltage : float
        Initial cell voltage in V.
    cutoff_voltage : float
        Cell cut-off voltage in V.
    """

    def __init__(self, num_cells: int, cell_voltage: float, cutoff_voltage: float) -> None:
        if num_cells < 1:
            raise ConfigurationError(f"num_cells must be >= 1, got {num_cells}")
        if cell_voltage <= 0:
            raise ConfigurationError(f"cell_voltage must be positive, got {cell_voltage}")
        if cutoff_voltage < 0:
            raise ConfigurationError(f"cutoff_voltage must be >= 0, got {cutoff_voltage}")

        self.num_cells: int = int(num_cells)
        self.cell_voltage: float = float(cell_voltage)
        self.cutoff_voltage: float = float(cutoff_voltage)

    @property
    def battery_voltage(self) -> float:
        return self.num_cells * self.cell_voltage

    @abstractmethod
    def update_voltage(self, charge: ChargeSnapshot, dt: float) -> None:
        """Recompute the cell voltage from the capacity state after a step."""


class BasicVoltage(VoltageModel):
    """Constant-voltage stand-in with no dynamics."""

    def __init__(self, num_cells: int, cell_voltage: float) -> None:
        super().__init__(num_cells, cell_voltage, 0.0)

    def update_voltage(self, charge: ChargeSnapshot, dt: float) -> None:
        return None

    def __repr__(self) -> str:
        return f"BasicVoltage(num_cells={self.num_cells}, cell_voltage={self.cell_voltage})"


class DynamicVoltage(VoltageModel):
    """Empirical discharge-curve voltage model.

    Parameters
    ----------
    num_cells : int
        Cells in series inside one battery.
    nominal_voltage : float
        Nominal cell voltage in V (informational; the model starts at
        ``v_full``).
    v_full, v_exp, v_nom : float
        Cell voltage when fully charged, at the end of the exponential
        zone, and at the end of the nominal zone (V).
    q_full, q_exp, q_nom : float
        Cell charge removed at those three points (Ah).
    c_rate : float
        Discharge C-rate at which the curve was measured.
    cutoff_voltage : float
        Cell cut-off voltage in V.
    """

    def __init__(
        self,
        num_cells: int,
        nominal_voltage: float,
        v_full: float,
        v_exp: float,
        v_nom: float,
        q_full: float,
        q_exp: float,
        q_nom: float,
        c_rate: float,
        cutoff_voltage: float,
    ) -> None:
        super().__init__(num_cells, nominal_voltage, cutoff_voltage)
        for name, value in (
            ("q_full", q_full),
            ("q_exp", q_exp),
            ("q_nom", q_nom),
            ("c_rate", c_rate),
            ("v_full", v_full),
        ):
            if not np.isfinite(value) or value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")

        self.v_full: float = v_full
        self.v_exp: float = v_exp
        self.v_nom: float = v_nom
        self.q_full: float = q_full
        self.q_exp: float = q_exp
        self.q_nom: float = q_nom
        self.c_rate: float = c_rate

        # Assume fully charged, not the nominal value
        self.cell_voltage = v_full

        self._parameter_compute()

    def _parameter_compute(self) -> None:
        current = self.q_full * self.c_rate
        self.R: float = self.v_nom * (1.0 - _ETA) / (self.c_rate * self.q_nom)
        self.A: float = self.v_full - self.v_exp
        self.B: float = 3.0 / self.q_exp
        # Polarization voltage
        self.K: float = (
            (self.v_full - self.v_nom + self.A * (np.exp(-self.B * self.q_nom) - 1))
            * (self.q_full - self.q_nom)
            / self.q_nom
        )
        self.E0: float = self.v_full + self.K + self.R * current - self.A

    def cell_voltage_at(self, Q: float, current: float, q0: float) -> float:
        """Per-cell voltage for capacity *Q*, current *current* and charge *q0*."""
        return float(self.E0 - self.R * current - self.K * (1.0 - q0 / Q))

    def update_voltage(self, charge: ChargeSnapshot, dt: float) -> None:
        n = self.num_cells
        self.cell_voltage = self.cell_voltage_at(
            charge.qmax_i / n, charge.current / n, charge.q0 / n
        )

    def __repr__(self) -> str:
        return (
            f"DynamicVoltage(num_cells={self.num_cells}, E0={self.E0:.4f}, "
            f"R={self.R:.5f}, K={self.K:.5f}, cell_voltage={self.cell_voltage:.4f})"
        )
