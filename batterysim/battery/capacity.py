"""
Charge-capacity models: Kinetic Battery Model (KiBaM) and coulomb counting.

Both models track the charge held by a single battery (amp-hours) and its
state of charge under an applied power and time step.  Callers only use
the :class:`CapacityModel` interface; the concrete variant is chosen when
the battery is built.

KiBaM splits capacity into two wells:
  - Available charge well (q1): directly supplies the load.
  - Bound charge well (q2): feeds into q1 via a rate-limited conductance.

The rate constant ``k`` and capacity ratio ``c`` are fitted once from
manufacturer 20-hour / 10-hour / t1-hour discharge capacities.

Reference:
    Manwell, J.F. & McGowan, J.G. (1993). Lead acid battery storage model
    for hybrid energy systems. Solar Energy, 50(5), 399-405.

Sign convention: current and power are positive when discharging and
negative when charging.
"""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from batterysim.core.errors import ConfigurationError

if TYPE_CHECKING:
    from .voltage import VoltageModel

logger = logging.getLogger(__name__)

# KiBaM parameter scan: k in [0, 5) with step 0.001.
_K_SCAN_STEPS = 5000
_K_SCAN_STEP = 0.001


class ChargeDirection(enum.Enum):
    CHARGE = "charge"
    DISCHARGE = "discharge"
    NONE = "none"


@dataclass(frozen=True)
class ChargeSnapshot:
    """Read-only view of a capacity model handed to the voltage model."""

    q0: float
    qmax: float
    qmax_i: float
    current: float
    power: float
    soc: float
    dod: float


class CapacityModel(ABC):
    """Shared state and interface for all capacity models.

    Parameters
    ----------
    q : float
        Initial (and nominal maximum) charge in Ah.
    """

    def __init__(self, q: float) -> None:
        if not np.isfinite(q) or q <= 0:
            raise ConfigurationError(f"capacity must be positive, got {q}")

        self.q0: float = q
        self.qmax: float = q
        self.qmax0: float = q
        self.current: float = 0.0
        self.power: float = 0.0

        # Battery starts full
        self.soc: float = 100.0
        self.dod: float = 0.0
        self.prev_dod: float = 0.0

        self.prev_charge_direction: ChargeDirection = ChargeDirection.DISCHARGE
        self.charge_changed: bool = False
        self.clamped: bool = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @abstractmethod
    def update_capacity(
        self, power: float, voltage: VoltageModel, dt: float, cycles: int = 0
    ) -> None:
        """Advance the charge state by one time step of *dt* hours at *power* W."""

    @abstractmethod
    def update_capacity_for_thermal(self, capacity_percent: float) -> None:
        """Derate the present charge by a temperature retention percentage."""

    @abstractmethod
    def update_capacity_for_lifetime(self, capacity_percent: float) -> None:
        """Derate the present charge and maximum capacity by cycle fade."""

    @property
    @abstractmethod
    def q1(self) -> float:
        """Charge immediately available to the load (Ah)."""

    @property
    @abstractmethod
    def qmax_i(self) -> float:
        """Maximum deliverable capacity at the present current (Ah)."""

    def snapshot(self) -> ChargeSnapshot:
        return ChargeSnapshot(
            q0=self.q0,
            qmax=self.qmax,
            qmax_i=self.qmax_i,
            current=self.current,
            power=self.power,
            soc=self.soc,
            dod=self.dod,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _update_soc(self) -> None:
        self.soc = float(np.clip(100.0 * self.q0 / self.qmax, 0.0, 100.0))
        self.dod = 100.0 - self.soc

    def _check_charge_change(self) -> None:
        """Flag a reversal between charging and discharging.

        Idle steps (zero current) never count as a reversal and do not
        overwrite the recorded direction.
        """
        if self.current < 0:
            direction = ChargeDirection.CHARGE
        elif self.current > 0:
            direction = ChargeDirection.DISCHARGE
        else:
            direction = ChargeDirection.NONE

        self.charge_changed = False
        if (
            direction is not self.prev_charge_direction
            and direction is not ChargeDirection.NONE
            and self.prev_charge_direction is not ChargeDirection.NONE
        ):
            self.charge_changed = True
            self.prev_charge_direction = direction


class KiBaMCapacity(CapacityModel):
    """Kinetic Battery Model with two-well capacity representation.

    Parameters
    ----------
    q20 : float
        Capacity (Ah) delivered by a 20-hour discharge.
    t1 : float
        Duration (h) of the short reference discharge.
    q_t1 : float
        Capacity (Ah) delivered by the *t1*-hour discharge.  Not to be
        confused with :attr:`q1`, the charge in the available well.
    q10 : float
        Capacity (Ah) delivered by a 10-hour discharge.

    The battery is assumed fully charged at construction (``q0 = q20``),
    with the initial current taken as the 20-hour discharge current.
    """

    def __init__(self, q20: float, t1: float, q_t1: float, q10: float) -> None:
        super().__init__(q20)
        for name, value in (("t1", t1), ("q_t1", q_t1), ("q10", q10)):
            if not np.isfinite(value) or value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")

        self.q20: float = q20
        self.q10: float = q10
        self.q_t1: float = q_t1
        self.t1: float = t1
        self.t2: float = 10.0
        self._i20: float = q20 / 20.0

        self.k, self.c = self._fit_parameters(q_t1 / q20, q_t1 / q10, t1, self.t2)
        self.qmax = self._qmax_compute()
        self.qmax0 = self.qmax

        self._qmax_i: float = self._qmax_of_i(self.q0 / self._i20)
        self.q0 = q20

        # Split the initial charge between the two wells.
        self._q1: float = self.q0 * self.c
        self._q2: float = self.q0 - self._q1

    # ------------------------------------------------------------------
    # Parameter fit
    # ------------------------------------------------------------------

    @staticmethod
    def c_compute(
        F: float, t1: float, t2: float, k: float | np.ndarray
    ) -> float | np.ndarray:
        """Capacity ratio implied by the capacity ratio *F* = q(t1) / q(t2)."""
        num = F * (1 - np.exp(-k * t1)) * t2 - (1 - np.exp(-k * t2)) * t1
        denom = num - k * F * t1 * t2 + k * t1 * t2
        return num / denom

    @classmethod
    def _fit_parameters(
        cls, F1: float, F2: float, t1: float, t2: float
    ) -> tuple[float, float]:
        """Brute-force scan for the ``k`` that makes both ``c`` estimates agree."""
        k_guess = np.arange(_K_SCAN_STEPS) * _K_SCAN_STEP
        with np.errstate(divide="ignore", invalid="ignore"):
            c1 = cls.c_compute(F1, t1, 20.0, k_guess)
            c2 = cls.c_compute(F2, t1, t2, k_guess)
        residual = np.abs(c1 - c2)

        if not np.any(np.isfinite(residual)):
            raise ConfigurationError(
                "KiBaM fit failed: no finite (k, c) candidate for the "
                "supplied discharge capacities"
            )

        residual = np.where(np.isfinite(residual), residual, np.inf)
        best = int(np.argmin(residual))
        k = float(k_guess[best])
        c = float(0.5 * (c1[best] + c2[best]))
        if k <= 0 or not 0 < c < 1:
            raise ConfigurationError(
                f"KiBaM fit produced non-physical parameters k={k}, c={c}"
            )
        return k, c

    def _qmax_compute(self) -> float:
        k, c = self.k, self.c
        num = self.q20 * ((1 - np.exp(-k * 20)) * (1 - c) + k * c * 20)
        denom = k * c * 20
        return float(num / denom)

    def _qmax_of_i(self, T: float) -> float:
        k, c = self.k, self.c
        exp_term = np.exp(-k * T)
        return float((self.qmax * k * c * T) / (1 - exp_term + c * (k * T - 1 + exp_term)))

    # ------------------------------------------------------------------
    # Rate limits and well dynamics
    # ------------------------------------------------------------------

    def _rate_denominator(self, dt: float) -> float:
        exp_term = np.exp(-self.k * dt)
        return 1 - exp_term + self.c * (self.k * dt - 1 + exp_term)

    def max_discharge_current(self, dt: float) -> float:
        """Largest discharge current (A) the available well can sustain for *dt*."""
        k, c = self.k, self.c
        exp_term = np.exp(-k * dt)
        num = k * self._q1 * exp_term + self.q0 * k * c * (1 - exp_term)
        return float(num / self._rate_denominator(dt))

    def max_charge_current(self, dt: float) -> float:
        """Most negative charge current (A) before the available well overflows."""
        k, c = self.k, self.c
        exp_term = np.exp(-k * dt)
        num = -k * c * self.qmax + k * self._q1 * exp_term + self.q0 * k * c * (1 - exp_term)
        return float(num / self._rate_denominator(dt))

    def _q1_compute(self, dt: float, current: float) -> float:
        k, c = self.k, self.c
        exp_term = np.exp(-k * dt)
        A = self._q1 * exp_term
        B = (self.q0 * k * c - current) * (1 - exp_term) / k
        C = current * c * (k * dt - 1 + exp_term) / k
        return float(A + B - C)

    def _q2_compute(self, dt: float, current: float) -> float:
        k, c = self.k, self.c
        exp_term = np.exp(-k * dt)
        A = self._q2 * exp_term
        B = self.q0 * (1 - c) * (1 - exp_term)
        C = current * (1 - c) * (k * dt - 1 + exp_term) / k
        return float(A + B - C)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def update_capacity(
        self, power: float, voltage: VoltageModel, dt: float, cycles: int = 0
    ) -> None:
        self.prev_dod = self.dod
        battery_voltage = voltage.battery_voltage
        self.power = power
        requested = power / battery_voltage
        current = requested

        if current > 0:
            current = min(current, self.max_discharge_current(dt))
        elif current < 0:
            current = -min(abs(current), abs(self.max_charge_current(dt)))

        self.clamped = abs(current) < abs(requested)
        if self.clamped:
            logger.debug(
                "KiBaM current clamped from %.4f A to %.4f A", requested, current
            )
            self.power = current * battery_voltage
        self.current = current

        q1 = self._q1_compute(dt, current)
        q2 = self._q2_compute(dt, current)

        # Self-referential update of the rate-dependent capacity.
        if abs(current) > 0:
            self._qmax_i = self._qmax_of_i(abs(self._qmax_i / current))

        # Well dynamics can overshoot [0, 100] slightly
        self.soc = float(np.clip((q1 + q2) / self.qmax * 100.0, 0.0, 100.0))
        self.dod = 100.0 - self.soc

        self._q1 = q1
        self._q2 = q2
        self.q0 = q1 + q2

        self._check_charge_change()
        voltage.update_voltage(self.snapshot(), dt)

    def update_capacity_for_thermal(self, capacity_percent: float) -> None:
        scale = capacity_percent * 0.01
        self.q0 *= scale
        self._q1 *= scale
        self._q2 *= scale
        self._update_soc()

    def update_capacity_for_lifetime(self, capacity_percent: float) -> None:
        scale = capacity_percent * 0.01
        self.q0 *= scale
        self._q1 *= scale
        self._q2 *= scale
        self.qmax = self.qmax0 * scale
        self._update_soc()

    @property
    def q1(self) -> float:
        return self._q1

    @property
    def q2(self) -> float:
        return self._q2

    @property
    def qmax_i(self) -> float:
        return self._qmax_i

    def __repr__(self) -> str:
        return (
            f"KiBaMCapacity(q20={self.q20}, k={self.k:.3f}, c={self.c:.4f}, "
            f"qmax={self.qmax:.3f}, soc={self.soc:.2f})"
        )


class LithiumIonCapacity(CapacityModel):
    """Coulomb-counting capacity model (a single tank of charge).

    Requests that would over-charge or over-discharge the tank are reduced
    to the current that exactly reaches the boundary, and that reduced
    current and power are what the model reports.

    Parameters
    ----------
    q : float
        Nominal capacity in Ah.  The battery starts full.
    """

    def update_capacity(
        self, power: float, voltage: VoltageModel, dt: float, cycles: int = 0
    ) -> None:
        self.prev_dod = self.dod
        q0_old = self.q0

        battery_voltage = voltage.battery_voltage
        self.current = power / battery_voltage
        self.power = power
        self.clamped = False

        # I > 0 discharging, I < 0 charging
        self.q0 -= self.current * dt

        if self.q0 > self.qmax:
            self.current = -(self.qmax - q0_old) / dt
            self.power = self.current * battery_voltage
            self.q0 = self.qmax
            self.clamped = True
        elif self.q0 < 0:
            self.current = q0_old / dt
            self.power = self.current * battery_voltage
            self.q0 = 0.0
            self.clamped = True

        if self.clamped:
            logger.debug(
                "Coulomb counter clamped to %.4f A at q0=%.4f Ah", self.current, self.q0
            )

        self._update_soc()
        self._check_charge_change()
        voltage.update_voltage(self.snapshot(), dt)

    def update_capacity_for_thermal(self, capacity_percent: float) -> None:
        self.q0 *= capacity_percent * 0.01
        self._update_soc()

    def update_capacity_for_lifetime(self, capacity_percent: float) -> None:
        self.q0 *= capacity_percent * 0.01
        self.qmax = self.qmax0 * capacity_percent * 0.01
        self._update_soc()

    @property
    def q1(self) -> float:
        return self.q0

    @property
    def qmax_i(self) -> float:
        return self.qmax

    def __repr__(self) -> str:
        return (
            f"LithiumIonCapacity(qmax={self.qmax:.3f}, q0={self.q0:.3f}, "
            f"soc={self.soc:.2f})"
        )
