"""
Lumped-mass battery thermal model.

The battery is treated as a single thermal mass exchanging heat with the
room by convection over its whole surface and heated by resistive losses:

    m * Cp * dT/dt = h * A * (T_room - T) + I^2 * R

Temperatures are held in Kelvin.  Each step is integrated with a
semi-implicit trapezoidal rule solved in closed form for the new
temperature (default), or with classical fourth-order Runge-Kutta.  The
two agree for small steps but drift apart slightly for large ones.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike

from batterysim.core.errors import ConfigurationError

KELVIN_OFFSET = 273.15
SECONDS_PER_HOUR = 3600.0

_METHODS = ("trapezoidal", "rk4")


class ThermalModel:
    """Battery temperature and temperature-dependent capacity retention.

    Parameters
    ----------
    mass : float
        Battery mass in kg.
    length, width, height : float
        Battery dimensions in m.  All six faces exchange heat.
    cp : float
        Specific heat capacity in J/(kg K).
    h : float
        Convective heat-transfer coefficient in W/(m^2 K).
    room_temperature_c : float
        Ambient temperature in degrees Celsius.  The battery starts at it.
    resistance : float
        Internal resistance in Ohm.
    capacity_vs_temperature : array-like, shape (n, 2)
        Rows of ``(temperature degC, retained capacity %)``.
    method : str
        ``"trapezoidal"`` (default) or ``"rk4"``.
    """

    def __init__(
        self,
        mass: float,
        length: float,
        width: float,
        height: float,
        cp: float,
        h: float,
        room_temperature_c: float,
        resistance: float,
        capacity_vs_temperature: ArrayLike,
        method: str = "trapezoidal",
    ) -> None:
        for name, value in (
            ("mass", mass),
            ("length", length),
            ("width", width),
            ("height", height),
            ("cp", cp),
        ):
            if not np.isfinite(value) or value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")
        if h < 0:
            raise ConfigurationError(f"h must be >= 0, got {h}")
        if resistance < 0:
            raise ConfigurationError(f"resistance must be >= 0, got {resistance}")
        if method not in _METHODS:
            raise ConfigurationError(
                f"Unknown integration method '{method}'. Choose from: {list(_METHODS)}"
            )

        table = np.array(capacity_vs_temperature, dtype=np.float64)
        if table.ndim != 2 or table.shape[1] != 2 or table.shape[0] == 0:
            raise ConfigurationError(
                f"capacity_vs_temperature must have shape (n, 2), got {table.shape}"
            )
        if not np.all(np.isfinite(table)):
            raise ConfigurationError("capacity_vs_temperature contains non-finite values")

        self.mass: float = mass
        self.length: float = length
        self.width: float = width
        self.height: float = height
        self.cp: float = cp
        self.h: float = h
        self.resistance: float = resistance
        self.method: str = method

        self.area: float = 2.0 * (length * width + length * height + width * height)
        self.room_temperature: float = room_temperature_c + KELVIN_OFFSET
        self.temperature: float = self.room_temperature

        # Convert the lookup column to Kelvin once; np.interp needs it sorted.
        table[:, 0] += KELVIN_OFFSET
        table = table[np.argsort(table[:, 0], kind="stable")]
        table.setflags(write=False)
        self._capacity_vs_temperature = table

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def update_temperature(self, current: float, dt: float) -> float:
        """Advance the temperature over *dt* hours at *current* A and return it."""
        dt_s = dt * SECONDS_PER_HOUR
        if self.method == "rk4":
            self.temperature = self._rk4(current, dt_s)
        else:
            self.temperature = self._trapezoidal(current, dt_s)
        return self.temperature

    @property
    def temperature_c(self) -> float:
        return self.temperature - KELVIN_OFFSET

    @property
    def capacity_percent(self) -> float:
        """Capacity retained (%) at the present battery temperature."""
        table = self._capacity_vs_temperature
        return float(np.interp(self.temperature, table[:, 0], table[:, 1]))

    # ------------------------------------------------------------------
    # Integrators
    # ------------------------------------------------------------------

    def _derivative(self, temperature: float, current: float) -> float:
        return (
            self.h * (self.room_temperature - temperature) * self.area
            + current**2 * self.resistance
        ) / (self.mass * self.cp)

    def _rk4(self, current: float, dt_s: float) -> float:
        T = self.temperature
        k1 = dt_s * self._derivative(T, current)
        k2 = dt_s * self._derivative(T + k1 / 2, current)
        k3 = dt_s * self._derivative(T + k2 / 2, current)
        k4 = dt_s * self._derivative(T + k3, current)
        return T + (k1 + k4) / 6.0 + (k2 + k3) / 3.0

    def _trapezoidal(self, current: float, dt_s: float) -> float:
        B = 1.0 / (self.mass * self.cp)
        C = self.h * self.area
        D = current**2 * self.resistance
        slope = self._derivative(self.temperature, current)
        return (self.temperature + 0.5 * dt_s * (slope + B * (C * self.room_temperature + D))) / (
            1.0 + 0.5 * dt_s * B * C
        )

    def __repr__(self) -> str:
        return (
            f"ThermalModel(temperature={self.temperature:.2f} K, "
            f"room={self.room_temperature:.2f} K, method={self.method!r})"
        )
