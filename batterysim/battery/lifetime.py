"""
Cycle-life degradation: online rainflow counting and capacity-fade lookup.

Rainflow cycle counting
-----------------------
Depth-of-discharge turning points arrive one at a time (the battery feeds
one each time it reverses between charging and discharging).  Closed
cycles are extracted as soon as they can be identified, using the
three-point method with a reference point ``S`` (ASTM E1049-85, 5.4.4):

* ``Y`` is the older range ``|p[j-1] - p[j-2]|``, ``X`` the newest range
  ``|p[j] - p[j-1]|``.
* ``X < Y``: nothing can be closed yet.
* ``Y`` contains ``S``: a half cycle.  If ``X > Y`` the reference moves to
  the next buffered point; if ``X == Y`` nothing happens.
* otherwise (``X >= Y``): ``Y`` is a closed cycle.  It is counted and both
  of its points are discarded, keeping the newest point, and the ranges
  are re-evaluated without consuming new input.

At the end of a session the unresolved residual is counted as a repeating
history (see :meth:`LifetimeModel.rainflow_finish`).

Capacity fade
-------------
After each counted cycle the retained capacity is looked up from a table
of ``(DOD, cycles, capacity %)`` rows using the running average cycle
depth and the cycle count (:class:`LifetimeTable`).
"""

from __future__ import annotations

import logging
from typing import Iterable

import numpy as np
from numpy.typing import ArrayLike

from batterysim.core.errors import ConfigurationError, SimulationStateError

logger = logging.getLogger(__name__)

# Synthetic sub-curves used when the table does not bracket a DOD.
_FLAT_CURVE = (np.array([0.0]), np.array([100.0]))
_FULL_DEPTH_CURVE = (np.array([0.0, 100.0]), np.array([100.0, 0.0]))


# ======================================================================
# Capacity-fade table
# ======================================================================

class LifetimeTable:
    """Retained capacity as a function of cycle depth and cycle count.

    Parameters
    ----------
    table : array-like, shape (n, 3)
        Rows of ``(DOD %, cycles elapsed, retained capacity %)``.  Rows
        sharing a DOD form one fade curve; DODs need not share cycle
        values.

    Raises
    ------
    ConfigurationError
        If the table is empty, not three columns wide, or holds values
        outside their physical ranges.
    """

    def __init__(self, table: ArrayLike) -> None:
        arr = np.array(table, dtype=np.float64)
        if arr.ndim != 2 or arr.shape[1] != 3:
            raise ConfigurationError(
                f"lifetime table must have shape (n, 3), got {arr.shape}"
            )
        if arr.shape[0] == 0:
            raise ConfigurationError("lifetime table must have at least one row")
        if not np.all(np.isfinite(arr)):
            raise ConfigurationError("lifetime table contains non-finite values")

        dod, cycles, capacity = arr[:, 0], arr[:, 1], arr[:, 2]
        if np.any((dod < 0) | (dod > 100)):
            raise ConfigurationError("lifetime table DOD values must lie in [0, 100]")
        if np.any(cycles < 0):
            raise ConfigurationError("lifetime table cycle counts must be >= 0")
        if np.any((capacity < 0) | (capacity > 100)):
            raise ConfigurationError("lifetime table capacities must lie in [0, 100]")

        arr.setflags(write=False)
        self._table = arr
        self.dod_values: np.ndarray = np.unique(dod)

        self._curves: dict[float, tuple[np.ndarray, np.ndarray]] = {}
        for d in self.dod_values:
            rows = arr[dod == d]
            order = np.argsort(rows[:, 1], kind="stable")
            self._curves[float(d)] = (rows[order, 1], rows[order, 2])

    @property
    def table(self) -> np.ndarray:
        return self._table

    def __len__(self) -> int:
        return self._table.shape[0]

    @staticmethod
    def _along_curve(curve: tuple[np.ndarray, np.ndarray], cycles: float) -> float:
        cyc, cap = curve
        return float(np.clip(np.interp(cycles, cyc, cap), 0.0, 100.0))

    def capacity_percent(self, dod: float, cycles: float) -> float:
        """Retained capacity (%) after *cycles* cycles of average depth *dod*.

        Interpolates along the fade curves of the two table DODs that
        bracket *dod*, then linearly between them.  Below the smallest
        table DOD a flat 100 % curve at DOD 0 is assumed; above the
        largest, a curve at DOD 100 falling from 100 % to 0 % over the
        first 100 cycles.
        """
        if self.dod_values.size == 1:
            return self._along_curve(self._curves[float(self.dod_values[0])], cycles)

        below = self.dod_values[self.dod_values <= dod]
        above = self.dod_values[self.dod_values >= dod]

        if below.size:
            d_lo = float(below.max())
            curve_lo = self._curves[d_lo]
        else:
            d_lo, curve_lo = 0.0, _FLAT_CURVE
        if above.size:
            d_hi = float(above.min())
            curve_hi = self._curves[d_hi]
        else:
            d_hi, curve_hi = 100.0, _FULL_DEPTH_CURVE

        c_lo = self._along_curve(curve_lo, cycles)
        if d_hi == d_lo:
            return c_lo
        c_hi = self._along_curve(curve_hi, cycles)

        return float(c_lo + (c_hi - c_lo) * (dod - d_lo) / (d_hi - d_lo))

    def __repr__(self) -> str:
        return f"LifetimeTable(rows={len(self)}, dods={self.dod_values.tolist()})"


# ======================================================================
# Online rainflow counting
# ======================================================================

def _turning_points(values: Iterable[float]) -> list[float]:
    """Drop repeated values and intermediate points of monotone runs."""
    points: list[float] = []
    for value in values:
        if points and value == points[-1]:
            continue
        if len(points) >= 2 and (value - points[-1]) * (points[-1] - points[-2]) > 0:
            points[-1] = value
        else:
            points.append(value)
    return points


class LifetimeModel:
    """Streaming rainflow counter coupled to a capacity-fade table.

    Parameters
    ----------
    table : LifetimeTable or array-like, shape (n, 3)
        Capacity-fade table; see :class:`LifetimeTable`.

    Attributes
    ----------
    cycles : int
        Closed cycles counted so far.
    average_range : float
        Mean depth (%) of the counted cycles.
    capacity_percent : float
        Retained capacity (%) for ``(average_range, cycles)``.
    forty_percent_cycles, hundred_percent_cycles : int
        Cycles deeper than 40 % and 98 % DOD respectively.
    """

    def __init__(self, table: LifetimeTable | ArrayLike) -> None:
        self.table: LifetimeTable = (
            table if isinstance(table, LifetimeTable) else LifetimeTable(table)
        )

        self._peaks: list[float] = []
        self._k: int = 0
        self._reference: float = 0.0
        self._x: float = 0.0
        self._y: float = 0.0
        # Set when the last evaluation ended by moving the reference forward
        self._reference_advanced: bool = False

        self.cycles: int = 0
        self.range: float = 0.0
        self.average_range: float = 0.0
        self.capacity_percent: float = self.table.capacity_percent(0.0, 0)
        self.forty_percent_cycles: int = 0
        self.hundred_percent_cycles: int = 0
        self._finished: bool = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def peaks(self) -> tuple[float, ...]:
        """Unresolved turning points, oldest first."""
        return tuple(self._peaks)

    @property
    def reference(self) -> float:
        """The reference point ``S`` the current excursion is measured from."""
        return self._reference

    @property
    def ranges(self) -> tuple[float, float]:
        """The last compared ``(X, Y)`` ranges."""
        return self._x, self._y

    @property
    def finished(self) -> bool:
        return self._finished

    def rainflow(self, dod: float) -> None:
        """Feed one depth-of-discharge sample (%) to the counter."""
        if self._finished:
            raise SimulationStateError("rainflow() called after rainflow_finish()")

        dod = float(dod)
        peaks = self._peaks

        if not peaks:
            peaks.append(dod)
            self._reference = dod
            self._k = 0
            return

        last = peaks[-1]
        if dod == last:
            return
        # A sample continuing the current excursion extends it rather than
        # adding a turning point.
        if (
            len(peaks) >= 2
            and len(peaks) - 1 != self._k
            and (dod - last) * (last - peaks[-2]) > 0
        ):
            peaks[-1] = dod
            if self._reference_advanced:
                # The range behind the newest point is already resolved as a
                # half cycle; a longer excursion leaves that unchanged.
                self._x = abs(dod - peaks[-2])
                return
        else:
            peaks.append(dod)

        self._close_cycles()

    def rainflow_finish(self) -> None:
        """Count the residual half cycles as a repeating history.

        The residual is rotated to begin at its largest value and closed
        by repeating that value, so every remaining range is counted as
        one full cycle.  Must be called exactly once, after the last
        sample.
        """
        if self._finished:
            raise SimulationStateError("rainflow_finish() already called")
        self._finished = True

        residual = self._peaks
        if len(residual) < 2:
            return

        start = int(np.argmax(residual))
        history = _turning_points(residual[start:] + residual[:start] + [residual[start]])

        stack: list[float] = []
        for point in history:
            stack.append(point)
            while len(stack) >= 3:
                self._y = abs(stack[-2] - stack[-3])
                self._x = abs(stack[-1] - stack[-2])
                if self._x < self._y:
                    break
                self._count_cycle(self._y)
                del stack[-3:-1]

        self._peaks = stack
        logger.debug(
            "Rainflow finished: %d cycles, average range %.2f %%",
            self.cycles,
            self.average_range,
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _close_cycles(self) -> None:
        """Resolve every range that the newest point closes."""
        peaks = self._peaks
        self._reference_advanced = False
        while len(peaks) >= 3:
            j = len(peaks) - 1
            self._y = abs(peaks[j - 1] - peaks[j - 2])
            self._x = abs(peaks[j] - peaks[j - 1])

            if self._x < self._y:
                return

            if self._k in (j - 1, j - 2):
                # Half cycle from the reference point
                if self._x > self._y:
                    self._k += 1
                    self._reference = peaks[self._k]
                    self._reference_advanced = True
                return

            self._count_cycle(self._y)
            del peaks[j - 2 : j]

    def _count_cycle(self, cycle_range: float) -> None:
        self.range = cycle_range
        self.average_range = (self.average_range * self.cycles + cycle_range) / (
            self.cycles + 1
        )
        self.cycles += 1
        self.capacity_percent = self.table.capacity_percent(self.average_range, self.cycles)

        if cycle_range > 40.0:
            self.forty_percent_cycles += 1
        if cycle_range > 98.0:
            self.hundred_percent_cycles += 1

        logger.debug(
            "Cycle %d closed: range %.2f %%, capacity %.3f %%",
            self.cycles,
            cycle_range,
            self.capacity_percent,
        )

    def __repr__(self) -> str:
        return (
            f"LifetimeModel(cycles={self.cycles}, "
            f"average_range={self.average_range:.2f}, "
            f"capacity_percent={self.capacity_percent:.3f})"
        )
