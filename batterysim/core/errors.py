"""Exception hierarchy for the battery simulation engine.

Two very different failure classes exist:

* ``ConfigurationError`` -- the model cannot be built from the inputs it
  was given (empty lifetime table, non-physical constants, malformed
  schedule).  Raised at construction, never mid-run.
* ``SimulationStateError`` -- the session lifecycle was misused, e.g.
  ``finish()`` called twice or ``run()`` called after ``finish()``.

Values clamped at runtime (SOC limits, current limits) are *not* errors;
they are reported through the ``clamped`` flag on capacity models and
step results.
"""

from __future__ import annotations


class BatterySimError(Exception):
    """Base class for all errors raised by :mod:`batterysim`."""


class ConfigurationError(BatterySimError, ValueError):
    """Invalid construction-time configuration."""


class SimulationStateError(BatterySimError, RuntimeError):
    """Operation not permitted in the current session state."""
