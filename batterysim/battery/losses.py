"""Capacity losses: applies cycle fade and temperature derating to capacity."""

from __future__ import annotations

import logging

from .capacity import CapacityModel
from .lifetime import LifetimeModel
from .thermal import ThermalModel

logger = logging.getLogger(__name__)


class LossesModel:
    """Couples the lifetime and thermal models into the capacity model.

    Losses are only applied while the battery is discharging.  The
    lifetime derate is applied once per newly counted cycle and always
    before the thermal derate.
    """

    def __init__(
        self,
        lifetime: LifetimeModel,
        thermal: ThermalModel,
        capacity: CapacityModel,
    ) -> None:
        self.lifetime = lifetime
        self.thermal = thermal
        self.capacity = capacity
        self.cycles_applied: int = 0

    def run_losses(self) -> None:
        if self.capacity.current <= 0:
            return

        if self.lifetime.cycles > self.cycles_applied:
            self.cycles_applied += 1
            self.capacity.update_capacity_for_lifetime(self.lifetime.capacity_percent)
            logger.debug(
                "Lifetime derate applied: %.3f %% after %d cycles",
                self.lifetime.capacity_percent,
                self.cycles_applied,
            )

        self.capacity.update_capacity_for_thermal(self.thermal.capacity_percent)
