"""
System-level battery simulation combining capacity, voltage, lifetime,
thermal and loss models.

``Battery`` runs one time step end to end in a fixed order:

1. feed the lifetime model the depth of discharge at the last charge
   reversal (or the very first step);
2. update the temperature with the current implied by the requested power;
3. update the charge state (which drives the voltage model);
4. apply lifetime and thermal losses.

``BatteryBank`` scales one ``Battery`` to a series/parallel pack.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import ValidationError

from batterysim.core.errors import ConfigurationError, SimulationStateError
from batterysim.schemas.battery import BatteryConfig, DynamicVoltageConfig, KiBaMCapacityConfig

from .capacity import CapacityModel, KiBaMCapacity, LithiumIonCapacity
from .lifetime import LifetimeModel
from .losses import LossesModel
from .thermal import ThermalModel
from .voltage import BasicVoltage, DynamicVoltage, VoltageModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepResult:
    """Outputs of a single battery time step.

    ``power`` and ``current`` are the realised values; they differ from
    ``requested_power`` whenever ``clamped`` is set.
    """

    requested_power: float
    power: float
    current: float
    clamped: bool
    soc: float
    dod: float
    q0: float
    qmax: float
    cell_voltage: float
    battery_voltage: float
    temperature: float
    cycles: int
    capacity_percent: float


class Battery:
    """One battery: exclusively owns its capacity, voltage, lifetime,
    thermal and losses models.

    Parameters
    ----------
    capacity : CapacityModel
        Charge-state model.
    voltage : VoltageModel
        Terminal-voltage model.
    lifetime : LifetimeModel
        Cycle counter and fade lookup.
    thermal : ThermalModel
        Temperature model.
    dt : float
        Time step in hours.  Default 1.0.
    """

    def __init__(
        self,
        capacity: CapacityModel,
        voltage: VoltageModel,
        lifetime: LifetimeModel,
        thermal: ThermalModel,
        dt: float = 1.0,
    ) -> None:
        if dt <= 0:
            raise ConfigurationError(f"dt must be positive, got {dt}")

        self.capacity = capacity
        self.voltage = voltage
        self.lifetime = lifetime
        self.thermal = thermal
        self.losses = LossesModel(lifetime, thermal, capacity)
        self.dt: float = dt

        self._first_step: bool = True
        self._finished: bool = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, power: float) -> StepResult:
        """Advance one time step at *power* W (positive = discharge)."""
        if self._finished:
            raise SimulationStateError("run() called after finish()")

        last_dod = self.capacity.prev_dod
        if self.capacity.charge_changed or self._first_step:
            self.lifetime.rainflow(last_dod)
            self._first_step = False

        self.thermal.update_temperature(power / self.voltage.battery_voltage, self.dt)
        self.capacity.update_capacity(power, self.voltage, self.dt, self.lifetime.cycles)
        self.losses.run_losses()

        return StepResult(
            requested_power=power,
            power=self.capacity.power,
            current=self.capacity.current,
            clamped=self.capacity.clamped,
            soc=self.capacity.soc,
            dod=self.capacity.dod,
            q0=self.capacity.q0,
            qmax=self.capacity.qmax,
            cell_voltage=self.voltage.cell_voltage,
            battery_voltage=self.voltage.battery_voltage,
            temperature=self.thermal.temperature,
            cycles=self.lifetime.cycles,
            capacity_percent=self.lifetime.capacity_percent,
        )

    def finish(self) -> None:
        """Close the session and count residual cycles.  Call exactly once."""
        if self._finished:
            raise SimulationStateError("finish() already called")
        self.lifetime.rainflow_finish()
        self._finished = True

    @property
    def finished(self) -> bool:
        return self._finished

    def charge_needed_to_fill(self) -> float:
        """Charge (Ah) needed to bring ``q0`` back to ``qmax``.

        Based on the maximum capacity of the previous step; the next
        step's current may shift it slightly.
        """
        return max(self.capacity.qmax - self.capacity.q0, 0.0)

    def current_charge(self) -> float:
        """Charge (Ah) immediately available to the load."""
        return self.capacity.q1

    @property
    def cell_voltage(self) -> float:
        return self.voltage.cell_voltage

    @property
    def battery_voltage(self) -> float:
        return self.voltage.battery_voltage

    def __repr__(self) -> str:
        return (
            f"Battery(soc={self.capacity.soc:.2f}, "
            f"temperature={self.thermal.temperature:.2f} K, "
            f"cycles={self.lifetime.cycles})"
        )


class BatteryBank:
    """A pack of identical batteries in series strings connected in parallel.

    Parameters
    ----------
    battery : Battery
        The representative battery; the bank owns it.
    num_series : int
        Batteries in series per string.
    num_parallel : int
        Strings in parallel.
    """

    def __init__(self, battery: Battery, num_series: int = 1, num_parallel: int = 1) -> None:
        if num_series < 1:
            raise ConfigurationError(f"num_series must be >= 1, got {num_series}")
        if num_parallel < 1:
            raise ConfigurationError(f"num_parallel must be >= 1, got {num_parallel}")

        self.battery = battery
        self.num_series: int = int(num_series)
        self.num_parallel: int = int(num_parallel)

    @property
    def num_batteries(self) -> int:
        return self.num_series * self.num_parallel

    def run(self, power: float) -> StepResult:
        """Run the bank at *power* W; the battery sees ``power / num_series``.

        The returned result describes the representative battery.  Use
        :attr:`bank_current` and :attr:`bank_power` for the realised flow of
        the whole bank.
        """
        return self.battery.run(power / self.num_series)

    def finish(self) -> None:
        self.battery.finish()

    def bank_charge_needed(self) -> float:
        """Charge (Ah, summed over all batteries) needed to fill the bank."""
        return self.num_batteries * self.battery.charge_needed_to_fill()

    def bank_charge_available(self) -> float:
        return self.num_batteries * self.battery.current_charge()

    @property
    def bank_current(self) -> float:
        """Realised current (A) of the last step; parallel strings add up."""
        return self.num_parallel * self.battery.capacity.current

    @property
    def bank_power(self) -> float:
        """Realised power (W) of the last step over all batteries."""
        return self.num_batteries * self.battery.capacity.power

    @property
    def bank_voltage(self) -> float:
        return self.num_series * self.battery.battery_voltage

    @property
    def cell_voltage(self) -> float:
        return self.battery.cell_voltage

    def __repr__(self) -> str:
        return (
            f"BatteryBank(series={self.num_series}, parallel={self.num_parallel}, "
            f"battery={self.battery!r})"
        )


# ======================================================================
# Construction from configuration
# ======================================================================

def build_battery(config: BatteryConfig | dict) -> BatteryBank:
    """Assemble a :class:`BatteryBank` from a validated configuration.

    Parameters
    ----------
    config : BatteryConfig or dict
        Battery configuration; dicts are validated against
        :class:`~batterysim.schemas.battery.BatteryConfig`.

    Raises
    ------
    ConfigurationError
        If the configuration fails validation or describes a
        non-physical battery.
    """
    if not isinstance(config, BatteryConfig):
        try:
            config = BatteryConfig.model_validate(config)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid battery configuration: {exc}") from exc

    cap_cfg = config.capacity
    if isinstance(cap_cfg, KiBaMCapacityConfig):
        capacity: CapacityModel = KiBaMCapacity(
            q20=cap_cfg.q20, t1=cap_cfg.t1, q_t1=cap_cfg.q_t1, q10=cap_cfg.q10
        )
    else:
        capacity = LithiumIonCapacity(cap_cfg.q_nominal)

    volt_cfg = config.voltage
    if isinstance(volt_cfg, DynamicVoltageConfig):
        voltage: VoltageModel = DynamicVoltage(
            num_cells=volt_cfg.num_cells,
            nominal_voltage=volt_cfg.nominal_voltage,
            v_full=volt_cfg.v_full,
            v_exp=volt_cfg.v_exp,
            v_nom=volt_cfg.v_nom,
            q_full=volt_cfg.q_full,
            q_exp=volt_cfg.q_exp,
            q_nom=volt_cfg.q_nom,
            c_rate=volt_cfg.c_rate,
            cutoff_voltage=volt_cfg.cutoff_voltage,
        )
    else:
        voltage = BasicVoltage(
            num_cells=volt_cfg.num_cells, cell_voltage=volt_cfg.nominal_voltage
        )

    lifetime = LifetimeModel(config.lifetime_table)

    th = config.thermal
    thermal = ThermalModel(
        mass=th.mass_kg,
        length=th.length_m,
        width=th.width_m,
        height=th.height_m,
        cp=th.cp,
        h=th.h,
        room_temperature_c=th.room_temperature_c,
        resistance=th.resistance_ohm,
        capacity_vs_temperature=th.capacity_vs_temperature,
        method=th.method,
    )

    battery = Battery(capacity, voltage, lifetime, thermal, dt=config.dt_hours)
    logger.debug("Built %r", battery)
    return BatteryBank(battery, num_series=config.num_series, num_parallel=config.num_parallel)
