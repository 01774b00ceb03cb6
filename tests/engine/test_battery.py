"""Tests for batterysim.battery.battery_system -- battery and bank orchestration."""

from __future__ import annotations

import pytest

from batterysim.battery import (
    BatteryBank,
    DynamicVoltage,
    KiBaMCapacity,
    LithiumIonCapacity,
    StepResult,
    build_battery,
)
from batterysim.battery.lifetime import LifetimeTable
from batterysim.core.errors import ConfigurationError, SimulationStateError


def _cycle(battery, pattern):
    """Run ``(power, steps)`` blocks and return the last step result."""
    result = None
    for power, steps in pattern:
        for _ in range(steps):
            result = battery.run(power)
    return result


# ======================================================================
# Single battery
# ======================================================================


class TestBattery:
    """Tests for the per-step update order and session lifecycle."""

    def test_step_result(self, make_battery):
        battery = make_battery()
        result = battery.run(100.0)
        assert isinstance(result, StepResult)
        assert result.requested_power == 100.0
        assert result.power == 100.0
        assert result.current == pytest.approx(10.0)
        assert not result.clamped
        assert result.soc == pytest.approx(90.0)
        assert result.dod == pytest.approx(10.0)
        assert result.battery_voltage == 10.0
        assert result.cycles == 0

    def test_first_step_feeds_lifetime(self, make_battery):
        battery = make_battery()
        battery.run(100.0)
        assert battery.lifetime.peaks == (0.0,)

    def test_reversal_feeds_dod_at_turning_point(self, make_battery):
        battery = make_battery()
        _cycle(battery, [(100.0, 5), (-100.0, 1)])
        # The reversal is flagged during the charge step and sampled on the next.
        assert battery.lifetime.peaks == (0.0,)
        battery.run(-100.0)
        assert battery.lifetime.peaks == (0.0, 50.0)

    def test_counted_cycle_derates_capacity(self, make_battery):
        battery = make_battery()
        _cycle(battery, [(100.0, 5), (-100.0, 5), (100.0, 5), (-100.0, 5)])
        assert battery.lifetime.cycles == 1
        # Losses are only applied while discharging.
        assert battery.losses.cycles_applied == 0
        assert battery.capacity.qmax == pytest.approx(100.0)

        result = battery.run(100.0)

        assert battery.losses.cycles_applied == 1
        fade = battery.lifetime.capacity_percent
        assert fade == pytest.approx(LifetimeTable(battery.lifetime.table.table).capacity_percent(50.0, 1))
        assert result.qmax == pytest.approx(fade)
        assert result.q0 == pytest.approx(90.0 * fade / 100.0)

    def test_thermal_derate_each_discharge_step(self, make_battery):
        battery = make_battery()
        battery.thermal.temperature = battery.thermal.room_temperature - 25.0
        battery.thermal.room_temperature -= 25.0
        result = battery.run(100.0)
        # 0 degC retains 80 % of the present charge.
        assert result.q0 == pytest.approx(90.0 * 0.8, rel=1e-3)
        assert result.qmax == pytest.approx(100.0)

    def test_temperature_rises_under_load(self, make_battery):
        battery = make_battery()
        room = battery.thermal.room_temperature
        result = battery.run(500.0)
        assert result.temperature > room

    def test_clamped_step_reports_realised_power(self, make_battery):
        battery = make_battery()
        result = battery.run(-100.0)
        assert result.clamped
        assert result.requested_power == -100.0
        assert result.power == 0.0

    def test_finish_counts_residual(self, make_battery):
        battery = make_battery()
        _cycle(battery, [(100.0, 5), (-100.0, 5), (100.0, 1)])
        battery.finish()
        assert battery.finished
        assert battery.lifetime.cycles == 1
        assert battery.lifetime.range == pytest.approx(50.0)

    def test_run_after_finish_raises(self, make_battery):
        battery = make_battery()
        battery.run(100.0)
        battery.finish()
        with pytest.raises(SimulationStateError, match="after finish"):
            battery.run(100.0)

    def test_finish_twice_raises(self, make_battery):
        battery = make_battery()
        battery.finish()
        with pytest.raises(SimulationStateError):
            battery.finish()

    def test_charge_queries(self, make_battery):
        battery = make_battery()
        battery.run(300.0)
        assert battery.charge_needed_to_fill() == pytest.approx(30.0)
        assert battery.current_charge() == pytest.approx(70.0)

    def test_kibam_battery_discharges(self, kibam_battery):
        before = kibam_battery.capacity.q0
        result = kibam_battery.run(120.0)
        assert not result.clamped
        assert result.q0 == pytest.approx(before - 10.0)
        assert result.soc + result.dod == pytest.approx(100.0)

    def test_invalid_time_step(self, make_battery):
        with pytest.raises(ConfigurationError, match="dt"):
            make_battery(dt=0.0)


# ======================================================================
# Bank scaling
# ======================================================================


class TestBatteryBank:
    """Series/parallel scaling of a single representative battery."""

    def test_power_split_across_series(self, make_battery):
        bank = BatteryBank(make_battery(), num_series=2, num_parallel=3)
        result = bank.run(200.0)
        assert result.requested_power == pytest.approx(100.0)
        assert result.current == pytest.approx(10.0)

    def test_scaled_quantities(self, make_battery):
        bank = BatteryBank(make_battery(), num_series=2, num_parallel=3)
        bank.run(200.0)
        assert bank.num_batteries == 6
        assert bank.bank_voltage == pytest.approx(20.0)
        assert bank.cell_voltage == pytest.approx(10.0)
        assert bank.bank_charge_needed() == pytest.approx(60.0)
        assert bank.bank_charge_available() == pytest.approx(540.0)

    def test_realised_flow_covers_every_battery(self, make_battery):
        bank = BatteryBank(make_battery(), num_series=2, num_parallel=3)
        bank.run(200.0)
        # Each battery carries 10 A; three strings in parallel
        assert bank.bank_current == pytest.approx(30.0)
        assert bank.bank_power == pytest.approx(600.0)
        assert bank.bank_current * bank.bank_voltage == pytest.approx(bank.bank_power)

    def test_finish_forwards(self, make_battery):
        bank = BatteryBank(make_battery())
        bank.run(100.0)
        bank.finish()
        assert bank.battery.finished

    @pytest.mark.parametrize("series, parallel", [(0, 1), (1, 0)])
    def test_invalid_counts(self, make_battery, series, parallel):
        with pytest.raises(ConfigurationError):
            BatteryBank(make_battery(), num_series=series, num_parallel=parallel)


# ======================================================================
# Construction from configuration
# ======================================================================


class TestBuildBattery:
    def test_lithium_ion_from_dict(self, sample_battery_config):
        bank = build_battery(sample_battery_config)
        assert isinstance(bank, BatteryBank)
        assert isinstance(bank.battery.capacity, LithiumIonCapacity)
        assert bank.num_series == 2
        assert bank.num_parallel == 3
        assert bank.battery.battery_voltage == pytest.approx(12.8)
        assert len(bank.battery.lifetime.table) == 6

    def test_lead_acid_with_dynamic_voltage(self, sample_battery_config, kibam_params):
        config = dict(sample_battery_config)
        config["capacity"] = {"chemistry": "lead_acid", **kibam_params}
        config["voltage"] = {
            "type": "dynamic",
            "num_cells": 6,
            "nominal_voltage": 2.0,
            "cutoff_voltage": 1.75,
            "v_full": 2.2,
            "v_exp": 2.06,
            "v_nom": 2.03,
            "q_full": 100.0,
            "q_exp": 2.5,
            "q_nom": 90.0,
            "c_rate": 0.05,
        }
        bank = build_battery(config)
        assert isinstance(bank.battery.capacity, KiBaMCapacity)
        assert isinstance(bank.battery.voltage, DynamicVoltage)
        assert bank.battery.cell_voltage == pytest.approx(2.2)

    def test_thermal_settings_applied(self, sample_battery_config):
        config = dict(sample_battery_config)
        config["thermal"] = {**config["thermal"], "method": "rk4", "room_temperature_c": 30.0}
        bank = build_battery(config)
        assert bank.battery.thermal.method == "rk4"
        assert bank.battery.thermal.temperature_c == pytest.approx(30.0)

    def test_unknown_chemistry(self, sample_battery_config):
        config = dict(sample_battery_config)
        config["capacity"] = {"chemistry": "flow", "q_nominal": 100.0}
        with pytest.raises(ConfigurationError, match="Invalid battery configuration"):
            build_battery(config)

    def test_malformed_lifetime_table(self, sample_battery_config):
        config = dict(sample_battery_config)
        config["lifetime_table"] = [[20.0, 0.0]]
        with pytest.raises(ConfigurationError):
            build_battery(config)

    def test_empty_lifetime_table(self, sample_battery_config):
        config = dict(sample_battery_config)
        config["lifetime_table"] = []
        with pytest.raises(ConfigurationError):
            build_battery(config)
