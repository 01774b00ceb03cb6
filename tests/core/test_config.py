"""Tests for batterysim.config and batterysim.schemas -- settings and input schemas."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from batterysim.config import Settings
from batterysim.schemas import (
    BasicVoltageConfig,
    BatteryConfig,
    DispatchConfig,
    KiBaMCapacityConfig,
    LithiumIonCapacityConfig,
    ThermalConfig,
)


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("BATTERYSIM_LOG_LEVEL", raising=False)
        s = Settings()
        assert s.log_level == "INFO"
        assert s.log_json is False
        assert s.progress_interval_hours == 730
        assert not s.is_production

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("BATTERYSIM_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("BATTERYSIM_LOG_JSON", "true")
        monkeypatch.setenv("BATTERYSIM_ENVIRONMENT", "production")
        s = Settings()
        assert s.log_level == "DEBUG"
        assert s.log_json is True
        assert s.is_production


class TestBatteryConfig:
    def test_chemistry_discriminator(self, sample_battery_config):
        config = BatteryConfig.model_validate(sample_battery_config)
        assert isinstance(config.capacity, LithiumIonCapacityConfig)
        assert isinstance(config.voltage, BasicVoltageConfig)

        lead_acid = dict(sample_battery_config)
        lead_acid["capacity"] = {"chemistry": "lead_acid", "q20": 100, "q_t1": 58.12, "q10": 93.2}
        config = BatteryConfig.model_validate(lead_acid)
        assert isinstance(config.capacity, KiBaMCapacityConfig)
        assert config.capacity.t1 == 1.0

    def test_defaults_filled(self):
        config = BatteryConfig(
            capacity={"chemistry": "lithium_ion", "q_nominal": 50.0},
            voltage={"type": "basic", "num_cells": 1, "nominal_voltage": 12.0},
        )
        assert config.num_series == 1
        assert config.num_parallel == 1
        assert config.dt_hours == 1.0
        assert len(config.lifetime_table) == 6
        assert isinstance(config.thermal, ThermalConfig)
        assert config.thermal.method == "trapezoidal"

    def test_default_tables_are_independent(self):
        a = ThermalConfig()
        b = ThermalConfig()
        a.capacity_vs_temperature[0][1] = 0.0
        assert b.capacity_vs_temperature[0][1] == 60.0

    def test_kibam_rate_ordering(self):
        with pytest.raises(ValidationError, match="q_t1 <= q10 <= q20"):
            KiBaMCapacityConfig(q20=100.0, q_t1=95.0, q10=90.0)

    def test_dynamic_voltage_requires_curve_points(self, sample_battery_config):
        config = dict(sample_battery_config)
        config["voltage"] = {"type": "dynamic", "num_cells": 6, "nominal_voltage": 2.0}
        with pytest.raises(ValidationError):
            BatteryConfig.model_validate(config)

    @pytest.mark.parametrize(
        "field, value",
        [("num_series", 0), ("num_parallel", -1), ("dt_hours", 0.0)],
    )
    def test_positive_counts(self, sample_battery_config, field, value):
        config = dict(sample_battery_config)
        config[field] = value
        with pytest.raises(ValidationError):
            BatteryConfig.model_validate(config)

    def test_thermal_table_columns(self):
        with pytest.raises(ValidationError, match="temperature_c"):
            ThermalConfig(capacity_vs_temperature=[[25.0, 100.0, 1.0]])


class TestDispatchConfig:
    def _config(self, **overrides) -> dict:
        config = {
            "schedule": [[1] * 24 for _ in range(12)],
            "can_charge": [True],
            "can_discharge": [True],
            "can_grid_charge": [False],
        }
        config.update(overrides)
        return config

    def test_valid(self):
        config = DispatchConfig.model_validate(self._config())
        assert config.dt_hours == 1.0

    def test_short_day(self):
        with pytest.raises(ValidationError, match="12 months x 24 hours"):
            DispatchConfig.model_validate(self._config(schedule=[[1] * 23 for _ in range(12)]))

    def test_missing_month(self):
        with pytest.raises(ValidationError):
            DispatchConfig.model_validate(self._config(schedule=[[1] * 24 for _ in range(11)]))

    def test_permission_lengths(self):
        with pytest.raises(ValidationError, match="one entry per profile"):
            DispatchConfig.model_validate(self._config(can_discharge=[True, False]))

    def test_profile_out_of_range(self):
        with pytest.raises(ValidationError, match="schedule profiles"):
            DispatchConfig.model_validate(self._config(schedule=[[0] * 24 for _ in range(12)]))
