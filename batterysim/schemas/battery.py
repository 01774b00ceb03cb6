from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, field_validator, model_validator

# Default fade table: (DOD %, cycles, capacity %)
DEFAULT_LIFETIME_TABLE: list[list[float]] = [
    [20.0, 0.0, 100.0],
    [20.0, 5000.0, 80.0],
    [20.0, 10000.0, 60.0],
    [80.0, 0.0, 100.0],
    [80.0, 1000.0, 80.0],
    [80.0, 2000.0, 60.0],
]

# Default retention vs temperature: (degC, capacity %)
DEFAULT_CAPACITY_VS_TEMPERATURE: list[list[float]] = [
    [-10.0, 60.0],
    [0.0, 80.0],
    [25.0, 100.0],
    [40.0, 100.0],
]


# Capacity model schemas
class KiBaMCapacityConfig(BaseModel):
    chemistry: Literal["lead_acid"] = "lead_acid"
    q20: float = Field(gt=0)  # Ah at 20 h discharge
    t1: float = Field(default=1.0, gt=0)  # h
    q_t1: float = Field(gt=0)  # Ah at t1 discharge
    q10: float = Field(gt=0)  # Ah at 10 h discharge

    @model_validator(mode="after")
    def _rate_ordering(self) -> "KiBaMCapacityConfig":
        if not self.q_t1 <= self.q10 <= self.q20:
            raise ValueError("expected q_t1 <= q10 <= q20 (faster discharge yields less charge)")
        return self


class LithiumIonCapacityConfig(BaseModel):
    chemistry: Literal["lithium_ion"] = "lithium_ion"
    q_nominal: float = Field(gt=0)  # Ah


# Voltage model schemas
class DynamicVoltageConfig(BaseModel):
    type: Literal["dynamic"] = "dynamic"
    num_cells: int = Field(ge=1)
    nominal_voltage: float = Field(gt=0)
    cutoff_voltage: float = Field(default=0.0, ge=0)
    v_full: float = Field(gt=0)
    v_exp: float = Field(gt=0)
    v_nom: float = Field(gt=0)
    q_full: float = Field(gt=0)
    q_exp: float = Field(gt=0)
    q_nom: float = Field(gt=0)
    c_rate: float = Field(default=0.2, gt=0)


class BasicVoltageConfig(BaseModel):
    type: Literal["basic"] = "basic"
    num_cells: int = Field(ge=1)
    nominal_voltage: float = Field(gt=0)


class ThermalConfig(BaseModel):
    mass_kg: float = Field(default=507.0, gt=0)
    length_m: float = Field(default=0.58, gt=0)
    width_m: float = Field(default=0.58, gt=0)
    height_m: float = Field(default=0.58, gt=0)
    cp: float = Field(default=1004.0, gt=0)  # J/kg-K
    h: float = Field(default=20.0, ge=0)  # W/m2-K
    room_temperature_c: float = 20.0
    resistance_ohm: float = Field(default=0.001, ge=0)
    capacity_vs_temperature: list[list[float]] = Field(
        default_factory=lambda: [row[:] for row in DEFAULT_CAPACITY_VS_TEMPERATURE],
        min_length=1,
    )
    method: Literal["trapezoidal", "rk4"] = "trapezoidal"

    @field_validator("capacity_vs_temperature")
    @classmethod
    def _two_columns(cls, rows: list[list[float]]) -> list[list[float]]:
        if any(len(row) != 2 for row in rows):
            raise ValueError("capacity_vs_temperature rows must be [temperature_c, capacity_pct]")
        return rows


class BatteryConfig(BaseModel):
    capacity: Annotated[
        Union[KiBaMCapacityConfig, LithiumIonCapacityConfig],
        Field(discriminator="chemistry"),
    ]
    voltage: Annotated[
        Union[DynamicVoltageConfig, BasicVoltageConfig],
        Field(discriminator="type"),
    ]
    lifetime_table: list[list[float]] = Field(
        default_factory=lambda: [row[:] for row in DEFAULT_LIFETIME_TABLE],
        min_length=1,
    )
    thermal: ThermalConfig = Field(default_factory=ThermalConfig)
    num_series: int = Field(default=1, ge=1)
    num_parallel: int = Field(default=1, ge=1)
    dt_hours: float = Field(default=1.0, gt=0)

    @field_validator("lifetime_table")
    @classmethod
    def _three_columns(cls, rows: list[list[float]]) -> list[list[float]]:
        if any(len(row) != 3 for row in rows):
            raise ValueError("lifetime_table rows must be [dod_pct, cycles, capacity_pct]")
        return rows


# Dispatch schemas
class DispatchConfig(BaseModel):
    schedule: list[list[int]] = Field(min_length=12, max_length=12)  # [month][hour] -> profile (1-based)
    can_charge: list[bool] = Field(min_length=1)
    can_discharge: list[bool] = Field(min_length=1)
    can_grid_charge: list[bool] = Field(min_length=1)
    dt_hours: float = Field(default=1.0, gt=0)

    @model_validator(mode="after")
    def _consistent_profiles(self) -> "DispatchConfig":
        if any(len(row) != 24 for row in self.schedule):
            raise ValueError("schedule must be 12 months x 24 hours")
        n_profiles = len(self.can_charge)
        if len(self.can_discharge) != n_profiles or len(self.can_grid_charge) != n_profiles:
            raise ValueError("permission lists must have one entry per profile")
        if any(not 1 <= p <= n_profiles for row in self.schedule for p in row):
            raise ValueError(f"schedule profiles must lie in [1, {n_profiles}]")
        return self
