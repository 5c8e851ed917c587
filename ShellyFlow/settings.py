# -*- coding: utf-8 -*-
"""
Configuration for ShellyFlow.

Settings are immutable values passed explicitly into every service; there
is no process-wide configuration to mutate.

Environment variables (all optional, blank means unset):
- SHELLYFLOW_ACTIVITY_THRESHOLD_W: PV power below this is sensor noise (6)
- SHELLYFLOW_DAILY_ACTIVITY_THRESHOLD_WH: PV energy below this is idle (0)
- SHELLYFLOW_DAILY_CEILING_WH: sanity ceiling for daily totals (100000)
- SHELLYFLOW_COUNTER_RESET_POLICY: "zero" or "floor" ("zero")
- SHELLYFLOW_REFRESH_INTERVAL: seconds between daily refreshes (60)
"""

import logging
from typing import Any, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ShellyFlow.models import CapacityBounds


logger = logging.getLogger(__name__)

ENV_PREFIX = 'SHELLYFLOW_'

RESET_POLICY_ZERO = 'zero'
RESET_POLICY_FLOOR = 'floor'

DEFAULT_INVERTER_KVA = 3.0
DEFAULT_GRID_SUBSCRIPTION_KVA = 6.0


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == '')


class EngineSettings(BaseSettings):
    """Thresholds and display ranges shared by every service."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        extra='ignore',
        frozen=True,
        allow_inf_nan=False,
    )

    activity_threshold_w: float = Field(default=6.0, ge=0)
    daily_activity_threshold_wh: float = Field(default=0.0, ge=0)
    daily_ceiling_wh: float = Field(default=100000.0, gt=0)
    counter_reset_policy: Literal['zero', 'floor'] = RESET_POLICY_ZERO
    refresh_interval: float = Field(default=60.0, ge=0)
    realtime_stroke_range: Tuple[float, float] = (2.0, 10.0)
    daily_stroke_range: Tuple[float, float] = (2.0, 8.0)

    @field_validator('*', mode='before')
    @classmethod
    def blank_is_default(cls, value: Any, info: ValidationInfo) -> Any:
        if _is_blank(value):
            return cls.model_fields[info.field_name].default
        return value

    @field_validator('counter_reset_policy', mode='before')
    @classmethod
    def normalize_policy(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class DeviceCapacityConfig(BaseModel):
    """Gauge capacities as stored on the device configuration screens (kVA)."""

    model_config = ConfigDict(allow_inf_nan=False)

    inverter_power_kva: float = Field(default=DEFAULT_INVERTER_KVA, gt=0)
    grid_subscription_kva: float = Field(default=DEFAULT_GRID_SUBSCRIPTION_KVA, gt=0)

    @field_validator('*', mode='before')
    @classmethod
    def blank_is_default(cls, value: Any, info: ValidationInfo) -> Any:
        if _is_blank(value):
            return cls.model_fields[info.field_name].default
        return value

    def to_bounds(self) -> CapacityBounds:
        return CapacityBounds(
            inverter_power_w=self.inverter_power_kva * 1000,
            grid_subscription_w=self.grid_subscription_kva * 1000
        )


def load_settings(environ: Optional[Mapping[str, str]] = None) -> EngineSettings:
    """
    Build EngineSettings from environment variables.

    Args:
        environ: Mapping to read from instead of os.environ

    Returns:
        EngineSettings with defaults for anything unset

    Raises:
        pydantic.ValidationError: If a variable is set to an unusable value
            (a ValueError subclass)
    """
    if environ is None:
        settings = EngineSettings()
    else:
        values = {
            name[len(ENV_PREFIX):].lower(): raw
            for name, raw in environ.items()
            if name.upper().startswith(ENV_PREFIX)
        }
        # model_validate skips the settings sources, so os.environ is not consulted
        settings = EngineSettings.model_validate(values)

    logger.info(f"Engine settings loaded: {settings!r}")
    return settings


def capacity_bounds_from_config(config: Optional[Mapping] = None) -> CapacityBounds:
    """
    Read gauge capacities from a device configuration.

    The configuration screens store capacities in kVA under
    ``inverter_power_kva`` and ``grid_subscription_kva``.

    Args:
        config: Device configuration mapping (None means all defaults)

    Returns:
        CapacityBounds in watts (3000 W / 6000 W when unset)

    Raises:
        pydantic.ValidationError: If a capacity is unparsable, zero or negative
    """
    return DeviceCapacityConfig.model_validate(dict(config or {})).to_bounds()
