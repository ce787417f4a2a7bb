from __future__ import annotations
import math
from dataclasses import dataclass, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from .errors import ValidationError

TARGET_MIN = 5.0
TARGET_MAX = 30.0
HYSTERESIS_MAX = 5.0


def validate_target_temperature(value: float) -> float:
    value = _as_number("target_temperature", value)
    if not (TARGET_MIN <= value <= TARGET_MAX):
        raise ValidationError(
            f"Target temperature out of range: {value}°C (must be {TARGET_MIN:g}-{TARGET_MAX:g}°C)"
        )
    return value


def validate_hysteresis(value: float) -> float:
    value = _as_number("hysteresis", value)
    if not (0.0 < value <= HYSTERESIS_MAX):
        raise ValidationError(
            f"Invalid hysteresis: {value}°C (must be greater than 0 and at most {HYSTERESIS_MAX:g}°C)"
        )
    return value


def _as_number(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number, got {value!r}")
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        raise ValidationError(f"{name} must be finite, got {value}")
    return value


@dataclass(frozen=True)
class ThermostatConfig:
    target_temperature: float = 22.0
    hysteresis: float = 1.5
    poll_interval: float = 1.0           # seconds
    max_consecutive_errors: int = 5
    min_actuation_interval: float = 30.0  # seconds, anti-chatter dwell

    @classmethod
    def from_settings(cls, s) -> "ThermostatConfig":
        return cls(
            target_temperature=s.default_target_temperature,
            hysteresis=s.default_hysteresis,
            poll_interval=s.poll_interval_seconds,
            max_consecutive_errors=s.max_consecutive_errors,
            min_actuation_interval=s.min_actuation_interval_seconds,
        ).validated()

    def merged(self, changes: Mapping[str, Any]) -> "ThermostatConfig":
        """Return a validated copy with `changes` applied; None values are ignored."""
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValidationError(f"Unknown config field(s): {', '.join(sorted(unknown))}")
        updates = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **updates).validated()

    def validated(self) -> "ThermostatConfig":
        validate_target_temperature(self.target_temperature)
        validate_hysteresis(self.hysteresis)
        if _as_number("poll_interval", self.poll_interval) <= 0:
            raise ValidationError(f"poll_interval must be positive, got {self.poll_interval}")
        if isinstance(self.max_consecutive_errors, bool) or not isinstance(self.max_consecutive_errors, int) \
                or self.max_consecutive_errors < 1:
            raise ValidationError(
                f"max_consecutive_errors must be an integer >= 1, got {self.max_consecutive_errors!r}"
            )
        if _as_number("min_actuation_interval", self.min_actuation_interval) < 0:
            raise ValidationError(
                f"min_actuation_interval must be >= 0, got {self.min_actuation_interval}"
            )
        return self


class Phase(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    TRIPPED = "tripped"


@dataclass(frozen=True)
class ThermostatState:
    current_temperature: float = 0.0
    is_heating: bool = False
    is_running: bool = False
    last_updated: Optional[datetime] = None
    last_error: Optional[str] = None
    consecutive_errors: int = 0
    tripped: bool = False

    @property
    def phase(self) -> Phase:
        if self.is_running:
            return Phase.RUNNING
        if self.tripped:
            return Phase.TRIPPED
        return Phase.STOPPED


@dataclass(frozen=True)
class SensorReading:
    ts_utc: datetime
    value: float
    ok: bool
    error: Optional[str] = None
    source: str = "unknown"


@dataclass(frozen=True)
class ControlDecision:
    action: str  # "ON" | "OFF" | "NOOP"
    reason: str
    lower_bound: float
    upper_bound: float
