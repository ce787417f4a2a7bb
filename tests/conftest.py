from __future__ import annotations

import math
import time

import pytest

from thermostat.core.timeutil import now_utc
from thermostat.domain.models import SensorReading, ThermostatConfig
from thermostat.services.controller import ThermostatController


class FakeSensor:
    """Sensor double: returns `value`, or a failed reading when `fail` is set."""

    def __init__(self, value: float = 20.0, delay: float = 0.0) -> None:
        self.value = value
        self.fail = False
        self.nan = False
        self.delay = delay
        self.calls = 0

    def read_reading(self) -> SensorReading:
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            return SensorReading(ts_utc=now_utc(), value=21.0, ok=False, error="w1_slave unreadable")
        if self.nan:
            return SensorReading(ts_utc=now_utc(), value=math.nan, ok=True)
        return SensorReading(ts_utc=now_utc(), value=self.value, ok=True)

    def read(self) -> float:
        return self.read_reading().value


class FakeRelay:
    def __init__(self) -> None:
        self.state = False
        self.fail_on = False
        self.fail_off = False
        self.writes: list[bool] = []

    def turn_on(self) -> bool:
        if self.fail_on:
            return False
        self.state = True
        self.writes.append(True)
        return True

    def turn_off(self) -> bool:
        if self.fail_off:
            return False
        self.state = False
        self.writes.append(False)
        return True

    def get_state(self) -> bool:
        return self.state


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.t = start

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds


@pytest.fixture
def sensor() -> FakeSensor:
    return FakeSensor()


@pytest.fixture
def relay() -> FakeRelay:
    return FakeRelay()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_controller(sensor, relay, clock):
    """Controller with a poll interval long enough that only explicit tick() calls run."""

    def _make(**overrides) -> ThermostatController:
        sensor_timeout = overrides.pop("sensor_timeout", None)
        cfg = {
            "target_temperature": 22.0,
            "hysteresis": 1.5,
            "poll_interval": 3600.0,
            "max_consecutive_errors": 5,
            "min_actuation_interval": 30.0,
        }
        cfg.update(overrides)
        return ThermostatController(
            sensor, relay, ThermostatConfig(**cfg), sensor_timeout=sensor_timeout, clock=clock
        )

    return _make
