from __future__ import annotations
from typing import Protocol, runtime_checkable
from .models import SensorReading


@runtime_checkable
class TemperatureProbe(Protocol):
    def read(self) -> float:
        ...

    def read_reading(self) -> SensorReading:
        ...


@runtime_checkable
class Relay(Protocol):
    def turn_on(self) -> bool:
        ...

    def turn_off(self) -> bool:
        ...

    def get_state(self) -> bool:
        ...


@runtime_checkable
class RelayBackend(Protocol):
    name: str

    def write(self, on: bool) -> None:
        """Drive the relay. Raise on failure."""
        ...

    def release(self) -> None:
        ...
