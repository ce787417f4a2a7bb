from __future__ import annotations

from abc import ABC, abstractmethod


class TemperatureSource(ABC):
    """Raw temperature source behind TemperatureSensor."""

    @property
    @abstractmethod
    def source_id(self) -> str:
        ...

    @property
    def unit(self) -> str:
        return "°C"

    @abstractmethod
    def read(self) -> float:
        """Return degrees Celsius. Raise SensorDegraded on failure."""
        ...
