from __future__ import annotations

import logging
from threading import Lock
from typing import Optional

from .base import TemperatureSource
from .ds18b20 import DS18B20Source, find_w1_device
from .simulated import RandomWalkConfig, SimulatedTemperatureSource
from ..domain.errors import SensorDegraded
from ..domain.models import SensorReading
from ..core.timeutil import now_utc

logger = logging.getLogger(__name__)


class TemperatureSensor:
    """
    Room temperature sensor that always yields a value.

    When constructed without hardware (or when the probe finds none) every
    read comes from the simulated random walk. With hardware, a failed read
    returns the simulated value for that call only and the reading is flagged
    as not ok, so the caller can count failures.
    """

    def __init__(
        self,
        hardware: Optional[TemperatureSource] = None,
        fallback: Optional[SimulatedTemperatureSource] = None,
    ) -> None:
        self._hardware = hardware
        self._fallback = fallback or SimulatedTemperatureSource()
        self._lock = Lock()
        self.failure_count = 0
        self.last_error: Optional[str] = None

        if hardware is None:
            logger.warning("Temperature sensor running in simulation mode")
        else:
            logger.info("Temperature sensor using %s", hardware.source_id)

    @classmethod
    def probe(
        cls,
        devices_path: str = "/sys/bus/w1/devices",
        prefix: str = "28-",
        sim_start: float = 22.0,
        force_simulation: bool = False,
    ) -> "TemperatureSensor":
        """Probe the 1-Wire bus once and build a sensor for the process lifetime."""
        fallback = SimulatedTemperatureSource(RandomWalkConfig(start=sim_start))
        if force_simulation:
            return cls(None, fallback)
        device = find_w1_device(devices_path, prefix)
        if device is None:
            return cls(None, fallback)
        return cls(DS18B20Source(device), fallback)

    @property
    def simulated(self) -> bool:
        return self._hardware is None

    @property
    def source_id(self) -> str:
        src = self._hardware or self._fallback
        return src.source_id

    def read(self) -> float:
        return self.read_reading().value

    def read_reading(self) -> SensorReading:
        if self._hardware is None:
            return SensorReading(
                ts_utc=now_utc(), value=self._fallback.read(), ok=True, source=self._fallback.source_id
            )

        try:
            value = self._hardware.read()
        except SensorDegraded as e:
            with self._lock:
                self.failure_count += 1
                self.last_error = str(e)
            logger.warning("Sensor read failed, using simulated value: %s", e)
            return SensorReading(
                ts_utc=now_utc(),
                value=self._fallback.read(),
                ok=False,
                error=str(e),
                source=self._fallback.source_id,
            )

        return SensorReading(ts_utc=now_utc(), value=value, ok=True, source=self._hardware.source_id)

    def status(self) -> dict:
        with self._lock:
            return {
                "source": self.source_id,
                "simulated": self.simulated,
                "failure_count": self.failure_count,
                "last_error": self.last_error,
            }
