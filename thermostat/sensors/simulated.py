from __future__ import annotations

import random
from dataclasses import dataclass
from threading import Lock
from typing import Optional

from .base import TemperatureSource


@dataclass
class RandomWalkConfig:
    start: float = 22.0
    max_step: float = 0.2
    low: float = 18.0
    high: float = 25.0


class SimulatedTemperatureSource(TemperatureSource):
    """Bounded random walk used when no sensor hardware is present."""

    def __init__(
        self,
        cfg: RandomWalkConfig | None = None,
        rng: Optional[random.Random] = None,
        source_id: str = "temp_sim",
    ) -> None:
        self._cfg = cfg or RandomWalkConfig()
        self._rng = rng or random.Random()
        self._source_id = source_id
        self._lock = Lock()
        self._value = float(self._cfg.start)

    @property
    def source_id(self) -> str:
        return self._source_id

    @property
    def last_value(self) -> float:
        with self._lock:
            return self._value

    def read(self) -> float:
        cfg = self._cfg
        with self._lock:
            v = self._value + self._rng.uniform(-cfg.max_step, cfg.max_step)
            v = min(cfg.high, max(cfg.low, v))
            self._value = round(v, 1)
            return self._value
