from __future__ import annotations
import logging
from threading import Lock

logger = logging.getLogger(__name__)


class SimulatedRelayBackend:
    name = "sim"

    def __init__(self) -> None:
        self._lock = Lock()
        self._state = False
        self.released = False

    @property
    def state(self) -> bool:
        with self._lock:
            return self._state

    def write(self, on: bool) -> None:
        with self._lock:
            self._state = bool(on)
        logger.info("RELAY (sim) → %s", "ON" if on else "OFF")

    def release(self) -> None:
        with self._lock:
            self._state = False
            self.released = True
        logger.info("RELAY (sim) released")
