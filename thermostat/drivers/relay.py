from __future__ import annotations

import logging
from threading import Lock

from .relay_rpigpio import RPiGpioRelayBackend, load_gpio_module, rpigpio_available
from .relay_sim import SimulatedRelayBackend
from .relay_sysfs import SysfsGpioRelayBackend
from ..domain.errors import ActuationError
from ..domain.interfaces import RelayBackend

logger = logging.getLogger(__name__)

RELAY_MODES = ("auto", "rpigpio", "sysfs", "sim")


def select_relay_backend(
    mode: str = "auto",
    pin: int = 17,
    active_low: bool = True,
    sysfs_root: str = "/sys/class/gpio",
) -> RelayBackend:
    """
    Pick the relay backend once at startup.

    "auto" tries RPi.GPIO, then sysfs. Any probe or setup failure, permission
    errors included, degrades to the simulated backend.
    """
    mode = mode.lower()
    if mode not in RELAY_MODES:
        logger.warning("Unknown relay_mode %r, using auto", mode)
        mode = "auto"
    if mode == "sim":
        logger.info("Relay backend forced to simulation")
        return SimulatedRelayBackend()

    if mode in ("auto", "rpigpio"):
        try:
            if rpigpio_available() and load_gpio_module() is not None:
                return RPiGpioRelayBackend(pin, active_low)
            logger.info("RPi.GPIO backend not available")
        except (ActuationError, OSError) as e:
            logger.warning("RPi.GPIO backend unusable: %s", e)

    if mode in ("auto", "sysfs"):
        try:
            if SysfsGpioRelayBackend.available(sysfs_root):
                return SysfsGpioRelayBackend(pin, active_low, root=sysfs_root)
            logger.info("sysfs GPIO backend not available at %s", sysfs_root)
        except (ActuationError, OSError) as e:
            logger.warning("sysfs GPIO backend unusable: %s", e)

    logger.warning("No relay hardware usable (mode=%s), falling back to simulated relay", mode)
    return SimulatedRelayBackend()


class RelayActuator:
    """
    Heating relay. Tracks the last successfully written state; a failed
    write returns False and leaves that state unchanged.
    """

    def __init__(self, backend: RelayBackend) -> None:
        self._backend = backend
        self._lock = Lock()
        self._state = False
        self._released = False
        self.last_error: str | None = None

    @property
    def backend_name(self) -> str:
        return self._backend.name

    @property
    def simulated(self) -> bool:
        return isinstance(self._backend, SimulatedRelayBackend)

    @property
    def released(self) -> bool:
        return self._released

    def _write(self, on: bool) -> bool:
        with self._lock:
            if self._released:
                if on:
                    logger.warning("Relay already released, refusing to turn on")
                    return False
                return True
            try:
                self._backend.write(on)
            except (ActuationError, OSError) as e:
                self.last_error = str(e)
                logger.error("Error turning relay %s: %s", "on" if on else "off", e)
                return False
            self._state = on
        logger.info("Relay %s", "ON" if on else "OFF")
        return True

    def turn_on(self) -> bool:
        return self._write(True)

    def turn_off(self) -> bool:
        return self._write(False)

    def get_state(self) -> bool:
        with self._lock:
            return self._state

    def toggle(self) -> bool:
        return self.turn_off() if self.get_state() else self.turn_on()

    def release(self) -> None:
        """Force the relay off and free the hardware. Only the first call acts."""
        with self._lock:
            if self._released:
                return
            self._released = True
            self._state = False
            try:
                self._backend.release()
            except (ActuationError, OSError) as e:
                self.last_error = str(e)
                logger.error("Error releasing relay: %s", e)
        logger.info("Relay released (%s)", self._backend.name)

    def status(self) -> dict:
        with self._lock:
            return {
                "backend": self._backend.name,
                "simulated": self.simulated,
                "state": self._state,
                "released": self._released,
                "last_error": self.last_error,
            }
