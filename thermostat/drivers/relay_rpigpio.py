from __future__ import annotations

import importlib
import logging
import os
import sys

from ..domain.errors import ActuationError

logger = logging.getLogger(__name__)

GPIOMEM_DEVICE = "/dev/gpiomem"


def load_gpio_module():
    """Import RPi.GPIO, or return None when it is not installed."""
    try:
        return importlib.import_module("RPi.GPIO")
    except ImportError:
        return None
    except RuntimeError as e:
        # RPi.GPIO raises RuntimeError on import when not running on a Pi
        logger.info("RPi.GPIO unusable on this host: %s", e)
        return None


def rpigpio_available(device: str = GPIOMEM_DEVICE) -> bool:
    if not sys.platform.startswith("linux"):
        return False
    if not os.path.exists(device):
        return False
    if not os.access(device, os.R_OK | os.W_OK):
        raise PermissionError(f"No read/write access to {device}")
    return True


class RPiGpioRelayBackend:
    """Relay on a BCM-numbered pin driven through the RPi.GPIO library."""

    name = "rpigpio"

    def __init__(self, pin: int, active_low: bool = True, gpio=None) -> None:
        self.pin = pin
        self.active_low = active_low
        self._gpio = gpio if gpio is not None else load_gpio_module()
        if self._gpio is None:
            raise ActuationError("RPi.GPIO is not installed")

        g = self._gpio
        try:
            g.setwarnings(False)
            g.setmode(g.BCM)
            g.setup(self.pin, g.OUT, initial=self._level(False))
        except Exception as e:
            raise ActuationError(f"Cannot set up GPIO {pin} via RPi.GPIO: {e}") from e
        logger.info("RPi.GPIO pin %d configured as output (active_low=%s)", pin, active_low)

    def _level(self, on: bool):
        g = self._gpio
        if self.active_low:
            return g.LOW if on else g.HIGH
        return g.HIGH if on else g.LOW

    def write(self, on: bool) -> None:
        try:
            self._gpio.output(self.pin, self._level(on))
        except Exception as e:
            raise ActuationError(f"GPIO {self.pin} write failed: {e}") from e

    def release(self) -> None:
        try:
            self.write(False)
        finally:
            self._gpio.cleanup(self.pin)
        logger.info("RPi.GPIO pin %d released", self.pin)
