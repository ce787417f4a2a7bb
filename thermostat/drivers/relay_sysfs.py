from __future__ import annotations

import logging
import os
import time
from pathlib import Path

from ..domain.errors import ActuationError

logger = logging.getLogger(__name__)


class SysfsGpioRelayBackend:
    """
    Relay on a GPIO line driven through the legacy sysfs interface
    (/sys/class/gpio). Writes go straight to the pin's value file.
    """

    name = "sysfs"

    def __init__(
        self,
        pin: int,
        active_low: bool = True,
        root: str | Path = "/sys/class/gpio",
        export_wait_s: float = 0.1,
    ) -> None:
        self.pin = pin
        self.active_low = active_low
        self._root = Path(root)
        self._pin_dir = self._root / f"gpio{pin}"
        self._export_wait_s = export_wait_s
        self._setup()

    @staticmethod
    def available(root: str | Path = "/sys/class/gpio") -> bool:
        export = Path(root) / "export"
        return export.exists() and os.access(export, os.W_OK)

    def _level(self, on: bool) -> str:
        energized = "0" if self.active_low else "1"
        idle = "1" if self.active_low else "0"
        return energized if on else idle

    def _setup(self) -> None:
        try:
            if not self._pin_dir.exists():
                (self._root / "export").write_text(str(self.pin))
                # udev needs a moment to fix permissions on the new node
                time.sleep(self._export_wait_s)
            # "high"/"low" set the direction and the initial level in one write,
            # so the relay never glitches on during setup
            (self._pin_dir / "direction").write_text("high" if self._level(False) == "1" else "low")
        except OSError as e:
            raise ActuationError(f"Cannot set up GPIO {self.pin} via sysfs: {e}") from e
        logger.info("sysfs GPIO %d configured as output (active_low=%s)", self.pin, self.active_low)

    def write(self, on: bool) -> None:
        try:
            (self._pin_dir / "value").write_text(self._level(on))
        except OSError as e:
            raise ActuationError(f"GPIO {self.pin} write failed: {e}") from e

    def release(self) -> None:
        try:
            self.write(False)
        finally:
            try:
                (self._root / "unexport").write_text(str(self.pin))
            except OSError as e:
                raise ActuationError(f"GPIO {self.pin} unexport failed: {e}") from e
        logger.info("sysfs GPIO %d released", self.pin)
