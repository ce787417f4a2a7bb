from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

from .base import TemperatureSource
from ..domain.errors import SensorDegraded

logger = logging.getLogger(__name__)

# Second line of w1_slave looks like: "4b 01 4b 46 7f ff 05 10 e1 t=20687"
_MILLIDEGREES = re.compile(r"t=(-?\d+)")


def find_w1_device(devices_path: str | Path, prefix: str = "28-") -> Optional[Path]:
    """
    Return the first 1-Wire device directory whose name starts with `prefix`,
    or None when the bus directory or a matching device is missing.
    """
    root = Path(devices_path)
    if not root.is_dir():
        logger.info("1-Wire directory %s not found", root)
        return None
    try:
        candidates = sorted(p for p in root.iterdir() if p.name.startswith(prefix))
    except OSError as e:
        logger.warning("Cannot list 1-Wire directory %s: %s", root, e)
        return None
    if not candidates:
        logger.info("No DS18B20 device (prefix %r) under %s", prefix, root)
        return None
    if len(candidates) > 1:
        logger.warning(
            "Found %d DS18B20 devices, using %s", len(candidates), candidates[0].name
        )
    return candidates[0]


class DS18B20Source(TemperatureSource):
    """DS18B20 read through the kernel w1_therm driver."""

    def __init__(self, device_dir: Path) -> None:
        self._device_dir = Path(device_dir)
        self._data_file = self._device_dir / "w1_slave"

    @property
    def source_id(self) -> str:
        return f"ds18b20:{self._device_dir.name}"

    @property
    def data_file(self) -> Path:
        return self._data_file

    def read(self) -> float:
        try:
            data = self._data_file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise SensorDegraded(f"Error reading {self._data_file}: {e}") from e

        match = _MILLIDEGREES.search(data)
        if not match:
            raise SensorDegraded(f"No temperature in {self._data_file}: {data.strip()!r}")
        return int(match.group(1)) / 1000.0
