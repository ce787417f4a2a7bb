from __future__ import annotations


class ThermostatError(Exception):
    """Base class for thermostat errors."""


class ValidationError(ThermostatError, ValueError):
    """A configuration value is outside its allowed range."""


class SensorDegraded(ThermostatError):
    """A hardware temperature read failed. Absorbed by TemperatureSensor."""


class ActuationError(ThermostatError):
    """A relay write failed. Absorbed by RelayActuator."""


class SafetyTrip(ThermostatError):
    """Too many consecutive sensor failures; heating was shut down."""

    def __init__(self, consecutive_errors: int) -> None:
        self.consecutive_errors = consecutive_errors
        super().__init__(
            f"Too many consecutive sensor errors ({consecutive_errors}), "
            f"thermostat shut down for safety"
        )
