from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .core.config import settings
from .core.lifecycle import ShutdownHook
from .core.log import configure_logging

from .api import routes as routes_module
from .api.routes import router as api_router

from .domain.models import ThermostatConfig
from .drivers.relay import RelayActuator, select_relay_backend
from .sensors.temperature import TemperatureSensor
from .services.controller import ThermostatController


logger = logging.getLogger(__name__)


def build_sensor() -> TemperatureSensor:
    return TemperatureSensor.probe(
        devices_path=settings.w1_devices_path,
        prefix=settings.w1_sensor_prefix,
        sim_start=settings.sim_start_temperature,
        force_simulation=settings.sensor_mode.lower() == "sim",
    )


def build_actuator() -> RelayActuator:
    backend = select_relay_backend(
        mode=settings.relay_mode,
        pin=settings.relay_gpio_pin,
        active_low=settings.relay_active_low,
        sysfs_root=settings.gpio_sysfs_path,
    )
    return RelayActuator(backend)


def build_controller(sensor: TemperatureSensor, actuator: RelayActuator,
                     config: Optional[ThermostatConfig] = None) -> ThermostatController:
    ctrl = ThermostatController(
        sensor,
        actuator,
        config or ThermostatConfig.from_settings(settings),
        sensor_timeout=settings.sensor_timeout_seconds,
    )
    ctrl.on_critical_error(lambda msg: logger.critical("Thermostat tripped: %s", msg))
    return ctrl


def create_app(
    sensor: Optional[TemperatureSensor] = None,
    actuator: Optional[RelayActuator] = None,
    config: Optional[ThermostatConfig] = None,
    autostart: Optional[bool] = None,
    setup_logging: bool = True,
) -> FastAPI:
    """Build the API. Hardware is probed at startup unless injected."""
    runtime: dict = {}

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if setup_logging:
            configure_logging()
        logger.info("Starting %s", settings.app_name)

        runtime["sensor"] = sensor or build_sensor()
        runtime["actuator"] = actuator or build_actuator()
        ctrl = build_controller(runtime["sensor"], runtime["actuator"], config)
        runtime["controller"] = ctrl

        hook = ShutdownHook(runtime["actuator"].release, name="relay")
        hook.install()

        if settings.autostart if autostart is None else autostart:
            await ctrl.start()
            logger.info("Thermostat started with default configuration")

        try:
            yield
        finally:
            await ctrl.stop()
            hook.run()
            hook.uninstall()
            logger.info("Shutdown complete")

    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    # Make the dependency functions in routes resolve to the real ones
    app.dependency_overrides[routes_module.get_controller] = lambda: runtime["controller"]
    app.dependency_overrides[routes_module.get_sensor] = lambda: runtime["sensor"]
    app.dependency_overrides[routes_module.get_actuator] = lambda: runtime["actuator"]

    app.include_router(api_router, prefix="/api")
    return app


app = create_app()
