from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..core.config import settings
from ..domain.errors import ValidationError
from ..domain.models import ThermostatState
from ..drivers.relay import RelayActuator
from ..sensors.temperature import TemperatureSensor
from ..services.controller import ThermostatController
from .schemas import HysteresisRequest, StartRequest, TargetTemperatureRequest

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Dependency getters ---
# main.py binds the real objects via app.dependency_overrides.
def get_controller() -> ThermostatController:  # overridden in main
    raise RuntimeError("Controller dependency not configured")

def get_sensor() -> TemperatureSensor:  # overridden in main
    raise RuntimeError("Sensor dependency not configured")

def get_actuator() -> RelayActuator:  # overridden in main
    raise RuntimeError("Actuator dependency not configured")


def _state_json(s: ThermostatState, ctrl: ThermostatController) -> dict:
    return {
        "currentTemperature": s.current_temperature,
        "targetTemperature": ctrl.get_target_temperature(),
        "hysteresis": ctrl.get_hysteresis(),
        "isHeating": s.is_heating,
        "isRunning": s.is_running,
        "phase": s.phase.value,
        "lastUpdated": s.last_updated.isoformat() if s.last_updated else None,
        "lastError": s.last_error,
        "consecutiveErrors": s.consecutive_errors,
    }


@router.get("/health")
async def health():
    return {"ok": True, "app": settings.app_name}


@router.get("/temperature")
async def get_temperature(ctrl: ThermostatController = Depends(get_controller)):
    return {"temperature": await ctrl.get_temperature()}


@router.get("/status")
async def get_status(ctrl: ThermostatController = Depends(get_controller)):
    return {"status": _state_json(ctrl.get_state(), ctrl)}


@router.get("/target-temperature")
async def get_target_temperature(ctrl: ThermostatController = Depends(get_controller)):
    return {"targetTemperature": ctrl.get_target_temperature()}


@router.post("/target-temperature")
async def set_target_temperature(
    req: TargetTemperatureRequest,
    ctrl: ThermostatController = Depends(get_controller),
):
    try:
        await ctrl.set_target_temperature(req.temperature)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"targetTemperature": ctrl.get_target_temperature()}


@router.get("/hysteresis")
async def get_hysteresis(ctrl: ThermostatController = Depends(get_controller)):
    return {"hysteresis": ctrl.get_hysteresis()}


@router.post("/hysteresis")
async def set_hysteresis(
    req: HysteresisRequest,
    ctrl: ThermostatController = Depends(get_controller),
):
    try:
        await ctrl.set_hysteresis(req.hysteresis)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"hysteresis": ctrl.get_hysteresis()}


@router.post("/thermostat/start")
async def start_thermostat(
    req: StartRequest | None = None,
    ctrl: ThermostatController = Depends(get_controller),
):
    changes = req.model_dump(exclude_none=True) if req else {}
    try:
        await ctrl.start(**changes)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "started", "config": ctrl.get_config().__dict__}


@router.post("/thermostat/stop")
async def stop_thermostat(ctrl: ThermostatController = Depends(get_controller)):
    ok = await ctrl.stop()
    if not ok:
        raise HTTPException(status_code=500, detail=ctrl.get_last_error() or "Error stopping thermostat")
    return {"status": "stopped"}


@router.post("/thermostat/reset")
async def reset_thermostat(ctrl: ThermostatController = Depends(get_controller)):
    ok = await ctrl.reset()
    if not ok:
        raise HTTPException(status_code=500, detail=ctrl.get_last_error() or "Error resetting thermostat")
    return {"status": "reset", "phase": ctrl.get_state().phase.value}


@router.get("/thermostat/last-error")
async def get_last_error(ctrl: ThermostatController = Depends(get_controller)):
    return {"lastError": ctrl.get_last_error()}


@router.get("/hardware")
async def get_hardware(
    sensor: TemperatureSensor = Depends(get_sensor),
    actuator: RelayActuator = Depends(get_actuator),
):
    return {"sensor": sensor.status(), "relay": actuator.status()}
