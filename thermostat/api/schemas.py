from __future__ import annotations
from pydantic import BaseModel
from typing import Optional


class TargetTemperatureRequest(BaseModel):
    temperature: float


class HysteresisRequest(BaseModel):
    hysteresis: float


class StartRequest(BaseModel):
    target_temperature: Optional[float] = None
    hysteresis: Optional[float] = None
    poll_interval: Optional[float] = None
    max_consecutive_errors: Optional[int] = None
    min_actuation_interval: Optional[float] = None
