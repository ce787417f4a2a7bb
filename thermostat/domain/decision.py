from __future__ import annotations
import logging
from typing import Optional

from .models import ControlDecision

logger = logging.getLogger(__name__)


def control_decision(
    current_temperature: float,
    target_temperature: float,
    hysteresis: float,
    is_heating: bool,
    since_last_actuation: Optional[float],
    min_actuation_interval: float,
) -> ControlDecision:
    """
    Decide whether the heating relay should switch.

    Heating turns on below ``target - hysteresis`` and off at or above
    ``target``; inside that band the current state is held. No switch is
    allowed until ``min_actuation_interval`` seconds have passed since the
    last actuation. ``since_last_actuation`` is None when the relay has never
    been switched.
    """
    lower = target_temperature - hysteresis
    upper = target_temperature

    # Anti-chatter: min actuation interval
    if since_last_actuation is not None and since_last_actuation < min_actuation_interval:
        return ControlDecision(
            "NOOP",
            f"Min actuation interval not met ({since_last_actuation:.1f}s < {min_actuation_interval:.0f}s)",
            lower,
            upper,
        )

    logger.debug(
        "decide: temp=%.2f heating=%s target=%.2f hys=%.2f → ON_if<%.2f OFF_if>=%.2f",
        current_temperature, "ON" if is_heating else "OFF",
        target_temperature, hysteresis, lower, upper,
    )

    if is_heating and current_temperature >= upper:
        return ControlDecision(
            "OFF", f"Temperature {current_temperature:.1f}°C reached target {upper:.1f}°C", lower, upper
        )

    if not is_heating and current_temperature < lower:
        return ControlDecision(
            "ON", f"Temperature {current_temperature:.1f}°C below lower limit {lower:.1f}°C", lower, upper
        )

    return ControlDecision(
        "NOOP",
        f"Within band (temp={current_temperature:.1f}, heating={'ON' if is_heating else 'OFF'}, "
        f"ON_if<{lower:.1f}, OFF_if>={upper:.1f})",
        lower,
        upper,
    )
