from __future__ import annotations
import asyncio
import contextlib
import logging
import math
from dataclasses import replace
from typing import Any, Callable, List, Optional

from ..core.timeutil import monotonic, now_utc
from ..domain.decision import control_decision
from ..domain.errors import SafetyTrip
from ..domain.interfaces import Relay, TemperatureProbe
from ..domain.models import (
    SensorReading,
    ThermostatConfig,
    ThermostatState,
    validate_hysteresis,
    validate_target_temperature,
)

logger = logging.getLogger(__name__)

ErrorHandler = Callable[[str], None]


class ThermostatController:
    """
    Hysteresis thermostat.

    One asyncio poll task calls tick() every ``poll_interval`` seconds while
    running. start/stop/reset, the setters and the body of tick() are
    serialized by one asyncio.Lock, so an API call never interleaves with a
    half-applied tick. Sensor reads run in the default executor.
    """

    def __init__(
        self,
        sensor: TemperatureProbe,
        relay: Relay,
        config: Optional[ThermostatConfig] = None,
        sensor_timeout: Optional[float] = None,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self._sensor = sensor
        self._relay = relay
        self._config = (config or ThermostatConfig()).validated()
        self._state = ThermostatState()
        self._sensor_timeout = sensor_timeout or None
        self._clock = clock

        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._tick_in_flight = False
        self._last_actuation: Optional[float] = None
        self._error_handlers: List[ErrorHandler] = []

    # --- Snapshots ---

    def get_state(self) -> ThermostatState:
        return replace(self._state)

    def get_config(self) -> ThermostatConfig:
        return replace(self._config)

    def get_target_temperature(self) -> float:
        return self._config.target_temperature

    def get_hysteresis(self) -> float:
        return self._config.hysteresis

    def get_last_error(self) -> Optional[str]:
        return self._state.last_error

    async def get_temperature(self) -> float:
        """
        Last polled temperature while running, otherwise a fresh read through
        the executor. Falls back to the last known value if that read yields
        nothing usable.
        """
        async with self._lock:
            if self._state.is_running and self._state.last_updated is not None:
                return self._state.current_temperature
            reading = await self._read_sensor()
        if reading.value is None or math.isnan(reading.value):
            return self._state.current_temperature
        return float(reading.value)

    @property
    def schedule_active(self) -> bool:
        return self._task is not None and not self._task.done()

    def on_critical_error(self, handler: ErrorHandler) -> None:
        self._error_handlers.append(handler)

    # --- Lifecycle ---

    async def start(self, **changes: Any) -> bool:
        """
        Start polling. Fields in ``changes`` are merged over the last config.
        Raises ValidationError (nothing changes) on out-of-range values.
        Returns True without doing anything when already running.
        """
        async with self._lock:
            if self._state.is_running:
                logger.info("Thermostat already running")
                return True

            config = self._config.merged(changes)
            self._config = config
            logger.info(
                "Starting thermostat: target=%.1f°C hysteresis=%.1f°C poll=%.1fs",
                config.target_temperature, config.hysteresis, config.poll_interval,
            )

            self._update(consecutive_errors=0, last_error=None, tripped=False)
            reading = await self._read_sensor()
            if reading.ok:
                self._apply_reading(reading)
            else:
                logger.warning("Could not read initial temperature, starting with previous values")

            self._update(is_running=True)
            self._task = asyncio.create_task(
                self._run(config.poll_interval), name="thermostat_poll"
            )
            return True

    async def stop(self) -> bool:
        """
        Stop polling and switch the heating off. Returns False only when the
        relay could not be switched off; the controller stops regardless.
        A relay left on by an earlier failed write is retried here.
        """
        async with self._lock:
            relay_on = self._state.is_heating or self._relay.get_state()
            if not self._state.is_running and self._task is None and not relay_on:
                return True
            task = self._cancel_schedule()
            ok = self._force_relay_off()
            self._update(is_running=False)
            logger.info("Thermostat stopped")

        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        return ok

    async def reset(self) -> bool:
        was_running = self._state.is_running
        target = self._config.target_temperature
        hysteresis = self._config.hysteresis

        stopped = await self.stop()
        if not stopped:
            return False

        async with self._lock:
            self._update(consecutive_errors=0, last_error=None, tripped=False)

        if was_running:
            return await self.start(target_temperature=target, hysteresis=hysteresis)
        return True

    # --- Setters ---

    async def set_target_temperature(self, value: float) -> None:
        value = validate_target_temperature(value)
        async with self._lock:
            self._config = replace(self._config, target_temperature=value)
            logger.info("Target temperature set to %.1f°C", value)
            if self._state.is_running:
                self._control()

    async def set_hysteresis(self, value: float) -> None:
        value = validate_hysteresis(value)
        async with self._lock:
            self._config = replace(self._config, hysteresis=value)
            logger.info("Hysteresis set to %.1f°C", value)
            if self._state.is_running:
                self._control()

    # --- Poll loop ---

    async def _run(self, interval: float) -> None:
        loop = asyncio.get_running_loop()
        next_due = loop.time() + interval
        logger.info("Poll loop started (interval=%.2fs)", interval)

        while self._state.is_running:
            await asyncio.sleep(max(0.0, next_due - loop.time()))
            await self.tick()

            next_due += interval
            now = loop.time()
            if now > next_due:
                # Drop the slots this tick overran rather than firing them back to back
                missed = int((now - next_due) // interval) + 1
                logger.debug("Tick overran, dropping %d poll slot(s)", missed)
                next_due += missed * interval

        logger.info("Poll loop stopped")

    async def tick(self) -> bool:
        """Run one poll cycle. Returns False when the tick was skipped."""
        if self._tick_in_flight:
            logger.debug("Tick still in flight, skipping")
            return False

        self._tick_in_flight = True
        try:
            async with self._lock:
                if not self._state.is_running:
                    return False

                reading = await self._read_sensor()
                if not reading.ok:
                    self._record_failure(reading.error or "Sensor read failed")
                    return True

                self._apply_reading(reading)
                self._control()
                return True
        finally:
            self._tick_in_flight = False

    # --- Internals (call with the lock held) ---

    def _update(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)

    async def _read_sensor(self) -> SensorReading:
        loop = asyncio.get_running_loop()
        try:
            fut = loop.run_in_executor(None, self._sensor.read_reading)
            if self._sensor_timeout:
                reading = await asyncio.wait_for(fut, timeout=self._sensor_timeout)
            else:
                reading = await fut
        except asyncio.TimeoutError:
            return SensorReading(
                ts_utc=now_utc(), value=math.nan, ok=False,
                error=f"Sensor read timed out after {self._sensor_timeout}s",
            )
        except Exception as e:
            logger.exception("Sensor read raised: %s", e)
            return SensorReading(ts_utc=now_utc(), value=math.nan, ok=False, error=f"Sensor read error: {e}")

        if reading.value is None or math.isnan(reading.value):
            return replace(reading, ok=False, error=reading.error or "Sensor returned no value")
        return reading

    def _apply_reading(self, reading: SensorReading) -> None:
        self._update(
            current_temperature=float(reading.value),
            is_heating=self._relay.get_state(),
            last_updated=now_utc(),
            consecutive_errors=0,
        )

    def _record_failure(self, message: str) -> None:
        count = self._state.consecutive_errors + 1
        self._update(consecutive_errors=count, last_error=message)
        logger.error("Consecutive sensor error #%d: %s", count, message)

        if count >= self._config.max_consecutive_errors:
            self._trip(SafetyTrip(count))

    def _trip(self, trip: SafetyTrip) -> None:
        message = str(trip)
        logger.critical(message)
        self._cancel_schedule()
        if not self._force_relay_off():
            message = f"{message}; heating could not be switched off"
            logger.critical("Relay still on after safety shutdown")
        self._update(is_running=False, tripped=True, last_error=message)
        self._notify_critical_error(message)

    def _notify_critical_error(self, message: str) -> None:
        for handler in list(self._error_handlers):
            try:
                handler(message)
            except Exception:
                logger.exception("Critical error handler failed")

    def _cancel_schedule(self) -> Optional[asyncio.Task]:
        """Detach the poll task; cancel it unless we are running inside it."""
        task, self._task = self._task, None
        if task is None or task is asyncio.current_task():
            return None
        task.cancel()
        return task

    def _force_relay_off(self) -> bool:
        if not (self._state.is_heating or self._relay.get_state()):
            return True
        if self._relay.turn_off():
            self._last_actuation = self._clock()
            self._update(is_heating=False)
            return True
        self._update(
            is_heating=self._relay.get_state(),
            last_error="Error turning off heating while stopping",
        )
        logger.error("Could not switch heating off while stopping")
        return False

    def _control(self) -> None:
        cfg = self._config
        state = self._state
        since = None if self._last_actuation is None else self._clock() - self._last_actuation

        decision = control_decision(
            current_temperature=state.current_temperature,
            target_temperature=cfg.target_temperature,
            hysteresis=cfg.hysteresis,
            is_heating=state.is_heating,
            since_last_actuation=since,
            min_actuation_interval=cfg.min_actuation_interval,
        )
        if decision.action == "NOOP":
            return

        turn_on = decision.action == "ON"
        ok = self._relay.turn_on() if turn_on else self._relay.turn_off()
        if ok:
            self._last_actuation = self._clock()
            self._update(is_heating=turn_on)
            logger.info("Heating %s: %s", decision.action, decision.reason)
        else:
            self._update(last_error=f"Error turning heating {'on' if turn_on else 'off'}")
            logger.error("Relay write failed for heating %s (%s)", decision.action, decision.reason)
