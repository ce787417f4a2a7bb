"""
Command line entry point.

Usage:
    thermostat serve                          # HTTP API (uvicorn)
    thermostat run                            # headless control loop
    thermostat run --target 21 --hysteresis 1.0
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from typing import Any, Dict, Optional

from .core.config import settings
from .core.lifecycle import TERMINATION_SIGNALS, ShutdownHook
from .core.log import configure_logging
from .domain.errors import ValidationError
from .domain.models import ThermostatConfig

logger = logging.getLogger(__name__)


def config_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        k: v
        for k, v in {
            "target_temperature": args.target,
            "hysteresis": args.hysteresis,
            "poll_interval": args.poll_interval,
            "min_actuation_interval": args.min_actuation_interval,
            "max_consecutive_errors": args.max_errors,
        }.items()
        if v is not None
    }


async def run(overrides: Dict[str, Any], status_every: float = 60.0) -> int:
    from .main import build_actuator, build_controller, build_sensor

    sensor = build_sensor()
    actuator = build_actuator()
    ctrl = build_controller(sensor, actuator, ThermostatConfig.from_settings(settings))
    hook = ShutdownHook(actuator.release, name="relay")

    stop = asyncio.Event()
    ctrl.on_critical_error(lambda _msg: stop.set())

    loop = asyncio.get_running_loop()
    for sig in TERMINATION_SIGNALS:
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop.set))

    log = logging.getLogger("thermostat")
    log.info("Sensor:  %s%s", sensor.source_id, " (simulated)" if sensor.simulated else "")
    log.info("Relay:   %s%s", actuator.backend_name, " (simulated)" if actuator.simulated else "")

    try:
        await ctrl.start(**overrides)
        cfg = ctrl.get_config()
        log.info("  Target:       %.1f°C (hysteresis %.1f°C)", cfg.target_temperature, cfg.hysteresis)
        log.info("  Polling:      every %.1fs, trip after %d errors", cfg.poll_interval, cfg.max_consecutive_errors)
        log.info("  Anti-chatter: %.0fs minimum actuation interval", cfg.min_actuation_interval)

        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=status_every)
            except asyncio.TimeoutError:
                s = ctrl.get_state()
                log.info(
                    "temp=%.1f°C heating=%s errors=%d",
                    s.current_temperature, "ON" if s.is_heating else "OFF", s.consecutive_errors,
                )
    finally:
        await ctrl.stop()
        hook.run()

    state = ctrl.get_state()
    if state.tripped:
        log.error("Exited after safety trip: %s", state.last_error)
        return 2
    log.info("Shutting down")
    return 0


def serve(host: Optional[str] = None, port: Optional[int] = None) -> None:
    import uvicorn

    uvicorn.run("thermostat.main:app", host=host or settings.host, port=port or settings.port)


def main(argv: Optional[list] = None) -> int:
    p = argparse.ArgumentParser(prog="thermostat", description="Hysteresis heating thermostat")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    ps = sub.add_parser("serve", help="Run the HTTP API")
    ps.add_argument("--host", default=None)
    ps.add_argument("--port", type=int, default=None)

    pr = sub.add_parser("run", help="Run the control loop without the API")
    pr.add_argument("--target", type=float, default=None, help="Target temperature (°C)")
    pr.add_argument("--hysteresis", type=float, default=None, help="Band below target (°C)")
    pr.add_argument("--poll-interval", type=float, default=None, help="Seconds between reads")
    pr.add_argument("--min-actuation-interval", type=float, default=None,
                    help="Minimum seconds between relay changes")
    pr.add_argument("--max-errors", type=int, default=None,
                    help="Consecutive sensor errors before safety shutdown")

    args = p.parse_args(argv)

    if args.command == "serve":
        configure_logging(level="DEBUG" if args.verbose else None)
        serve(args.host, args.port)
        return 0

    configure_logging(level="DEBUG" if args.verbose else None)
    try:
        return asyncio.run(run(config_overrides(args)))
    except ValidationError as e:
        logger.error("Invalid configuration: %s", e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
