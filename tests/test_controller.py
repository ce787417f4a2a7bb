from __future__ import annotations

import asyncio

import pytest

from thermostat.domain.errors import ValidationError
from thermostat.domain.models import Phase


def _poll_tasks() -> list[asyncio.Task]:
    return [t for t in asyncio.all_tasks() if t.get_name() == "thermostat_poll" and not t.done()]


def test_initial_state_is_stopped(make_controller) -> None:
    ctrl = make_controller()
    state = ctrl.get_state()
    assert state.phase is Phase.STOPPED
    assert not state.is_running
    assert not state.is_heating
    assert state.consecutive_errors == 0


def test_start_refreshes_state_and_schedules_one_poll_task(make_controller, sensor, relay) -> None:
    sensor.value = 21.0

    async def scenario():
        ctrl = make_controller()
        assert await ctrl.start()
        state = ctrl.get_state()
        assert state.is_running
        assert state.current_temperature == 21.0
        assert state.last_updated is not None
        assert ctrl.schedule_active
        assert len(_poll_tasks()) == 1
        # start only refreshes; the first tick decides
        assert relay.writes == []
        await ctrl.stop()

    asyncio.run(scenario())


def test_start_while_running_is_a_noop(make_controller) -> None:
    async def scenario():
        ctrl = make_controller()
        await ctrl.start()
        assert await ctrl.start(target_temperature=25.0, hysteresis=3.0)
        assert len(_poll_tasks()) == 1
        assert ctrl.get_target_temperature() == 22.0
        assert ctrl.get_hysteresis() == 1.5
        await ctrl.stop()

    asyncio.run(scenario())


def test_start_merges_partial_config_over_previous(make_controller) -> None:
    async def scenario():
        ctrl = make_controller(min_actuation_interval=10.0)
        await ctrl.start(target_temperature=19.0)
        cfg = ctrl.get_config()
        assert cfg.target_temperature == 19.0
        assert cfg.hysteresis == 1.5
        assert cfg.min_actuation_interval == 10.0
        await ctrl.stop()

    asyncio.run(scenario())


def test_start_with_invalid_config_changes_nothing(make_controller) -> None:
    async def scenario():
        ctrl = make_controller()
        with pytest.raises(ValidationError):
            await ctrl.start(target_temperature=31.0)
        with pytest.raises(ValidationError):
            await ctrl.start(hysteresis=0)
        with pytest.raises(ValidationError):
            await ctrl.start(bogus=1)
        assert not ctrl.get_state().is_running
        assert not ctrl.schedule_active
        assert ctrl.get_target_temperature() == 22.0

    asyncio.run(scenario())


def test_tick_turns_heating_on_below_lower_bound(make_controller, sensor, relay) -> None:
    sensor.value = 20.4

    async def scenario():
        ctrl = make_controller()
        await ctrl.start()
        assert await ctrl.tick()
        assert relay.state
        assert ctrl.get_state().is_heating
        await ctrl.stop()

    asyncio.run(scenario())


def test_tick_holds_state_inside_band(make_controller, sensor, relay) -> None:
    sensor.value = 20.5  # exactly target - hysteresis: not below it

    async def scenario():
        ctrl = make_controller()
        await ctrl.start()
        await ctrl.tick()
        assert relay.writes == []
        await ctrl.stop()

    asyncio.run(scenario())


def test_tick_is_skipped_when_not_running(make_controller, sensor) -> None:
    async def scenario():
        ctrl = make_controller()
        assert not await ctrl.tick()
        assert sensor.calls == 0

    asyncio.run(scenario())


def test_heating_cycle_with_dwell_guard(make_controller, sensor, relay, clock) -> None:
    sensor.value = 19.0

    async def scenario():
        ctrl = make_controller()
        await ctrl.start()

        await ctrl.tick()
        assert ctrl.get_state().is_heating

        for temp in (20.2, 21.0, 21.9):
            sensor.value = temp
            clock.advance(10)
            await ctrl.tick()
            assert ctrl.get_state().is_heating

        sensor.value = 22.0
        clock.advance(10)
        await ctrl.tick()
        assert not ctrl.get_state().is_heating
        assert relay.writes == [True, False]

        # Drops right after switching off stay inside the dwell window
        sensor.value = 21.9
        clock.advance(1)
        await ctrl.tick()
        sensor.value = 20.0
        clock.advance(5)
        await ctrl.tick()
        assert not ctrl.get_state().is_heating
        assert relay.writes == [True, False]

        clock.advance(30)
        await ctrl.tick()
        assert ctrl.get_state().is_heating
        assert relay.writes == [True, False, True]
        await ctrl.stop()

    asyncio.run(scenario())


def test_consecutive_errors_reset_after_successful_read(make_controller, sensor) -> None:
    async def scenario():
        ctrl = make_controller()
        await ctrl.start()
        sensor.fail = True
        for expected in (1, 2, 3):
            await ctrl.tick()
            assert ctrl.get_state().consecutive_errors == expected
        assert ctrl.get_last_error() == "w1_slave unreadable"

        sensor.fail = False
        await ctrl.tick()
        assert ctrl.get_state().consecutive_errors == 0
        assert ctrl.get_state().is_running
        await ctrl.stop()

    asyncio.run(scenario())


def test_nan_reading_counts_as_failure(make_controller, sensor) -> None:
    async def scenario():
        ctrl = make_controller()
        await ctrl.start()
        sensor.nan = True
        await ctrl.tick()
        assert ctrl.get_state().consecutive_errors == 1
        await ctrl.stop()

    asyncio.run(scenario())


def test_safety_trip_after_max_consecutive_errors(make_controller, sensor, relay) -> None:
    sensor.value = 18.0
    messages: list[str] = []

    async def scenario():
        ctrl = make_controller(max_consecutive_errors=3)
        ctrl.on_critical_error(messages.append)
        await ctrl.start()
        await ctrl.tick()
        assert relay.state

        sensor.fail = True
        await ctrl.tick()
        await ctrl.tick()
        assert ctrl.get_state().is_running
        await ctrl.tick()

        state = ctrl.get_state()
        assert state.phase is Phase.TRIPPED
        assert not state.is_running
        assert not state.is_heating
        assert not relay.state
        assert "consecutive sensor errors (3)" in state.last_error
        assert not ctrl.schedule_active

        # No further ticks until restarted
        calls = sensor.calls
        assert not await ctrl.tick()
        assert sensor.calls == calls
        assert len(messages) == 1

        # stop() on a tripped controller is a quiet no-op
        assert await ctrl.stop()
        assert ctrl.get_state().phase is Phase.TRIPPED

    asyncio.run(scenario())


def test_trip_from_poll_loop(make_controller, sensor, relay) -> None:
    messages: list[str] = []

    async def scenario():
        ctrl = make_controller(poll_interval=0.01, max_consecutive_errors=2)
        ctrl.on_critical_error(messages.append)
        await ctrl.start()
        sensor.fail = True
        for _ in range(100):
            if not ctrl.get_state().is_running:
                break
            await asyncio.sleep(0.01)
        assert ctrl.get_state().phase is Phase.TRIPPED
        assert not ctrl.schedule_active
        assert _poll_tasks() == []
        assert len(messages) == 1

    asyncio.run(scenario())


def test_observer_exception_is_contained(make_controller, sensor) -> None:
    seen: list[str] = []

    def broken(_msg: str) -> None:
        raise RuntimeError("observer bug")

    async def scenario():
        ctrl = make_controller(max_consecutive_errors=1)
        ctrl.on_critical_error(broken)
        ctrl.on_critical_error(seen.append)
        await ctrl.start()
        sensor.fail = True
        await ctrl.tick()
        assert ctrl.get_state().tripped

    asyncio.run(scenario())
    assert len(seen) == 1


def test_start_recovers_from_trip(make_controller, sensor) -> None:
    async def scenario():
        ctrl = make_controller(max_consecutive_errors=1)
        await ctrl.start()
        sensor.fail = True
        await ctrl.tick()
        assert ctrl.get_state().tripped

        sensor.fail = False
        await ctrl.start()
        state = ctrl.get_state()
        assert state.phase is Phase.RUNNING
        assert state.last_error is None
        assert state.consecutive_errors == 0
        await ctrl.stop()

    asyncio.run(scenario())


def test_stop_turns_relay_off_and_is_idempotent(make_controller, sensor, relay) -> None:
    sensor.value = 18.0

    async def scenario():
        ctrl = make_controller()
        await ctrl.start()
        await ctrl.tick()
        assert relay.state

        assert await ctrl.stop()
        assert not relay.state
        assert not ctrl.get_state().is_running
        assert not ctrl.schedule_active
        assert _poll_tasks() == []

        writes = list(relay.writes)
        assert await ctrl.stop()
        assert relay.writes == writes

    asyncio.run(scenario())


def test_stop_never_gets_stuck_on_relay_failure(make_controller, sensor, relay) -> None:
    sensor.value = 18.0

    async def scenario():
        ctrl = make_controller()
        await ctrl.start()
        await ctrl.tick()
        relay.fail_off = True

        assert not await ctrl.stop()
        state = ctrl.get_state()
        assert not state.is_running
        assert state.is_heating  # reflects the relay, which is still on
        assert "turning off" in state.last_error

    asyncio.run(scenario())


def test_trip_with_stuck_relay_is_recorded_and_stop_retries(make_controller, sensor, relay) -> None:
    sensor.value = 18.0
    messages: list[str] = []

    async def scenario():
        ctrl = make_controller(max_consecutive_errors=2)
        ctrl.on_critical_error(messages.append)
        await ctrl.start()
        await ctrl.tick()
        assert relay.state

        sensor.fail = True
        relay.fail_off = True
        await ctrl.tick()
        await ctrl.tick()

        state = ctrl.get_state()
        assert state.phase is Phase.TRIPPED
        assert state.is_heating
        assert relay.state
        assert "consecutive sensor errors (2)" in state.last_error
        assert "could not be switched off" in state.last_error
        assert messages == [state.last_error]

        # still stuck: stop() reports the failure instead of claiming success
        assert not await ctrl.stop()
        assert relay.state

        relay.fail_off = False
        assert await ctrl.stop()
        assert not relay.state
        assert not ctrl.get_state().is_heating
        assert not ctrl.get_state().is_running

    asyncio.run(scenario())


def test_reset_after_trip_with_stuck_relay_switches_it_off(make_controller, sensor, relay) -> None:
    sensor.value = 18.0

    async def scenario():
        ctrl = make_controller(max_consecutive_errors=1)
        await ctrl.start()
        await ctrl.tick()
        sensor.fail = True
        relay.fail_off = True
        await ctrl.tick()
        assert ctrl.get_state().tripped
        assert relay.state

        assert not await ctrl.reset()
        assert ctrl.get_state().last_error

        relay.fail_off = False
        assert await ctrl.reset()
        state = ctrl.get_state()
        assert not relay.state
        assert state.phase is Phase.STOPPED
        assert state.last_error is None

    asyncio.run(scenario())


def test_actuation_failure_keeps_state_consistent(make_controller, sensor, relay) -> None:
    sensor.value = 18.0
    relay.fail_on = True

    async def scenario():
        ctrl = make_controller()
        await ctrl.start()
        await ctrl.tick()
        state = ctrl.get_state()
        assert not state.is_heating
        assert state.last_error == "Error turning heating on"
        assert state.is_running

        # Failed write did not start the dwell window
        relay.fail_on = False
        await ctrl.tick()
        assert ctrl.get_state().is_heating
        await ctrl.stop()

    asyncio.run(scenario())


def test_set_target_reevaluates_immediately_when_running(make_controller, sensor, relay) -> None:
    sensor.value = 21.0

    async def scenario():
        ctrl = make_controller()
        await ctrl.start()
        await ctrl.tick()
        assert not relay.state

        await ctrl.set_target_temperature(25.0)
        assert ctrl.get_target_temperature() == 25.0
        assert relay.state
        await ctrl.stop()

    asyncio.run(scenario())


def test_set_hysteresis_reevaluates_immediately_when_running(make_controller, sensor, relay) -> None:
    sensor.value = 21.0

    async def scenario():
        ctrl = make_controller()
        await ctrl.start()
        await ctrl.tick()
        assert not relay.state

        await ctrl.set_hysteresis(0.5)
        assert ctrl.get_hysteresis() == 0.5
        assert relay.state
        await ctrl.stop()

    asyncio.run(scenario())


def test_setters_only_update_config_when_stopped(make_controller, relay) -> None:
    async def scenario():
        ctrl = make_controller()
        await ctrl.set_target_temperature(28.5)
        await ctrl.set_hysteresis(5)
        assert ctrl.get_config().target_temperature == 28.5
        assert ctrl.get_config().hysteresis == 5.0
        assert relay.writes == []

    asyncio.run(scenario())


@pytest.mark.parametrize("value", [4.9, 30.1, float("nan"), "22"])
def test_invalid_target_is_rejected(make_controller, value) -> None:
    async def scenario():
        ctrl = make_controller()
        with pytest.raises(ValidationError):
            await ctrl.set_target_temperature(value)
        assert ctrl.get_target_temperature() == 22.0

    asyncio.run(scenario())


@pytest.mark.parametrize("value", [0, -1, 5.01])
def test_invalid_hysteresis_is_rejected(make_controller, value) -> None:
    async def scenario():
        ctrl = make_controller()
        with pytest.raises(ValidationError):
            await ctrl.set_hysteresis(value)
        assert ctrl.get_hysteresis() == 1.5

    asyncio.run(scenario())


def test_reset_restarts_running_controller_with_same_setpoints(make_controller, sensor) -> None:
    async def scenario():
        ctrl = make_controller()
        await ctrl.start(target_temperature=24.0, hysteresis=2.0)
        sensor.fail = True
        await ctrl.tick()
        sensor.fail = False

        assert await ctrl.reset()
        state = ctrl.get_state()
        assert state.is_running
        assert state.consecutive_errors == 0
        assert state.last_error is None
        assert ctrl.get_target_temperature() == 24.0
        assert ctrl.get_hysteresis() == 2.0
        assert len(_poll_tasks()) == 1
        await ctrl.stop()

    asyncio.run(scenario())


def test_reset_clears_trip(make_controller, sensor) -> None:
    async def scenario():
        ctrl = make_controller(max_consecutive_errors=1)
        await ctrl.start()
        sensor.fail = True
        await ctrl.tick()
        assert ctrl.get_state().tripped

        assert await ctrl.reset()
        state = ctrl.get_state()
        assert state.phase is Phase.STOPPED
        assert state.last_error is None
        assert state.consecutive_errors == 0

    asyncio.run(scenario())


def test_sensor_timeout_counts_as_failure(make_controller, sensor) -> None:
    async def scenario():
        ctrl = make_controller(sensor_timeout=0.05)
        await ctrl.start()
        sensor.delay = 0.3
        await ctrl.tick()
        state = ctrl.get_state()
        assert state.consecutive_errors == 1
        assert "timed out" in state.last_error
        await ctrl.stop()

    asyncio.run(scenario())


def test_overlapping_tick_is_skipped(make_controller, sensor) -> None:
    async def scenario():
        ctrl = make_controller()
        await ctrl.start()
        sensor.delay = 0.1
        first = asyncio.create_task(ctrl.tick())
        await asyncio.sleep(0.02)
        assert not await ctrl.tick()
        assert await first
        assert sensor.calls == 2  # start refresh + first tick
        sensor.delay = 0
        await ctrl.stop()

    asyncio.run(scenario())


def test_poll_loop_ticks_periodically(make_controller, sensor) -> None:
    async def scenario():
        ctrl = make_controller(poll_interval=0.01)
        await ctrl.start()
        await asyncio.sleep(0.15)
        assert sensor.calls >= 4
        await ctrl.stop()
        calls = sensor.calls
        await asyncio.sleep(0.05)
        assert sensor.calls == calls

    asyncio.run(scenario())


def test_get_temperature_reads_sensor_when_stopped(make_controller, sensor) -> None:
    sensor.value = 19.5
    ctrl = make_controller()
    assert asyncio.run(ctrl.get_temperature()) == 19.5
    assert sensor.calls == 1


def test_get_temperature_uses_last_poll_while_running(make_controller, sensor) -> None:
    async def scenario():
        ctrl = make_controller()
        sensor.value = 21.0
        await ctrl.start()
        sensor.value = 19.0
        assert await ctrl.get_temperature() == 21.0
        await ctrl.stop()

    asyncio.run(scenario())


def test_get_temperature_keeps_last_value_on_unusable_read(make_controller, sensor) -> None:
    async def scenario():
        ctrl = make_controller()
        sensor.value = 21.0
        await ctrl.start()
        await ctrl.stop()
        sensor.nan = True
        assert await ctrl.get_temperature() == 21.0

    asyncio.run(scenario())


def test_snapshots_are_copies(make_controller) -> None:
    ctrl = make_controller()
    a = ctrl.get_state()
    b = ctrl.get_state()
    assert a == b
    assert a is not b
    with pytest.raises(AttributeError):
        a.is_running = True  # type: ignore[misc]
