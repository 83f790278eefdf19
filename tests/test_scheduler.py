"""Tests for the fixed-cadence scheduler and its overlap/shutdown rules."""

from __future__ import annotations

import asyncio
import time
from types import SimpleNamespace

import pytest

import opclogger.common.scheduler as scheduler_module
from opclogger.common.scheduler import ScheduledLoop, SchedulerGroup


class TickRecorder:
    """Async callback that records concurrency and can be slowed or made to fail."""

    def __init__(self, duration: float = 0.0, fail: bool = False) -> None:
        self.duration = duration
        self.fail = fail
        self.calls = 0
        self.finished = 0
        self.active = 0
        self.max_active = 0
        self.started = asyncio.Event()

    async def __call__(self) -> None:
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.started.set()
        try:
            if self.duration:
                await asyncio.sleep(self.duration)
            if self.fail:
                raise RuntimeError("tick failed")
            self.finished += 1
        finally:
            self.active -= 1


def test_rejects_non_positive_interval() -> None:
    with pytest.raises(ValueError):
        ScheduledLoop(0, TickRecorder())


def test_runs_repeatedly_on_its_cadence() -> None:
    async def scenario() -> tuple[TickRecorder, ScheduledLoop]:
        recorder = TickRecorder()
        loop = ScheduledLoop(0.05, recorder, name="fast")
        await loop.start()
        await asyncio.sleep(0.4)
        await loop.stop()
        return recorder, loop

    recorder, loop = asyncio.run(scenario())

    assert recorder.calls >= 3
    assert loop.execution_count == recorder.calls
    assert loop.last_outcome == "ok"
    assert not loop.is_running


def test_overrunning_tick_skips_boundaries_instead_of_overlapping() -> None:
    async def scenario() -> tuple[TickRecorder, ScheduledLoop]:
        recorder = TickRecorder(duration=0.17)
        loop = ScheduledLoop(0.05, recorder, name="slow")
        await loop.start()
        await asyncio.sleep(0.6)
        await loop.stop(grace_seconds=1.0)
        return recorder, loop

    recorder, loop = asyncio.run(scenario())

    assert recorder.max_active == 1
    assert loop.skipped_count > 0
    # Skipped boundaries are dropped, not replayed after the slow tick
    assert recorder.calls <= 5


def test_failing_tick_does_not_cancel_future_ticks() -> None:
    async def scenario() -> tuple[TickRecorder, ScheduledLoop]:
        recorder = TickRecorder(fail=True)
        loop = ScheduledLoop(0.05, recorder, name="flaky")
        await loop.start()
        await asyncio.sleep(0.3)
        await loop.stop()
        return recorder, loop

    recorder, loop = asyncio.run(scenario())

    assert recorder.calls >= 3
    assert loop.error_count == recorder.calls
    assert loop.execution_count == 0
    assert loop.last_outcome == "error"
    assert loop.last_error == "tick failed"


def test_stop_lets_in_flight_tick_finish_within_grace() -> None:
    async def scenario() -> TickRecorder:
        recorder = TickRecorder(duration=0.2)
        loop = ScheduledLoop(0.05, recorder, name="graceful")
        await loop.start()
        await recorder.started.wait()
        await loop.stop(grace_seconds=2.0)
        return recorder

    recorder = asyncio.run(scenario())

    assert recorder.calls == 1
    assert recorder.finished == 1


def test_stop_abandons_tick_after_grace_period() -> None:
    async def scenario() -> tuple[TickRecorder, float]:
        recorder = TickRecorder(duration=5.0)
        loop = ScheduledLoop(0.05, recorder, name="stuck")
        await loop.start()
        await recorder.started.wait()
        began = time.monotonic()
        await loop.stop(grace_seconds=0.1)
        return recorder, time.monotonic() - began

    recorder, elapsed = asyncio.run(scenario())

    assert elapsed < 2.0
    assert recorder.finished == 0
    assert recorder.active == 0


def test_no_ticks_after_stop() -> None:
    async def scenario() -> tuple[int, int]:
        recorder = TickRecorder()
        loop = ScheduledLoop(0.05, recorder, name="stopped")
        await loop.start()
        await asyncio.sleep(0.2)
        await loop.stop()
        calls_at_stop = recorder.calls
        await asyncio.sleep(0.2)
        return calls_at_stop, recorder.calls

    calls_at_stop, calls_later = asyncio.run(scenario())

    assert calls_later == calls_at_stop


def test_disabled_loop_never_runs() -> None:
    async def scenario() -> tuple[TickRecorder, ScheduledLoop]:
        recorder = TickRecorder()
        loop = ScheduledLoop(0.05, recorder, name="off", enabled=False)
        await loop.start()
        await asyncio.sleep(0.2)
        await loop.stop()
        return recorder, loop

    recorder, loop = asyncio.run(scenario())

    assert recorder.calls == 0
    assert loop.get_stats()["enabled"] is False


def test_group_loops_are_independent() -> None:
    async def scenario() -> tuple[TickRecorder, TickRecorder, dict]:
        stuck = TickRecorder(duration=0.5, fail=True)
        healthy = TickRecorder()
        group = SchedulerGroup()
        group.add("stuck", 0.05, stuck)
        group.add("healthy", 0.05, healthy)
        await group.start_all()
        await asyncio.sleep(0.4)
        await group.stop_all(grace_seconds=1.0)
        return stuck, healthy, group.get_stats()

    stuck, healthy, stats = asyncio.run(scenario())

    assert stuck.calls == 1
    assert healthy.calls >= 4
    assert stats["healthy"]["error_count"] == 0
    assert stats["stuck"]["name"] == "stuck"


class SteppedClock:
    """Wall clock that follows real time plus an adjustable offset."""

    def __init__(self) -> None:
        self.offset = 0.0

    def time(self) -> float:
        return time.time() + self.offset


def _install_clock(monkeypatch) -> SteppedClock:
    clock = SteppedClock()
    monkeypatch.setattr(
        scheduler_module,
        "time",
        SimpleNamespace(time=clock.time, monotonic=time.monotonic),
    )
    return clock


@pytest.mark.parametrize("step_s", [-3600.0, -45.0, 3600.0])
def test_keeps_ticking_after_clock_step(monkeypatch, step_s) -> None:
    clock = _install_clock(monkeypatch)
    calls = 0

    async def step_clock_on_second_tick() -> None:
        nonlocal calls
        calls += 1
        if calls == 2:
            clock.offset += step_s

    async def scenario() -> ScheduledLoop:
        loop = ScheduledLoop(0.05, step_clock_on_second_tick, name="stepped")
        await loop.start()
        await asyncio.sleep(0.6)
        await loop.stop()
        return loop

    loop = asyncio.run(scenario())

    assert calls >= 6
    assert loop.skipped_count == 0
    assert loop.drift_ms < 1000


def test_keeps_ticking_when_clock_steps_back_between_ticks(monkeypatch) -> None:
    clock = _install_clock(monkeypatch)

    async def scenario() -> tuple[TickRecorder, ScheduledLoop, int]:
        recorder = TickRecorder()
        loop = ScheduledLoop(0.05, recorder, name="stepped")
        await loop.start()
        await asyncio.sleep(0.12)
        clock.offset -= 3600.0
        calls_at_step = recorder.calls
        await asyncio.sleep(0.5)
        await loop.stop()
        return recorder, loop, calls_at_step

    recorder, loop, calls_at_step = asyncio.run(scenario())

    assert recorder.calls - calls_at_step >= 5
    assert loop.skipped_count == 0
