"""Tests for the frame stability monitor's edge-triggered behaviour."""

from __future__ import annotations

import asyncio
import math

import pytest

from shotcoach.core.collaborators import CapturedFrame
from shotcoach.core.stability import (
    TRIGGER_STABLE,
    ByteSizeEstimator,
    FrameStabilityMonitor,
    StabilitySample,
    TickResult,
)
from shotcoach.core.welcome_gate import WelcomeGate
from shotcoach.errors import PermissionDeniedError


class FakeFrames:
    def __init__(self, sizes: list[int | Exception]) -> None:
        self.sizes = list(sizes)
        self.calls: list[tuple[float, bool]] = []

    async def capture_frame(self, quality: float, include_image: bool) -> CapturedFrame:
        self.calls.append((quality, include_image))
        size = self.sizes.pop(0)
        if isinstance(size, Exception):
            raise size
        return CapturedFrame(size_bytes=size)


class FakeHost:
    def __init__(self) -> None:
        self.session_active = False
        self.monitoring_paused = False
        self.started: list[str] = []
        self.cancels: list[str] = []

    def cancel_active(self, reason: str) -> bool:
        if not self.session_active:
            return False
        self.cancels.append(reason)
        return True

    def start_session(self, trigger: str) -> object | None:
        self.started.append(trigger)
        return object()


def _monitor(sizes, *, fired: bool = True) -> tuple[FrameStabilityMonitor, FakeHost, FakeFrames]:
    frames = FakeFrames(sizes)
    host = FakeHost()
    gate = WelcomeGate()
    if fired:
        gate.fire()
    mon = FrameStabilityMonitor(ByteSizeEstimator(frames), host, gate)
    return mon, host, frames


async def _run_ticks(mon: FrameStabilityMonitor, n: int) -> list[TickResult]:
    return [await mon.tick() for _ in range(n)]


class TestEstimator:
    def test_relative_delta(self):
        est = ByteSizeEstimator(FakeFrames([]))
        a = StabilitySample(0.0, 1000)
        assert est.relative_delta(a, StabilitySample(1.0, 1049)) == pytest.approx(0.049)
        assert est.relative_delta(a, StabilitySample(1.0, 950)) == pytest.approx(0.05)

    def test_zero_previous_size(self):
        est = ByteSizeEstimator(FakeFrames([]))
        zero = StabilitySample(0.0, 0)
        assert est.relative_delta(zero, StabilitySample(1.0, 0)) == 0.0
        assert math.isinf(est.relative_delta(zero, StabilitySample(1.0, 10)))

    @pytest.mark.asyncio
    async def test_sample_uses_low_quality_without_image(self):
        frames = FakeFrames([1234])
        est = ByteSizeEstimator(frames, quality=0.1, clock=lambda: 2.5)
        sample = await est.sample()
        assert sample == StabilitySample(timestamp_ms=2500.0, size_bytes=1234)
        assert frames.calls == [(0.1, False)]


class TestTick:
    @pytest.mark.asyncio
    async def test_two_small_deltas_fire_exactly_one_trigger(self):
        mon, host, _ = _monitor([1000, 1010, 1020])
        results = await _run_ticks(mon, 3)
        assert results == [TickResult.FIRST_SAMPLE, TickResult.STABLE, TickResult.TRIGGERED]
        assert host.started == [TRIGGER_STABLE]
        assert mon.state.consecutive_stable_ticks == 0

    @pytest.mark.asyncio
    async def test_still_scene_does_not_refire_every_tick(self):
        mon, host, _ = _monitor([1000] * 8)
        results = await _run_ticks(mon, 8)
        # first sample, then a trigger on every second stable tick
        assert results.count(TickResult.TRIGGERED) == 3
        assert results[1] == TickResult.STABLE
        assert len(host.started) == 3

    @pytest.mark.asyncio
    async def test_large_delta_resets_counter(self):
        mon, host, _ = _monitor([1000, 1010, 2000, 2010, 2020])
        results = await _run_ticks(mon, 5)
        assert results == [
            TickResult.FIRST_SAMPLE,
            TickResult.STABLE,
            TickResult.MOVED,
            TickResult.STABLE,
            TickResult.TRIGGERED,
        ]
        assert host.started == [TRIGGER_STABLE]
        assert host.cancels == []

    @pytest.mark.asyncio
    async def test_counter_resets_on_every_big_step(self):
        sizes = [1000, 1010, 1100, 1110, 1300, 1310, 1500]
        mon, host, _ = _monitor(sizes)
        for _ in sizes:
            await mon.tick()
            assert mon.state.consecutive_stable_ticks <= 1
        assert host.started == []

    @pytest.mark.asyncio
    async def test_movement_during_session_cancels_it(self):
        mon, host, _ = _monitor([1000, 1600])
        host.session_active = True
        results = await _run_ticks(mon, 2)
        assert results == [TickResult.FIRST_SAMPLE, TickResult.MOVED]
        assert host.cancels == ["movement"]
        assert mon.movement_cancels == 1

    @pytest.mark.asyncio
    async def test_still_scene_during_session_only_watches(self):
        mon, host, _ = _monitor([1000, 1000, 1000, 1000])
        host.session_active = True
        results = await _run_ticks(mon, 4)
        assert results[1:] == [TickResult.WATCHING] * 3
        assert host.started == []
        assert mon.state.consecutive_stable_ticks == 0

    @pytest.mark.asyncio
    async def test_no_sampling_before_welcome_gate(self):
        mon, host, frames = _monitor([1000, 1000, 1000], fired=False)
        results = await _run_ticks(mon, 3)
        assert results == [TickResult.GATED] * 3
        assert frames.calls == []

    @pytest.mark.asyncio
    async def test_paused_host_skips_ticks(self):
        mon, host, frames = _monitor([1000, 1000, 1000])
        host.monitoring_paused = True
        assert await mon.tick() == TickResult.PAUSED
        assert frames.calls == []

    @pytest.mark.asyncio
    async def test_sample_failures_count_as_neither_stable_nor_moved(self):
        mon, host, _ = _monitor(
            [1000, PermissionDeniedError("camera"), 1010, RuntimeError("glitch"), 1020]
        )
        results = await _run_ticks(mon, 5)
        assert results == [
            TickResult.FIRST_SAMPLE,
            TickResult.SAMPLE_FAILED,
            TickResult.STABLE,
            TickResult.SAMPLE_FAILED,
            TickResult.TRIGGERED,
        ]
        assert host.started == [TRIGGER_STABLE]

    @pytest.mark.asyncio
    async def test_reset_restarts_count(self):
        mon, host, _ = _monitor([1000, 1010, 1015, 1020])
        await _run_ticks(mon, 2)
        assert mon.state.consecutive_stable_ticks == 1
        mon.reset()
        assert await mon.tick() == TickResult.STABLE
        assert await mon.tick() == TickResult.TRIGGERED


@pytest.mark.asyncio
async def test_run_waits_for_gate_then_ticks():
    frames = FakeFrames([1000] * 50)
    host = FakeHost()
    gate = WelcomeGate()
    mon = FrameStabilityMonitor(ByteSizeEstimator(frames), host, gate, period_s=0.01)

    task = asyncio.create_task(mon.run())
    await asyncio.sleep(0.05)
    assert frames.calls == []

    gate.fire()
    await asyncio.sleep(0.1)
    mon.stop()
    await asyncio.wait_for(task, timeout=1.0)

    assert frames.calls
    assert host.started
