"""Frame stability monitor — turns a noisy similarity signal into discrete triggers.

Each tick:
1. Sample the scene through the similarity estimator (artifact discarded)
2. Compare with the previous sample (relative delta)
3. Below threshold: count a stable tick; on the Nth, fire one trigger
4. At or above threshold: reset the count and cancel any active session

No ticks run before the welcome gate fires. While a session is active the
monitor only watches for movement; it never counts toward a new trigger.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from shotcoach.core.collaborators import FrameSource
from shotcoach.core.welcome_gate import WelcomeGate
from shotcoach.errors import PermissionDeniedError

log = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.05
STABLE_TICKS_TO_TRIGGER = 2
TICK_PERIOD_S = 1.0
SAMPLE_QUALITY = 0.1

TRIGGER_STABLE = "stable"


@dataclass(slots=True)
class StabilitySample:
    timestamp_ms: float
    size_bytes: int


@dataclass(slots=True)
class StabilityState:
    last_sample: StabilitySample | None = None
    consecutive_stable_ticks: int = 0

    def to_dict(self) -> dict:
        return {
            "last_size_bytes": self.last_sample.size_bytes if self.last_sample else None,
            "consecutive_stable_ticks": self.consecutive_stable_ticks,
        }


class TickResult(str, Enum):
    GATED = "gated"
    PAUSED = "paused"
    SAMPLE_FAILED = "sample_failed"
    FIRST_SAMPLE = "first_sample"
    STABLE = "stable"
    TRIGGERED = "triggered"
    MOVED = "moved"
    WATCHING = "watching"


class FrameSimilarityEstimator(Protocol):
    async def sample(self) -> StabilitySample: ...
    def relative_delta(self, previous: StabilitySample, current: StabilitySample) -> float: ...


class SessionHost(Protocol):
    """What the monitor needs from the orchestrator."""

    @property
    def session_active(self) -> bool: ...

    @property
    def monitoring_paused(self) -> bool: ...

    def cancel_active(self, reason: str) -> bool: ...

    def start_session(self, trigger: str) -> object | None: ...


class ByteSizeEstimator:
    """Approximates frame similarity by the size of a low-quality JPEG.

    Coarse and noisy: lighting and compression jitter move the size too.
    """

    def __init__(
        self,
        frames: FrameSource,
        *,
        quality: float = SAMPLE_QUALITY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._frames = frames
        self._quality = quality
        self._clock = clock

    async def sample(self) -> StabilitySample:
        frame = await self._frames.capture_frame(self._quality, include_image=False)
        return StabilitySample(timestamp_ms=self._clock() * 1000.0, size_bytes=frame.size_bytes)

    def relative_delta(self, previous: StabilitySample, current: StabilitySample) -> float:
        if previous.size_bytes <= 0:
            return 0.0 if current.size_bytes == previous.size_bytes else math.inf
        return abs(current.size_bytes - previous.size_bytes) / previous.size_bytes


class FrameStabilityMonitor:
    def __init__(
        self,
        estimator: FrameSimilarityEstimator,
        host: SessionHost,
        gate: WelcomeGate,
        *,
        threshold: float = SIMILARITY_THRESHOLD,
        stable_ticks: int = STABLE_TICKS_TO_TRIGGER,
        period_s: float = TICK_PERIOD_S,
    ) -> None:
        self._estimator = estimator
        self._host = host
        self._gate = gate
        self._threshold = threshold
        self._stable_ticks = stable_ticks
        self._period_s = period_s
        self._running = False
        self.state = StabilityState()
        self.trigger_count = 0
        self.movement_cancels = 0

    @property
    def running(self) -> bool:
        return self._running

    def reset(self) -> None:
        """Restart the stable count, e.g. after a session completes."""
        self.state.consecutive_stable_ticks = 0

    async def tick(self) -> TickResult:
        if not self._gate.fired:
            return TickResult.GATED
        if self._host.monitoring_paused:
            return TickResult.PAUSED

        try:
            sample = await self._estimator.sample()
        except PermissionDeniedError as e:
            log.debug("stability sample skipped: %s", e)
            return TickResult.SAMPLE_FAILED
        except Exception as e:
            log.warning("stability sample failed: %s", e)
            return TickResult.SAMPLE_FAILED

        # Re-read after the await: a session may have started or ended meanwhile.
        watching = self._host.session_active
        previous = self.state.last_sample
        self.state.last_sample = sample
        if previous is None:
            return TickResult.FIRST_SAMPLE

        delta = self._estimator.relative_delta(previous, sample)
        if delta >= self._threshold:
            self.state.consecutive_stable_ticks = 0
            if watching and self._host.cancel_active("movement"):
                self.movement_cancels += 1
                log.info("scene moved (delta=%.3f); cancelling active session", delta)
            return TickResult.MOVED

        if watching:
            return TickResult.WATCHING

        self.state.consecutive_stable_ticks += 1
        if self.state.consecutive_stable_ticks < self._stable_ticks:
            return TickResult.STABLE

        self.state.consecutive_stable_ticks = 0
        self.trigger_count += 1
        log.info("scene stable for %d ticks; requesting coaching", self._stable_ticks)
        self._host.start_session(TRIGGER_STABLE)
        return TickResult.TRIGGERED

    async def run(self) -> None:
        """Tick on a fixed period once the welcome gate has fired."""
        self._running = True
        await self._gate.wait()
        log.info("stability monitor running every %.1fs", self._period_s)
        loop = asyncio.get_running_loop()
        while self._running:
            t0 = loop.time()
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception("stability tick failed")
            elapsed = loop.time() - t0
            await asyncio.sleep(max(0.0, self._period_s - elapsed))

    def stop(self) -> None:
        self._running = False

    def debug_snapshot(self) -> dict:
        return {
            "running": self._running,
            "gate_fired": self._gate.fired,
            "triggers": self.trigger_count,
            "movement_cancels": self.movement_cancels,
            **self.state.to_dict(),
        }
