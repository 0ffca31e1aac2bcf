"""Wires the coaching engine together and runs it.

Startup order:
1. Resolve the shooting location (optional)
2. Speak the greeting as a regular session
3. Open the welcome gate, whatever the greeting's outcome
4. Tick the stability monitor until stopped
"""

from __future__ import annotations

import logging

from shotcoach.config import ShotCoachConfig
from shotcoach.core.collaborators import FrameSource, SpeechSynthesizer, VisionCoach
from shotcoach.core.conversation import (
    AmbientContext,
    ConversationWindow,
    build_system_prompt,
)
from shotcoach.core.orchestrator import CoachingOrchestrator, SessionReport
from shotcoach.core.playback import AudioSink, PlaybackController
from shotcoach.core.stability import ByteSizeEstimator, FrameStabilityMonitor
from shotcoach.core.welcome_gate import WelcomeGate
from shotcoach.devices.location import ContextStore, GoogleMapsLocator
from shotcoach.errors import TransientRequestError

log = logging.getLogger(__name__)


class CoachRuntime:
    def __init__(
        self,
        cfg: ShotCoachConfig,
        *,
        frames: FrameSource,
        vision: VisionCoach,
        speech: SpeechSynthesizer,
        sink: AudioSink,
        context: ContextStore | None = None,
        locator: GoogleMapsLocator | None = None,
    ) -> None:
        self.cfg = cfg
        self.context = context or ContextStore()
        self._locator = locator

        self.window = ConversationWindow(
            max_messages=cfg.coach.max_history_messages,
            system_prompt=build_system_prompt(self.context.current()),
        )
        self.playback = PlaybackController(sink)
        self.gate = WelcomeGate()
        self.orchestrator = CoachingOrchestrator(
            frames,
            vision,
            speech,
            self.playback,
            self.window,
            context=self.context,
            capture_quality=cfg.coach.capture_quality,
            max_session_s=cfg.coach.max_session_s or None,
        )
        self.monitor = FrameStabilityMonitor(
            ByteSizeEstimator(frames, quality=cfg.stability.sample_quality),
            self.orchestrator,
            self.gate,
            threshold=cfg.stability.similarity_threshold,
            stable_ticks=cfg.stability.stable_ticks,
            period_s=cfg.stability.tick_period_s,
        )
        self.orchestrator.add_completion_listener(self._on_session_complete)

    async def run(self) -> None:
        if self._locator is not None and self.cfg.maps.latitude is not None:
            try:
                await self.locate(self.cfg.maps.latitude, self.cfg.maps.longitude)
            except TransientRequestError as e:
                log.warning("location lookup failed: %s", e)
        await self.greet()
        await self.monitor.run()

    async def stop(self) -> None:
        self.monitor.stop()
        await self.orchestrator.shutdown()

    async def greet(self) -> SessionReport | None:
        """Run the greeting session, then open the welcome gate."""
        text = self.cfg.coach.greeting_text.strip()
        report = None
        try:
            if text:
                report = await self.orchestrator.run_greeting(text)
        finally:
            self.gate.fire()
        return report

    async def locate(self, latitude: float, longitude: float) -> AmbientContext:
        if self._locator is None:
            raise TransientRequestError("location lookup is disabled")
        ctx = await self._locator.describe(latitude, longitude)
        return self.context.update(ctx.location, ctx.points_of_interest)

    def status(self) -> dict:
        return {
            "welcome_gate_fired": self.gate.fired,
            "monitor": self.monitor.debug_snapshot(),
            "coach": self.orchestrator.snapshot(),
        }

    def _on_session_complete(self, report: SessionReport) -> None:
        self.monitor.reset()
