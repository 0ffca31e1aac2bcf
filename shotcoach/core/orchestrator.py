"""Coaching session state machine.

Transitions (one session at a time):
    IDLE → CAPTURING → INFERRING → SYNTHESIZING → PLAYING → IDLE
    CAPTURING | INFERRING | SYNTHESIZING | PLAYING → CANCELLED → IDLE
    any failure or timeout → IDLE

A trigger that arrives while a session is outside IDLE is ignored. The
conversation window is only written once the advice has played to the end;
a cancelled or failed session leaves it untouched.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import Counter, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from shotcoach.core.cancellation import CancellationToken
from shotcoach.core.collaborators import (
    ContextSource,
    FrameSource,
    SpeechSynthesizer,
    VisionCoach,
)
from shotcoach.core.conversation import (
    AmbientContext,
    ConversationMessage,
    ConversationWindow,
    build_system_prompt,
)
from shotcoach.core.playback import PlaybackController, PlaybackOutcome
from shotcoach.errors import (
    CoachError,
    PermissionDeniedError,
    SessionCancelled,
    TransientRequestError,
)

log = logging.getLogger(__name__)

CAPTURE_QUALITY = 0.4
MAX_SESSION_S = 30.0
REPORT_HISTORY = 20

TRIGGER_MANUAL = "manual"
TRIGGER_GREETING = "greeting"


class SessionState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    INFERRING = "inferring"
    SYNTHESIZING = "synthesizing"
    PLAYING = "playing"
    CANCELLED = "cancelled"


class SessionOutcome(str, Enum):
    COMPLETED = "completed"
    NO_ADVICE = "no_advice"
    CANCELLED = "cancelled"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(slots=True)
class CoachingSession:
    id: int
    trigger: str
    token: CancellationToken = field(default_factory=CancellationToken)
    state: SessionState = SessionState.IDLE
    started_mono: float = field(default_factory=time.monotonic)
    advice: str = ""


@dataclass(slots=True)
class SessionReport:
    session_id: int
    trigger: str
    outcome: SessionOutcome
    advice: str = ""
    error: str = ""
    duration_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "trigger": self.trigger,
            "outcome": self.outcome.value,
            "advice": self.advice,
            "error": self.error,
            "duration_ms": round(self.duration_ms, 1),
        }


CompletionListener = Callable[[SessionReport], None]
_Steps = Callable[[CoachingSession], Awaitable[SessionOutcome]]


class CoachingOrchestrator:
    """Runs capture → inference → speech → playback, at most one session at a time."""

    def __init__(
        self,
        frames: FrameSource,
        vision: VisionCoach,
        speech: SpeechSynthesizer,
        playback: PlaybackController,
        window: ConversationWindow,
        *,
        context: ContextSource | None = None,
        capture_quality: float = CAPTURE_QUALITY,
        max_session_s: float | None = MAX_SESSION_S,
    ) -> None:
        self._frames = frames
        self._vision = vision
        self._speech = speech
        self._playback = playback
        self._window = window
        self._context = context
        self._capture_quality = capture_quality
        self._max_session_s = max_session_s

        self._session: CoachingSession | None = None
        self._task: asyncio.Task | None = None
        self._session_seq = 0
        self._paused = False
        self._listeners: list[CompletionListener] = []
        self._last_context: AmbientContext | None = None
        self._last_advice = ""
        self._reports: deque[SessionReport] = deque(maxlen=REPORT_HISTORY)
        self._outcomes: Counter[str] = Counter()
        self._ignored_triggers = 0

    # ── State exposed to the monitor and the UI ─────────────────

    @property
    def state(self) -> SessionState:
        return self._session.state if self._session else SessionState.IDLE

    @property
    def session_active(self) -> bool:
        return self._session is not None

    @property
    def active_session(self) -> CoachingSession | None:
        return self._session

    @property
    def monitoring_paused(self) -> bool:
        return self._paused

    @property
    def last_report(self) -> SessionReport | None:
        return self._reports[-1] if self._reports else None

    @property
    def window(self) -> ConversationWindow:
        return self._window

    def pause_monitoring(self) -> None:
        self._paused = True

    def resume_monitoring(self) -> None:
        self._paused = False

    def add_completion_listener(self, listener: CompletionListener) -> None:
        self._listeners.append(listener)

    # ── Session control ─────────────────────────────────────────

    def start_session(self, trigger: str) -> CoachingSession | None:
        """Claim the session slot and run the session in the background."""
        session = self._claim(trigger)
        if session is None:
            return None
        self._task = asyncio.create_task(self._drive(session, self._coach_steps))
        return session

    async def run_session(self, trigger: str = TRIGGER_MANUAL) -> SessionReport | None:
        """Run one coaching session to completion; None if one is already active."""
        session = self._claim(trigger)
        if session is None:
            return None
        return await self._drive(session, self._coach_steps)

    async def run_greeting(self, text: str) -> SessionReport | None:
        """Speak a fixed line (no capture, no inference) as a regular session."""
        session = self._claim(TRIGGER_GREETING)
        if session is None:
            return None

        async def steps(s: CoachingSession) -> SessionOutcome:
            await self._speak(s, text)
            return SessionOutcome.COMPLETED

        return await self._drive(session, steps)

    def cancel_active(self, reason: str = "") -> bool:
        session = self._session
        if session is None or session.token.is_cancelled():
            return False
        session.token.signal(reason)
        return True

    async def wait_idle(self) -> None:
        task = self._task
        if task is not None and not task.done():
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def shutdown(self) -> None:
        self.cancel_active("shutdown")
        await self.wait_idle()

    def snapshot(self) -> dict:
        session = self._session
        last = self.last_report
        return {
            "state": self.state.value,
            "session_id": session.id if session else None,
            "trigger": session.trigger if session else None,
            "waiting_for_model": self.state == SessionState.INFERRING,
            "monitoring_paused": self._paused,
            "last_advice": self._last_advice,
            "last_report": last.to_dict() if last else None,
            "sessions_started": self._session_seq,
            "ignored_triggers": self._ignored_triggers,
            "outcomes": dict(self._outcomes),
            "history_messages": len(self._window),
            "context": self._last_context.to_dict() if self._last_context else None,
            "playback": self._playback.debug_snapshot(),
        }

    # ── Internals ───────────────────────────────────────────────

    def _claim(self, trigger: str) -> CoachingSession | None:
        if self._session is not None:
            self._ignored_triggers += 1
            log.debug(
                "session %d still %s; ignoring %s trigger",
                self._session.id,
                self._session.state.value,
                trigger,
            )
            return None
        self._session_seq += 1
        session = CoachingSession(id=self._session_seq, trigger=trigger)
        self._session = session
        log.info("session %d started (%s)", session.id, trigger)
        return session

    async def _drive(self, session: CoachingSession, steps: _Steps) -> SessionReport:
        outcome = SessionOutcome.FAILED
        error = ""
        try:
            if self._max_session_s:
                outcome = await asyncio.wait_for(steps(session), timeout=self._max_session_s)
            else:
                outcome = await steps(session)
        except SessionCancelled as e:
            outcome = SessionOutcome.CANCELLED
            error = e.reason
            self._set_state(session, SessionState.CANCELLED, e.reason)
        except asyncio.TimeoutError:
            outcome = SessionOutcome.TIMED_OUT
            error = f"exceeded {self._max_session_s:.1f}s"
            session.token.signal("timeout")
            log.warning("session %d timed out in %s", session.id, session.state.value)
        except PermissionDeniedError as e:
            error = str(e)
            log.warning("session %d skipped: %s", session.id, e)
        except CoachError as e:
            error = str(e)
            log.warning("session %d failed in %s: %s", session.id, session.state.value, e)
        except asyncio.CancelledError:
            session.token.signal("task cancelled")
            raise
        except Exception as e:
            error = str(e)
            log.exception("session %d crashed in %s", session.id, session.state.value)
        finally:
            await self._playback.stop()
            self._set_state(session, SessionState.IDLE)
            self._session = None
            if self._task is not None and self._task is asyncio.current_task():
                self._task = None

        report = SessionReport(
            session_id=session.id,
            trigger=session.trigger,
            outcome=outcome,
            advice=session.advice,
            error=error,
            duration_ms=(time.monotonic() - session.started_mono) * 1000.0,
        )
        self._reports.append(report)
        self._outcomes[outcome.value] += 1
        log.info("session %d finished: %s", session.id, outcome.value)

        if outcome == SessionOutcome.COMPLETED:
            for listener in self._listeners:
                try:
                    listener(report)
                except Exception:
                    log.exception("completion listener failed")
        return report

    async def _coach_steps(self, session: CoachingSession) -> SessionOutcome:
        token = session.token
        self._refresh_context()

        self._set_state(session, SessionState.CAPTURING)
        frame = await token.guard(
            self._frames.capture_frame(self._capture_quality, include_image=True)
        )
        if not frame.image_b64:
            raise TransientRequestError("capture returned no image")

        self._set_state(session, SessionState.INFERRING)
        snapshot = self._window.snapshot()
        advice = await token.guard(
            self._vision.infer_coaching_text(snapshot, frame.image_b64, token)
        )
        token.raise_if_cancelled()
        advice = (advice or "").strip()
        if not advice:
            log.info("session %d: model returned no advice", session.id)
            return SessionOutcome.NO_ADVICE

        session.advice = advice
        log.info("session %d advice: %s", session.id, advice[:80])

        await self._speak(session, advice)

        # Only advice the user actually heard becomes history.
        self._window.append(
            ConversationMessage.user_frame(frame.image_b64),
            ConversationMessage.assistant(advice),
        )
        self._last_advice = advice
        return SessionOutcome.COMPLETED

    async def _speak(self, session: CoachingSession, text: str) -> None:
        token = session.token
        self._set_state(session, SessionState.SYNTHESIZING)
        audio = await token.guard(self._speech.synthesize_speech(text))

        token.raise_if_cancelled()
        self._set_state(session, SessionState.PLAYING)
        completion = await self._playback.play(audio)
        try:
            result = await token.guard(asyncio.shield(completion))
        except SessionCancelled:
            await self._playback.stop()
            raise

        if result == PlaybackOutcome.ERROR:
            raise TransientRequestError("audio playback failed")
        if result == PlaybackOutcome.STOPPED:
            raise SessionCancelled("playback stopped")

    def _refresh_context(self) -> None:
        if self._context is None:
            return
        try:
            ctx = self._context.current()
        except Exception as e:
            log.warning("ambient context unavailable: %s", e)
            return
        if ctx == self._last_context:
            return
        if self._last_context is not None or len(self._window):
            log.info("ambient context changed; starting a fresh conversation")
        self._last_context = ctx
        self._window.reset(system_prompt=build_system_prompt(ctx))

    def _set_state(self, session: CoachingSession, target: SessionState, reason: str = "") -> None:
        if target == session.state:
            return
        if reason:
            log.info("session %d: %s → %s (%s)", session.id, session.state.value, target.value, reason)
        else:
            log.debug("session %d: %s → %s", session.id, session.state.value, target.value)
        session.state = target
