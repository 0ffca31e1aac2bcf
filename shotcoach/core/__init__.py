"""Coaching engine: cancellation, history, playback, stability and sessions."""

from shotcoach.core.cancellation import CancellationToken
from shotcoach.core.conversation import (
    AmbientContext,
    ConversationMessage,
    ConversationWindow,
)
from shotcoach.core.orchestrator import (
    CoachingOrchestrator,
    CoachingSession,
    SessionOutcome,
    SessionReport,
    SessionState,
)
from shotcoach.core.playback import PlaybackController, PlaybackOutcome
from shotcoach.core.stability import (
    ByteSizeEstimator,
    FrameStabilityMonitor,
    StabilitySample,
    StabilityState,
    TickResult,
)
from shotcoach.core.welcome_gate import WelcomeGate

__all__ = [
    "AmbientContext",
    "ByteSizeEstimator",
    "CancellationToken",
    "CoachingOrchestrator",
    "CoachingSession",
    "ConversationMessage",
    "ConversationWindow",
    "FrameStabilityMonitor",
    "PlaybackController",
    "PlaybackOutcome",
    "SessionOutcome",
    "SessionReport",
    "SessionState",
    "StabilitySample",
    "StabilityState",
    "TickResult",
    "WelcomeGate",
]
