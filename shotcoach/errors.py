"""Error taxonomy shared by the coaching engine and its device adapters."""

from __future__ import annotations


class CoachError(RuntimeError):
    """Base error for coaching engine failures."""


class PermissionDeniedError(CoachError):
    """Raised when a camera or audio device is unavailable or not permitted."""


class TransientRequestError(CoachError):
    """Raised when inference, synthesis or playback fails for reasons other than cancellation."""


class PlaybackBusyError(CoachError):
    """Raised when play() is called while another clip is still playing."""


class SessionCancelled(Exception):
    """Cooperative cancellation of a coaching session.

    Not a CoachError: cancellation is expected control flow and is never
    reported to callers as a failure.
    """

    def __init__(self, reason: str = "") -> None:
        super().__init__(reason or "session cancelled")
        self.reason = reason
