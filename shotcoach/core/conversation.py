"""Bounded coaching conversation history with a pinned system instruction."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal

log = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGES = 20

COACH_SYSTEM_PROMPT = """\
You are a photography coach looking through the user's camera. Each user turn \
carries the current frame. Provide a very short, clear, directional instruction \
to improve the shot. Your response must be under 10 words. For example: \
'Move slightly right.' or 'Tilt camera down.' Do not repeat advice the user \
has already followed; if the shot looks good, say so briefly.\
"""

FRAME_PROMPT = "Here is the current frame. What should I change?"

Role = Literal["system", "user", "assistant"]


@dataclass(slots=True)
class AmbientContext:
    """Where the user is shooting, as reported by the location collaborators."""

    location: str = ""
    points_of_interest: tuple[str, ...] = ()

    @property
    def empty(self) -> bool:
        return not self.location and not self.points_of_interest

    def to_dict(self) -> dict:
        return {
            "location": self.location,
            "points_of_interest": list(self.points_of_interest),
        }


@dataclass(frozen=True, slots=True)
class ConversationMessage:
    """A single message in the coaching history."""

    role: Role
    content: str
    image_b64: str | None = field(default=None, repr=False)

    @classmethod
    def system(cls, content: str) -> ConversationMessage:
        return cls(role="system", content=content)

    @classmethod
    def user_frame(cls, image_b64: str | None) -> ConversationMessage:
        return cls(role="user", content=FRAME_PROMPT, image_b64=image_b64)

    @classmethod
    def assistant(cls, content: str) -> ConversationMessage:
        return cls(role="assistant", content=content)


def build_system_prompt(context: AmbientContext | None = None) -> str:
    """Coaching instructions, extended with the shooting location when known."""
    if context is None or context.empty:
        return COACH_SYSTEM_PROMPT
    lines = [COACH_SYSTEM_PROMPT, ""]
    if context.location:
        lines.append(f"The user is currently at: {context.location}.")
    if context.points_of_interest:
        lines.append("Nearby points of interest: " + ", ".join(context.points_of_interest) + ".")
        lines.append("Suggest framing that features them when relevant.")
    return "\n".join(lines)


class ConversationWindow:
    """Sliding-window history sent as context with every inference call.

    Index 0 holds the system message once one has been pinned; it is never
    evicted. Older turns are dropped a user/assistant pair at a time so the
    remaining history stays turn-aligned.
    """

    def __init__(
        self,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        system_prompt: str = COACH_SYSTEM_PROMPT,
    ) -> None:
        if max_messages < 3:
            raise ValueError("max_messages must leave room for the system message and one turn")
        self._max = max_messages
        self._system_prompt = system_prompt
        self._messages: list[ConversationMessage] = []

    @property
    def max_messages(self) -> int:
        return self._max

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    @property
    def turn_count(self) -> int:
        return sum(1 for m in self._messages if m.role == "user")

    def __len__(self) -> int:
        return len(self._messages)

    def append(self, user: ConversationMessage, assistant: ConversationMessage) -> None:
        if user.role != "user" or assistant.role != "assistant":
            raise ValueError("append expects a user message followed by an assistant message")
        if not self._has_system():
            self._messages.insert(0, ConversationMessage.system(self._system_prompt))
        self._messages.append(user)
        self._messages.append(assistant)
        self._evict()

    def reset(self, system_prompt: str | None = None) -> None:
        self._messages.clear()
        if system_prompt is not None:
            self._system_prompt = system_prompt
        log.info("conversation window reset")

    def snapshot(self) -> tuple[ConversationMessage, ...]:
        """Messages for the next request, system instruction first."""
        if self._has_system():
            return tuple(self._messages)
        return (ConversationMessage.system(self._system_prompt), *self._messages)

    def _has_system(self) -> bool:
        return bool(self._messages) and self._messages[0].role == "system"

    def _evict(self) -> None:
        start = 1 if self._has_system() else 0
        dropped = 0
        while len(self._messages) > self._max and len(self._messages) - start >= 2:
            del self._messages[start : start + 2]
            dropped += 1
        if dropped:
            log.debug("conversation window evicted %d turn(s)", dropped)
