"""Contracts the coaching engine expects from devices and remote services."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, Sequence

if TYPE_CHECKING:
    from shotcoach.core.cancellation import CancellationToken
    from shotcoach.core.conversation import AmbientContext, ConversationMessage


@dataclass(slots=True)
class CapturedFrame:
    """A JPEG-encoded camera frame."""

    size_bytes: int
    image_b64: str | None = field(default=None, repr=False)


class FrameSource(Protocol):
    async def capture_frame(self, quality: float, include_image: bool) -> CapturedFrame: ...


class VisionCoach(Protocol):
    async def infer_coaching_text(
        self,
        snapshot: Sequence[ConversationMessage],
        image_b64: str,
        cancel: CancellationToken,
    ) -> str: ...


class SpeechSynthesizer(Protocol):
    async def synthesize_speech(self, text: str) -> bytes: ...


class ContextSource(Protocol):
    def current(self) -> AmbientContext: ...
