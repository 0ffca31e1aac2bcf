"""OpenAI-compatible vision coaching and speech synthesis over httpx."""

from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx
from pydantic import BaseModel, Field, ValidationError

from shotcoach.core.cancellation import CancellationToken
from shotcoach.core.conversation import ConversationMessage
from shotcoach.errors import TransientRequestError

log = logging.getLogger(__name__)


class _ChatMessage(BaseModel):
    role: str = "assistant"
    content: str | None = None


class _ChatChoice(BaseModel):
    index: int = 0
    message: _ChatMessage = Field(default_factory=_ChatMessage)
    finish_reason: str | None = None


class ChatCompletion(BaseModel):
    """Subset of the chat completion response the coach reads."""

    id: str = ""
    model: str = ""
    choices: list[_ChatChoice] = Field(default_factory=list)

    @property
    def text(self) -> str:
        if not self.choices:
            return ""
        return (self.choices[0].message.content or "").strip()


def message_to_wire(msg: ConversationMessage) -> dict[str, Any]:
    """Render one history message in chat-completions format."""
    if msg.image_b64 is None:
        return {"role": msg.role, "content": msg.content}
    return {
        "role": msg.role,
        "content": [
            {"type": "text", "text": msg.content},
            {
                "type": "image_url",
                "image_url": {"url": f"data:image/jpeg;base64,{msg.image_b64}"},
            },
        ],
    }


class OpenAIClient:
    """Thin async wrapper around /chat/completions and /audio/speech."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.openai.com/v1",
        vision_model: str = "gpt-4.1-nano",
        max_tokens: int = 100,
        tts_model: str = "tts-1",
        voice: str = "alloy",
        timeout_s: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._vision_model = vision_model
        self._max_tokens = max_tokens
        self._tts_model = tts_model
        self._voice = voice
        self._timeout = httpx.Timeout(timeout_s, connect=5.0)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        if self._client is not None:
            return
        if not self._api_key:
            log.warning("OPENAI_API_KEY not set; coaching requests will fail")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self._api_key}"},
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def infer_coaching_text(
        self,
        snapshot: Sequence[ConversationMessage],
        image_b64: str,
        cancel: CancellationToken,
    ) -> str:
        """Ask the vision model for one short instruction about the frame.

        The HTTP request is aborted as soon as ``cancel`` fires; a reply that
        arrives after that is dropped.
        """
        messages = [message_to_wire(m) for m in snapshot]
        messages.append(message_to_wire(ConversationMessage.user_frame(image_b64)))
        body = {
            "model": self._vision_model,
            "messages": messages,
            "max_tokens": self._max_tokens,
        }
        resp = await cancel.guard(self._post("/chat/completions", body))
        try:
            completion = ChatCompletion.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise TransientRequestError(f"invalid chat completion: {e}") from e
        log.debug("vision reply (%s): %s", completion.model, completion.text[:80])
        return completion.text

    async def synthesize_speech(self, text: str) -> bytes:
        """Return raw 24 kHz 16-bit mono PCM for ``text``."""
        body = {
            "model": self._tts_model,
            "voice": self._voice,
            "input": text,
            "response_format": "pcm",
        }
        resp = await self._post("/audio/speech", body)
        audio = resp.content
        if not audio:
            raise TransientRequestError("speech synthesis returned no audio")
        return audio

    async def _post(self, path: str, body: dict) -> httpx.Response:
        if self._client is None:
            raise TransientRequestError("client not started")
        try:
            resp = await self._client.post(path, json=body)
        except httpx.HTTPError as e:
            raise TransientRequestError(f"{path} request failed: {e}") from e
        if resp.status_code != 200:
            raise TransientRequestError(f"{path} returned {resp.status_code}: {resp.text[:200]}")
        return resp
