"""Single-owner audio playback with a completion future per clip."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Protocol

from shotcoach.errors import PlaybackBusyError

log = logging.getLogger(__name__)


class PlaybackOutcome(str, Enum):
    FINISHED = "finished"
    STOPPED = "stopped"
    ERROR = "error"


class LoadedAudio(Protocol):
    """One loaded clip. ``play`` returns when the clip has played to the end."""

    async def play(self) -> None: ...
    async def stop(self) -> None: ...
    async def unload(self) -> None: ...


class AudioSink(Protocol):
    async def load(self, audio: bytes) -> LoadedAudio: ...


class PlaybackController:
    """Owns at most one loaded clip and resolves its completion exactly once.

    The clip is released by whichever of natural completion or ``stop()``
    claims it first; the other path sees no handle and does nothing.
    """

    def __init__(self, sink: AudioSink) -> None:
        self._sink = sink
        self._handle: LoadedAudio | None = None
        self._pending: asyncio.Future[PlaybackOutcome] | None = None
        self._drive_task: asyncio.Task | None = None
        self._plays = 0
        self._releases = 0

    @property
    def playing(self) -> bool:
        return self._handle is not None

    @property
    def release_count(self) -> int:
        return self._releases

    async def play(self, audio: bytes) -> asyncio.Future[PlaybackOutcome]:
        if self._busy():
            raise PlaybackBusyError("a clip is already playing")
        loop = asyncio.get_running_loop()
        handle = await self._sink.load(audio)
        if self._busy():
            # Another caller won the race while we were loading.
            await handle.unload()
            raise PlaybackBusyError("a clip is already playing")

        fut: asyncio.Future[PlaybackOutcome] = loop.create_future()
        self._handle = handle
        self._pending = fut
        self._plays += 1
        self._drive_task = asyncio.create_task(self._drive(handle, fut))
        log.debug("playback started (%d bytes)", len(audio))
        return fut

    async def stop(self) -> None:
        handle = self._claim(self._handle)
        if handle is None:
            # Natural completion owns the clip; wait until it is released.
            task = self._drive_task
            if task is not None and task is not asyncio.current_task():
                await asyncio.wait({task})
            return
        fut = self._pending
        task = self._drive_task
        self._pending = None
        self._drive_task = None

        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        try:
            await handle.stop()
        except Exception:
            log.exception("audio stop failed")
        await self._release(handle)
        _resolve(fut, PlaybackOutcome.STOPPED)
        log.info("playback stopped")

    def debug_snapshot(self) -> dict:
        return {
            "playing": self.playing,
            "plays": self._plays,
            "releases": self._releases,
        }

    async def _drive(self, handle: LoadedAudio, fut: asyncio.Future[PlaybackOutcome]) -> None:
        try:
            await handle.play()
            outcome = PlaybackOutcome.FINISHED
        except asyncio.CancelledError:
            # stop() owns release and resolution.
            raise
        except Exception as e:
            log.warning("playback failed: %s", e)
            outcome = PlaybackOutcome.ERROR

        if self._claim(handle) is None:
            return
        self._pending = None
        await self._release(handle)
        if self._drive_task is asyncio.current_task():
            self._drive_task = None
        _resolve(fut, outcome)

    def _busy(self) -> bool:
        if self._handle is not None:
            return True
        task = self._drive_task
        return task is not None and not task.done()

    def _claim(self, handle: LoadedAudio | None) -> LoadedAudio | None:
        if handle is None or self._handle is not handle:
            return None
        self._handle = None
        return handle

    async def _release(self, handle: LoadedAudio) -> None:
        self._releases += 1
        try:
            await handle.unload()
        except Exception:
            log.exception("audio unload failed")


def _resolve(fut: asyncio.Future[PlaybackOutcome] | None, outcome: PlaybackOutcome) -> None:
    if fut is not None and not fut.done():
        fut.set_result(outcome)
