"""ALSA ``aplay`` audio sink for raw PCM speech clips."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil

from shotcoach.errors import PermissionDeniedError

log = logging.getLogger(__name__)

SAMPLE_RATE = 24000
CHANNELS = 1


class AplayClip:
    """One PCM clip; ``play`` spawns aplay and returns when it exits."""

    def __init__(self, pcm: bytes, *, device: str, sample_rate: int) -> None:
        self._pcm = pcm
        self._device = device
        self._sample_rate = sample_rate
        self._proc: asyncio.subprocess.Process | None = None
        self._stopped = False

    async def play(self) -> None:
        if self._pcm is None:
            raise RuntimeError("clip already unloaded")
        cmd = [
            "aplay",
            "-q",
            "-D",
            self._device,
            "-c",
            str(CHANNELS),
            "-r",
            str(self._sample_rate),
            "-f",
            "S16_LE",
            "-t",
            "raw",
        ]
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        self._proc = proc
        _, stderr = await proc.communicate(self._pcm)
        if proc.returncode != 0 and not self._stopped:
            msg = (stderr or b"").decode("utf-8", errors="replace").strip()
            raise RuntimeError(f"aplay exited {proc.returncode}: {msg[:200]}")

    async def stop(self) -> None:
        self._stopped = True
        proc = self._proc
        if proc is None or proc.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            proc.terminate()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(proc.wait(), timeout=0.3)
        if proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()

    async def unload(self) -> None:
        await self.stop()
        self._proc = None
        self._pcm = None


class AplaySink:
    def __init__(self, device: str = "default", sample_rate: int = SAMPLE_RATE) -> None:
        self._device = device
        self._sample_rate = sample_rate

    async def load(self, audio: bytes) -> AplayClip:
        if shutil.which("aplay") is None:
            raise PermissionDeniedError("aplay not found; speech playback disabled")
        return AplayClip(audio, device=self._device, sample_rate=self._sample_rate)
