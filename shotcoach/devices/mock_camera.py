"""Synthetic frame source for running without a camera (``--mock``).

Renders a textured scene that holds still for a while, then "moves" by
shifting to a new random scene, so the stability monitor sees both stable
runs and movement.
"""

from __future__ import annotations

import base64
import random
import time

import numpy as np

from shotcoach.core.collaborators import CapturedFrame
from shotcoach.devices.camera import encode_jpeg


class MockCamera:
    def __init__(
        self,
        size: tuple[int, int] = (640, 480),
        hold_s: float = 8.0,
        seed: int | None = None,
    ) -> None:
        self._w, self._h = size
        self._hold_s = hold_s
        self._rng = np.random.default_rng(seed)
        self._jitter = random.Random(seed)
        self._scene = self._new_scene()
        self._scene_t0 = time.monotonic()

    def shake(self) -> None:
        """Jump to a new scene immediately."""
        self._scene = self._new_scene()
        self._scene_t0 = time.monotonic()

    async def capture_frame(self, quality: float, include_image: bool) -> CapturedFrame:
        if time.monotonic() - self._scene_t0 > self._hold_s:
            self.shake()
        # Small sensor noise keeps sizes close but not identical.
        noise = self._rng.integers(0, 3, size=self._scene.shape, dtype=np.uint8)
        frame = np.clip(self._scene.astype(np.int16) + noise, 0, 255).astype(np.uint8)
        data = encode_jpeg(frame, quality)
        image_b64 = base64.b64encode(data).decode("ascii") if include_image else None
        return CapturedFrame(size_bytes=len(data), image_b64=image_b64)

    def _new_scene(self) -> np.ndarray:
        detail = self._jitter.choice((4, 16, 48, 96))
        base = self._rng.integers(0, 255, size=(self._h // detail + 1, self._w // detail + 1, 3))
        scene = np.kron(base, np.ones((detail, detail, 1)))[: self._h, : self._w]
        return scene.astype(np.uint8)
