"""OpenCV camera frame source.

Frames are grabbed on a worker thread so the event loop never blocks on the
capture device. One capture at a time: the stability monitor and a coaching
session may both ask for a frame.
"""

from __future__ import annotations

import asyncio
import base64
import logging

import cv2
import numpy as np

from shotcoach.core.collaborators import CapturedFrame
from shotcoach.errors import PermissionDeniedError

log = logging.getLogger(__name__)


def encode_jpeg(frame: np.ndarray, quality: float) -> bytes:
    """JPEG-encode a BGR frame; ``quality`` is 0..1 like a camera API."""
    q = int(round(max(0.0, min(1.0, quality)) * 100))
    ok, buf = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), max(1, q)])
    if not ok:
        raise RuntimeError("jpeg encode failed")
    return buf.tobytes()


class OpenCVCamera:
    def __init__(
        self,
        camera_id: int = 0,
        capture_size: tuple[int, int] = (1280, 720),
    ) -> None:
        self._camera_id = camera_id
        self._capture_size = capture_size
        self._cap: cv2.VideoCapture | None = None
        self._lock = asyncio.Lock()

    @property
    def opened(self) -> bool:
        return self._cap is not None

    async def capture_frame(self, quality: float, include_image: bool) -> CapturedFrame:
        async with self._lock:
            was_open = self._cap is not None
            frame = await asyncio.to_thread(self._grab)
        if not was_open:
            # Logged here, not in _grab: log handlers feed an asyncio queue.
            log.info("camera: opened device %d (%dx%d)", self._camera_id, *self._capture_size)
        data = encode_jpeg(frame, quality)
        image_b64 = base64.b64encode(data).decode("ascii") if include_image else None
        return CapturedFrame(size_bytes=len(data), image_b64=image_b64)

    async def close(self) -> None:
        async with self._lock:
            if self._cap is not None:
                await asyncio.to_thread(self._cap.release)
                self._cap = None
                log.info("camera: released")

    def _grab(self) -> np.ndarray:
        if self._cap is None:
            cap = cv2.VideoCapture(self._camera_id)
            if not cap.isOpened():
                cap.release()
                raise PermissionDeniedError(f"camera {self._camera_id} unavailable")
            w, h = self._capture_size
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
            self._cap = cap

        ok, frame = self._cap.read()
        if not ok or frame is None:
            raise PermissionDeniedError("camera returned no frame")
        return frame
