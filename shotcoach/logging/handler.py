"""Log records streamed to the UI over /ws/logs, one JSON object per record."""

from __future__ import annotations

import asyncio
import json
import logging

LOG_QUEUE_MAX = 1000

log_queue: asyncio.Queue[str] = asyncio.Queue(maxsize=LOG_QUEUE_MAX)


class WebSocketLogHandler(logging.Handler):
    """Queue records for the UI; records are dropped while nobody is reading."""

    def __init__(self, queue: asyncio.Queue[str] | None = None, level: int = logging.INFO) -> None:
        super().__init__(level)
        self._queue = log_queue if queue is None else queue
        self.dropped = 0

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = json.dumps(
                {
                    "ts": round(record.created, 3),
                    "level": record.levelname,
                    "logger": record.name,
                    "msg": record.getMessage(),
                }
            )
        except Exception:
            self.handleError(record)
            return
        try:
            self._queue.put_nowait(entry)
        except asyncio.QueueFull:
            self.dropped += 1
