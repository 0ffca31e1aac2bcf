"""One-shot latch that holds back stability monitoring until the greeting is done."""

from __future__ import annotations

import asyncio
import logging

log = logging.getLogger(__name__)


class WelcomeGate:
    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def fired(self) -> bool:
        return self._event.is_set()

    def fire(self) -> None:
        if self._event.is_set():
            return
        self._event.set()
        log.info("welcome gate open; stability monitoring enabled")

    async def wait(self) -> None:
        await self._event.wait()
