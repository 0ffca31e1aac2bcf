"""One-shot cooperative cancellation signal for a single coaching session."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Awaitable, TypeVar

from shotcoach.errors import SessionCancelled

T = TypeVar("T")


class CancellationToken:
    """Write-once cancel flag with fan-out to every waiter.

    Every suspension point of a session either calls ``raise_if_cancelled``
    before committing an effect, or awaits through ``guard`` so the pending
    operation is aborted the moment the token fires.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = ""

    @property
    def reason(self) -> str:
        return self._reason

    def signal(self, reason: str = "") -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SessionCancelled(self._reason)

    async def guard(self, aw: Awaitable[T]) -> T:
        """Await ``aw`` unless the token fires first.

        If the token fires while ``aw`` is pending, ``aw`` is cancelled and
        ``SessionCancelled`` is raised. A result that lands after the token
        fired is discarded the same way.
        """
        self.raise_if_cancelled()
        task = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await task

        if self._event.is_set():
            _discard(task)
            raise SessionCancelled(self._reason)
        return task.result()


def _discard(task: asyncio.Future) -> None:
    # Mark a late exception as retrieved so asyncio does not log it.
    if task.done() and not task.cancelled():
        task.exception()
