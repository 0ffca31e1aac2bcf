"""Tests for CancellationToken signalling and guarded awaits."""

from __future__ import annotations

import asyncio

import pytest

from shotcoach.core.cancellation import CancellationToken
from shotcoach.errors import SessionCancelled


def test_signal_is_idempotent_and_keeps_first_reason():
    token = CancellationToken()
    assert not token.is_cancelled()

    token.signal("movement")
    token.signal("timeout")

    assert token.is_cancelled()
    assert token.reason == "movement"
    with pytest.raises(SessionCancelled, match="movement"):
        token.raise_if_cancelled()


@pytest.mark.asyncio
async def test_signal_wakes_every_waiter():
    token = CancellationToken()
    waiters = [asyncio.create_task(token.wait()) for _ in range(3)]
    await asyncio.sleep(0)
    assert not any(w.done() for w in waiters)

    token.signal()
    await asyncio.wait_for(asyncio.gather(*waiters), timeout=1.0)

    # Later waiters return immediately.
    await asyncio.wait_for(token.wait(), timeout=0.1)


@pytest.mark.asyncio
async def test_guard_returns_result_when_not_cancelled():
    token = CancellationToken()

    async def work() -> str:
        await asyncio.sleep(0)
        return "done"

    assert await token.guard(work()) == "done"


@pytest.mark.asyncio
async def test_guard_propagates_errors_from_the_awaitable():
    token = CancellationToken()

    async def work() -> str:
        raise ValueError("boom")

    with pytest.raises(ValueError, match="boom"):
        await token.guard(work())


@pytest.mark.asyncio
async def test_guard_aborts_pending_work_when_signalled():
    token = CancellationToken()
    aborted = asyncio.Event()

    async def slow() -> str:
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            aborted.set()
            raise
        return "late"

    async def cancel_soon() -> None:
        await asyncio.sleep(0.01)
        token.signal("movement")

    asyncio.create_task(cancel_soon())
    with pytest.raises(SessionCancelled):
        await asyncio.wait_for(token.guard(slow()), timeout=1.0)
    assert aborted.is_set()


@pytest.mark.asyncio
async def test_guard_discards_result_that_lands_after_signal():
    token = CancellationToken()

    async def racing() -> str:
        token.signal("movement")
        return "late advice"

    with pytest.raises(SessionCancelled):
        await token.guard(racing())


@pytest.mark.asyncio
async def test_guard_refuses_to_start_once_cancelled():
    token = CancellationToken()
    token.signal()
    started = False

    async def work() -> None:
        nonlocal started
        started = True

    coro = work()
    with pytest.raises(SessionCancelled):
        await token.guard(coro)
    coro.close()
    assert started is False
