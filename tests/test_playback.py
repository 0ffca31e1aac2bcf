"""Tests for PlaybackController ownership, stop races and completion futures."""

from __future__ import annotations

import asyncio

import pytest

from shotcoach.core.playback import PlaybackController, PlaybackOutcome
from shotcoach.errors import PlaybackBusyError


class FakeClip:
    def __init__(self, *, auto_finish: bool, fail: bool = False) -> None:
        self.finish = asyncio.Event()
        if auto_finish:
            self.finish.set()
        self.fail = fail
        self.plays = 0
        self.stops = 0
        self.unloads = 0

    async def play(self) -> None:
        self.plays += 1
        await self.finish.wait()
        if self.fail:
            raise RuntimeError("device lost")

    async def stop(self) -> None:
        self.stops += 1

    async def unload(self) -> None:
        self.unloads += 1


class FakeSink:
    def __init__(self, *, auto_finish: bool = True, fail: bool = False) -> None:
        self.auto_finish = auto_finish
        self.fail = fail
        self.clips: list[FakeClip] = []

    async def load(self, audio: bytes) -> FakeClip:
        clip = FakeClip(auto_finish=self.auto_finish, fail=self.fail)
        self.clips.append(clip)
        return clip


@pytest.mark.asyncio
async def test_natural_finish_resolves_finished_and_releases_once():
    sink = FakeSink()
    pc = PlaybackController(sink)

    fut = await pc.play(b"pcm")
    assert await asyncio.wait_for(fut, timeout=1.0) == PlaybackOutcome.FINISHED

    clip = sink.clips[0]
    assert clip.plays == 1
    assert clip.unloads == 1
    assert not pc.playing


@pytest.mark.asyncio
async def test_stop_after_natural_finish_is_a_noop():
    sink = FakeSink()
    pc = PlaybackController(sink)

    fut = await pc.play(b"pcm")
    await asyncio.wait_for(fut, timeout=1.0)

    await pc.stop()
    await pc.stop()

    clip = sink.clips[0]
    assert clip.unloads == 1
    assert clip.stops == 0
    assert pc.release_count == 1
    assert fut.result() == PlaybackOutcome.FINISHED


@pytest.mark.asyncio
async def test_stop_during_playback_resolves_stopped():
    sink = FakeSink(auto_finish=False)
    pc = PlaybackController(sink)

    fut = await pc.play(b"pcm")
    await asyncio.sleep(0)
    assert pc.playing

    await pc.stop()

    assert fut.done()
    assert fut.result() == PlaybackOutcome.STOPPED
    clip = sink.clips[0]
    assert clip.stops == 1
    assert clip.unloads == 1
    assert not pc.playing


@pytest.mark.asyncio
async def test_stop_racing_natural_finish_releases_once():
    sink = FakeSink(auto_finish=False)
    pc = PlaybackController(sink)

    fut = await pc.play(b"pcm")
    await asyncio.sleep(0)
    clip = sink.clips[0]

    clip.finish.set()
    await asyncio.gather(pc.stop(), pc.stop())
    await asyncio.sleep(0)

    assert fut.done()
    assert fut.result() in (PlaybackOutcome.FINISHED, PlaybackOutcome.STOPPED)
    assert clip.unloads == 1
    assert pc.release_count == 1


@pytest.mark.asyncio
async def test_second_play_while_playing_is_rejected():
    sink = FakeSink(auto_finish=False)
    pc = PlaybackController(sink)

    await pc.play(b"one")
    with pytest.raises(PlaybackBusyError):
        await pc.play(b"two")
    assert len(sink.clips) == 1

    await pc.stop()


@pytest.mark.asyncio
async def test_device_error_resolves_error_and_releases():
    sink = FakeSink(fail=True)
    pc = PlaybackController(sink)

    fut = await pc.play(b"pcm")
    assert await asyncio.wait_for(fut, timeout=1.0) == PlaybackOutcome.ERROR
    assert sink.clips[0].unloads == 1
    assert not pc.playing


@pytest.mark.asyncio
async def test_can_play_again_after_stop():
    sink = FakeSink(auto_finish=False)
    pc = PlaybackController(sink)

    await pc.play(b"one")
    await pc.stop()

    sink.auto_finish = True
    fut = await pc.play(b"two")
    assert await asyncio.wait_for(fut, timeout=1.0) == PlaybackOutcome.FINISHED
    assert pc.debug_snapshot() == {"playing": False, "plays": 2, "releases": 2}


class SlowUnloadClip(FakeClip):
    def __init__(self) -> None:
        super().__init__(auto_finish=True)
        self.unload_started = asyncio.Event()
        self.unload_release = asyncio.Event()

    async def unload(self) -> None:
        self.unload_started.set()
        await self.unload_release.wait()
        self.unloads += 1


class SlowUnloadSink:
    def __init__(self) -> None:
        self.clips: list[SlowUnloadClip] = []

    async def load(self, audio: bytes) -> SlowUnloadClip:
        clip = SlowUnloadClip()
        self.clips.append(clip)
        return clip


@pytest.mark.asyncio
async def test_stop_waits_for_release_already_in_progress():
    sink = SlowUnloadSink()
    pc = PlaybackController(sink)

    fut = await pc.play(b"pcm")
    clip = sink.clips[0]
    await asyncio.wait_for(clip.unload_started.wait(), timeout=1.0)

    stopper = asyncio.create_task(pc.stop())
    await asyncio.sleep(0.01)
    assert not stopper.done()
    with pytest.raises(PlaybackBusyError):
        await pc.play(b"next")

    clip.unload_release.set()
    await asyncio.wait_for(stopper, timeout=1.0)

    assert fut.result() == PlaybackOutcome.FINISHED
    assert clip.unloads == 1
    assert clip.stops == 0
    assert pc.release_count == 1
    assert len(sink.clips) == 1
