import asyncio

import pytest

from donation_tts.playback import PlaybackError, PlaybackScheduler, PlayerState
from donation_tts.queue import QueuedAnnouncement


def _event(idx: int, audio: bool = True) -> dict:
    return {
        "paymentID": f"p{idx}",
        "donor": f"Donor {idx}",
        "normalizedText": f"text {idx}",
        "audioReference": f"/audio?text=text%20{idx}" if audio else None,
    }


class FakePlayer:
    """Records playback order and asserts nothing overlaps."""

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.fail_on = fail_on or set()
        self.played: list[str] = []
        self.active = 0
        self.max_active = 0
        self.log: list[str] = []

    async def play(self, entry: QueuedAnnouncement) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.log.append(f"play:{entry.payment_id}")
        try:
            await asyncio.sleep(0)
            self.played.append(entry.payment_id)
            if entry.payment_id in self.fail_on:
                raise PlaybackError("decode error")
        finally:
            self.active -= 1


def _recording_sleep(log: list[str], delays: list[float]):
    async def _sleep(seconds: float) -> None:
        delays.append(seconds)
        log.append(f"preroll:{seconds}")
        await asyncio.sleep(0)

    return _sleep


@pytest.mark.asyncio
async def test_scheduler_plays_fifo_one_at_a_time_with_preroll() -> None:
    player = FakePlayer()
    delays: list[float] = []
    finished: list[str] = []

    async def on_finished(entry: QueuedAnnouncement) -> None:
        finished.append(entry.payment_id)

    scheduler = PlaybackScheduler(
        player,
        preroll_delay=4.0,
        on_finished=on_finished,
        sleep=_recording_sleep(player.log, delays),
    )
    scheduler.unlock()
    for i in range(4):
        assert scheduler.enqueue(_event(i)) is True

    await asyncio.wait_for(scheduler.wait_idle(), timeout=1)

    assert player.played == ["p0", "p1", "p2", "p3"]
    assert finished == ["p0", "p1", "p2", "p3"]
    assert player.max_active == 1
    assert delays == [4.0] * 4
    assert player.log == [
        "preroll:4.0", "play:p0",
        "preroll:4.0", "play:p1",
        "preroll:4.0", "play:p2",
        "preroll:4.0", "play:p3",
    ]
    assert scheduler.state is PlayerState.IDLE


@pytest.mark.asyncio
async def test_scheduler_error_does_not_stall_queue() -> None:
    player = FakePlayer(fail_on={"p1"})
    finished: list[str] = []

    async def on_finished(entry: QueuedAnnouncement) -> None:
        finished.append(entry.payment_id)

    scheduler = PlaybackScheduler(player, preroll_delay=0, on_finished=on_finished)
    scheduler.unlock()
    for i in range(3):
        scheduler.enqueue(_event(i))

    await asyncio.wait_for(scheduler.wait_idle(), timeout=1)

    assert player.played == ["p0", "p1", "p2"]
    assert finished == ["p0", "p1", "p2"]


@pytest.mark.asyncio
async def test_scheduler_holds_queue_until_unlocked() -> None:
    player = FakePlayer()
    scheduler = PlaybackScheduler(player, preroll_delay=0)

    scheduler.enqueue(_event(0))
    scheduler.enqueue(_event(1))
    await asyncio.sleep(0)

    assert scheduler.state is PlayerState.LOCKED
    assert scheduler.pending == 2
    assert player.played == []

    scheduler.unlock()
    await asyncio.wait_for(scheduler.wait_idle(), timeout=1)
    assert player.played == ["p0", "p1"]


@pytest.mark.asyncio
async def test_scheduler_drops_events_without_audio() -> None:
    player = FakePlayer()
    scheduler = PlaybackScheduler(player, preroll_delay=0)
    scheduler.unlock()

    assert scheduler.enqueue(_event(0, audio=False)) is False
    assert scheduler.pending == 0
    await asyncio.wait_for(scheduler.wait_idle(), timeout=1)
    assert player.played == []


@pytest.mark.asyncio
async def test_scheduler_enters_preroll_immediately_on_dequeue() -> None:
    gate = asyncio.Event()

    async def blocked_sleep(_: float) -> None:
        await gate.wait()

    player = FakePlayer()
    scheduler = PlaybackScheduler(player, preroll_delay=4.0, sleep=blocked_sleep)
    scheduler.unlock()
    scheduler.enqueue(_event(0))
    scheduler.enqueue(_event(1))

    assert scheduler.state is PlayerState.PREROLL
    assert scheduler.is_playing is True
    assert scheduler.pending == 1

    gate.set()
    await asyncio.wait_for(scheduler.wait_idle(), timeout=1)
    assert player.played == ["p0", "p1"]


@pytest.mark.asyncio
async def test_scheduler_finish_signal_failure_still_advances() -> None:
    player = FakePlayer()

    async def broken_signal(entry: QueuedAnnouncement) -> None:
        raise ConnectionError("socket closed")

    scheduler = PlaybackScheduler(player, preroll_delay=0, on_finished=broken_signal)
    scheduler.unlock()
    scheduler.enqueue(_event(0))
    scheduler.enqueue(_event(1))

    await asyncio.wait_for(scheduler.wait_idle(), timeout=1)
    assert player.played == ["p0", "p1"]


@pytest.mark.asyncio
async def test_scheduler_close_cancels_in_flight_playback() -> None:
    started = asyncio.Event()

    class HangingPlayer:
        async def play(self, entry: QueuedAnnouncement) -> None:
            started.set()
            await asyncio.Event().wait()

    scheduler = PlaybackScheduler(HangingPlayer(), preroll_delay=0)
    scheduler.unlock()
    scheduler.enqueue(_event(0))
    scheduler.enqueue(_event(1))
    await asyncio.wait_for(started.wait(), timeout=1)

    await scheduler.close()

    assert scheduler.pending == 0
    assert scheduler.state is PlayerState.IDLE
