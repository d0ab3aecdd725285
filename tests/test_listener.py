import asyncio
import json
import sys

import httpx
import pytest

from donation_tts.listener import AnnouncerListener, CommandPlayer, ws_url
from donation_tts.playback import PlaybackError, PlayerState
from donation_tts.queue import QueuedAnnouncement

SLEEPING_PLAYER = [sys.executable, "-c", "import time; time.sleep(30)"]


class SilentPlayer:
    def __init__(self) -> None:
        self.played: list[str] = []

    async def play(self, entry) -> None:
        self.played.append(entry.payment_id)


@pytest.mark.parametrize(
    ("base", "expected"),
    [
        ("http://localhost:3000", "ws://localhost:3000/ws"),
        ("https://tts.example.com/", "wss://tts.example.com/ws"),
        ("ws://127.0.0.1:9000", "ws://127.0.0.1:9000/ws"),
    ],
)
def test_ws_url(base: str, expected: str) -> None:
    assert ws_url(base) == expected


def _message(event: str, data) -> str:
    return json.dumps({"event": event, "data": data})


@pytest.mark.asyncio
async def test_listener_queues_donations_until_unlocked() -> None:
    player = SilentPlayer()
    listener = AnnouncerListener("http://localhost:3000", player, preroll_delay=0, unlocked=False)

    listener.handle_message(
        _message("donation", {"paymentID": "p1", "donor": "Ali", "audioReference": "/audio?text=x", "normalizedText": "x"})
    )
    listener.handle_message(_message("donation", {"paymentID": "p2", "donor": "Sami", "audioReference": None}))
    listener.handle_message(_message("donation_nomessage", {"donor": "Ali", "amount": 3, "asset": "roses"}))

    assert listener.scheduler.state is PlayerState.LOCKED
    assert listener.scheduler.pending == 1

    listener.scheduler.unlock()
    await listener.scheduler.wait_idle()

    assert player.played == ["p1"]
    await listener.scheduler.close()


def test_listener_tracks_threshold_and_ignores_noise() -> None:
    listener = AnnouncerListener("http://localhost:3000", SilentPlayer(), unlocked=False)

    listener.handle_message("{broken")
    listener.handle_message(json.dumps(["not", "an", "envelope"]))
    listener.handle_message(_message("threshold_update", 12))

    assert listener.threshold == 12
    assert listener.scheduler.pending == 0


@pytest.fixture
def spawned(monkeypatch) -> list:
    processes: list = []
    real_exec = asyncio.create_subprocess_exec

    async def tracking_exec(*args, **kwargs):
        process = await real_exec(*args, **kwargs)
        processes.append(process)
        return process

    monkeypatch.setattr(asyncio, "create_subprocess_exec", tracking_exec)
    return processes


def _entry() -> QueuedAnnouncement:
    return QueuedAnnouncement(payment_id="p1", donor="Ali", audio_reference="/audio?text=x")


@pytest.mark.asyncio
async def test_command_player_kills_child_when_cancelled(spawned: list) -> None:
    requested = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        requested.set()
        await asyncio.Event().wait()
        return httpx.Response(200, content=b"")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        player = CommandPlayer("http://localhost:3000", SLEEPING_PLAYER, client=client)
        task = asyncio.create_task(player.play(_entry()))
        await asyncio.wait_for(requested.wait(), timeout=5)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    assert len(spawned) == 1
    assert spawned[0].returncode is not None


@pytest.mark.asyncio
async def test_command_player_kills_child_on_audio_error(spawned: list) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/audio"
        return httpx.Response(500, text="Server error during TTS generation")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        player = CommandPlayer("http://localhost:3000", SLEEPING_PLAYER, client=client)
        with pytest.raises(PlaybackError, match="HTTP 500"):
            await asyncio.wait_for(player.play(_entry()), timeout=5)

    assert spawned[0].returncode is not None
