"""Terminal announcer: subscribes to the push channel and plays announcements."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import shlex
from typing import Any, Optional, Sequence

import httpx
import websockets

from .broadcast import envelope
from .models import ChannelEvent
from .playback import DEFAULT_PREROLL_SEC, PlaybackError, PlaybackScheduler
from .queue import QueuedAnnouncement

logger = logging.getLogger(__name__)

DEFAULT_PLAYER_COMMAND = "ffplay -nodisp -autoexit -loglevel quiet -"


def ws_url(base_url: str) -> str:
    """Map the server's HTTP base URL onto its push-channel URL."""

    raw = base_url.rstrip("/")
    if raw.startswith("https://"):
        raw = "wss://" + raw[len("https://") :]
    elif raw.startswith("http://"):
        raw = "ws://" + raw[len("http://") :]
    return raw + "/ws"


class CommandPlayer:
    """Streams ``/audio`` into an external player process's stdin."""

    def __init__(self, base_url: str, command: Sequence[str] | str = DEFAULT_PLAYER_COMMAND, client: Optional[httpx.AsyncClient] = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._command = shlex.split(command) if isinstance(command, str) else list(command)
        if not self._command:
            raise ValueError("Player command must not be empty")
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(30.0, read=None))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def play(self, entry: QueuedAnnouncement) -> None:
        url = self._base_url + entry.audio_reference
        try:
            process = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            raise PlaybackError(f"Cannot start player {self._command[0]!r}: {exc}") from exc

        assert process.stdin is not None
        exited = False
        try:
            try:
                async with self._client.stream("GET", url) as response:
                    if response.is_error:
                        raise PlaybackError(f"Audio request failed with HTTP {response.status_code}")
                    async for chunk in response.aiter_bytes():
                        process.stdin.write(chunk)
                        await process.stdin.drain()
            except (httpx.HTTPError, ConnectionError) as exc:
                raise PlaybackError(f"Audio stream failed: {exc}") from exc
            finally:
                if not process.stdin.is_closing():
                    process.stdin.close()

            code = await process.wait()
            exited = True
        finally:
            # Errors and cancellation must not leave the player running.
            if not exited:
                await _terminate(process)

        if code != 0:
            raise PlaybackError(f"Player exited with status {code}")


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
    await process.wait()


class AnnouncerListener:
    """Keeps a push-channel subscription alive and feeds the playback scheduler."""

    def __init__(
        self,
        base_url: str,
        player: Optional[Any] = None,
        preroll_delay: float = DEFAULT_PREROLL_SEC,
        unlocked: bool = True,
    ) -> None:
        self._url = ws_url(base_url)
        self._player = player or CommandPlayer(base_url)
        self._scheduler = PlaybackScheduler(self._player, preroll_delay, on_finished=self._signal_finished)
        self._unlocked = unlocked
        self._ws: Optional[Any] = None
        self._backoff_base = 2
        self._backoff_max = 60
        self.threshold: Optional[int] = None

    @property
    def scheduler(self) -> PlaybackScheduler:
        return self._scheduler

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Listen until ``stop_event`` is set, reconnecting with backoff."""

        stop_event = stop_event or asyncio.Event()
        if self._unlocked:
            self._scheduler.unlock()

        backoff = 1
        while not stop_event.is_set():
            try:
                async with websockets.connect(self._url) as ws:
                    self._ws = ws
                    backoff = 1
                    logger.info("listener.connected", extra={"url": self._url})
                    await self._consume(ws, stop_event)
            except (OSError, websockets.WebSocketException) as exc:
                logger.warning("listener.connection_error", extra={"error": str(exc)})
            finally:
                self._ws = None
            if stop_event.is_set():
                break
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=backoff)
            except asyncio.TimeoutError:
                pass
            backoff = min(backoff * self._backoff_base, self._backoff_max)

        await self._scheduler.close()

    async def _consume(self, ws: Any, stop_event: asyncio.Event) -> None:
        stopper = asyncio.create_task(stop_event.wait())
        try:
            while True:
                receiver = asyncio.create_task(ws.recv())
                done, _ = await asyncio.wait({receiver, stopper}, return_when=asyncio.FIRST_COMPLETED)
                if stopper in done:
                    receiver.cancel()
                    return
                self.handle_message(receiver.result())
        finally:
            stopper.cancel()

    def handle_message(self, raw: str | bytes) -> None:
        """Log one channel message to the activity log and act on it."""

        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("listener.invalid_json", extra={"raw": str(raw)[:100]})
            return
        if not isinstance(message, dict):
            return

        event = message.get("event")
        data = message.get("data")
        if event == ChannelEvent.DONATION.value and isinstance(data, dict):
            logger.info(
                "listener.donation",
                extra={
                    "donor": data.get("donor"),
                    "amount": data.get("displayAmount"),
                    "original": data.get("original"),
                    "normalized": data.get("normalizedText"),
                },
            )
            self._scheduler.enqueue(data)
        elif event == ChannelEvent.DONATION_NO_MESSAGE.value and isinstance(data, dict):
            logger.info(
                "listener.donation_nomessage",
                extra={"donor": data.get("donor"), "amount": data.get("amount"), "asset": data.get("asset")},
            )
        elif event == ChannelEvent.THRESHOLD_UPDATE.value:
            self.threshold = data if isinstance(data, int) else None
            logger.info("listener.threshold", extra={"threshold": data})
        else:
            logger.debug("listener.unknown_event", extra={"event": event})

    async def _signal_finished(self, entry: QueuedAnnouncement) -> None:
        ws = self._ws
        if ws is None:
            return
        await ws.send(json.dumps(envelope(ChannelEvent.AUDIO_FINISHED)))


async def set_remote_threshold(base_url: str, value: int, timeout: float = 10.0) -> int:
    """Push a new threshold over the channel and return the value the server confirms."""

    async with websockets.connect(ws_url(base_url)) as ws:
        await ws.send(json.dumps(envelope(ChannelEvent.SET_THRESHOLD, str(value))))

        async def _await_confirmation() -> int:
            while True:
                message = json.loads(await ws.recv())
                if message.get("event") == ChannelEvent.THRESHOLD_UPDATE.value and message.get("data") == value:
                    return value

        return await asyncio.wait_for(_await_confirmation(), timeout=timeout)
