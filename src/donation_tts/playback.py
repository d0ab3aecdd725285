"""Per-client sequential playback scheduler."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol

from .queue import PlaybackQueue, QueuedAnnouncement

logger = logging.getLogger(__name__)

DEFAULT_PREROLL_SEC = 4.0

FinishedCallback = Callable[[QueuedAnnouncement], Awaitable[None]]
Sleeper = Callable[[float], Awaitable[Any]]


class PlaybackError(RuntimeError):
    """Raised by players when an audio resource cannot be played."""


class AudioPlayer(Protocol):
    """Plays the audio behind an announcement's reference to completion."""

    async def play(self, entry: QueuedAnnouncement) -> None:
        ...


class PlayerState(str, Enum):
    """Scheduler states.

    ``LOCKED -> IDLE`` on ``unlock``; ``IDLE -> PREROLL`` on dequeue;
    ``PREROLL -> PLAYING`` once the pre-roll delay elapses;
    ``PLAYING -> IDLE`` on completion or error.
    """

    LOCKED = "locked"
    IDLE = "idle"
    PREROLL = "preroll"
    PLAYING = "playing"


class PlaybackScheduler:
    """Plays queued announcements one at a time, in arrival order.

    Nothing is dequeued until ``unlock`` is called. A failing player counts
    as a finished playback, so the queue always advances.
    """

    def __init__(
        self,
        player: AudioPlayer,
        preroll_delay: float = DEFAULT_PREROLL_SEC,
        on_finished: Optional[FinishedCallback] = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._player = player
        self._preroll_delay = preroll_delay
        self._on_finished = on_finished
        self._sleep = sleep
        self._queue = PlaybackQueue()
        self._state = PlayerState.LOCKED
        self._current: Optional[asyncio.Task[None]] = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def state(self) -> PlayerState:
        return self._state

    @property
    def unlocked(self) -> bool:
        return self._state is not PlayerState.LOCKED

    @property
    def is_playing(self) -> bool:
        return self._state in (PlayerState.PREROLL, PlayerState.PLAYING)

    @property
    def pending(self) -> int:
        return len(self._queue)

    def preview(self, limit: Optional[int] = None) -> list[QueuedAnnouncement]:
        return self._queue.preview(limit)

    def enqueue(self, data: dict[str, Any]) -> bool:
        """Queue a broadcast ``donation`` payload; return ``False`` if it was dropped."""

        entry = QueuedAnnouncement.from_wire(data)
        if entry is None:
            logger.warning("playback.missing_audio", extra={"id": data.get("paymentID")})
            return False
        self._queue.push(entry)
        self._idle.clear()
        logger.debug("playback.enqueued", extra={"id": entry.payment_id, "pending": len(self._queue)})
        self._try_dequeue()
        return True

    def unlock(self) -> None:
        if self._state is PlayerState.LOCKED:
            self._state = PlayerState.IDLE
            logger.info("playback.unlocked", extra={"pending": len(self._queue)})
        self._try_dequeue()

    async def wait_idle(self) -> None:
        """Wait until the queue is drained and nothing is playing."""

        await self._idle.wait()

    async def close(self) -> None:
        """Cancel the playback in flight and drop everything queued."""

        self._queue.clear()
        task = self._current
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self.is_playing:
            self._state = PlayerState.IDLE
        self._current = None
        self._idle.set()

    def _try_dequeue(self) -> None:
        if self._state is not PlayerState.IDLE:
            if self._state is PlayerState.LOCKED and not self._queue:
                self._idle.set()
            return
        entry = self._queue.pop()
        if entry is None:
            self._idle.set()
            return
        self._state = PlayerState.PREROLL
        self._current = asyncio.create_task(self._play(entry), name=f"playback-{entry.payment_id}")

    async def _play(self, entry: QueuedAnnouncement) -> None:
        try:
            await self._sleep(self._preroll_delay)
            self._state = PlayerState.PLAYING
            logger.info("playback.started", extra={"id": entry.payment_id, "audio": entry.audio_reference})
            await self._player.play(entry)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("playback.failed", extra={"id": entry.payment_id, "error": str(exc)})
        else:
            logger.info("playback.finished", extra={"id": entry.payment_id})
        await self._finish(entry)

    async def _finish(self, entry: QueuedAnnouncement) -> None:
        if self._on_finished is not None:
            try:
                await self._on_finished(entry)
            except Exception as exc:
                logger.warning("playback.finish_signal_failed", extra={"id": entry.payment_id, "error": str(exc)})
        self._state = PlayerState.IDLE
        self._current = None
        self._try_dequeue()
