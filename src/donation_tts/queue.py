"""FIFO of announcements waiting for playback on one client."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Optional


@dataclass(slots=True)
class QueuedAnnouncement:
    """A received ``donation`` event waiting to be played."""

    payment_id: str
    donor: str
    audio_reference: str
    normalized_text: str = ""
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Optional["QueuedAnnouncement"]:
        """Build an entry from a broadcast payload; ``None`` when it carries no audio."""

        reference = data.get("audioReference")
        if not reference:
            return None
        return cls(
            payment_id=str(data.get("paymentID", "")),
            donor=str(data.get("donor") or ""),
            audio_reference=str(reference),
            normalized_text=str(data.get("normalizedText") or ""),
        )


class PlaybackQueue:
    """Single-consumer FIFO with preview support.

    Entries are removed exactly once by ``pop``; nothing is ever re-queued.
    """

    def __init__(self, preview_size: int = 5) -> None:
        self._entries: Deque[QueuedAnnouncement] = deque()
        self._preview_size = preview_size

    def push(self, entry: QueuedAnnouncement) -> None:
        self._entries.append(entry)

    def pop(self) -> Optional[QueuedAnnouncement]:
        """Return the oldest entry, or ``None`` when empty."""

        if not self._entries:
            return None
        return self._entries.popleft()

    def clear(self) -> int:
        """Drop all queued entries and return how many were dropped."""

        dropped = len(self._entries)
        self._entries.clear()
        return dropped

    def preview(self, limit: Optional[int] = None) -> list[QueuedAnnouncement]:
        """Return up to ``limit`` queued entries without removing them."""

        limit = limit or self._preview_size
        return list(self._entries)[:limit]

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)
