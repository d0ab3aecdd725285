"""Donation-to-announcement pipeline."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional, Protocol

from .broadcast import Broadcaster
from .gatekeeper import Gatekeeper
from .models import (
    ChannelEvent,
    DonationEvent,
    NoMessageNotice,
    WebhookPayload,
    audio_reference,
)

logger = logging.getLogger(__name__)


class Normalizer(Protocol):
    async def normalize(self, text: str) -> str:
        ...


class PipelineState(str, Enum):
    """Lifecycle of one inbound donation.

    ``RECEIVED -> VALIDATED -> {THRESHOLD_SUPPRESSED | NO_MESSAGE | NORMALIZING -> BROADCAST}``;
    ``FAILED`` marks a run stopped by the task's error boundary.
    """

    RECEIVED = "received"
    VALIDATED = "validated"
    THRESHOLD_SUPPRESSED = "threshold_suppressed"
    NO_MESSAGE = "no_message"
    NORMALIZING = "normalizing"
    BROADCAST = "broadcast"
    FAILED = "failed"


class DonationPipeline:
    """Gates, normalizes and broadcasts validated webhook payloads."""

    def __init__(
        self,
        normalizer: Normalizer,
        gatekeeper: Gatekeeper,
        broadcaster: Broadcaster,
        anonymous_donor: str = "Anonymous",
    ) -> None:
        self._normalizer = normalizer
        self._gatekeeper = gatekeeper
        self._broadcaster = broadcaster
        self._anonymous_donor = anonymous_donor
        self._tasks: set[asyncio.Task[PipelineState]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, payload: WebhookPayload) -> asyncio.Task[PipelineState]:
        """Process ``payload`` in a detached task; the caller does not wait."""

        task = asyncio.create_task(self._run(payload), name=f"donation-{payload.payment_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight donations, cancelling whatever outlives ``timeout``."""

        tasks = list(self._tasks)
        if not tasks:
            return
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        for task in pending:
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("pipeline.drained", extra={"completed": len(done), "cancelled": len(pending)})

    async def _run(self, payload: WebhookPayload) -> PipelineState:
        try:
            return await self.process(payload)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("pipeline.failed", extra={"id": payload.payment_id}, exc_info=exc)
            return PipelineState.FAILED

    async def process(self, payload: WebhookPayload) -> PipelineState:
        """Run one validated payload through the gate, normalizer and broadcaster."""

        asset_name = payload.asset.name
        donor = payload.donor_name(self._anonymous_donor)

        decision = self._gatekeeper.evaluate(asset_name, payload.amount)
        if decision.suppressed:
            logger.info("pipeline.suppressed", extra={"id": payload.payment_id, "reason": decision.reason})
            return PipelineState.THRESHOLD_SUPPRESSED

        if not payload.has_message():
            notice = NoMessageNotice(donor=donor, amount=payload.amount, asset=asset_name)
            await self._broadcaster.broadcast(ChannelEvent.DONATION_NO_MESSAGE, notice.to_wire())
            logger.info("pipeline.no_message", extra={"id": payload.payment_id})
            return PipelineState.NO_MESSAGE

        logger.debug("pipeline.state", extra={"id": payload.payment_id, "state": PipelineState.NORMALIZING.value})
        normalized = await self._normalizer.normalize(payload.message or "")

        event = DonationEvent(
            payment_id=payload.payment_id,
            donor=donor,
            amount_value=payload.amount,
            asset_type=asset_name,
            display_amount=f"{payload.amount} {asset_name}",
            original=payload.message,
            normalized_text=normalized,
            audio_reference=audio_reference(normalized),
        )
        if event.audio_reference is None:
            logger.warning("pipeline.no_speakable_text", extra={"id": payload.payment_id})

        await self._broadcaster.broadcast(ChannelEvent.DONATION, event.to_wire())
        logger.info(
            "pipeline.broadcast",
            extra={"id": payload.payment_id, "audio": event.audio_reference},
        )
        return PipelineState.BROADCAST
