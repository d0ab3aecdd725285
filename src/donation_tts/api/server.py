"""FastAPI surface: webhook intake, audio proxy, push channel and player page."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.responses import FileResponse, PlainTextResponse, Response, StreamingResponse
from fastapi.staticfiles import StaticFiles

from ..broadcast import ConnectionManager
from ..cache import TranslationCache
from ..config import Settings, get_settings
from ..gatekeeper import Gatekeeper
from ..models import ChannelEvent, WebhookValidationError, parse_webhook
from ..pipeline import DonationPipeline
from ..speech import AUDIO_MEDIA_TYPE, SpeechSynthesisError, SpeechSynthesizer

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parents[1] / "static"


class AnnouncerServer:
    """Wraps the FastAPI application exposing the announcer endpoints."""

    def __init__(
        self,
        pipeline: DonationPipeline,
        gatekeeper: Gatekeeper,
        connections: ConnectionManager,
        synthesizer: SpeechSynthesizer,
        settings: Optional[Settings] = None,
        cache: Optional[TranslationCache] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._pipeline = pipeline
        self._gatekeeper = gatekeeper
        self._connections = connections
        self._synthesizer = synthesizer
        self._cache = cache
        self._app = FastAPI(title="Donation TTS Bridge", version="1.0.0")
        self._app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

        @self._app.get("/health", status_code=status.HTTP_200_OK)
        async def health() -> Dict[str, str]:  # noqa: ANN202 - FastAPI response
            return {"status": "ok"}

        @self._app.get("/status")
        async def status_snapshot() -> Dict[str, Any]:  # noqa: ANN202 - FastAPI response
            snapshot: Dict[str, Any] = {
                "threshold": self._gatekeeper.threshold,
                "clients": self._connections.client_count,
                "pending_donations": self._pipeline.pending,
                "preroll_delay_ms": self._settings.preroll_delay_ms,
            }
            if self._cache is not None:
                stats = self._cache.stats()
                snapshot["cache"] = {
                    "entries": stats.entries,
                    "hits": stats.hits,
                    "misses": stats.misses,
                    "evictions": stats.evictions,
                }
            return snapshot

        @self._app.get("/")
        @self._app.get("/ba9chich")
        async def player_page() -> FileResponse:  # noqa: ANN202
            return FileResponse(STATIC_DIR / "index.html", media_type="text/html")

        @self._app.post("/webhook")
        async def webhook(request: Request) -> PlainTextResponse:  # noqa: ANN202
            try:
                body = await request.json()
            except ValueError:
                logger.warning("webhook.invalid_json")
                return PlainTextResponse("Invalid JSON body.", status_code=status.HTTP_400_BAD_REQUEST)

            try:
                payload = parse_webhook(body)
            except WebhookValidationError as exc:
                logger.warning("webhook.rejected", extra={"error": str(exc)})
                return PlainTextResponse("Missing required fields.", status_code=status.HTTP_400_BAD_REQUEST)

            logger.info(
                "webhook.accepted",
                extra={"id": payload.payment_id, "amount": str(payload.amount), "asset": payload.asset.name},
            )
            self._pipeline.submit(payload)
            return PlainTextResponse("Webhook received successfully.", status_code=status.HTTP_200_OK)

        @self._app.get("/audio")
        async def audio(text: Optional[str] = None) -> Response:  # noqa: ANN202
            if not text or not text.strip():
                return PlainTextResponse("Missing text query", status_code=status.HTTP_400_BAD_REQUEST)
            return await self._stream_audio(text)

        @self._app.websocket("/ws")
        async def channel(websocket: WebSocket) -> None:
            await self._connections.connect(websocket)
            try:
                await self._connections.send(websocket, ChannelEvent.THRESHOLD_UPDATE, self._gatekeeper.threshold)
                while True:
                    frame = await websocket.receive()
                    if frame["type"] == "websocket.disconnect":
                        break
                    raw = frame.get("text")
                    if raw is None:
                        logger.debug("channel.non_text_frame")
                        continue
                    await self._handle_client_message(raw)
            except WebSocketDisconnect:
                pass
            finally:
                await self._connections.disconnect(websocket)

    @property
    def app(self) -> FastAPI:
        return self._app

    async def _stream_audio(self, text: str) -> Response:
        chunks = self._synthesizer.synthesize(text).__aiter__()
        try:
            first = await chunks.__anext__()
        except StopAsyncIteration:
            first = b""
        except SpeechSynthesisError as exc:
            logger.error("audio.synthesis_failed", extra={"error": str(exc)})
            return PlainTextResponse(
                "Server error during TTS generation",
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        async def body():
            try:
                if first:
                    yield first
                async for chunk in chunks:
                    yield chunk
            except SpeechSynthesisError as exc:
                # Headers are already out; aborting is the only signal left.
                logger.error("audio.stream_aborted", extra={"error": str(exc)})
                raise
            finally:
                aclose = getattr(chunks, "aclose", None)
                if aclose is not None:
                    await aclose()

        return StreamingResponse(body(), media_type=AUDIO_MEDIA_TYPE)

    async def _handle_client_message(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("channel.invalid_json", extra={"raw": raw[:100]})
            return
        if not isinstance(message, dict):
            logger.debug("channel.invalid_message", extra={"raw": raw[:100]})
            return

        event = message.get("event")
        if event == ChannelEvent.SET_THRESHOLD.value:
            if self._gatekeeper.update(message.get("data")):
                await self._connections.broadcast(ChannelEvent.THRESHOLD_UPDATE, self._gatekeeper.threshold)
        elif event == ChannelEvent.AUDIO_FINISHED.value:
            logger.debug("channel.audio_finished")
        else:
            logger.debug("channel.unknown_event", extra={"event": event})
