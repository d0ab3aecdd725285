"""Speech synthesis through the ElevenLabs streaming endpoint."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Optional, Protocol

import httpx

from .config import Settings, get_settings

logger = logging.getLogger(__name__)

AUDIO_MEDIA_TYPE = "audio/mpeg"


class SpeechSynthesisError(RuntimeError):
    """Raised when the voice backend fails to produce audio."""


class SpeechSynthesizer(Protocol):
    """Anything able to turn text into a stream of encoded audio chunks."""

    def synthesize(self, text: str) -> AsyncIterator[bytes]:
        ...


class ElevenLabsSynthesizer:
    """Relays ElevenLabs text-to-speech audio chunk by chunk."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None) -> None:
        self._settings = settings or get_settings()
        timeout = httpx.Timeout(self._settings.tts_timeout_sec)
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _url(self) -> str:
        base = str(self._settings.tts_api_base).rstrip("/")
        return f"{base}/text-to-speech/{self._settings.tts_voice_id}/stream"

    def _payload(self, text: str) -> dict:
        settings = self._settings
        return {
            "text": text,
            "model_id": settings.tts_model_id,
            "voice_settings": {
                "stability": settings.tts_stability,
                "similarity_boost": settings.tts_similarity_boost,
                "style": settings.tts_style,
                "use_speaker_boost": settings.tts_speaker_boost,
            },
        }

    async def synthesize(self, text: str) -> AsyncIterator[bytes]:
        """Yield audio chunks as they arrive; never buffers the whole clip."""

        sent = 0
        try:
            async with self._client.stream(
                "POST",
                self._url(),
                params={"output_format": self._settings.tts_output_format},
                headers=self._settings.tts_headers,
                json=self._payload(text),
            ) as response:
                if response.is_error:
                    body = (await response.aread())[:200]
                    raise SpeechSynthesisError(
                        f"Voice backend returned HTTP {response.status_code}: {body!r}"
                    )
                async for chunk in response.aiter_bytes():
                    if chunk:
                        sent += len(chunk)
                        yield chunk
        except httpx.HTTPError as exc:
            raise SpeechSynthesisError(f"Voice backend request failed: {exc}") from exc
        logger.debug("speech.stream_complete", extra={"bytes": sent})
