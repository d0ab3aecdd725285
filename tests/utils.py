from __future__ import annotations

from typing import Any

from donation_tts.config import Settings
from donation_tts.models import ChannelEvent


def make_settings(**overrides) -> Settings:
    data = {
        "LLM_API_KEY": "llm-test-key",
        "LLM_ENDPOINT": "https://llm.example.com/openai/v1/chat/completions",
        "LLM_MODEL_ID": "test-model",
        "LLM_TEMPERATURE": 0.0,
        "LLM_MAX_TOKENS": 200,
        "LLM_TIMEOUT_SEC": 5,
        "LLM_RETRY_ATTEMPTS": 0,
        "ELEVEN_API_KEY": "tts-test-key",
        "TTS_API_BASE": "https://tts.example.com/v1",
        "TTS_VOICE_ID": "voice-1",
        "GATED_ASSET_PREFIX": "diamond",
        "TTS_MINIMUM_AMOUNT": 0,
        "PREROLL_DELAY_MS": 0,
        "API_HOST": "127.0.0.1",
        "API_PORT": 9000,
        "LOG_LEVEL": "INFO",
    }
    data.update(overrides)
    return Settings.model_validate(data)


class RecordingBroadcaster:
    """Collects broadcast events instead of sending them anywhere."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    async def broadcast(self, event: ChannelEvent, data: Any = None) -> int:
        self.events.append((event.value, data))
        return 1

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


class StubConverter:
    """Returns canned answers and counts remote calls."""

    def __init__(self, answer: str = "صْبَاحْ الْخِير", error: Exception | None = None) -> None:
        self.answer = answer
        self.error = error
        self.calls: list[str] = []

    async def convert(self, text: str) -> str:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.answer
