"""Application configuration models and helpers."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr, computed_field
from pydantic.functional_validators import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogLevel(str, Enum):
    """Supported logging levels."""

    CRITICAL = "CRITICAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"
    DEBUG = "DEBUG"


class Settings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Text generation (OpenAI-compatible chat completions, Groq by default)
    llm_api_key: SecretStr = Field(..., validation_alias=AliasChoices("LLM_API_KEY", "GROK_API_KEY"))
    llm_endpoint: AnyHttpUrl = Field(
        "https://api.groq.com/openai/v1/chat/completions", alias="LLM_ENDPOINT"
    )
    llm_model_id: str = Field("llama3-8b-8192", alias="LLM_MODEL_ID")
    llm_temperature: float = Field(0.0, alias="LLM_TEMPERATURE")
    llm_max_tokens: int = Field(200, alias="LLM_MAX_TOKENS")
    llm_timeout_sec: float = Field(15.0, alias="LLM_TIMEOUT_SEC")
    llm_retry_attempts: int = Field(0, alias="LLM_RETRY_ATTEMPTS")
    llm_prompt_file: Optional[Path] = Field(None, alias="LLM_PROMPT_FILE")

    # Normalizer
    normalizer_max_chars: int = Field(190, alias="NORMALIZER_MAX_CHARS")
    cache_max_entries: int = Field(1024, alias="CACHE_MAX_ENTRIES")

    # Speech synthesis (ElevenLabs)
    tts_api_key: SecretStr = Field(..., validation_alias=AliasChoices("ELEVEN_API_KEY", "TTS_API_KEY"))
    tts_api_base: AnyHttpUrl = Field("https://api.elevenlabs.io/v1", alias="TTS_API_BASE")
    tts_voice_id: str = Field("OfGMGmhShO8iL9jCkXy8", alias="TTS_VOICE_ID")
    tts_model_id: str = Field("eleven_multilingual_v2", alias="TTS_MODEL_ID")
    tts_output_format: str = Field("mp3_44100_128", alias="TTS_OUTPUT_FORMAT")
    tts_stability: float = Field(0.5, alias="TTS_STABILITY")
    tts_similarity_boost: float = Field(0.3, alias="TTS_SIMILARITY_BOOST")
    tts_style: float = Field(0.0, alias="TTS_STYLE")
    tts_speaker_boost: bool = Field(True, alias="TTS_SPEAKER_BOOST")
    tts_timeout_sec: float = Field(30.0, alias="TTS_TIMEOUT_SEC")

    # Donation gate
    gated_asset_prefix: str = Field("diamond", alias="GATED_ASSET_PREFIX")
    tts_minimum_amount: int = Field(0, alias="TTS_MINIMUM_AMOUNT")
    anonymous_donor: str = Field("Anonymous", alias="ANONYMOUS_DONOR")

    # Playback
    preroll_delay_ms: int = Field(4000, alias="PREROLL_DELAY_MS")

    # API
    api_host: str = Field("0.0.0.0", alias="API_HOST")
    api_port: int = Field(3000, alias="API_PORT")
    public_base_url: Optional[AnyHttpUrl] = Field(None, alias="PUBLIC_BASE_URL")

    # Misc
    log_level: LogLevel = Field(LogLevel.INFO, alias="LOG_LEVEL")

    @computed_field(return_type=dict[str, str])
    def llm_headers(self) -> dict[str, str]:
        """Headers to use for LLM HTTP requests."""

        return {
            "Authorization": f"Bearer {self.llm_api_key.get_secret_value()}",
            "Content-Type": "application/json",
        }

    @computed_field(return_type=dict[str, str])
    def tts_headers(self) -> dict[str, str]:
        """Headers to use for speech synthesis requests."""

        return {
            "xi-api-key": self.tts_api_key.get_secret_value(),
            "Content-Type": "application/json",
            "Accept": "audio/mpeg",
        }

    @field_validator(
        "llm_max_tokens",
        "normalizer_max_chars",
        "api_port",
    )
    @classmethod
    def _ensure_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Value must be positive")
        return value

    @field_validator(
        "llm_retry_attempts",
        "cache_max_entries",
        "tts_minimum_amount",
        "preroll_delay_ms",
    )
    @classmethod
    def _ensure_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("Value must be non-negative")
        return value

    @field_validator("gated_asset_prefix")
    @classmethod
    def _normalize_prefix(cls, value: str) -> str:
        return value.strip().lower()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()
