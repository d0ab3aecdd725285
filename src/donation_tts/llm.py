"""Remote text conversion through an OpenAI-compatible chat completions API."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

import httpx

from .config import Settings, get_settings
from .prompts import load_instructions

logger = logging.getLogger(__name__)


class LLMConversionError(RuntimeError):
    """Raised when the text-generation backend cannot produce a conversion."""


class TextConverter(Protocol):
    """Anything able to rewrite text through a remote model."""

    async def convert(self, text: str) -> str:
        ...


class LLMConverter:
    """Sends donor text to the chat completions endpoint with fixed instructions."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
        instructions: Optional[str] = None,
        retry_backoff_sec: float = 1.0,
    ) -> None:
        self._settings = settings or get_settings()
        timeout = httpx.Timeout(self._settings.llm_timeout_sec)
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._instructions = instructions or load_instructions(self._settings.llm_prompt_file)
        self._retry_backoff_sec = retry_backoff_sec

    async def aclose(self) -> None:
        await self._client.aclose()

    async def convert(self, text: str) -> str:
        """Return the model answer for ``text``, stripped of surrounding whitespace."""

        payload = {
            "model": self._settings.llm_model_id,
            "messages": [
                {"role": "system", "content": self._instructions},
                {"role": "user", "content": text},
            ],
            "temperature": self._settings.llm_temperature,
            "max_tokens": self._settings.llm_max_tokens,
        }

        attempts = self._settings.llm_retry_attempts + 1
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.post(
                    str(self._settings.llm_endpoint),
                    json=payload,
                    headers=self._settings.llm_headers,
                )
                response.raise_for_status()
                content = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                last_error = exc
                logger.warning(
                    "llm.request_failed",
                    extra={"attempt": attempt, "attempts": attempts, "error": str(exc)},
                )
                if attempt < attempts:
                    await asyncio.sleep(min(self._retry_backoff_sec * 2 ** (attempt - 1), 8.0))
                continue
            return (self._extract_choice(content) or "").strip()

        raise LLMConversionError("Text conversion request failed") from last_error

    @staticmethod
    def _extract_choice(payload: dict) -> Optional[str]:
        try:
            return payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return None
