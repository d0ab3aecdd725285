"""Donor text normalization: clean, convert through the model, post-process, cache."""

from __future__ import annotations

import logging
import re
from typing import Optional

from .cache import TranslationCache
from .llm import LLMConversionError, TextConverter

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 190

# Copyright/registered signs, the U+2000-U+3300 symbol blocks, supplementary
# pictographs and the emoji variation selector.
_EMOJI_RE = re.compile("[\u00a9\u00ae\u2000-\u3300\ufe0f\U0001F000-\U0001FBFF]")
_DIGIT_APOSTROPHE_RE = re.compile(r"(\d)'")
_EMPHASIS_RE = re.compile(r"\*\*(.*?)\*\*", re.DOTALL)


def pre_clean(text: str) -> str:
    """Strip pictographs and digit-trailing apostrophes, then trim."""

    cleaned = _EMOJI_RE.sub("", text or "")
    cleaned = _DIGIT_APOSTROPHE_RE.sub(r"\1", cleaned)
    return cleaned.strip()


def post_clean(raw: str, max_chars: int = DEFAULT_MAX_CHARS) -> str:
    """Reduce a model answer to a single speakable line of at most ``max_chars``."""

    result = (raw or "").strip()
    if "**" in result:
        match = _EMPHASIS_RE.search(result)
        if match:
            result = match.group(1).strip()
    if "\n" in result:
        result = next((line.strip() for line in result.splitlines() if line.strip()), result)
    if len(result) > max_chars:
        result = result[:max_chars]
        logger.debug("normalizer.truncated", extra={"max_chars": max_chars})
    return result


class TextNormalizer:
    """Turns informal donor text into the target script for speech synthesis.

    ``normalize`` never raises: when the remote conversion fails the cleaned
    input is returned and nothing is cached, so the next identical message
    tries the model again.
    """

    def __init__(
        self,
        converter: TextConverter,
        cache: Optional[TranslationCache] = None,
        max_chars: int = DEFAULT_MAX_CHARS,
    ) -> None:
        self._converter = converter
        self._cache = cache if cache is not None else TranslationCache()
        self._max_chars = max_chars

    @property
    def cache(self) -> TranslationCache:
        return self._cache

    async def normalize(self, text: str) -> str:
        cleaned = pre_clean(text)
        if not cleaned:
            logger.info("normalizer.empty_after_clean")
            return ""

        cached = self._cache.get(cleaned)
        if cached is not None:
            logger.info("normalizer.cache_hit", extra={"text": cleaned})
            return cached

        logger.info("normalizer.cache_miss", extra={"text": cleaned})
        try:
            raw = await self._converter.convert(cleaned)
        except LLMConversionError as exc:
            logger.error("normalizer.conversion_failed", extra={"text": cleaned, "error": str(exc)})
            return cleaned
        except Exception as exc:  # pragma: no cover - unexpected converter failure
            logger.exception("normalizer.converter_crashed", exc_info=exc)
            return cleaned

        result = post_clean(raw, self._max_chars) or cleaned
        self._cache.put(cleaned, result)
        logger.info("normalizer.converted", extra={"text": cleaned, "result": result})
        return result
