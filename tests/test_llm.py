import json

import httpx
import pytest

from donation_tts.llm import LLMConversionError, LLMConverter
from donation_tts.prompts import TUNISIAN_ARABIZI_PROMPT

from .utils import make_settings


def _completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.mark.asyncio
async def test_llm_converter_success() -> None:
    settings = make_settings()
    seen: list[dict] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append({"headers": dict(request.headers), "body": json.loads(request.content)})
        return httpx.Response(200, json=_completion("  صْبَاحْ الْخِير  "))

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        converter = LLMConverter(settings=settings, client=client)
        result = await converter.convert("sbah elkhir")

    assert result == "صْبَاحْ الْخِير"
    body = seen[0]["body"]
    assert body["model"] == "test-model"
    assert body["temperature"] == 0.0
    assert body["max_tokens"] == 200
    assert body["messages"][0] == {"role": "system", "content": TUNISIAN_ARABIZI_PROMPT}
    assert body["messages"][1] == {"role": "user", "content": "sbah elkhir"}
    assert seen[0]["headers"]["authorization"] == "Bearer llm-test-key"


@pytest.mark.asyncio
async def test_llm_converter_uses_supplied_instructions() -> None:
    settings = make_settings()
    captured: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        captured.append(json.loads(request.content)["messages"][0]["content"])
        return httpx.Response(200, json=_completion("ok"))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        converter = LLMConverter(settings=settings, client=client, instructions="Transliterate.")
        await converter.convert("salam")

    assert captured == ["Transliterate."]


@pytest.mark.asyncio
async def test_llm_converter_failure_after_retries() -> None:
    settings = make_settings(LLM_RETRY_ATTEMPTS=1)
    calls = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(500, json={"error": "backend unavailable"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        converter = LLMConverter(settings=settings, client=client, retry_backoff_sec=0)
        with pytest.raises(LLMConversionError):
            await converter.convert("sbah elkhir")

    assert calls == 2


@pytest.mark.asyncio
async def test_llm_converter_recovers_on_retry() -> None:
    settings = make_settings(LLM_RETRY_ATTEMPTS=2)
    responses = [httpx.Response(503), httpx.Response(200, json=_completion("tamam"))]

    async def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        converter = LLMConverter(settings=settings, client=client, retry_backoff_sec=0)
        assert await converter.convert("tamam") == "tamam"


@pytest.mark.asyncio
async def test_llm_converter_empty_choices_yield_empty_string() -> None:
    settings = make_settings()

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": []})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        converter = LLMConverter(settings=settings, client=client)
        assert await converter.convert("salam") == ""
