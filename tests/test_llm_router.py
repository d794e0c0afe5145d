"""Tests for the AI provider fallback chain."""

import logging
from unittest.mock import AsyncMock, patch

import pytest

from morning_letter.clients.llm_providers import (
    ClaudeProvider,
    GeminiProvider,
    OpenAIProvider,
)
from morning_letter.clients.llm_router import LLMRouter
from morning_letter.core.errors import AIUnavailableError, ExternalApiError


def make_router(gemini=None, openai=None, claude=None):
    return LLMRouter(
        [
            GeminiProvider(gemini, "gemini-2.0-flash"),
            OpenAIProvider(openai, "gpt-4o-mini"),
            ClaudeProvider(claude, "claude-3-haiku-20240307"),
        ]
    )


@pytest.mark.asyncio
async def test_unconfigured_providers_are_skipped():
    router = make_router(claude="key")
    gemini, openai, claude = router.providers
    with patch.object(gemini, "generate", AsyncMock()) as g, patch.object(
        openai, "generate", AsyncMock()
    ) as o, patch.object(claude, "generate", AsyncMock(return_value="Hello")):
        text, provider = await router.complete("prompt")

    assert (text, provider) == ("Hello", "claude")
    g.assert_not_awaited()
    o.assert_not_awaited()


@pytest.mark.asyncio
async def test_failure_falls_through_to_next_provider():
    router = make_router(gemini="g", openai="o")
    gemini, openai, _ = router.providers
    with patch.object(
        gemini, "generate", AsyncMock(side_effect=ExternalApiError("gemini", "HTTP 500"))
    ), patch.object(openai, "generate", AsyncMock(return_value="From OpenAI")):
        text, provider = await router.complete("prompt")

    assert provider == "openai"
    assert text == "From OpenAI"
    assert router.last_provider == "openai"


@pytest.mark.asyncio
async def test_refusal_like_text_is_still_accepted(caplog):
    router = make_router(gemini="g", openai="o")
    gemini, openai, _ = router.providers
    with patch.object(
        gemini, "generate", AsyncMock(return_value=" As an AI language model I cannot ")
    ), patch.object(openai, "generate", AsyncMock()) as o:
        with caplog.at_level(logging.INFO):
            text, provider = await router.complete("prompt")

    assert (text, provider) == ("As an AI language model I cannot", "gemini")
    o.assert_not_awaited()
    assert "Possible AI refusal: As an AI language model" in caplog.text


@pytest.mark.asyncio
async def test_nothing_configured_raises():
    router = make_router()
    assert router.is_available is False
    with pytest.raises(AIUnavailableError) as exc_info:
        await router.complete("prompt")
    assert exc_info.value.status_code == 503
    assert exc_info.value.code == "AI_ERROR"


@pytest.mark.asyncio
async def test_all_failing_raises():
    router = make_router(gemini="g", claude="c")
    gemini, _, claude = router.providers
    with patch.object(
        gemini, "generate", AsyncMock(side_effect=ExternalApiError("gemini", "x"))
    ), patch.object(claude, "generate", AsyncMock(return_value="   ")):
        with pytest.raises(AIUnavailableError):
            await router.complete("prompt")


def test_from_settings_keeps_priority_order(mock_settings):
    router = LLMRouter.from_settings(mock_settings)
    assert [p.name for p in router.providers] == ["gemini", "openai", "claude"]
    assert router.configured_providers == []


@pytest.mark.asyncio
async def test_gemini_extracts_candidate_text():
    provider = GeminiProvider("key", "gemini-2.0-flash")
    data = {"candidates": [{"content": {"parts": [{"text": "Gemini says hi"}]}}]}
    with patch.object(provider, "_post_json", AsyncMock(return_value=data)) as post:
        assert await provider.generate("prompt") == "Gemini says hi"
    assert "gemini-2.0-flash:generateContent?key=key" in post.await_args.args[0]


@pytest.mark.asyncio
async def test_openai_extracts_message_content():
    provider = OpenAIProvider("key", "gpt-4o-mini")
    data = {"choices": [{"message": {"content": "OpenAI says hi"}}]}
    with patch.object(provider, "_post_json", AsyncMock(return_value=data)) as post:
        assert await provider.generate("prompt") == "OpenAI says hi"
    assert post.await_args.kwargs["headers"] == {"Authorization": "Bearer key"}


@pytest.mark.asyncio
async def test_claude_extracts_content_text():
    provider = ClaudeProvider("key", "claude-3-haiku-20240307")
    data = {"content": [{"text": "Claude says hi"}]}
    with patch.object(provider, "_post_json", AsyncMock(return_value=data)):
        assert await provider.generate("prompt") == "Claude says hi"


@pytest.mark.asyncio
async def test_missing_text_raises_external_api_error():
    provider = OpenAIProvider("key", "gpt-4o-mini")
    with patch.object(provider, "_post_json", AsyncMock(return_value={"choices": []})):
        with pytest.raises(ExternalApiError):
            await provider.generate("prompt")
