"""AI text-generation providers used by the letter drafting chain."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp

from ..core.errors import ExternalApiError

logger = logging.getLogger(__name__)


class LLMProvider(ABC):
    """A single "generate text from prompt" backend."""

    name: str = ""

    def __init__(self, api_key: Optional[str], model: str, timeout: float = 60.0):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """Return the generated text.

        Raises:
            ExternalApiError: on a non-2xx answer or a response without text
        """

    async def _post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        request_headers = {"Content-Type": "application/json", **(headers or {})}
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    url, json=payload, headers=request_headers
                ) as response:
                    if not 200 <= response.status < 300:
                        detail = await response.text()
                        logger.debug(f"{self.name} error body: {detail[:500]}")
                        raise ExternalApiError(self.name, f"HTTP {response.status}")
                    return await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise ExternalApiError(self.name, f"timeout after {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise ExternalApiError(self.name, f"network error: {e}") from e

    def _require_text(self, text: Any) -> str:
        if not isinstance(text, str) or not text.strip():
            raise ExternalApiError(self.name, "no text in response")
        return text


class GeminiProvider(LLMProvider):
    """Google Gemini ``generateContent``."""

    name = "gemini"
    base_url = "https://generativelanguage.googleapis.com/v1beta/models"

    async def generate(self, prompt: str) -> str:
        data = await self._post_json(
            f"{self.base_url}/{self.model}:generateContent?key={self.api_key}",
            {
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": {
                    "temperature": 0.8,
                    "topP": 0.95,
                    "maxOutputTokens": 2048,
                },
            },
        )
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            text = None
        return self._require_text(text)


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions."""

    name = "openai"
    url = "https://api.openai.com/v1/chat/completions"

    async def generate(self, prompt: str) -> str:
        data = await self._post_json(
            self.url,
            {
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": 0.8,
            },
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            text = None
        return self._require_text(text)


class ClaudeProvider(LLMProvider):
    """Anthropic messages API."""

    name = "claude"
    url = "https://api.anthropic.com/v1/messages"

    async def generate(self, prompt: str) -> str:
        data = await self._post_json(
            self.url,
            {
                "model": self.model,
                "max_tokens": 2048,
                "messages": [{"role": "user", "content": prompt}],
            },
            headers={"x-api-key": self.api_key, "anthropic-version": "2023-06-01"},
        )
        try:
            text = data["content"][0]["text"]
        except (KeyError, IndexError, TypeError):
            text = None
        return self._require_text(text)
