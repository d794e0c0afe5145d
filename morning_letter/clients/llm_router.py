"""LLM Router with ordered fallback across AI providers."""

import asyncio
import logging
from typing import List, Optional, Tuple

import aiohttp

from .llm_providers import ClaudeProvider, GeminiProvider, LLMProvider, OpenAIProvider
from ..core.errors import AIUnavailableError, ExternalApiError
from ..core.sanitizer import ContentSanitizer

logger = logging.getLogger(__name__)


class LLMRouter:
    """Router for LLM requests with automatic fallback on failures."""

    def __init__(
        self,
        providers: List[LLMProvider],
        sanitizer: Optional[ContentSanitizer] = None,
    ):
        """Initialize LLM router.

        Args:
            providers: Providers in priority order
            sanitizer: Strips responses and flags likely refusals
        """
        self.providers = providers
        self.sanitizer = sanitizer or ContentSanitizer()
        self.last_provider: Optional[str] = None

    @classmethod
    def from_settings(cls, settings) -> "LLMRouter":
        """Create the Gemini, OpenAI, Claude chain from settings."""
        timeout = settings.ai_timeout
        return cls(
            [
                GeminiProvider(settings.gemini_api_key, settings.gemini_model, timeout),
                OpenAIProvider(settings.openai_api_key, settings.openai_model, timeout),
                ClaudeProvider(settings.claude_api_key, settings.claude_model, timeout),
            ]
        )

    @property
    def configured_providers(self) -> List[str]:
        return [p.name for p in self.providers if p.is_configured]

    @property
    def is_available(self) -> bool:
        return bool(self.configured_providers)

    async def complete(self, prompt: str) -> Tuple[str, str]:
        """Return ``(text, provider_name)`` from the first provider that answers.

        Providers without credentials are skipped. Errors fall through to the
        next provider.

        Raises:
            AIUnavailableError: nothing configured or every provider failed
        """
        attempted = 0
        for provider in self.providers:
            if not provider.is_configured:
                logger.debug(f"Skipping {provider.name}: no API key configured")
                continue

            attempted += 1
            try:
                logger.debug(f"Attempting request with {provider.name}")
                raw = await provider.generate(prompt)
                text, issues = self.sanitizer.sanitize_ai_text(raw)
                if not text:
                    logger.warning(f"Unusable response from {provider.name}: {issues}")
                    continue
                for issue in issues:
                    logger.info(f"[AI {provider.name}] {issue}")
                if attempted > 1:
                    logger.info(f"Fallback provider {provider.name} succeeded")
                self.last_provider = provider.name
                return text, provider.name
            except ExternalApiError as e:
                logger.warning(f"[AI {provider.name}] {e}")
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning(f"Network error with {provider.name}: {e}")
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Data processing error with {provider.name}: {e}")

        if attempted:
            logger.error(f"All {attempted} configured AI providers failed")
        else:
            logger.error("No AI provider is configured")
        raise AIUnavailableError()
