"""Unified LLM client factory and manager.

Provides one interface over the supported providers (Gemini, OpenRouter),
with optional Gemini fallback and provider selection from configuration.
"""

from enum import Enum
from typing import AsyncIterator, Optional, Union

from policylens.core.config import LLMSettings
from policylens.core.exceptions import AppError, APIClientError, ConfigurationError
from policylens.core.gemini_client import GeminiClient
from policylens.core.openrouter_client import OpenRouterClient
from policylens.models.llm import LLMRequest, LLMResponse, LLMStreamEvent
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)

ProviderClient = Union[GeminiClient, OpenRouterClient]


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    GEMINI = "gemini"
    OPENROUTER = "openrouter"


class UnifiedLLMClient:
    """Provider-agnostic LLM client.

    `complete()` never raises for provider failures: it reports them as
    `LLMResponse(success=False, error=...)` so callers can degrade. `stream()`
    raises `APIClientError`, since a half-delivered stream cannot be reported
    as a value.
    """

    def __init__(
        self,
        provider: Union[str, LLMProvider],
        client: ProviderClient,
        fallback_client: Optional[GeminiClient] = None,
    ):
        self.provider = LLMProvider(provider)
        self.client = client
        self.fallback_client = fallback_client

    async def complete(self, request: LLMRequest) -> LLMResponse:
        """Generate a completion with the configured provider."""
        try:
            return await self.client.complete(request)
        except AppError as e:
            if not self.fallback_client:
                LOGGER.error(f"LLM completion failed ({self.provider.value}): {e}")
                return LLMResponse(success=False, error=str(e))

            LOGGER.warning(
                f"Primary provider ({self.provider.value}) failed, attempting Gemini fallback: {e}"
            )
            try:
                return await self.fallback_client.complete(request)
            except AppError as fallback_error:
                LOGGER.error(f"Fallback to Gemini also failed: {fallback_error}")
                return LLMResponse(
                    success=False,
                    error=f"Both primary ({self.provider.value}) and fallback (Gemini) failed: {fallback_error}",
                )

    async def stream(self, request: LLMRequest) -> AsyncIterator[LLMStreamEvent]:
        """Stream a completion; falls back only if nothing was emitted yet."""
        emitted = False
        try:
            async for event in self.client.stream(request):
                emitted = True
                yield event
            return
        except APIClientError as e:
            if emitted or not self.fallback_client:
                raise
            LOGGER.warning(
                f"Primary provider ({self.provider.value}) stream failed, attempting Gemini fallback: {e}"
            )

        async for event in self.fallback_client.stream(request):
            yield event


def create_llm_client_from_settings(llm_settings: LLMSettings) -> UnifiedLLMClient:
    """Create a unified LLM client from the LLM settings group.

    Raises:
        ConfigurationError: If the selected provider is unknown or its API key is missing
    """
    try:
        provider = LLMProvider(llm_settings.provider.lower())
    except ValueError as e:
        raise ConfigurationError(f"Unsupported LLM provider: {llm_settings.provider}", e) from e

    gemini_key = llm_settings.gemini_api_key.strip()

    if provider == LLMProvider.GEMINI:
        if not gemini_key:
            raise ConfigurationError(
                "gemini_api_key required when provider='gemini'. "
                "Please set GEMINI_API_KEY environment variable."
            )
        client = GeminiClient(
            api_key=gemini_key,
            model=llm_settings.gemini_model,
            timeout=llm_settings.timeout,
            max_retries=llm_settings.max_retries,
            retry_delay=llm_settings.retry_delay,
        )
        LOGGER.info(f"Initialized unified LLM with Gemini provider (model: {llm_settings.gemini_model})")
        return UnifiedLLMClient(provider, client)

    openrouter_key = llm_settings.openrouter_api_key.strip()
    if not openrouter_key:
        raise ConfigurationError(
            "openrouter_api_key required when provider='openrouter'. "
            "Please set OPENROUTER_API_KEY environment variable."
        )
    client = OpenRouterClient(
        api_key=openrouter_key,
        model=llm_settings.openrouter_model,
        base_url=llm_settings.openrouter_api_url,
        timeout=llm_settings.timeout,
        max_retries=llm_settings.max_retries,
        retry_delay=llm_settings.retry_delay,
    )

    fallback = None
    if llm_settings.enable_fallback:
        if not gemini_key:
            raise ConfigurationError("GEMINI_API_KEY required when ENABLE_LLM_FALLBACK=true")
        fallback = GeminiClient(
            api_key=gemini_key,
            model=llm_settings.gemini_model,
            timeout=llm_settings.timeout,
            max_retries=llm_settings.max_retries,
            retry_delay=llm_settings.retry_delay,
        )

    LOGGER.info(
        f"Initialized unified LLM with OpenRouter provider (model: {llm_settings.openrouter_model})",
        extra={"fallback": bool(fallback)}
    )
    return UnifiedLLMClient(provider, client, fallback)
