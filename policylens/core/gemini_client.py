import asyncio
from typing import AsyncIterator

from google import genai
from google.genai import types

from policylens.core.exceptions import APIClientError
from policylens.models.llm import LLMRequest, LLMResponse, LLMStreamEvent, LLMStreamEventType
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)


class GeminiClient:
    """Wrapper for Google Gemini API client."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        timeout: int = 60,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        """Initialize Gemini client.

        Args:
            api_key: Gemini API key
            model: Model name to use
            timeout: Request timeout in seconds (kept for interface consistency)
            max_retries: Maximum retry attempts
            retry_delay: Base delay for exponential backoff
        """
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        try:
            self.client = genai.Client(api_key=self.api_key)
            LOGGER.info(f"Initialized Gemini client with model {self.model}")
        except Exception as e:
            LOGGER.error(f"Failed to initialize Gemini client: {e}")
            raise APIClientError(f"Failed to initialize Gemini client: {e}", e)

    def _build_config(self, request: LLMRequest) -> types.GenerateContentConfig:
        config = types.GenerateContentConfig(
            temperature=request.temperature,
            max_output_tokens=request.max_tokens,
        )
        if request.system_prompt:
            config.system_instruction = request.system_prompt
        if request.json_mode:
            config.response_mime_type = "application/json"
        return config

    async def complete(self, request: LLMRequest) -> LLMResponse:
        """Run a blocking completion with retries.

        Raises:
            APIClientError: If generation fails after retries
        """
        config = self._build_config(request)

        for attempt in range(self.max_retries):
            try:
                response = await self.client.aio.models.generate_content(
                    model=self.model,
                    contents=request.user_content,
                    config=config
                )
                usage = response.usage_metadata
                text = response.text or ""
                if not text:
                    LOGGER.warning("Empty response from Gemini")

                return LLMResponse(
                    success=True,
                    text=text,
                    input_tokens=(usage.prompt_token_count or 0) if usage else 0,
                    output_tokens=(usage.candidates_token_count or 0) if usage else 0,
                )

            except Exception as e:
                LOGGER.warning(
                    f"Gemini API error (Attempt {attempt + 1}/{self.max_retries}): {e}"
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))
                else:
                    LOGGER.error(f"Gemini generation failed after retries: {e}", exc_info=True)
                    raise APIClientError(f"Gemini generation failed: {e}", e) from e

        raise APIClientError("Gemini generation failed")

    async def stream(self, request: LLMRequest) -> AsyncIterator[LLMStreamEvent]:
        """Stream text deltas, then a single usage event."""
        config = self._build_config(request)
        input_tokens = 0
        output_tokens = 0

        try:
            chunks = await self.client.aio.models.generate_content_stream(
                model=self.model,
                contents=request.user_content,
                config=config
            )
            async for chunk in chunks:
                if chunk.text:
                    yield LLMStreamEvent(type=LLMStreamEventType.DELTA, text=chunk.text)
                usage = chunk.usage_metadata
                if usage:
                    input_tokens = usage.prompt_token_count or input_tokens
                    output_tokens = usage.candidates_token_count or output_tokens
        except APIClientError:
            raise
        except Exception as e:
            LOGGER.error(f"Gemini streaming failed: {e}", exc_info=True)
            raise APIClientError(f"Gemini streaming failed: {e}", e) from e

        yield LLMStreamEvent(
            type=LLMStreamEventType.USAGE,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
