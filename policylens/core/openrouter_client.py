"""OpenRouter LLM client implementation."""

from typing import Any, AsyncIterator, Dict, List

from policylens.core.base_llm_client import BaseLLMClient
from policylens.core.exceptions import APIClientError
from policylens.models.llm import LLMRequest, LLMResponse, LLMStreamEvent, LLMStreamEventType
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)

JSON_ONLY_SUFFIX = "\n\nIMPORTANT: Respond with valid JSON only."


class OpenRouterClient:
    """OpenRouter chat-completions client on top of BaseLLMClient."""

    def __init__(
        self,
        api_key: str,
        model: str = "google/gemini-2.0-flash-001",
        base_url: str = "https://openrouter.ai/api/v1/chat/completions",
        timeout: int = 60,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        self.model = model
        self.client = BaseLLMClient(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
            retry_delay=retry_delay,
        )
        LOGGER.info(f"Initialized OpenRouter client with model {self.model}")

    def _build_payload(self, request: LLMRequest, stream: bool = False) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = []

        system_prompt = request.system_prompt
        # OpenRouter has no response_mime_type; ask for JSON in the system message
        if request.json_mode:
            system_prompt = (system_prompt or "") + JSON_ONLY_SUFFIX
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": request.user_content})

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if stream:
            payload["stream"] = True
            payload["stream_options"] = {"include_usage": True}
        return payload

    async def complete(self, request: LLMRequest) -> LLMResponse:
        """Run a blocking completion.

        Raises:
            APIClientError: If the API call fails or the response is malformed
        """
        result = await self.client.call_api(payload=self._build_payload(request))

        try:
            text = result["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise APIClientError(f"Unexpected API response format: {e}", e) from e

        usage = result.get("usage") or {}
        return LLMResponse(
            success=True,
            text=text.strip(),
            input_tokens=usage.get("prompt_tokens", 0) or 0,
            output_tokens=usage.get("completion_tokens", 0) or 0,
        )

    async def stream(self, request: LLMRequest) -> AsyncIterator[LLMStreamEvent]:
        """Stream text deltas, then a single usage event."""
        input_tokens = 0
        output_tokens = 0

        async for event in self.client.stream_events(self._build_payload(request, stream=True)):
            for choice in event.get("choices") or []:
                delta = (choice.get("delta") or {}).get("content")
                if delta:
                    yield LLMStreamEvent(type=LLMStreamEventType.DELTA, text=delta)
            usage = event.get("usage")
            if usage:
                input_tokens = usage.get("prompt_tokens", input_tokens) or input_tokens
                output_tokens = usage.get("completion_tokens", output_tokens) or output_tokens

        yield LLMStreamEvent(
            type=LLMStreamEventType.USAGE,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
