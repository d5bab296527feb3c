"""Base class for services that ask the LLM for a JSON document."""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from policylens.core.exceptions import ExtractionParseError
from policylens.core.unified_llm import UnifiedLLMClient
from policylens.models.llm import LLMRequest
from policylens.prompts.system_prompts import STRICT_JSON_REMINDER
from policylens.services.base_service import BaseService
from policylens.utils.json_parser import parse_json_safely
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)

ShapeCheck = Callable[[Any], Optional[str]]


def require_object(parsed: Any) -> Optional[str]:
    """Shape check: the top level must be a JSON object."""
    if not isinstance(parsed, dict):
        return f"expected a JSON object, got {type(parsed).__name__}"
    return None


@dataclass
class JsonCallResult:
    """Parsed JSON (or the reason there is none) plus token usage across attempts."""

    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    raw_text: str = ""
    attempts: int = 0
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def success(self) -> bool:
        return self.data is not None


class BaseLLMService(BaseService):
    """Service that issues JSON-mode LLM calls.

    A response that is not valid JSON, or whose shape is wrong, is retried
    once with a stricter reminder appended to the system prompt. Provider
    failures are not retried here: the provider clients already retry
    transient errors with backoff.
    """

    PARSE_ATTEMPTS = 2

    def __init__(self, llm_client: UnifiedLLMClient, max_tokens: int = 4096):
        super().__init__()
        self.llm_client = llm_client
        self.max_tokens = max_tokens

    async def _call_llm_json(
        self,
        system_prompt: str,
        user_content: str,
        shape_check: ShapeCheck = require_object,
    ) -> JsonCallResult:
        result = JsonCallResult()
        prompt = system_prompt

        for attempt in range(1, self.PARSE_ATTEMPTS + 1):
            result.attempts = attempt
            response = await self.llm_client.complete(
                LLMRequest(
                    system_prompt=prompt,
                    user_content=user_content,
                    max_tokens=self.max_tokens,
                    temperature=0.0,
                    json_mode=True,
                )
            )
            result.input_tokens += response.input_tokens
            result.output_tokens += response.output_tokens

            if not response.success:
                result.error = response.error or "LLM call failed"
                LOGGER.warning(
                    f"{self.__class__.__name__}: LLM call failed: {result.error}",
                    extra={"attempt": attempt}
                )
                return result

            result.raw_text = response.text
            try:
                result.data = self._parse_response(response.text, shape_check)
                result.error = None
                return result
            except ExtractionParseError as e:
                result.error = e.message

            LOGGER.warning(
                f"{self.__class__.__name__}: {result.error}",
                extra={"attempt": attempt, "preview": response.text[:200]}
            )
            prompt = f"{system_prompt}\n{STRICT_JSON_REMINDER}"

        return result

    @staticmethod
    def _parse_response(text: str, shape_check: ShapeCheck) -> Dict[str, Any]:
        parsed = parse_json_safely(text)
        shape_error = "response was not valid JSON" if parsed is None else shape_check(parsed)
        if shape_error is not None:
            raise ExtractionParseError(f"Failed to parse LLM response: {shape_error}")
        return parsed
