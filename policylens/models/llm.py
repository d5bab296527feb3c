"""Request/response contracts for the LLM completion service."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class LLMRequest(BaseModel):
    """A single completion request."""

    system_prompt: str = ""
    user_content: str
    max_tokens: int = 4096
    temperature: float = 0.0
    json_mode: bool = False


class LLMResponse(BaseModel):
    """Outcome of a blocking completion call."""

    success: bool
    text: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    error: Optional[str] = None


class LLMStreamEventType(str, Enum):
    DELTA = "delta"
    USAGE = "usage"


class LLMStreamEvent(BaseModel):
    """Streaming event: ordered text deltas followed by one terminal usage event."""

    type: LLMStreamEventType
    text: str = ""
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
