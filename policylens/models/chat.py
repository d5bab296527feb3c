"""Conversation views and chat streaming contracts."""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from policylens.models.retrieval import ChunkSearchResult


class ChatStreamEventType(str, Enum):
    TOKEN = "token"
    WARNING = "warning"
    USAGE = "usage"
    DONE = "done"


class ChatStreamEvent(BaseModel):
    type: ChatStreamEventType
    text: Optional[str] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    message_id: Optional[UUID] = None
    cited_chunk_ids: List[UUID] = Field(default_factory=list)
    error: Optional[str] = None


class ChatResponse(BaseModel):
    message_id: UUID
    content: str
    cited_chunk_ids: List[UUID] = Field(default_factory=list)
    sources: List[ChunkSearchResult] = Field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    degraded: bool = False


class MessageView(BaseModel):
    id: UUID
    role: str
    content: str
    cited_chunk_ids: List[UUID] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class ConversationView(BaseModel):
    id: UUID
    title: Optional[str] = None
    policy_ids: List[UUID] = Field(default_factory=list)
    document_ids: List[UUID] = Field(default_factory=list)
    messages: List[MessageView] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class CreateConversationRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=255)
    policy_ids: List[UUID] = Field(default_factory=list)
    document_ids: List[UUID] = Field(default_factory=list)


class SendMessageRequest(BaseModel):
    content: str = Field(..., min_length=1)
