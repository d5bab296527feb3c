"""Retrieval-augmented chat over a tenant's policy documents."""

import asyncio
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from policylens.core.config import ChatSettings
from policylens.core.exceptions import (
    APIClientError,
    ConversationNotFoundError,
    ValidationError,
)
from policylens.core.unified_llm import UnifiedLLMClient
from policylens.database.models import Conversation, Message
from policylens.models.chat import (
    ChatResponse,
    ChatStreamEvent,
    ChatStreamEventType,
    ConversationView,
    CreateConversationRequest,
    MessageView,
)
from policylens.models.documents import TenantContext
from policylens.models.enums import MessageRole
from policylens.models.llm import LLMRequest, LLMStreamEventType
from policylens.models.retrieval import ChunkSearchResult
from policylens.prompts.chat_prompts import build_user_message, extract_citations
from policylens.prompts.system_prompts import CHAT_SYSTEM_PROMPT
from policylens.repositories.conversation_repository import (
    ConversationRepository,
    MessageRepository,
)
from policylens.services.retrieval.semantic_search_service import SemanticSearchService
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)

CHAT_TEMPERATURE = 0.3
SEARCH_DEGRADED_WARNING = "Document search unavailable. Response may lack specific document context."


@dataclass
class _PreparedTurn:
    conversation_id: UUID
    request: LLMRequest
    chunks: List[ChunkSearchResult] = field(default_factory=list)
    search_failed: bool = False


def to_message_view(message: Message) -> MessageView:
    return MessageView(
        id=message.id,
        role=message.role,
        content=message.content,
        cited_chunk_ids=list(message.cited_chunk_ids or []),
        created_at=message.created_at,
    )


def to_conversation_view(conversation: Conversation, messages: Sequence[Message]) -> ConversationView:
    return ConversationView(
        id=conversation.id,
        title=conversation.title,
        policy_ids=list(conversation.policy_ids or []),
        document_ids=list(conversation.document_ids or []),
        messages=[to_message_view(m) for m in messages],
        created_at=conversation.created_at,
    )


class ChatService:
    """Chat orchestration: retrieve, assemble context, call the LLM, cite.

    The user message is committed before the LLM call. The assistant message
    is committed only once the response is complete, so a failed or
    cancelled turn leaves just the user message behind.
    """

    def __init__(
        self,
        session: AsyncSession,
        llm_client: UnifiedLLMClient,
        search_service: SemanticSearchService,
        chat_settings: Optional[ChatSettings] = None,
    ):
        self.session = session
        self.llm_client = llm_client
        self.search_service = search_service
        self.settings = chat_settings or ChatSettings()
        self.conversation_repository = ConversationRepository(session)
        self.message_repository = MessageRepository(session)

    async def create_conversation(
        self,
        tenant: TenantContext,
        request: CreateConversationRequest,
    ) -> ConversationView:
        conversation = await self.conversation_repository.create_conversation(
            tenant.tenant_id,
            title=request.title,
            policy_ids=request.policy_ids,
            document_ids=request.document_ids,
            user_id=tenant.user_id,
        )
        await self.session.commit()

        LOGGER.info(
            f"Created conversation {conversation.id} with {len(request.policy_ids)} policies, "
            f"{len(request.document_ids)} documents"
        )
        return to_conversation_view(conversation, [])

    async def get_conversation(self, tenant: TenantContext, conversation_id: UUID) -> ConversationView:
        conversation = await self.conversation_repository.get_for_tenant(
            conversation_id, tenant.tenant_id, with_messages=True
        )
        if conversation is None:
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
        return to_conversation_view(conversation, conversation.messages)

    def _validate_content(self, content: str) -> str:
        if content is None or not content.strip():
            raise ValidationError("Message cannot be empty")
        if len(content) > self.settings.max_message_length:
            raise ValidationError(
                f"Message exceeds maximum length of {self.settings.max_message_length:,} characters"
            )
        return content

    async def _retrieve(
        self,
        tenant: TenantContext,
        conversation: Conversation,
        query: str,
    ) -> Tuple[List[ChunkSearchResult], bool]:
        try:
            chunks = await self.search_service.search(
                tenant,
                query,
                document_ids=list(conversation.document_ids or []) or None,
                policy_ids=list(conversation.policy_ids or []) or None,
            )
            LOGGER.info(f"Found {len(chunks)} relevant chunks for query")
            return chunks, False
        except Exception as e:
            LOGGER.warning(
                f"Semantic search failed for conversation {conversation.id}, continuing without context: {e}",
                exc_info=True
            )
            return [], True

    async def _prepare_turn(
        self,
        tenant: TenantContext,
        conversation_id: UUID,
        content: str,
    ) -> _PreparedTurn:
        content = self._validate_content(content)

        conversation = await self.conversation_repository.get_for_tenant(conversation_id, tenant.tenant_id)
        if conversation is None:
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")

        # History is read before the new message is stored
        history = await self.message_repository.get_recent(
            conversation_id, self.settings.max_history_messages
        )

        await self.message_repository.add_message(conversation_id, MessageRole.USER.value, content)
        await self.session.commit()

        chunks, search_failed = await self._retrieve(tenant, conversation, content)

        user_content = build_user_message(
            chunks,
            [(m.role, m.content) for m in history],
            content,
            max_history=self.settings.max_history_messages,
            truncate_chars=self.settings.history_truncate_chars,
            search_failed=search_failed,
        )
        request = LLMRequest(
            system_prompt=CHAT_SYSTEM_PROMPT,
            user_content=user_content,
            max_tokens=self.settings.max_response_tokens,
            temperature=CHAT_TEMPERATURE,
        )
        return _PreparedTurn(
            conversation_id=conversation_id,
            request=request,
            chunks=chunks,
            search_failed=search_failed,
        )

    async def _store_answer(
        self,
        turn: _PreparedTurn,
        answer: str,
        input_tokens: int,
        output_tokens: int,
    ) -> Tuple[Message, List[UUID]]:
        cited = extract_citations(answer, turn.chunks, self.settings.implicit_citation_count)
        message = await self.message_repository.add_message(
            turn.conversation_id,
            MessageRole.ASSISTANT.value,
            answer,
            cited_chunk_ids=cited,
            prompt_tokens=input_tokens,
            completion_tokens=output_tokens,
        )
        await self.session.commit()

        LOGGER.info(
            f"Chat response complete: {input_tokens} input, {output_tokens} output, {len(cited)} citations",
            extra={"conversation_id": str(turn.conversation_id)}
        )
        return message, cited

    async def send_message(
        self,
        tenant: TenantContext,
        conversation_id: UUID,
        content: str,
    ) -> ChatResponse:
        """Answer a message with a single blocking LLM call.

        Raises:
            ValidationError: Empty or over-long message
            ConversationNotFoundError: Unknown conversation for this tenant
            APIClientError: The LLM call failed
        """
        turn = await self._prepare_turn(tenant, conversation_id, content)

        response = await self.llm_client.complete(turn.request)
        if not response.success:
            raise APIClientError(f"Chat completion failed: {response.error}")

        message, cited = await self._store_answer(
            turn, response.text, response.input_tokens, response.output_tokens
        )
        return ChatResponse(
            message_id=message.id,
            content=response.text,
            cited_chunk_ids=cited,
            sources=turn.chunks,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            degraded=turn.search_failed,
        )

    async def stream_message(
        self,
        tenant: TenantContext,
        conversation_id: UUID,
        content: str,
    ) -> AsyncIterator[ChatStreamEvent]:
        """Stream an answer as token events, then usage, then done.

        Closing or cancelling the stream before it finishes discards the
        partial answer; only the user message stays persisted.
        """
        turn = await self._prepare_turn(tenant, conversation_id, content)

        if turn.search_failed:
            yield ChatStreamEvent(type=ChatStreamEventType.WARNING, error=SEARCH_DEGRADED_WARNING)

        parts: List[str] = []
        input_tokens = output_tokens = 0
        try:
            async for event in self.llm_client.stream(turn.request):
                if event.type == LLMStreamEventType.DELTA and event.text:
                    parts.append(event.text)
                    yield ChatStreamEvent(type=ChatStreamEventType.TOKEN, text=event.text)
                elif event.type == LLMStreamEventType.USAGE:
                    input_tokens = event.input_tokens
                    output_tokens = event.output_tokens
        except (asyncio.CancelledError, GeneratorExit):
            LOGGER.info(
                f"Chat stream for conversation {conversation_id} cancelled, discarding partial answer",
                extra={"partial_chars": sum(len(p) for p in parts)}
            )
            raise

        yield ChatStreamEvent(
            type=ChatStreamEventType.USAGE,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

        message, cited = await self._store_answer(turn, "".join(parts), input_tokens, output_tokens)
        yield ChatStreamEvent(
            type=ChatStreamEventType.DONE,
            message_id=message.id,
            cited_chunk_ids=cited,
        )
