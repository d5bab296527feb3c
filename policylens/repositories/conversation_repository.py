from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from policylens.database.models import Conversation, Message
from policylens.repositories.base_repository import BaseRepository
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ConversationRepository(BaseRepository[Conversation]):
    """Repository for chat conversations."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Conversation)

    async def create_conversation(
        self,
        tenant_id: UUID,
        title: Optional[str] = None,
        policy_ids: Optional[Sequence[UUID]] = None,
        document_ids: Optional[Sequence[UUID]] = None,
        user_id: Optional[UUID] = None,
    ) -> Conversation:
        return await self.create(
            tenant_id=tenant_id,
            user_id=user_id,
            title=title,
            policy_ids=list(policy_ids or []),
            document_ids=list(document_ids or []),
        )

    async def get_for_tenant(
        self,
        conversation_id: UUID,
        tenant_id: UUID,
        with_messages: bool = False,
    ) -> Optional[Conversation]:
        try:
            query = select(Conversation).where(
                Conversation.id == conversation_id,
                Conversation.tenant_id == tenant_id,
            )
            if with_messages:
                query = query.options(selectinload(Conversation.messages))
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            LOGGER.error(f"Error retrieving conversation {conversation_id}: {str(e)}", exc_info=True)
            raise


class MessageRepository(BaseRepository[Message]):
    """Append-only message log of a conversation."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Message)

    async def add_message(
        self,
        conversation_id: UUID,
        role: str,
        content: str,
        cited_chunk_ids: Optional[Sequence[UUID]] = None,
        prompt_tokens: Optional[int] = None,
        completion_tokens: Optional[int] = None,
    ) -> Message:
        return await self.create(
            conversation_id=conversation_id,
            role=role,
            content=content,
            cited_chunk_ids=list(cited_chunk_ids or []),
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )

    async def get_recent(
        self,
        conversation_id: UUID,
        limit: int,
        exclude_id: Optional[UUID] = None,
    ) -> List[Message]:
        """The last `limit` messages in chronological order."""
        try:
            query = select(Message).where(Message.conversation_id == conversation_id)
            if exclude_id is not None:
                query = query.where(Message.id != exclude_id)
            query = query.order_by(Message.created_at.desc()).limit(limit)
            result = await self.session.execute(query)
            return list(reversed(result.scalars().all()))
        except SQLAlchemyError as e:
            LOGGER.error(f"Error retrieving messages for {conversation_id}: {str(e)}", exc_info=True)
            raise
