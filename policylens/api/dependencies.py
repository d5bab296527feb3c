"""FastAPI dependencies: tenant scope, database session and service wiring."""

from functools import lru_cache
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from policylens.core.config import settings
from policylens.core.database import get_async_session
from policylens.core.unified_llm import UnifiedLLMClient, create_llm_client_from_settings
from policylens.models.documents import TenantContext
from policylens.repositories.chunk_repository import ChunkRepository
from policylens.services.chat.chat_service import ChatService
from policylens.services.embedding.embedding_service import (
    EmbeddingService,
    create_embedding_service_from_settings,
)
from policylens.services.pipeline.document_processing_service import DocumentProcessingService
from policylens.services.retrieval.semantic_search_service import SemanticSearchService


async def get_tenant_context(
    x_tenant_id: Annotated[UUID, Header(description="Tenant scope for the request")],
    x_user_id: Annotated[Optional[UUID], Header()] = None,
) -> TenantContext:
    return TenantContext(tenant_id=x_tenant_id, user_id=x_user_id)


@lru_cache
def get_llm_client() -> UnifiedLLMClient:
    return create_llm_client_from_settings(settings.llm)


@lru_cache
def get_embedding_service() -> EmbeddingService:
    return create_embedding_service_from_settings(settings.embedding)


async def get_search_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)],
    embedder: Annotated[EmbeddingService, Depends(get_embedding_service)],
) -> SemanticSearchService:
    return SemanticSearchService.from_settings(embedder, ChunkRepository(db_session), settings.retrieval)


async def get_chat_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)],
    llm_client: Annotated[UnifiedLLMClient, Depends(get_llm_client)],
    search_service: Annotated[SemanticSearchService, Depends(get_search_service)],
) -> ChatService:
    return ChatService(db_session, llm_client, search_service, settings.chat)


async def get_processing_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)],
    llm_client: Annotated[UnifiedLLMClient, Depends(get_llm_client)],
    embedder: Annotated[EmbeddingService, Depends(get_embedding_service)],
) -> DocumentProcessingService:
    return DocumentProcessingService(
        db_session,
        llm_client,
        embedder,
        chunking_settings=settings.chunking,
        extraction_settings=settings.extraction,
    )
