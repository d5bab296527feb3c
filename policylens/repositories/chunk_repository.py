from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from policylens.database.models import Document, DocumentChunk, Policy
from policylens.models.documents import Chunk
from policylens.models.enums import EmbeddingStatus
from policylens.repositories.base_repository import BaseRepository
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ChunkRepository(BaseRepository[DocumentChunk]):
    """Repository for document chunks and their pgvector embeddings."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DocumentChunk)

    async def replace_chunks(
        self,
        document_id: UUID,
        tenant_id: UUID,
        chunks: Sequence[Chunk],
    ) -> List[DocumentChunk]:
        """Replace every chunk of a document (reprocessing starts clean).

        Returns:
            Created rows in chunk index order
        """
        try:
            await self.session.execute(
                delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
            )

            rows = []
            for chunk in sorted(chunks, key=lambda c: c.index):
                row = DocumentChunk(
                    tenant_id=tenant_id,
                    document_id=document_id,
                    chunk_index=chunk.index,
                    chunk_text=chunk.text,
                    page_start=chunk.page_start,
                    page_end=chunk.page_end,
                    section_type=chunk.section_type.value,
                    token_count=chunk.token_count,
                    embedding_status=EmbeddingStatus.PENDING.value,
                )
                self.session.add(row)
                rows.append(row)

            await self.session.flush()
            LOGGER.info(f"Stored {len(rows)} chunks for document {document_id}")
            return rows
        except SQLAlchemyError as e:
            LOGGER.error(f"Error storing chunks for document {document_id}: {str(e)}", exc_info=True)
            raise

    async def update_section_types(self, rows: Sequence[DocumentChunk], chunks: Sequence[Chunk]) -> None:
        """Copy re-tagged section types from chunks onto their rows by index."""
        by_index = {chunk.index: chunk for chunk in chunks}
        for row in rows:
            chunk = by_index.get(row.chunk_index)
            if chunk is not None:
                row.section_type = chunk.section_type.value
        await self.session.flush()

    async def store_embeddings(
        self,
        rows: Sequence[DocumentChunk],
        vectors: Sequence[Optional[List[float]]],
        model_name: str,
    ) -> Tuple[int, int]:
        """Attach vectors to chunk rows; rows without a vector are marked failed.

        Returns:
            (embedded_count, failed_count)
        """
        embedded = failed = 0
        try:
            for row, vector in zip(rows, vectors):
                if vector is None:
                    row.embedding = None
                    row.embedding_status = EmbeddingStatus.FAILED.value
                    failed += 1
                else:
                    row.embedding = vector
                    row.embedding_status = EmbeddingStatus.EMBEDDED.value
                    row.embedding_model = model_name
                    embedded += 1
            await self.session.flush()
            return embedded, failed
        except SQLAlchemyError as e:
            LOGGER.error(f"Error storing chunk embeddings: {str(e)}", exc_info=True)
            raise

    async def semantic_search(
        self,
        tenant_id: UUID,
        embedding: List[float],
        limit: int,
        document_ids: Optional[Sequence[UUID]] = None,
        policy_ids: Optional[Sequence[UUID]] = None,
    ) -> List[Tuple[DocumentChunk, str, float]]:
        """Nearest chunks by cosine distance within the tenant scope.

        Only chunks with `embedding_status="embedded"` are searched. A policy
        id filter matches chunks of the policy's source document.

        Returns:
            (chunk, document file name, cosine distance) tuples, nearest first
        """
        try:
            distance_expr = DocumentChunk.embedding.cosine_distance(embedding)
            query = (
                select(DocumentChunk, Document.file_name, distance_expr.label("distance"))
                .join(Document, Document.id == DocumentChunk.document_id)
                .where(
                    DocumentChunk.tenant_id == tenant_id,
                    DocumentChunk.embedding.is_not(None),
                    DocumentChunk.embedding_status == EmbeddingStatus.EMBEDDED.value,
                )
            )

            if document_ids:
                query = query.where(DocumentChunk.document_id.in_(list(document_ids)))
            if policy_ids:
                source_documents = select(Policy.source_document_id).where(
                    Policy.id.in_(list(policy_ids)),
                    Policy.tenant_id == tenant_id,
                )
                query = query.where(DocumentChunk.document_id.in_(source_documents))

            query = query.order_by(distance_expr).limit(limit)
            result = await self.session.execute(query)
            return [(row[0], row[1], float(row[2])) for row in result.all()]
        except SQLAlchemyError as e:
            LOGGER.error(f"Semantic chunk search failed: {str(e)}", exc_info=True)
            raise
