"""Tenant-scoped semantic search over embedded chunks."""

from datetime import datetime, timezone
from typing import List, Optional, Sequence
from uuid import UUID

from policylens.core.config import RetrievalSettings
from policylens.models.documents import TenantContext
from policylens.models.retrieval import ChunkSearchResult
from policylens.repositories.chunk_repository import ChunkRepository
from policylens.services.embedding.embedding_service import EmbeddingService
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def rank_results(
    results: Sequence[ChunkSearchResult],
    top_k: int,
    min_similarity: float,
) -> List[ChunkSearchResult]:
    """Drop results under the floor, then order by similarity and recency."""
    kept = [r for r in results if r.similarity >= min_similarity]
    kept.sort(key=lambda r: (r.similarity, r.created_at or _OLDEST), reverse=True)
    return kept[:top_k]


class SemanticSearchService:
    """Nearest-neighbour chunk search producing citable excerpts.

    Attributes:
        embedder: Embeds the query with the same model as the chunks
        chunk_repository: pgvector search over DocumentChunk rows
        top_k: Default number of results
        min_similarity: Default similarity floor
    """

    def __init__(
        self,
        embedder: EmbeddingService,
        chunk_repository: ChunkRepository,
        top_k: int = 10,
        min_similarity: float = 0.3,
        candidate_multiplier: int = 2,
    ):
        self.embedder = embedder
        self.chunk_repository = chunk_repository
        self.top_k = top_k
        self.min_similarity = min_similarity
        self.candidate_multiplier = max(1, candidate_multiplier)

    @classmethod
    def from_settings(
        cls,
        embedder: EmbeddingService,
        chunk_repository: ChunkRepository,
        retrieval_settings: RetrievalSettings,
    ) -> "SemanticSearchService":
        return cls(
            embedder,
            chunk_repository,
            top_k=retrieval_settings.top_k,
            min_similarity=retrieval_settings.min_similarity,
            candidate_multiplier=retrieval_settings.candidate_multiplier,
        )

    async def search(
        self,
        tenant: TenantContext,
        query: str,
        document_ids: Optional[Sequence[UUID]] = None,
        policy_ids: Optional[Sequence[UUID]] = None,
        top_k: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> List[ChunkSearchResult]:
        """Search the tenant's embedded chunks.

        An empty query returns an empty list. Embedding or storage failures
        propagate so callers can decide whether to degrade.
        """
        if not query or not query.strip():
            return []

        top_k = top_k or self.top_k
        floor = self.min_similarity if min_similarity is None else min_similarity

        LOGGER.info(
            f"Semantic search: top_k={top_k}, min_similarity={floor}, tenant={tenant.tenant_id}",
            extra={
                "document_filter": len(document_ids or []),
                "policy_filter": len(policy_ids or []),
            }
        )

        query_vector = await self.embedder.embed_query(query.strip())
        rows = await self.chunk_repository.semantic_search(
            tenant.tenant_id,
            query_vector,
            limit=top_k * self.candidate_multiplier,
            document_ids=document_ids,
            policy_ids=policy_ids,
        )

        candidates = [
            ChunkSearchResult(
                chunk_id=chunk.id,
                document_id=chunk.document_id,
                document_name=file_name,
                chunk_index=chunk.chunk_index,
                page_start=chunk.page_start,
                page_end=chunk.page_end,
                section_type=chunk.section_type,
                chunk_text=chunk.chunk_text,
                similarity=1.0 - distance,
                created_at=chunk.created_at,
            )
            for chunk, file_name, distance in rows
        ]
        results = rank_results(candidates, top_k, floor)

        LOGGER.info(
            f"Semantic search returned {len(results)} results, "
            f"top similarity: {results[0].similarity if results else 0:.3f}"
        )
        return results
