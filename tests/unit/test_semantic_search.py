"""Unit tests for tenant-scoped semantic search."""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from policylens.core.exceptions import EmbeddingError
from policylens.services.retrieval import SemanticSearchService, rank_results

from conftest import make_search_result


def _chunk_row(text: str, distance: float, page: int = 1, created_at=None):
    chunk = SimpleNamespace(
        id=uuid4(),
        document_id=uuid4(),
        chunk_index=page - 1,
        page_start=page,
        page_end=page,
        section_type="declarations",
        chunk_text=text,
        created_at=created_at or datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    return chunk, "policy.pdf", distance


@pytest.fixture
def embedder() -> MagicMock:
    embedder = MagicMock()
    embedder.embed_query = AsyncMock(return_value=[0.1, 0.2, 0.3])
    return embedder


@pytest.fixture
def chunk_repository() -> MagicMock:
    repository = MagicMock()
    repository.semantic_search = AsyncMock(return_value=[])
    return repository


class TestRankResults:
    def test_floor_and_ordering(self):
        results = [
            make_search_result(similarity=0.5),
            make_search_result(similarity=0.9),
            make_search_result(similarity=0.2),
        ]

        ranked = rank_results(results, top_k=10, min_similarity=0.3)

        assert [r.similarity for r in ranked] == [0.9, 0.5]

    def test_ties_prefer_newer_chunks(self):
        older = make_search_result(similarity=0.7, created_at=datetime(2023, 1, 1, tzinfo=timezone.utc))
        newer = make_search_result(similarity=0.7, created_at=datetime(2024, 6, 1, tzinfo=timezone.utc))

        assert rank_results([older, newer], top_k=2, min_similarity=0.0) == [newer, older]

    def test_top_k_limit(self):
        results = [make_search_result(similarity=0.4 + i / 100) for i in range(10)]

        assert len(rank_results(results, top_k=3, min_similarity=0.3)) == 3


class TestSemanticSearchService:
    @pytest.mark.asyncio
    async def test_empty_query_skips_embedding(self, embedder, chunk_repository, tenant):
        service = SemanticSearchService(embedder, chunk_repository)

        assert await service.search(tenant, "   ") == []
        embedder.embed_query.assert_not_awaited()
        chunk_repository.semantic_search.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_corpus_returns_no_results(self, embedder, chunk_repository, tenant):
        service = SemanticSearchService(embedder, chunk_repository)

        results = await service.search(tenant, "What is the aggregate limit?")

        assert results == []
        embedder.embed_query.assert_awaited_once_with("What is the aggregate limit?")
        chunk_repository.semantic_search.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_search_converts_distance_to_similarity(self, embedder, chunk_repository, tenant):
        chunk_repository.semantic_search.return_value = [
            _chunk_row("Each Occurrence $1,000,000", 0.1, page=2),
            _chunk_row("Unrelated boilerplate", 0.8, page=9),
        ]
        service = SemanticSearchService(embedder, chunk_repository, top_k=5, candidate_multiplier=2)
        document_ids = [uuid4()]

        results = await service.search(tenant, "  What is the occurrence limit?  ", document_ids=document_ids)

        assert len(results) == 1
        assert results[0].similarity == pytest.approx(0.9)
        assert results[0].page_start == 2
        assert results[0].document_name == "policy.pdf"
        embedder.embed_query.assert_awaited_once_with("What is the occurrence limit?")
        chunk_repository.semantic_search.assert_awaited_once_with(
            tenant.tenant_id,
            [0.1, 0.2, 0.3],
            limit=10,
            document_ids=document_ids,
            policy_ids=None,
        )

    @pytest.mark.asyncio
    async def test_call_overrides(self, embedder, chunk_repository, tenant):
        chunk_repository.semantic_search.return_value = [
            _chunk_row("a", 0.5),
            _chunk_row("b", 0.6),
            _chunk_row("c", 0.65),
        ]
        service = SemanticSearchService(embedder, chunk_repository, top_k=10, min_similarity=0.3)

        results = await service.search(tenant, "deductible", top_k=2, min_similarity=0.0)

        assert [r.chunk_text for r in results] == ["a", "b"]
        assert chunk_repository.semantic_search.call_args.kwargs["limit"] == 4

    @pytest.mark.asyncio
    async def test_embedding_failure_propagates(self, embedder, chunk_repository, tenant):
        embedder.embed_query.side_effect = EmbeddingError("model unavailable")
        service = SemanticSearchService(embedder, chunk_repository)

        with pytest.raises(EmbeddingError):
            await service.search(tenant, "limits")

    def test_from_settings(self, embedder, chunk_repository):
        settings = SimpleNamespace(top_k=7, min_similarity=0.4, candidate_multiplier=3)

        service = SemanticSearchService.from_settings(embedder, chunk_repository, settings)

        assert (service.top_k, service.min_similarity, service.candidate_multiplier) == (7, 0.4, 3)
