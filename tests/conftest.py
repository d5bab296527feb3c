"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone
from typing import Optional
from unittest.mock import MagicMock
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession

from policylens.core.unified_llm import UnifiedLLMClient
from policylens.main import app
from policylens.models.documents import Chunk, TenantContext
from policylens.models.enums import SectionType
from policylens.models.llm import LLMResponse
from policylens.models.retrieval import ChunkSearchResult


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def tenant() -> TenantContext:
    return TenantContext(tenant_id=uuid4(), user_id=uuid4())


@pytest.fixture
def tenant_headers(tenant: TenantContext) -> dict:
    return {"X-Tenant-ID": str(tenant.tenant_id), "X-User-ID": str(tenant.user_id)}


@pytest.fixture
def mock_llm_client() -> MagicMock:
    """LLM client whose `complete` is an AsyncMock; tests set `stream` themselves."""
    return MagicMock(spec=UnifiedLLMClient)


@pytest.fixture
def mock_session() -> MagicMock:
    """Async session double: awaitable commit/rollback/flush/execute, sync add."""
    return MagicMock(spec=AsyncSession)


def llm_ok(text: str, input_tokens: int = 100, output_tokens: int = 50) -> LLMResponse:
    return LLMResponse(success=True, text=text, input_tokens=input_tokens, output_tokens=output_tokens)


def llm_failed(error: str = "provider unavailable") -> LLMResponse:
    return LLMResponse(success=False, error=error)


def make_chunk(
    index: int,
    text: str = "Sample policy text",
    page_start: int = 1,
    page_end: Optional[int] = None,
    section_type: SectionType = SectionType.UNKNOWN,
) -> Chunk:
    return Chunk(
        index=index,
        text=text,
        page_start=page_start,
        page_end=page_end or page_start,
        token_count=max(1, len(text) // 4),
        section_type=section_type,
    )


def make_search_result(
    page_start: Optional[int] = 1,
    page_end: Optional[int] = None,
    similarity: float = 0.8,
    chunk_text: str = "Each Occurrence Limit $1,000,000",
    section_type: Optional[str] = "declarations",
    document_name: str = "policy.pdf",
    chunk_id: Optional[UUID] = None,
    created_at: Optional[datetime] = None,
) -> ChunkSearchResult:
    return ChunkSearchResult(
        chunk_id=chunk_id or uuid4(),
        document_id=uuid4(),
        document_name=document_name,
        page_start=page_start,
        page_end=page_end if page_end is not None else page_start,
        section_type=section_type,
        chunk_text=chunk_text,
        similarity=similarity,
        created_at=created_at or datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
