from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class EmbeddingResult(BaseModel):
    """Vectors for a batch of texts, in input order.

    Entries whose batch failed after retries are None and listed in
    `failed_indices`.
    """

    success: bool
    vectors: List[Optional[List[float]]] = Field(default_factory=list)
    total_tokens_used: int = 0
    failed_indices: List[int] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def embedded_count(self) -> int:
        return sum(1 for vector in self.vectors if vector is not None)


class ChunkSearchResult(BaseModel):
    """A retrieved excerpt carrying everything needed to render a citation."""

    chunk_id: UUID
    document_id: UUID
    document_name: str
    chunk_index: int = 0
    page_start: Optional[int] = None
    page_end: Optional[int] = None
    section_type: Optional[str] = None
    chunk_text: str
    similarity: float
    created_at: Optional[datetime] = None


class SearchRequest(BaseModel):
    query: str
    document_ids: Optional[List[UUID]] = None
    policy_ids: Optional[List[UUID]] = None
    top_k: Optional[int] = Field(default=None, ge=1, le=100)
    min_similarity: Optional[float] = Field(default=None, ge=0.0, le=1.0)
