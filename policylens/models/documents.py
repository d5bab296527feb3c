"""Data models for extracted page text, chunks and the tenant scope."""

from dataclasses import dataclass
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from policylens.models.enums import SectionType

SCANNED_SCORE_THRESHOLD = 30.0


@dataclass(frozen=True)
class TenantContext:
    """Explicit tenant scope passed through every pipeline, retrieval and chat call."""

    tenant_id: UUID
    user_id: Optional[UUID] = None


class RawPage(BaseModel):
    """Text of a single PDF page. Produced once per document."""

    model_config = {"frozen": True}

    page_number: int = Field(..., ge=1, description="1-indexed page number")
    text: str = ""
    quality_score: float = Field(default=0.0, ge=0.0, le=100.0)
    text_density: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Ratio of character area to page area"
    )
    is_scanned: bool = False


class TextExtractionResult(BaseModel):
    """Outcome of pulling text out of a PDF byte stream."""

    success: bool
    error: Optional[str] = None
    pages: Dict[int, RawPage] = Field(default_factory=dict)
    page_count: int = 0
    quality_score: float = Field(default=0.0, ge=0.0, le=100.0)
    scanned_page_count: int = 0

    @property
    def appears_scanned(self) -> bool:
        return self.success and self.quality_score < SCANNED_SCORE_THRESHOLD

    @property
    def is_hybrid_document(self) -> bool:
        return 0 < self.scanned_page_count < self.page_count

    @property
    def page_texts(self) -> Dict[int, str]:
        return {number: page.text for number, page in self.pages.items()}


class Chunk(BaseModel):
    """A token-bounded, page-anchored slice of document text."""

    index: int = Field(..., ge=0)
    text: str
    page_start: int = Field(..., ge=1)
    page_end: int = Field(..., ge=1)
    token_count: int = Field(..., ge=0)
    section_type: SectionType = SectionType.UNKNOWN
