from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field


class PipelineEventType(str, Enum):
    DOCUMENT_PROGRESS = "document:progress"
    DOCUMENT_PROCESSED = "document:processed"


class PipelineStage(str, Enum):
    TEXT_EXTRACTION = "text_extraction"
    CHUNKING = "chunking"
    CLASSIFICATION = "classification"
    EXTRACTION = "extraction"
    VALIDATION = "validation"
    EMBEDDING = "embedding"
    COMPLETED = "completed"


STAGE_PROGRESS = {
    PipelineStage.TEXT_EXTRACTION: 10,
    PipelineStage.CHUNKING: 25,
    PipelineStage.CLASSIFICATION: 40,
    PipelineStage.EXTRACTION: 60,
    PipelineStage.VALIDATION: 80,
    PipelineStage.EMBEDDING: 90,
    PipelineStage.COMPLETED: 100,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentProgressEvent(BaseModel):
    event_type: PipelineEventType = PipelineEventType.DOCUMENT_PROGRESS
    document_id: UUID
    tenant_id: UUID
    stage: PipelineStage
    progress_percent: int = Field(..., ge=0, le=100)
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class DocumentProcessedEvent(BaseModel):
    """Terminal event for a document run."""

    event_type: PipelineEventType = PipelineEventType.DOCUMENT_PROCESSED
    document_id: UUID
    tenant_id: UUID
    success: bool
    error: Optional[str] = None
    policy_id: Optional[UUID] = None
    coverage_count: Optional[int] = None
    confidence: Optional[float] = None
    needs_human_review: Optional[bool] = None
    timestamp: datetime = Field(default_factory=_utcnow)


PipelineEvent = Union[DocumentProgressEvent, DocumentProcessedEvent]


class ProcessingOutcome(BaseModel):
    """Summary returned by a finished pipeline run."""

    document_id: UUID
    status: str
    policy_id: Optional[UUID] = None
    coverage_count: int = 0
    chunk_count: int = 0
    embedded_chunk_count: int = 0
    confidence: Optional[float] = None
    needs_human_review: Optional[bool] = None
    classification_failed: bool = False
    error: Optional[str] = None
