"""SQLAlchemy models for all database tables."""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    TIMESTAMP,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from pgvector.sqlalchemy import Vector

from policylens.core.config import settings
from policylens.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(Base):
    """Uploaded insurance document and its processing state."""

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    page_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending"
    )  # pending | processing | completed | failed
    processing_stage: Mapped[str | None] = mapped_column(
        String(30), nullable=True,
        comment="Last stage whose writes were committed"
    )
    processing_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    document_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    classification_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    extraction_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    needs_human_review: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    validation_issues: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    quality_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    scanned_page_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=_utcnow
    )

    chunks: Mapped[list["DocumentChunk"]] = relationship(
        "DocumentChunk", back_populates="document", cascade="all, delete-orphan"
    )
    policies: Mapped[list["Policy"]] = relationship("Policy", back_populates="source_document")


class DocumentChunk(Base):
    """Token-bounded slice of document text with its embedding."""

    __tablename__ = "document_chunks"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    chunk_text: Mapped[str] = mapped_column(Text, nullable=False)
    page_start: Mapped[int | None] = mapped_column(Integer, nullable=True)
    page_end: Mapped[int | None] = mapped_column(Integer, nullable=True)
    section_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    token_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(settings.embedding.dimension), nullable=True
    )
    embedding_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending"
    )  # pending | embedded | failed
    embedding_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", nullable=False
    )

    document: Mapped["Document"] = relationship("Document", back_populates="chunks")


class Policy(Base):
    """Structured policy record extracted from a document."""

    __tablename__ = "policies"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    source_document_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id", ondelete="SET NULL"), nullable=True
    )
    policy_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    quote_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    policy_status: Mapped[str] = mapped_column(String(20), nullable=False, default="quote")
    effective_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    quote_expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    carrier_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    carrier_naic: Mapped[str | None] = mapped_column(String(10), nullable=True)
    insured_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    insured_address_line1: Mapped[str | None] = mapped_column(String(255), nullable=True)
    insured_address_line2: Mapped[str | None] = mapped_column(String(255), nullable=True)
    insured_city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    insured_state: Mapped[str | None] = mapped_column(String(50), nullable=True)
    insured_zip: Mapped[str | None] = mapped_column(String(20), nullable=True)
    total_premium: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    extraction_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    raw_extraction: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=_utcnow
    )

    source_document: Mapped["Document | None"] = relationship("Document", back_populates="policies")
    coverages: Mapped[list["Coverage"]] = relationship(
        "Coverage", back_populates="policy", cascade="all, delete-orphan"
    )


class Coverage(Base):
    """One coverage line of a policy."""

    __tablename__ = "coverages"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    policy_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("policies.id", ondelete="CASCADE"), nullable=False
    )
    coverage_type: Mapped[str] = mapped_column(String(50), nullable=False)
    coverage_subtype: Mapped[str | None] = mapped_column(String(100), nullable=True)
    each_occurrence_limit: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    aggregate_limit: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    deductible: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    premium: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    is_occurrence_form: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_claims_made: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    retroactive_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    details: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    extraction_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", nullable=False
    )

    policy: Mapped["Policy"] = relationship("Policy", back_populates="coverages")


class Conversation(Base):
    """Chat conversation scoped to a set of policies and documents."""

    __tablename__ = "conversations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    user_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    policy_ids: Mapped[list[uuid.UUID]] = mapped_column(
        ARRAY(UUID(as_uuid=True)), nullable=False, default=list
    )
    document_ids: Mapped[list[uuid.UUID]] = mapped_column(
        ARRAY(UUID(as_uuid=True)), nullable=False, default=list
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=_utcnow, server_default="NOW()", nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=_utcnow
    )

    messages: Mapped[list["Message"]] = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.created_at",
    )


class Message(Base):
    """Append-only chat message."""

    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)  # user | assistant
    content: Mapped[str] = mapped_column(Text, nullable=False)
    cited_chunk_ids: Mapped[list[uuid.UUID]] = mapped_column(
        ARRAY(UUID(as_uuid=True)), nullable=False, default=list
    )
    prompt_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    completion_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=_utcnow, nullable=False
    )

    conversation: Mapped["Conversation"] = relationship("Conversation", back_populates="messages")
