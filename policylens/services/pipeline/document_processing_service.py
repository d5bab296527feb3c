"""End-to-end processing of one document.

text extraction → chunking → classification → structured extraction
(in parallel with embedding) → validation → persisted records.

Writes are committed stage by stage. A cancelled run leaves the document
`pending` with `processing_stage` set to the last committed stage.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from policylens.core.config import ChunkingSettings, ExtractionSettings
from policylens.core.exceptions import (
    AppError,
    DocumentAlreadyProcessingError,
    DocumentNotFoundError,
    PipelineError,
)
from policylens.core.unified_llm import UnifiedLLMClient
from policylens.database.models import Document, DocumentChunk
from policylens.models.documents import Chunk, TenantContext
from policylens.models.enums import DocumentType, ProcessingStage, ProcessingStatus
from policylens.models.events import (
    STAGE_PROGRESS,
    DocumentProcessedEvent,
    DocumentProgressEvent,
    PipelineEvent,
    PipelineStage,
    ProcessingOutcome,
)
from policylens.models.extraction import (
    ClassificationResult,
    ExtractionResult,
    PolicyExtraction,
)
from policylens.models.retrieval import EmbeddingResult
from policylens.models.validation import ValidationResult
from policylens.repositories.chunk_repository import ChunkRepository
from policylens.repositories.document_repository import DocumentRepository
from policylens.repositories.policy_repository import CoverageRepository, PolicyRepository
from policylens.services.chunking.text_chunker import ChunkingOptions, TextChunker, retag_sections
from policylens.services.classification.document_classifier import DocumentClassifier
from policylens.services.embedding.embedding_service import EmbeddingService
from policylens.services.extraction.extraction_service import ExtractionService
from policylens.services.pipeline.progress_notifier import LoggingProgressNotifier, ProgressNotifier
from policylens.services.text_extraction.pdf_text_extractor import PdfTextExtractor
from policylens.services.validation.extraction_validator import ExtractionValidator
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class _RunState:
    """What the current run has produced so far."""

    chunk_count: int = 0
    embedded_count: int = 0
    policy_id: Optional[UUID] = None
    coverage_count: int = 0
    classification_failed: bool = False
    validation: Optional[ValidationResult] = None
    chunk_rows: List[DocumentChunk] = field(default_factory=list)


class DocumentProcessingService:
    """Run the extraction pipeline for one document at a time.

    Only one run per document may be active: starting a run is an atomic
    conditional update, and a second request raises
    DocumentAlreadyProcessingError.
    """

    def __init__(
        self,
        session: AsyncSession,
        llm_client: UnifiedLLMClient,
        embedder: EmbeddingService,
        notifier: Optional[ProgressNotifier] = None,
        chunking_settings: Optional[ChunkingSettings] = None,
        extraction_settings: Optional[ExtractionSettings] = None,
    ):
        chunking_settings = chunking_settings or ChunkingSettings()
        extraction_settings = extraction_settings or ExtractionSettings()

        self.session = session
        self.embedder = embedder
        self.notifier = notifier or LoggingProgressNotifier()

        self.document_repository = DocumentRepository(session)
        self.chunk_repository = ChunkRepository(session)
        self.policy_repository = PolicyRepository(session)
        self.coverage_repository = CoverageRepository(session)

        self.text_extractor = PdfTextExtractor()
        self.chunker = TextChunker()
        self.chunking_options = ChunkingOptions(
            target_tokens=chunking_settings.target_tokens,
            max_tokens=chunking_settings.max_tokens,
            overlap_tokens=chunking_settings.overlap_tokens,
        )
        self.classifier = DocumentClassifier(
            llm_client, max_pages=extraction_settings.classification_max_pages
        )
        self.extraction_service = ExtractionService(
            llm_client,
            strategy=extraction_settings.strategy,
            declarations_fallback_chunks=extraction_settings.declarations_fallback_chunks,
            coverage_max_chunks=extraction_settings.coverage_max_chunks,
        )
        self.validator = ExtractionValidator()

    async def register_document(
        self,
        tenant: TenantContext,
        file_name: str,
        document_id: Optional[UUID] = None,
    ) -> Document:
        """Return the tenant's document, creating it when the id is new.

        Raises:
            DocumentNotFoundError: The id belongs to another tenant
        """
        if document_id is not None:
            existing = await self.document_repository.get_for_tenant(document_id, tenant.tenant_id)
            if existing is not None:
                return existing
            if await self.document_repository.get_by_id(document_id) is not None:
                raise DocumentNotFoundError(f"Document {document_id} not found")

        document = await self.document_repository.create_document(
            tenant.tenant_id, file_name, document_id=document_id
        )
        await self.session.commit()
        return document

    async def process_document(
        self,
        tenant: TenantContext,
        document_id: UUID,
        pdf_bytes: bytes,
    ) -> ProcessingOutcome:
        """Process a document end to end.

        Failures inside the run mark the document failed and are reported in
        the returned outcome and the terminal event.

        Raises:
            DocumentNotFoundError: Unknown document for this tenant
            DocumentAlreadyProcessingError: Another run is active
        """
        document = await self.document_repository.get_for_tenant(document_id, tenant.tenant_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")

        acquired = await self.document_repository.try_start_processing(document_id, tenant.tenant_id)
        await self.session.commit()
        if not acquired:
            raise DocumentAlreadyProcessingError(f"Document {document_id} is already being processed")

        file_name = document.file_name
        state = _RunState()
        start_time = time.time()
        LOGGER.info(
            f"Starting processing for document {document_id}",
            extra={"tenant_id": str(tenant.tenant_id), "file_name": file_name, "size": len(pdf_bytes)}
        )

        try:
            outcome = await self._run(tenant, document_id, file_name, pdf_bytes, state)
        except asyncio.CancelledError:
            LOGGER.warning(f"Processing of document {document_id} cancelled")
            await asyncio.shield(self._release_after_cancel(document_id))
            raise
        except Exception as e:
            return await self._fail(tenant, document_id, state, e)

        LOGGER.info(
            f"Document {document_id} processed in {time.time() - start_time:.2f}s",
            extra={
                "chunks": outcome.chunk_count,
                "embedded": outcome.embedded_chunk_count,
                "coverages": outcome.coverage_count,
                "confidence": outcome.confidence,
            }
        )
        return outcome

    async def _run(
        self,
        tenant: TenantContext,
        document_id: UUID,
        file_name: str,
        pdf_bytes: bytes,
        state: _RunState,
    ) -> ProcessingOutcome:
        # 1. Text extraction
        await self._progress(tenant, document_id, PipelineStage.TEXT_EXTRACTION, "Extracting text")
        extraction = await self.text_extractor.extract(pdf_bytes, file_name)
        if not extraction.success:
            raise PipelineError(extraction.error or "Text extraction failed", stage=PipelineStage.TEXT_EXTRACTION.value)
        if extraction.appears_scanned:
            LOGGER.warning(
                f"Document {document_id} appears scanned; scanned pages are not OCR'd",
                extra={"quality_score": extraction.quality_score}
            )
        await self.document_repository.mark_stage(
            document_id,
            ProcessingStage.TEXT_EXTRACTED.value,
            page_count=extraction.page_count,
            quality_score=extraction.quality_score,
            scanned_page_count=extraction.scanned_page_count,
        )
        await self.session.commit()

        # 2. Chunking
        await self._progress(tenant, document_id, PipelineStage.CHUNKING, "Chunking text")
        page_texts = extraction.page_texts
        chunks = self.chunker.chunk(page_texts, self.chunking_options)
        if not chunks:
            raise PipelineError(
                "No extractable text found in document (scanned documents are not supported)",
                stage=PipelineStage.CHUNKING.value,
            )
        await self.policy_repository.delete_by_document(document_id)
        state.chunk_rows = await self.chunk_repository.replace_chunks(document_id, tenant.tenant_id, chunks)
        state.chunk_count = len(chunks)
        await self.document_repository.mark_stage(document_id, ProcessingStage.CHUNKED.value)
        await self.session.commit()

        # 3. Classification (never blocks extraction)
        await self._progress(tenant, document_id, PipelineStage.CLASSIFICATION, "Classifying document")
        classification = await self._classify(page_texts, file_name)
        state.classification_failed = not classification.success
        chunks = retag_sections(chunks, classification)
        await self.chunk_repository.update_section_types(state.chunk_rows, chunks)
        await self.document_repository.mark_stage(
            document_id,
            ProcessingStage.CLASSIFIED.value,
            document_type=classification.document_type.value,
            classification_confidence=classification.confidence,
        )
        await self.session.commit()

        # 4. Structured extraction and embedding run concurrently; writes follow on this session
        await self._progress(tenant, document_id, PipelineStage.EXTRACTION, "Extracting policy data")
        settled = await asyncio.gather(
            self._extract(chunks, classification),
            self._embed(chunks),
            return_exceptions=True,
        )
        for outcome in settled:
            if isinstance(outcome, BaseException):
                raise outcome
        extracted, embedded = settled

        policy_result = self.validator.validate_policy(extracted.policy)
        coverage_results = [self.validator.validate_coverage(c) for c in extracted.coverages]
        if extracted.policy.success:
            policy = await self.policy_repository.create_from_extraction(
                tenant.tenant_id, document_id, extracted.policy, policy_result.adjusted_confidence
            )
            state.policy_id = policy.id
            await self.coverage_repository.create_many(
                tenant.tenant_id,
                policy.id,
                extracted.coverages,
                [r.adjusted_confidence for r in coverage_results],
            )
            state.coverage_count = len(extracted.coverages)
        await self.document_repository.mark_stage(document_id, ProcessingStage.EXTRACTED.value)
        await self.session.commit()

        # 5. Validation
        await self._progress(tenant, document_id, PipelineStage.VALIDATION, "Validating extraction")
        validation = self.validator.validate_complete(
            extracted.policy, extracted.coverages, classification.confidence
        )
        state.validation = validation
        await self.document_repository.mark_stage(
            document_id,
            ProcessingStage.VALIDATED.value,
            extraction_confidence=validation.adjusted_confidence,
            needs_human_review=validation.needs_human_review,
            validation_issues={
                "errors": [issue.model_dump() for issue in validation.errors],
                "warnings": [issue.model_dump() for issue in validation.warnings],
            },
        )
        await self.session.commit()

        # 6. Embeddings
        await self._progress(tenant, document_id, PipelineStage.EMBEDDING, "Storing embeddings")
        state.embedded_count, failed = await self.chunk_repository.store_embeddings(
            state.chunk_rows, embedded.vectors, self.embedder.model_name
        )
        if failed:
            LOGGER.warning(
                f"{failed} of {state.chunk_count} chunks were not embedded for document {document_id}",
                extra={"error": embedded.error}
            )
        await self.document_repository.mark_stage(document_id, ProcessingStage.EMBEDDED.value)
        await self.document_repository.mark_completed(document_id)
        await self.session.commit()

        await self._progress(tenant, document_id, PipelineStage.COMPLETED, "Processing complete")
        await self._emit(DocumentProcessedEvent(
            document_id=document_id,
            tenant_id=tenant.tenant_id,
            success=True,
            policy_id=state.policy_id,
            coverage_count=state.coverage_count,
            confidence=validation.adjusted_confidence,
            needs_human_review=validation.needs_human_review,
        ))

        return ProcessingOutcome(
            document_id=document_id,
            status=ProcessingStatus.COMPLETED.value,
            policy_id=state.policy_id,
            coverage_count=state.coverage_count,
            chunk_count=state.chunk_count,
            embedded_chunk_count=state.embedded_count,
            confidence=validation.adjusted_confidence,
            needs_human_review=validation.needs_human_review,
            classification_failed=state.classification_failed,
            error=embedded.error,
        )

    async def _classify(self, page_texts, file_name: str) -> ClassificationResult:
        try:
            return await self.classifier.classify(page_texts, file_name)
        except AppError as e:
            LOGGER.warning(f"Classification raised, continuing as unknown: {e}", exc_info=True)
            return ClassificationResult(
                success=False,
                document_type=DocumentType.UNKNOWN,
                confidence=0.0,
                error=str(e),
            )

    async def _extract(self, chunks: List[Chunk], classification: ClassificationResult) -> ExtractionResult:
        try:
            return await self.extraction_service.extract(chunks, classification)
        except AppError as e:
            LOGGER.error(f"Structured extraction failed: {e}", exc_info=True)
            return ExtractionResult(
                policy=PolicyExtraction(success=False, error=str(e)),
                coverages=[],
                strategy=self.extraction_service.strategy,
            )

    async def _embed(self, chunks: List[Chunk]) -> EmbeddingResult:
        texts = [chunk.text for chunk in chunks]
        try:
            return await self.embedder.embed_texts(texts)
        except AppError as e:
            LOGGER.error(f"Embedding failed for every chunk: {e}", exc_info=True)
            return EmbeddingResult(
                success=False,
                vectors=[None] * len(texts),
                failed_indices=list(range(len(texts))),
                error=str(e),
            )

    async def _fail(
        self,
        tenant: TenantContext,
        document_id: UUID,
        state: _RunState,
        error: Exception,
    ) -> ProcessingOutcome:
        message = error.message if isinstance(error, AppError) else str(error)
        stage = getattr(error, "stage", None)
        LOGGER.error(
            f"Processing failed for document {document_id}: {message}",
            exc_info=True,
            extra={"stage": stage}
        )

        await self.session.rollback()
        await self.document_repository.mark_failed(document_id, message)
        await self.session.commit()

        await self._emit(DocumentProcessedEvent(
            document_id=document_id,
            tenant_id=tenant.tenant_id,
            success=False,
            error=message,
        ))
        return ProcessingOutcome(
            document_id=document_id,
            status=ProcessingStatus.FAILED.value,
            chunk_count=state.chunk_count,
            classification_failed=state.classification_failed,
            error=message,
        )

    async def _release_after_cancel(self, document_id: UUID):
        """Drop uncommitted writes and release the run lock."""
        try:
            await self.session.rollback()
            await self.document_repository.reset_to_pending(document_id)
            await self.session.commit()
        except Exception as e:
            LOGGER.error(
                f"Failed to reset cancelled document {document_id}: {e}",
                exc_info=True
            )
            raise

    async def _progress(
        self,
        tenant: TenantContext,
        document_id: UUID,
        stage: PipelineStage,
        message: Optional[str] = None,
    ):
        await self._emit(DocumentProgressEvent(
            document_id=document_id,
            tenant_id=tenant.tenant_id,
            stage=stage,
            progress_percent=STAGE_PROGRESS[stage],
            message=message,
        ))

    async def _emit(self, event: PipelineEvent):
        try:
            await self.notifier.notify(event)
        except Exception as e:
            LOGGER.warning(f"Progress notification failed: {e}", exc_info=True)
