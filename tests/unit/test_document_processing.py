"""Unit tests for the document processing pipeline."""

import asyncio
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from policylens.core.exceptions import DocumentAlreadyProcessingError, DocumentNotFoundError
from policylens.models.documents import RawPage, TextExtractionResult
from policylens.models.enums import DocumentType, ProcessingStage
from policylens.models.events import DocumentProcessedEvent, DocumentProgressEvent, PipelineStage
from policylens.models.extraction import (
    ClassificationResult,
    ClassifiedSection,
    CoverageExtraction,
    ExtractionResult,
    PolicyExtraction,
)
from policylens.models.retrieval import EmbeddingResult
from policylens.services.pipeline import DocumentProcessingService, QueueProgressNotifier

PAGE_ONE = "DECLARATIONS\n\nPolicy Number: GL-12345\n\nNamed Insured: Acme"
PAGE_TWO = "COMMERCIAL GENERAL LIABILITY\n\nEach Occurrence $1,000,000\n\nGeneral Aggregate $2,000,000"


def _text_result(*texts: str, success: bool = True, error: str = None) -> TextExtractionResult:
    pages = {
        number: RawPage(page_number=number, text=text, quality_score=90.0)
        for number, text in enumerate(texts, start=1)
    }
    return TextExtractionResult(
        success=success,
        error=error,
        pages=pages,
        page_count=len(pages),
        quality_score=90.0 if success else 0.0,
    )


def _extraction(policy_success: bool = True) -> ExtractionResult:
    if not policy_success:
        return ExtractionResult(policy=PolicyExtraction(success=False, error="LLM timeout"))
    return ExtractionResult(
        policy=PolicyExtraction(policy_number="GL-12345", insured_name="Acme", confidence=0.9),
        coverages=[
            CoverageExtraction(
                coverage_type="general_liability",
                each_occurrence_limit=Decimal("1000000"),
                aggregate_limit=Decimal("2000000"),
                confidence=0.8,
            )
        ],
        input_tokens=1000,
        output_tokens=200,
    )


@pytest.fixture
def notifier() -> QueueProgressNotifier:
    return QueueProgressNotifier(also_log=False)


@pytest.fixture
def embedder() -> MagicMock:
    embedder = MagicMock()
    embedder.model_name = "all-MiniLM-L6-v2"
    embedder.embed_texts = AsyncMock(
        side_effect=lambda texts: EmbeddingResult(success=True, vectors=[[0.1, 0.2]] * len(texts))
    )
    return embedder


@pytest.fixture
def document():
    return SimpleNamespace(id=uuid4(), file_name="policy.pdf")


@pytest.fixture
def service(mock_session, mock_llm_client, embedder, notifier, document) -> DocumentProcessingService:
    service = DocumentProcessingService(
        mock_session,
        mock_llm_client,
        embedder,
        notifier=notifier,
        chunking_settings=SimpleNamespace(target_tokens=500, max_tokens=1000, overlap_tokens=50),
        extraction_settings=SimpleNamespace(
            strategy="unified",
            classification_max_pages=10,
            declarations_fallback_chunks=3,
            coverage_max_chunks=20,
        ),
    )

    service.document_repository = MagicMock()
    service.document_repository.get_for_tenant = AsyncMock(return_value=document)
    service.document_repository.get_by_id = AsyncMock(return_value=None)
    service.document_repository.create_document = AsyncMock(return_value=document)
    service.document_repository.try_start_processing = AsyncMock(return_value=True)
    service.document_repository.mark_stage = AsyncMock()
    service.document_repository.mark_completed = AsyncMock()
    service.document_repository.mark_failed = AsyncMock()
    service.document_repository.reset_to_pending = AsyncMock()

    service.chunk_repository = MagicMock()
    service.chunk_repository.replace_chunks = AsyncMock(
        side_effect=lambda document_id, tenant_id, chunks: [SimpleNamespace(id=uuid4()) for _ in chunks]
    )
    service.chunk_repository.update_section_types = AsyncMock()
    service.chunk_repository.store_embeddings = AsyncMock(return_value=(1, 0))

    service.policy_repository = MagicMock()
    service.policy_repository.delete_by_document = AsyncMock()
    service.policy_repository.create_from_extraction = AsyncMock(return_value=SimpleNamespace(id=uuid4()))

    service.coverage_repository = MagicMock()
    service.coverage_repository.create_many = AsyncMock()

    service.text_extractor = MagicMock()
    service.text_extractor.extract = AsyncMock(return_value=_text_result(PAGE_ONE, PAGE_TWO))

    service.classifier = MagicMock()
    service.classifier.classify = AsyncMock(return_value=ClassificationResult(
        document_type=DocumentType.POLICY,
        coverages_detected=["general_liability"],
        sections=[ClassifiedSection(section_type="declarations", start_page=1, end_page=2)],
        confidence=0.9,
    ))

    service.extraction_service = MagicMock()
    service.extraction_service.strategy = "unified"
    service.extraction_service.extract = AsyncMock(return_value=_extraction())
    return service


def _stages(service) -> list:
    return [c.args[1] for c in service.document_repository.mark_stage.await_args_list]


class TestProcessDocument:
    @pytest.mark.asyncio
    async def test_happy_path(self, service, tenant, document, notifier, embedder):
        outcome = await service.process_document(tenant, document.id, b"%PDF-1.7")

        assert outcome.status == "completed"
        assert outcome.chunk_count == 1
        assert outcome.embedded_chunk_count == 1
        assert outcome.coverage_count == 1
        assert outcome.confidence == pytest.approx(0.84)
        assert outcome.needs_human_review is False
        assert not outcome.classification_failed
        assert outcome.policy_id == service.policy_repository.create_from_extraction.return_value.id

        assert _stages(service) == [
            ProcessingStage.TEXT_EXTRACTED.value,
            ProcessingStage.CHUNKED.value,
            ProcessingStage.CLASSIFIED.value,
            ProcessingStage.EXTRACTED.value,
            ProcessingStage.VALIDATED.value,
            ProcessingStage.EMBEDDED.value,
        ]
        service.document_repository.mark_completed.assert_awaited_once_with(document.id)
        service.policy_repository.delete_by_document.assert_awaited_once_with(document.id)
        embedder.embed_texts.assert_awaited_once()

        events = notifier.drain()
        progress = [e.stage for e in events if isinstance(e, DocumentProgressEvent)]
        assert progress == list(PipelineStage)
        assert isinstance(events[-1], DocumentProcessedEvent)
        assert events[-1].success

    @pytest.mark.asyncio
    async def test_unknown_document(self, service, tenant):
        service.document_repository.get_for_tenant.return_value = None

        with pytest.raises(DocumentNotFoundError):
            await service.process_document(tenant, uuid4(), b"%PDF")

        service.document_repository.try_start_processing.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_concurrent_run_rejected(self, service, tenant, document):
        service.document_repository.try_start_processing.return_value = False

        with pytest.raises(DocumentAlreadyProcessingError):
            await service.process_document(tenant, document.id, b"%PDF")

        service.text_extractor.extract.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_text_extraction_failure_marks_failed(self, service, tenant, document, notifier, mock_session):
        service.text_extractor.extract.return_value = _text_result(success=False, error="Invalid or corrupted PDF")

        outcome = await service.process_document(tenant, document.id, b"not a pdf")

        assert outcome.status == "failed"
        assert outcome.error == "Invalid or corrupted PDF"
        service.document_repository.mark_failed.assert_awaited_once_with(document.id, "Invalid or corrupted PDF")
        mock_session.rollback.assert_awaited_once()
        terminal = notifier.drain()[-1]
        assert isinstance(terminal, DocumentProcessedEvent)
        assert not terminal.success

    @pytest.mark.asyncio
    async def test_document_without_text_fails(self, service, tenant, document):
        service.text_extractor.extract.return_value = _text_result("", "   ")

        outcome = await service.process_document(tenant, document.id, b"%PDF")

        assert outcome.status == "failed"
        assert "No extractable text" in outcome.error
        service.chunk_repository.replace_chunks.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_extraction_still_completes(self, service, tenant, document):
        service.extraction_service.extract.return_value = _extraction(policy_success=False)

        outcome = await service.process_document(tenant, document.id, b"%PDF")

        assert outcome.status == "completed"
        assert outcome.policy_id is None
        assert outcome.coverage_count == 0
        assert outcome.confidence == pytest.approx(0.32)
        assert outcome.needs_human_review
        service.policy_repository.create_from_extraction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_classification_failure_does_not_block(self, service, tenant, document):
        service.classifier.classify.return_value = ClassificationResult(success=False, error="rate limited")

        outcome = await service.process_document(tenant, document.id, b"%PDF")

        assert outcome.status == "completed"
        assert outcome.classification_failed
        service.extraction_service.extract.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unexpected_extraction_error_waits_for_embedding(self, service, tenant, document, embedder):
        finished = []

        async def slow_embed(texts):
            await asyncio.sleep(0.01)
            finished.append(len(texts))
            return EmbeddingResult(success=True, vectors=[[0.1, 0.2]] * len(texts))

        embedder.embed_texts.side_effect = slow_embed
        service.extraction_service.extract.side_effect = RuntimeError("extractor crashed")

        outcome = await service.process_document(tenant, document.id, b"%PDF")

        assert outcome.status == "failed"
        assert "extractor crashed" in outcome.error
        assert finished == [1]
        service.document_repository.mark_failed.assert_awaited_once()
        service.chunk_repository.store_embeddings.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_embedding_failure_keeps_extraction(self, service, tenant, document, embedder):
        embedder.embed_texts.side_effect = None
        embedder.embed_texts.return_value = EmbeddingResult(
            success=False, vectors=[None], failed_indices=[0], error="Failed to embed 1 of 1 texts"
        )
        service.chunk_repository.store_embeddings.return_value = (0, 1)

        outcome = await service.process_document(tenant, document.id, b"%PDF")

        assert outcome.status == "completed"
        assert outcome.embedded_chunk_count == 0
        assert outcome.coverage_count == 1
        assert "Failed to embed" in outcome.error

    @pytest.mark.asyncio
    async def test_cancellation_resets_document(self, service, tenant, document, mock_session):
        service.text_extractor.extract.side_effect = asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await service.process_document(tenant, document.id, b"%PDF")

        service.document_repository.reset_to_pending.assert_awaited_once_with(document.id)
        service.document_repository.mark_failed.assert_not_awaited()
        mock_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_notifier_failure_is_ignored(self, service, tenant, document):
        service.notifier = MagicMock()
        service.notifier.notify = AsyncMock(side_effect=RuntimeError("socket closed"))

        outcome = await service.process_document(tenant, document.id, b"%PDF")

        assert outcome.status == "completed"


class TestRegisterDocument:
    @pytest.mark.asyncio
    async def test_existing_document_is_reused(self, service, tenant, document):
        result = await service.register_document(tenant, "policy.pdf", document.id)

        assert result is document
        service.document_repository.create_document.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_new_document_is_created(self, service, tenant, document, mock_session):
        service.document_repository.get_for_tenant.return_value = None
        new_id = uuid4()

        await service.register_document(tenant, "policy.pdf", new_id)

        service.document_repository.create_document.assert_awaited_once_with(
            tenant.tenant_id, "policy.pdf", document_id=new_id
        )
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_other_tenants_document_is_hidden(self, service, tenant, document):
        service.document_repository.get_for_tenant.return_value = None
        service.document_repository.get_by_id.return_value = document

        with pytest.raises(DocumentNotFoundError):
            await service.register_document(tenant, "policy.pdf", document.id)
