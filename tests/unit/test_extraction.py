"""Unit tests for structured extraction.

Covers:
- UnifiedExtractor (single call, camelCase response)
- PolicyExtractor / CoverageExtractor (two-pass strategy)
- ExtractorFactory routing
- ExtractionService strategy selection
"""

import json
from datetime import date
from decimal import Decimal

import pytest
from unittest.mock import AsyncMock

from policylens.core.exceptions import ConfigurationError
from policylens.models.enums import DocumentType, PolicyStatus, SectionType
from policylens.models.extraction import ClassificationResult
from policylens.prompts import coverage_prompts
from policylens.services.extraction.base_extractor import normalize_coverage_type
from policylens.services.extraction.extraction_service import (
    ExtractionService,
    select_coverage_chunks,
)
from policylens.services.extraction.extractor_factory import ExtractorFactory
from policylens.services.extraction.policy_extractor import select_declarations_chunks
from policylens.services.extraction.unified_extractor import UnifiedExtractor

from conftest import llm_failed, llm_ok, make_chunk


@pytest.fixture
def unified_response() -> str:
    return json.dumps({
        "policyNumber": "GL-2024-001",
        "namedInsured": "Acme Manufacturing LLC",
        "insuredAddress": {"line1": "100 Main St", "city": "Austin", "state": "TX", "zip": "78701"},
        "carrierName": "Hartford Fire Insurance Company",
        "carrierNaic": "19682",
        "effectiveDate": "2024-01-01",
        "expirationDate": "2025-01-01",
        "totalPremium": "$12,500.00",
        "confidenceScore": 0.85,
        "extractionNotes": "Premium taken from the summary page",
        "coverages": [
            {
                "coverageType": "Commercial General Liability",
                "eachOccurrenceLimit": "1,000,000",
                "aggregateLimit": 2000000,
                "deductible": None,
                "isOccurrenceForm": "yes",
                "coverageDescription": "Occurrence form CGL",
            },
            {"coverageType": "Umbrella", "eachOccurrenceLimit": 5000000, "confidence": 0.6},
        ],
    })


@pytest.fixture
def document_chunks():
    return [
        make_chunk(0, "DECLARATIONS\n\nPolicy Number: GL-2024-001", section_type=SectionType.DECLARATIONS),
        make_chunk(1, "COMMERCIAL GENERAL LIABILITY COVERAGE FORM", page_start=2, section_type=SectionType.COVERAGE_FORM),
        make_chunk(2, "General liability limits: each occurrence $1,000,000", page_start=3),
        make_chunk(3, "CONDITIONS apply to all coverage parts", page_start=4, section_type=SectionType.CONDITIONS),
    ]


class TestNormalizeCoverageType:
    def test_aliases_and_spacing(self):
        assert normalize_coverage_type("Commercial General Liability") == "general_liability"
        assert normalize_coverage_type("CGL") == "general_liability"
        assert normalize_coverage_type("Workers Compensation and Employers Liability") == "workers_compensation"
        assert normalize_coverage_type("Inland-Marine") == "inland_marine"
        assert normalize_coverage_type(None) == ""


class TestUnifiedExtractor:
    @pytest.mark.asyncio
    async def test_maps_policy_and_coverages(self, mock_llm_client, unified_response, document_chunks):
        mock_llm_client.complete = AsyncMock(return_value=llm_ok(unified_response, 1200, 300))

        result = await UnifiedExtractor(mock_llm_client).extract(document_chunks, DocumentType.POLICY.value)

        policy = result.policy
        assert policy.success
        assert policy.policy_number == "GL-2024-001"
        assert policy.insured_name == "Acme Manufacturing LLC"
        assert policy.insured_city == "Austin"
        assert policy.insured_zip == "78701"
        assert policy.effective_date == date(2024, 1, 1)
        assert policy.total_premium == Decimal("12500.00")
        assert policy.document_type == "policy"
        assert policy.policy_status == PolicyStatus.ACTIVE
        assert policy.confidence == pytest.approx(0.85)
        assert "Premium taken from the summary page" in policy.data_quality_notes
        assert policy.raw_extraction["policyNumber"] == "GL-2024-001"

        assert [c.coverage_type for c in result.coverages] == ["general_liability", "umbrella_excess"]
        gl = result.coverages[0]
        assert gl.each_occurrence_limit == Decimal("1000000")
        assert gl.aggregate_limit == Decimal("2000000")
        assert gl.deductible is None
        assert gl.is_occurrence_form is True
        assert gl.details == {"description": "Occurrence form CGL"}
        # Coverages without their own confidence inherit the document score
        assert gl.confidence == pytest.approx(0.85)
        assert result.coverages[1].confidence == pytest.approx(0.6)

        assert result.strategy == "unified"
        assert result.input_tokens == 1200
        assert result.output_tokens == 300

    @pytest.mark.asyncio
    async def test_chunks_are_sent_in_index_order(self, mock_llm_client, unified_response, document_chunks):
        mock_llm_client.complete = AsyncMock(return_value=llm_ok(unified_response))

        await UnifiedExtractor(mock_llm_client).extract(list(reversed(document_chunks)))

        content = mock_llm_client.complete.call_args.args[0].user_content
        assert content.index("DECLARATIONS") < content.index("CONDITIONS apply")

    @pytest.mark.asyncio
    async def test_malformed_values_become_null_with_notes(self, mock_llm_client):
        mock_llm_client.complete = AsyncMock(return_value=llm_ok(json.dumps({
            "namedInsured": "Acme",
            "effectiveDate": "sometime next year",
            "totalPremium": "TBD",
            "confidenceScore": 7,
        })))

        result = await UnifiedExtractor(mock_llm_client).extract([make_chunk(0)])

        assert result.policy.success
        assert result.policy.effective_date is None
        assert result.policy.total_premium is None
        assert result.policy.confidence == 1.0
        assert result.policy.policy_status == PolicyStatus.QUOTE
        notes = " ".join(result.policy.data_quality_notes)
        assert "effective_date" in notes
        assert "total_premium" in notes
        assert result.coverages == []

    @pytest.mark.asyncio
    async def test_llm_failure_returns_failed_policy(self, mock_llm_client):
        mock_llm_client.complete = AsyncMock(return_value=llm_failed("timeout"))

        result = await UnifiedExtractor(mock_llm_client).extract([make_chunk(0)])

        assert not result.policy.success
        assert "timeout" in result.policy.error
        assert result.coverages == []

    @pytest.mark.asyncio
    async def test_wrong_shape_is_retried_then_fails(self, mock_llm_client):
        mock_llm_client.complete = AsyncMock(return_value=llm_ok('{"coverages": {"type": "gl"}}'))

        result = await UnifiedExtractor(mock_llm_client).extract([make_chunk(0)])

        assert not result.policy.success
        assert mock_llm_client.complete.await_count == 2

    @pytest.mark.asyncio
    async def test_string_address_without_coverages_is_retried(self, mock_llm_client):
        string_address = json.dumps({
            "namedInsured": "Acme LLC",
            "insuredAddress": "100 Main St, Austin TX",
            "confidenceScore": 0.9,
        })
        fixed = json.dumps({
            "namedInsured": "Acme LLC",
            "insuredAddress": {"line1": "100 Main St", "city": "Austin", "state": "TX"},
            "confidenceScore": 0.9,
        })
        mock_llm_client.complete = AsyncMock(side_effect=[llm_ok(string_address), llm_ok(fixed)])

        result = await UnifiedExtractor(mock_llm_client).extract([make_chunk(0)])

        assert result.policy.success
        assert result.policy.insured_city == "Austin"
        assert mock_llm_client.complete.await_count == 2
        retry_request = mock_llm_client.complete.call_args_list[1].args[0]
        assert "JSON" in retry_request.system_prompt

    @pytest.mark.asyncio
    async def test_repeated_string_address_fails_without_raising(self, mock_llm_client):
        mock_llm_client.complete = AsyncMock(return_value=llm_ok(json.dumps({
            "namedInsured": "Acme LLC",
            "insuredAddress": "100 Main St, Austin TX",
        })))

        result = await UnifiedExtractor(mock_llm_client).extract([make_chunk(0)])

        assert not result.policy.success
        assert "insuredAddress" in result.policy.error
        assert mock_llm_client.complete.await_count == 2

    def test_non_object_address_maps_to_empty_with_note(self, mock_llm_client):
        policy = UnifiedExtractor(mock_llm_client)._map_policy(
            {"namedInsured": "Acme LLC", "insuredAddress": "100 Main St"}, None
        )

        assert policy.insured_name == "Acme LLC"
        assert policy.insured_address_line1 is None
        assert any("insuredAddress" in note for note in policy.data_quality_notes)


class TestChunkSelection:
    def test_declarations_chunks_preferred(self, document_chunks):
        selected = select_declarations_chunks(document_chunks)

        assert [c.index for c in selected] == [0]

    def test_declarations_fallback_to_leading_chunks(self):
        chunks = [make_chunk(i) for i in range(5)]

        assert [c.index for c in select_declarations_chunks(chunks, fallback_count=3)] == [0, 1, 2]

    def test_coverage_chunks_by_mention_plus_declarations(self, document_chunks):
        selected = select_coverage_chunks(document_chunks, "general_liability")

        assert [c.index for c in selected] == [0, 1, 2]

    def test_coverage_chunks_fall_back_to_coverage_sections(self, document_chunks):
        selected = select_coverage_chunks(document_chunks, "cyber_liability")

        assert [c.index for c in selected] == [0, 1]

    def test_coverage_chunks_respect_max(self):
        chunks = [make_chunk(i, "flood coverage applies") for i in range(30)]

        assert len(select_coverage_chunks(chunks, "flood", max_chunks=20)) == 20


class TestExtractorFactory:
    @pytest.fixture
    def factory(self, mock_llm_client) -> ExtractorFactory:
        return ExtractorFactory(mock_llm_client)

    def test_routes_known_types(self, factory):
        assert factory.get_extractor("general_liability").name == "general_liability"
        assert factory.get_extractor("bop").name == "general_liability"
        assert factory.get_extractor("Cyber Liability").name == "claims_made_liability"
        assert factory.get_extractor("flood").name == "property_extension"

    def test_unknown_type_uses_generic(self, factory):
        assert factory.get_extractor("pet_insurance").name == "generic"

    def test_group_overrides_pick_specific_prompt(self, factory):
        extractor = factory.get_extractor("pollution_liability")

        assert extractor.name == "specialized_liability"
        assert extractor.get_extraction_prompt("pollution_liability") == coverage_prompts.build_coverage_prompt(
            coverage_prompts.POLLUTION_LIABILITY
        )
        assert extractor.get_extraction_prompt("liquor_liability") != extractor.get_extraction_prompt(
            "pollution_liability"
        )

    def test_list_supported_types(self, factory):
        supported = factory.list_supported_types()

        assert "general_liability" in supported
        assert "aviation" in supported
        assert supported == sorted(supported)


class TestExtractionService:
    def test_unknown_strategy_rejected(self, mock_llm_client):
        with pytest.raises(ConfigurationError):
            ExtractionService(mock_llm_client, strategy="three_pass")

    @pytest.mark.asyncio
    async def test_unified_strategy_single_call(self, mock_llm_client, unified_response, document_chunks):
        mock_llm_client.complete = AsyncMock(return_value=llm_ok(unified_response))
        service = ExtractionService(mock_llm_client, strategy="unified")
        classification = ClassificationResult(document_type=DocumentType.POLICY, confidence=0.9)

        result = await service.extract(document_chunks, classification)

        assert result.strategy == "unified"
        assert len(result.coverages) == 2
        mock_llm_client.complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_two_pass_strategy(self, mock_llm_client, document_chunks):
        policy_json = json.dumps({
            "policy_number": "GL-2024-001",
            "insured_name": "Acme Manufacturing LLC",
            "effective_date": "2024-01-01",
            "expiration_date": "2025-01-01",
            "confidence": 0.9,
        })
        coverage_json = json.dumps({
            "each_occurrence_limit": 1000000,
            "aggregate_limit": 2000000,
            "is_claims_made": False,
            "products_completed_ops_aggregate": 2000000,
            "details": {"coverage_form_number": "CG 00 01"},
            "confidence": 0.8,
        })
        mock_llm_client.complete = AsyncMock(
            side_effect=[llm_ok(policy_json, 400, 100), llm_ok(coverage_json, 600, 150)]
        )
        service = ExtractionService(mock_llm_client, strategy="two_pass")
        classification = ClassificationResult(
            document_type=DocumentType.POLICY,
            coverages_detected=["general_liability"],
            confidence=0.9,
        )

        result = await service.extract(document_chunks, classification)

        assert result.strategy == "two_pass"
        assert result.policy.policy_number == "GL-2024-001"
        assert result.policy.document_type == "policy"
        assert len(result.coverages) == 1
        coverage = result.coverages[0]
        assert coverage.coverage_type == "general_liability"
        assert coverage.each_occurrence_limit == Decimal("1000000")
        assert coverage.is_claims_made is False
        assert coverage.details["coverage_form_number"] == "CG 00 01"
        assert coverage.details["products_completed_ops_aggregate"] == 2000000
        assert result.input_tokens == 1000
        assert result.output_tokens == 250

        policy_request = mock_llm_client.complete.call_args_list[0].args[0]
        assert "Policy Number: GL-2024-001" in policy_request.user_content
        assert "CONDITIONS apply" not in policy_request.user_content

    @pytest.mark.asyncio
    async def test_two_pass_coverage_failure_is_isolated(self, mock_llm_client, document_chunks):
        policy_json = json.dumps({"insured_name": "Acme", "confidence": 0.7})
        mock_llm_client.complete = AsyncMock(side_effect=[llm_ok(policy_json), llm_failed("overloaded")])
        service = ExtractionService(mock_llm_client, strategy="two_pass")
        classification = ClassificationResult(coverages_detected=["business_auto"], confidence=0.5)

        result = await service.extract(document_chunks, classification)

        assert result.policy.success
        assert len(result.coverages) == 1
        assert result.coverages[0].coverage_type == "business_auto"
        assert result.coverages[0].confidence == 0.0
        assert "extraction_error" in result.coverages[0].details
