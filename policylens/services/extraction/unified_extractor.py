"""Single-call extraction of the policy and all of its coverages."""

from typing import Any, Dict, List, Optional

from policylens.models.documents import Chunk
from policylens.models.extraction import CoverageExtraction, ExtractionResult, PolicyExtraction
from policylens.prompts.system_prompts import UNIFIED_EXTRACTION_PROMPT
from policylens.services.extraction.base_extractor import BaseExtractor, normalize_coverage_type
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)

STRATEGY_NAME = "unified"

_POLICY_FIELDS = {
    "policy_number": "policyNumber",
    "quote_number": "quoteNumber",
    "carrier_name": "carrierName",
    "carrier_naic": "carrierNaic",
    "document_type": "documentType",
    "effective_date": "effectiveDate",
    "expiration_date": "expirationDate",
    "quote_expiration_date": "quoteExpirationDate",
    "insured_name": "namedInsured",
    "total_premium": "totalPremium",
    "policy_status": "policyStatus",
    "confidence": "confidenceScore",
}

_ADDRESS_FIELDS = {
    "insured_address_line1": "line1",
    "insured_address_line2": "line2",
    "insured_city": "city",
    "insured_state": "state",
    "insured_zip": "zip",
}

_COVERAGE_FIELDS = {
    "coverage_subtype": "coverageSubtype",
    "each_occurrence_limit": "eachOccurrenceLimit",
    "aggregate_limit": "aggregateLimit",
    "deductible": "deductible",
    "premium": "premium",
    "is_occurrence_form": "isOccurrenceForm",
    "is_claims_made": "isClaimsMade",
    "retroactive_date": "retroactiveDate",
    "confidence": "confidence",
}


def check_unified_shape(parsed: Any) -> Optional[str]:
    """The top level must be an object and `coverages` a list of objects."""
    if not isinstance(parsed, dict):
        return f"expected a JSON object, got {type(parsed).__name__}"
    if parsed.get("insuredAddress") is not None and not isinstance(parsed["insuredAddress"], dict):
        return "'insuredAddress' must be an object"
    coverages = parsed.get("coverages")
    if coverages is None:
        return None
    if not isinstance(coverages, list):
        return "'coverages' must be a list"
    if any(not isinstance(item, dict) for item in coverages):
        return "'coverages' must contain only objects"
    return None


def join_chunks(chunks: List[Chunk]) -> str:
    return "\n\n".join(chunk.text for chunk in sorted(chunks, key=lambda c: c.index))


class UnifiedExtractor(BaseExtractor):
    """Extract the policy and every coverage with one LLM call.

    Keys in the response are camelCase. Coverages carry no confidence of
    their own in this format, so each inherits the document-level
    `confidenceScore` unless it reports one.
    """

    async def extract(
        self,
        chunks: List[Chunk],
        document_type: Optional[str] = None,
    ) -> ExtractionResult:
        return await self.execute(chunks, document_type)

    async def run(
        self,
        chunks: List[Chunk],
        document_type: Optional[str] = None,
    ) -> ExtractionResult:
        text = join_chunks(chunks)
        LOGGER.info(
            f"Starting unified extraction over {len(chunks)} chunks",
            extra={"text_length": len(text), "document_type": document_type}
        )

        user_content = f"<document>\n{text}\n</document>"
        call = await self._call_llm_json(UNIFIED_EXTRACTION_PROMPT, user_content, check_unified_shape)

        if not call.success:
            LOGGER.warning(f"Unified extraction failed: {call.error}")
            return ExtractionResult(
                policy=PolicyExtraction(success=False, error=call.error),
                coverages=[],
                strategy=STRATEGY_NAME,
                input_tokens=call.input_tokens,
                output_tokens=call.output_tokens,
            )

        policy = self._map_policy(call.data, document_type)
        coverages = self._map_coverages(call.data.get("coverages") or [], policy.confidence)

        LOGGER.info(
            f"Unified extraction complete: {len(coverages)} coverages, "
            f"confidence {policy.confidence:.0%}"
        )
        return ExtractionResult(
            policy=policy,
            coverages=coverages,
            strategy=STRATEGY_NAME,
            input_tokens=call.input_tokens,
            output_tokens=call.output_tokens,
        )

    def _map_policy(self, data: Dict[str, Any], document_type: Optional[str]) -> PolicyExtraction:
        values = {field: data.get(key) for field, key in _POLICY_FIELDS.items()}
        notes: List[str] = []

        address = data.get("insuredAddress") or {}
        if not isinstance(address, dict):
            notes.append(f"insuredAddress was not an object: {address!r}")
            address = {}
        values.update({field: address.get(key) for field, key in _ADDRESS_FIELDS.items()})
        if not values.get("document_type") and document_type:
            values["document_type"] = document_type

        extraction_notes = self._to_str(data.get("extractionNotes"))
        if extraction_notes:
            notes.append(extraction_notes)

        return self._build_policy(values, raw_extraction=data, notes=notes)

    def _map_coverages(
        self,
        raw_coverages: List[Dict[str, Any]],
        document_confidence: float,
    ) -> List[CoverageExtraction]:
        coverages: List[CoverageExtraction] = []
        for raw in raw_coverages:
            values = {field: raw.get(key) for field, key in _COVERAGE_FIELDS.items()}
            if values["confidence"] is None:
                values["confidence"] = document_confidence

            details: Dict[str, Any] = {}
            for key, detail_name in (("coverageDescription", "description"), ("additionalDetails", "additional_details")):
                if raw.get(key) not in (None, ""):
                    details[detail_name] = raw[key]
            values["details"] = details

            coverage_type = normalize_coverage_type(raw.get("coverageType"))
            coverages.append(self._build_coverage(coverage_type, values))
        return coverages
