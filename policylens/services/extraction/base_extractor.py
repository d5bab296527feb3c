"""Base extractor with shared coercion of LLM-reported values.

LLM output is loosely typed: numbers arrive as "$1,000,000", dates in odd
formats, booleans as "yes". The helpers here turn those into typed values
or None, recording a data-quality note instead of failing the extraction.
"""

import math
import re
from abc import abstractmethod
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from policylens.models.enums import DocumentType, PolicyStatus
from policylens.models.extraction import CoverageExtraction, PolicyExtraction
from policylens.services.base_llm_service import BaseLLMService
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)

POLICY_NUMBER_MAX_LENGTH = 100
NAME_MAX_LENGTH = 255
SHORT_TEXT_MAX_LENGTH = 50

_MONEY_ARTIFACTS = re.compile(r"[\s,$]|USD", re.IGNORECASE)
_NUMBER_PATTERN = re.compile(r"^-?\d+(\.\d+)?$")

_TRUE_STRINGS = {"true", "yes", "y", "1"}
_FALSE_STRINGS = {"false", "no", "n", "0"}

COVERAGE_TYPE_ALIASES = {
    "gl": "general_liability",
    "cgl": "general_liability",
    "commercial_general_liability": "general_liability",
    "property": "commercial_property",
    "auto": "business_auto",
    "commercial_auto": "business_auto",
    "workers_comp": "workers_compensation",
    "workers_compensation_employers_liability": "workers_compensation",
    "umbrella": "umbrella_excess",
    "excess": "umbrella_excess",
    "excess_liability": "umbrella_excess",
    "business_owners": "bop",
    "businessowners": "bop",
    "business_owners_policy": "bop",
    "d&o": "directors_officers",
    "epl": "employment_practices",
    "epli": "employment_practices",
    "cyber": "cyber_liability",
    "e&o": "professional_liability",
    "errors_omissions": "professional_liability",
    "crime": "crime_fidelity",
    "dic": "difference_in_conditions",
}


def normalize_coverage_type(coverage_type: Any) -> str:
    """Lower-case, snake_case and de-alias a coverage type label."""
    if coverage_type is None:
        return ""
    normalized = re.sub(r"[\s\-/]+", "_", str(coverage_type).strip().lower())
    normalized = normalized.replace("_and_", "_")
    return COVERAGE_TYPE_ALIASES.get(normalized, normalized)


class BaseExtractor(BaseLLMService):
    """Abstract base class for policy and coverage extractors."""

    @abstractmethod
    async def run(self, *args, **kwargs) -> Any:
        """Extract structured records from document text."""
        pass

    def _parse_date(self, value: Any, field: str, notes: List[str]) -> Optional[date]:
        """Parse an ISO date (YYYY-MM-DD, or an ISO datetime). Unparseable → None."""
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                return date.fromisoformat(value.strip()[:10])
            except ValueError:
                pass
        LOGGER.warning(f"Failed to parse date for {field}: '{value}'")
        notes.append(f"{field}: unparseable date '{value}' ignored")
        return None

    def _to_decimal(self, value: Any, field: str, notes: List[str]) -> Optional[Decimal]:
        """Convert a monetary value to Decimal, stripping "$" and thousands separators."""
        if value is None or value == "":
            return None
        if isinstance(value, bool):
            notes.append(f"{field}: boolean '{value}' is not an amount")
            return None
        if isinstance(value, (int, Decimal)):
            return Decimal(value)
        if isinstance(value, float):
            if math.isfinite(value):
                return Decimal(str(value))
        elif isinstance(value, str):
            cleaned = _MONEY_ARTIFACTS.sub("", value)
            if _NUMBER_PATTERN.match(cleaned):
                try:
                    return Decimal(cleaned)
                except InvalidOperation:
                    pass

        LOGGER.warning(f"Failed to convert {field} '{value}' to Decimal")
        notes.append(f"{field}: malformed amount '{value}' ignored")
        return None

    def _to_bool(self, value: Any) -> Optional[bool]:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        return None

    def _to_str(self, value: Any, max_length: Optional[int] = None) -> Optional[str]:
        """Stringify and strip a value, truncating to the column length."""
        if value is None or isinstance(value, (dict, list)):
            return None
        text = str(value).strip()
        if not text:
            return None
        if max_length is not None and len(text) > max_length:
            LOGGER.debug(f"Truncating value to {max_length} characters")
            text = text[:max_length]
        return text

    def _derive_policy_status(
        self,
        raw_status: Any,
        effective_date: Optional[date],
        expiration_date: Optional[date],
        document_type: Optional[str],
    ) -> PolicyStatus:
        """Use the reported status if valid, otherwise infer it from the policy period."""
        if isinstance(raw_status, str):
            try:
                return PolicyStatus(raw_status.strip().lower())
            except ValueError:
                LOGGER.debug(f"Ignoring invalid policy status '{raw_status}'")

        if document_type == DocumentType.QUOTE.value:
            return PolicyStatus.QUOTE
        if effective_date is None or expiration_date is None:
            return PolicyStatus.QUOTE
        if effective_date > date.today():
            return PolicyStatus.QUOTE
        return PolicyStatus.ACTIVE

    def _build_policy(
        self,
        values: Dict[str, Any],
        raw_extraction: Dict[str, Any],
        notes: Optional[List[str]] = None,
    ) -> PolicyExtraction:
        """Build a PolicyExtraction from snake_case values."""
        notes = list(notes or [])

        document_type = self._to_str(values.get("document_type"), SHORT_TEXT_MAX_LENGTH)
        if document_type:
            document_type = document_type.lower()
        effective_date = self._parse_date(values.get("effective_date"), "effective_date", notes)
        expiration_date = self._parse_date(values.get("expiration_date"), "expiration_date", notes)

        return PolicyExtraction(
            success=True,
            policy_number=self._to_str(values.get("policy_number"), POLICY_NUMBER_MAX_LENGTH),
            quote_number=self._to_str(values.get("quote_number"), POLICY_NUMBER_MAX_LENGTH),
            document_type=document_type,
            effective_date=effective_date,
            expiration_date=expiration_date,
            quote_expiration_date=self._parse_date(
                values.get("quote_expiration_date"), "quote_expiration_date", notes
            ),
            carrier_name=self._to_str(values.get("carrier_name"), NAME_MAX_LENGTH),
            carrier_naic=self._to_str(values.get("carrier_naic"), SHORT_TEXT_MAX_LENGTH),
            insured_name=self._to_str(values.get("insured_name"), NAME_MAX_LENGTH),
            insured_address_line1=self._to_str(values.get("insured_address_line1"), NAME_MAX_LENGTH),
            insured_address_line2=self._to_str(values.get("insured_address_line2"), NAME_MAX_LENGTH),
            insured_city=self._to_str(values.get("insured_city"), 100),
            insured_state=self._to_str(values.get("insured_state"), SHORT_TEXT_MAX_LENGTH),
            insured_zip=self._to_str(values.get("insured_zip"), 20),
            total_premium=self._to_decimal(values.get("total_premium"), "total_premium", notes),
            policy_status=self._derive_policy_status(
                values.get("policy_status"), effective_date, expiration_date, document_type
            ),
            confidence=values.get("confidence"),
            raw_extraction=raw_extraction,
            data_quality_notes=notes,
        )

    def _build_coverage(
        self,
        coverage_type: str,
        values: Dict[str, Any],
        detail_fields: Iterable[str] = (),
    ) -> CoverageExtraction:
        """Build a CoverageExtraction from snake_case values.

        Known detail fields the LLM put at the top level are moved into `details`.
        """
        notes: List[str] = []
        details: Dict[str, Any] = {}
        if isinstance(values.get("details"), dict):
            details.update(values["details"])
        for field in detail_fields:
            if field in values and field not in details:
                details[field] = values[field]

        return CoverageExtraction(
            coverage_type=coverage_type,
            coverage_subtype=self._to_str(values.get("coverage_subtype"), 100),
            each_occurrence_limit=self._to_decimal(
                values.get("each_occurrence_limit"), "each_occurrence_limit", notes
            ),
            aggregate_limit=self._to_decimal(values.get("aggregate_limit"), "aggregate_limit", notes),
            deductible=self._to_decimal(values.get("deductible"), "deductible", notes),
            premium=self._to_decimal(values.get("premium"), "premium", notes),
            is_occurrence_form=self._to_bool(values.get("is_occurrence_form")),
            is_claims_made=self._to_bool(values.get("is_claims_made")),
            retroactive_date=self._parse_date(values.get("retroactive_date"), "retroactive_date", notes),
            details=details,
            confidence=values.get("confidence"),
            data_quality_notes=notes,
        )
