"""Typed records produced by classification and structured extraction."""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from policylens.models.enums import DocumentType, PolicyStatus


def clamp_confidence(value: Optional[float], default: float = 0.0) -> float:
    """Clamp a confidence value into [0, 1]."""
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(0.0, min(1.0, number))


class ClassifiedSection(BaseModel):
    section_type: str
    start_page: int = Field(..., ge=1)
    end_page: int = Field(..., ge=1)
    form_numbers: List[str] = Field(default_factory=list)


class ClassificationResult(BaseModel):
    """Document type, detected coverage lines and section page ranges."""

    success: bool = True
    document_type: DocumentType = DocumentType.UNKNOWN
    coverages_detected: List[str] = Field(default_factory=list)
    sections: List[ClassifiedSection] = Field(default_factory=list)
    confidence: float = 0.0
    error: Optional[str] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return clamp_confidence(value)


class PolicyExtraction(BaseModel):
    """Core policy fields. Every field except status and confidence may be null."""

    success: bool = True
    error: Optional[str] = None

    policy_number: Optional[str] = None
    quote_number: Optional[str] = None
    document_type: Optional[str] = None

    effective_date: Optional[date] = None
    expiration_date: Optional[date] = None
    quote_expiration_date: Optional[date] = None

    carrier_name: Optional[str] = None
    carrier_naic: Optional[str] = None

    insured_name: Optional[str] = None
    insured_address_line1: Optional[str] = None
    insured_address_line2: Optional[str] = None
    insured_city: Optional[str] = None
    insured_state: Optional[str] = None
    insured_zip: Optional[str] = None

    total_premium: Optional[Decimal] = None
    policy_status: PolicyStatus = PolicyStatus.QUOTE

    confidence: float = 0.0
    raw_extraction: Optional[Dict[str, Any]] = None
    data_quality_notes: List[str] = Field(default_factory=list)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return clamp_confidence(value)


class CoverageExtraction(BaseModel):
    """One coverage line with limits, form flags and free-form details."""

    coverage_type: str = ""
    coverage_subtype: Optional[str] = None

    each_occurrence_limit: Optional[Decimal] = None
    aggregate_limit: Optional[Decimal] = None
    deductible: Optional[Decimal] = None
    premium: Optional[Decimal] = None

    is_occurrence_form: Optional[bool] = None
    is_claims_made: Optional[bool] = None
    retroactive_date: Optional[date] = None

    details: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = 0.5
    data_quality_notes: List[str] = Field(default_factory=list)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return clamp_confidence(value, default=0.5)


class ExtractionResult(BaseModel):
    """Policy plus its coverages, as returned by either extraction strategy."""

    policy: PolicyExtraction
    coverages: List[CoverageExtraction] = Field(default_factory=list)
    strategy: str = "unified"
    input_tokens: int = 0
    output_tokens: int = 0
