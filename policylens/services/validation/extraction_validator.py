"""Deterministic validation of extracted policy and coverage records.

Rules never raise: every problem is reported as a ValidationIssue and
reflected in a lowered confidence. Running the validator twice on the
same input gives the same result.
"""

import re
from collections import Counter
from decimal import Decimal
from typing import List, Optional, Sequence

from policylens.models.enums import CoverageType, PolicyStatus
from policylens.models.extraction import CoverageExtraction, PolicyExtraction, clamp_confidence
from policylens.models.validation import ValidationIssue, ValidationResult
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)

NAIC_PATTERN = re.compile(r"^\d{5}$")

HIGH_PREMIUM_THRESHOLD = Decimal("10000000")
MIN_POLICY_NUMBER_LENGTH = 5
MIN_TERM_MONTHS = 1
MAX_TERM_MONTHS = 36

POLICY_ERROR_PENALTY = 0.1
POLICY_WARNING_PENALTY = 0.02
COVERAGE_ERROR_PENALTY = 0.15
COVERAGE_WARNING_PENALTY = 0.03
DOCUMENT_ERROR_PENALTY = 0.05
DOCUMENT_WARNING_PENALTY = 0.01

CLASSIFICATION_WEIGHT = 0.10
POLICY_WEIGHT = 0.30
COVERAGE_WEIGHT = 0.60
DEFAULT_COVERAGE_CONFIDENCE = 0.5


def _adjust(confidence: float, errors: int, warnings: int, error_penalty: float, warning_penalty: float) -> float:
    adjusted = clamp_confidence(confidence) - errors * error_penalty - warnings * warning_penalty
    return round(clamp_confidence(adjusted), 4)


def _prefixed(issues: List[ValidationIssue], prefix: str) -> List[ValidationIssue]:
    return [issue.model_copy(update={"field": f"{prefix}.{issue.field}"}) for issue in issues]


class ExtractionValidator:
    """Rule engine over PolicyExtraction and CoverageExtraction records."""

    def validate_policy(self, policy: PolicyExtraction) -> ValidationResult:
        errors: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []

        if not policy.insured_name or not policy.insured_name.strip():
            errors.append(ValidationIssue(
                field="insured_name", message="Insured name is required", code="REQUIRED_FIELD"
            ))

        if policy.effective_date and policy.expiration_date:
            if policy.expiration_date <= policy.effective_date:
                errors.append(ValidationIssue(
                    field="expiration_date",
                    message="Expiration date must be after effective date",
                    code="INVALID_DATE_RANGE",
                ))

            term_months = (policy.expiration_date - policy.effective_date).days / 30.0
            if term_months < MIN_TERM_MONTHS or term_months > MAX_TERM_MONTHS:
                warnings.append(ValidationIssue(
                    field="policy_term",
                    message=f"Unusual policy term: {term_months:.0f} months",
                    code="UNUSUAL_TERM",
                ))

        if policy.policy_number and policy.policy_number.strip():
            if len(policy.policy_number.strip()) < MIN_POLICY_NUMBER_LENGTH:
                warnings.append(ValidationIssue(
                    field="policy_number",
                    message="Policy number seems unusually short",
                    code="SHORT_POLICY_NUMBER",
                ))
        elif policy.policy_status != PolicyStatus.QUOTE:
            warnings.append(ValidationIssue(
                field="policy_number",
                message="No policy number found for non-quote document",
                code="MISSING_POLICY_NUMBER",
            ))

        if policy.carrier_naic and not NAIC_PATTERN.match(policy.carrier_naic.strip()):
            warnings.append(ValidationIssue(
                field="carrier_naic", message="NAIC code should be 5 digits", code="INVALID_NAIC_FORMAT"
            ))

        if policy.total_premium is not None:
            if policy.total_premium <= 0:
                warnings.append(ValidationIssue(
                    field="total_premium",
                    message="Premium should be a positive number",
                    code="INVALID_PREMIUM",
                ))
            elif policy.total_premium > HIGH_PREMIUM_THRESHOLD:
                warnings.append(ValidationIssue(
                    field="total_premium", message="Premium seems unusually high", code="HIGH_PREMIUM"
                ))

        adjusted = _adjust(
            policy.confidence, len(errors), len(warnings), POLICY_ERROR_PENALTY, POLICY_WARNING_PENALTY
        )
        LOGGER.debug(
            f"Policy validation: {len(errors)} errors, {len(warnings)} warnings, "
            f"confidence {adjusted:.0%}"
        )
        return ValidationResult(errors=errors, warnings=warnings, adjusted_confidence=adjusted)

    def validate_coverage(self, coverage: CoverageExtraction) -> ValidationResult:
        errors: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []
        occurrence = coverage.each_occurrence_limit
        aggregate = coverage.aggregate_limit
        deductible = coverage.deductible

        if not coverage.coverage_type or not coverage.coverage_type.strip():
            errors.append(ValidationIssue(
                field="coverage_type", message="Coverage type is required", code="REQUIRED_FIELD"
            ))

        if occurrence is not None and occurrence < 0:
            errors.append(ValidationIssue(
                field="each_occurrence_limit",
                message="Occurrence limit cannot be negative",
                code="INVALID_LIMIT",
            ))
        if aggregate is not None and aggregate < 0:
            errors.append(ValidationIssue(
                field="aggregate_limit", message="Aggregate limit cannot be negative", code="INVALID_LIMIT"
            ))

        if deductible is not None and deductible < 0:
            errors.append(ValidationIssue(
                field="deductible", message="Deductible cannot be negative", code="INVALID_DEDUCTIBLE"
            ))

        if deductible is not None and occurrence is not None and deductible >= occurrence:
            warnings.append(ValidationIssue(
                field="deductible",
                message="Deductible meets or exceeds occurrence limit",
                code="HIGH_DEDUCTIBLE",
            ))

        if coverage.is_claims_made and coverage.retroactive_date is None:
            warnings.append(ValidationIssue(
                field="retroactive_date",
                message="Claims-made coverage should have a retroactive date",
                code="MISSING_RETRO_DATE",
            ))

        # 1M/2M is normal; an aggregate below the occurrence limit is only odd for GL
        if (
            coverage.coverage_type == CoverageType.GENERAL_LIABILITY.value
            and occurrence is not None
            and aggregate is not None
            and aggregate < occurrence
        ):
            warnings.append(ValidationIssue(
                field="aggregate_limit",
                message="Aggregate limit is less than occurrence limit (unusual for GL)",
                code="LOW_AGGREGATE",
            ))

        adjusted = _adjust(
            coverage.confidence, len(errors), len(warnings), COVERAGE_ERROR_PENALTY, COVERAGE_WARNING_PENALTY
        )
        LOGGER.debug(
            f"Coverage validation ({coverage.coverage_type}): {len(errors)} errors, "
            f"{len(warnings)} warnings"
        )
        return ValidationResult(errors=errors, warnings=warnings, adjusted_confidence=adjusted)

    def calculate_overall_confidence(
        self,
        classification_confidence: float,
        policy_confidence: float,
        coverage_confidences: Sequence[float],
    ) -> float:
        """Weighted rollup of the stage confidences, clamped to [0, 1]."""
        if coverage_confidences:
            average = sum(clamp_confidence(c) for c in coverage_confidences) / len(coverage_confidences)
        else:
            average = DEFAULT_COVERAGE_CONFIDENCE

        overall = (
            CLASSIFICATION_WEIGHT * clamp_confidence(classification_confidence)
            + POLICY_WEIGHT * clamp_confidence(policy_confidence)
            + COVERAGE_WEIGHT * average
        )
        return clamp_confidence(overall)

    def validate_complete(
        self,
        policy: PolicyExtraction,
        coverages: Sequence[CoverageExtraction],
        classification_confidence: Optional[float] = None,
    ) -> ValidationResult:
        """Validate a whole extraction and compute the document confidence.

        Args:
            policy: Extracted policy
            coverages: Extracted coverages
            classification_confidence: Classifier confidence; 0.0 when classification failed
        """
        errors: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []

        if not policy.success:
            warnings.append(ValidationIssue(
                field="policy",
                message=f"Structured extraction failed: {policy.error or 'unknown error'}",
                code="EXTRACTION_FAILED",
            ))

        policy_result = self.validate_policy(policy)
        errors.extend(_prefixed(policy_result.errors, "policy"))
        warnings.extend(_prefixed(policy_result.warnings, "policy"))

        for i, coverage in enumerate(coverages):
            coverage_result = self.validate_coverage(coverage)
            errors.extend(_prefixed(coverage_result.errors, f"coverages[{i}]"))
            warnings.extend(_prefixed(coverage_result.warnings, f"coverages[{i}]"))

        if not coverages:
            warnings.append(ValidationIssue(
                field="coverages", message="No coverages extracted from document", code="NO_COVERAGES"
            ))

        type_counts = Counter(c.coverage_type for c in coverages if c.coverage_type)
        for coverage_type, count in type_counts.items():
            if count > 1:
                warnings.append(ValidationIssue(
                    field="coverages",
                    message=f"Duplicate coverage type found: {coverage_type}",
                    code="DUPLICATE_COVERAGE",
                ))

        overall = self.calculate_overall_confidence(
            classification_confidence if classification_confidence is not None else 0.0,
            policy.confidence,
            [c.confidence for c in coverages],
        )
        adjusted = round(
            clamp_confidence(
                overall - len(errors) * DOCUMENT_ERROR_PENALTY - len(warnings) * DOCUMENT_WARNING_PENALTY
            ),
            4,
        )

        result = ValidationResult(errors=errors, warnings=warnings, adjusted_confidence=adjusted)
        LOGGER.info(
            f"Complete extraction validation: valid={result.is_valid}, {len(errors)} errors, "
            f"{len(warnings)} warnings, overall confidence {adjusted:.0%}",
            extra={"needs_human_review": result.needs_human_review}
        )
        return result
