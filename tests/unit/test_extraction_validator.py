"""Unit tests for extraction validation rules and confidence scoring."""

from datetime import date
from decimal import Decimal

import pytest

from policylens.models.enums import PolicyStatus
from policylens.models.extraction import CoverageExtraction, PolicyExtraction
from policylens.services.validation import ExtractionValidator


@pytest.fixture
def validator() -> ExtractionValidator:
    return ExtractionValidator()


@pytest.fixture
def valid_policy() -> PolicyExtraction:
    return PolicyExtraction(
        policy_number="GL-12345",
        insured_name="Acme Manufacturing LLC",
        effective_date=date(2024, 1, 1),
        expiration_date=date(2025, 1, 1),
        carrier_naic="19682",
        total_premium=Decimal("12500"),
        policy_status=PolicyStatus.ACTIVE,
        confidence=0.9,
    )


@pytest.fixture
def gl_coverage() -> CoverageExtraction:
    return CoverageExtraction(
        coverage_type="general_liability",
        each_occurrence_limit=Decimal("1000000"),
        aggregate_limit=Decimal("2000000"),
        confidence=0.8,
    )


class TestValidatePolicy:
    def test_valid_policy_keeps_confidence(self, validator, valid_policy):
        result = validator.validate_policy(valid_policy)

        assert result.is_valid
        assert result.warnings == []
        assert result.adjusted_confidence == pytest.approx(0.9)

    def test_missing_insured_name_is_error(self, validator, valid_policy):
        policy = valid_policy.model_copy(update={"insured_name": "   "})

        result = validator.validate_policy(policy)

        assert result.error_codes == ["REQUIRED_FIELD"]
        assert result.needs_human_review

    def test_reversed_dates(self, validator, valid_policy):
        policy = valid_policy.model_copy(
            update={"effective_date": date(2024, 6, 1), "expiration_date": date(2024, 1, 1)}
        )

        result = validator.validate_policy(policy)

        assert result.error_codes == ["INVALID_DATE_RANGE"]
        assert result.warning_codes == ["UNUSUAL_TERM"]
        assert result.adjusted_confidence == pytest.approx(0.78)

    def test_long_term_is_warning(self, validator, valid_policy):
        policy = valid_policy.model_copy(update={"expiration_date": date(2028, 1, 1)})

        assert validator.validate_policy(policy).warning_codes == ["UNUSUAL_TERM"]

    def test_policy_number_rules(self, validator, valid_policy):
        short = valid_policy.model_copy(update={"policy_number": "A1"})
        missing = valid_policy.model_copy(update={"policy_number": None})
        quote = missing.model_copy(update={"policy_status": PolicyStatus.QUOTE})

        assert validator.validate_policy(short).warning_codes == ["SHORT_POLICY_NUMBER"]
        assert validator.validate_policy(missing).warning_codes == ["MISSING_POLICY_NUMBER"]
        assert validator.validate_policy(quote).warning_codes == []

    def test_naic_and_premium_warnings(self, validator, valid_policy):
        policy = valid_policy.model_copy(
            update={"carrier_naic": "1968", "total_premium": Decimal("25000000")}
        )

        result = validator.validate_policy(policy)

        assert result.warning_codes == ["INVALID_NAIC_FORMAT", "HIGH_PREMIUM"]
        assert result.is_valid
        assert result.adjusted_confidence == pytest.approx(0.86)

    def test_non_positive_premium(self, validator, valid_policy):
        policy = valid_policy.model_copy(update={"total_premium": Decimal("0")})

        assert validator.validate_policy(policy).warning_codes == ["INVALID_PREMIUM"]

    def test_validation_is_deterministic(self, validator, valid_policy):
        policy = valid_policy.model_copy(update={"carrier_naic": "bad"})

        assert validator.validate_policy(policy) == validator.validate_policy(policy)


class TestValidateCoverage:
    def test_valid_coverage(self, validator, gl_coverage):
        result = validator.validate_coverage(gl_coverage)

        assert result.is_valid
        assert result.warnings == []
        assert result.adjusted_confidence == pytest.approx(0.8)

    def test_low_gl_aggregate(self, validator, gl_coverage):
        coverage = gl_coverage.model_copy(
            update={"each_occurrence_limit": Decimal("2000000"), "aggregate_limit": Decimal("1000000")}
        )

        result = validator.validate_coverage(coverage)

        assert result.warning_codes == ["LOW_AGGREGATE"]
        assert result.adjusted_confidence == pytest.approx(0.77)

    def test_low_aggregate_only_checked_for_gl(self, validator, gl_coverage):
        coverage = gl_coverage.model_copy(
            update={
                "coverage_type": "umbrella_excess",
                "each_occurrence_limit": Decimal("5000000"),
                "aggregate_limit": Decimal("1000000"),
            }
        )

        assert validator.validate_coverage(coverage).warnings == []

    def test_negative_amounts_are_errors(self, validator, gl_coverage):
        coverage = gl_coverage.model_copy(
            update={
                "coverage_type": "business_auto",
                "each_occurrence_limit": Decimal("-1"),
                "aggregate_limit": Decimal("-5"),
                "deductible": Decimal("-100"),
            }
        )

        result = validator.validate_coverage(coverage)

        assert result.error_codes == ["INVALID_LIMIT", "INVALID_LIMIT", "INVALID_DEDUCTIBLE"]
        assert not result.is_valid
        assert result.adjusted_confidence == pytest.approx(0.35)

    def test_high_deductible(self, validator, gl_coverage):
        coverage = gl_coverage.model_copy(update={"deductible": Decimal("1000000")})

        assert validator.validate_coverage(coverage).warning_codes == ["HIGH_DEDUCTIBLE"]

    def test_claims_made_without_retro_date(self, validator):
        coverage = CoverageExtraction(coverage_type="cyber_liability", is_claims_made=True, confidence=0.9)

        assert validator.validate_coverage(coverage).warning_codes == ["MISSING_RETRO_DATE"]

    def test_missing_coverage_type(self, validator):
        coverage = CoverageExtraction(coverage_type="", confidence=0.1)

        result = validator.validate_coverage(coverage)

        assert result.error_codes == ["REQUIRED_FIELD"]
        assert result.adjusted_confidence == 0.0


class TestOverallConfidence:
    def test_weighted_rollup(self, validator):
        assert validator.calculate_overall_confidence(0.9, 0.9, [0.8, 0.7]) == pytest.approx(0.81)

    def test_no_coverages_uses_default(self, validator):
        assert validator.calculate_overall_confidence(1.0, 1.0, []) == pytest.approx(0.7)

    def test_out_of_range_inputs_are_clamped(self, validator):
        assert validator.calculate_overall_confidence(5.0, -1.0, [2.0]) == pytest.approx(0.7)


class TestValidateComplete:
    def test_clean_extraction(self, validator, valid_policy, gl_coverage):
        result = validator.validate_complete(valid_policy, [gl_coverage], classification_confidence=0.9)

        assert result.is_valid
        assert result.adjusted_confidence == pytest.approx(0.84)
        assert not result.needs_human_review

    def test_issue_fields_are_prefixed(self, validator, valid_policy, gl_coverage):
        bad_coverage = gl_coverage.model_copy(update={"deductible": Decimal("-1")})

        result = validator.validate_complete(valid_policy, [gl_coverage, bad_coverage], 0.9)

        assert [issue.field for issue in result.errors] == ["coverages[1].deductible"]
        assert "DUPLICATE_COVERAGE" in result.warning_codes

    def test_failed_extraction_is_flagged(self, validator):
        policy = PolicyExtraction(success=False, error="timeout")

        result = validator.validate_complete(policy, [], classification_confidence=0.9)

        assert result.error_codes == ["REQUIRED_FIELD"]
        assert result.warning_codes == ["EXTRACTION_FAILED", "NO_COVERAGES"]
        assert result.adjusted_confidence == pytest.approx(0.32)
        assert result.needs_human_review

    def test_missing_classification_counts_as_zero(self, validator, valid_policy, gl_coverage):
        result = validator.validate_complete(valid_policy, [gl_coverage])

        assert result.adjusted_confidence == pytest.approx(0.75)
