from typing import List

from pydantic import BaseModel, Field, computed_field

HUMAN_REVIEW_THRESHOLD = 0.7


class ValidationIssue(BaseModel):
    field: str
    message: str
    code: str


class ValidationResult(BaseModel):
    """Errors, warnings and the confidence left after applying them."""

    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)
    adjusted_confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @computed_field
    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    @computed_field
    @property
    def needs_human_review(self) -> bool:
        return not self.is_valid or self.adjusted_confidence < HUMAN_REVIEW_THRESHOLD

    @property
    def error_codes(self) -> List[str]:
        return [issue.code for issue in self.errors]

    @property
    def warning_codes(self) -> List[str]:
        return [issue.code for issue in self.warnings]
