"""Business-rule validation and confidence scoring for extractions."""

from policylens.services.validation.extraction_validator import ExtractionValidator

__all__ = ["ExtractionValidator"]
