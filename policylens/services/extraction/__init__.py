"""Structured policy and coverage extraction."""

from policylens.services.extraction.extraction_service import ExtractionService
from policylens.services.extraction.extractor_factory import ExtractorFactory

__all__ = ["ExtractionService", "ExtractorFactory"]
