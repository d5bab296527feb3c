"""Structured extraction entry point with a configurable strategy.

- ``unified``: one LLM call returns the policy and all coverages.
- ``two_pass``: policy fields from the declarations, then one call per
  coverage type the classifier detected, routed through ExtractorFactory.
"""

from typing import List, Optional

from policylens.core.exceptions import ConfigurationError
from policylens.core.unified_llm import UnifiedLLMClient
from policylens.models.documents import Chunk
from policylens.models.enums import DocumentType, SectionType
from policylens.models.extraction import (
    ClassificationResult,
    CoverageExtraction,
    ExtractionResult,
)
from policylens.services.extraction.extractor_factory import ExtractorFactory
from policylens.services.extraction.policy_extractor import PolicyExtractor, select_declarations_chunks
from policylens.services.extraction.unified_extractor import UnifiedExtractor
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)

UNIFIED = "unified"
TWO_PASS = "two_pass"
STRATEGIES = (UNIFIED, TWO_PASS)

_COVERAGE_SECTIONS = {
    SectionType.DECLARATIONS,
    SectionType.COVERAGE_FORM,
    SectionType.SCHEDULE,
    SectionType.ENDORSEMENTS,
}


def select_coverage_chunks(chunks: List[Chunk], coverage_type: str, max_chunks: int = 20) -> List[Chunk]:
    """Chunks likely to describe a coverage line, in document order.

    Prefers chunks that mention the coverage by name; otherwise uses the
    declarations, coverage form, schedule and endorsement chunks.
    """
    ordered = sorted(chunks, key=lambda c: c.index)
    phrase = coverage_type.replace("_", " ").lower()
    mentioning = [c for c in ordered if phrase in c.text.lower()]
    declarations = [c for c in ordered if c.section_type == SectionType.DECLARATIONS]

    selected = {c.index: c for c in declarations + mentioning}
    if not mentioning:
        for chunk in ordered:
            if chunk.section_type in _COVERAGE_SECTIONS:
                selected.setdefault(chunk.index, chunk)

    if not selected:
        return ordered[:max_chunks]
    return [selected[index] for index in sorted(selected)][:max_chunks]


class ExtractionService:
    """Run structured extraction with the configured strategy."""

    def __init__(
        self,
        llm_client: UnifiedLLMClient,
        strategy: str = UNIFIED,
        declarations_fallback_chunks: int = 3,
        coverage_max_chunks: int = 20,
        max_tokens: int = 4096,
    ):
        strategy = (strategy or UNIFIED).lower()
        if strategy not in STRATEGIES:
            raise ConfigurationError(
                f"Unsupported extraction strategy '{strategy}'. Expected one of: {', '.join(STRATEGIES)}"
            )
        self.strategy = strategy
        self.declarations_fallback_chunks = declarations_fallback_chunks
        self.coverage_max_chunks = coverage_max_chunks

        self.unified_extractor = UnifiedExtractor(llm_client, max_tokens=max_tokens)
        self.policy_extractor = PolicyExtractor(llm_client, max_tokens=max_tokens)
        self.extractor_factory = ExtractorFactory(llm_client, max_tokens=max_tokens)

    async def extract(
        self,
        chunks: List[Chunk],
        classification: Optional[ClassificationResult] = None,
    ) -> ExtractionResult:
        document_type = None
        if classification and classification.document_type != DocumentType.UNKNOWN:
            document_type = classification.document_type.value

        if self.strategy == TWO_PASS:
            return await self._extract_two_pass(chunks, classification, document_type)
        return await self.unified_extractor.extract(chunks, document_type)

    async def _extract_two_pass(
        self,
        chunks: List[Chunk],
        classification: Optional[ClassificationResult],
        document_type: Optional[str],
    ) -> ExtractionResult:
        declarations = select_declarations_chunks(chunks, self.declarations_fallback_chunks)
        policy = await self.policy_extractor.extract(declarations, document_type)
        input_tokens = self.policy_extractor.last_input_tokens
        output_tokens = self.policy_extractor.last_output_tokens

        coverage_types = classification.coverages_detected if classification else []
        coverages: List[CoverageExtraction] = []
        for coverage_type in coverage_types:
            extractor = self.extractor_factory.get_extractor(coverage_type)
            selected = select_coverage_chunks(chunks, coverage_type, self.coverage_max_chunks)
            coverage = await extractor.extract(coverage_type, [c.text for c in selected])
            coverages.append(coverage)
            input_tokens += extractor.last_input_tokens
            output_tokens += extractor.last_output_tokens

        LOGGER.info(
            f"Two-pass extraction complete: policy success={policy.success}, "
            f"{len(coverages)} coverages",
            extra={"input_tokens": input_tokens, "output_tokens": output_tokens}
        )
        return ExtractionResult(
            policy=policy,
            coverages=coverages,
            strategy=TWO_PASS,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
