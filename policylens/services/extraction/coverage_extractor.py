"""Coverage extraction driven by per-specialty prompt definitions."""

from typing import Dict, List, Optional

from policylens.core.unified_llm import UnifiedLLMClient
from policylens.models.extraction import CoverageExtraction
from policylens.prompts.coverage_prompts import CoveragePromptSpec, build_coverage_prompt
from policylens.services.extraction.base_extractor import BaseExtractor
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)

CHUNK_SEPARATOR = "\n\n---\n\n"


class CoverageExtractor(BaseExtractor):
    """Extract one coverage line with the prompt of its specialty.

    A single instance can serve several coverage types; `overrides` holds a
    more specific prompt for individual types within the group (e.g. the
    specialized-liability group has distinct pollution and liquor prompts).
    """

    def __init__(
        self,
        llm_client: UnifiedLLMClient,
        name: str,
        prompt_spec: CoveragePromptSpec,
        overrides: Optional[Dict[str, CoveragePromptSpec]] = None,
        max_tokens: int = 4096,
    ):
        super().__init__(llm_client, max_tokens=max_tokens)
        self.name = name
        self.prompt_spec = prompt_spec
        self.overrides = overrides or {}
        self.last_input_tokens = 0
        self.last_output_tokens = 0

    def get_prompt_spec(self, coverage_type: str) -> CoveragePromptSpec:
        return self.overrides.get(coverage_type, self.prompt_spec)

    def get_extraction_prompt(self, coverage_type: str) -> str:
        return build_coverage_prompt(self.get_prompt_spec(coverage_type))

    async def extract(self, coverage_type: str, texts: List[str]) -> CoverageExtraction:
        return await self.execute(coverage_type, texts)

    async def run(self, coverage_type: str, texts: List[str]) -> CoverageExtraction:
        LOGGER.info(f"Extracting {coverage_type} coverage with {self.name} extractor")

        combined = CHUNK_SEPARATOR.join(texts)
        user_content = (
            f"Coverage Type: {coverage_type}\n\n"
            f"Please extract the coverage details from this text:\n\n{combined}"
        )
        call = await self._call_llm_json(self.get_extraction_prompt(coverage_type), user_content)
        self.last_input_tokens = call.input_tokens
        self.last_output_tokens = call.output_tokens

        if not call.success:
            LOGGER.warning(f"Failed to extract {coverage_type} coverage: {call.error}")
            return CoverageExtraction(
                coverage_type=coverage_type,
                details={"extraction_error": call.error},
                confidence=0.0,
                data_quality_notes=[f"extraction failed: {call.error}"],
            )

        coverage = self._build_coverage(
            coverage_type,
            call.data,
            detail_fields=self.get_prompt_spec(coverage_type).detail_field_names,
        )
        LOGGER.info(
            f"Extracted {coverage_type}: occurrence={coverage.each_occurrence_limit}, "
            f"aggregate={coverage.aggregate_limit}, confidence={coverage.confidence:.0%}"
        )
        return coverage
