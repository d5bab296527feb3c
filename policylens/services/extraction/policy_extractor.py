"""Policy-level extraction from declarations text (two-pass strategy, pass 1)."""

from typing import List, Optional

from policylens.models.documents import Chunk
from policylens.models.enums import SectionType
from policylens.models.extraction import PolicyExtraction
from policylens.prompts.system_prompts import POLICY_EXTRACTION_PROMPT
from policylens.services.extraction.base_extractor import BaseExtractor
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)

CHUNK_SEPARATOR = "\n\n---\n\n"


def select_declarations_chunks(chunks: List[Chunk], fallback_count: int = 3) -> List[Chunk]:
    """Chunks tagged as declarations, or the leading chunks when none are tagged."""
    ordered = sorted(chunks, key=lambda c: c.index)
    declarations = [c for c in ordered if c.section_type == SectionType.DECLARATIONS]
    return declarations or ordered[:fallback_count]


class PolicyExtractor(BaseExtractor):
    """Extract core policy fields from the declarations section.

    Attributes:
        last_input_tokens: Prompt tokens used by the most recent call
        last_output_tokens: Completion tokens used by the most recent call
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.last_input_tokens = 0
        self.last_output_tokens = 0

    async def extract(
        self,
        chunks: List[Chunk],
        document_type: Optional[str] = None,
    ) -> PolicyExtraction:
        return await self.execute(chunks, document_type)

    async def run(
        self,
        chunks: List[Chunk],
        document_type: Optional[str] = None,
    ) -> PolicyExtraction:
        declarations_text = CHUNK_SEPARATOR.join(chunk.text for chunk in chunks)
        LOGGER.info(
            f"Starting policy extraction from {len(chunks)} declarations chunks",
            extra={"text_length": len(declarations_text)}
        )

        user_content = (
            f"Document Type: {document_type or 'unknown'}\n\n"
            f"Please extract the core policy information from this declarations section:\n\n"
            f"{declarations_text}"
        )
        call = await self._call_llm_json(POLICY_EXTRACTION_PROMPT, user_content)
        self.last_input_tokens = call.input_tokens
        self.last_output_tokens = call.output_tokens

        if not call.success:
            LOGGER.warning(f"Policy extraction failed: {call.error}")
            return PolicyExtraction(success=False, error=call.error)

        values = dict(call.data)
        if not values.get("document_type") and document_type:
            values["document_type"] = document_type

        policy = self._build_policy(values, raw_extraction=call.data)
        LOGGER.info(
            f"Extracted policy {policy.policy_number or '(no number)'} "
            f"with confidence {policy.confidence:.0%}"
        )
        return policy
