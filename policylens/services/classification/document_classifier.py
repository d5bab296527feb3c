"""LLM-based document classification.

Labels a document with its type, the coverage lines it contains and its
section page ranges. Only the first pages are sent; the declarations and
form schedules that drive classification sit at the front of a policy.
"""

from typing import Any, Dict, List, Optional

from policylens.core.unified_llm import UnifiedLLMClient
from policylens.models.enums import CoverageType, DocumentType
from policylens.models.extraction import ClassificationResult, ClassifiedSection
from policylens.prompts.system_prompts import CLASSIFICATION_PROMPT
from policylens.services.base_llm_service import BaseLLMService
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_MAX_PAGES = 10

BOP_COMPONENTS = [CoverageType.GENERAL_LIABILITY.value, CoverageType.COMMERCIAL_PROPERTY.value]

_KNOWN_COVERAGES = {coverage.value for coverage in CoverageType}


def build_classification_content(
    page_texts: Dict[int, str],
    filename: Optional[str] = None,
    max_pages: int = DEFAULT_MAX_PAGES,
) -> str:
    """Format the first `max_pages` pages for the classifier."""
    parts = ["Please classify this insurance document:\n\n"]
    if filename:
        parts.append(f"Filename: {filename}\n\n")

    page_numbers = sorted(page_texts)
    for page_number in page_numbers[:max_pages]:
        parts.append(f"\n--- Page {page_number} ---\n")
        parts.append(page_texts[page_number] or "")

    remaining = len(page_numbers) - max_pages
    if remaining > 0:
        parts.append(f"\n\n[Document continues for {remaining} more pages...]\n")

    return "".join(parts)


def _check_classification_shape(parsed: Any) -> Optional[str]:
    if not isinstance(parsed, dict):
        return f"expected a JSON object, got {type(parsed).__name__}"
    for key in ("coverages_detected", "sections"):
        value = parsed.get(key)
        if value is not None and not isinstance(value, list):
            return f"'{key}' must be a list"
    sections = parsed.get("sections") or []
    if any(not isinstance(s, dict) for s in sections):
        return "'sections' must contain objects"
    for section in sections:
        form_numbers = section.get("form_numbers")
        if form_numbers is None or isinstance(form_numbers, str):
            continue
        if not isinstance(form_numbers, list) or any(isinstance(f, (dict, list)) for f in form_numbers):
            return "'form_numbers' must be a list of strings"
    return None


class DocumentClassifier(BaseLLMService):
    """Classify a document from its leading pages.

    Classification never fails the pipeline: when the LLM is unavailable or
    keeps returning malformed JSON the result is `success=False` with
    document type `unknown` and confidence 0.0.
    """

    def __init__(
        self,
        llm_client: UnifiedLLMClient,
        max_pages: int = DEFAULT_MAX_PAGES,
        max_tokens: int = 2048,
    ):
        super().__init__(llm_client, max_tokens=max_tokens)
        self.max_pages = max_pages

    async def classify(
        self,
        page_texts: Dict[int, str],
        filename: Optional[str] = None,
    ) -> ClassificationResult:
        return await self.execute(page_texts, filename)

    async def run(
        self,
        page_texts: Dict[int, str],
        filename: Optional[str] = None,
    ) -> ClassificationResult:
        LOGGER.info(
            f"Classifying document with {len(page_texts)} pages: {filename or 'unknown'}"
        )
        user_content = build_classification_content(page_texts, filename, self.max_pages)
        call = await self._call_llm_json(
            CLASSIFICATION_PROMPT, user_content, _check_classification_shape
        )

        if not call.success:
            LOGGER.warning(
                f"Classification failed, continuing as unknown: {call.error}",
                extra={"file_name": filename, "attempts": call.attempts}
            )
            return ClassificationResult(
                success=False,
                document_type=DocumentType.UNKNOWN,
                confidence=0.0,
                error=call.error,
            )

        result = self._parse_result(call.data, page_count=len(page_texts))
        LOGGER.info(
            f"Classified as {result.document_type.value} with "
            f"{len(result.coverages_detected)} coverages, confidence {result.confidence:.0%}"
        )
        return result

    def _parse_result(self, data: Dict[str, Any], page_count: int) -> ClassificationResult:
        raw_type = str(data.get("document_type") or "").strip().lower()
        try:
            document_type = DocumentType(raw_type)
        except ValueError:
            LOGGER.warning(f"Unknown document type from classifier: '{raw_type}'")
            document_type = DocumentType.UNKNOWN

        return ClassificationResult(
            success=True,
            document_type=document_type,
            coverages_detected=self._normalize_coverages(data.get("coverages_detected") or []),
            sections=self._parse_sections(data.get("sections") or [], page_count),
            confidence=data.get("confidence"),
        )

    def _normalize_coverages(self, raw_coverages: List[Any]) -> List[str]:
        coverages: List[str] = []
        for raw in raw_coverages:
            value = str(raw).strip().lower().replace(" ", "_").replace("-", "_")
            if value not in _KNOWN_COVERAGES:
                LOGGER.warning(f"Dropping unknown coverage type from classifier: '{raw}'")
                continue
            if value == CoverageType.BOP.value:
                # A BOP is reported as its liability and property components
                for component in BOP_COMPONENTS:
                    if component not in coverages:
                        coverages.append(component)
                continue
            if value not in coverages:
                coverages.append(value)
        return coverages

    def _parse_sections(self, raw_sections: List[Dict[str, Any]], page_count: int) -> List[ClassifiedSection]:
        sections: List[ClassifiedSection] = []
        for raw in raw_sections:
            try:
                start_page = int(raw.get("start_page"))
                end_page = int(raw.get("end_page") or start_page)
            except (TypeError, ValueError):
                LOGGER.debug(f"Skipping section without usable page range: {raw}")
                continue

            if page_count:
                end_page = min(end_page, page_count)
            if start_page < 1 or end_page < start_page:
                LOGGER.debug(f"Skipping section with invalid page range: {raw}")
                continue

            sections.append(
                ClassifiedSection(
                    section_type=str(raw.get("section_type") or "unknown").strip().lower(),
                    start_page=start_page,
                    end_page=end_page,
                    form_numbers=self._form_numbers(raw.get("form_numbers")),
                )
            )
        return sections

    @staticmethod
    def _form_numbers(raw: Any) -> List[str]:
        if raw is None:
            return []
        if isinstance(raw, str):
            raw = [raw]
        return [str(f).strip() for f in raw if f and str(f).strip()]
