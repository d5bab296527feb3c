"""Paragraph-aware chunking of per-page document text.

Pages are split into paragraphs on blank lines and packed into chunks that
stay within a token budget. Chunks close early at natural split points
(section headers, short all-caps lines) once they reach the target size,
and each new chunk starts with a short overlap carried from the previous one.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from policylens.models.documents import Chunk
from policylens.models.enums import SectionType
from policylens.models.extraction import ClassificationResult
from policylens.services.chunking.token_counter import TokenCounter
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)

PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")

PARAGRAPH_SEPARATOR = "\n\n"
WORD_SEPARATOR = " "

SECTION_HEADER_PATTERNS = [
    re.compile(r"^(SECTION|PART|ARTICLE|COVERAGE|FORM)\s+[A-Z0-9]+", re.IGNORECASE),
    re.compile(r"^(DECLARATIONS?|ENDORSEMENT|SCHEDULE|CONDITIONS?)\s*$", re.IGNORECASE),
    re.compile(r"^(GENERAL\s+CONDITIONS|SPECIAL\s+CONDITIONS)", re.IGNORECASE),
    re.compile(r"^(LIMITS?\s+OF\s+(LIABILITY|INSURANCE))", re.IGNORECASE),
    re.compile(r"^(EXCLUSIONS?|DEFINITIONS?)\s*$", re.IGNORECASE),
]

# Checked in order; the first keyword found in the header wins
SECTION_KEYWORDS = [
    (("DECLARATION",), SectionType.DECLARATIONS),
    (("ENDORSEMENT",), SectionType.ENDORSEMENTS),
    (("SCHEDULE",), SectionType.SCHEDULE),
    (("CONDITION",), SectionType.CONDITIONS),
    (("COVERAGE", "FORM"), SectionType.COVERAGE_FORM),
    (("EXCLUSION",), SectionType.EXCLUSIONS),
    (("DEFINITION",), SectionType.DEFINITIONS),
]

SHORT_HEADER_TOKENS = 20


class ChunkingOptions(BaseModel):
    """Token budgets for a chunking run."""

    target_tokens: int = Field(default=500, ge=1)
    max_tokens: int = Field(default=1000, ge=1)
    overlap_tokens: int = Field(default=50, ge=0)

    @model_validator(mode="after")
    def _check_budgets(self) -> "ChunkingOptions":
        if self.target_tokens > self.max_tokens:
            raise ValueError("target_tokens must not exceed max_tokens")
        if self.overlap_tokens > self.target_tokens:
            raise ValueError("overlap_tokens must not exceed target_tokens")
        return self


def section_type_from_keywords(label: str) -> Optional[SectionType]:
    """Map free text such as a header line to a section type by keyword."""
    upper = label.upper()
    for keywords, section_type in SECTION_KEYWORDS:
        if any(keyword in upper for keyword in keywords):
            return section_type
    return None


def detect_section_type(paragraph: str) -> Optional[SectionType]:
    """Return the section type when a paragraph opens with a section header."""
    first_line = paragraph.split("\n", 1)[0].strip()
    for pattern in SECTION_HEADER_PATTERNS:
        if pattern.match(first_line):
            return section_type_from_keywords(first_line) or SectionType.COVERAGE_FORM
    return None


def normalize_section_label(label: str) -> Optional[SectionType]:
    """Resolve a section label reported by the classifier to a SectionType."""
    if not label:
        return None
    try:
        return SectionType(label.strip().lower())
    except ValueError:
        return section_type_from_keywords(label)


@dataclass
class _Piece:
    """A paragraph, or part of one, waiting to be packed into a chunk."""

    text: str
    page_start: int
    page_end: int
    section_type: Optional[SectionType] = None
    is_overlap: bool = False

    @property
    def char_count(self) -> int:
        return len(self.text)

    @property
    def word_count(self) -> int:
        return len(self.text.split())


class TextChunker:
    """Split page text into ordered, token-bounded, page-anchored chunks."""

    def __init__(self, token_counter: Optional[TokenCounter] = None):
        self.token_counter = token_counter or TokenCounter()

    def chunk(
        self,
        page_texts: Dict[int, str],
        options: Optional[ChunkingOptions] = None,
    ) -> List[Chunk]:
        """Chunk a page-number → text map.

        Args:
            page_texts: Text of each page keyed by 1-based page number
            options: Token budgets; defaults to 500/1000/50

        Returns:
            List[Chunk]: Chunks with contiguous indices starting at 0
        """
        options = options or ChunkingOptions()
        LOGGER.info(
            f"Starting chunking with target={options.target_tokens}, "
            f"max={options.max_tokens}, overlap={options.overlap_tokens} tokens"
        )

        paragraphs = self._extract_paragraphs(page_texts)
        chunks = self._build_chunks(paragraphs, options)

        LOGGER.info(
            f"Chunking complete: {len(chunks)} chunks from {len(paragraphs)} paragraphs",
            extra={"page_count": len(page_texts)}
        )
        return chunks

    def _tokens(self, pieces: List[_Piece], separator: str = PARAGRAPH_SEPARATOR) -> int:
        if not pieces:
            return 0
        chars = sum(p.char_count for p in pieces) + len(separator) * (len(pieces) - 1)
        words = sum(p.word_count for p in pieces)
        return self.token_counter.estimate(chars, words)

    def _extract_paragraphs(self, page_texts: Dict[int, str]) -> List[_Piece]:
        paragraphs: List[_Piece] = []
        for page_number in sorted(page_texts):
            page_text = page_texts[page_number]
            if not page_text or not page_text.strip():
                continue
            for raw in PARAGRAPH_BREAK.split(page_text):
                text = raw.strip()
                if not text:
                    continue
                paragraphs.append(
                    _Piece(
                        text=text,
                        page_start=page_number,
                        page_end=page_number,
                        section_type=detect_section_type(text),
                    )
                )
        return paragraphs

    def _build_chunks(self, paragraphs: List[_Piece], options: ChunkingOptions) -> List[Chunk]:
        chunks: List[Chunk] = []
        current: List[_Piece] = []
        # A header applies to every following chunk until the next header
        section: Optional[SectionType] = None

        for paragraph in paragraphs:
            if self._tokens([paragraph]) > options.max_tokens:
                parts = self._split_large_paragraph(paragraph, options.max_tokens)
            else:
                parts = [paragraph]

            for part in parts:
                would_exceed = self._tokens(current + [part]) > options.max_tokens
                at_target = (
                    self._tokens(current) >= options.target_tokens
                    and self._is_split_point(part)
                )
                has_content = any(not p.is_overlap for p in current)

                if (would_exceed or at_target) and has_content:
                    chunks.append(self._make_chunk(current, len(chunks), section))
                    current = self._carry_overlap(current, part, options)

                current.append(part)
                if part.section_type is not None:
                    section = part.section_type

        if any(not p.is_overlap for p in current):
            chunks.append(self._make_chunk(current, len(chunks), section))

        return chunks

    def _is_split_point(self, part: _Piece) -> bool:
        if part.section_type is not None:
            return True
        return self._tokens([part]) < SHORT_HEADER_TOKENS and part.text.upper() == part.text

    def _make_chunk(self, pieces: List[_Piece], index: int, section: Optional[SectionType]) -> Chunk:
        return Chunk(
            index=index,
            text=PARAGRAPH_SEPARATOR.join(p.text for p in pieces),
            page_start=min(p.page_start for p in pieces),
            page_end=max(p.page_end for p in pieces),
            token_count=self._tokens(pieces),
            section_type=section or SectionType.UNKNOWN,
        )

    def _carry_overlap(
        self,
        previous: List[_Piece],
        next_part: _Piece,
        options: ChunkingOptions,
    ) -> List[_Piece]:
        """Pick the overlap prefix for the next chunk, shrinking it until `next_part` fits."""
        budget = options.overlap_tokens
        while budget > 0:
            overlap = self._overlap_pieces(previous, budget)
            if not overlap:
                return []
            if self._tokens(overlap + [next_part]) <= options.max_tokens:
                return overlap
            budget = self._tokens(overlap) - 1
        return []

    def _overlap_pieces(self, previous: List[_Piece], budget: int) -> List[_Piece]:
        """Trailing whole paragraphs within `budget`, else trailing words of the last one."""
        taken: List[_Piece] = []
        for piece in reversed(previous):
            candidate = [piece] + taken
            if self._tokens(candidate) > budget:
                break
            taken = candidate

        if taken:
            return [
                _Piece(
                    text=p.text,
                    page_start=p.page_start,
                    page_end=p.page_end,
                    section_type=None,
                    is_overlap=True,
                )
                for p in taken
            ]

        last = previous[-1]
        words = last.text.split()
        kept: List[str] = []
        for word in reversed(words):
            candidate = [word] + kept
            chars = sum(len(w) for w in candidate) + len(candidate) - 1
            if self.token_counter.estimate(chars, len(candidate)) > budget:
                break
            kept = candidate

        if not kept:
            return []
        return [
            _Piece(
                text=WORD_SEPARATOR.join(kept),
                page_start=last.page_end,
                page_end=last.page_end,
                is_overlap=True,
            )
        ]

    def _split_large_paragraph(self, paragraph: _Piece, max_tokens: int) -> List[_Piece]:
        """Split an oversized paragraph on sentence boundaries, then on words."""
        sentences = [s.strip() for s in SENTENCE_BREAK.split(paragraph.text) if s.strip()]
        texts: List[str] = []
        current: List[_Piece] = []

        def flush() -> None:
            if current:
                texts.append(WORD_SEPARATOR.join(p.text for p in current))
                current.clear()

        for sentence in sentences:
            piece = _Piece(text=sentence, page_start=paragraph.page_start, page_end=paragraph.page_end)
            if self._tokens([piece]) > max_tokens:
                flush()
                texts.extend(self._split_by_words(sentence, max_tokens))
            elif self._tokens(current + [piece], WORD_SEPARATOR) > max_tokens:
                flush()
                current.append(piece)
            else:
                current.append(piece)
        flush()

        parts = [
            _Piece(
                text=text,
                page_start=paragraph.page_start,
                page_end=paragraph.page_end,
                section_type=paragraph.section_type if i == 0 else None,
            )
            for i, text in enumerate(texts)
        ]
        LOGGER.debug(
            f"Split large paragraph ({self._tokens([paragraph])} tokens) into {len(parts)} parts"
        )
        return parts

    def _split_by_words(self, sentence: str, max_tokens: int) -> List[str]:
        max_chars = self.token_counter.max_chars_for_single_word(max_tokens)
        words: List[str] = []
        for word in sentence.split():
            if len(word) > max_chars:
                words.extend(word[i:i + max_chars] for i in range(0, len(word), max_chars))
            else:
                words.append(word)

        batches: List[str] = []
        batch: List[str] = []
        batch_chars = 0
        for word in words:
            chars = batch_chars + len(word) + (1 if batch else 0)
            if batch and self.token_counter.estimate(chars, len(batch) + 1) > max_tokens:
                batches.append(WORD_SEPARATOR.join(batch))
                batch = []
                batch_chars = 0
                chars = len(word)
            batch.append(word)
            batch_chars = chars
        if batch:
            batches.append(WORD_SEPARATOR.join(batch))
        return batches


def retag_sections(chunks: List[Chunk], classification: ClassificationResult) -> List[Chunk]:
    """Re-tag chunks from the section page ranges reported by classification.

    Each chunk takes the section that overlaps most of its page range.
    Chunks outside every reported range keep their heuristic tag.
    """
    if not classification.success or not classification.sections:
        return chunks

    retagged: List[Chunk] = []
    changed = 0
    for chunk in chunks:
        best: Optional[SectionType] = None
        best_overlap = 0
        for section in classification.sections:
            section_type = normalize_section_label(section.section_type)
            if section_type is None:
                continue
            overlap = (
                min(chunk.page_end, section.end_page)
                - max(chunk.page_start, section.start_page)
                + 1
            )
            if overlap > best_overlap:
                best, best_overlap = section_type, overlap

        if best is not None and best != chunk.section_type:
            retagged.append(chunk.model_copy(update={"section_type": best}))
            changed += 1
        else:
            retagged.append(chunk)

    LOGGER.debug(f"Re-tagged {changed} of {len(chunks)} chunks from classified sections")
    return retagged
