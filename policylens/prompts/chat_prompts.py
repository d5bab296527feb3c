"""Context assembly and citation parsing for policy chat."""

import re
from typing import Iterable, List, Sequence, Tuple
from uuid import UUID

from policylens.models.retrieval import ChunkSearchResult

NO_CONTEXT_PLACEHOLDER = "*No relevant policy excerpts found for this query.*"
SEARCH_UNAVAILABLE_NOTE = (
    "[Note: Document search is temporarily unavailable. "
    "Please answer based on general knowledge about insurance policies.]"
)

HISTORY_MESSAGE_LIMIT = 6
HISTORY_TRUNCATE_CHARS = 500
IMPLICIT_CITATION_COUNT = 3

# [Source: Page 3], [Source: Pages 3-5], [Document: x, Page 2, Section: y]
CITATION_PATTERN = re.compile(
    r"\[(?:Source|Document)[^\]]*?Pages?\s*(\d+)(?:\s*-\s*(\d+))?[^\]]*\]",
    re.IGNORECASE,
)

_SECTION_LABELS = {
    "declarations": "Declarations",
    "coverage_form": "Coverage Form",
    "endorsements": "Endorsements",
    "schedule": "Schedule",
    "conditions": "Conditions",
    "exclusions": "Exclusions",
    "definitions": "Definitions",
}


def format_section_type(section_type: str) -> str:
    """snake_case section type to Title Case."""
    if section_type in _SECTION_LABELS:
        return _SECTION_LABELS[section_type]
    return " ".join(part.capitalize() for part in section_type.split("_") if part)


def format_excerpt_header(chunk: ChunkSearchResult) -> str:
    header = f"[Document: {chunk.document_name}"
    if chunk.page_start is not None:
        if chunk.page_end is not None and chunk.page_end != chunk.page_start:
            header += f", Pages {chunk.page_start}-{chunk.page_end}"
        else:
            header += f", Page {chunk.page_start}"
    if chunk.section_type:
        header += f", Section: {format_section_type(chunk.section_type)}"
    return header + "]"


def build_context_prompt(chunks: Sequence[ChunkSearchResult], user_query: str) -> str:
    """Excerpts block in retrieval rank order, followed by the question."""
    lines = ["## Policy Excerpts", ""]

    if not chunks:
        lines.append(NO_CONTEXT_PLACEHOLDER)
    else:
        for chunk in chunks:
            lines.append("---")
            lines.append(format_excerpt_header(chunk))
            lines.append(chunk.chunk_text)
        lines.append("---")

    lines.extend(["", "## Current Question", user_query])
    return "\n".join(lines) + "\n"


def truncate_history_content(content: str, limit: int = HISTORY_TRUNCATE_CHARS) -> str:
    if len(content) > limit:
        return content[:limit] + "..."
    return content


def build_user_message(
    chunks: Sequence[ChunkSearchResult],
    recent_messages: Iterable[Tuple[str, str]],
    user_query: str,
    max_history: int = HISTORY_MESSAGE_LIMIT,
    truncate_chars: int = HISTORY_TRUNCATE_CHARS,
    search_failed: bool = False,
) -> str:
    """Full user turn: context block plus the last few (role, content) pairs."""
    message = build_context_prompt(chunks, user_query)
    if search_failed:
        message = f"{SEARCH_UNAVAILABLE_NOTE}\n\n{message}"

    history = list(recent_messages)[-max_history:] if max_history > 0 else []
    if history:
        lines = ["", "## Recent Conversation Context"]
        for role, content in history:
            label = "User" if role == "user" else "Assistant"
            lines.append(f"{label}: {truncate_history_content(content, truncate_chars)}")
        message += "\n".join(lines) + "\n"

    return message


def extract_citations(
    response: str,
    chunks: Sequence[ChunkSearchResult],
    implicit_count: int = IMPLICIT_CITATION_COUNT,
) -> List[UUID]:
    """Chunk ids cited by page in the answer.

    Each `[Source: Page X]` / `[Source: Pages X-Y]` marker resolves to the
    first retrieved chunk whose page range overlaps it. An answer without
    resolvable markers cites the top `implicit_count` chunks.
    """
    cited: List[UUID] = []

    for match in CITATION_PATTERN.finditer(response or ""):
        page_start = int(match.group(1))
        page_end = int(match.group(2)) if match.group(2) else page_start
        if page_end < page_start:
            page_start, page_end = page_end, page_start

        for chunk in chunks:
            if chunk.page_start is None:
                continue
            chunk_end = chunk.page_end if chunk.page_end is not None else chunk.page_start
            if chunk.page_start <= page_end and chunk_end >= page_start:
                if chunk.chunk_id not in cited:
                    cited.append(chunk.chunk_id)
                break

    if not cited and chunks:
        cited = [chunk.chunk_id for chunk in chunks[:implicit_count]]

    return cited
