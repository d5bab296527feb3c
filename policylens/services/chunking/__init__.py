"""Page-aware chunking of extracted document text."""

from policylens.services.chunking.text_chunker import ChunkingOptions, TextChunker, retag_sections
from policylens.services.chunking.token_counter import TokenCounter

__all__ = ["ChunkingOptions", "TextChunker", "TokenCounter", "retag_sections"]
