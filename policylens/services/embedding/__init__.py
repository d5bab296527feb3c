"""Batched text embedding with pluggable providers."""

from policylens.services.embedding.embedding_service import (
    EmbeddingService,
    create_embedding_service_from_settings,
)
from policylens.services.embedding.providers import (
    EmbeddingProvider,
    HttpEmbeddingProvider,
    SentenceTransformerEmbeddingProvider,
)

__all__ = [
    "EmbeddingProvider",
    "EmbeddingService",
    "HttpEmbeddingProvider",
    "SentenceTransformerEmbeddingProvider",
    "create_embedding_service_from_settings",
]
