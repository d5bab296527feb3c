"""Batched chunk embedding with per-batch retry and failure isolation."""

import asyncio
import math
from typing import List, Optional

from policylens.core.config import EmbeddingSettings
from policylens.core.exceptions import ConfigurationError, EmbeddingError
from policylens.models.retrieval import EmbeddingResult
from policylens.services.embedding.providers import (
    EmbeddingProvider,
    HttpEmbeddingProvider,
    SentenceTransformerEmbeddingProvider,
)
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)


def estimate_embedding_tokens(text: str) -> int:
    return math.ceil(len(text) / 4)


class EmbeddingService:
    """Embed texts in bounded batches.

    A batch is retried with exponential backoff; once its attempts are
    exhausted only that batch's entries come back as None.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        batch_size: int = 100,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        if batch_size < 1:
            raise ConfigurationError("Embedding batch size must be at least 1")
        self.provider = provider
        self.batch_size = batch_size
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay

    @property
    def embedding_dimension(self) -> int:
        return self.provider.embedding_dimension

    @property
    def model_name(self) -> str:
        return self.provider.model_name

    async def embed_texts(self, texts: List[str]) -> EmbeddingResult:
        """Embed texts, returning vectors in input order."""
        if not texts:
            return EmbeddingResult(success=True)

        LOGGER.info(f"Generating embeddings for {len(texts)} texts")

        vectors: List[Optional[List[float]]] = [None] * len(texts)
        failed: List[int] = []
        total_tokens = 0
        last_error: Optional[str] = None
        total_batches = math.ceil(len(texts) / self.batch_size)

        for batch_number, start in enumerate(range(0, len(texts), self.batch_size), start=1):
            batch = texts[start:start + self.batch_size]
            try:
                batch_vectors = await self._embed_batch_with_retry(batch)
            except EmbeddingError as e:
                last_error = e.message
                failed.extend(range(start, start + len(batch)))
                LOGGER.error(
                    f"Embedding batch {batch_number}/{total_batches} failed: {e.message}",
                    extra={"batch_size": len(batch)}
                )
                continue

            vectors[start:start + len(batch)] = batch_vectors
            total_tokens += sum(estimate_embedding_tokens(text) for text in batch)
            LOGGER.debug(f"Processed batch {batch_number}/{total_batches}: {len(batch)} embeddings")

        embedded = len(texts) - len(failed)
        LOGGER.info(
            f"Embedding generation complete: {embedded} embeddings, {total_tokens} tokens used",
            extra={"failed": len(failed)}
        )
        return EmbeddingResult(
            success=embedded > 0,
            vectors=vectors,
            total_tokens_used=total_tokens,
            failed_indices=failed,
            error=f"Failed to embed {len(failed)} of {len(texts)} texts: {last_error}" if failed else None,
        )

    async def embed_query(self, text: str) -> List[float]:
        """Embed a single query string.

        Raises:
            EmbeddingError: If the query cannot be embedded
        """
        return (await self._embed_batch_with_retry([text]))[0]

    async def _embed_batch_with_retry(self, batch: List[str]) -> List[List[float]]:
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                batch_vectors = await self.provider.embed(batch)
            except Exception as e:
                last_error = e
                LOGGER.warning(
                    f"Embedding attempt {attempt + 1}/{self.max_retries} failed: {e}",
                    exc_info=True
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))
                continue

            self._check_vectors(batch, batch_vectors)
            return batch_vectors

        raise EmbeddingError(
            f"Embedding failed after {self.max_retries} attempts: {last_error}",
            original_error=last_error,
        )

    def _check_vectors(self, batch: List[str], batch_vectors: List[List[float]]):
        if len(batch_vectors) != len(batch):
            raise EmbeddingError(
                f"Provider returned {len(batch_vectors)} vectors for {len(batch)} texts"
            )
        for vector in batch_vectors:
            if len(vector) != self.embedding_dimension:
                raise EmbeddingError(
                    f"Embedding dimension mismatch: expected {self.embedding_dimension}, got {len(vector)}"
                )


def create_embedding_service_from_settings(embedding_settings: EmbeddingSettings) -> EmbeddingService:
    """Build the embedding service for `EMBEDDING_PROVIDER`.

    Raises:
        ConfigurationError: If the provider is unknown or its API key is missing
    """
    provider_name = embedding_settings.provider.lower()

    if provider_name == "local":
        provider = SentenceTransformerEmbeddingProvider(
            model_name=embedding_settings.model,
            embedding_dimension=embedding_settings.dimension,
        )
    elif provider_name == "openai":
        if not embedding_settings.api_key.strip():
            raise ConfigurationError(
                "OPENAI_API_KEY required when EMBEDDING_PROVIDER='openai'"
            )
        provider = HttpEmbeddingProvider(
            api_key=embedding_settings.api_key.strip(),
            base_url=embedding_settings.api_url,
            model_name=embedding_settings.model,
            embedding_dimension=embedding_settings.dimension,
        )
    else:
        raise ConfigurationError(f"Unsupported embedding provider: {embedding_settings.provider}")

    LOGGER.info(
        f"Initialized embedding service with {provider_name} provider (model: {embedding_settings.model})",
        extra={"dimension": embedding_settings.dimension}
    )
    return EmbeddingService(
        provider,
        batch_size=embedding_settings.batch_size,
        max_retries=embedding_settings.max_retries,
        retry_delay=embedding_settings.retry_delay,
    )
