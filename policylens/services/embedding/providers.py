"""Embedding providers.

- ``local``: sentence-transformers model run in a worker thread.
- ``openai``: OpenAI-compatible ``/embeddings`` endpoint over httpx.
"""

import asyncio
from typing import List, Optional, Protocol

import numpy as np
from sentence_transformers import SentenceTransformer

from policylens.core.base_llm_client import BaseLLMClient
from policylens.core.exceptions import EmbeddingError
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)

LOCAL_DEFAULT_MODEL = "all-MiniLM-L6-v2"
LOCAL_DEFAULT_DIMENSION = 384
OPENAI_DEFAULT_MODEL = "text-embedding-3-small"
OPENAI_DEFAULT_DIMENSION = 1536


class EmbeddingProvider(Protocol):
    """Anything that turns a batch of texts into fixed-size vectors."""

    model_name: str
    embedding_dimension: int

    async def embed(self, texts: List[str]) -> List[List[float]]:
        ...


class SentenceTransformerEmbeddingProvider:
    """Local sentence-transformers embeddings."""

    def __init__(
        self,
        model_name: str = LOCAL_DEFAULT_MODEL,
        embedding_dimension: int = LOCAL_DEFAULT_DIMENSION,
    ):
        self.model_name = model_name
        self.embedding_dimension = embedding_dimension
        self._model: Optional[SentenceTransformer] = None  # Lazy load the model

    @property
    def model(self) -> SentenceTransformer:
        """Lazy loader for the SentenceTransformer model."""
        if self._model is None:
            LOGGER.info(f"Loading embedding model: {self.model_name}")
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def _encode(self, texts: List[str]) -> List[List[float]]:
        vectors = self.model.encode(texts, convert_to_numpy=True, show_progress_bar=False)
        return np.asarray(vectors, dtype=np.float32).tolist()

    async def embed(self, texts: List[str]) -> List[List[float]]:
        # encode() is CPU bound
        return await asyncio.to_thread(self._encode, texts)


class HttpEmbeddingProvider(BaseLLMClient):
    """OpenAI-compatible embeddings endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1/embeddings",
        model_name: str = OPENAI_DEFAULT_MODEL,
        embedding_dimension: int = OPENAI_DEFAULT_DIMENSION,
        timeout: int = 60,
    ):
        # EmbeddingService owns the batch retry loop
        super().__init__(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=1)
        self.model_name = model_name
        self.embedding_dimension = embedding_dimension

    async def embed(self, texts: List[str]) -> List[List[float]]:
        response = await self.call_api(payload={"model": self.model_name, "input": texts})

        data = response.get("data")
        if not isinstance(data, list) or len(data) != len(texts):
            raise EmbeddingError(
                f"Embedding response has {len(data) if isinstance(data, list) else 0} vectors "
                f"for {len(texts)} inputs"
            )

        ordered = sorted(data, key=lambda item: item.get("index", 0))
        return [list(item.get("embedding") or []) for item in ordered]
