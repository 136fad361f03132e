"""Embedding providers."""

import hashlib
import logging
import math
import os
import re
from typing import Optional

from openai import AsyncOpenAI

from .base import AuthenticationError, EmbeddingError, EmbeddingProvider

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"

_TOKEN = re.compile(r"[a-z0-9]+")


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embeddings from any OpenAI-compatible endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_EMBEDDING_MODEL,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self._client: Optional[AsyncOpenAI] = None

    @property
    def name(self) -> str:
        return "openai"

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise AuthenticationError(
                    "Embedding API key not configured. Set OPENAI_API_KEY environment variable.",
                    provider=self.name,
                )
            self._client = AsyncOpenAI(
                api_key=self.api_key, base_url=self.base_url, timeout=self.timeout
            )
        return self._client

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            response = await self.client.embeddings.create(model=self.model, input=texts)
        except AuthenticationError:
            raise
        except Exception as e:
            logger.error(f"Embedding request failed: {e}")
            raise EmbeddingError(str(e), provider=self.name, model=self.model) from e
        # The API may return items out of order; ``index`` is authoritative.
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]


class HashingEmbeddingProvider(EmbeddingProvider):
    """Local bag-of-words embeddings using the hashing trick.

    Needs no network access, so it backs offline runs and tests. Texts with
    the same word multiset map to the same vector.
    """

    def __init__(self, dimensions: int = 256):
        if dimensions <= 0:
            raise ValueError("dimensions must be positive")
        self.dimensions = dimensions

    @property
    def name(self) -> str:
        return "hashing"

    async def embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimensions
        for token in _TOKEN.findall((text or "").lower()):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "big") % self.dimensions
            sign = 1.0 if digest[4] % 2 == 0 else -1.0
            vector[bucket] += sign
        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]
