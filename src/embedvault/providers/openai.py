"""OpenAIEmbedding — async embedding provider backed by OpenAI's API."""

from __future__ import annotations

import itertools
import logging
import os
from operator import attrgetter
from typing import TYPE_CHECKING, Any

from embedvault.exceptions import ConfigurationError, DimensionMismatchError, EmbedVaultError

try:
    from openai import AsyncOpenAI

    _HAS_OPENAI = True
except ImportError:  # pragma: no cover
    _HAS_OPENAI = False

if TYPE_CHECKING:
    from openai import AsyncOpenAI as AsyncOpenAIType

logger = logging.getLogger(__name__)

_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbedding:
    """Embeds query text and code chunks with the OpenAI Embeddings API.

    Batches are split at *batch_size* texts per request and every returned
    vector is checked against :attr:`dimensions` when those were requested
    explicitly.  Configuration problems (no API key, a bad batch size) are
    raised at construction.

    Requires the ``openai`` package::

        pip install embedvault[openai]
    """

    provider_name = "openai"

    def __init__(
        self,
        *,
        model: str = "text-embedding-3-small",
        dimensions: int | None = None,
        api_key: str | None = None,
        max_retries: int = 2,
        timeout: float = 60.0,
        batch_size: int = 512,
        client: AsyncOpenAIType | None = None,
    ) -> None:
        if not _HAS_OPENAI:
            msg = (
                "openai is required for OpenAIEmbedding. "
                "Install it with: pip install embedvault[openai]"
            )
            raise ImportError(msg)
        if batch_size < 1:
            msg = f"batch_size must be at least 1, got {batch_size}"
            raise ConfigurationError(msg)

        if client is None:
            resolved_key = api_key or os.environ.get("OPENAI_API_KEY")
            if not resolved_key:
                msg = (
                    "No OpenAI API key provided. Pass api_key= or set the "
                    "OPENAI_API_KEY environment variable."
                )
                raise ConfigurationError(msg)
            client = AsyncOpenAI(api_key=resolved_key, max_retries=max_retries, timeout=timeout)

        self._model = model
        self._dimensions = dimensions
        self._batch_size = batch_size
        self._client: AsyncOpenAIType = client

    @property
    def dimensions(self) -> int:
        if self._dimensions is not None:
            return self._dimensions
        known = _MODEL_DIMENSIONS.get(self._model)
        if known is None:
            msg = f"Unknown default dimensions for model {self._model!r}. Pass dimensions= explicitly."
            raise ConfigurationError(msg)
        return known

    @property
    def model_name(self) -> str:
        return self._model

    def provenance(self) -> dict[str, str]:
        """``EmbeddingRecord`` fields describing where a vector came from."""
        return {
            "model_name": self._model,
            "embedding_provider": self.provider_name,
            "embedding_model_full_name": self._model,
            "embedding_generation_method": "batch" if self._batch_size > 1 else "single",
        }

    async def embed(self, text: str) -> list[float]:
        [vector] = await self._request([text])
        return vector

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in order, one request per *batch_size* texts."""
        vectors: list[list[float]] = []
        for batch in itertools.batched(texts, self._batch_size):
            vectors.extend(await self._request(list(batch)))
        return vectors

    async def close(self) -> None:
        await self._client.close()

    async def _request(self, texts: list[str]) -> list[list[float]]:
        params: dict[str, Any] = {"input": texts, "model": self._model}
        if self._dimensions is not None:
            params["dimensions"] = self._dimensions

        response = await self._client.embeddings.create(**params)
        # The API may return items out of order; ``index`` is authoritative.
        vectors = [item.embedding for item in sorted(response.data, key=attrgetter("index"))]

        if len(vectors) != len(texts):
            msg = f"OpenAI returned {len(vectors)} embeddings for {len(texts)} inputs"
            raise EmbedVaultError(msg)
        if self._dimensions is not None:
            for vector in vectors:
                if len(vector) != self._dimensions:
                    msg = (
                        f"{self._model} returned a {len(vector)}-dimensional vector, "
                        f"expected {self._dimensions}"
                    )
                    raise DimensionMismatchError(msg)
        logger.debug("Embedded %d texts with %s", len(texts), self._model)
        return vectors
