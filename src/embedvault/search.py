"""EmbeddingSearch — nearest-neighbour retrieval followed by heuristic reranking."""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING

from embedvault.boost_config import DEFAULT_BOOST_CONFIG
from embedvault.exceptions import ConfigurationError
from embedvault.scoring import (
    enforce_implementation_diversification,
    entity_name_relevance_boost,
    rank_candidates,
    reranked_score,
    tokenize_query,
)
from embedvault.types import ScoredEmbedding

if TYPE_CHECKING:
    from collections.abc import Sequence

    from embedvault.boost_config import BoostConfiguration
    from embedvault.providers import EmbeddingProvider
    from embedvault.store import EmbeddingStore

logger = logging.getLogger(__name__)

# Candidates pulled from the vector index per requested result.
OVERFETCH_FACTOR = 5


class EmbeddingSearch:
    """Query pipeline over an :class:`EmbeddingStore`.

    1. pull ``top_k * OVERFETCH_FACTOR`` nearest neighbours among the rows
       passing the agent / file / type / model filters;
    2. load their metadata;
    3. add :func:`entity_name_relevance_boost`;
    4. apply :func:`enforce_implementation_diversification`;
    5. rescore with :func:`reranked_score`;
    6. stable-sort and keep the first ``top_k``.
    """

    def __init__(
        self,
        store: EmbeddingStore,
        *,
        boost_config: BoostConfiguration | None = None,
        embedding_provider: EmbeddingProvider | None = None,
    ) -> None:
        self._store = store
        self._boost_config = boost_config or DEFAULT_BOOST_CONFIG
        self._embedding_provider = embedding_provider

    @property
    def boost_config(self) -> BoostConfiguration:
        return self._boost_config

    async def find_similar_embeddings_with_metadata(
        self,
        query_vector: Sequence[float],
        query_text: str,
        top_k: int,
        *,
        agent_id: str | None = None,
        target_file_paths: Sequence[str] | None = None,
        exclude_chunk_types: Sequence[str] | None = None,
        model_name: str | None = None,
    ) -> list[ScoredEmbedding]:
        """Return up to *top_k* candidates, best first."""
        if top_k <= 0:
            return []
        matches = await self._store.find_similar(
            query_vector,
            top_k * OVERFETCH_FACTOR,
            agent_id=agent_id,
            model_name=model_name,
            target_file_paths=target_file_paths,
            exclude_chunk_types=exclude_chunk_types,
        )
        if not matches:
            return []
        similarity = {m.embedding_id: m.similarity for m in matches}

        records = await self._store.fetch_filtered_metadata(
            [m.embedding_id for m in matches],
            agent_id=agent_id,
            target_file_paths=target_file_paths,
            exclude_chunk_types=exclude_chunk_types,
            model_name=model_name,
        )
        # Keep nearest-neighbour order so ties fall back to raw similarity rank.
        order = {m.embedding_id: i for i, m in enumerate(matches)}
        records.sort(key=lambda r: order[r.embedding_id])

        candidates = [
            ScoredEmbedding(
                record=record,
                similarity=min(
                    1.0,
                    similarity.get(record.embedding_id, 0.0)
                    + entity_name_relevance_boost(query_text, record, self._boost_config),
                ),
            )
            for record in records
        ]
        candidates = enforce_implementation_diversification(
            query_text, candidates, top_k, self._boost_config
        )

        query_tokens = tokenize_query(query_text, min_length=2)
        rescored = [
            ScoredEmbedding(record=c.record, similarity=reranked_score(c, query_text, query_tokens))
            for c in candidates
        ]
        ranked = rank_candidates(rescored)[:top_k]
        logger.debug(
            "Search returned %d of %d candidates for %r", len(ranked), len(matches), query_text
        )
        return ranked

    async def search_text(
        self,
        query_text: str,
        top_k: int = 10,
        *,
        agent_id: str | None = None,
        target_file_paths: Sequence[str] | None = None,
        exclude_chunk_types: Sequence[str] | None = None,
        model_name: str | None = None,
    ) -> list[ScoredEmbedding]:
        """Embed *query_text* with the configured provider, then search."""
        vector = await self._embed(query_text)
        return await self.find_similar_embeddings_with_metadata(
            vector,
            query_text,
            top_k,
            agent_id=agent_id,
            target_file_paths=target_file_paths,
            exclude_chunk_types=exclude_chunk_types,
            model_name=model_name,
        )

    async def _embed(self, text: str) -> list[float]:
        """Embed a single text, handling both sync and async providers."""
        provider = self._embedding_provider
        if provider is None:
            msg = "Cannot search text: no embedding provider configured"
            raise ConfigurationError(msg)
        result = provider.embed(text)
        if inspect.isawaitable(result):
            return await result
        return result
