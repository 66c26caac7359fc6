"""StatsReporter — read-only aggregates over the embedding store."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from sqlalchemy import func
from sqlmodel import select

from embedvault.types import EmbeddingStatistics

if TYPE_CHECKING:
    from embedvault.store import EmbeddingStore


class StatsReporter:
    """Diagnostic statistics. Not retried: a failure surfaces immediately."""

    def __init__(self, store: EmbeddingStore) -> None:
        self._store = store

    async def get_embedding_statistics(self, agent_id: str) -> EmbeddingStatistics:
        em = self._store.embedding_model
        scoped = em.agent_id == agent_id
        async with self._store.session() as sess:
            total = (
                await sess.execute(select(func.count()).select_from(em).where(scoped))
            ).scalar_one()
            by_type = await sess.execute(
                select(em.embedding_type, func.count()).where(scoped).group_by(em.embedding_type)
            )
            by_file = await sess.execute(
                select(em.file_path_relative, func.count())
                .where(scoped)
                .group_by(em.file_path_relative)
            )
            avg_size = (
                await sess.execute(select(func.avg(func.length(em.chunk_text))).where(scoped))
            ).scalar_one()
            total_files = (
                await sess.execute(
                    select(func.count(func.distinct(em.file_path_relative))).where(scoped)
                )
            ).scalar_one()

            embeddings_by_type = {t: int(n) for t, n in by_type.all()}
            embeddings_by_file = {p: int(n) for p, n in by_file.all()}

        return EmbeddingStatistics(
            total_embeddings=int(total),
            embeddings_by_type=embeddings_by_type,
            embeddings_by_file=embeddings_by_file,
            # Half-up rounding, not banker's rounding.
            average_chunk_size=int(math.floor(float(avg_size) + 0.5)) if avg_size else 0,
            total_files=int(total_files),
        )
