"""EmbeddingStore — SQL metadata table plus SQL vector index, one transaction per batch."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import numpy as np
from sqlalchemy import and_, delete, func, text, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from embedvault.dialect import get_dialect, maintenance_statements, upsert_row
from embedvault.models.commits import IngestionCommit
from embedvault.models.embeddings import Embedding, EmbeddingVector
from embedvault.retry import RetryExecutor, RetryPolicy
from embedvault.types import (
    ChunkHashesResult,
    EmbeddingMetadata,
    EmbeddingRecord,
    HealthStatus,
    SimilarityMatch,
)
from embedvault.vectors import cosine_similarities, pack_vector, unpack_vector

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable, Sequence

    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def to_utc(value: datetime | None) -> datetime | None:
    """Convert an aware datetime to UTC; naive values are taken as UTC already."""
    value = as_utc(value)
    return value.astimezone(UTC) if value is not None else None


def parse_metadata_json(raw: str | None, *, context: str) -> tuple[dict[str, Any] | None, bool]:
    """Parse a stored JSON object. Returns ``(document, parse_error)``.

    ``None`` or an empty string is an absent document, not an error.
    """
    if not raw:
        return None, False
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Malformed metadata JSON for %s", context, exc_info=True)
        return None, True
    if not isinstance(parsed, dict):
        logger.warning("Metadata JSON for %s is not an object", context)
        return None, True
    return parsed, False


class EmbeddingStore:
    """Durable store for embedding records and their vectors.

    Metadata rows and vector-index rows share the ``embedding_id`` key space
    and are always written and deleted together inside one session
    transaction, so a partial batch is never visible.  Every operation
    except :meth:`health_check` runs through a :class:`RetryExecutor`.

    The engine is injected; its lifecycle belongs to the caller.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        embedding_model: type[Embedding] | None = None,
        vector_model: type[EmbeddingVector] | None = None,
    ) -> None:
        self._engine = engine
        self._dialect = get_dialect(engine)
        self._session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
        self._retry = RetryExecutor(retry_policy, sleep=sleep)
        self._embedding_model: type[Embedding] = embedding_model or Embedding
        self._vector_model: type[EmbeddingVector] = vector_model or EmbeddingVector

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def dialect(self) -> str:
        return self._dialect

    @property
    def retry(self) -> RetryExecutor:
        return self._retry

    @property
    def embedding_model(self) -> type[Embedding]:
        return self._embedding_model

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession]:
        """Yield a session that commits on success and rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_tables(self) -> None:
        """Create the metadata, vector-index and checkpoint tables if missing."""
        tables = [
            self._embedding_model.__table__,  # type: ignore[attr-defined]
            self._vector_model.__table__,  # type: ignore[attr-defined]
            IngestionCommit.__table__,  # type: ignore[attr-defined]
        ]
        async with self._engine.begin() as conn:
            await conn.run_sync(
                lambda c: SQLModel.metadata.create_all(c, tables=tables, checkfirst=True)
            )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def bulk_insert(self, records: Sequence[EmbeddingRecord]) -> None:
        """Upsert *records* and their vectors atomically.

        Records with an empty vector are metadata-only and get no
        vector-index row.  A dimensionality mismatch anywhere in the batch
        rolls back the whole batch and is raised without retry.
        """
        if not records:
            return
        batch = list(records)

        async def _insert() -> None:
            async with self.session() as sess:
                for record in batch:
                    record.validate()
                    await upsert_row(
                        sess,
                        self._dialect,
                        self._embedding_model,
                        self._record_to_values(record),
                        ["embedding_id"],
                    )
                    if record.has_vector:
                        await upsert_row(
                            sess,
                            self._dialect,
                            self._vector_model,
                            {
                                "embedding_id": record.embedding_id,
                                "dimensions": record.dimensions,
                                "vector_blob": pack_vector(record.vector),
                            },
                            ["embedding_id"],
                        )

        await self._retry.run(_insert, name="bulk_insert")
        logger.debug("Inserted %d embeddings", len(batch))

    async def bulk_delete(self, embedding_ids: Sequence[str]) -> None:
        """Delete *embedding_ids* from the vector index and metadata table atomically.

        Rows that name a deleted id as ``parent_embedding_id`` are left alone.
        """
        if not embedding_ids:
            return
        ids = list(embedding_ids)
        em = self._embedding_model
        vm = self._vector_model

        async def _delete() -> None:
            async with self.session() as sess:
                await sess.execute(
                    delete(vm).where(vm.embedding_id.in_(ids))  # type: ignore[attr-defined]
                )
                await sess.execute(
                    delete(em).where(em.embedding_id.in_(ids))  # type: ignore[attr-defined]
                )

        await self._retry.run(_delete, name="bulk_delete")
        logger.debug("Deleted %d embeddings", len(ids))

    async def update_file_hash(self, embedding_id: str, new_file_hash: str) -> None:
        """Set ``file_hash`` on one record."""
        em = self._embedding_model

        async def _update() -> None:
            async with self.session() as sess:
                await sess.execute(
                    update(em)
                    .where(em.embedding_id == embedding_id)  # type: ignore[arg-type]
                    .values(file_hash=new_file_hash)
                )

        await self._retry.run(_update, name="update_file_hash")

    # ------------------------------------------------------------------
    # Reads that propagate failures
    # ------------------------------------------------------------------

    async def get_embeddings_for_file(
        self, file_path_relative: str, agent_id: str | None = None
    ) -> list[EmbeddingRecord]:
        em = self._embedding_model
        stmt = select(em).where(em.file_path_relative == file_path_relative)
        if agent_id:
            stmt = stmt.where(em.agent_id == agent_id)
        stmt = stmt.order_by(em.created_timestamp, em.embedding_id)  # type: ignore[arg-type]
        return await self._fetch_records(stmt, name="get_embeddings_for_file")

    async def get_embeddings_by_ids(
        self, embedding_ids: Sequence[str], *, include_vectors: bool = False
    ) -> list[EmbeddingRecord]:
        """Fetch records by id. Missing ids are skipped; order follows *embedding_ids*."""
        if not embedding_ids:
            return []
        ids = list(embedding_ids)
        em = self._embedding_model
        stmt = select(em).where(em.embedding_id.in_(ids))  # type: ignore[attr-defined]
        records = await self._fetch_records(
            stmt, name="get_embeddings_by_ids", include_vectors=include_vectors
        )
        position = {eid: i for i, eid in enumerate(ids)}
        records.sort(key=lambda r: position[r.embedding_id])
        return records

    async def get_all_file_paths_for_agent(self, agent_id: str) -> list[str]:
        em = self._embedding_model
        stmt = (
            select(em.file_path_relative)
            .where(em.agent_id == agent_id)
            .distinct()
            .order_by(em.file_path_relative)
        )
        return await self._fetch_scalars(stmt, name="get_all_file_paths_for_agent")

    async def get_all_entity_names(self, agent_id: str) -> list[str]:
        """Distinct, non-empty entity names for *agent_id*, sorted."""
        em = self._embedding_model
        stmt = (
            select(em.entity_name)
            .where(
                em.agent_id == agent_id,
                em.entity_name.is_not(None),  # type: ignore[union-attr]
                em.entity_name != "",
            )
            .distinct()
            .order_by(em.entity_name)
        )
        return await self._fetch_scalars(stmt, name="get_all_entity_names")

    async def get_available_embedding_models(self, agent_id: str | None = None) -> list[str]:
        em = self._embedding_model
        stmt = select(em.model_name).distinct().order_by(em.model_name)
        if agent_id:
            stmt = stmt.where(em.agent_id == agent_id)
        return await self._fetch_scalars(stmt, name="get_available_embedding_models")

    async def get_existing_embedding_by_hash(
        self, chunk_hash: str, agent_id: str | None = None
    ) -> EmbeddingRecord | None:
        """Return the oldest record carrying *chunk_hash*, if any."""
        em = self._embedding_model
        stmt = select(em).where(em.chunk_hash == chunk_hash)
        if agent_id:
            stmt = stmt.where(em.agent_id == agent_id)
        stmt = stmt.order_by(em.created_timestamp, em.embedding_id).limit(1)  # type: ignore[arg-type]
        records = await self._fetch_records(stmt, name="get_existing_embedding_by_hash")
        return records[0] if records else None

    async def get_existing_summary_by_hash(
        self, original_code_hash: str, agent_id: str | None = None
    ) -> str | None:
        """Return a stored AI summary generated from code with *original_code_hash*."""
        em = self._embedding_model
        stmt = select(em).where(
            em.ai_summary_text.is_not(None),  # type: ignore[union-attr]
            em.metadata_json.contains(original_code_hash),  # type: ignore[union-attr]
        )
        if agent_id:
            stmt = stmt.where(em.agent_id == agent_id)
        records = await self._fetch_records(stmt, name="get_existing_summary_by_hash")
        for record in records:
            if record.metadata is not None and record.metadata.original_code_hash == original_code_hash:
                return record.ai_summary_text
        return None

    async def fetch_filtered_metadata(
        self,
        embedding_ids: Sequence[str],
        *,
        agent_id: str | None = None,
        target_file_paths: Sequence[str] | None = None,
        exclude_chunk_types: Sequence[str] | None = None,
        model_name: str | None = None,
    ) -> list[EmbeddingRecord]:
        """Records among *embedding_ids* that pass every given filter."""
        if not embedding_ids:
            return []
        em = self._embedding_model
        stmt = select(em).where(
            em.embedding_id.in_(list(embedding_ids)),  # type: ignore[attr-defined]
            *self._metadata_filters(
                agent_id=agent_id,
                model_name=model_name,
                target_file_paths=target_file_paths,
                exclude_chunk_types=exclude_chunk_types,
            ),
        )
        return await self._fetch_records(stmt, name="fetch_filtered_metadata")

    # ------------------------------------------------------------------
    # Reads that degrade to empty results
    # ------------------------------------------------------------------

    async def get_chunk_hashes_for_file(
        self, file_path_relative: str, agent_id: str | None = None
    ) -> ChunkHashesResult:
        """Distinct chunk hashes for a file; never raises.

        A failed lookup returns an empty set with the error message, which
        callers treat as "everything needs re-embedding".
        """
        start = time.perf_counter()
        em = self._embedding_model
        stmt = select(em.chunk_hash).where(
            em.file_path_relative == file_path_relative,
            em.chunk_hash.is_not(None),  # type: ignore[union-attr]
        )
        if agent_id:
            stmt = stmt.where(em.agent_id == agent_id)
        try:
            hashes = await self._fetch_scalars(stmt.distinct(), name="get_chunk_hashes_for_file")
        except Exception as e:
            return ChunkHashesResult(
                hashes=frozenset(),
                latency_ms=(time.perf_counter() - start) * 1000,
                error=str(e),
            )
        return ChunkHashesResult(
            hashes=frozenset(hashes),
            latency_ms=(time.perf_counter() - start) * 1000,
        )

    async def get_latest_file_hashes(self, agent_id: str) -> dict[str, str | None]:
        """Map each file path to the ``file_hash`` of its most recently created row.

        Returns an empty mapping if the lookup fails.
        """
        em = self._embedding_model
        latest = (
            select(
                em.file_path_relative.label("path"),  # type: ignore[attr-defined]
                func.max(em.created_timestamp).label("max_ts"),
            )
            .where(em.agent_id == agent_id)
            .group_by(em.file_path_relative)
            .subquery()
        )
        stmt = (
            select(em.file_path_relative, em.file_hash)
            .join(
                latest,
                and_(
                    em.file_path_relative == latest.c.path,
                    em.created_timestamp == latest.c.max_ts,
                ),
            )
            .where(em.agent_id == agent_id)
            .order_by(em.file_path_relative, em.embedding_id)
        )

        async def _query() -> dict[str, str | None]:
            async with self.session() as sess:
                result = await sess.execute(stmt)
                return {path: file_hash for path, file_hash in result.all()}

        try:
            return await self._retry.run(_query, name="get_latest_file_hashes")
        except Exception:
            return {}

    # ------------------------------------------------------------------
    # Vector index
    # ------------------------------------------------------------------

    async def find_similar(
        self,
        query_vector: Sequence[float],
        top_k: int,
        *,
        agent_id: str | None = None,
        model_name: str | None = None,
        target_file_paths: Sequence[str] | None = None,
        exclude_chunk_types: Sequence[str] | None = None,
    ) -> list[SimilarityMatch]:
        """Exact cosine nearest neighbours of *query_vector*.

        Filters are applied before ranking, so *top_k* counts only rows that
        pass them.  Similarities are clamped to ``[0, 1]`` and non-positive
        matches are dropped.  Vectors of a different dimensionality are never
        compared.
        """
        if not query_vector:
            msg = "Query vector is empty"
            raise ValueError(msg)
        if top_k <= 0:
            return []
        vm = self._vector_model
        em = self._embedding_model
        stmt = select(vm.embedding_id, vm.vector_blob).where(vm.dimensions == len(query_vector))
        filters = self._metadata_filters(
            agent_id=agent_id,
            model_name=model_name,
            target_file_paths=target_file_paths,
            exclude_chunk_types=exclude_chunk_types,
        )
        if filters:
            stmt = stmt.join(em, em.embedding_id == vm.embedding_id).where(*filters)  # type: ignore[arg-type]
        stmt = stmt.order_by(vm.embedding_id)

        async def _search() -> list[SimilarityMatch]:
            async with self.session() as sess:
                rows = (await sess.execute(stmt)).all()
            if not rows:
                return []
            ids = [row[0] for row in rows]
            matrix = np.vstack([np.frombuffer(row[1], dtype="<f4") for row in rows])
            sims = np.clip(cosine_similarities(query_vector, matrix), 0.0, 1.0)
            order = np.argsort(-sims, kind="stable")
            matches: list[SimilarityMatch] = []
            for idx in order:
                score = float(sims[idx])
                if score <= 0.0:
                    break
                matches.append(SimilarityMatch(embedding_id=ids[idx], similarity=score))
                if len(matches) >= top_k:
                    break
            return matches

        return await self._retry.run(_search, name="find_similar")

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def optimize_database(self) -> None:
        """Refresh statistics, rebuild indexes and reclaim space."""
        statements = maintenance_statements(self._dialect)
        if not statements:
            logger.debug("No maintenance statements for dialect %s", self._dialect)
            return

        async def _optimize() -> None:
            async with self._engine.connect() as conn:
                conn = await conn.execution_options(isolation_level="AUTOCOMMIT")
                for statement in statements:
                    await conn.execute(text(statement))

        await self._retry.run(_optimize, name="optimize_database")

    async def count(self) -> tuple[int, int]:
        """Return ``(metadata_rows, vector_rows)``."""
        em = self._embedding_model
        vm = self._vector_model
        async with self.session() as sess:
            n_meta = (await sess.execute(select(func.count()).select_from(em))).scalar_one()
            n_vec = (await sess.execute(select(func.count()).select_from(vm))).scalar_one()
        return int(n_meta), int(n_vec)

    async def health_check(self) -> HealthStatus:
        """Report whether both tables are reachable, with their row counts."""
        try:
            n_meta, n_vec = await self.count()
        except Exception as e:
            logger.debug("Embedding store health check failed", exc_info=True)
            return HealthStatus(healthy=False, message=f"Embedding store unavailable: {e}")
        return HealthStatus(
            healthy=True,
            message="Embedding store is healthy",
            details={"dialect": self._dialect, "embeddings": n_meta, "vectors": n_vec},
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _metadata_filters(
        self,
        *,
        agent_id: str | None = None,
        model_name: str | None = None,
        target_file_paths: Sequence[str] | None = None,
        exclude_chunk_types: Sequence[str] | None = None,
    ) -> list[Any]:
        em = self._embedding_model
        filters: list[Any] = []
        if agent_id:
            filters.append(em.agent_id == agent_id)
        if model_name:
            filters.append(em.model_name == model_name)
        if target_file_paths:
            filters.append(em.file_path_relative.in_(list(target_file_paths)))  # type: ignore[attr-defined]
        if exclude_chunk_types:
            filters.append(em.embedding_type.not_in(list(exclude_chunk_types)))  # type: ignore[attr-defined]
        return filters

    async def _fetch_scalars(self, stmt: Any, *, name: str) -> list[Any]:
        async def _query() -> list[Any]:
            async with self.session() as sess:
                result = await sess.execute(stmt)
                return list(result.scalars().all())

        return await self._retry.run(_query, name=name)

    async def _fetch_records(
        self, stmt: Any, *, name: str, include_vectors: bool = False
    ) -> list[EmbeddingRecord]:
        vm = self._vector_model

        async def _query() -> list[EmbeddingRecord]:
            async with self.session() as sess:
                rows = list((await sess.execute(stmt)).scalars().all())
                vectors: dict[str, bytes] = {}
                if include_vectors and rows:
                    vec_rows = await sess.execute(
                        select(vm.embedding_id, vm.vector_blob).where(
                            vm.embedding_id.in_([r.embedding_id for r in rows])  # type: ignore[attr-defined]
                        )
                    )
                    vectors = {eid: blob for eid, blob in vec_rows.all()}
            return [self._row_to_record(row, vectors.get(row.embedding_id)) for row in rows]

        return await self._retry.run(_query, name=name)

    @staticmethod
    def _record_to_values(record: EmbeddingRecord) -> dict[str, Any]:
        now = datetime.now(UTC)
        metadata_json = (
            json.dumps(record.metadata.to_dict()) if record.metadata is not None else None
        )
        entity_blob = (
            pack_vector(record.entity_name_vector) if record.entity_name_vector else None
        )
        entity_dims = record.entity_name_vector_dimensions
        if entity_dims is None and record.entity_name_vector:
            entity_dims = len(record.entity_name_vector)
        return {
            "embedding_id": record.embedding_id,
            "agent_id": record.agent_id,
            "chunk_text": record.chunk_text,
            "entity_name": record.entity_name,
            "entity_name_vector_blob": entity_blob,
            "entity_name_vector_dimensions": entity_dims,
            "model_name": record.model_name,
            "chunk_hash": record.chunk_hash,
            "file_hash": record.file_hash,
            "metadata_json": metadata_json,
            "file_path_relative": record.file_path_relative,
            "full_file_path": record.full_file_path,
            "ai_summary_text": record.ai_summary_text,
            "vector_dimensions": record.dimensions,
            "embedding_type": record.embedding_type,
            "parent_embedding_id": record.parent_embedding_id,
            "embedding_provider": record.embedding_provider,
            "embedding_model_full_name": record.embedding_model_full_name or record.model_name,
            "embedding_generation_method": record.embedding_generation_method,
            "embedding_request_id": record.embedding_request_id,
            "embedding_quality_score": record.embedding_quality_score,
            "created_timestamp": to_utc(record.created_timestamp) or now,
            "embedding_generation_timestamp": to_utc(record.embedding_generation_timestamp) or now,
        }

    @staticmethod
    def _row_to_record(row: Embedding, vector_blob: bytes | None = None) -> EmbeddingRecord:
        document, parse_error = parse_metadata_json(
            row.metadata_json, context=f"embedding {row.embedding_id}"
        )
        if parse_error:
            metadata = None
        else:
            metadata = EmbeddingMetadata.from_dict(document or {})
        return EmbeddingRecord(
            embedding_id=row.embedding_id,
            agent_id=row.agent_id,
            file_path_relative=row.file_path_relative,
            chunk_text=row.chunk_text,
            entity_name=row.entity_name,
            entity_name_vector=unpack_vector(row.entity_name_vector_blob) or None,
            entity_name_vector_dimensions=row.entity_name_vector_dimensions,
            model_name=row.model_name,
            embedding_provider=row.embedding_provider,
            embedding_model_full_name=row.embedding_model_full_name,
            embedding_generation_method=row.embedding_generation_method,
            embedding_request_id=row.embedding_request_id,
            chunk_hash=row.chunk_hash,
            file_hash=row.file_hash,
            full_file_path=row.full_file_path,
            embedding_type=row.embedding_type,
            parent_embedding_id=row.parent_embedding_id,
            ai_summary_text=row.ai_summary_text,
            vector=unpack_vector(vector_blob),
            vector_dimensions=row.vector_dimensions,
            metadata=metadata,
            metadata_parse_error=parse_error,
            created_timestamp=as_utc(row.created_timestamp),
            embedding_generation_timestamp=as_utc(row.embedding_generation_timestamp),
            embedding_quality_score=row.embedding_quality_score,
        )
