"""IngestionLedger — which source revision has been embedded, per repository root."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete
from sqlmodel import select

from embedvault.dialect import upsert_row
from embedvault.models.commits import GLOBAL_AGENT, IngestionCommit
from embedvault.store import as_utc, parse_metadata_json
from embedvault.types import IngestionCheckpoint

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from embedvault.store import EmbeddingStore
    from embedvault.types import IngestionCommitEntry

logger = logging.getLogger(__name__)

_CONFLICT_KEYS = ["repository_root", "agent_id"]
_UPDATE_KEYS = [
    "commit_hash",
    "parent_commit_hash",
    "branch_name",
    "commit_timestamp",
    "metadata_json",
    "ingested_at",
]


def _agent_key(agent_id: str | None) -> str:
    return agent_id or GLOBAL_AGENT


def _key_clause(repository_root: str, agent_id: str | None) -> list:
    return [
        IngestionCommit.repository_root == repository_root,
        IngestionCommit.agent_id == _agent_key(agent_id),
    ]


class IngestionLedger:
    """Keyed checkpoints of the last embedded commit.

    There is at most one checkpoint per ``(repository_root, agent_id)``;
    recording a new one replaces the previous.  A checkpoint with no agent
    is global and serves as the fallback for every agent of that root.
    """

    def __init__(self, store: EmbeddingStore) -> None:
        self._store = store

    async def get_last_ingestion_commit(
        self, repository_root: str, agent_id: str | None = None
    ) -> IngestionCheckpoint | None:
        """Return the agent's checkpoint, else the root's global one, else ``None``."""

        async def _query() -> IngestionCheckpoint | None:
            async with self._store.session() as sess:
                row = None
                if agent_id:
                    row = await self._get_row(sess, repository_root, agent_id)
                if row is None:
                    row = await self._get_row(sess, repository_root, None)
                return self._to_checkpoint(row) if row is not None else None

        return await self._store.retry.run(_query, name="get_last_ingestion_commit")

    async def record_ingestion_commit(self, entry: IngestionCommitEntry) -> IngestionCheckpoint:
        """Upsert the checkpoint for ``(entry.repository_root, entry.agent_id)``.

        A single ``INSERT ... ON CONFLICT`` keyed on the unique pair, so
        concurrent writers for the same key leave exactly one row.
        """
        agent_key = _agent_key(entry.agent_id)
        values = {
            "id": str(uuid.uuid4()),
            "repository_root": entry.repository_root,
            "agent_id": agent_key,
            "commit_hash": entry.commit_hash,
            "parent_commit_hash": entry.parent_commit_hash,
            "branch_name": entry.branch_name,
            "commit_timestamp": entry.commit_timestamp,
            "metadata_json": json.dumps(entry.metadata) if entry.metadata is not None else None,
            "ingested_at": datetime.now(UTC),
        }

        async def _record() -> IngestionCheckpoint:
            async with self._store.session() as sess:
                await upsert_row(
                    sess,
                    self._store.dialect,
                    IngestionCommit,
                    values,
                    _CONFLICT_KEYS,
                    update_keys=_UPDATE_KEYS,
                )
                result = await sess.execute(
                    select(IngestionCommit).where(*_key_clause(entry.repository_root, agent_key))
                )
                return self._to_checkpoint(result.scalar_one())

        checkpoint = await self._store.retry.run(_record, name="record_ingestion_commit")
        logger.debug(
            "Recorded ingestion of %s at %s (agent=%s)",
            entry.repository_root,
            entry.commit_hash,
            entry.agent_id,
        )
        return checkpoint

    async def reset(self, repository_root: str, agent_id: str | None = None) -> bool:
        """Remove the checkpoint for the key. Returns whether one existed."""

        async def _reset() -> bool:
            async with self._store.session() as sess:
                result = await sess.execute(
                    delete(IngestionCommit).where(*_key_clause(repository_root, agent_id))
                )
                return bool(result.rowcount)

        return await self._store.retry.run(_reset, name="reset_ingestion_commit")

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    async def _get_row(
        sess: AsyncSession, repository_root: str, agent_id: str | None
    ) -> IngestionCommit | None:
        result = await sess.execute(
            select(IngestionCommit).where(*_key_clause(repository_root, agent_id))
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _to_checkpoint(row: IngestionCommit) -> IngestionCheckpoint:
        metadata, parse_error = parse_metadata_json(
            row.metadata_json, context=f"checkpoint {row.repository_root}"
        )
        return IngestionCheckpoint(
            repository_root=row.repository_root,
            agent_id=row.agent_id or None,
            commit_hash=row.commit_hash,
            parent_commit_hash=row.parent_commit_hash,
            branch_name=row.branch_name,
            commit_timestamp=row.commit_timestamp,
            ingested_at=as_utc(row.ingested_at),  # type: ignore[arg-type]
            metadata=metadata,
            metadata_parse_error=parse_error,
        )
