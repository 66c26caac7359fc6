"""IngestionCommit model — latest embedded revision per repository root."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

# Stored agent key of the global, agent-less checkpoint.
GLOBAL_AGENT = ""


class IngestionCommitBase(SQLModel):
    """Base fields for an ingestion checkpoint.

    One row per ``(repository_root, agent_id)``.  The global checkpoint for a
    root is stored with ``agent_id == GLOBAL_AGENT`` (an empty string), never
    NULL, so the unique constraint covers it too.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    repository_root: str = Field(index=True)
    agent_id: str = Field(default=GLOBAL_AGENT, index=True)
    commit_hash: str
    parent_commit_hash: str | None = Field(default=None)
    branch_name: str | None = Field(default=None)
    commit_timestamp: int | None = Field(default=None)
    metadata_json: str | None = Field(default=None)
    ingested_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class IngestionCommit(IngestionCommitBase, table=True):
    """Default checkpoint table — ``embedvault_ingestion_commits``."""

    __tablename__ = "embedvault_ingestion_commits"
    __table_args__ = (UniqueConstraint("repository_root", "agent_id"),)
