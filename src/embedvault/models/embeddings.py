"""Embedding metadata and vector-index models.

Provides ``EmbeddingBase`` / ``EmbeddingVectorBase`` (non-table bases) and the
concrete ``Embedding`` / ``EmbeddingVector`` tables.  Subclass a base with
``table=True`` and a custom ``__tablename__`` to use a different table name.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, LargeBinary
from sqlmodel import Field, SQLModel


class EmbeddingBase(SQLModel):
    """Metadata for one embedded chunk or summary.

    The vector itself lives in the companion vector-index table, keyed by
    the same ``embedding_id``.  ``parent_embedding_id`` is advisory only:
    no foreign key, no cascade.
    """

    embedding_id: str = Field(primary_key=True)
    agent_id: str = Field(index=True)
    chunk_text: str | None = Field(default=None)
    entity_name: str | None = Field(default=None, index=True)
    entity_name_vector_blob: bytes | None = Field(
        default=None,
        sa_type=LargeBinary,  # type: ignore[invalid-argument-type]
    )
    entity_name_vector_dimensions: int | None = Field(default=None)
    model_name: str = Field(default="", index=True)
    chunk_hash: str | None = Field(default=None, index=True)
    file_hash: str | None = Field(default=None, index=True)
    metadata_json: str | None = Field(default=None)
    file_path_relative: str = Field(default="", index=True)
    full_file_path: str | None = Field(default=None)
    ai_summary_text: str | None = Field(default=None)
    vector_dimensions: int = Field(default=0)
    embedding_type: str = Field(default="chunk", index=True)
    parent_embedding_id: str | None = Field(default=None, index=True)
    embedding_provider: str = Field(default="gemini")
    embedding_model_full_name: str | None = Field(default=None)
    embedding_generation_method: str = Field(default="single")
    embedding_request_id: str | None = Field(default=None)
    embedding_quality_score: float = Field(default=1.0)
    created_timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    embedding_generation_timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class Embedding(EmbeddingBase, table=True):
    """Default metadata table — ``embedvault_embeddings``."""

    __tablename__ = "embedvault_embeddings"


class EmbeddingVectorBase(SQLModel):
    """Vector-index row: float32 bytes plus the dimensionality they encode."""

    embedding_id: str = Field(primary_key=True)
    dimensions: int = Field(default=0)
    vector_blob: bytes = Field(
        default=b"",
        sa_type=LargeBinary,  # type: ignore[invalid-argument-type]
    )


class EmbeddingVector(EmbeddingVectorBase, table=True):
    """Default vector-index table — ``embedvault_embedding_vectors``."""

    __tablename__ = "embedvault_embedding_vectors"
