"""Value objects exchanged with the store, ledger, scorer and search layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from embedvault.exceptions import DimensionMismatchError

if TYPE_CHECKING:
    from datetime import datetime


# ------------------------------------------------------------------
# Metadata document
# ------------------------------------------------------------------

# JSON key -> attribute name for the fields EmbeddingMetadata knows about.
_KNOWN_METADATA_KEYS: dict[str, str] = {
    "language": "language",
    "code_type": "code_type",
    "isImplementation": "is_implementation",
    "is_implementation": "is_implementation",
    "start_line": "start_line",
    "startLine": "start_line",
    "end_line": "end_line",
    "endLine": "end_line",
    "type": "type",
    "original_code_hash": "original_code_hash",
}


@dataclass(frozen=True, slots=True)
class EmbeddingMetadata:
    """Typed view over a record's open metadata document.

    Attributes:
        language: Source language of the chunk (``"python"``, ``"typescript"``...).
        code_type: Kind of code unit (``"function"``, ``"class"``...).
        is_implementation: Whether the chunk holds an implementation body
            rather than a declaration.
        start_line: First source line covered by the chunk.
        end_line: Last source line covered by the chunk.
        type: Document type tag, e.g. ``"file_summary"``.
        original_code_hash: Hash of the code a summary was generated from.
        extra: Every other key, preserved verbatim.
    """

    language: str | None = None
    code_type: str | None = None
    is_implementation: bool | None = None
    start_line: int | None = None
    end_line: int | None = None
    type: str | None = None
    original_code_hash: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EmbeddingMetadata:
        known: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            attr = _KNOWN_METADATA_KEYS.get(key)
            if attr is None:
                extra[key] = value
            else:
                known[attr] = value
        return cls(**known, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extra)
        if self.language is not None:
            out["language"] = self.language
        if self.code_type is not None:
            out["code_type"] = self.code_type
        if self.is_implementation is not None:
            out["isImplementation"] = self.is_implementation
        if self.start_line is not None:
            out["start_line"] = self.start_line
        if self.end_line is not None:
            out["end_line"] = self.end_line
        if self.type is not None:
            out["type"] = self.type
        if self.original_code_hash is not None:
            out["original_code_hash"] = self.original_code_hash
        return out


# ------------------------------------------------------------------
# Embedding records
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EmbeddingRecord:
    """One embedded unit of source content.

    ``vector`` may be empty for metadata-only rows; such rows are kept out
    of the vector index.  ``vector_dimensions`` defaults to ``len(vector)``.
    When a stored metadata document cannot be parsed, ``metadata`` is
    ``None`` and ``metadata_parse_error`` is ``True``.
    """

    embedding_id: str
    agent_id: str
    file_path_relative: str
    chunk_text: str | None = None
    entity_name: str | None = None
    entity_name_vector: list[float] | None = None
    entity_name_vector_dimensions: int | None = None
    model_name: str = ""
    embedding_provider: str = "gemini"
    embedding_model_full_name: str | None = None
    embedding_generation_method: str = "single"
    embedding_request_id: str | None = None
    chunk_hash: str | None = None
    file_hash: str | None = None
    full_file_path: str | None = None
    embedding_type: str = "chunk"
    parent_embedding_id: str | None = None
    ai_summary_text: str | None = None
    vector: list[float] = field(default_factory=list)
    vector_dimensions: int | None = None
    metadata: EmbeddingMetadata | None = field(default_factory=EmbeddingMetadata)
    metadata_parse_error: bool = False
    created_timestamp: datetime | None = None
    embedding_generation_timestamp: datetime | None = None
    embedding_quality_score: float = 1.0

    @property
    def dimensions(self) -> int:
        """Recorded dimensionality, falling back to the vector length."""
        if self.vector_dimensions is not None:
            return self.vector_dimensions
        return len(self.vector)

    @property
    def has_vector(self) -> bool:
        return len(self.vector) > 0

    def validate(self) -> None:
        """Raise :class:`DimensionMismatchError` if a vector disagrees with its dimensionality."""
        if self.vector and len(self.vector) != self.dimensions:
            msg = (
                f"Embedding {self.embedding_id!r}: vector has {len(self.vector)} values "
                f"but vector_dimensions is {self.dimensions}"
            )
            raise DimensionMismatchError(msg)
        if (
            self.entity_name_vector
            and self.entity_name_vector_dimensions is not None
            and len(self.entity_name_vector) != self.entity_name_vector_dimensions
        ):
            msg = (
                f"Embedding {self.embedding_id!r}: entity name vector has "
                f"{len(self.entity_name_vector)} values but "
                f"entity_name_vector_dimensions is {self.entity_name_vector_dimensions}"
            )
            raise DimensionMismatchError(msg)


@dataclass(frozen=True, slots=True)
class ScoredEmbedding:
    """An embedding record paired with its (possibly boosted) similarity.

    Attributes:
        record: The candidate record.
        similarity: Score in ``[0, 1]``, higher is more relevant.
    """

    record: EmbeddingRecord
    similarity: float


@dataclass(frozen=True, slots=True)
class SimilarityMatch:
    """A raw nearest-neighbour hit from the vector index."""

    embedding_id: str
    similarity: float


# ------------------------------------------------------------------
# Store results
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChunkHashesResult:
    """Distinct chunk hashes for a file, with call telemetry.

    Attributes:
        hashes: Distinct ``chunk_hash`` values (empty on failure).
        latency_ms: Wall-clock time spent, retries included.
        call_count: Number of logical store calls made.
        error: Error message when the lookup gave up, else ``None``.
    """

    hashes: frozenset[str]
    latency_ms: float
    call_count: int = 1
    error: str | None = None


@dataclass(frozen=True, slots=True)
class HealthStatus:
    """Result of :meth:`EmbeddingStore.health_check`."""

    healthy: bool
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class EmbeddingStatistics:
    """Aggregate statistics for one agent's embeddings.

    Attributes:
        total_embeddings: Number of rows.
        embeddings_by_type: Row count per ``embedding_type``.
        embeddings_by_file: Row count per ``file_path_relative``.
        average_chunk_size: Mean ``chunk_text`` length, rounded; 0 with no rows.
        total_files: Number of distinct files.
    """

    total_embeddings: int
    embeddings_by_type: dict[str, int]
    embeddings_by_file: dict[str, int]
    average_chunk_size: int
    total_files: int


# ------------------------------------------------------------------
# Ingestion ledger
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class IngestionCommitEntry:
    """A source-control revision to record as embedded.

    ``commit_timestamp`` is Unix seconds, as reported by the VCS.
    """

    repository_root: str
    commit_hash: str
    agent_id: str | None = None
    parent_commit_hash: str | None = None
    branch_name: str | None = None
    commit_timestamp: int | None = None
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class IngestionCheckpoint:
    """The most recent embedded revision for a repository root."""

    repository_root: str
    agent_id: str | None
    commit_hash: str
    parent_commit_hash: str | None
    branch_name: str | None
    commit_timestamp: int | None
    ingested_at: datetime
    metadata: dict[str, Any] | None = None
    metadata_parse_error: bool = False
