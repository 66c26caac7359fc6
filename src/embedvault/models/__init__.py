"""SQLModel database models for embedvault."""

from embedvault.models.commits import IngestionCommit, IngestionCommitBase
from embedvault.models.embeddings import (
    Embedding,
    EmbeddingBase,
    EmbeddingVector,
    EmbeddingVectorBase,
)

__all__ = [
    "Embedding",
    "EmbeddingBase",
    "EmbeddingVector",
    "EmbeddingVectorBase",
    "IngestionCommit",
    "IngestionCommitBase",
]
