"""embedvault: embedding storage, incremental ingestion bookkeeping and reranked retrieval."""

__version__ = "0.1.0"

from embedvault._vault import EmbedVault
from embedvault.boost_config import (
    DEFAULT_BOOST_CONFIG,
    BoostConfiguration,
    PatternRule,
    load_boost_config,
)
from embedvault.exceptions import (
    ConfigurationError,
    DimensionMismatchError,
    EmbedVaultError,
    RetryExhaustedError,
    StorageError,
)
from embedvault.ledger import IngestionLedger
from embedvault.providers import EmbeddingProvider
from embedvault.retry import RetryExecutor, RetryPolicy, run_with_retry
from embedvault.scoring import (
    enforce_implementation_diversification,
    entity_name_relevance_boost,
    rank_candidates,
    reranked_score,
    string_similarity,
)
from embedvault.search import EmbeddingSearch
from embedvault.stats import StatsReporter
from embedvault.store import EmbeddingStore
from embedvault.types import (
    ChunkHashesResult,
    EmbeddingMetadata,
    EmbeddingRecord,
    EmbeddingStatistics,
    HealthStatus,
    IngestionCheckpoint,
    IngestionCommitEntry,
    ScoredEmbedding,
    SimilarityMatch,
)

__all__ = [
    "DEFAULT_BOOST_CONFIG",
    "BoostConfiguration",
    "ChunkHashesResult",
    "ConfigurationError",
    "DimensionMismatchError",
    "EmbedVault",
    "EmbedVaultError",
    "EmbeddingMetadata",
    "EmbeddingProvider",
    "EmbeddingRecord",
    "EmbeddingSearch",
    "EmbeddingStatistics",
    "EmbeddingStore",
    "HealthStatus",
    "IngestionCheckpoint",
    "IngestionCommitEntry",
    "IngestionLedger",
    "PatternRule",
    "RetryExecutor",
    "RetryExhaustedError",
    "RetryPolicy",
    "ScoredEmbedding",
    "SimilarityMatch",
    "StatsReporter",
    "StorageError",
    "__version__",
    "enforce_implementation_diversification",
    "entity_name_relevance_boost",
    "load_boost_config",
    "rank_candidates",
    "reranked_score",
    "run_with_retry",
    "string_similarity",
]
