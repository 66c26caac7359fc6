"""Embedding providers — protocol and implementations."""

from embedvault.providers._protocol import EmbeddingProvider

__all__ = ["EmbeddingProvider"]

# Optional providers, importable only when their extra is installed.
try:
    from embedvault.providers.openai import OpenAIEmbedding

    __all__.append("OpenAIEmbedding")
except ImportError:  # pragma: no cover
    pass
