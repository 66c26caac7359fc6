"""Tests for embedding providers."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from embedvault.exceptions import ConfigurationError, DimensionMismatchError, EmbedVaultError
from embedvault.providers import EmbeddingProvider

pytest.importorskip("openai")


class TestOpenAIEmbedding:
    def _make_provider(self, **kwargs):
        from embedvault.providers.openai import OpenAIEmbedding

        return OpenAIEmbedding(api_key="sk-test-key", **kwargs)

    def _mock_response(self, vectors: list[list[float]], indices: list[int] | None = None):
        """Build a mock CreateEmbeddingResponse."""
        mock_resp = MagicMock()
        mock_data = []
        for i, vec in zip(indices or range(len(vectors)), vectors, strict=True):
            item = MagicMock()
            item.embedding = vec
            item.index = i
            mock_data.append(item)
        mock_resp.data = mock_data
        return mock_resp

    async def test_embed_single_text(self):
        provider = self._make_provider()
        expected = [0.1, 0.2, 0.3]
        provider._client.embeddings.create = AsyncMock(return_value=self._mock_response([expected]))

        result = await provider.embed("hello")

        assert result == expected
        call_kwargs = provider._client.embeddings.create.call_args[1]
        assert call_kwargs["input"] == ["hello"]
        assert call_kwargs["model"] == "text-embedding-3-small"
        assert "dimensions" not in call_kwargs

    async def test_dimensions_forwarded(self):
        provider = self._make_provider(dimensions=256)
        provider._client.embeddings.create = AsyncMock(return_value=self._mock_response([[0.0] * 256]))
        assert len(await provider.embed("hello")) == 256
        assert provider._client.embeddings.create.call_args[1]["dimensions"] == 256

    async def test_embed_batch_restores_order(self):
        provider = self._make_provider()
        provider._client.embeddings.create = AsyncMock(
            return_value=self._mock_response([[2.0], [1.0]], indices=[1, 0])
        )
        assert await provider.embed_batch(["a", "b"]) == [[1.0], [2.0]]

    async def test_embed_batch_empty(self):
        provider = self._make_provider()
        assert await provider.embed_batch([]) == []

    async def test_batch_chunking(self):
        provider = self._make_provider(batch_size=2)
        calls: list[list[str]] = []

        async def mock_create(**kwargs):
            calls.append(kwargs["input"])
            return self._mock_response([[float(len(calls))] for _ in kwargs["input"]])

        provider._client.embeddings.create = mock_create

        result = await provider.embed_batch(["a", "b", "c", "d", "e"])

        assert calls == [["a", "b"], ["c", "d"], ["e"]]
        assert result == [[1.0], [1.0], [2.0], [2.0], [3.0]]

    def test_dimensions_defaults(self):
        assert self._make_provider().dimensions == 1536
        assert self._make_provider(model="text-embedding-3-large").dimensions == 3072
        assert self._make_provider(dimensions=64).dimensions == 64

    def test_dimensions_unknown_model(self):
        provider = self._make_provider(model="custom-model")
        with pytest.raises(ConfigurationError, match="Unknown default dimensions"):
            _ = provider.dimensions

    def test_model_name(self):
        assert self._make_provider(model="text-embedding-ada-002").model_name == "text-embedding-ada-002"

    def test_missing_api_key(self, monkeypatch):
        from embedvault.providers.openai import OpenAIEmbedding

        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ConfigurationError, match="No OpenAI API key"):
            OpenAIEmbedding()

    def test_api_key_from_environment(self, monkeypatch):
        from embedvault.providers.openai import OpenAIEmbedding

        monkeypatch.setenv("OPENAI_API_KEY", "sk-env-key")
        assert OpenAIEmbedding().model_name == "text-embedding-3-small"

    def test_satisfies_protocol(self):
        assert isinstance(self._make_provider(), EmbeddingProvider)

    async def test_close(self):
        provider = self._make_provider()
        provider._client.close = AsyncMock()
        await provider.close()
        provider._client.close.assert_awaited_once()

    async def test_wrong_dimensions_rejected(self):
        provider = self._make_provider(dimensions=4)
        provider._client.embeddings.create = AsyncMock(return_value=self._mock_response([[0.0, 1.0]]))
        with pytest.raises(DimensionMismatchError, match="expected 4"):
            await provider.embed("hello")

    async def test_missing_embeddings_rejected(self):
        provider = self._make_provider()
        provider._client.embeddings.create = AsyncMock(return_value=self._mock_response([[0.0]]))
        with pytest.raises(EmbedVaultError, match="1 embeddings for 2 inputs"):
            await provider.embed_batch(["a", "b"])

    async def test_injected_client_needs_no_key(self, monkeypatch):
        from embedvault.providers.openai import OpenAIEmbedding

        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        client = MagicMock()
        client.embeddings.create = AsyncMock(return_value=self._mock_response([[0.5]]))
        provider = OpenAIEmbedding(client=client)
        assert await provider.embed("x") == [0.5]

    def test_invalid_batch_size(self):
        with pytest.raises(ConfigurationError, match="batch_size"):
            self._make_provider(batch_size=0)

    def test_provenance(self):
        fields = self._make_provider(model="text-embedding-3-large").provenance()
        assert fields == {
            "model_name": "text-embedding-3-large",
            "embedding_provider": "openai",
            "embedding_model_full_name": "text-embedding-3-large",
            "embedding_generation_method": "batch",
        }
