"""Tests for the EmbedVault facade and the public package surface."""

from __future__ import annotations

import embedvault
from embedvault import EmbedVault, EmbeddingRecord, IngestionCommitEntry, RetryPolicy


class TestEmbedVault:
    async def test_from_url_round_trip(self):
        vault = await EmbedVault.from_url("sqlite+aiosqlite://")
        try:
            await vault.store.bulk_insert(
                [
                    EmbeddingRecord(
                        embedding_id="e1",
                        agent_id="a",
                        file_path_relative="src/a.py",
                        chunk_text="def tokenize(): pass",
                        entity_name="tokenize",
                        vector=[1.0, 0.0],
                    )
                ]
            )
            await vault.ledger.record_ingestion_commit(IngestionCommitEntry("/repo", "c1"))

            stats = await vault.stats.get_embedding_statistics("a")
            assert stats.total_embeddings == 1

            results = await vault.search.find_similar_embeddings_with_metadata(
                [1.0, 0.0], "tokenize", 5, agent_id="a"
            )
            assert [r.record.embedding_id for r in results] == ["e1"]

            checkpoint = await vault.ledger.get_last_ingestion_commit("/repo", agent_id="a")
            assert checkpoint is not None
            assert checkpoint.commit_hash == "c1"
        finally:
            await vault.close()

    async def test_components_share_store(self, async_engine):
        vault = EmbedVault(async_engine, retry_policy=RetryPolicy(max_attempts=5))
        assert vault.engine is async_engine
        assert vault.store.retry.policy.max_attempts == 5
        assert vault.ledger._store is vault.store
        assert vault.stats._store is vault.store

    async def test_context_manager_leaves_borrowed_engine_open(self, async_engine):
        async with EmbedVault(async_engine) as vault:
            status = await vault.store.health_check()
            assert status.healthy is True
        # The caller still owns the engine.
        async with async_engine.connect():
            pass


class TestPublicApi:
    def test_version(self):
        assert embedvault.__version__ == "0.1.0"

    def test_all_exports_resolve(self):
        for name in embedvault.__all__:
            assert hasattr(embedvault, name), name
