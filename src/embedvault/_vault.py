"""EmbedVault — facade wiring store, ledger, statistics and search."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import create_async_engine

from embedvault.ledger import IngestionLedger
from embedvault.search import EmbeddingSearch
from embedvault.stats import StatsReporter
from embedvault.store import EmbeddingStore

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from embedvault.boost_config import BoostConfiguration
    from embedvault.providers import EmbeddingProvider
    from embedvault.retry import RetryPolicy

logger = logging.getLogger(__name__)


class EmbedVault:
    """One explicitly constructed handle for every component.

    Pass an existing engine (the caller keeps ownership)::

        engine = create_async_engine("sqlite+aiosqlite:///embeddings.db")
        vault = EmbedVault(engine)
        await vault.open()
        await vault.store.bulk_insert(records)

    or let the vault own one::

        vault = await EmbedVault.from_url("sqlite+aiosqlite:///embeddings.db")
        ...
        await vault.close()
    """

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        retry_policy: RetryPolicy | None = None,
        boost_config: BoostConfiguration | None = None,
        embedding_provider: EmbeddingProvider | None = None,
        owns_engine: bool = False,
    ) -> None:
        self._engine = engine
        self._owns_engine = owns_engine
        self.store = EmbeddingStore(engine, retry_policy=retry_policy)
        self.ledger = IngestionLedger(self.store)
        self.stats = StatsReporter(self.store)
        self.search = EmbeddingSearch(
            self.store,
            boost_config=boost_config,
            embedding_provider=embedding_provider,
        )

    @classmethod
    async def from_url(
        cls,
        url: str,
        *,
        retry_policy: RetryPolicy | None = None,
        boost_config: BoostConfiguration | None = None,
        embedding_provider: EmbeddingProvider | None = None,
    ) -> EmbedVault:
        """Create an engine for *url*, open the vault, and own the engine."""
        engine = create_async_engine(url, echo=False)
        vault = cls(
            engine,
            retry_policy=retry_policy,
            boost_config=boost_config,
            embedding_provider=embedding_provider,
            owns_engine=True,
        )
        await vault.open()
        return vault

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def open(self) -> None:
        """Create tables if they do not exist."""
        await self.store.create_tables()
        logger.debug("Embedding store ready (dialect=%s)", self.store.dialect)

    async def close(self) -> None:
        """Dispose the engine if this vault created it."""
        if self._owns_engine:
            await self._engine.dispose()

    async def __aenter__(self) -> EmbedVault:
        await self.open()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
