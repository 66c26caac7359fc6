"""Shared fixtures for embedvault tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel, create_engine

from embedvault.models import Embedding, EmbeddingVector, IngestionCommit  # noqa: F401
from embedvault.retry import RetryPolicy
from embedvault.store import EmbeddingStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy import Engine
    from sqlalchemy.ext.asyncio import AsyncEngine


@pytest.fixture
def engine() -> Engine:
    """In-memory SQLite engine with all tables created."""
    eng = create_engine("sqlite://", echo=False)
    SQLModel.metadata.create_all(eng)
    return eng


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Async in-memory SQLite engine with no tables."""
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    yield eng
    await eng.dispose()


@pytest.fixture
def sleeps() -> list[float]:
    """Delays requested by a store's retry executor, in order."""
    return []


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=0.01)


@pytest.fixture
async def store(async_engine: AsyncEngine, fast_retry: RetryPolicy, sleeps: list[float]) -> EmbeddingStore:
    """EmbeddingStore over the in-memory engine with tables created and instant retries."""

    async def record_sleep(delay: float) -> None:
        sleeps.append(delay)

    s = EmbeddingStore(async_engine, retry_policy=fast_retry, sleep=record_sleep)
    await s.create_tables()
    return s


@pytest.fixture
def broken_store(async_engine: AsyncEngine, fast_retry: RetryPolicy, sleeps: list[float]) -> EmbeddingStore:
    """EmbeddingStore whose tables were never created: every query fails."""

    async def record_sleep(delay: float) -> None:
        sleeps.append(delay)

    return EmbeddingStore(async_engine, retry_policy=fast_retry, sleep=record_sleep)
