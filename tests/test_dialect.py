"""Tests for dialect.py — dialect detection, upsert and maintenance statements."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel, create_engine, select

from embedvault.dialect import _upsert_mssql, get_dialect, maintenance_statements, upsert_row
from embedvault.models import Embedding


class TestGetDialect:
    async def test_sqlite_async(self):
        engine = create_async_engine("sqlite+aiosqlite://", echo=False)
        assert get_dialect(engine) == "sqlite"
        await engine.dispose()

    def test_sqlite_sync(self):
        engine = create_engine("sqlite://", echo=False)
        assert get_dialect(engine) == "sqlite"


class TestMaintenanceStatements:
    @pytest.mark.parametrize(
        ("dialect", "expected"),
        [
            ("sqlite", ["ANALYZE", "REINDEX", "VACUUM"]),
            ("postgresql", ["ANALYZE", "VACUUM"]),
            ("mssql", ["EXEC sp_updatestats"]),
            ("oracle", []),
        ],
    )
    def test_statements(self, dialect, expected):
        assert maintenance_statements(dialect) == expected


@pytest.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


class TestUpsertRow:
    async def test_insert(self, session_factory):
        async with session_factory() as session:
            await upsert_row(
                session,
                "sqlite",
                Embedding,
                {"embedding_id": "e1", "agent_id": "a", "chunk_text": "one"},
                ["embedding_id"],
            )
            await session.commit()
            row = (await session.execute(select(Embedding))).scalar_one()
            assert row.chunk_text == "one"

    async def test_update_on_conflict(self, session_factory):
        async with session_factory() as session:
            for text_value in ("one", "two"):
                await upsert_row(
                    session,
                    "sqlite",
                    Embedding,
                    {"embedding_id": "e1", "agent_id": "a", "chunk_text": text_value},
                    ["embedding_id"],
                )
            await session.commit()
            rows = (await session.execute(select(Embedding))).scalars().all()
            assert [r.chunk_text for r in rows] == ["two"]

    async def test_update_keys_limit_columns(self, session_factory):
        async with session_factory() as session:
            await upsert_row(
                session,
                "sqlite",
                Embedding,
                {"embedding_id": "e1", "agent_id": "a", "chunk_text": "one", "file_hash": "f1"},
                ["embedding_id"],
            )
            await upsert_row(
                session,
                "sqlite",
                Embedding,
                {"embedding_id": "e1", "agent_id": "a", "chunk_text": "two", "file_hash": "f2"},
                ["embedding_id"],
                update_keys=["file_hash"],
            )
            await session.commit()
            row = (await session.execute(select(Embedding))).scalar_one()
            assert (row.chunk_text, row.file_hash) == ("one", "f2")


class TestUpsertMssql:
    async def test_builds_merge(self):
        session = MagicMock()
        session.execute = AsyncMock(return_value=MagicMock(rowcount=1))
        values = {"embedding_id": "e1", "agent_id": "a"}

        rowcount = await _upsert_mssql(session, values, ["embedding_id"], Embedding)

        assert rowcount == 1
        sql = str(session.execute.call_args[0][0])
        assert "MERGE INTO embedvault_embeddings WITH (HOLDLOCK)" in sql
        assert "target.agent_id = :agent_id" in sql
        assert session.execute.call_args[0][1] == values
