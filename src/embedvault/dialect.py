"""Dialect-aware SQL helpers — upsert and maintenance statements per backend."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import text
from sqlalchemy.dialects import postgresql, sqlite

if TYPE_CHECKING:
    from sqlalchemy import Engine
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

_DIALECT_ALIASES = {"postgres": "postgresql", "pyodbc": "mssql"}

_MAINTENANCE: dict[str, list[str]] = {
    "sqlite": ["ANALYZE", "REINDEX", "VACUUM"],
    "postgresql": ["ANALYZE", "VACUUM"],
    "mssql": ["EXEC sp_updatestats"],
}


def get_dialect(engine: Engine | AsyncEngine) -> str:
    """Return 'sqlite', 'postgresql', 'mssql' or the raw dialect name."""
    sync_engine = getattr(engine, "sync_engine", engine)
    name = sync_engine.dialect.name
    return _DIALECT_ALIASES.get(name, name)


def maintenance_statements(dialect: str) -> list[str]:
    """Statistics refresh, index rebuild and space reclamation for *dialect*.

    Every statement must run outside a transaction.  Unknown dialects get
    an empty list.
    """
    return list(_MAINTENANCE.get(dialect, []))


def _update_columns(
    values: dict[str, Any], conflict_keys: list[str], update_keys: list[str] | None
) -> list[str]:
    if update_keys is not None:
        return [k for k in values if k in update_keys]
    return [k for k in values if k not in conflict_keys]


async def upsert_row(
    session: AsyncSession,
    dialect: str,
    model: type,
    values: dict[str, Any],
    conflict_keys: list[str],
    update_keys: list[str] | None = None,
) -> int:
    """Insert one row into *model*'s table, or update it on a key conflict.

    Only *update_keys* are overwritten on conflict (default: every column
    outside *conflict_keys*).  Returns the driver rowcount.

    - SQLite/PostgreSQL: INSERT ... ON CONFLICT DO UPDATE
    - MSSQL: MERGE INTO ... WITH (HOLDLOCK)
    """
    columns = _update_columns(values, conflict_keys, update_keys)
    if dialect == "mssql":
        return await _upsert_mssql(session, values, conflict_keys, model, columns)
    return await _upsert_sqlite_pg(session, dialect, values, conflict_keys, model, columns)


async def _upsert_sqlite_pg(
    session: AsyncSession,
    dialect: str,
    values: dict[str, Any],
    conflict_keys: list[str],
    model: type,
    update_columns: list[str],
) -> int:
    insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
    stmt = insert(model).values(**values)
    if update_columns:
        stmt = stmt.on_conflict_do_update(
            index_elements=conflict_keys,
            set_={k: stmt.excluded[k] for k in update_columns},
        )
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=conflict_keys)
    result = await session.execute(stmt)
    return result.rowcount  # type: ignore[return-value]


async def _upsert_mssql(
    session: AsyncSession,
    values: dict[str, Any],
    conflict_keys: list[str],
    model: type,
    update_columns: list[str] | None = None,
) -> int:
    if update_columns is None:
        update_columns = _update_columns(values, conflict_keys, None)
    table_name: str = model.__tablename__  # type: ignore[attr-defined]
    source_cols = ", ".join(f":{k} AS {k}" for k in conflict_keys)
    on_clause = " AND ".join(f"target.{k} = source.{k}" for k in conflict_keys)
    insert_cols = ", ".join(values)
    insert_vals = ", ".join(f":{k}" for k in values)

    parts = [
        f"MERGE INTO {table_name} WITH (HOLDLOCK) AS target",
        f"USING (SELECT {source_cols}) AS source",
        f"ON {on_clause}",
    ]
    if update_columns:
        update_set = ", ".join(f"target.{k} = :{k}" for k in update_columns)
        parts.append(f"WHEN MATCHED THEN UPDATE SET {update_set}")
    parts.append(f"WHEN NOT MATCHED THEN INSERT ({insert_cols}) VALUES ({insert_vals});")

    result = await session.execute(text("\n".join(parts)), values)
    return result.rowcount  # type: ignore[return-value]
