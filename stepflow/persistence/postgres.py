"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import asyncpg

from ..errors import DuplicateWorkflowError
from .base import TABLES, Body, Mutator, RecordRepository, index_values


class PostgresWorkflowRepository(RecordRepository):
    """Persist records using PostgreSQL."""

    def __init__(self, dsn: str, env: str = "prod"):
        super().__init__(env)
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        for table, columns in TABLES.items():
            extra = "".join(f", {column} TEXT" for column in columns)
            await conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    seq BIGSERIAL PRIMARY KEY,
                    id TEXT NOT NULL UNIQUE,
                    env TEXT NOT NULL{extra},
                    body JSONB NOT NULL
                )
                """
            )
        await conn.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS workflows_env_slug ON workflows (env, slug)"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS runs_workflow ON runs (env, workflow_id)"
        )
        await conn.execute("CREATE INDEX IF NOT EXISTS step_runs_run ON step_runs (run_id)")

    # ------------------------------------------------------------------
    async def _insert(self, table: str, record_id: str, body: Body) -> None:
        indexes = index_values(table, body)
        columns = ", ".join(["id", "env", *indexes, "body"])
        placeholders = ", ".join(f"${i}" for i in range(1, len(indexes) + 4))
        conn = await self._connect()
        try:
            await conn.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                record_id,
                self.env,
                *indexes.values(),
                json.dumps(body),
            )
        except asyncpg.UniqueViolationError as exc:
            if table == "workflows":
                raise DuplicateWorkflowError(
                    f"Workflow with slug '{body.get('slug')}' already exists"
                ) from exc
            raise
        finally:
            await conn.close()

    async def _fetch(self, table: str, record_id: str) -> Optional[Body]:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT body FROM {table} WHERE id = $1 AND env = $2",
                record_id,
                self.env,
            )
        finally:
            await conn.close()
        return json.loads(row["body"]) if row else None

    async def _write(
        self, conn: asyncpg.Connection, table: str, record_id: str, body: Body
    ) -> None:
        indexes = index_values(table, body)
        names = [*indexes, "body"]
        assignments = ", ".join(f"{name} = ${i}" for i, name in enumerate(names, 1))
        await conn.execute(
            f"UPDATE {table} SET {assignments} "
            f"WHERE id = ${len(names) + 1} AND env = ${len(names) + 2}",
            *indexes.values(),
            json.dumps(body),
            record_id,
            self.env,
        )

    async def _replace(self, table: str, record_id: str, body: Body) -> None:
        conn = await self._connect()
        try:
            await self._write(conn, table, record_id, body)
        finally:
            await conn.close()

    async def _mutate(self, table: str, record_id: str, mutate: Mutator) -> Optional[Body]:
        conn = await self._connect()
        try:
            async with conn.transaction():
                row = await conn.fetchrow(
                    f"SELECT body FROM {table} WHERE id = $1 AND env = $2 FOR UPDATE",
                    record_id,
                    self.env,
                )
                if row is None:
                    return None
                updated = mutate(json.loads(row["body"]))
                if updated is None:
                    return None
                await self._write(conn, table, record_id, updated)
                return updated
        finally:
            await conn.close()

    async def _select(
        self,
        table: str,
        filters: Dict[str, Any],
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Body]:
        wanted = {k: v for k, v in filters.items() if v is not None}
        params: list[Any] = [self.env, *wanted.values()]
        conditions = " AND ".join(
            ["env = $1", *(f"{k} = ${i}" for i, k in enumerate(wanted, 2))]
        )
        query = f"SELECT body FROM {table} WHERE {conditions} ORDER BY seq"
        if descending:
            query += " DESC"
        if limit is not None:
            params.append(limit)
            query += f" LIMIT ${len(params)}"
        conn = await self._connect()
        try:
            rows = await conn.fetch(query, *params)
        finally:
            await conn.close()
        return [json.loads(r["body"]) for r in rows]

    @asynccontextmanager
    async def run_lock(self, run_id: str) -> AsyncIterator[None]:
        conn = await self._connect()
        try:
            await conn.execute("SELECT pg_advisory_lock(hashtext($1))", run_id)
            try:
                yield
            finally:
                await conn.execute("SELECT pg_advisory_unlock(hashtext($1))", run_id)
        finally:
            await conn.close()
