"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import DuplicateWorkflowError
from .base import TABLES, Body, Mutator, RecordRepository, index_values


class SQLiteWorkflowRepository(RecordRepository):
    """Persist records using SQLite."""

    def __init__(self, db_path: str | Path, env: str = "prod"):
        super().__init__(env)
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn_lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        for table, columns in TABLES.items():
            extra = "".join(f", {column} TEXT" for column in columns)
            cur.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    env TEXT NOT NULL{extra},
                    body TEXT NOT NULL
                )
                """
            )
        cur.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS workflows_env_slug ON workflows (env, slug)"
        )
        cur.execute("CREATE INDEX IF NOT EXISTS runs_workflow ON runs (env, workflow_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS step_runs_run ON step_runs (run_id)")
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        with self._conn_lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._conn_lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._conn_lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    def _update_query(self, table: str, record_id: str, body: Body) -> tuple[str, tuple]:
        indexes = index_values(table, body)
        assignments = ", ".join(f"{column} = ?" for column in [*indexes, "body"])
        return (
            f"UPDATE {table} SET {assignments} WHERE id = ? AND env = ?",
            (*indexes.values(), json.dumps(body), record_id, self.env),
        )

    def _read_modify_write(
        self, table: str, record_id: str, mutate: Mutator
    ) -> Optional[Body]:
        """Fetch, mutate and store one record inside a single write transaction.

        ``BEGIN IMMEDIATE`` takes the database write lock up front, so writers
        in other processes wait instead of interleaving with this one.
        """
        with self._conn_lock:
            cur = self._conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            try:
                cur.execute(
                    f"SELECT body FROM {table} WHERE id = ? AND env = ?",
                    (record_id, self.env),
                )
                row = cur.fetchone()
                updated = mutate(json.loads(row["body"])) if row else None
                if updated is not None:
                    cur.execute(*self._update_query(table, record_id, updated))
            except BaseException:
                self._conn.rollback()
                raise
            self._conn.commit()
            return updated

    # ------------------------------------------------------------------
    # Storage primitives
    async def _insert(self, table: str, record_id: str, body: Body) -> None:
        indexes = index_values(table, body)
        columns = ", ".join(["id", "env", *indexes, "body"])
        placeholders = ", ".join("?" for _ in range(len(indexes) + 3))
        try:
            await asyncio.to_thread(
                self._execute,
                f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                record_id,
                self.env,
                *indexes.values(),
                json.dumps(body),
            )
        except sqlite3.IntegrityError as exc:
            if table == "workflows":
                raise DuplicateWorkflowError(
                    f"Workflow with slug '{body.get('slug')}' already exists"
                ) from exc
            raise

    async def _fetch(self, table: str, record_id: str) -> Optional[Body]:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT body FROM {table} WHERE id = ? AND env = ?",
            record_id,
            self.env,
        )
        return json.loads(row["body"]) if row else None

    async def _replace(self, table: str, record_id: str, body: Body) -> None:
        query, params = self._update_query(table, record_id, body)
        await asyncio.to_thread(self._execute, query, *params)

    async def _mutate(self, table: str, record_id: str, mutate: Mutator) -> Optional[Body]:
        return await asyncio.to_thread(self._read_modify_write, table, record_id, mutate)

    async def _select(
        self,
        table: str,
        filters: Dict[str, Any],
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Body]:
        wanted = {k: v for k, v in filters.items() if v is not None}
        conditions = " AND ".join(["env = ?", *(f"{k} = ?" for k in wanted)])
        query = f"SELECT body FROM {table} WHERE {conditions} ORDER BY seq"
        if descending:
            query += " DESC"
        params = [self.env, *wanted.values()]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        rows = await asyncio.to_thread(self._fetchall, query, *params)
        return [json.loads(r["body"]) for r in rows]

    def close(self) -> None:
        self._conn.close()
