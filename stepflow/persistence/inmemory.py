"""In-memory implementation of the workflow repository."""

from __future__ import annotations

import copy
from typing import Any, Dict, Optional

from .base import TABLES, Body, RecordRepository, index_values


class InMemoryWorkflowRepository(RecordRepository):
    """Store records in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self, env: str = "prod") -> None:
        super().__init__(env)
        # table -> id -> (env, body); dicts keep insertion order
        self._tables: Dict[str, Dict[str, tuple[str, Body]]] = {t: {} for t in TABLES}

    async def _insert(self, table: str, record_id: str, body: Body) -> None:
        if record_id in self._tables[table]:
            raise ValueError(f"{table} record {record_id} already exists")
        self._tables[table][record_id] = (self.env, copy.deepcopy(body))

    async def _fetch(self, table: str, record_id: str) -> Optional[Body]:
        entry = self._tables[table].get(record_id)
        if entry is None or entry[0] != self.env:
            return None
        return copy.deepcopy(entry[1])

    async def _replace(self, table: str, record_id: str, body: Body) -> None:
        self._tables[table][record_id] = (self.env, copy.deepcopy(body))

    async def _select(
        self,
        table: str,
        filters: Dict[str, Any],
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Body]:
        wanted = {k: v for k, v in filters.items() if v is not None}
        matches = [
            copy.deepcopy(body)
            for env, body in self._tables[table].values()
            if env == self.env
            and all(index_values(table, body).get(k) == v for k, v in wanted.items())
        ]
        if descending:
            matches.reverse()
        return matches[:limit] if limit is not None else matches
