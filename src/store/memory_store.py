"""In-memory store for tests and local runs.

Rows are kept as JSON-shaped dicts, so values compare the same way they do
after a round trip through Supabase (ISO timestamps compare as strings).
"""

import copy
from collections import defaultdict
from typing import Any, Mapping, Optional, Sequence
from uuid import uuid4

import structlog

from src.models.schemas import to_json_value, utc_now
from src.store.base import (
    STORE_OWNED_COLUMNS,
    Filter,
    Store,
    normalize_filters,
    normalize_where,
)

logger = structlog.get_logger(__name__)


def _matches(row: dict[str, Any], filters: dict[str, Any], where: list[Filter]) -> bool:
    for column, value in filters.items():
        if row.get(column) != value:
            return False
    for column, op, value in where:
        current = row.get(column)
        if op == "is":
            if current is not value:
                return False
            continue
        if op == "eq":
            ok = current == value
        elif op == "neq":
            ok = current != value
        elif op == "in":
            ok = current in value
        elif current is None:
            ok = False
        elif op == "gt":
            ok = current > value
        elif op == "gte":
            ok = current >= value
        elif op == "lt":
            ok = current < value
        else:
            ok = current <= value
        if not ok:
            return False
    return True


class InMemoryStore(Store):
    """Store backed by per-table lists of row dicts."""

    def __init__(self):
        self._tables: dict[str, list[dict[str, Any]]] = defaultdict(list)

    def rows(self, table: str) -> list[dict[str, Any]]:
        """Copies of every row in a table."""
        return copy.deepcopy(self._tables[table])

    def _select(self, table: str, filters, where) -> list[dict[str, Any]]:
        filters = normalize_filters(filters)
        where = normalize_where(where)
        return [row for row in self._tables[table] if _matches(row, filters, where)]

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        stored = to_json_value(copy.deepcopy(row))
        stored.setdefault("id", str(uuid4()))
        stored.setdefault("created_at", utc_now().isoformat())
        self._tables[table].append(stored)
        return copy.deepcopy(stored)

    async def upsert(
        self,
        table: str,
        row: dict[str, Any],
        on_conflict: Sequence[str],
    ) -> dict[str, Any]:
        key = {column: row.get(column) for column in on_conflict}
        existing = self._select(table, key, ())
        if not existing:
            return await self.insert(table, row)

        target = existing[0]
        for column, value in to_json_value(copy.deepcopy(row)).items():
            if column not in STORE_OWNED_COLUMNS:
                target[column] = value
        return copy.deepcopy(target)

    async def find(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        where: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        rows = self._select(table, filters, where)
        if order_by:
            # Nulls sort last in either direction, as in PostgreSQL's DESC NULLS LAST
            present = [r for r in rows if r.get(order_by) is not None]
            missing = [r for r in rows if r.get(order_by) is None]
            present.sort(key=lambda r: r[order_by], reverse=descending)
            rows = present + missing
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        filters: Optional[Mapping[str, Any]] = None,
        *,
        where: Sequence[Filter] = (),
    ) -> list[dict[str, Any]]:
        rows = self._select(table, filters, where)
        for row in rows:
            row.update(to_json_value(copy.deepcopy(values)))
        return copy.deepcopy(rows)

    async def delete(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        where: Sequence[Filter] = (),
    ) -> int:
        doomed = {id(row) for row in self._select(table, filters, where)}
        if not doomed:
            return 0
        self._tables[table] = [row for row in self._tables[table] if id(row) not in doomed]
        logger.debug("memory_store_rows_deleted", table=table, count=len(doomed))
        return len(doomed)

    async def health_check(self) -> bool:
        return True
