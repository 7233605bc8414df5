"""Abstract persistent store.

Every component persists through this async table API so that the
pipeline runs the same against Supabase in production and the in-memory
store in tests and local runs.

Filters come in two shapes:

- ``filters``: a mapping of column to value, matched by equality
- ``where``: a sequence of ``(column, operator, value)`` tuples using the
  operators in ``OPERATORS``

Example:
    rows = await store.find(
        "predictions",
        {"outcome": "PENDING"},
        where=[("target_date", "lte", "2025-01-31")],
        order_by="created_at",
        limit=50,
    )
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Sequence

from src.models.schemas import to_json_value

Filter = tuple[str, str, Any]

OPERATORS = frozenset({"eq", "neq", "gt", "gte", "lt", "lte", "in", "is"})

# Columns owned by the store on upsert: an existing row keeps them
STORE_OWNED_COLUMNS = ("id", "created_at")


def normalize_where(where: Sequence[Filter]) -> list[Filter]:
    """Validate operators and convert values to their stored JSON form."""
    normalized = []
    for column, op, value in where:
        if op not in OPERATORS:
            raise ValueError(f"Unsupported filter operator: {op}")
        normalized.append((column, op, to_json_value(value)))
    return normalized


def normalize_filters(filters: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    return {column: to_json_value(value) for column, value in (filters or {}).items()}


class Store(ABC):
    """Async table store used by ``PipelineRepository``."""

    @abstractmethod
    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Insert one row and return it as stored."""
        ...

    @abstractmethod
    async def upsert(
        self,
        table: str,
        row: dict[str, Any],
        on_conflict: Sequence[str],
    ) -> dict[str, Any]:
        """Insert or update the row identified by the ``on_conflict`` columns.

        An existing row keeps its ``id`` and ``created_at``.
        """
        ...

    @abstractmethod
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
        """Return rows matching all filters."""
        ...

    async def find_one(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        where: Sequence[Filter] = (),
    ) -> Optional[dict[str, Any]]:
        rows = await self.find(table, filters, where=where, limit=1)
        return rows[0] if rows else None

    @abstractmethod
    async def update(
        self,
        table: str,
        values: dict[str, Any],
        filters: Optional[Mapping[str, Any]] = None,
        *,
        where: Sequence[Filter] = (),
    ) -> list[dict[str, Any]]:
        """Set ``values`` on matching rows and return the updated rows."""
        ...

    @abstractmethod
    async def delete(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        where: Sequence[Filter] = (),
    ) -> int:
        """Delete matching rows and return how many were removed."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Check that the store is reachable."""
        ...
