"""Supabase-backed store.

Wraps the synchronous supabase-py query builder behind the async ``Store``
API. Transport failures surface as ``StoreConnectionError`` (retryable);
PostgREST errors surface as ``StoreError``.

Usage:
    store = SupabaseStore(settings.supabase_url, settings.supabase_key.get_secret_value())
    if not await store.health_check():
        print(get_table_creation_sql())
"""

from typing import Any, Mapping, Optional, Sequence

import httpx
import structlog
from postgrest.exceptions import APIError
from supabase import Client, create_client

from src.core.exceptions import StoreConnectionError, StoreError
from src.models.schemas import to_json_value
from src.store.base import (
    STORE_OWNED_COLUMNS,
    Filter,
    Store,
    normalize_filters,
    normalize_where,
)
from src.store.schema import TABLES

logger = structlog.get_logger(__name__)


def _apply_filters(query, filters: dict[str, Any], where: list[Filter]):
    for column, value in filters.items():
        query = query.eq(column, value)
    for column, op, value in where:
        if op == "in":
            query = query.in_(column, value)
        elif op == "is":
            query = query.is_(column, "null" if value is None else str(value).lower())
        else:
            query = getattr(query, op)(column, value)
    return query


class SupabaseStore(Store):
    """Store implementation over a Supabase (PostgreSQL) project."""

    def __init__(self, supabase_url: str, supabase_key: str):
        """Initialize the store.

        Args:
            supabase_url: Supabase project URL.
            supabase_key: Supabase service key.
        """
        self._supabase_url = supabase_url
        self._supabase_key = supabase_key
        self._supabase: Optional[Client] = None

    def _get_supabase(self) -> Client:
        """Get or create Supabase client."""
        if self._supabase is None:
            self._supabase = create_client(self._supabase_url, self._supabase_key)
        return self._supabase

    def _execute(self, query, operation: str, table: str) -> list[dict[str, Any]]:
        try:
            result = query.execute()
        except httpx.HTTPError as e:
            logger.error("store_connection_failed", operation=operation, table=table, error=str(e))
            raise StoreConnectionError(
                f"Supabase {operation} on {table} failed: {e}",
                {"table": table, "operation": operation},
            ) from e
        except APIError as e:
            logger.error("store_query_failed", operation=operation, table=table, error=str(e))
            raise StoreError(
                f"Supabase {operation} on {table} rejected: {e.message}",
                {"table": table, "operation": operation, "code": e.code},
            ) from e
        return result.data or []

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        query = self._get_supabase().table(table).insert(to_json_value(row))
        rows = self._execute(query, "insert", table)
        return rows[0] if rows else row

    async def upsert(
        self,
        table: str,
        row: dict[str, Any],
        on_conflict: Sequence[str],
    ) -> dict[str, Any]:
        payload = {
            column: value
            for column, value in to_json_value(row).items()
            if column not in STORE_OWNED_COLUMNS
        }
        query = self._get_supabase().table(table).upsert(
            payload,
            on_conflict=",".join(on_conflict),
        )
        rows = self._execute(query, "upsert", table)
        return rows[0] if rows else payload

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
        query = self._get_supabase().table(table).select("*")
        query = _apply_filters(query, normalize_filters(filters), normalize_where(where))
        if order_by:
            query = query.order(order_by, desc=descending)
        if limit is not None:
            query = query.limit(limit)
        return self._execute(query, "find", table)

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        filters: Optional[Mapping[str, Any]] = None,
        *,
        where: Sequence[Filter] = (),
    ) -> list[dict[str, Any]]:
        query = self._get_supabase().table(table).update(to_json_value(values))
        query = _apply_filters(query, normalize_filters(filters), normalize_where(where))
        return self._execute(query, "update", table)

    async def delete(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        where: Sequence[Filter] = (),
    ) -> int:
        query = self._get_supabase().table(table).delete()
        query = _apply_filters(query, normalize_filters(filters), normalize_where(where))
        return len(self._execute(query, "delete", table))

    async def health_check(self) -> bool:
        """Check that every pipeline table is accessible."""
        for table in TABLES:
            try:
                query = self._get_supabase().table(table).select("id").limit(1)
                self._execute(query, "health_check", table)
            except StoreError as e:
                logger.warning("supabase_table_check_failed", table=table, error=str(e))
                return False
        logger.info("supabase_table_check", status="accessible", tables=len(TABLES))
        return True
