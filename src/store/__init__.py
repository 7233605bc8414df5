"""
Persistent store for ForecastPulse.

- base: Abstract async ``Store`` API (insert, upsert, find, update, delete)
- supabase_store: Supabase/PostgreSQL implementation
- memory_store: In-memory implementation for tests and local runs
- repository: ``PipelineRepository`` typed entity operations
- schema: Table names and creation SQL

Example:
    from src.store import InMemoryStore, PipelineRepository

    repository = PipelineRepository(InMemoryStore())
    item = await repository.upsert_content_item(item)
"""

from src.store.base import OPERATORS, Filter, Store
from src.store.memory_store import InMemoryStore
from src.store.repository import PipelineRepository
from src.store.schema import TABLES, get_table_creation_sql
from src.store.supabase_store import SupabaseStore

__all__ = [
    "OPERATORS",
    "Filter",
    "Store",
    "InMemoryStore",
    "SupabaseStore",
    "PipelineRepository",
    "TABLES",
    "get_table_creation_sql",
]
