"""Base collector interface for content sources.

Every platform collector (YouTube, Twitter/X) extends ``BaseCollector``
and returns platform payloads normalized into ``SourceItem``.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from src.core.http_source import HttpSource
from src.models.schemas import SourceType


class SourceItem(BaseModel):
    """One piece of content as reported by its platform."""

    source_type: SourceType
    source_id: str
    source_url: str
    title: str = ""
    description: str = ""
    published_at: Optional[datetime] = None


class BaseCollector(HttpSource, ABC):
    """Abstract base class for platform collectors.

    Concrete collectors fetch single items by id and list the most recent
    items of a channel or account.
    """

    source_type: SourceType

    @abstractmethod
    async def fetch_item(self, source_id: str) -> Optional[SourceItem]:
        """Fetch one item by platform id.

        Returns:
            The item, or None if the platform does not know it.
        """
        ...

    @abstractmethod
    async def list_recent(self, external_id: str, limit: int) -> list[SourceItem]:
        """List the newest items of a channel or account, newest first.

        Raises:
            CollectorNotFoundError: If the channel or account does not exist.
        """
        ...

    async def health_check(self) -> bool:
        """Check if the collector is operational.

        Returns:
            True unless the source's circuit is open.
        """
        return not self._breaker.is_open
