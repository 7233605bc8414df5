"""
Channel collection sweeps.

Finds the channels whose check interval has elapsed and collects their
newest items. Primary channels ingest everything they publish; secondary
channels only ingest items whose title or description mentions one of the
channel's active keywords.

Every run is tracked as a ``ChannelCollectionJob`` row (FULL_SCAN for
primary channels, KEYWORD_SCAN for secondary ones).

Usage:
    service = ChannelCollectionService(repository, content)
    jobs = await service.process_scheduled_collection()
    job = await service.collect_channel_immediate(channel_id)
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional

import structlog

from src.collectors.base import SourceItem
from src.collectors.content import ContentCollector
from src.core.exceptions import ValidationError
from src.models.schemas import (
    Channel,
    ChannelCollectionJob,
    ContentKey,
    JobStatus,
    utc_now,
)
from src.monitoring.metrics import record_content_stage
from src.store.repository import PipelineRepository

logger = structlog.get_logger(__name__)

PRIMARY_FETCH_LIMIT = 10
SECONDARY_FETCH_LIMIT = 20
CHANNEL_DELAY_SECONDS = 2.0
ITEM_DELAY_SECONDS = 1.0
FRESHNESS_WINDOW_DAYS = 7


def is_channel_due(channel: Channel, now: Optional[datetime] = None) -> bool:
    """True when the channel was never checked or its interval has elapsed."""
    return channel.collection_settings.is_due(now)


def matches_keywords(title: str, description: str, keywords: list[str]) -> bool:
    """Case-insensitive substring match over title and description.

    A channel without keywords does not filter anything.
    """
    if not keywords:
        return True
    text = f"{title} {description}".lower()
    return any(keyword.lower() in text for keyword in keywords)


class ChannelCollectionService:
    """Collects new items from forecaster channels."""

    def __init__(
        self,
        repository: PipelineRepository,
        content: ContentCollector,
        *,
        channel_delay: float = CHANNEL_DELAY_SECONDS,
        item_delay: float = ITEM_DELAY_SECONDS,
        freshness_window_days: int = FRESHNESS_WINDOW_DAYS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._repository = repository
        self._content = content
        self._channel_delay = channel_delay
        self._item_delay = item_delay
        self._freshness_window = timedelta(days=freshness_window_days)
        self._sleep = sleep

    async def get_due_channels(self, now: Optional[datetime] = None) -> list[Channel]:
        """Active, enabled channels of verified active forecasters that are due."""
        now = now or utc_now()
        forecasters = await self._repository.list_forecasters(verified_only=True, active_only=True)
        eligible = {f.id for f in forecasters}

        due = []
        for channel in await self._repository.list_active_channels():
            if channel.forecaster_id not in eligible:
                continue
            if not channel.collection_settings.enabled:
                continue
            if is_channel_due(channel, now):
                due.append(channel)
        return due

    async def _already_collected(self, channel: Channel, item: SourceItem, now: datetime) -> bool:
        existing = await self._repository.get_content_item(
            ContentKey(item.source_type, item.source_id, channel.forecaster_id)
        )
        if existing is None:
            return False
        if existing.is_terminal:
            return True
        return existing.created_at >= now - self._freshness_window

    async def _collect_items(self, channel: Channel, now: datetime) -> tuple[int, int]:
        collector = self._content.collector_for(channel.channel_type)
        limit = PRIMARY_FETCH_LIMIT if channel.is_primary else SECONDARY_FETCH_LIMIT
        items = await collector.list_recent(channel.external_id, limit)
        keywords = channel.active_keywords

        collected = 0
        filtered = 0
        for item in items:
            if await self._already_collected(channel, item, now):
                filtered += 1
                continue
            if not channel.is_primary and not matches_keywords(item.title, item.description, keywords):
                filtered += 1
                continue

            try:
                result = await self._content.collect_item(
                    item, owner_id=channel.forecaster_id, channel_name=channel.channel_name
                )
            except Exception as e:
                logger.warning(
                    "channel_item_collection_failed",
                    channel_id=channel.id,
                    source_id=item.source_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                result = None
            if result is not None:
                collected += 1
            await self._sleep(self._item_delay)

        return collected, filtered

    async def collect_from_channel(
        self,
        channel: Channel,
        now: Optional[datetime] = None,
    ) -> ChannelCollectionJob:
        """Collect the newest items of one channel.

        Listing failures finish the job as FAILED; ``last_checked`` is
        updated either way.

        Returns:
            The finished collection job.
        """
        now = now or utc_now()
        job = await self._repository.start_channel_collection_job(channel)
        logger.info(
            "channel_collection_started",
            channel_id=channel.id,
            channel_type=channel.channel_type.value,
            external_id=channel.external_id,
            job_type=job.job_type.value,
        )

        collected = filtered = 0
        error: Optional[str] = None
        completed = False
        try:
            collected, filtered = await self._collect_items(channel, now)
            completed = True
        except Exception as e:
            error = str(e) or type(e).__name__
            record_content_stage("collection", "error")
            logger.error(
                "channel_collection_failed",
                channel_id=channel.id,
                external_id=channel.external_id,
                error=error,
                error_type=type(e).__name__,
            )
        finally:
            finished = await self._repository.finish_channel_collection_job(
                job,
                JobStatus.COMPLETED if completed else JobStatus.FAILED,
                videos_found=collected + filtered,
                videos_processed=collected,
                error=None if completed else (error or "collection interrupted"),
            )
            await self._repository.mark_channel_checked(channel, utc_now())

        if completed:
            logger.info(
                "channel_collection_completed",
                channel_id=channel.id,
                items_collected=collected,
                items_filtered=filtered,
            )
        return finished

    async def process_scheduled_collection(self, now: Optional[datetime] = None) -> list[ChannelCollectionJob]:
        """Sweep all due channels, pausing between channels."""
        channels = await self.get_due_channels(now)
        logger.info("scheduled_collection_started", channels=len(channels))

        jobs = []
        for index, channel in enumerate(channels):
            if index:
                await self._sleep(self._channel_delay)
            jobs.append(await self.collect_from_channel(channel, now))

        logger.info(
            "scheduled_collection_completed",
            channels=len(channels),
            failed=sum(1 for job in jobs if job.status == JobStatus.FAILED),
        )
        return jobs

    async def collect_channel_immediate(self, channel_id: str) -> ChannelCollectionJob:
        """Collect a channel now, whether or not it is due.

        Raises:
            ValidationError: If the channel does not exist.
        """
        channel = await self._repository.get_channel(channel_id)
        if channel is None:
            raise ValidationError(f"Channel {channel_id} not found", {"channel_id": channel_id})
        return await self.collect_from_channel(channel)
