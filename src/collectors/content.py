"""
Content collection and per-item processing.

``ContentCollector`` turns a video or tweet id into a stored content item
and drives it through the state machine:

    COLLECTED -> (transcript stages, videos only) -> TRANSCRIBED
              -> EXTRACTING -> PROCESSED

Items are keyed by ``(source_type, source_id, owner_id)``, so collecting
the same content twice updates the existing item. A failed stage records
``error`` and ``retry_count``; the item stays eligible for
``resume_pending`` until ``MAX_RETRIES`` failures, then becomes FAILED.

Usage:
    collector = ContentCollector(repository, transcription, engine, writer, collectors)
    item = await collector.collect_url("https://youtu.be/dQw4w9WgXcQ", owner_id=forecaster.id)
    await collector.resume_pending(limit=20)
"""

import asyncio
import re
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import parse_qs, urlparse

import structlog

from src.collectors.base import BaseCollector, SourceItem
from src.collectors.twitter import tweet_to_item
from src.core.exceptions import CollectorError, ForecastPulseError
from src.extraction.engine import ExtractionEngine
from src.extraction.writer import PredictionWriter
from src.models.extraction import VideoContext
from src.models.schemas import (
    ContentData,
    ContentItem,
    ContentKey,
    ContentStatus,
    SourceType,
    utc_now,
)
from src.monitoring.metrics import record_content_stage
from src.store.repository import PipelineRepository
from src.transcription.service import TranscriptionService

logger = structlog.get_logger(__name__)

TWEET_STATUS_PATTERN = re.compile(r"/status/(\d+)")
YOUTUBE_HOSTS = ("youtube.com", "youtu.be")
TWITTER_HOSTS = ("twitter.com", "x.com")

DEFAULT_RESUME_LIMIT = 20
DEFAULT_RETENTION_DAYS = 30


def order_for_processing(items: list[ContentItem]) -> list[ContentItem]:
    """Partial items first, then fresh ones; oldest first within each group."""
    return sorted(items, key=lambda item: (not item.is_partial, item.created_at))


def parse_content_url(url: str) -> tuple[SourceType, str]:
    """Identify the platform and content id of a YouTube or Twitter/X URL.

    Raises:
        CollectorError: If the URL is not a supported content URL.
    """
    parsed = urlparse(url.strip())
    host = (parsed.hostname or "").lower()

    if any(host == h or host.endswith("." + h) for h in YOUTUBE_HOSTS):
        video_id = None
        if host.endswith("youtu.be"):
            video_id = parsed.path.lstrip("/").split("/")[0]
        elif parsed.path.startswith(("/embed/", "/shorts/", "/live/")):
            video_id = parsed.path.split("/")[2]
        else:
            video_id = (parse_qs(parsed.query).get("v") or [None])[0]
        if video_id:
            return SourceType.YOUTUBE, video_id

    if any(host == h or host.endswith("." + h) for h in TWITTER_HOSTS):
        match = TWEET_STATUS_PATTERN.search(parsed.path)
        if match:
            return SourceType.TWITTER, match.group(1)

    raise CollectorError("content", f"Unsupported content source: {url}")


class ContentCollector:
    """Collects content items and runs their remaining pipeline stages."""

    def __init__(
        self,
        repository: PipelineRepository,
        transcription: TranscriptionService,
        engine: ExtractionEngine,
        writer: PredictionWriter,
        collectors: dict[SourceType, BaseCollector],
        *,
        item_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._repository = repository
        self._transcription = transcription
        self._engine = engine
        self._writer = writer
        self._collectors = collectors
        self._item_delay = item_delay
        self._sleep = sleep

    def collector_for(self, source_type: SourceType) -> BaseCollector:
        try:
            return self._collectors[source_type]
        except KeyError:
            raise CollectorError("content", f"No collector configured for {source_type.value}") from None

    async def aclose(self) -> None:
        for collector in self._collectors.values():
            await collector.aclose()

    # -------------------------------------------------------------------------
    # Collection
    # -------------------------------------------------------------------------

    async def _collect(
        self,
        source_type: SourceType,
        source_id: str,
        owner_id: str,
        source_item: Optional[SourceItem],
        channel_name: Optional[str],
    ) -> Optional[ContentItem]:
        key = ContentKey(source_type, source_id, owner_id)
        existing = await self._repository.get_content_item(key)
        if existing is not None and existing.is_terminal:
            logger.info(
                "content_already_final",
                source_type=source_type.value,
                source_id=source_id,
                status=existing.status.value,
            )
            return existing

        if source_item is None:
            source_item = await self.collector_for(source_type).fetch_item(source_id)
        if source_item is None:
            return None

        item = await self._repository.upsert_content_item(
            ContentItem(
                source_type=source_type,
                source_id=source_id,
                owner_id=owner_id,
                source_url=source_item.source_url,
                data=ContentData(
                    title=source_item.title,
                    description=source_item.description,
                    published_at=source_item.published_at,
                ),
            )
        )
        logger.info(
            "content_collected",
            content_id=item.id,
            source_type=source_type.value,
            source_id=source_id,
            owner_id=owner_id or None,
            status=item.status.value,
        )
        return await self.process_item(item, channel_name=channel_name)

    async def collect_video(
        self,
        video_id: str,
        owner_id: str = "",
        snippet: Optional[SourceItem] = None,
        channel_name: Optional[str] = None,
    ) -> Optional[ContentItem]:
        """Collect a YouTube video and run it through the pipeline.

        Args:
            video_id: YouTube video id.
            owner_id: Forecaster id; empty for unattributed content.
            snippet: Already fetched video details, skipping the API call.
            channel_name: Channel name passed to extraction.

        Returns:
            The item in its latest state, or None if the video does not exist.
        """
        return await self._collect(SourceType.YOUTUBE, video_id, owner_id, snippet, channel_name)

    async def collect_tweet(
        self,
        tweet_id: str,
        owner_id: str = "",
        tweet: Optional[dict[str, Any] | SourceItem] = None,
        channel_name: Optional[str] = None,
    ) -> Optional[ContentItem]:
        """Collect a tweet, using ``tweet`` when the payload is already known."""
        if isinstance(tweet, dict):
            tweet = tweet_to_item({"id": tweet_id, **tweet})
        return await self._collect(SourceType.TWITTER, tweet_id, owner_id, tweet, channel_name)

    async def collect_item(
        self,
        source_item: SourceItem,
        owner_id: str = "",
        channel_name: Optional[str] = None,
    ) -> Optional[ContentItem]:
        return await self._collect(
            source_item.source_type, source_item.source_id, owner_id, source_item, channel_name
        )

    async def collect_url(self, url: str, owner_id: str = "") -> Optional[ContentItem]:
        """Collect content from a youtube.com, youtu.be, twitter.com or x.com URL.

        Raises:
            CollectorError: If the URL is not a supported content URL.
        """
        source_type, source_id = parse_content_url(url)
        if source_type == SourceType.YOUTUBE:
            return await self.collect_video(source_id, owner_id)
        return await self.collect_tweet(source_id, owner_id)

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    async def process_item(
        self,
        item: ContentItem,
        channel_name: Optional[str] = None,
    ) -> ContentItem:
        """Run the stages an item has not completed yet.

        Failures are recorded on the item, never raised.

        Returns:
            The item in its latest state.
        """
        if item.is_terminal:
            return item

        try:
            if item.source_type == SourceType.YOUTUBE and not item.data.transcript:
                item = await self._acquire_transcript(item)
                if not item.data.transcript:
                    return item
            if not item.owner_id:
                # Unattributed content has nobody to credit predictions to
                logger.info("content_extraction_skipped_no_owner", content_id=item.id)
                return await self._finish(item)
            return await self._extract(item, channel_name)

        except ForecastPulseError as e:
            logger.error(
                "content_processing_failed",
                content_id=item.id,
                source_id=item.source_id,
                status=item.status.value,
                error=str(e),
            )
            record_content_stage(item.status.value.lower(), "error")
            latest = await self._repository.get_content_item_by_id(item.id) or item
            return await self._repository.record_content_failure(latest, str(e))

    async def _acquire_transcript(self, item: ContentItem) -> ContentItem:
        result = await self._transcription.acquire(item.source_url or item.source_id, resume_key=item.key)
        latest = await self._repository.get_content_item(item.key) or item
        if result.succeeded:
            record_content_stage("transcription", "success")
            return latest

        record_content_stage("transcription", "error")
        if latest.processing_metadata.retry_count == item.processing_metadata.retry_count:
            # Nothing recorded the miss yet (no audio tier error was raised)
            latest = await self._repository.record_content_failure(latest, "all transcript methods failed")
        return latest

    async def _extract(self, item: ContentItem, channel_name: Optional[str]) -> ContentItem:
        text = item.text_for_extraction
        if not text:
            return await self._repository.record_content_failure(item, "no text to extract from")

        item = await self._repository.transition_content(item, ContentStatus.EXTRACTING)
        context = VideoContext(
            video_id=item.source_id,
            video_url=item.source_url,
            title=item.data.title,
            description=item.data.description,
            channel_name=channel_name or "",
            published_at=item.data.published_at,
            transcript=text,
            segments=item.data.transcript_segments,
        )
        result = await self._engine.extract(context)
        stored = await self._writer.store(
            result.predictions,
            forecaster_id=item.owner_id,
            source_type=item.source_type,
            source_url=item.source_url,
            content_id=item.id,
        )

        item = await self._finish(item)
        record_content_stage("extraction", "success")
        logger.info(
            "content_processed",
            content_id=item.id,
            source_id=item.source_id,
            predictions=len(stored),
            summary=result.summary.sentiment_breakdown,
        )
        return item

    async def _finish(self, item: ContentItem) -> ContentItem:
        metadata = item.processing_metadata.model_copy(update={
            "error": None,
            "last_step": ContentStatus.PROCESSED.value,
        })
        return await self._repository.transition_content(
            item, ContentStatus.PROCESSED, processing_metadata=metadata
        )

    # -------------------------------------------------------------------------
    # Sweeps
    # -------------------------------------------------------------------------

    async def resume_pending(
        self,
        owner_id: Optional[str] = None,
        limit: int = DEFAULT_RESUME_LIMIT,
    ) -> list[ContentItem]:
        """Process unfinished items, partial ones first.

        Returns:
            The processed items in their latest state.
        """
        pending = await self._repository.find_resumable_content(owner_id=owner_id)
        queue = order_for_processing(pending)[:limit]
        if queue:
            logger.info("content_resume_started", items=len(queue), pending=len(pending))

        processed = []
        for index, item in enumerate(queue):
            if index:
                await self._sleep(self._item_delay)
            processed.append(await self.process_item(item))
        return processed

    async def retention_sweep(self, days: int = DEFAULT_RETENTION_DAYS) -> int:
        """Delete PROCESSED and FAILED items older than ``days``."""
        removed = await self._repository.delete_terminal_content_before(utc_now() - timedelta(days=days))
        logger.info("content_retention_sweep", removed=removed, days=days)
        return removed
