"""Typed entity operations over a ``Store``.

``PipelineRepository`` is the only place that knows table names and
column layouts. Components work with the pydantic entities from
``src.models`` and never touch raw rows.
"""

from datetime import date, datetime
from typing import Any, Optional

import structlog

from src.core.exceptions import InvalidTransitionError, StoreError
from src.models.schemas import (
    TERMINAL_STATUSES,
    Asset,
    AssetType,
    Channel,
    ChannelCollectionJob,
    CollectionJobConfig,
    CollectionJobType,
    ContentItem,
    ContentKey,
    ContentStatus,
    Event,
    Forecaster,
    ForecasterMetrics,
    Job,
    JobStatus,
    JobType,
    Outcome,
    Prediction,
    PriceData,
    PriceHistory,
    ProcessingMetadata,
    can_transition,
    utc_now,
)
from src.store import schema
from src.store.base import Store

logger = structlog.get_logger(__name__)


class PipelineRepository:
    """Entity-level persistence for the ingestion and validation pipeline."""

    def __init__(self, store: Store):
        self.store = store

    # =========================================================================
    # Content Items
    # =========================================================================

    async def get_content_item(self, key: ContentKey) -> Optional[ContentItem]:
        row = await self.store.find_one(schema.CONTENT_ITEMS, {
            "source_type": key.source_type,
            "source_id": key.source_id,
            "owner_id": key.owner_id,
        })
        return ContentItem.from_db_row(row) if row else None

    async def get_content_item_by_id(self, item_id: str) -> Optional[ContentItem]:
        row = await self.store.find_one(schema.CONTENT_ITEMS, {"id": item_id})
        return ContentItem.from_db_row(row) if row else None

    async def upsert_content_item(self, item: ContentItem) -> ContentItem:
        """Insert a content item, or refresh the source payload of an existing one.

        Re-collecting never resets status or processing metadata, and never
        drops a transcript that was already acquired.
        """
        existing = await self.get_content_item(item.key)
        if existing is None:
            row = await self.store.upsert(
                schema.CONTENT_ITEMS,
                item.to_db_row(),
                on_conflict=schema.CONTENT_ITEM_KEY,
            )
            return ContentItem.from_db_row(row)

        data = item.data.model_copy(update={
            "transcript": item.data.transcript or existing.data.transcript,
            "transcript_segments": item.data.transcript_segments or existing.data.transcript_segments,
            "transcript_provenance": (
                item.data.transcript_provenance or existing.data.transcript_provenance
            ),
        })
        updated = existing.model_copy(update={
            "source_url": item.source_url or existing.source_url,
            "data": data,
            "updated_at": utc_now(),
        })
        await self.store.update(
            schema.CONTENT_ITEMS,
            {
                "source_url": updated.source_url,
                "data": updated.data.model_dump(),
                "updated_at": updated.updated_at,
            },
            {"id": existing.id},
        )
        return updated

    async def transition_content(
        self,
        item: ContentItem,
        status: ContentStatus,
        **changes: Any,
    ) -> ContentItem:
        """Move a content item to ``status`` and persist it.

        Args:
            item: Current item.
            status: Target status.
            **changes: Replacement ``data`` or ``processing_metadata``.

        Raises:
            InvalidTransitionError: If the state machine forbids the move.
        """
        if not can_transition(item.status, status):
            raise InvalidTransitionError(item.status.value, status.value)

        now = utc_now()
        update: dict[str, Any] = {"status": status, "updated_at": now, **changes}
        if status == ContentStatus.PROCESSED:
            update["processed_at"] = now
        updated = item.model_copy(update=update)

        values = {
            "status": updated.status,
            "updated_at": now,
            "data": updated.data.model_dump(),
            "processing_metadata": updated.processing_metadata.model_dump(),
        }
        if status == ContentStatus.PROCESSED:
            values["processed_at"] = now
        await self.store.update(schema.CONTENT_ITEMS, values, {"id": item.id})

        logger.debug(
            "content_status_changed",
            content_id=item.id,
            source_id=item.source_id,
            previous=item.status.value,
            status=status.value,
        )
        return updated

    async def save_processing_metadata(
        self,
        item: ContentItem,
        metadata: ProcessingMetadata,
    ) -> ContentItem:
        """Persist processing metadata without changing status."""
        updated = item.model_copy(update={"processing_metadata": metadata, "updated_at": utc_now()})
        await self.store.update(
            schema.CONTENT_ITEMS,
            {"processing_metadata": metadata.model_dump(), "updated_at": updated.updated_at},
            {"id": item.id},
        )
        return updated

    async def record_content_failure(self, item: ContentItem, error: str) -> ContentItem:
        """Record a failed attempt; the item becomes FAILED once retries run out."""
        metadata = item.processing_metadata.model_copy(update={
            "error": error,
            "retry_count": item.processing_metadata.retry_count + 1,
        })
        if metadata.retries_exhausted:
            logger.warning(
                "content_retries_exhausted",
                content_id=item.id,
                source_id=item.source_id,
                retry_count=metadata.retry_count,
                error=error,
            )
            return await self.transition_content(
                item, ContentStatus.FAILED, processing_metadata=metadata
            )
        return await self.save_processing_metadata(item, metadata)

    async def find_resumable_content(
        self,
        owner_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[ContentItem]:
        """Non-terminal content items, oldest first."""
        open_states = [s for s in ContentStatus if s not in TERMINAL_STATUSES]
        filters = {"owner_id": owner_id} if owner_id is not None else None
        rows = await self.store.find(
            schema.CONTENT_ITEMS,
            filters,
            where=[("status", "in", open_states)],
            order_by="created_at",
            limit=limit,
        )
        return [ContentItem.from_db_row(row) for row in rows]

    async def delete_terminal_content_before(self, cutoff: datetime) -> int:
        return await self.store.delete(
            schema.CONTENT_ITEMS,
            where=[
                ("status", "in", list(TERMINAL_STATUSES)),
                ("created_at", "lt", cutoff),
            ],
        )

    # =========================================================================
    # Forecasters
    # =========================================================================

    async def insert_forecaster(self, forecaster: Forecaster) -> Forecaster:
        row = await self.store.insert(schema.FORECASTERS, forecaster.to_db_row())
        return Forecaster.from_db_row(row)

    async def get_forecaster(self, forecaster_id: str) -> Optional[Forecaster]:
        row = await self.store.find_one(schema.FORECASTERS, {"id": forecaster_id})
        return Forecaster.from_db_row(row) if row else None

    async def list_forecasters(
        self,
        verified_only: bool = False,
        active_only: bool = True,
    ) -> list[Forecaster]:
        filters: dict[str, Any] = {}
        if verified_only:
            filters["is_verified"] = True
        if active_only:
            filters["is_active"] = True
        rows = await self.store.find(schema.FORECASTERS, filters)
        return [Forecaster.from_db_row(row) for row in rows]

    async def update_forecaster_metrics(
        self,
        forecaster_id: str,
        metrics: ForecasterMetrics,
    ) -> None:
        await self.store.update(
            schema.FORECASTERS,
            {"metrics": metrics.model_dump()},
            {"id": forecaster_id},
        )

    # =========================================================================
    # Channels
    # =========================================================================

    async def insert_channel(self, channel: Channel) -> Channel:
        row = await self.store.insert(schema.CHANNELS, channel.to_db_row())
        return Channel.from_db_row(row)

    async def get_channel(self, channel_id: str) -> Optional[Channel]:
        row = await self.store.find_one(schema.CHANNELS, {"id": channel_id})
        return Channel.from_db_row(row) if row else None

    async def list_active_channels(self) -> list[Channel]:
        rows = await self.store.find(schema.CHANNELS, {"is_active": True})
        return [Channel.from_db_row(row) for row in rows]

    async def mark_channel_checked(self, channel: Channel, checked_at: datetime) -> Channel:
        settings = channel.collection_settings.model_copy(update={"last_checked": checked_at})
        await self.store.update(
            schema.CHANNELS,
            {"collection_settings": settings.model_dump()},
            {"id": channel.id},
        )
        return channel.model_copy(update={"collection_settings": settings})

    # =========================================================================
    # Assets and Prices
    # =========================================================================

    async def get_asset(self, asset_id: str) -> Optional[Asset]:
        row = await self.store.find_one(schema.ASSETS, {"id": asset_id})
        return Asset.from_db_row(row) if row else None

    async def list_assets(self) -> list[Asset]:
        rows = await self.store.find(schema.ASSETS, order_by="symbol")
        return [Asset.from_db_row(row) for row in rows]

    async def upsert_asset(
        self,
        symbol: str,
        asset_type: AssetType,
        name: Optional[str] = None,
    ) -> Asset:
        """Get or create the asset identified by ``(symbol, type)``."""
        row = await self.store.find_one(schema.ASSETS, {"symbol": symbol, "type": asset_type})
        if row:
            return Asset.from_db_row(row)
        asset = Asset(symbol=symbol, type=asset_type, name=name or symbol)
        row = await self.store.upsert(schema.ASSETS, asset.to_db_row(), on_conflict=schema.ASSET_KEY)
        return Asset.from_db_row(row)

    async def update_asset_price_data(self, asset_id: str, price_data: PriceData) -> None:
        await self.store.update(
            schema.ASSETS,
            {"price_data": price_data.model_dump()},
            {"id": asset_id},
        )

    async def insert_price_history(self, entry: PriceHistory) -> None:
        await self.store.insert(schema.PRICE_HISTORY, entry.to_db_row())

    # =========================================================================
    # Predictions
    # =========================================================================

    async def insert_prediction(self, prediction: Prediction) -> Prediction:
        row = await self.store.insert(schema.PREDICTIONS, prediction.to_db_row())
        return Prediction.from_db_row(row)

    async def get_prediction(self, prediction_id: str) -> Optional[Prediction]:
        row = await self.store.find_one(schema.PREDICTIONS, {"id": prediction_id})
        return Prediction.from_db_row(row) if row else None

    async def list_predictions(self, forecaster_id: str) -> list[Prediction]:
        rows = await self.store.find(
            schema.PREDICTIONS,
            {"forecaster_id": forecaster_id},
            order_by="created_at",
        )
        return [Prediction.from_db_row(row) for row in rows]

    async def find_due_pending_predictions(
        self,
        due_on_or_before: date,
        limit: Optional[int] = None,
    ) -> list[Prediction]:
        rows = await self.store.find(
            schema.PREDICTIONS,
            {"outcome": Outcome.PENDING},
            where=[("target_date", "lte", due_on_or_before)],
            order_by="target_date",
            limit=limit,
        )
        return [Prediction.from_db_row(row) for row in rows]

    async def list_validated_predictions(
        self,
        forecaster_id: str,
        since: Optional[datetime] = None,
    ) -> list[Prediction]:
        where = [("outcome", "neq", Outcome.PENDING)]
        if since is not None:
            where.append(("validated_at", "gte", since))
        rows = await self.store.find(
            schema.PREDICTIONS,
            {"forecaster_id": forecaster_id},
            where=where,
            order_by="validated_at",
        )
        return [Prediction.from_db_row(row) for row in rows]

    async def record_prediction_outcome(
        self,
        prediction_id: str,
        outcome: Outcome,
        validated_at: datetime,
    ) -> bool:
        """Write an outcome once; a prediction with ``validated_at`` set is immutable.

        Returns:
            True if this call validated the prediction.
        """
        rows = await self.store.update(
            schema.PREDICTIONS,
            {"outcome": outcome, "validated_at": validated_at},
            {"id": prediction_id},
            where=[("validated_at", "is", None)],
        )
        return bool(rows)

    # =========================================================================
    # Jobs and Events
    # =========================================================================

    async def start_job(self, job_type: JobType, payload: Optional[dict[str, Any]] = None) -> Job:
        job = Job(type=job_type, payload=payload or {})
        row = await self.store.insert(schema.JOBS, job.to_db_row())
        return Job.from_db_row(row)

    async def finish_job(
        self,
        job: Job,
        status: JobStatus,
        error: Optional[str] = None,
        result: Optional[dict[str, Any]] = None,
    ) -> Job:
        payload = {**job.payload, **(result or {})}
        finished = job.model_copy(update={
            "status": status,
            "error": error,
            "payload": payload,
            "completed_at": utc_now(),
        })
        await self.store.update(
            schema.JOBS,
            {
                "status": finished.status,
                "error": error,
                "payload": payload,
                "completed_at": finished.completed_at,
            },
            {"id": job.id},
        )
        return finished

    async def list_jobs(self, job_type: Optional[JobType] = None, limit: int = 50) -> list[Job]:
        filters = {"type": job_type} if job_type else None
        rows = await self.store.find(
            schema.JOBS, filters, order_by="created_at", descending=True, limit=limit
        )
        return [Job.from_db_row(row) for row in rows]

    async def delete_finished_jobs_before(self, cutoff: datetime) -> int:
        return await self.store.delete(
            schema.JOBS,
            where=[
                ("status", "in", [JobStatus.COMPLETED, JobStatus.FAILED]),
                ("created_at", "lt", cutoff),
            ],
        )

    async def start_channel_collection_job(
        self,
        channel: Channel,
    ) -> ChannelCollectionJob:
        job = ChannelCollectionJob(
            channel_id=channel.id,
            job_type=(
                CollectionJobType.FULL_SCAN if channel.is_primary
                else CollectionJobType.KEYWORD_SCAN
            ),
            config=CollectionJobConfig(
                keywords=channel.active_keywords,
                is_primary=channel.is_primary,
            ),
        )
        row = await self.store.insert(schema.CHANNEL_COLLECTION_JOBS, job.to_db_row())
        return ChannelCollectionJob.from_db_row(row)

    async def finish_channel_collection_job(
        self,
        job: ChannelCollectionJob,
        status: JobStatus,
        videos_found: int,
        videos_processed: int,
        error: Optional[str] = None,
    ) -> ChannelCollectionJob:
        finished = job.model_copy(update={
            "status": status,
            "completed_at": utc_now(),
            "videos_found": videos_found,
            "videos_processed": videos_processed,
            "error": error,
        })
        await self.store.update(
            schema.CHANNEL_COLLECTION_JOBS,
            {
                "status": finished.status,
                "completed_at": finished.completed_at,
                "videos_found": videos_found,
                "videos_processed": videos_processed,
                "error": error,
            },
            {"id": job.id},
        )
        return finished

    async def delete_channel_collection_jobs_before(self, cutoff: datetime) -> int:
        return await self.store.delete(
            schema.CHANNEL_COLLECTION_JOBS,
            where=[
                ("status", "in", [JobStatus.COMPLETED, JobStatus.FAILED]),
                ("created_at", "lt", cutoff),
            ],
        )

    async def record_event(
        self,
        event_type: str,
        entity_type: str,
        entity_id: str,
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        event = Event(type=event_type, entity_type=entity_type, entity_id=entity_id, data=data or {})
        try:
            await self.store.insert(schema.EVENTS, event.to_db_row())
        except StoreError as e:
            # Audit events are best effort; the entity update already happened
            logger.warning("event_record_failed", event_type=event_type, entity_id=entity_id, error=str(e))

    async def list_events(self, event_type: Optional[str] = None) -> list[Event]:
        filters = {"type": event_type} if event_type else None
        rows = await self.store.find(schema.EVENTS, filters, order_by="created_at")
        return [Event.from_db_row(row) for row in rows]

    async def delete_events_before(self, cutoff: datetime) -> int:
        return await self.store.delete(schema.EVENTS, where=[("created_at", "lt", cutoff)])
