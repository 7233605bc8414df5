"""Periodic pipeline jobs.

This module provides the scheduler that keeps the pipeline moving:
- Uses APScheduler's ``AsyncIOScheduler`` for interval and cron triggers
- Writes a ``Job`` row for every run (RUNNING -> COMPLETED/FAILED)
- Runs channel collection on demand as tracked ``asyncio.Task`` handles

Jobs:
    update_asset_prices      every 5 minutes    PRICE_REFRESH
    validate_predictions     every 15 minutes   VALIDATION
    collect_channel_content  every 10 minutes   CHANNEL_COLLECTION
    calculate_brier_scores   daily 00:00        BRIER_SCORE
    update_rankings          daily 01:00        RANKING
    cleanup_old_jobs         daily 02:00        CLEANUP
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any, Awaitable, Callable, NamedTuple, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from src.collectors.content import ContentCollector
from src.market.service import MarketDataService
from src.models.schemas import Job, JobStatus, JobType, utc_now
from src.monitoring.metrics import track_job_run
from src.scheduler.channels import ChannelCollectionService
from src.store.repository import PipelineRepository
from src.transcription.service import TranscriptionService
from src.validation.outcome import OutcomeValidator
from src.validation.scoring import BrierScoreService, RankingService

logger = structlog.get_logger(__name__)

DEFAULT_RETENTION_DAYS = 30
DEFAULT_JOB_TIMEOUT_SECONDS = 1800


class JobDefinition(NamedTuple):
    """A periodic job: its job-log type and its trigger."""

    job_type: JobType
    trigger: Callable[[], BaseTrigger]


JOB_DEFINITIONS: dict[str, JobDefinition] = {
    "update_asset_prices": JobDefinition(JobType.PRICE_REFRESH, lambda: IntervalTrigger(minutes=5)),
    "validate_predictions": JobDefinition(JobType.VALIDATION, lambda: IntervalTrigger(minutes=15)),
    "collect_channel_content": JobDefinition(JobType.CHANNEL_COLLECTION, lambda: IntervalTrigger(minutes=10)),
    "calculate_brier_scores": JobDefinition(JobType.BRIER_SCORE, lambda: CronTrigger(hour=0, minute=0)),
    "update_rankings": JobDefinition(JobType.RANKING, lambda: CronTrigger(hour=1, minute=0)),
    "cleanup_old_jobs": JobDefinition(JobType.CLEANUP, lambda: CronTrigger(hour=2, minute=0)),
}


class PipelineScheduler:
    """Scheduler for the periodic ForecastPulse jobs.

    Example:
        scheduler = PipelineScheduler(repository, market, validator, brier, ranking,
                                      channels, content, transcription)
        await scheduler.start()

        # Run a job manually
        job = await scheduler.run_job("validate_predictions")

        # Collect one channel in the background
        task = scheduler.submit_channel_collection(channel_id)
        await task

        await scheduler.stop()
    """

    def __init__(
        self,
        repository: PipelineRepository,
        market: MarketDataService,
        validator: OutcomeValidator,
        brier: BrierScoreService,
        ranking: RankingService,
        channels: ChannelCollectionService,
        content: ContentCollector,
        transcription: TranscriptionService,
        *,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        job_timeout_seconds: float = DEFAULT_JOB_TIMEOUT_SECONDS,
    ):
        self._repository = repository
        self._market = market
        self._validator = validator
        self._brier = brier
        self._ranking = ranking
        self._channels = channels
        self._content = content
        self._transcription = transcription
        self._retention_days = retention_days
        self._job_timeout = job_timeout_seconds

        self._scheduler: Optional[AsyncIOScheduler] = None
        self._is_running = False
        self._tasks: set[asyncio.Task] = set()

        self._handlers: dict[str, Callable[[], Awaitable[dict[str, Any]]]] = {
            "update_asset_prices": self._update_asset_prices,
            "validate_predictions": self._validate_predictions,
            "collect_channel_content": self._collect_channel_content,
            "calculate_brier_scores": self._calculate_brier_scores,
            "update_rankings": self._update_rankings,
            "cleanup_old_jobs": self._cleanup_old_jobs,
        }

    @property
    def is_running(self) -> bool:
        """Check if the scheduler is currently running."""
        return self._is_running

    @property
    def job_names(self) -> list[str]:
        return list(JOB_DEFINITIONS)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Clean the temp audio directory and register the periodic jobs."""
        if self._is_running:
            logger.warning("scheduler_already_running")
            return

        logger.info("scheduler_starting")
        removed = self._transcription.cleanup_old_files()
        logger.info("temp_audio_janitor_completed", removed=removed)

        self._scheduler = AsyncIOScheduler()
        for name, definition in JOB_DEFINITIONS.items():
            self._scheduler.add_job(
                self._execute_job,
                trigger=definition.trigger(),
                id=name,
                args=[name],
                name=f"ForecastPulse: {name}",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            logger.info("job_added_to_scheduler", job=name, job_type=definition.job_type.value)
        self._scheduler.start()

        self._is_running = True
        logger.info("scheduler_started", jobs=len(JOB_DEFINITIONS))

    async def stop(self) -> None:
        """Stop the scheduler gracefully, waiting for submitted tasks."""
        if not self._is_running:
            logger.warning("scheduler_not_running")
            return

        logger.info("scheduler_stopping", pending_tasks=len(self._tasks))

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if self._scheduler:
            self._scheduler.shutdown(wait=True)
            self._scheduler = None

        self._is_running = False
        logger.info("scheduler_stopped")

    # =========================================================================
    # Job execution
    # =========================================================================

    async def _execute_job(self, name: str) -> None:
        """APScheduler entry point.

        Failures are re-raised so APScheduler logs them; the job log already
        holds the FAILED row.
        """
        await self.run_job(name)

    async def run_job(self, name: str) -> Job:
        """Run a periodic job now and record it in the job log.

        Args:
            name: One of ``JOB_DEFINITIONS``.

        Returns:
            The finished Job row.

        Raises:
            ValueError: If the job name is unknown.
            Exception: Whatever the job raised, after it was recorded as FAILED.
        """
        if name not in JOB_DEFINITIONS:
            raise ValueError(f"Unknown job: {name}")

        definition = JOB_DEFINITIONS[name]
        job = await self._repository.start_job(definition.job_type, {"job": name})
        logger.info("job_execution_start", job=name, job_id=job.id, timeout_seconds=self._job_timeout)

        try:
            with track_job_run(name):
                async with asyncio.timeout(self._job_timeout):
                    result = await self._handlers[name]()
        except Exception as e:
            await self._repository.finish_job(job, JobStatus.FAILED, error=str(e) or type(e).__name__)
            logger.error("job_execution_failed", job=name, job_id=job.id, error=str(e))
            raise

        finished = await self._repository.finish_job(job, JobStatus.COMPLETED, result=result)
        logger.info("job_execution_complete", job=name, job_id=job.id, **result)
        return finished

    async def _update_asset_prices(self) -> dict[str, Any]:
        quotes = await self._market.update_all_asset_prices()
        return {"assets_updated": len(quotes)}

    async def _validate_predictions(self) -> dict[str, Any]:
        records = await self._validator.validate_all_pending(utc_now())
        return {
            "predictions_checked": len(records),
            "predictions_failed": sum(1 for record in records if not record.success),
        }

    async def _collect_channel_content(self) -> dict[str, Any]:
        jobs = await self._channels.process_scheduled_collection()
        resumed = await self._content.resume_pending()
        return {
            "channels_collected": len(jobs),
            "channels_failed": sum(1 for job in jobs if job.status == JobStatus.FAILED),
            "items_resumed": len(resumed),
        }

    async def _calculate_brier_scores(self) -> dict[str, Any]:
        scores = await self._brier.calculate_all()
        return {"forecasters_scored": sum(1 for score in scores.values() if score is not None)}

    async def _update_rankings(self) -> dict[str, Any]:
        ranked = await self._ranking.update_all(utc_now())
        return {"forecasters_ranked": len(ranked)}

    async def _cleanup_old_jobs(self) -> dict[str, Any]:
        cutoff = utc_now() - timedelta(days=self._retention_days)
        return {
            "jobs_deleted": await self._repository.delete_finished_jobs_before(cutoff),
            "channel_jobs_deleted": await self._repository.delete_channel_collection_jobs_before(cutoff),
            "events_deleted": await self._repository.delete_events_before(cutoff),
            "content_deleted": await self._content.retention_sweep(self._retention_days),
        }

    # =========================================================================
    # Manual channel collection
    # =========================================================================

    async def trigger_channel_collection(self, channel_id: str) -> Job:
        """Collect one channel now and record a CHANNEL_COLLECTION job.

        The job row is written whether the collection succeeds or not.
        """
        job = await self._repository.start_job(JobType.CHANNEL_COLLECTION, {"channel_id": channel_id})
        logger.info("manual_collection_triggered", channel_id=channel_id, job_id=job.id)

        try:
            collection = await self._channels.collect_channel_immediate(channel_id)
        except Exception as e:
            logger.error("manual_collection_failed", channel_id=channel_id, error=str(e))
            return await self._repository.finish_job(job, JobStatus.FAILED, error=str(e))

        return await self._repository.finish_job(
            job,
            collection.status,
            error=collection.error,
            result={
                "collection_job_id": collection.id,
                "videos_found": collection.videos_found,
                "videos_processed": collection.videos_processed,
            },
        )

    def submit_channel_collection(self, channel_id: str) -> asyncio.Task:
        """Start ``trigger_channel_collection`` in the background.

        The task is tracked and awaited by ``stop()``.
        """
        task = asyncio.create_task(self.trigger_channel_collection(channel_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
