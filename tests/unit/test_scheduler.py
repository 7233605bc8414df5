"""Unit tests for the periodic job scheduler."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.core.exceptions import ValidationError
from src.models.schemas import ChannelCollectionJob, CollectionJobType, JobStatus, JobType
from src.scheduler.scheduler import JOB_DEFINITIONS, PipelineScheduler


@pytest.fixture
def components():
    market = MagicMock()
    market.update_all_asset_prices = AsyncMock(return_value=[object(), object()])
    validator = MagicMock()
    validator.validate_all_pending = AsyncMock(return_value=[
        SimpleNamespace(success=True),
        SimpleNamespace(success=False),
    ])
    brier = MagicMock()
    brier.calculate_all = AsyncMock(return_value={"f1": 0.2, "f2": None})
    ranking = MagicMock()
    ranking.update_all = AsyncMock(return_value=["f1"])
    channels = MagicMock()
    channels.process_scheduled_collection = AsyncMock(return_value=[])
    channels.collect_channel_immediate = AsyncMock()
    content = MagicMock()
    content.resume_pending = AsyncMock(return_value=[])
    content.retention_sweep = AsyncMock(return_value=3)
    transcription = MagicMock()
    transcription.cleanup_old_files.return_value = 0
    return SimpleNamespace(
        market=market,
        validator=validator,
        brier=brier,
        ranking=ranking,
        channels=channels,
        content=content,
        transcription=transcription,
    )


@pytest.fixture
def scheduler(repository, components) -> PipelineScheduler:
    c = components
    return PipelineScheduler(
        repository, c.market, c.validator, c.brier, c.ranking, c.channels, c.content, c.transcription
    )


class TestRunJob:
    """Test job execution and the job log."""

    @pytest.mark.asyncio
    async def test_successful_run_is_logged(self, scheduler, repository):
        job = await scheduler.run_job("validate_predictions")

        assert job.type == JobType.VALIDATION
        assert job.status == JobStatus.COMPLETED
        assert job.completed_at is not None
        assert job.payload["predictions_checked"] == 2
        assert job.payload["predictions_failed"] == 1

        logged = await repository.list_jobs(JobType.VALIDATION)
        assert [j.id for j in logged] == [job.id]

    @pytest.mark.asyncio
    async def test_every_job_has_a_handler(self, scheduler):
        for name, definition in JOB_DEFINITIONS.items():
            job = await scheduler.run_job(name)
            assert job.type == definition.job_type
            assert job.status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_brier_and_cleanup_results(self, scheduler, components):
        brier = await scheduler.run_job("calculate_brier_scores")
        cleanup = await scheduler.run_job("cleanup_old_jobs")

        assert brier.payload["forecasters_scored"] == 1
        assert cleanup.payload["content_deleted"] == 3
        components.content.retention_sweep.assert_awaited_once_with(30)

    @pytest.mark.asyncio
    async def test_failure_is_logged_and_raised(self, scheduler, components, repository):
        components.market.update_all_asset_prices.side_effect = RuntimeError("exchange down")

        with pytest.raises(RuntimeError):
            await scheduler.run_job("update_asset_prices")

        [job] = await repository.list_jobs(JobType.PRICE_REFRESH)
        assert job.status == JobStatus.FAILED
        assert job.error == "exchange down"

    @pytest.mark.asyncio
    async def test_timeout_fails_the_job(self, repository, components):
        async def hang():
            await asyncio.sleep(10)

        components.ranking.update_all.side_effect = hang
        c = components
        scheduler = PipelineScheduler(
            repository, c.market, c.validator, c.brier, c.ranking, c.channels, c.content, c.transcription,
            job_timeout_seconds=0.01,
        )

        with pytest.raises(TimeoutError):
            await scheduler.run_job("update_rankings")

        [job] = await repository.list_jobs(JobType.RANKING)
        assert job.status == JobStatus.FAILED
        assert job.error == "TimeoutError"

    @pytest.mark.asyncio
    async def test_unknown_job(self, scheduler):
        with pytest.raises(ValueError):
            await scheduler.run_job("make_coffee")


class TestChannelTrigger:
    """Test manual channel collection jobs."""

    @pytest.mark.asyncio
    async def test_trigger_records_collection_result(self, scheduler, components, repository):
        collection = ChannelCollectionJob(
            channel_id="c1",
            job_type=CollectionJobType.FULL_SCAN,
            status=JobStatus.COMPLETED,
            videos_found=4,
            videos_processed=2,
        )
        components.channels.collect_channel_immediate.return_value = collection

        job = await scheduler.submit_channel_collection("c1")

        assert job.type == JobType.CHANNEL_COLLECTION
        assert job.status == JobStatus.COMPLETED
        assert job.payload["channel_id"] == "c1"
        assert job.payload["collection_job_id"] == collection.id
        assert job.payload["videos_found"] == 4

    @pytest.mark.asyncio
    async def test_trigger_failure_is_recorded(self, scheduler, components, repository):
        components.channels.collect_channel_immediate.side_effect = ValidationError("Channel c9 not found")

        job = await scheduler.trigger_channel_collection("c9")

        assert job.status == JobStatus.FAILED
        assert job.error == "Channel c9 not found"


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_registers_jobs_and_stop_shuts_down(self, scheduler, components):
        with patch("src.scheduler.scheduler.AsyncIOScheduler") as scheduler_cls:
            apscheduler = scheduler_cls.return_value

            await scheduler.start()
            assert scheduler.is_running
            components.transcription.cleanup_old_files.assert_called_once()
            ids = [call.kwargs["id"] for call in apscheduler.add_job.call_args_list]
            assert ids == list(JOB_DEFINITIONS)
            apscheduler.start.assert_called_once()

            await scheduler.stop()
            assert not scheduler.is_running
            apscheduler.shutdown.assert_called_once_with(wait=True)

    @pytest.mark.asyncio
    async def test_stop_waits_for_submitted_collections(self, scheduler, components):
        components.channels.collect_channel_immediate.side_effect = RuntimeError("boom")

        with patch("src.scheduler.scheduler.AsyncIOScheduler"):
            await scheduler.start()
            task = scheduler.submit_channel_collection("c1")
            await scheduler.stop()

        assert task.done()
        assert task.result().status == JobStatus.FAILED
