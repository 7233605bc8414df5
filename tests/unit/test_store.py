"""Unit tests for the content state machine, the stores and the repository."""

from datetime import date, timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest
from postgrest.exceptions import APIError

from src.core.exceptions import InvalidTransitionError, StoreConnectionError, StoreError
from src.models.schemas import (
    MAX_RETRIES,
    ContentData,
    ContentItem,
    ContentStatus,
    JobStatus,
    JobType,
    Outcome,
    Prediction,
    SourceType,
    can_transition,
    utc_now,
)
from src.store.supabase_store import SupabaseStore


def video(source_id="vid1", owner_id="", **data) -> ContentItem:
    return ContentItem(
        source_type=SourceType.YOUTUBE,
        source_id=source_id,
        owner_id=owner_id,
        source_url=f"https://youtube.com/watch?v={source_id}",
        data=ContentData(title="BTC outlook", **data),
    )


class TestStateMachine:
    """Test allowed content status transitions."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (ContentStatus.COLLECTED, ContentStatus.AUDIO_DOWNLOADING),
            (ContentStatus.COLLECTED, ContentStatus.TRANSCRIBED),
            (ContentStatus.TRANSCRIBED, ContentStatus.EXTRACTING),
            (ContentStatus.EXTRACTING, ContentStatus.PROCESSED),
            (ContentStatus.TRANSCRIBING, ContentStatus.AUDIO_DOWNLOADING),
            (ContentStatus.PROCESSED, ContentStatus.FAILED),
            (ContentStatus.COLLECTED, ContentStatus.FAILED),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (ContentStatus.EXTRACTING, ContentStatus.COLLECTED),
            (ContentStatus.PROCESSED, ContentStatus.EXTRACTING),
            (ContentStatus.FAILED, ContentStatus.COLLECTED),
            (ContentStatus.TRANSCRIBED, ContentStatus.AUDIO_DOWNLOADING),
        ],
    )
    def test_forbidden(self, current, target):
        assert not can_transition(current, target)


class TestInMemoryStore:
    """Test the table API of the in-memory store."""

    @pytest.mark.asyncio
    async def test_insert_assigns_id_and_created_at(self, store):
        row = await store.insert("things", {"name": "a"})

        assert row["id"]
        assert row["created_at"]

    @pytest.mark.asyncio
    async def test_upsert_updates_on_conflict(self, store):
        first = await store.upsert("things", {"k": 1, "v": "a"}, on_conflict=("k",))
        second = await store.upsert("things", {"k": 1, "v": "b", "id": "other"}, on_conflict=("k",))

        assert second["id"] == first["id"]
        assert second["v"] == "b"
        assert len(store.rows("things")) == 1

    @pytest.mark.asyncio
    async def test_find_filters_orders_and_limits(self, store):
        for value in (3, 1, None, 2):
            await store.insert("things", {"kind": "x", "n": value})
        await store.insert("things", {"kind": "y", "n": 0})

        rows = await store.find("things", {"kind": "x"}, order_by="n", descending=True, limit=3)

        assert [r["n"] for r in rows] == [3, 2, 1]

    @pytest.mark.asyncio
    async def test_where_operators(self, store):
        for n in range(5):
            await store.insert("things", {"n": n, "tag": None if n % 2 else "even"})

        assert len(await store.find("things", where=[("n", "gte", 3)])) == 2
        assert len(await store.find("things", where=[("n", "in", [0, 4])])) == 2
        assert len(await store.find("things", where=[("tag", "is", None)])) == 2
        with pytest.raises(ValueError):
            await store.find("things", where=[("n", "like", 1)])

    @pytest.mark.asyncio
    async def test_conditional_update_and_delete(self, store):
        await store.insert("things", {"id": "a", "done": None})

        assert len(await store.update("things", {"done": 1}, {"id": "a"}, where=[("done", "is", None)])) == 1
        assert await store.update("things", {"done": 2}, {"id": "a"}, where=[("done", "is", None)]) == []
        assert await store.delete("things", {"id": "a"}) == 1
        assert await store.delete("things", {"id": "a"}) == 0


class TestContentRepository:
    """Test content item persistence and the retry counter."""

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, repository, store):
        """Collecting the same content twice keeps one row and its progress."""
        first = await repository.upsert_content_item(video())
        await repository.transition_content(first, ContentStatus.TRANSCRIBED, data=first.data.model_copy(
            update={"transcript": "hello"}
        ))

        again = await repository.upsert_content_item(video())

        assert again.id == first.id
        assert again.status == ContentStatus.TRANSCRIBED
        assert again.data.transcript == "hello"
        assert len(store.rows("content_items")) == 1

    @pytest.mark.asyncio
    async def test_same_content_for_different_owners(self, repository, store):
        await repository.upsert_content_item(video(owner_id="f1"))
        await repository.upsert_content_item(video(owner_id="f2"))

        assert len(store.rows("content_items")) == 2

    @pytest.mark.asyncio
    async def test_invalid_transition_raises(self, repository):
        item = await repository.upsert_content_item(video())
        item = await repository.transition_content(item, ContentStatus.PROCESSED)

        assert item.processed_at is not None
        with pytest.raises(InvalidTransitionError):
            await repository.transition_content(item, ContentStatus.EXTRACTING)

    @pytest.mark.asyncio
    async def test_failures_exhaust_retries(self, repository):
        """The item fails permanently after MAX_RETRIES recorded failures."""
        item = await repository.upsert_content_item(video())

        for _ in range(MAX_RETRIES - 1):
            item = await repository.record_content_failure(item, "boom")
            assert item.status == ContentStatus.COLLECTED
        item = await repository.record_content_failure(item, "boom")

        assert item.status == ContentStatus.FAILED
        assert item.processing_metadata.retry_count == MAX_RETRIES
        assert item.processing_metadata.error == "boom"
        assert await repository.find_resumable_content() == []

    @pytest.mark.asyncio
    async def test_retention_deletes_only_old_terminal_items(self, repository):
        old_done = await repository.upsert_content_item(video("old"))
        await repository.transition_content(old_done, ContentStatus.PROCESSED)
        await repository.upsert_content_item(video("open"))

        removed = await repository.delete_terminal_content_before(utc_now() + timedelta(seconds=1))

        assert removed == 1
        assert [i.source_id for i in await repository.find_resumable_content()] == ["open"]


class TestPredictionRepository:
    """Test prediction queries and write-once outcomes."""

    @pytest.mark.asyncio
    async def test_outcome_is_written_once(self, repository):
        prediction = await repository.insert_prediction(Prediction(forecaster_id="f1"))
        now = utc_now()

        assert await repository.record_prediction_outcome(prediction.id, Outcome.CORRECT, now) is True
        assert await repository.record_prediction_outcome(prediction.id, Outcome.INCORRECT, now) is False
        assert (await repository.get_prediction(prediction.id)).outcome == Outcome.CORRECT

    @pytest.mark.asyncio
    async def test_due_pending_predictions(self, repository):
        due = await repository.insert_prediction(Prediction(forecaster_id="f1", target_date=date(2025, 1, 1)))
        await repository.insert_prediction(Prediction(forecaster_id="f1", target_date=date(2025, 3, 1)))
        await repository.insert_prediction(Prediction(forecaster_id="f1"))

        found = await repository.find_due_pending_predictions(date(2025, 2, 1))

        assert [p.id for p in found] == [due.id]


class TestJobLog:
    """Test job and event bookkeeping."""

    @pytest.mark.asyncio
    async def test_job_lifecycle(self, repository):
        job = await repository.start_job(JobType.VALIDATION, {"job": "validate_predictions"})
        finished = await repository.finish_job(job, JobStatus.COMPLETED, result={"checked": 3})

        stored = (await repository.list_jobs(JobType.VALIDATION))[0]
        assert stored.status == JobStatus.COMPLETED
        assert stored.payload == {"job": "validate_predictions", "checked": 3}
        assert finished.completed_at is not None

    @pytest.mark.asyncio
    async def test_cleanup_keeps_running_jobs(self, repository):
        running = await repository.start_job(JobType.CLEANUP)
        done = await repository.start_job(JobType.CLEANUP)
        await repository.finish_job(done, JobStatus.FAILED, error="x")

        removed = await repository.delete_finished_jobs_before(utc_now() + timedelta(seconds=1))

        assert removed == 1
        assert [j.id for j in await repository.list_jobs()] == [running.id]

    @pytest.mark.asyncio
    async def test_channel_collection_job(self, repository, channel):
        job = await repository.start_channel_collection_job(channel)
        finished = await repository.finish_channel_collection_job(job, JobStatus.COMPLETED, 3, 2)

        assert job.job_type.value == "FULL_SCAN"
        assert finished.videos_found == 3
        assert finished.videos_processed == 2


class TestSupabaseStore:
    """Test query building against a stubbed supabase client."""

    @pytest.fixture
    def query(self):
        query = MagicMock()
        builders = ("select", "insert", "upsert", "update", "delete", "eq", "in_", "is_", "lte", "order", "limit")
        for method in builders:
            getattr(query, method).return_value = query
        query.execute.return_value = SimpleNamespace(data=[{"id": "p1"}])
        return query

    @pytest.fixture
    def supabase_store(self, query) -> SupabaseStore:
        store = SupabaseStore("https://project.supabase.co", "service-key")
        store._supabase = MagicMock()
        store._supabase.table.return_value = query
        return store

    @pytest.mark.asyncio
    async def test_find_builds_filters(self, supabase_store, query):
        rows = await supabase_store.find(
            "predictions",
            {"outcome": Outcome.PENDING},
            where=[("target_date", "lte", date(2025, 1, 31)), ("status", "in", [JobStatus.RUNNING])],
            order_by="created_at",
            descending=True,
            limit=5,
        )

        assert rows == [{"id": "p1"}]
        supabase_store._supabase.table.assert_called_once_with("predictions")
        query.eq.assert_called_once_with("outcome", "PENDING")
        query.lte.assert_called_once_with("target_date", "2025-01-31")
        query.in_.assert_called_once_with("status", ["RUNNING"])
        query.order.assert_called_once_with("created_at", desc=True)
        query.limit.assert_called_once_with(5)

    @pytest.mark.asyncio
    async def test_null_filter_and_upsert_payload(self, supabase_store, query):
        await supabase_store.update(
            "predictions", {"outcome": Outcome.CORRECT}, where=[("validated_at", "is", None)]
        )
        await supabase_store.upsert(
            "assets",
            {"id": "a1", "symbol": "BTC", "created_at": utc_now()},
            on_conflict=("symbol", "type"),
        )

        query.is_.assert_called_once_with("validated_at", "null")
        query.update.assert_called_once_with({"outcome": "CORRECT"})
        query.upsert.assert_called_once_with({"symbol": "BTC"}, on_conflict="symbol,type")

    @pytest.mark.asyncio
    async def test_transport_errors_are_retryable(self, supabase_store, query):
        query.execute.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(StoreConnectionError):
            await supabase_store.find("jobs")

    @pytest.mark.asyncio
    async def test_rejected_queries_raise_store_error(self, supabase_store, query):
        query.execute.side_effect = APIError({"message": "relation does not exist", "code": "42P01"})

        with pytest.raises(StoreError, match="relation does not exist"):
            await supabase_store.delete("jobs", {"id": "j1"})
