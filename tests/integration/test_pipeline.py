"""Integration tests for the collection -> extraction -> validation pipeline.

Runs the real services over the in-memory store. Only the network edges
(platform API, caption tiers, LLM provider, price feeds) are replaced.
"""

import json
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.collectors.base import SourceItem
from src.collectors.content import ContentCollector
from src.extraction.engine import ExtractionEngine
from src.extraction.llm import FallbackLLM
from src.extraction.writer import PredictionWriter
from src.models.extraction import TranscriptResult
from src.models.schemas import (
    ContentKey,
    ContentStatus,
    Direction,
    JobStatus,
    Outcome,
    SourceType,
    TranscriptSource,
    utc_now,
)
from src.scheduler.channels import ChannelCollectionService
from src.transcription.service import TranscriptionService
from src.validation.outcome import OutcomeValidator
from src.validation.scoring import BrierScoreService, RankingService
from tests.conftest import FakeProvider, quote

VIDEO_ID = "aaaaaaaaaaa"
TRANSCRIPT = (
    "Welcome back everyone. I think we hit a hundred k on Bitcoin by the end of "
    "the year, the ETF flows are just too strong to ignore."
)
MODEL_OUTPUT = json.dumps([{
    "asset": {"symbol": "BTC", "fullName": "Bitcoin", "type": "crypto", "confidence": 90},
    "prediction": {
        "text": "Bitcoin will reach 100k by year end",
        "direction": "bullish",
        "timeframe": "end of year",
        "targetDate": "2025-12-31",
        "targetPrice": 100000,
        "confidence": 80,
    },
    "context": {"exactQuote": "I think we hit a hundred k", "reasoning": "ETF flows"},
}])


@pytest.fixture
def platform():
    collector = MagicMock()
    collector.list_recent = AsyncMock(return_value=[
        SourceItem(
            source_type=SourceType.YOUTUBE,
            source_id=VIDEO_ID,
            source_url=f"https://youtube.com/watch?v={VIDEO_ID}",
            title="Bitcoin price prediction",
        )
    ])
    return collector


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider("anthropic", MODEL_OUTPUT)


@pytest.fixture
def pipeline(repository, market, platform, provider, tmp_path):
    captions = AsyncMock()
    captions.get_transcript.return_value = TranscriptResult(
        transcript=TRANSCRIPT,
        provenance="youtube_scraper_en",
        source=TranscriptSource.YOUTUBE_CAPTIONS,
    )
    transcription = TranscriptionService(
        repository, captions, AsyncMock(), AsyncMock(), AsyncMock(), temp_dir=tmp_path
    )
    engine = ExtractionEngine(FallbackLLM(provider), today=lambda: date(2025, 3, 1))
    content = ContentCollector(
        repository,
        transcription,
        engine,
        PredictionWriter(repository, market),
        {SourceType.YOUTUBE: platform},
        sleep=AsyncMock(),
    )
    channels = ChannelCollectionService(repository, content, sleep=AsyncMock())
    return content, channels


class TestPipeline:
    """End-to-end flow over the in-memory store."""

    @pytest.mark.asyncio
    async def test_channel_to_ranked_forecaster(self, pipeline, repository, market, channel, provider):
        content, channels = pipeline
        market.get_price.return_value = quote("BTC", 60000.0)

        jobs = await channels.process_scheduled_collection()

        assert [job.status for job in jobs] == [JobStatus.COMPLETED]
        assert (jobs[0].videos_found, jobs[0].videos_processed) == (1, 1)
        assert "Bitcoin price prediction" in provider.prompts[0]

        item = await repository.get_content_item(
            ContentKey(SourceType.YOUTUBE, VIDEO_ID, channel.forecaster_id)
        )
        assert item.status == ContentStatus.PROCESSED
        assert item.data.transcript == TRANSCRIPT

        [prediction] = await repository.list_predictions(channel.forecaster_id)
        assert prediction.content_id == item.id
        assert prediction.baseline_price == 60000.0
        assert prediction.direction == Direction.BULLISH
        assert prediction.target_date == date(2025, 12, 31)
        assert prediction.metadata.extraction.model == "anthropic-model"

        # Past the target date, BTC trades within 5% of the target
        market.get_price.return_value = quote("BTC", 98000.0)
        validator = OutcomeValidator(repository, market)
        records = await validator.validate_all_pending(utc_now())

        assert [r.outcome for r in records] == [Outcome.CORRECT]
        forecaster = await repository.get_forecaster(channel.forecaster_id)
        assert forecaster.metrics.accuracy == 1.0
        assert [e.entity_id for e in await repository.list_events()] == [prediction.id]

        scores = await BrierScoreService(repository).calculate_all()
        assert scores[channel.forecaster_id] == pytest.approx((0.8 - 1.0) ** 2)

        [ranked] = await RankingService(repository).update_all()
        assert ranked.forecaster_id == channel.forecaster_id
        assert (await repository.get_forecaster(channel.forecaster_id)).metrics.rank == 1

    @pytest.mark.asyncio
    async def test_second_sweep_skips_processed_content(self, pipeline, repository, channel, provider):
        content, channels = pipeline

        await channels.collect_from_channel(channel)
        job = await channels.collect_from_channel(channel)

        assert (job.videos_found, job.videos_processed) == (1, 0)
        assert len(provider.prompts) == 1
        assert len(await repository.list_predictions(channel.forecaster_id)) == 1
