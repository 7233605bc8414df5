"""Unit tests for persisting extracted predictions."""

import pytest

from src.core.exceptions import MarketDataError
from src.extraction.writer import PredictionWriter
from src.models.extraction import CandidateAsset, CandidatePrediction, PredictionCandidate
from src.models.schemas import AssetType, Direction, Outcome, SourceType
from tests.conftest import quote


def candidate(symbol="BTC", direction="bearish", target=120.0, confidence=70.0) -> PredictionCandidate:
    return PredictionCandidate(
        asset=CandidateAsset(symbol=symbol, full_name="Bitcoin", type=AssetType.CRYPTO),
        prediction=CandidatePrediction(
            text=f"{symbol} to {target}",
            direction=direction,
            target_price=target,
            confidence=confidence,
        ),
    )


@pytest.fixture
def writer(repository, market) -> PredictionWriter:
    return PredictionWriter(repository, market)


class TestPredictionWriter:
    """Test baseline capture and direction correction on store."""

    @pytest.mark.asyncio
    async def test_direction_corrected_from_baseline(self, writer, market, repository, forecaster):
        market.get_price.return_value = quote("BTC", 100.0)

        stored = await writer.store_one(
            candidate(),
            forecaster.id,
            source_type=SourceType.YOUTUBE,
            source_url="https://youtube.com/watch?v=abc",
            content_id="content-1",
        )

        assert stored.direction == Direction.BULLISH
        assert stored.baseline_price == 100.0
        assert stored.confidence == 0.7
        assert stored.outcome == Outcome.PENDING
        correction = stored.metadata.direction_correction
        assert correction.correction_made
        assert correction.original_ai_direction == "BEARISH"
        assert correction.price_change_percent == pytest.approx(20.0)
        assert stored.metadata.source.type == "youtube"

        saved = await repository.get_prediction(stored.id)
        assert saved.asset_id == stored.asset_id
        assert saved.content_id == "content-1"

    @pytest.mark.asyncio
    async def test_price_failure_keeps_model_direction(self, writer, market, forecaster):
        market.get_price.side_effect = MarketDataError("all sources failed")

        stored = await writer.store_one(candidate(), forecaster.id)

        assert stored.baseline_price is None
        assert stored.direction == Direction.BEARISH
        assert not stored.metadata.direction_correction.correction_made

    @pytest.mark.asyncio
    async def test_assets_are_shared_between_predictions(self, writer, repository, forecaster):
        first, second = await writer.store(
            [candidate(target=150.0), candidate(target=90.0)], forecaster.id
        )

        assert first.asset_id == second.asset_id
        assert len(await repository.list_assets()) == 1
        assert len(await repository.list_predictions(forecaster.id)) == 2
