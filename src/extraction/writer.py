"""Persist extracted candidates as predictions."""

from typing import Optional

import structlog
from pydantic import ValidationError as ModelValidationError

from src.core.exceptions import ForecastPulseError
from src.market.service import MarketDataService
from src.models.extraction import PredictionCandidate
from src.models.schemas import (
    ExtractionInfo,
    Outcome,
    Prediction,
    PredictionMetadata,
    PredictionSource,
    SourceType,
)
from src.monitoring.metrics import record_prediction_stored
from src.store.repository import PipelineRepository
from src.validation.direction import correct_direction

logger = structlog.get_logger(__name__)


class PredictionWriter:
    """Stores candidates with a baseline price and corrected direction."""

    def __init__(self, repository: PipelineRepository, market: MarketDataService):
        self._repository = repository
        self._market = market

    async def _baseline_price(self, symbol: str) -> Optional[float]:
        try:
            quote = await self._market.get_price(symbol)
        except ForecastPulseError as e:
            logger.warning("baseline_price_failed", symbol=symbol, error=str(e))
            return None
        return quote.price if quote and quote.price else None

    async def store_one(
        self,
        candidate: PredictionCandidate,
        forecaster_id: str,
        source_type: Optional[SourceType] = None,
        source_url: Optional[str] = None,
        content_id: Optional[str] = None,
    ) -> Prediction:
        asset = await self._repository.upsert_asset(
            candidate.asset.symbol,
            candidate.asset.type,
            name=candidate.asset.full_name or None,
        )
        baseline = await self._baseline_price(candidate.asset.symbol)
        direction, correction = correct_direction(
            candidate.prediction.target_price,
            baseline,
            candidate.prediction.direction,
        )
        if correction.correction_made:
            logger.info(
                "direction_corrected",
                symbol=asset.symbol,
                original=correction.original_ai_direction,
                corrected=direction.value,
                target_price=candidate.prediction.target_price,
                baseline_price=baseline,
            )

        confidence = candidate.prediction.confidence / 100
        prediction = Prediction(
            forecaster_id=forecaster_id,
            asset_id=asset.id,
            content_id=content_id,
            prediction=candidate.prediction.text,
            confidence=confidence,
            target_date=candidate.prediction.target_date,
            target_price=candidate.prediction.target_price,
            baseline_price=baseline,
            direction=direction,
            outcome=Outcome.PENDING,
            metadata=PredictionMetadata(
                source=PredictionSource(
                    type=source_type.value.lower() if source_type else None,
                    url=source_url,
                ),
                reasoning=candidate.context.reasoning,
                tags=candidate.context.technical_indicators,
                extraction=ExtractionInfo(
                    model=candidate.metadata.model_used,
                    confidence=confidence,
                    quality_score=candidate.metadata.quality_score,
                    quality_grade=candidate.metadata.quality_grade,
                ),
                direction_correction=correction,
            ),
        )
        stored = await self._repository.insert_prediction(prediction)
        record_prediction_stored(direction.value, correction.correction_made)
        return stored

    async def store(
        self,
        candidates: list[PredictionCandidate],
        forecaster_id: str,
        source_type: Optional[SourceType] = None,
        source_url: Optional[str] = None,
        content_id: Optional[str] = None,
    ) -> list[Prediction]:
        """Store every candidate; one failing candidate does not stop the rest.

        Returns:
            The predictions that were stored.
        """
        stored = []
        for candidate in candidates:
            try:
                stored.append(
                    await self.store_one(candidate, forecaster_id, source_type, source_url, content_id)
                )
            except (ForecastPulseError, ModelValidationError) as e:
                logger.error(
                    "prediction_store_failed",
                    forecaster_id=forecaster_id,
                    symbol=candidate.asset.symbol,
                    error=str(e),
                )

        logger.info(
            "predictions_stored",
            forecaster_id=forecaster_id,
            content_id=content_id,
            stored=len(stored),
            candidates=len(candidates),
        )
        return stored
