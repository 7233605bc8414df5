"""
Prediction outcome validation.

A PENDING prediction whose target date has passed is graded against the
asset's current price:

With a target price:
    |current - target| <= 5% of target                -> CORRECT
    within 10% and moving the predicted way           -> PARTIALLY_CORRECT
    otherwise                                         -> INCORRECT

Without a target price (24h change of the asset):
    > 1% in the predicted direction                   -> CORRECT
    |change| < 1%                                     -> PARTIALLY_CORRECT
    otherwise                                         -> INCORRECT

Each decided outcome is written once, folded into the forecaster's
running accuracy and recorded as a ``PREDICTION_VALIDATED`` event.

Usage:
    validator = OutcomeValidator(repository, market)
    results = await validator.validate_all_pending()
"""

import asyncio
from collections import defaultdict
from datetime import datetime
from typing import Optional

import structlog
from pydantic import BaseModel

from src.core.exceptions import ForecastPulseError, ValidationError
from src.market.service import MarketDataService
from src.models.schemas import Asset, Direction, Outcome, Prediction, utc_now
from src.monitoring.metrics import record_prediction_outcome
from src.store.repository import PipelineRepository

logger = structlog.get_logger(__name__)

PREDICTION_VALIDATED = "PREDICTION_VALIDATED"

CORRECT_TOLERANCE = 0.05
PARTIAL_TOLERANCE = 0.10
DIRECTIONAL_MOVE_PERCENT = 1.0
NEUTRAL_BAND_PERCENT = 2.0

OUTCOME_CREDIT = {
    Outcome.CORRECT: 1.0,
    Outcome.PARTIALLY_CORRECT: 0.5,
    Outcome.INCORRECT: 0.0,
}


class ValidationRecord(BaseModel):
    """Result of validating one prediction in a batch."""

    prediction_id: str
    success: bool
    outcome: Optional[Outcome] = None
    error: Optional[str] = None


def moved_as_predicted(direction: Direction, current: float, reference: Optional[float]) -> bool:
    """Check that the price moved from ``reference`` the way ``direction`` says."""
    if not reference:
        return False
    if direction == Direction.BULLISH:
        return current > reference
    if direction == Direction.BEARISH:
        return current < reference
    return abs(current - reference) / reference * 100 <= NEUTRAL_BAND_PERCENT


def target_outcome(prediction: Prediction, current: float, reference: Optional[float]) -> Outcome:
    target = prediction.target_price
    distance = abs(current - target)
    if distance <= CORRECT_TOLERANCE * abs(target):
        return Outcome.CORRECT
    if distance <= PARTIAL_TOLERANCE * abs(target) and moved_as_predicted(
        prediction.direction, current, reference
    ):
        return Outcome.PARTIALLY_CORRECT
    return Outcome.INCORRECT


def directional_outcome(direction: Direction, change_percent: float) -> Outcome:
    if direction == Direction.BULLISH and change_percent > DIRECTIONAL_MOVE_PERCENT:
        return Outcome.CORRECT
    if direction == Direction.BEARISH and change_percent < -DIRECTIONAL_MOVE_PERCENT:
        return Outcome.CORRECT
    if abs(change_percent) < DIRECTIONAL_MOVE_PERCENT:
        return Outcome.PARTIALLY_CORRECT
    return Outcome.INCORRECT


def change_24h_percent(current: float, asset: Asset, quote_change: Optional[float] = None) -> float:
    """24h change in percent, from the quote when known, else from the stored 24h reference."""
    if quote_change is not None:
        return quote_change
    previous = asset.price_data.price_24h_ago
    if previous:
        return (current - previous) / previous * 100
    return 0.0


class OutcomeValidator:
    """Grades due predictions and maintains forecaster accuracy."""

    def __init__(self, repository: PipelineRepository, market: MarketDataService):
        self._repository = repository
        self._market = market
        self._forecaster_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def _current_price(self, asset: Asset) -> tuple[Optional[float], Optional[float]]:
        """Return the current price and the quote's 24h change, if known."""
        try:
            quote = await self._market.get_price(asset.symbol)
        except ForecastPulseError as e:
            logger.warning("validation_price_failed", symbol=asset.symbol, error=str(e))
            quote = None

        if quote is not None and quote.price:
            return quote.price, quote.change_24h
        # Last stored snapshot
        return asset.price_data.price, asset.price_data.change_24h

    async def determine_outcome(self, prediction: Prediction, asset: Asset) -> Outcome:
        current, quote_change = await self._current_price(asset)
        if not current:
            return Outcome.PENDING

        if prediction.target_price is not None:
            reference = prediction.baseline_price or asset.price_data.price_24h_ago
            return target_outcome(prediction, current, reference)

        change = change_24h_percent(current, asset, quote_change)
        return directional_outcome(prediction.direction, change)

    async def validate(self, prediction_id: str, now: Optional[datetime] = None) -> Outcome:
        """Validate one prediction.

        Returns:
            The decided outcome, the existing outcome for an already validated
            prediction, or PENDING when no price is available.

        Raises:
            ValidationError: If the prediction or its asset is missing.
        """
        prediction = await self._repository.get_prediction(prediction_id)
        if prediction is None:
            raise ValidationError("Prediction not found", {"prediction_id": prediction_id})
        if prediction.outcome != Outcome.PENDING:
            return prediction.outcome

        asset = await self._repository.get_asset(prediction.asset_id) if prediction.asset_id else None
        if asset is None:
            raise ValidationError(
                "Cannot validate prediction without asset information",
                {"prediction_id": prediction_id},
            )

        outcome = await self.determine_outcome(prediction, asset)
        if outcome == Outcome.PENDING:
            logger.info("validation_deferred_no_price", prediction_id=prediction_id, symbol=asset.symbol)
            return outcome

        validated_at = now or utc_now()
        written = await self._repository.record_prediction_outcome(prediction_id, outcome, validated_at)
        if not written:
            # Validated concurrently; the other writer owns the metrics update
            latest = await self._repository.get_prediction(prediction_id)
            return latest.outcome if latest else outcome

        await self._update_forecaster_metrics(prediction.forecaster_id, outcome)
        await self._repository.record_event(
            PREDICTION_VALIDATED,
            "PREDICTION",
            prediction_id,
            {"outcome": outcome.value, "target_price": prediction.target_price},
        )
        record_prediction_outcome(outcome.value)
        logger.info(
            "prediction_validated",
            prediction_id=prediction_id,
            forecaster_id=prediction.forecaster_id,
            symbol=asset.symbol,
            outcome=outcome.value,
        )
        return outcome

    async def _update_forecaster_metrics(self, forecaster_id: str, outcome: Outcome) -> None:
        async with self._forecaster_locks[forecaster_id]:
            forecaster = await self._repository.get_forecaster(forecaster_id)
            if forecaster is None:
                logger.warning("validation_forecaster_missing", forecaster_id=forecaster_id)
                return

            metrics = forecaster.metrics
            total = metrics.total_predictions + 1
            correct = metrics.correct_predictions + OUTCOME_CREDIT[outcome]
            updated = metrics.model_copy(update={
                "total_predictions": total,
                "correct_predictions": correct,
                "accuracy": correct / total,
            })
            await self._repository.update_forecaster_metrics(forecaster_id, updated)

    async def validate_batch(
        self,
        prediction_ids: list[str],
        now: Optional[datetime] = None,
    ) -> list[ValidationRecord]:
        """Validate predictions one by one; failures are reported, not raised."""
        results = []
        for prediction_id in prediction_ids:
            try:
                outcome = await self.validate(prediction_id, now=now)
                results.append(ValidationRecord(prediction_id=prediction_id, success=True, outcome=outcome))
            except ForecastPulseError as e:
                logger.error("prediction_validation_failed", prediction_id=prediction_id, error=str(e))
                results.append(ValidationRecord(prediction_id=prediction_id, success=False, error=str(e)))
        return results

    async def validate_all_pending(self, now: Optional[datetime] = None) -> list[ValidationRecord]:
        """Validate every PENDING prediction whose target date has passed."""
        now = now or utc_now()
        due = await self._repository.find_due_pending_predictions(now.date())
        logger.info("validation_sweep_started", due=len(due))
        return await self.validate_batch([p.id for p in due], now=now)
