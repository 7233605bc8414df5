"""
Forecaster scoring: Brier scores and the composite ranking.

Brier score (lower is better, 0 = perfect):

    mean((confidence - actual)^2)   actual = 1 for CORRECT, else 0

Composite ranking score, each term on a 0-100 scale:

    0.30 * accuracy
  + 0.25 * (1 - brier)          (50 when no Brier score exists)
  + 0.15 * volume               min(total / 10, 100)
  + 0.20 * recent accuracy      validated predictions made in the last 30 days
  + 0.10 * consistency          1 - stddev(monthly accuracy), 0.5 under 10 predictions
"""

import math
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Optional

import structlog
from pydantic import BaseModel

from src.core.exceptions import ForecastPulseError
from src.models.schemas import Forecaster, Outcome, Prediction, utc_now
from src.store.repository import PipelineRepository

logger = structlog.get_logger(__name__)

DEFAULT_CONFIDENCE = 0.5
RECENT_WINDOW_DAYS = 30
MIN_PREDICTIONS_FOR_CONSISTENCY = 10
DEFAULT_CONSISTENCY = 0.5
MISSING_BRIER_SCORE = 50.0

RANKING_WEIGHTS = {
    "accuracy": 0.30,
    "brier_score": 0.25,
    "volume": 0.15,
    "recency": 0.20,
    "consistency": 0.10,
}


def brier_score(predictions: list[Prediction]) -> Optional[float]:
    """Mean squared error of confidences over resolved predictions."""
    resolved = [p for p in predictions if p.outcome != Outcome.PENDING]
    if not resolved:
        return None
    total = 0.0
    for prediction in resolved:
        confidence = prediction.confidence if prediction.confidence is not None else DEFAULT_CONFIDENCE
        actual = 1.0 if prediction.outcome == Outcome.CORRECT else 0.0
        total += (confidence - actual) ** 2
    return total / len(resolved)


def correct_ratio(predictions: list[Prediction]) -> float:
    if not predictions:
        return 0.0
    return sum(1 for p in predictions if p.outcome == Outcome.CORRECT) / len(predictions)


def consistency(predictions: list[Prediction]) -> float:
    """One minus the standard deviation of monthly accuracy."""
    resolved = [p for p in predictions if p.outcome != Outcome.PENDING]
    if len(resolved) < MIN_PREDICTIONS_FOR_CONSISTENCY:
        return DEFAULT_CONSISTENCY

    months: dict[tuple[int, int], list[Prediction]] = defaultdict(list)
    for prediction in resolved:
        months[(prediction.created_at.year, prediction.created_at.month)].append(prediction)

    accuracies = [correct_ratio(group) for group in months.values()]
    mean = sum(accuracies) / len(accuracies)
    variance = sum((a - mean) ** 2 for a in accuracies) / len(accuracies)
    return max(0.0, 1 - math.sqrt(variance))


class RankingScore(BaseModel):
    forecaster_id: str
    name: str
    composite: float
    accuracy: float
    brier_score: float
    volume: float
    recency: float
    consistency: float
    rank: Optional[int] = None


def ranking_score(
    forecaster: Forecaster,
    predictions: list[Prediction],
    now: Optional[datetime] = None,
) -> RankingScore:
    now = now or utc_now()
    recent_cutoff = now - timedelta(days=RECENT_WINDOW_DAYS)
    recent = [
        p for p in predictions
        if p.outcome != Outcome.PENDING and p.created_at >= recent_cutoff
    ]
    brier = brier_score(predictions)

    terms = {
        "accuracy": correct_ratio(predictions) * 100,
        "brier_score": (1 - brier) * 100 if brier is not None else MISSING_BRIER_SCORE,
        "volume": min(len(predictions) / 10, 100.0),
        "recency": correct_ratio(recent) * 100,
        "consistency": consistency(predictions) * 100,
    }
    composite = sum(terms[name] * weight for name, weight in RANKING_WEIGHTS.items())
    return RankingScore(
        forecaster_id=forecaster.id,
        name=forecaster.name,
        composite=composite,
        **terms,
    )


class BrierScoreService:
    """Calculates and stores Brier scores."""

    def __init__(self, repository: PipelineRepository):
        self._repository = repository

    async def calculate(self, forecaster_id: str) -> Optional[float]:
        """Calculate and store a forecaster's Brier score.

        Returns:
            The score, or None when no prediction has been resolved.
        """
        predictions = await self._repository.list_validated_predictions(forecaster_id)
        score = brier_score(predictions)
        if score is None:
            return None

        forecaster = await self._repository.get_forecaster(forecaster_id)
        if forecaster is None:
            return score

        metrics = forecaster.metrics.model_copy(update={
            "brier_score": score,
            "last_calculated": utc_now(),
        })
        await self._repository.update_forecaster_metrics(forecaster_id, metrics)
        logger.info("brier_score_calculated", forecaster_id=forecaster_id, brier_score=round(score, 4))
        return score

    async def calculate_all(self) -> dict[str, Optional[float]]:
        """Calculate every active forecaster's score; failures are logged per forecaster."""
        results: dict[str, Optional[float]] = {}
        for forecaster in await self._repository.list_forecasters():
            try:
                results[forecaster.id] = await self.calculate(forecaster.id)
            except ForecastPulseError as e:
                logger.error("brier_score_failed", forecaster_id=forecaster.id, name=forecaster.name, error=str(e))
        return results


class RankingService:
    """Ranks verified forecasters by composite score."""

    def __init__(self, repository: PipelineRepository):
        self._repository = repository

    async def update_all(self, now: Optional[datetime] = None) -> list[RankingScore]:
        """Recompute ranks for every verified forecaster.

        Returns:
            Scores ordered by rank.
        """
        now = now or utc_now()
        forecasters = await self._repository.list_forecasters(verified_only=True)

        scores = []
        for forecaster in forecasters:
            predictions = await self._repository.list_predictions(forecaster.id)
            scores.append((forecaster, ranking_score(forecaster, predictions, now)))

        scores.sort(key=lambda pair: pair[1].composite, reverse=True)

        ranked = []
        for rank, (forecaster, score) in enumerate(scores, start=1):
            latest = await self._repository.get_forecaster(forecaster.id) or forecaster
            metrics = latest.metrics.model_copy(update={
                "rank": rank,
                "ranking_score": score.composite,
                "last_ranked": now,
            })
            await self._repository.update_forecaster_metrics(forecaster.id, metrics)
            ranked.append(score.model_copy(update={"rank": rank}))

        logger.info("rankings_updated", forecasters=len(ranked))
        return ranked
