"""Quality scoring and result summaries for extracted candidates."""

from collections import Counter

from src.models.extraction import ExtractionSummary, PredictionCandidate, TopPrediction

BASE_SCORE = 50
CONFIDENCE_WEIGHT = 0.2
TOP_PREDICTIONS = 5

# (minimum score, grade), checked in order
GRADE_THRESHOLDS = ((90, "A"), (80, "B"), (70, "C"), (60, "D"))


def grade_for(score: float) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "F"


def quality_score(candidate: PredictionCandidate) -> float:
    prediction = candidate.prediction
    context = candidate.context

    score = float(BASE_SCORE)
    score += candidate.asset.confidence * CONFIDENCE_WEIGHT
    score += prediction.confidence * CONFIDENCE_WEIGHT
    if prediction.target_price is not None:
        score += 10
    if prediction.target_date is not None:
        score += 10
    if context.exact_quote:
        score += 10
    if context.reasoning:
        score += 5
    if context.market_factors:
        score += 5
    return score


def score_candidate(candidate: PredictionCandidate) -> PredictionCandidate:
    """Return a copy with ``quality_score`` and ``quality_grade`` set.

    The grade is informational; low grades are still persisted.
    """
    score = quality_score(candidate)
    metadata = candidate.metadata.model_copy(update={
        "quality_score": round(score),
        "quality_grade": grade_for(score),
    })
    return candidate.model_copy(update={"metadata": metadata})


def build_summary(candidates: list[PredictionCandidate]) -> ExtractionSummary:
    assets = list(dict.fromkeys(c.asset.symbol for c in candidates))
    asset_types = list(dict.fromkeys(c.asset.type.value for c in candidates))
    sentiment = Counter(c.prediction.direction for c in candidates)

    average = 0.0
    if candidates:
        average = sum(c.prediction.confidence for c in candidates) / len(candidates)

    ranked = sorted(candidates, key=lambda c: c.prediction.confidence, reverse=True)
    top = [
        TopPrediction(
            asset=c.asset.symbol,
            direction=c.prediction.direction,
            target=c.prediction.target_price,
            confidence=c.prediction.confidence,
        )
        for c in ranked[:TOP_PREDICTIONS]
    ]

    return ExtractionSummary(
        total_predictions=len(candidates),
        unique_assets=len(assets),
        asset_list=assets,
        asset_types=asset_types,
        sentiment_breakdown=dict(sentiment),
        average_confidence=round(average),
        top_predictions=top,
    )
