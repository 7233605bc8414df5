"""
Three-layer deduplication of prediction candidates.

1. Hash: the same ``dedup_key`` was already kept.
2. Position: the candidate's span starts or ends inside a kept span.
3. Similar: same symbol and direction with targets less than 0.01 apart
   (a missing target counts as 0). The higher prediction confidence wins.
"""

from typing import Optional

from src.models.extraction import PredictionCandidate

SIMILAR_TARGET_TOLERANCE = 0.01


def overlaps_kept(candidate: PredictionCandidate, kept: dict[str, PredictionCandidate]) -> bool:
    span = candidate.context.position
    if span is None:
        return False
    for existing in kept.values():
        other = existing.context.position
        if other is not None and (other.contains(span.start) or other.contains(span.end)):
            return True
    return False


def find_similar(
    candidate: PredictionCandidate,
    kept: dict[str, PredictionCandidate],
) -> Optional[str]:
    """Return the key of a kept candidate similar to ``candidate``."""
    target = candidate.prediction.target_price or 0.0
    for key, existing in kept.items():
        if (
            existing.asset.symbol == candidate.asset.symbol
            and existing.prediction.direction == candidate.prediction.direction
            and abs((existing.prediction.target_price or 0.0) - target) < SIMILAR_TARGET_TOLERANCE
        ):
            return key
    return None


def deduplicate(candidates: list[PredictionCandidate]) -> list[PredictionCandidate]:
    """Drop duplicate candidates, keeping first-seen order otherwise.

    Returns:
        The kept candidates, each with ``metadata.dedup_hash`` set.
    """
    kept: dict[str, PredictionCandidate] = {}

    for candidate in candidates:
        key = candidate.dedup_key
        candidate = candidate.model_copy(
            update={"metadata": candidate.metadata.model_copy(update={"dedup_hash": key})}
        )
        similar = find_similar(candidate, kept)

        if key not in kept and similar is None and not overlaps_kept(candidate, kept):
            kept[key] = candidate
        elif similar is not None:
            existing = kept[similar]
            if candidate.prediction.confidence > existing.prediction.confidence:
                del kept[similar]
                kept[key] = candidate

    return list(kept.values())


def deduplication_rate(before: int, after: int) -> float:
    """Percentage of candidates removed."""
    if before <= 0:
        return 0.0
    return (before - after) / before * 100
