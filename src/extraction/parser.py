"""Parse raw model output into prediction candidates."""

import json
import re
from datetime import date
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from src.models.extraction import (
    CANDIDATE_DIRECTIONS,
    CandidateAsset,
    CandidateContext,
    CandidateMetadata,
    CandidatePrediction,
    PredictionCandidate,
    TranscriptSpan,
)
from src.models.schemas import AssetType

logger = structlog.get_logger(__name__)

JSON_ARRAY_PATTERN = re.compile(r"\[[\s\S]*\]")

DEFAULT_CONFIDENCE = 50.0


def normalize_asset_type(value: Any) -> AssetType:
    try:
        return AssetType(str(value or AssetType.STOCK.value).upper())
    except ValueError:
        return AssetType.STOCK


def _confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value:
        return DEFAULT_CONFIDENCE
    return max(0.0, min(100.0, float(value)))


def _price(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.replace("$", "").replace(",", "").strip()
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _date(value: Any) -> Optional[date]:
    if not isinstance(value, str) or len(value) < 10:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _strings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None]


def _span(value: Any) -> Optional[TranscriptSpan]:
    if not isinstance(value, dict):
        return None
    try:
        return TranscriptSpan(start=value["start"], end=value["end"])
    except (KeyError, ValidationError):
        return None


def _direction(value: Any) -> str:
    direction = str(value or "neutral").strip().lower()
    return direction if direction in CANDIDATE_DIRECTIONS else "neutral"


def _candidate(raw: dict[str, Any], model_used: str) -> PredictionCandidate:
    asset = raw.get("asset") or {}
    prediction = raw.get("prediction") or {}
    context = raw.get("context") or {}

    return PredictionCandidate(
        asset=CandidateAsset(
            symbol=str(asset.get("symbol") or "UNKNOWN").strip().upper(),
            full_name=str(asset.get("fullName") or ""),
            type=normalize_asset_type(asset.get("type")),
            data_source=str(asset.get("dataSource") or "unknown"),
            alternative_symbols=_strings(asset.get("alternativeSymbols")),
            confidence=_confidence(asset.get("confidence")),
        ),
        prediction=CandidatePrediction(
            text=str(prediction.get("text") or ""),
            direction=_direction(prediction.get("direction")),
            timeframe=str(prediction.get("timeframe") or ""),
            target_date=_date(prediction.get("targetDate")),
            target_price=_price(prediction.get("targetPrice")),
            confidence=_confidence(prediction.get("confidence")),
        ),
        context=CandidateContext(
            exact_quote=str(context.get("exactQuote") or ""),
            reasoning=str(context.get("reasoning") or ""),
            market_factors=_strings(context.get("marketFactors")),
            technical_indicators=_strings(context.get("technicalIndicators")),
            fundamental_points=_strings(context.get("fundamentalPoints")),
            position=_span(context.get("positionInTranscript")),
        ),
        metadata=CandidateMetadata(model_used=model_used),
    )


def parse_candidates(text: str, model_used: str = "") -> list[PredictionCandidate]:
    """Parse the first JSON array in ``text`` into candidates.

    Missing fields get defaults (symbol ``UNKNOWN``, confidence 50, direction
    ``neutral``). Elements that are not objects are skipped.

    Returns:
        Parsed candidates; empty when no array can be parsed.
    """
    match = JSON_ARRAY_PATTERN.search(text or "")
    if not match:
        logger.warning("extraction_no_json_array", preview=(text or "")[:200])
        return []

    try:
        raw_items = json.loads(match.group())
    except json.JSONDecodeError as e:
        logger.warning("extraction_parse_failed", error=str(e), preview=match.group()[:200])
        return []

    if not isinstance(raw_items, list):
        return []

    candidates = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        try:
            candidates.append(_candidate(raw, model_used))
        except (ValidationError, AttributeError) as e:
            logger.warning("extraction_candidate_skipped", error=str(e))

    logger.debug("extraction_parsed", candidates=len(candidates), model=model_used)
    return candidates
