"""
Extraction models: prediction candidates and extraction results.

Candidates are what the language model returns after parsing. They carry
lower-case directions and 0-100 confidences; the prediction writer maps
them onto the persisted ``Prediction`` entity.
"""

import hashlib
from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.models.schemas import AssetType, TranscriptSegment, TranscriptSource


CANDIDATE_DIRECTIONS = ("bullish", "bearish", "neutral")


def format_price(price: Optional[float]) -> str:
    """Render a price the way it appears inside a dedup key."""
    if price is None:
        return "notarget"
    value = float(price)
    if value.is_integer():
        return str(int(value))
    return str(value)


# =============================================================================
# Prediction Candidates
# =============================================================================


class CandidateAsset(BaseModel):
    symbol: str = "UNKNOWN"
    full_name: str = ""
    type: AssetType = AssetType.STOCK
    data_source: str = ""
    alternative_symbols: list[str] = Field(default_factory=list)
    confidence: float = Field(50, ge=0, le=100)


class CandidatePrediction(BaseModel):
    text: str = ""
    direction: str = "neutral"
    timeframe: str = ""
    target_date: Optional[date] = None
    target_price: Optional[float] = None
    confidence: float = Field(50, ge=0, le=100)


class TranscriptSpan(BaseModel):
    """Character offsets of a quote inside the transcript."""

    start: float
    end: float

    def contains(self, offset: float) -> bool:
        return self.start <= offset <= self.end


class CandidateContext(BaseModel):
    exact_quote: str = ""
    reasoning: str = ""
    market_factors: list[str] = Field(default_factory=list)
    technical_indicators: list[str] = Field(default_factory=list)
    fundamental_points: list[str] = Field(default_factory=list)
    position: Optional[TranscriptSpan] = None


class CandidateMetadata(BaseModel):
    model_used: str = ""
    quality_score: Optional[int] = None
    quality_grade: Optional[str] = None
    processing_time_ms: Optional[int] = None
    dedup_hash: str = ""


class PredictionCandidate(BaseModel):
    """A parsed, not yet persisted, prediction."""

    asset: CandidateAsset = Field(default_factory=CandidateAsset)
    prediction: CandidatePrediction = Field(default_factory=CandidatePrediction)
    context: CandidateContext = Field(default_factory=CandidateContext)
    metadata: CandidateMetadata = Field(default_factory=CandidateMetadata)

    @property
    def dedup_key(self) -> str:
        """Deterministic md5 over symbol, direction, target and timeframe."""
        raw = "-".join([
            self.asset.symbol,
            self.prediction.direction,
            format_price(self.prediction.target_price),
            self.prediction.timeframe,
        ])
        return hashlib.md5(raw.encode("utf-8")).hexdigest()


# =============================================================================
# Extraction Input and Output
# =============================================================================


class VideoContext(BaseModel):
    """Everything the extraction engine needs about one content item."""

    video_id: str
    video_url: str = ""
    title: str = ""
    description: str = ""
    channel_name: str = ""
    published_at: Optional[datetime] = None
    transcript: str = ""
    segments: list[TranscriptSegment] = Field(default_factory=list)


class TopPrediction(BaseModel):
    asset: str
    direction: str
    target: Optional[float] = None
    confidence: float


class ExtractionSummary(BaseModel):
    total_predictions: int = 0
    unique_assets: int = 0
    asset_list: list[str] = Field(default_factory=list)
    asset_types: list[str] = Field(default_factory=list)
    sentiment_breakdown: dict[str, int] = Field(default_factory=dict)
    average_confidence: int = 0
    top_predictions: list[TopPrediction] = Field(default_factory=list)


class ExtractionMetadata(BaseModel):
    video_id: str
    model_used: str = ""
    total_processing_time_ms: int = 0
    chunks_processed: int = 0
    deduplication_rate: float = 0.0
    tokens_used: int = 0
    estimated_cost: float = 0.0


class ExtractionResult(BaseModel):
    predictions: list[PredictionCandidate] = Field(default_factory=list)
    summary: ExtractionSummary = Field(default_factory=ExtractionSummary)
    metadata: ExtractionMetadata


class TranscriptResult(BaseModel):
    """Outcome of transcript acquisition."""

    transcript: str = ""
    segments: list[TranscriptSegment] = Field(default_factory=list)
    provenance: str = "all_methods_failed"
    source: TranscriptSource = TranscriptSource.FALLBACK

    @property
    def succeeded(self) -> bool:
        return self.source != TranscriptSource.FALLBACK

    def as_log_context(self) -> dict[str, Any]:
        return {
            "provenance": self.provenance,
            "source": self.source.value,
            "transcript_length": len(self.transcript),
        }
