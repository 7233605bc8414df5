"""
Data Models and Schemas.

This module defines the data structures used throughout ForecastPulse:

- schemas: Persisted entities (content items, channels, forecasters,
  predictions, assets, jobs) and the content status state machine
- extraction: Prediction candidates and extraction results

Entity Hierarchy:
- Forecaster: Person or outlet whose predictions are tracked
- Channel: Video channel or social handle owned by a forecaster
- ContentItem: One collected video or post, moved through ContentStatus
- Prediction: Stored prediction, later validated against prices
- Asset: Market instrument with price data and history

Example:
    from src.models import ContentItem, SourceType

    item = ContentItem(
        source_type=SourceType.YOUTUBE,
        source_id="dQw4w9WgXcQ",
        owner_id=forecaster.id,
    )
"""

from src.models.extraction import (
    CandidateAsset,
    CandidateContext,
    CandidateMetadata,
    CandidatePrediction,
    ExtractionMetadata,
    ExtractionResult,
    ExtractionSummary,
    PredictionCandidate,
    TopPrediction,
    TranscriptResult,
    TranscriptSpan,
    VideoContext,
)
from src.models.schemas import (
    MAX_RETRIES,
    PARTIAL_STATUSES,
    TERMINAL_STATUSES,
    Asset,
    AssetType,
    BaseEntity,
    Channel,
    ChannelCollectionJob,
    ChannelKeyword,
    CollectionJobConfig,
    CollectionJobType,
    CollectionSettings,
    ContentData,
    ContentItem,
    ContentKey,
    ContentStatus,
    Direction,
    DirectionCorrection,
    Event,
    ExtractionInfo,
    Forecaster,
    ForecasterMetrics,
    Job,
    JobStatus,
    JobType,
    Outcome,
    Prediction,
    PredictionMetadata,
    PredictionSource,
    PriceData,
    PriceHistory,
    PriceQuote,
    ProcessingMetadata,
    SourceType,
    TranscriptSegment,
    TranscriptSource,
    can_transition,
    utc_now,
)

__all__ = [
    # Enums
    "SourceType",
    "ContentStatus",
    "Direction",
    "Outcome",
    "AssetType",
    "JobType",
    "JobStatus",
    "CollectionJobType",
    "TranscriptSource",
    # State machine
    "MAX_RETRIES",
    "PARTIAL_STATUSES",
    "TERMINAL_STATUSES",
    "can_transition",
    "utc_now",
    # Core entities
    "BaseEntity",
    "ContentItem",
    "ContentKey",
    "ContentData",
    "ProcessingMetadata",
    "TranscriptSegment",
    "Forecaster",
    "ForecasterMetrics",
    "Channel",
    "ChannelKeyword",
    "CollectionSettings",
    "Prediction",
    "PredictionMetadata",
    "PredictionSource",
    "ExtractionInfo",
    "DirectionCorrection",
    "Asset",
    "PriceData",
    "PriceHistory",
    "PriceQuote",
    "Job",
    "ChannelCollectionJob",
    "CollectionJobConfig",
    "Event",
    # Extraction
    "PredictionCandidate",
    "CandidateAsset",
    "CandidatePrediction",
    "CandidateContext",
    "CandidateMetadata",
    "TranscriptSpan",
    "VideoContext",
    "ExtractionResult",
    "ExtractionSummary",
    "ExtractionMetadata",
    "TopPrediction",
    "TranscriptResult",
]
