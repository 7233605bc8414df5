"""Pydantic models for ForecastPulse persisted entities."""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, NamedTuple, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


# =============================================================================
# Enumerations
# =============================================================================


class SourceType(str, Enum):
    """Content and channel platforms."""
    YOUTUBE = "YOUTUBE"
    TWITTER = "TWITTER"


class ContentStatus(str, Enum):
    """Processing state of a content item."""
    COLLECTED = "COLLECTED"
    AUDIO_DOWNLOADING = "AUDIO_DOWNLOADING"
    AUDIO_DOWNLOADED = "AUDIO_DOWNLOADED"
    TRANSCRIBING = "TRANSCRIBING"
    TRANSCRIBED = "TRANSCRIBED"
    EXTRACTING = "EXTRACTING"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"


class Direction(str, Enum):
    """Stored (upper-case) prediction direction."""
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class Outcome(str, Enum):
    """Validation outcome of a prediction."""
    PENDING = "PENDING"
    CORRECT = "CORRECT"
    INCORRECT = "INCORRECT"
    PARTIALLY_CORRECT = "PARTIALLY_CORRECT"


class AssetType(str, Enum):
    """Market instrument classes."""
    CRYPTO = "CRYPTO"
    STOCK = "STOCK"
    ETF = "ETF"
    INDEX = "INDEX"
    COMMODITY = "COMMODITY"
    CURRENCY = "CURRENCY"
    BOND = "BOND"
    OPTION = "OPTION"
    FUTURE = "FUTURE"


class JobType(str, Enum):
    """Kinds of rows written to the job log."""
    CHANNEL_COLLECTION = "CHANNEL_COLLECTION"
    PRICE_REFRESH = "PRICE_REFRESH"
    VALIDATION = "VALIDATION"
    BRIER_SCORE = "BRIER_SCORE"
    RANKING = "RANKING"
    CLEANUP = "CLEANUP"


class JobStatus(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class CollectionJobType(str, Enum):
    """Primary channels get a full scan, secondary channels a keyword scan."""
    FULL_SCAN = "FULL_SCAN"
    KEYWORD_SCAN = "KEYWORD_SCAN"


class TranscriptSource(str, Enum):
    """Fallback tier that produced a transcript."""
    YOUTUBE_CAPTIONS = "youtube_captions"
    YOUTUBE_TRANSCRIPT_API = "youtube_transcript_api"
    WHISPER_TRANSCRIPTION = "whisper_transcription"
    FALLBACK = "fallback"


# =============================================================================
# Content State Machine
# =============================================================================

STATUS_ORDER: list[ContentStatus] = [
    ContentStatus.COLLECTED,
    ContentStatus.AUDIO_DOWNLOADING,
    ContentStatus.AUDIO_DOWNLOADED,
    ContentStatus.TRANSCRIBING,
    ContentStatus.TRANSCRIBED,
    ContentStatus.EXTRACTING,
    ContentStatus.PROCESSED,
]

# Items in these states already hold paid-for work (audio, API calls)
PARTIAL_STATUSES = frozenset({
    ContentStatus.AUDIO_DOWNLOADED,
    ContentStatus.TRANSCRIBING,
    ContentStatus.TRANSCRIBED,
    ContentStatus.EXTRACTING,
})

TERMINAL_STATUSES = frozenset({ContentStatus.PROCESSED, ContentStatus.FAILED})

# Backward moves allowed when a kept audio file vanished and must be fetched again
_REDOWNLOAD_FROM = frozenset({
    ContentStatus.AUDIO_DOWNLOADED,
    ContentStatus.TRANSCRIBING,
})

MAX_RETRIES = 3


def can_transition(current: ContentStatus, target: ContentStatus) -> bool:
    """Check whether a content item may move from ``current`` to ``target``.

    Moves are forward-only (re-entering the same state is allowed), FAILED
    is reachable from anywhere, and nothing leaves FAILED or PROCESSED
    except into FAILED.
    """
    if target == ContentStatus.FAILED:
        return True
    if current in TERMINAL_STATUSES:
        return current == target
    if target == ContentStatus.AUDIO_DOWNLOADING and current in _REDOWNLOAD_FROM:
        return True
    return STATUS_ORDER.index(target) >= STATUS_ORDER.index(current)


class ContentKey(NamedTuple):
    """Composite identity of a content item."""

    source_type: SourceType
    source_id: str
    owner_id: str = ""


# =============================================================================
# Base Models
# =============================================================================


def to_json_value(value: Any) -> Any:
    """Convert a Python value into the JSON form stored in the database."""
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(item) for item in value]
    return value


class BaseEntity(BaseModel):
    """Base model with common fields and conversion methods."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    def to_db_row(self) -> dict[str, Any]:
        """Convert model to database row format (e.g., for Supabase/PostgreSQL)."""
        return to_json_value(self.model_dump())

    @classmethod
    def from_db_row(cls, row: dict[str, Any]):
        """Create model instance from database row."""
        return cls.model_validate(row)


# =============================================================================
# Content
# =============================================================================


class TranscriptSegment(BaseModel):
    """One timed transcript segment (seconds)."""

    start: float
    end: float
    text: str


class ContentData(BaseModel):
    """Source payload of a content item."""

    title: str = ""
    description: str = ""
    transcript: Optional[str] = None
    transcript_segments: list[TranscriptSegment] = Field(default_factory=list)
    transcript_provenance: Optional[str] = None
    published_at: Optional[datetime] = None


class ProcessingMetadata(BaseModel):
    """Resume and retry bookkeeping for a content item."""

    audio_path: Optional[str] = Field(None, description="Downloaded audio kept for resume")
    error: Optional[str] = Field(None, description="Last recorded error")
    retry_count: int = Field(0, ge=0, description="Recorded failures so far")
    last_step: Optional[str] = Field(None, description="Last completed step marker")
    transcript_length: Optional[int] = None

    @property
    def retries_exhausted(self) -> bool:
        return self.retry_count >= MAX_RETRIES


class ContentItem(BaseEntity):
    """One collected video or post."""

    id: str = Field(default_factory=new_id, description="Unique identifier")
    source_type: SourceType = Field(..., description="Platform the content came from")
    source_id: str = Field(..., min_length=1, description="Video id or tweet id")
    owner_id: str = Field("", description="Forecaster id, empty when unattributed")
    source_url: str = Field("", description="Canonical URL of the content")
    data: ContentData = Field(default_factory=ContentData)
    status: ContentStatus = Field(ContentStatus.COLLECTED)
    processing_metadata: ProcessingMetadata = Field(default_factory=ProcessingMetadata)
    processed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def key(self) -> ContentKey:
        return ContentKey(self.source_type, self.source_id, self.owner_id)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_partial(self) -> bool:
        return self.status in PARTIAL_STATUSES

    @property
    def text_for_extraction(self) -> str:
        """Transcript for videos, post text for text-only content."""
        if self.data.transcript:
            return self.data.transcript
        return self.data.description


# =============================================================================
# Forecasters and Channels
# =============================================================================


class ForecasterMetrics(BaseModel):
    """Aggregate track record of a forecaster."""

    accuracy: float = Field(0.0, ge=0.0, le=1.0)
    total_predictions: int = Field(0, ge=0)
    correct_predictions: float = Field(0.0, ge=0.0, description="Partial outcomes count 0.5")
    brier_score: Optional[float] = None
    rank: Optional[int] = None
    ranking_score: Optional[float] = None
    last_calculated: Optional[datetime] = None
    last_ranked: Optional[datetime] = None


class Forecaster(BaseEntity):
    """A person or outlet whose predictions are tracked."""

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=255)
    is_verified: bool = False
    is_active: bool = True
    metrics: ForecasterMetrics = Field(default_factory=ForecasterMetrics)
    created_at: datetime = Field(default_factory=utc_now)


class ChannelKeyword(BaseModel):
    """Match term for secondary channels."""

    keyword: str = Field(..., min_length=1)
    is_default: bool = False
    is_active: bool = True


class CollectionSettings(BaseModel):
    """Per-channel schedule."""

    check_interval: int = Field(3600, ge=1, description="Seconds between checks")
    last_checked: Optional[datetime] = None
    enabled: bool = True

    def is_due(self, now: Optional[datetime] = None) -> bool:
        """A channel is due when never checked or the interval has elapsed."""
        if self.last_checked is None:
            return True
        now = now or utc_now()
        return (now - self.last_checked).total_seconds() >= self.check_interval


class Channel(BaseEntity):
    """A video channel or social handle belonging to a forecaster."""

    id: str = Field(default_factory=new_id)
    forecaster_id: str
    channel_type: SourceType
    external_id: str = Field(..., min_length=1, description="Channel id or username")
    channel_name: Optional[str] = None
    is_primary: bool = Field(True, description="Primary channels ingest everything")
    is_active: bool = True
    collection_settings: CollectionSettings = Field(default_factory=CollectionSettings)
    keywords: list[ChannelKeyword] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def active_keywords(self) -> list[str]:
        return [k.keyword for k in self.keywords if k.is_active]


# =============================================================================
# Predictions
# =============================================================================


class DirectionCorrection(BaseModel):
    """Audit record of the numeric direction check."""

    original_ai_direction: str
    mathematical_direction: Optional[Direction] = None
    correction_made: bool = False
    price_change: Optional[float] = None
    price_change_percent: Optional[float] = None
    reasoning: Optional[str] = None


class PredictionSource(BaseModel):
    type: Optional[str] = None
    url: Optional[str] = None


class ExtractionInfo(BaseModel):
    model: str = ""
    confidence: Optional[float] = None
    quality_score: Optional[int] = None
    quality_grade: Optional[str] = None


class PredictionMetadata(BaseModel):
    source: PredictionSource = Field(default_factory=PredictionSource)
    reasoning: str = ""
    tags: list[str] = Field(default_factory=list)
    extraction: ExtractionInfo = Field(default_factory=ExtractionInfo)
    direction_correction: Optional[DirectionCorrection] = None


class Prediction(BaseEntity):
    """A stored prediction owned by a forecaster."""

    id: str = Field(default_factory=new_id)
    forecaster_id: str
    asset_id: Optional[str] = None
    content_id: Optional[str] = None
    prediction: str = Field("", description="Prediction statement")
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    target_date: Optional[date] = None
    target_price: Optional[float] = None
    baseline_price: Optional[float] = Field(None, description="Asset price at extraction time")
    direction: Direction = Direction.NEUTRAL
    outcome: Outcome = Outcome.PENDING
    validated_at: Optional[datetime] = None
    metadata: PredictionMetadata = Field(default_factory=PredictionMetadata)
    created_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# Assets and Prices
# =============================================================================


class PriceQuote(BaseModel):
    """Current price returned by a price source."""

    symbol: str
    price: float
    change_24h: float = Field(0.0, description="24h change in percent")
    volume_24h: float = 0.0
    market_cap: Optional[float] = None
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    source: str


class PriceData(BaseModel):
    """Latest price snapshot stored on an asset."""

    price: Optional[float] = None
    change_24h: Optional[float] = None
    volume_24h: Optional[float] = None
    market_cap: Optional[float] = None
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    source: Optional[str] = None
    updated_at: Optional[datetime] = None
    price_24h_ago: Optional[float] = None


class Asset(BaseEntity):
    """A market instrument, unique by (symbol, type)."""

    id: str = Field(default_factory=new_id)
    symbol: str = Field(..., min_length=1, max_length=32)
    type: AssetType
    name: Optional[str] = None
    price_data: PriceData = Field(default_factory=PriceData)
    created_at: datetime = Field(default_factory=utc_now)


class PriceHistory(BaseEntity):
    """Append-only price observation."""

    id: str = Field(default_factory=new_id)
    asset_id: str
    price: float
    volume: Optional[float] = None
    source: str
    recorded_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# Jobs and Events
# =============================================================================


class Job(BaseEntity):
    """Coarse job log row read by admin dashboards."""

    id: str = Field(default_factory=new_id)
    type: JobType
    status: JobStatus = JobStatus.RUNNING
    payload: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None


class CollectionJobConfig(BaseModel):
    keywords: list[str] = Field(default_factory=list)
    is_primary: bool = True


class ChannelCollectionJob(BaseEntity):
    """Per-channel collection run."""

    id: str = Field(default_factory=new_id)
    channel_id: str
    job_type: CollectionJobType
    status: JobStatus = JobStatus.RUNNING
    config: CollectionJobConfig = Field(default_factory=CollectionJobConfig)
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    videos_found: int = 0
    videos_processed: int = 0
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class Event(BaseEntity):
    """Audit event (e.g. PREDICTION_VALIDATED)."""

    id: str = Field(default_factory=new_id)
    type: str
    entity_type: str
    entity_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
