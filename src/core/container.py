"""
Dependency Injection Container for ForecastPulse.

Builds every pipeline component once, with its collaborators injected, and
owns their lifecycle. Nothing is created on import.

Usage:
    # At application startup
    container = DependencyContainer()
    await container.initialize()

    # Components are wired together
    await container.scheduler.start()
    await container.content.collect_url(url, owner_id=forecaster_id)

    # At shutdown
    await container.shutdown()
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional

import structlog

from src.config.settings import Settings, get_settings
from src.core.exceptions import InitializationError

if TYPE_CHECKING:
    from src.collectors.content import ContentCollector
    from src.extraction.engine import ExtractionEngine
    from src.extraction.writer import PredictionWriter
    from src.market.service import MarketDataService
    from src.scheduler.channels import ChannelCollectionService
    from src.scheduler.scheduler import PipelineScheduler
    from src.store.base import Store
    from src.store.repository import PipelineRepository
    from src.transcription.service import TranscriptionService
    from src.validation.outcome import OutcomeValidator

logger = structlog.get_logger(__name__)


def _secret(value) -> Optional[str]:
    return value.get_secret_value() if value is not None else None


class DependencyContainer:
    """
    Central container for all pipeline components.

    Example:
        container = DependencyContainer(settings)
        await container.initialize()

        repository = container.repository
        scheduler = container.scheduler

        await container.shutdown()
    """

    def __init__(self, settings: Settings | None = None, store: "Store | None" = None):
        """
        Initialize the container.

        Args:
            settings: Application settings. Defaults to get_settings().
            store: Store to use instead of the configured backend.
        """
        self._settings = settings or get_settings()
        self._store = store
        self._repository: PipelineRepository | None = None
        self._market: MarketDataService | None = None
        self._transcription: TranscriptionService | None = None
        self._engine: ExtractionEngine | None = None
        self._writer: PredictionWriter | None = None
        self._content: ContentCollector | None = None
        self._channels: ChannelCollectionService | None = None
        self._validator: OutcomeValidator | None = None
        self._scheduler: PipelineScheduler | None = None
        self._initialized = False

        logger.info("dependency_container_created", store_backend=self._settings.store_backend)

    @property
    def settings(self) -> Settings:
        """Get application settings."""
        return self._settings

    def _require(self, component, name: str):
        if component is None:
            raise RuntimeError(f"Container not initialized: {name} unavailable")
        return component

    @property
    def repository(self) -> "PipelineRepository":
        return self._require(self._repository, "repository")

    @property
    def market(self) -> "MarketDataService":
        return self._require(self._market, "market")

    @property
    def transcription(self) -> "TranscriptionService":
        return self._require(self._transcription, "transcription")

    @property
    def engine(self) -> "ExtractionEngine":
        return self._require(self._engine, "engine")

    @property
    def writer(self) -> "PredictionWriter":
        return self._require(self._writer, "writer")

    @property
    def content(self) -> "ContentCollector":
        return self._require(self._content, "content")

    @property
    def channels(self) -> "ChannelCollectionService":
        return self._require(self._channels, "channels")

    @property
    def validator(self) -> "OutcomeValidator":
        return self._require(self._validator, "validator")

    @property
    def scheduler(self) -> "PipelineScheduler":
        return self._require(self._scheduler, "scheduler")

    # =========================================================================
    # Builders
    # =========================================================================

    def _build_store(self) -> "Store":
        if self._store is not None:
            return self._store
        if self._settings.store_backend == "memory":
            from src.store.memory_store import InMemoryStore

            return InMemoryStore()

        from src.store.supabase_store import SupabaseStore

        return SupabaseStore(
            supabase_url=self._settings.supabase_url,
            supabase_key=_secret(self._settings.supabase_key),
        )

    def _build_llm(self):
        from src.extraction.llm import AnthropicProvider, FallbackLLM, OpenAIProvider

        providers = []
        if self._settings.anthropic_api_key is not None:
            providers.append(AnthropicProvider(
                api_key=_secret(self._settings.anthropic_api_key),
                model=self._settings.anthropic_model,
            ))
        if self._settings.openai_api_key is not None:
            providers.append(OpenAIProvider(
                api_key=_secret(self._settings.openai_api_key),
                model=self._settings.openai_extraction_model,
            ))
        if not providers:
            raise InitializationError("FallbackLLM", "No LLM provider key configured")
        return FallbackLLM(*providers)

    def _build_transcription(self, repository: "PipelineRepository") -> "TranscriptionService":
        from src.transcription.audio import AudioDownloader
        from src.transcription.captions import CaptionScraper
        from src.transcription.service import TranscriptionService
        from src.transcription.transcript_api import TranscriptApiSource
        from src.transcription.whisper import WhisperTranscriber

        settings = self._settings
        temp_dir = Path(settings.temp_audio_dir)
        return TranscriptionService(
            repository,
            captions=CaptionScraper(timeout=settings.http_timeout_seconds),
            transcript_api=TranscriptApiSource(),
            downloader=AudioDownloader(
                _secret(settings.rapidapi_key) or "",
                temp_dir,
                poll_base_delay=settings.audio_poll_base_delay_seconds,
                poll_max_retries=settings.audio_poll_max_retries,
                timeout=settings.http_timeout_seconds,
            ),
            whisper=WhisperTranscriber(
                api_key=_secret(settings.openai_api_key),
                max_retries=settings.whisper_max_retries,
                rate_limit_base_delay=settings.whisper_rate_limit_base_delay_seconds,
                timeout=settings.whisper_timeout_seconds,
            ),
            temp_dir=temp_dir,
        )

    def _build_collectors(self):
        from src.collectors.registry import build_collectors
        from src.models.schemas import SourceType

        timeout = self._settings.http_timeout_seconds
        return build_collectors({
            SourceType.YOUTUBE: {"api_key": _secret(self._settings.google_api_key), "timeout": timeout},
            SourceType.TWITTER: {"rapidapi_key": _secret(self._settings.rapidapi_key), "timeout": timeout},
        })

    async def initialize(self) -> None:
        """
        Build every component.

        Call this at application startup.

        Raises:
            InitializationError: If any component fails to initialize.
        """
        if self._initialized:
            logger.warning("container_already_initialized")
            return

        logger.info("container_initializing")

        try:
            from src.collectors.content import ContentCollector
            from src.extraction.engine import ExtractionEngine
            from src.extraction.writer import PredictionWriter
            from src.market.service import MarketDataService
            from src.scheduler.channels import ChannelCollectionService
            from src.scheduler.scheduler import PipelineScheduler
            from src.store.repository import PipelineRepository
            from src.validation.outcome import OutcomeValidator
            from src.validation.scoring import BrierScoreService, RankingService

            settings = self._settings
            self._repository = PipelineRepository(self._build_store())
            self._market = MarketDataService(self._repository)
            self._transcription = self._build_transcription(self._repository)
            self._engine = ExtractionEngine(self._build_llm())
            self._writer = PredictionWriter(self._repository, self._market)
            self._content = ContentCollector(
                self._repository,
                self._transcription,
                self._engine,
                self._writer,
                self._build_collectors(),
                item_delay=settings.item_delay_seconds,
            )
            self._channels = ChannelCollectionService(
                self._repository,
                self._content,
                channel_delay=settings.channel_delay_seconds,
                item_delay=settings.item_delay_seconds,
                freshness_window_days=settings.freshness_window_days,
            )
            self._validator = OutcomeValidator(self._repository, self._market)
            self._scheduler = PipelineScheduler(
                self._repository,
                self._market,
                self._validator,
                BrierScoreService(self._repository),
                RankingService(self._repository),
                self._channels,
                self._content,
                self._transcription,
                retention_days=settings.retention_days,
                job_timeout_seconds=settings.job_timeout_seconds,
            )

            self._initialized = True
            logger.info("container_initialized")

        except InitializationError:
            raise
        except Exception as e:
            logger.error(
                "container_initialization_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise InitializationError(
                "DependencyContainer",
                f"Failed to initialize dependencies: {e}",
            ) from e

    async def shutdown(self) -> None:
        """
        Stop the scheduler and close HTTP clients.

        Call this at application shutdown.
        """
        logger.info("container_shutting_down")

        if self._scheduler is not None and self._scheduler.is_running:
            await self._scheduler.stop()

        for name, component in (
            ("content", self._content),
            ("market", self._market),
            ("transcription", self._transcription),
        ):
            if component is None:
                continue
            try:
                await component.aclose()
            except Exception as e:
                logger.error("component_close_error", component=name, error=str(e))

        self._initialized = False
        logger.info("container_shutdown_complete")

    @property
    def is_initialized(self) -> bool:
        """Check if container has been initialized."""
        return self._initialized


# Global container instance for convenience
# Prefer passing container explicitly via dependency injection
_container: DependencyContainer | None = None


def get_container() -> DependencyContainer:
    """
    Get the global container instance.

    Creates one if it doesn't exist. Prefer passing container
    explicitly for better testability.
    """
    global _container
    if _container is None:
        _container = DependencyContainer()
    return _container


async def initialize_container() -> DependencyContainer:
    """Initialize and return the global container."""
    container = get_container()
    await container.initialize()
    return container


async def shutdown_container() -> None:
    """Shutdown the global container."""
    global _container
    if _container is not None:
        await _container.shutdown()
        _container = None
