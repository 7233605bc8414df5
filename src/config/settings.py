"""
Application Settings.

Centralized configuration using Pydantic Settings with environment variable loading.
All settings are validated at startup - missing required values will raise an error.

Production Mode:
    When app_env="production", additional validations apply:
    - store_backend must be "supabase"
    - debug must be False
    - at least one language model provider key must be configured
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Persistent Store
    # -------------------------------------------------------------------------
    store_backend: Literal["supabase", "memory"] = Field(
        default="supabase",
        description="Store backend. 'memory' keeps everything in-process (local runs only).",
    )
    supabase_url: str | None = Field(default=None, description="Supabase project URL")
    supabase_key: SecretStr | None = Field(
        default=None, description="Supabase service key"
    )

    # -------------------------------------------------------------------------
    # Anthropic (primary extraction model)
    # -------------------------------------------------------------------------
    anthropic_api_key: SecretStr | None = Field(
        default=None, description="Anthropic API key for prediction extraction"
    )
    anthropic_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Claude model used as the primary extraction provider",
    )

    # -------------------------------------------------------------------------
    # OpenAI (fallback extraction model + Whisper)
    # -------------------------------------------------------------------------
    openai_api_key: SecretStr | None = Field(
        default=None, description="OpenAI API key for fallback extraction and Whisper"
    )
    openai_extraction_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI chat model used when the primary provider fails",
    )

    # -------------------------------------------------------------------------
    # Source APIs
    # -------------------------------------------------------------------------
    google_api_key: SecretStr | None = Field(
        default=None, description="Google API key for the YouTube Data API"
    )
    rapidapi_key: SecretStr | None = Field(
        default=None, description="RapidAPI key (youtube-mp36 audio, twitter241)"
    )

    # -------------------------------------------------------------------------
    # Transcription
    # -------------------------------------------------------------------------
    temp_audio_dir: str = Field(
        default="temp_audio",
        description="Directory for downloaded audio files",
    )
    audio_poll_base_delay_seconds: float = Field(
        default=15.0,
        description="Base delay between audio conversion polls (grows by 1.2x per attempt)",
    )
    audio_poll_max_retries: int = Field(
        default=10,
        description="Maximum number of audio conversion polls",
    )
    whisper_rate_limit_base_delay_seconds: float = Field(
        default=60.0,
        description="Base delay after a Whisper rate limit (doubles per attempt)",
    )
    whisper_max_retries: int = Field(
        default=3,
        description="Maximum Whisper retries after a rate limit",
    )
    whisper_timeout_seconds: float = Field(
        default=300.0,
        description="Hard timeout for a Whisper upload",
    )

    # -------------------------------------------------------------------------
    # Collection
    # -------------------------------------------------------------------------
    channel_delay_seconds: float = Field(
        default=2.0,
        description="Pause between channels during a sweep",
    )
    item_delay_seconds: float = Field(
        default=1.0,
        description="Pause between items collected from one channel",
    )
    freshness_window_days: int = Field(
        default=7,
        description="Items collected within this window are not collected again",
    )
    retention_days: int = Field(
        default=30,
        description="Terminal content items and finished jobs older than this are deleted",
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    scheduler_enabled: bool = Field(
        default=True,
        description="Start the periodic pipeline jobs with the API process",
    )
    api_host: str = Field(default="0.0.0.0", description="API bind host")
    api_port: int = Field(default=8000, description="API bind port")

    # -------------------------------------------------------------------------
    # Timeouts
    # -------------------------------------------------------------------------
    http_timeout_seconds: float = Field(
        default=30.0,
        description="Default timeout for outbound HTTP requests",
    )
    job_timeout_seconds: int = Field(
        default=1800,
        description="Timeout for one periodic job run in seconds (default 30 minutes)",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Validate store configuration and production safety."""
        errors = []

        if self.store_backend == "supabase" and not (self.supabase_url and self.supabase_key):
            errors.append("supabase_url and supabase_key are required for the supabase store")

        if self.app_env == "production":
            if self.store_backend != "supabase":
                errors.append("store_backend must be 'supabase' in production")

            if self.debug:
                errors.append("debug must be False in production")

            if not (self.anthropic_api_key or self.openai_api_key):
                errors.append("anthropic_api_key or openai_api_key must be set in production")

        if errors:
            raise ValueError(f"Configuration errors: {'; '.join(errors)}")

        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload settings if needed.
    """
    return Settings()
