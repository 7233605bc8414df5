"""
Core exception hierarchy for ForecastPulse.

Provides standardized exception types with categorization for retry logic.
All components should use these exceptions instead of generic Exception.
"""

from typing import Any, Optional


# =============================================================================
# Base Exceptions
# =============================================================================


class ForecastPulseError(Exception):
    """Base exception for all ForecastPulse errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class RetryableError(ForecastPulseError):
    """
    Transient errors that should be retried.

    Examples: Rate limits, "still processing" states, temporary network issues.
    """

    pass


class PermanentError(ForecastPulseError):
    """
    Errors that won't be fixed by retrying.

    Examples: Invalid input, provider "fail" status, authentication failures.
    """

    pass


# =============================================================================
# Initialization Errors
# =============================================================================


class InitializationError(PermanentError):
    """Raised when a critical component fails to initialize."""

    def __init__(self, component: str, message: str, details: Optional[dict[str, Any]] = None):
        self.component = component
        super().__init__(f"[{component}] {message}", details)


# =============================================================================
# Collector Errors
# =============================================================================


class CollectorError(ForecastPulseError):
    """Base exception for collector and external source errors."""

    def __init__(
        self,
        collector_type: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ):
        self.collector_type = collector_type
        super().__init__(f"[{collector_type}] {message}", details)


class CollectorRateLimitError(CollectorError, RetryableError):
    """Raised when a collector hits rate limits."""

    pass


class CollectorTimeoutError(CollectorError, RetryableError):
    """Raised when a collector operation times out."""

    pass


class CollectorAuthError(CollectorError, PermanentError):
    """Raised when collector authentication fails."""

    pass


class CollectorNotFoundError(CollectorError, PermanentError):
    """Raised when requested resource is not found."""

    pass


class CollectorUnavailableError(CollectorError, RetryableError):
    """Raised when collector service is temporarily unavailable."""

    pass


# =============================================================================
# Transcription Errors
# =============================================================================


class TranscriptionError(ForecastPulseError):
    """Base exception for transcript acquisition errors."""

    pass


class AudioConversionPendingError(TranscriptionError, RetryableError):
    """Raised while the audio conversion service still reports 'processing'."""

    pass


class AudioConversionError(TranscriptionError, PermanentError):
    """Raised when the audio conversion service reports failure."""

    pass


class AudioTooLargeError(TranscriptionError, PermanentError):
    """Raised when an audio file exceeds the speech-to-text size ceiling."""

    def __init__(self, path: str, size_mb: float, limit_mb: float):
        self.path = path
        self.size_mb = size_mb
        self.limit_mb = limit_mb
        super().__init__(
            f"File too large for speech-to-text: {size_mb:.2f}MB (max {limit_mb:.0f}MB)",
            {"path": path},
        )


# =============================================================================
# Extraction Errors
# =============================================================================


class ExtractionError(ForecastPulseError):
    """Base exception for prediction extraction errors."""

    pass


class LLMProviderError(ExtractionError):
    """Raised when a language model provider call fails."""

    def __init__(self, provider: str, message: str, details: Optional[dict[str, Any]] = None):
        self.provider = provider
        super().__init__(f"[{provider}] {message}", details)


# =============================================================================
# Market Data Errors
# =============================================================================


class MarketDataError(ForecastPulseError):
    """Raised when price data cannot be fetched or stored."""

    pass


# =============================================================================
# Store Errors
# =============================================================================


class StoreError(ForecastPulseError):
    """Base exception for persistent store errors."""

    pass


class StoreConnectionError(StoreError, RetryableError):
    """Raised when unable to reach the persistent store."""

    pass


# =============================================================================
# Pipeline State Errors
# =============================================================================


class InvalidTransitionError(PermanentError):
    """Raised when a content item is moved to a state it cannot reach."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move content item from {current} to {target}",
            {"current": current, "target": target},
        )


class ValidationError(PermanentError):
    """Raised when a prediction cannot be validated."""

    pass


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(PermanentError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        details = {"config_key": config_key} if config_key else None
        super().__init__(message, details)
