"""
Core infrastructure modules for ForecastPulse.

Provides common utilities used across the application:
- exceptions: Standardized exception hierarchy
- circuit_breaker: Resilience pattern for external APIs
- http_source: Shared async HTTP client with retries and a circuit breaker
- container: Dependency container wiring the pipeline together
"""

from src.core.exceptions import (
    ForecastPulseError,
    RetryableError,
    PermanentError,
    InitializationError,
    CollectorError,
    CollectorRateLimitError,
    CollectorTimeoutError,
    CollectorAuthError,
    CollectorNotFoundError,
    CollectorUnavailableError,
    TranscriptionError,
    AudioConversionPendingError,
    AudioConversionError,
    AudioTooLargeError,
    ExtractionError,
    LLMProviderError,
    MarketDataError,
    StoreError,
    StoreConnectionError,
    InvalidTransitionError,
    ValidationError,
    ConfigurationError,
)

from src.core.circuit_breaker import (
    CircuitBreaker,
    CircuitState,
    get_circuit_breaker,
    get_all_circuit_breakers,
    reset_all_circuit_breakers,
)

from src.core.container import (
    DependencyContainer,
    get_container,
    initialize_container,
    shutdown_container,
)

__all__ = [
    # Exceptions
    "ForecastPulseError",
    "RetryableError",
    "PermanentError",
    "InitializationError",
    "CollectorError",
    "CollectorRateLimitError",
    "CollectorTimeoutError",
    "CollectorAuthError",
    "CollectorNotFoundError",
    "CollectorUnavailableError",
    "TranscriptionError",
    "AudioConversionPendingError",
    "AudioConversionError",
    "AudioTooLargeError",
    "ExtractionError",
    "LLMProviderError",
    "MarketDataError",
    "StoreError",
    "StoreConnectionError",
    "InvalidTransitionError",
    "ValidationError",
    "ConfigurationError",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitState",
    "get_circuit_breaker",
    "get_all_circuit_breakers",
    "reset_all_circuit_breakers",
    # Dependency Container
    "DependencyContainer",
    "get_container",
    "initialize_container",
    "shutdown_container",
]
