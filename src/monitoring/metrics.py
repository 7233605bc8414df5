"""
Prometheus metrics for ForecastPulse observability.

Provides standardized metrics for the ingestion, extraction and validation
pipeline and for the external sources it depends on.

Usage:
    from src.monitoring.metrics import track_llm_call

    with track_llm_call("anthropic"):
        text = await provider.generate(prompt)

    # Or manually
    PREDICTIONS_STORED.labels(direction="BULLISH", corrected="true").inc()
"""

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)
from starlette.applications import Starlette
from starlette.responses import Response
from starlette.routing import Route


# =============================================================================
# Metric Definitions
# =============================================================================

# Content pipeline
CONTENT_ITEMS_PROCESSED = Counter(
    "forecastpulse_content_items_total",
    "Content items that finished a pipeline stage",
    ["stage", "status"],
)

TRANSCRIPT_SOURCE_TOTAL = Counter(
    "forecastpulse_transcript_source_total",
    "Transcripts acquired, by fallback tier",
    ["source"],
)

# Language model calls
LLM_CALL_DURATION = Histogram(
    "forecastpulse_llm_call_duration_seconds",
    "Duration of language model calls in seconds",
    ["provider"],
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)

LLM_CALL_TOTAL = Counter(
    "forecastpulse_llm_call_total",
    "Total language model calls",
    ["provider", "status"],
)

# Predictions
PREDICTIONS_STORED = Counter(
    "forecastpulse_predictions_stored_total",
    "Predictions persisted after extraction",
    ["direction", "corrected"],
)

PREDICTION_OUTCOMES = Counter(
    "forecastpulse_prediction_outcomes_total",
    "Prediction outcomes assigned by validation",
    ["outcome"],
)

# Periodic jobs
JOB_RUN_DURATION = Histogram(
    "forecastpulse_job_run_duration_seconds",
    "Duration of periodic job runs in seconds",
    ["job"],
    buckets=[0.1, 1.0, 5.0, 30.0, 60.0, 300.0, 900.0, 1800.0],
)

JOB_RUN_TOTAL = Counter(
    "forecastpulse_job_run_total",
    "Total periodic job runs",
    ["job", "status"],
)

# Circuit breaker metrics
CIRCUIT_BREAKER_STATE = Gauge(
    "forecastpulse_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["service"],
)

CIRCUIT_BREAKER_FAILURES = Counter(
    "forecastpulse_circuit_breaker_failures_total",
    "Total failures recorded by circuit breakers",
    ["service"],
)

# Source operations
SOURCE_OPERATIONS = Counter(
    "forecastpulse_source_operations_total",
    "Total external source operations",
    ["source", "operation", "status"],
)

SOURCE_LATENCY = Histogram(
    "forecastpulse_source_latency_seconds",
    "Latency of external source operations",
    ["source", "operation"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)


# =============================================================================
# Tracking Context Managers
# =============================================================================


@contextmanager
def track_llm_call(provider: str) -> Generator[None, None, None]:
    """
    Context manager to track language model call duration and status.

    Usage:
        with track_llm_call("openai"):
            text = await provider.generate(prompt)
    """
    start_time = time.perf_counter()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.perf_counter() - start_time
        LLM_CALL_DURATION.labels(provider=provider).observe(duration)
        LLM_CALL_TOTAL.labels(provider=provider, status=status).inc()


@contextmanager
def track_job_run(job: str) -> Generator[None, None, None]:
    """
    Context manager to track a periodic job run.

    Usage:
        with track_job_run("validate_predictions"):
            await validator.validate_all_pending()
    """
    start_time = time.perf_counter()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        JOB_RUN_DURATION.labels(job=job).observe(time.perf_counter() - start_time)
        JOB_RUN_TOTAL.labels(job=job, status=status).inc()


@contextmanager
def track_source_operation(
    source: str,
    operation: str,
) -> Generator[None, None, None]:
    """
    Context manager to track external source operations.

    Usage:
        with track_source_operation("binance", "get_price"):
            ticker = await client.get(url)
    """
    start_time = time.perf_counter()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.perf_counter() - start_time
        SOURCE_OPERATIONS.labels(
            source=source,
            operation=operation,
            status=status,
        ).inc()
        SOURCE_LATENCY.labels(
            source=source,
            operation=operation,
        ).observe(duration)


def record_content_stage(stage: str, status: str) -> None:
    """Count a content item finishing (or failing) a pipeline stage."""
    CONTENT_ITEMS_PROCESSED.labels(stage=stage, status=status).inc()


def record_transcript_source(source: str) -> None:
    """Count which fallback tier produced a transcript."""
    TRANSCRIPT_SOURCE_TOTAL.labels(source=source).inc()


def record_prediction_stored(direction: str, corrected: bool) -> None:
    PREDICTIONS_STORED.labels(direction=direction, corrected=str(corrected).lower()).inc()


def record_prediction_outcome(outcome: str) -> None:
    PREDICTION_OUTCOMES.labels(outcome=outcome).inc()


def update_circuit_breaker_state(service: str, state: str) -> None:
    """
    Update circuit breaker state gauge.

    Args:
        service: Service name
        state: Circuit state ("closed", "half_open", "open")
    """
    state_map = {"closed": 0, "half_open": 1, "open": 2}
    CIRCUIT_BREAKER_STATE.labels(service=service).set(state_map.get(state, 0))


def record_circuit_breaker_failure(service: str) -> None:
    """Record a circuit breaker failure."""
    CIRCUIT_BREAKER_FAILURES.labels(service=service).inc()


# =============================================================================
# Metrics Endpoint
# =============================================================================


async def metrics_endpoint(request) -> Response:
    """Prometheus metrics endpoint handler."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


def get_metrics_app() -> Starlette:
    """
    Get a Starlette app for serving metrics.

    Mount this at /metrics in the main app:
        from src.monitoring.metrics import get_metrics_app
        app.mount("/metrics", get_metrics_app())
    """
    return Starlette(
        routes=[
            Route("/", metrics_endpoint),
        ]
    )
