"""
Monitoring and observability for ForecastPulse.

Provides Prometheus metrics for tracking pipeline throughput, language
model usage, validation outcomes and external source health.

Usage:
    from src.monitoring import track_job_run

    with track_job_run("update_asset_prices"):
        await market_data.update_all_asset_prices()
"""

from src.monitoring.metrics import (
    CONTENT_ITEMS_PROCESSED,
    TRANSCRIPT_SOURCE_TOTAL,
    LLM_CALL_TOTAL,
    PREDICTIONS_STORED,
    PREDICTION_OUTCOMES,
    JOB_RUN_TOTAL,
    CIRCUIT_BREAKER_STATE,
    SOURCE_OPERATIONS,
    track_llm_call,
    track_job_run,
    track_source_operation,
    record_content_stage,
    record_transcript_source,
    record_prediction_stored,
    record_prediction_outcome,
    update_circuit_breaker_state,
    record_circuit_breaker_failure,
    get_metrics_app,
)

__all__ = [
    "CONTENT_ITEMS_PROCESSED",
    "TRANSCRIPT_SOURCE_TOTAL",
    "LLM_CALL_TOTAL",
    "PREDICTIONS_STORED",
    "PREDICTION_OUTCOMES",
    "JOB_RUN_TOTAL",
    "CIRCUIT_BREAKER_STATE",
    "SOURCE_OPERATIONS",
    "track_llm_call",
    "track_job_run",
    "track_source_operation",
    "record_content_stage",
    "record_transcript_source",
    "record_prediction_stored",
    "record_prediction_outcome",
    "update_circuit_breaker_state",
    "record_circuit_breaker_failure",
    "get_metrics_app",
]
