"""
ForecastPulse Test Suite.

This package contains all tests for the ForecastPulse pipeline:

- unit/: Component tests (extraction, validation, transcription, market data, scheduler)
- integration/: Pipeline tests wired over the in-memory store
- conftest.py: Shared fixtures and test configuration

Run tests with: pytest
Run with coverage: pytest --cov=src
"""
