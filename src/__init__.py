"""
ForecastPulse - market forecaster tracking and prediction validation pipeline.

This package contains the core modules for the ForecastPulse system:
- collectors: YouTube and X (Twitter) source integrations and the content state machine
- transcription: Layered transcript acquisition (captions, transcript API, audio + Whisper)
- extraction: LLM-based prediction extraction, deduplication and quality scoring
- validation: Direction correction, outcome validation, Brier scores and rankings
- market: Asset type detection and price sources (Binance, CoinGecko, Yahoo Finance)
- scheduler: Channel sweeps and periodic pipeline jobs
- store: Persistent store backends (Supabase, in-memory) and typed repository
- config: Pydantic settings and configuration
- models: Data models and schemas
"""

__version__ = "0.1.0"
