"""Database schema for the Supabase store.

``get_table_creation_sql()`` returns the SQL that creates every table the
pipeline writes. Paste it into the Supabase SQL Editor when
``SupabaseStore.health_check()`` reports missing tables.
"""

from datetime import datetime, timezone

# =============================================================================
# Table Names
# =============================================================================

FORECASTERS = "forecasters"
CHANNELS = "channels"
CONTENT_ITEMS = "content_items"
ASSETS = "assets"
PRICE_HISTORY = "price_history"
PREDICTIONS = "predictions"
JOBS = "jobs"
CHANNEL_COLLECTION_JOBS = "channel_collection_jobs"
EVENTS = "events"

TABLES = (
    FORECASTERS,
    CHANNELS,
    CONTENT_ITEMS,
    ASSETS,
    PRICE_HISTORY,
    PREDICTIONS,
    JOBS,
    CHANNEL_COLLECTION_JOBS,
    EVENTS,
)

# Composite keys used for upserts
CONTENT_ITEM_KEY = ("source_type", "source_id", "owner_id")
ASSET_KEY = ("symbol", "type")


# =============================================================================
# SQL Schema Definitions
# =============================================================================

SCHEMA_SQL = """
-- =============================================================================
-- ForecastPulse Database Schema for Supabase
-- =============================================================================
-- Generated: {generated_at}
-- =============================================================================

CREATE EXTENSION IF NOT EXISTS "uuid-ossp";

-- =============================================================================
-- Table: forecasters
-- =============================================================================

CREATE TABLE IF NOT EXISTS forecasters (
    id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
    name TEXT NOT NULL,
    is_verified BOOLEAN DEFAULT false,
    is_active BOOLEAN DEFAULT true,
    metrics JSONB DEFAULT '{{}}'::jsonb,
    created_at TIMESTAMPTZ DEFAULT NOW(),

    CONSTRAINT forecasters_name_not_empty CHECK (name <> '')
);

CREATE INDEX IF NOT EXISTS idx_forecasters_verified ON forecasters(is_verified, is_active);

-- =============================================================================
-- Table: channels
-- =============================================================================

CREATE TABLE IF NOT EXISTS channels (
    id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
    forecaster_id UUID NOT NULL REFERENCES forecasters(id) ON DELETE CASCADE,
    channel_type TEXT NOT NULL,
    external_id TEXT NOT NULL,
    channel_name TEXT,
    is_primary BOOLEAN DEFAULT true,
    is_active BOOLEAN DEFAULT true,
    collection_settings JSONB DEFAULT '{{}}'::jsonb,
    keywords JSONB DEFAULT '[]'::jsonb,
    created_at TIMESTAMPTZ DEFAULT NOW(),

    CONSTRAINT channels_type_valid CHECK (channel_type IN ('YOUTUBE', 'TWITTER')),
    CONSTRAINT channels_unique UNIQUE (channel_type, external_id, forecaster_id)
);

CREATE INDEX IF NOT EXISTS idx_channels_forecaster ON channels(forecaster_id);
CREATE INDEX IF NOT EXISTS idx_channels_active ON channels(is_active);

-- =============================================================================
-- Table: content_items
-- =============================================================================

CREATE TABLE IF NOT EXISTS content_items (
    id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
    source_type TEXT NOT NULL,
    source_id TEXT NOT NULL,
    owner_id TEXT NOT NULL DEFAULT '',
    source_url TEXT DEFAULT '',
    data JSONB DEFAULT '{{}}'::jsonb,
    status TEXT NOT NULL DEFAULT 'COLLECTED',
    processing_metadata JSONB DEFAULT '{{}}'::jsonb,
    processed_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW(),

    CONSTRAINT content_items_key UNIQUE (source_type, source_id, owner_id)
);

CREATE INDEX IF NOT EXISTS idx_content_items_status ON content_items(status, created_at);

-- =============================================================================
-- Table: assets
-- =============================================================================

CREATE TABLE IF NOT EXISTS assets (
    id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
    symbol TEXT NOT NULL,
    type TEXT NOT NULL,
    name TEXT,
    price_data JSONB DEFAULT '{{}}'::jsonb,
    created_at TIMESTAMPTZ DEFAULT NOW(),

    CONSTRAINT assets_key UNIQUE (symbol, type)
);

-- =============================================================================
-- Table: price_history
-- =============================================================================

CREATE TABLE IF NOT EXISTS price_history (
    id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
    asset_id UUID NOT NULL REFERENCES assets(id) ON DELETE CASCADE,
    price DOUBLE PRECISION NOT NULL,
    volume DOUBLE PRECISION,
    source TEXT NOT NULL,
    recorded_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_price_history_asset ON price_history(asset_id, recorded_at DESC);

-- =============================================================================
-- Table: predictions
-- =============================================================================

CREATE TABLE IF NOT EXISTS predictions (
    id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
    forecaster_id UUID NOT NULL REFERENCES forecasters(id) ON DELETE CASCADE,
    asset_id UUID REFERENCES assets(id) ON DELETE SET NULL,
    content_id UUID REFERENCES content_items(id) ON DELETE SET NULL,
    prediction TEXT DEFAULT '',
    confidence DOUBLE PRECISION,
    target_date DATE,
    target_price DOUBLE PRECISION,
    baseline_price DOUBLE PRECISION,
    direction TEXT NOT NULL DEFAULT 'NEUTRAL',
    outcome TEXT NOT NULL DEFAULT 'PENDING',
    validated_at TIMESTAMPTZ,
    metadata JSONB DEFAULT '{{}}'::jsonb,
    created_at TIMESTAMPTZ DEFAULT NOW(),

    CONSTRAINT predictions_direction_valid CHECK (direction IN ('BULLISH', 'BEARISH', 'NEUTRAL')),
    CONSTRAINT predictions_outcome_valid CHECK (
        outcome IN ('PENDING', 'CORRECT', 'INCORRECT', 'PARTIALLY_CORRECT')
    )
);

CREATE INDEX IF NOT EXISTS idx_predictions_pending ON predictions(outcome, target_date);
CREATE INDEX IF NOT EXISTS idx_predictions_forecaster ON predictions(forecaster_id);

-- =============================================================================
-- Table: jobs
-- =============================================================================

CREATE TABLE IF NOT EXISTS jobs (
    id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
    type TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'RUNNING',
    payload JSONB DEFAULT '{{}}'::jsonb,
    error TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    completed_at TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status, created_at);

-- =============================================================================
-- Table: channel_collection_jobs
-- =============================================================================

CREATE TABLE IF NOT EXISTS channel_collection_jobs (
    id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
    channel_id UUID NOT NULL REFERENCES channels(id) ON DELETE CASCADE,
    job_type TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'RUNNING',
    config JSONB DEFAULT '{{}}'::jsonb,
    started_at TIMESTAMPTZ DEFAULT NOW(),
    completed_at TIMESTAMPTZ,
    videos_found INTEGER DEFAULT 0,
    videos_processed INTEGER DEFAULT 0,
    error TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW(),

    CONSTRAINT channel_collection_jobs_type_valid CHECK (job_type IN ('FULL_SCAN', 'KEYWORD_SCAN'))
);

-- =============================================================================
-- Table: events
-- =============================================================================

CREATE TABLE IF NOT EXISTS events (
    id UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
    type TEXT NOT NULL,
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    data JSONB DEFAULT '{{}}'::jsonb,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_events_created_at ON events(created_at);
"""


def get_table_creation_sql() -> str:
    """Get the SQL to create every pipeline table in Supabase."""
    generated_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    return SCHEMA_SQL.format(generated_at=generated_at)
