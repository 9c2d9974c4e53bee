# linkedin_pulse/db/schema.py
"""
PostgreSQL schema for credentials, sync logs and analytics snapshots.

Timestamps are epoch milliseconds (BIGINT); nested values are versioned
JSON envelopes stored as JSONB.
"""

from linkedin_pulse.db.helpers import execute_query
from linkedin_pulse.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS linkedin_credentials (
        principal_id            TEXT PRIMARY KEY,
        remote_subject_id       TEXT,
        access_token_encrypted  TEXT NOT NULL,
        refresh_token_encrypted TEXT,
        expires_at              BIGINT NOT NULL,
        last_refreshed_at       BIGINT,
        profile                 JSONB,
        created_at              BIGINT NOT NULL,
        updated_at              BIGINT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sync_logs (
        sync_job_id      TEXT PRIMARY KEY,
        started_at       BIGINT NOT NULL,
        completed_at     BIGINT,
        status           TEXT NOT NULL,
        trigger_type     TEXT NOT NULL,
        total_users      INTEGER NOT NULL DEFAULT 0,
        success_count    INTEGER NOT NULL DEFAULT 0,
        error_count      INTEGER NOT NULL DEFAULT 0,
        errors           JSONB,
        success_details  JSONB
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_sync_logs_started_at
        ON sync_logs (started_at DESC)
    """,
    """
    CREATE TABLE IF NOT EXISTS analytics_snapshots (
        snapshot_id        TEXT PRIMARY KEY,
        principal_id       TEXT NOT NULL,
        remote_subject_id  TEXT NOT NULL,
        synced_at          BIGINT NOT NULL,
        sync_job_id        TEXT,
        date_range_start   DATE NOT NULL,
        date_range_end     DATE NOT NULL,
        impressions        INTEGER NOT NULL DEFAULT 0,
        unique_views       INTEGER NOT NULL DEFAULT 0,
        reactions          INTEGER NOT NULL DEFAULT 0,
        comments           INTEGER NOT NULL DEFAULT 0,
        shares             INTEGER NOT NULL DEFAULT 0,
        clicks             INTEGER NOT NULL DEFAULT 0,
        engagements        INTEGER NOT NULL DEFAULT 0,
        post_count         INTEGER NOT NULL DEFAULT 0,
        raw_payload        JSONB
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_analytics_snapshots_principal
        ON analytics_snapshots (principal_id, synced_at DESC)
    """,
)


async def apply_schema() -> None:
    """Create tables and indexes if they do not exist yet."""
    for statement in SCHEMA_STATEMENTS:
        await execute_query(statement)
    logger.info("Database schema applied", statements=len(SCHEMA_STATEMENTS))
