"""Idempotent schema bootstrap and audit for the PostgreSQL event store."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import psycopg2

from db_utils import get_conn_str

log = logging.getLogger("pipeline.migrations")

EVENT_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS health_events (
    id           BIGSERIAL PRIMARY KEY,
    user_id      TEXT        NOT NULL,
    kind         TEXT        NOT NULL,
    occurred_at  TIMESTAMP   NOT NULL,
    item_ids     TEXT[]      NOT NULL DEFAULT '{}',
    attributes   JSONB       NOT NULL DEFAULT '{}'::jsonb,
    created_at   TIMESTAMP   NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_health_events_user_kind_time
    ON health_events (user_id, kind, occurred_at);
CREATE INDEX IF NOT EXISTS idx_health_events_item_ids
    ON health_events USING GIN (item_ids);
"""

REQUIRED_COLUMNS: List[str] = ["user_id", "kind", "occurred_at", "item_ids", "attributes"]


def _resolve_conn_str(conn_str: str | None) -> str:
    return (conn_str or get_conn_str()).strip()


def ensure_event_schema(conn_str: str | None = None) -> None:
    """Create the health_events table and its indexes when missing."""
    cs = _resolve_conn_str(conn_str)
    if not cs:
        raise RuntimeError("HEALTH_EVENTS_CONNECTION_STRING (or DATABASE_URL) is not configured")

    conn = psycopg2.connect(cs)
    conn.autocommit = True
    try:
        with conn.cursor() as cur:
            cur.execute(EVENT_SCHEMA_SQL)
    finally:
        conn.close()

    log.info("Event store schema ready.")


def schema_audit(conn_str: str | None = None) -> Dict[str, Any]:
    """Report whether health_events exists with the columns the store reads."""
    cs = _resolve_conn_str(conn_str)
    if not cs:
        return {
            "ok": False,
            "error": "HEALTH_EVENTS_CONNECTION_STRING (or DATABASE_URL) is not configured",
            "columns": [],
            "missing_columns": list(REQUIRED_COLUMNS),
        }

    conn = psycopg2.connect(cs)
    try:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT column_name
                FROM information_schema.columns
                WHERE table_schema = 'public' AND table_name = 'health_events'
                ORDER BY ordinal_position
                """
            )
            cols = [r[0] for r in cur.fetchall()]
    finally:
        conn.close()

    missing = [c for c in REQUIRED_COLUMNS if c not in cols]
    return {"ok": not missing, "columns": cols, "missing_columns": missing}
