"""
Event Store adapters.

The analysis core reads events through the ``EventStore`` protocol only:

    await store.get_events(user_id, kind, id_filter, range_start, range_end)

returns events of one kind ordered by timestamp, optionally restricted to
events referencing ``id_filter``.  Two adapters ship here: an in-memory
store for embedding and tests, and a PostgreSQL store over the
``health_events`` table (see pipeline/migrations.py).
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

import psycopg2
from psycopg2.extras import RealDictCursor
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from db_utils import get_conn_str
from models import Event

log = logging.getLogger("event_store")


class EventStore(Protocol):
    async def get_events(
        self,
        user_id: str,
        kind: str,
        id_filter: Optional[str],
        range_start: datetime,
        range_end: datetime,
    ) -> List[Event]:
        ...


class InMemoryEventStore:
    """Dict-backed store keyed by (user, kind)."""

    def __init__(self):
        self._events: Dict[tuple, List[Event]] = defaultdict(list)

    def add_event(self, user_id: str, kind: str, event: Event) -> None:
        self._events[(user_id, kind)].append(event)

    def add_events(self, user_id: str, kind: str, events: List[Event]) -> None:
        self._events[(user_id, kind)].extend(events)

    def clear_user(self, user_id: str) -> None:
        for key in [k for k in self._events if k[0] == user_id]:
            del self._events[key]

    async def get_events(self, user_id, kind, id_filter, range_start, range_end) -> List[Event]:
        events = [
            e for e in self._events.get((user_id, kind), [])
            if range_start <= e.timestamp <= range_end
            and (id_filter is None or e.references(id_filter))
        ]
        return sorted(events, key=lambda e: e.timestamp)


# ─── PostgreSQL ───────────────────────────────────────────────

_SELECT_EVENTS = """
    SELECT occurred_at, item_ids, attributes
    FROM health_events
    WHERE user_id = %s
      AND kind = %s
      AND occurred_at BETWEEN %s AND %s
"""


class PostgresEventStore:
    """Reads ``health_events`` rows; blocking calls run in a worker thread."""

    def __init__(self, conn_str: Optional[str] = None):
        self.conn_str = conn_str or get_conn_str()
        if not self.conn_str:
            raise RuntimeError("HEALTH_EVENTS_CONNECTION_STRING (or DATABASE_URL) is not configured")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(psycopg2.OperationalError),
        before_sleep=before_sleep_log(log, logging.WARNING),
        reraise=True,
    )
    def _fetch_all(self, query: str, params: tuple) -> List[Dict[str, Any]]:
        conn = psycopg2.connect(self.conn_str)
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, params)
                return [dict(row) for row in cur.fetchall()]
        finally:
            conn.close()

    def fetch_events(self, user_id, kind, id_filter, range_start, range_end) -> List[Event]:
        query = _SELECT_EVENTS
        params: tuple = (user_id, kind, range_start, range_end)
        if id_filter is not None:
            query += "  AND %s = ANY(item_ids)\n"
            params += (id_filter,)
        query += "ORDER BY occurred_at"

        events = []
        for row in self._fetch_all(query, params):
            attributes = dict(row.get("attributes") or {})
            attributes["item_ids"] = list(row.get("item_ids") or [])
            events.append(Event(timestamp=row["occurred_at"], attributes=attributes))
        return events

    async def get_events(self, user_id, kind, id_filter, range_start, range_end) -> List[Event]:
        return await asyncio.to_thread(
            self.fetch_events, user_id, kind, id_filter, range_start, range_end
        )
