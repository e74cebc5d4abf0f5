"""Database helpers for persisting emitted leads."""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional

from psycopg2 import extras, pool

from leadfinder.etl.transform import lead_row_from_dict, to_lead_row
from leadfinder.models import LeadRecord

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.SimpleConnectionPool] = None


def init_pool(database_url: str, minconn: int = 1, maxconn: int = 5) -> pool.SimpleConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    if _connection_pool is None:
        if not database_url:
            raise RuntimeError("DATABASE_URL is required for database connections")
        _connection_pool = pool.SimpleConnectionPool(
            minconn,
            maxconn,
            dsn=database_url,
            connect_timeout=10,
        )
        logger.info("Database connection pool initialised")
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    if _connection_pool is None:
        raise RuntimeError("Database pool is not initialised; call init_pool() first")
    conn = _connection_pool.getconn()
    try:
        yield conn
    finally:
        _connection_pool.putconn(conn)


def _prepare_params(row: Dict[str, Any]) -> Dict[str, Any]:
    params = dict(row)
    params["search_location"] = extras.Json(row.get("search_location") or {})
    return params


_INSERT_LEAD = """
INSERT INTO search_leads (
    search_id,
    company_name,
    lead_name,
    lead_title,
    email,
    phone,
    search_phase,
    target_url,
    search_step,
    search_keywords,
    search_location,
    search_radius,
    premium_used,
    created_at
) VALUES (
    %(search_id)s,
    %(company_name)s,
    %(lead_name)s,
    %(lead_title)s,
    %(email)s,
    %(phone)s,
    %(search_phase)s,
    %(target_url)s,
    %(search_step)s,
    %(search_keywords)s,
    %(search_location)s,
    %(search_radius)s,
    %(premium_used)s,
    NOW()
);
"""

_SELECT_RECENT = """
SELECT company_name, lead_name, lead_title, email, phone, search_phase, target_url, search_step
FROM search_leads
ORDER BY created_at DESC
LIMIT %(limit)s;
"""


def insert_lead(row: Dict[str, Any]) -> None:
    """Append one lead row; rows are never updated in place."""
    params = _prepare_params(row)
    if not params.get("search_id") or not params.get("company_name"):
        raise ValueError("search_id and company_name are required for insert")

    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_INSERT_LEAD, params)
        conn.commit()
        logger.debug("Inserted lead for %s", params["company_name"])


def fetch_recent_leads(limit: int = 100) -> List[LeadRecord]:
    """Return the newest persisted leads, newest first."""
    if limit <= 0:
        raise ValueError("limit must be positive")

    with get_connection() as conn:
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            cur.execute(_SELECT_RECENT, {"limit": limit})
            rows = cur.fetchall()
    return [lead_row_from_dict(row) for row in rows]


def make_lead_sink(premium_used: bool) -> Callable[[LeadRecord, Any], None]:
    """Build the pipeline sink; run metadata comes from the PipelineRun passed per call."""

    def sink(record: LeadRecord, run: Any) -> None:
        insert_lead(to_lead_row(record, search_id=run.search_id, request=run.request, premium_used=premium_used))

    return sink

