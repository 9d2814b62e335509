"""
Database Connection Management
Handles PostgreSQL connections with context manager pattern.
"""

import psycopg2
from psycopg2.extras import RealDictCursor
from contextlib import contextmanager
import logging

from marketpollen.config import config

logger = logging.getLogger(__name__)


def _connect():
    """Open a connection with connect and per-statement time limits applied."""
    return psycopg2.connect(
        config.DATABASE_URL,
        connect_timeout=config.DB_CONNECT_TIMEOUT_SECONDS,
        options=f"-c statement_timeout={config.DB_STATEMENT_TIMEOUT_MS}",
    )


@contextmanager
def get_db_connection():
    """
    Context manager for database connections.
    Commits on success, rolls back on error, always closes.

    Usage:
        with get_db_connection() as conn:
            cur = conn.cursor()
            cur.execute("SELECT * FROM stores")
            rows = cur.fetchall()
    """
    conn = None
    try:
        conn = _connect()
        logger.debug("Database connection established")
        yield conn
        conn.commit()
        logger.debug("Transaction committed")
    except Exception as e:
        if conn:
            conn.rollback()
            logger.error(f"Transaction rolled back due to error: {e}")
        raise
    finally:
        if conn:
            conn.close()
            logger.debug("Database connection closed")


@contextmanager
def get_db_cursor(dict_cursor=True):
    """
    Context manager for a cursor on a fresh connection.
    Returns RealDictCursor by default so rows come back as dicts.

    Every statement executed on one cursor shares a single transaction.

    Usage:
        with get_db_cursor() as cur:
            cur.execute("SELECT * FROM stores WHERE id = %s", (store_id,))
            store = cur.fetchone()
    """
    with get_db_connection() as conn:
        cursor_factory = RealDictCursor if dict_cursor else None
        cur = conn.cursor(cursor_factory=cursor_factory)
        try:
            yield cur
        finally:
            cur.close()
