"""
PostgreSQL connection pool for the credential store.

Each command checks out one connection for its whole run: a listing's query,
report and deletions, or one `creds add`. The checkout commits when the block
succeeds and rolls back when it raises.

Usage:
    from credstore.db import get_connection

    with get_connection(isolation=REPEATABLE_READ) as conn:
        ...
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator
from contextlib import contextmanager

import psycopg2
import psycopg2.pool
from psycopg2.extensions import ISOLATION_LEVEL_REPEATABLE_READ

from credstore.config import get_config
from credstore.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

REPEATABLE_READ = ISOLATION_LEVEL_REPEATABLE_READ

_pool: psycopg2.pool.ThreadedConnectionPool | None = None
_pool_lock = threading.Lock()


def _unavailable(e: psycopg2.OperationalError) -> StoreUnavailableError:
    cfg = get_config().db
    return StoreUnavailableError(
        f"Database not connected: cannot reach PostgreSQL at "
        f"{cfg.host or 'local socket'}:{cfg.port}/{cfg.name}: {e}\n"
        f"Check CREDSTORE_DB_* environment variables and ensure PostgreSQL is running."
    )


def get_pool(minconn: int = 1, maxconn: int = 5) -> psycopg2.pool.ThreadedConnectionPool:
    """Return the process-wide pool, creating it on first use."""
    global _pool
    with _pool_lock:
        if _pool is None or _pool.closed:
            cfg = get_config().db
            logger.debug(
                "Opening credential store pool %s@%s:%s/%s",
                cfg.user,
                cfg.host or "socket",
                cfg.port,
                cfg.name,
            )
            try:
                _pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn, maxconn, connect_timeout=5, **cfg.dict
                )
            except psycopg2.OperationalError as e:
                raise _unavailable(e) from e
        return _pool


@contextmanager
def get_connection(
    isolation: int | None = None,
) -> Generator[psycopg2.extensions.connection, None, None]:
    """Check out a pooled connection for one transaction.

    ``isolation`` (a psycopg2 isolation level) applies to this checkout only.
    """
    pool = get_pool()
    try:
        conn = pool.getconn()
    except psycopg2.OperationalError as e:
        raise _unavailable(e) from e
    try:
        if isolation is not None:
            conn.set_session(isolation_level=isolation)
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if isolation is not None and not conn.closed:
            conn.set_session(isolation_level="DEFAULT")
        pool.putconn(conn)


def close_pool() -> None:
    """Close every pooled connection."""
    global _pool
    with _pool_lock:
        if _pool is not None:
            _pool.closeall()
            _pool = None
