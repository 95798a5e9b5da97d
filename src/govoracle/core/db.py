"""PostgreSQL access (psycopg2).

One process-wide ThreadedConnectionPool, created on first use from
OracleSettings (GOVORACLE_DB_*). Store methods run in worker threads via
asyncio.to_thread, so the pool must be the threaded one.

    with get_cursor() as cur:          # one transaction
        cur.execute(...)

    with get_connection_context() as conn:   # raw connection (migrations)
        ...
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import psycopg2
from psycopg2 import pool as psycopg2_pool
from psycopg2.extras import RealDictCursor

from .config import get_config
from .exceptions import DatabaseError

logger = logging.getLogger(__name__)


def _database_error(e: psycopg2.Error) -> DatabaseError:
    if isinstance(e, psycopg2.IntegrityError):
        return DatabaseError(f"Integrity constraint violation: {e}", {"pgcode": e.pgcode})
    return DatabaseError(f"Database error: {e}", {"pgcode": getattr(e, "pgcode", None)})


class ConnectionPool:
    """Lazily created, process-wide connection pool."""

    _instance: ConnectionPool | None = None
    _lock = threading.Lock()

    def __init__(self) -> None:
        self._pool: psycopg2_pool.ThreadedConnectionPool | None = None
        self._pool_lock = threading.Lock()
        self._checked_out = 0

    @classmethod
    def get_instance(cls) -> ConnectionPool:
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close and forget the pool. Useful for testing."""
        with cls._lock:
            if cls._instance is not None:
                cls._instance.close_all()
            cls._instance = None

    def _ensure_pool(self) -> psycopg2_pool.ThreadedConnectionPool:
        with self._pool_lock:
            if self._pool is None:
                config = get_config()
                try:
                    self._pool = psycopg2_pool.ThreadedConnectionPool(**config.pool_config, **config.connection_params)
                except psycopg2.OperationalError as e:
                    logger.error("Cannot reach database %s@%s: %s", config.db_name, config.db_host, e)
                    raise DatabaseError(f"Failed to create connection pool: {e}", {"host": config.db_host}) from e
                logger.info(
                    "Connection pool to %s@%s ready (%d-%d connections)",
                    config.db_name,
                    config.db_host,
                    config.db_pool_min,
                    config.db_pool_max,
                )
            return self._pool

    def get_connection(self) -> Any:
        """Borrow a connection.

        Raises:
            DatabaseError: pool exhausted or database unreachable
        """
        pool = self._ensure_pool()
        try:
            conn = pool.getconn()
        except psycopg2_pool.PoolError as e:
            logger.error("Connection pool exhausted: %s", e)
            raise DatabaseError(f"Failed to get connection from pool: {e}") from e
        except psycopg2.Error as e:
            raise _database_error(e) from e
        self._checked_out += 1
        return conn

    def put_connection(self, conn: Any) -> None:
        if self._pool is None or conn is None:
            return
        self._checked_out = max(0, self._checked_out - 1)
        try:
            self._pool.putconn(conn)
        except psycopg2_pool.PoolError as e:
            logger.warning("Discarding connection the pool does not own: %s", e)
            conn.close()

    def close_all(self) -> None:
        with self._pool_lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None
                self._checked_out = 0
                logger.info("Connection pool closed")

    def get_stats(self) -> dict[str, Any]:
        config = get_config()
        return {
            "initialized": self._pool is not None,
            "checked_out": self._checked_out,
            "min_connections": config.db_pool_min,
            "max_connections": config.db_pool_max,
        }


def get_connection() -> Any:
    return ConnectionPool.get_instance().get_connection()


def put_connection(conn: Any) -> None:
    ConnectionPool.get_instance().put_connection(conn)


def close_pool() -> None:
    ConnectionPool.get_instance().close_all()


@contextmanager
def get_cursor(dict_cursor: bool = True) -> Generator[Any, None, None]:
    """Cursor whose block is one transaction: committed on exit, rolled back on any error.

    Raises:
        DatabaseError: a psycopg2 error inside the block
    """
    conn = get_connection()
    cur = conn.cursor(cursor_factory=RealDictCursor if dict_cursor else None)
    try:
        yield cur
        conn.commit()
    except psycopg2.Error as e:
        conn.rollback()
        logger.error("Transaction rolled back: %s", e)
        raise _database_error(e) from e
    except BaseException:
        conn.rollback()
        raise
    finally:
        cur.close()
        put_connection(conn)


@contextmanager
def get_connection_context() -> Generator[Any, None, None]:
    """Raw connection, committed on success and rolled back on a database error."""
    conn = get_connection()
    try:
        yield conn
        conn.commit()
    except psycopg2.Error as e:
        conn.rollback()
        logger.error("Transaction rolled back: %s", e)
        raise _database_error(e) from e
    finally:
        put_connection(conn)
