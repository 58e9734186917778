"""
Postgres connection pooling for the persistence sink.

Reuses connections across upserts and backs off after repeated connection
failures so a dead database doesn't get hammered once per entity.
"""

import threading
import time
from contextlib import contextmanager
from typing import Optional

import psycopg2
from psycopg2 import pool

from colony_indexer.config.database_config import DatabaseConfig, get_database_config
from colony_indexer.exceptions import PersistenceError
from colony_indexer.utils.logger import logger


class DatabaseConnectionPool:
    """Thread-safe database connection pool with failure handling."""

    def __init__(
        self,
        config: Optional[DatabaseConfig] = None,
        min_connections: int = 1,
        max_connections: int = 5,
    ):
        self._config = config
        self._pool: Optional[psycopg2.pool.ThreadedConnectionPool] = None
        self._lock = threading.Lock()
        self._min_connections = min_connections
        self._max_connections = max_connections
        self._last_failure_time = 0.0
        self._failure_count = 0
        self._max_failure_count = 3
        self._backoff_seconds = 30

    @property
    def config(self) -> DatabaseConfig:
        if self._config is None:
            self._config = get_database_config()
        return self._config

    def _create_pool(self) -> psycopg2.pool.ThreadedConnectionPool:
        logger.info("[ConnectionPool] Creating connection pool (min=%d, max=%d)",
                    self._min_connections, self._max_connections)
        return psycopg2.pool.ThreadedConnectionPool(
            self._min_connections,
            self._max_connections,
            **self.config.get_connection_params()
        )

    def _should_retry(self) -> bool:
        if self._failure_count < self._max_failure_count:
            return True
        return time.time() - self._last_failure_time > self._backoff_seconds

    def _record_failure(self):
        self._failure_count += 1
        self._last_failure_time = time.time()

    def get_connection(self):
        """Get a live connection from the pool.

        Raises:
            PersistenceError: If the pool is in backoff or no connection can be made
        """
        with self._lock:
            if not self._should_retry():
                raise PersistenceError(
                    f"Connection pool in backoff after {self._failure_count} failures, "
                    f"retry in {self._backoff_seconds}s"
                )

            if self._pool is None:
                try:
                    self._pool = self._create_pool()
                    self._failure_count = 0
                except psycopg2.Error as e:
                    self._record_failure()
                    logger.error("[ConnectionPool] Failed to create pool: %s", e)
                    raise PersistenceError(f"Failed to create connection pool: {e}") from e

            try:
                conn = self._pool.getconn()
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                return conn
            except (psycopg2.Error, pool.PoolError) as e:
                self._record_failure()
                logger.error("[ConnectionPool] Failed to get connection: %s", e)
                if self._failure_count >= 2:
                    logger.warning("[ConnectionPool] Recreating pool due to persistent failures")
                    self._close_pool()
                raise PersistenceError(f"Failed to get database connection: {e}") from e

    def return_connection(self, conn, close_connection: bool = False):
        if self._pool is None:
            return
        try:
            self._pool.putconn(conn, close=close_connection)
        except (psycopg2.Error, pool.PoolError) as e:
            logger.error("[ConnectionPool] Error returning connection: %s", e)

    @contextmanager
    def connection(self):
        """Borrow a connection; commit on success, roll back and discard on error."""
        conn = self.get_connection()
        broken = False
        try:
            yield conn
            conn.commit()
        except Exception:
            broken = True
            try:
                conn.rollback()
            except psycopg2.Error as rollback_error:
                logger.warning("[ConnectionPool] Rollback failed: %s", rollback_error)
            raise
        finally:
            self.return_connection(conn, close_connection=broken)

    def _close_pool(self):
        if self._pool is not None:
            try:
                self._pool.closeall()
                logger.info("[ConnectionPool] Closed connection pool")
            except psycopg2.Error as e:
                logger.error("[ConnectionPool] Error closing pool: %s", e)
            finally:
                self._pool = None

    def close(self):
        with self._lock:
            self._close_pool()
