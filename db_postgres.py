"""
PostgreSQL connection handler with connection pooling.
Connections are borrowed from a pool and handed back once a repository call finishes.
"""
import time
import logging
from typing import Optional
from psycopg2 import extensions
from psycopg2.pool import ThreadedConnectionPool

from config import Config

logger = logging.getLogger(__name__)


class PostgreSQLConnection:
    """PostgreSQL connection handler backed by a thread-safe pool."""

    def __init__(self, minconn: int = 1, maxconn: int = 10):
        self.connection_string = self._get_connection_string()
        self.minconn = minconn
        self.maxconn = maxconn
        self.pool = None  # Created on first use
        logger.info("PostgreSQL connection handler initialized (lazy pool)")

    def _get_connection_string(self) -> str:
        """Get PostgreSQL connection string from configuration."""
        database_url = (Config.DATABASE_URL or "").strip()

        if not database_url:
            if Config.PRODUCTION:
                error_msg = "DATABASE_URL environment variable is not set in production."
                logger.error(error_msg)
                raise ValueError(error_msg)
            database_url = Config.LOCAL_DATABASE_URL
            logger.warning(f"DATABASE_URL not set, using LOCAL_DATABASE_URL: {database_url[:50]}...")

        # Heroku/Railway style URLs
        if database_url.startswith('postgres://'):
            database_url = database_url.replace('postgres://', 'postgresql://', 1)

        return database_url

    def _init_pool(self):
        """Initialize connection pool on first use."""
        try:
            self.pool = ThreadedConnectionPool(self.minconn, self.maxconn, self.connection_string)
            logger.info(f"✅ PostgreSQL connection pool initialized ({self.minconn}-{self.maxconn} connections)")
        except Exception as e:
            logger.error(f"Failed to create connection pool: {e}")
            raise

    def get_connection(self):
        """Borrow a connection from the pool."""
        if self.pool is None:
            self._init_pool()

        start = time.time()
        conn = self.pool.getconn()
        elapsed = time.time() - start
        if elapsed > 0.5:
            logger.warning(f"🐌 DB POOL GET slow: {elapsed:.3f}s")

        conn.set_isolation_level(extensions.ISOLATION_LEVEL_AUTOCOMMIT)
        return conn

    def return_connection(self, conn):
        """Return connection back to pool for reuse."""
        try:
            if self.pool and conn:
                self.pool.putconn(conn)
        except Exception as e:
            logger.error(f"Failed to return connection to pool: {e}")


# Global connection instance
_db_connection: Optional[PostgreSQLConnection] = None


def get_db_connection() -> PostgreSQLConnection:
    """Get or create database connection handler."""
    global _db_connection
    if _db_connection is None:
        _db_connection = PostgreSQLConnection()
    return _db_connection

