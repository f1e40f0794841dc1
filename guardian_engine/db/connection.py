"""Database connection management"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool
from guardian_engine.config import DATABASE_URL, DB_POOL_MAX_SIZE, DB_POOL_MIN_SIZE
from guardian_engine.exceptions import ConnectionError, wrap_external_exception

logger = logging.getLogger(__name__)


class Database:
    """Database connection pool manager"""

    def __init__(
        self,
        connection_string: str = DATABASE_URL,
        min_size: int = DB_POOL_MIN_SIZE,
        max_size: int = DB_POOL_MAX_SIZE
    ):
        self.connection_string = connection_string
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[AsyncConnectionPool] = None

    async def init_pool(self) -> None:
        """Initialize connection pool"""
        logger.info(f"Initializing database connection pool (min={self.min_size}, max={self.max_size})")
        self._pool = AsyncConnectionPool(
            self.connection_string,
            min_size=self.min_size,
            max_size=self.max_size,
            open=False
        )
        try:
            await self._pool.open(wait=True)
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="init_pool")

    async def close_pool(self) -> None:
        """Close connection pool"""
        if self._pool:
            logger.info("Closing database connection pool")
            await self._pool.close()
            self._pool = None

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Get database connection from pool"""
        if not self._pool:
            raise ConnectionError("Database pool not initialized", operation="connection")

        async with self._pool.connection() as conn:
            conn.row_factory = dict_row
            yield conn
