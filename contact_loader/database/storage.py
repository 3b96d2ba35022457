"""
asyncpg-backed storage collaborator.

AsyncpgStorage hands out one AsyncpgSession (one pooled connection) per
batch; the session owns that batch's transaction.
"""
import asyncio
from typing import Any, Optional, Sequence

import asyncpg

from ..setup.config import DatabaseConfig
from ..setup.logging import logger
from .engine import create_async_pool


def rows_affected(status: str) -> int:
    """Parse a command tag such as 'INSERT 0 42'."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


class AsyncpgSession:
    def __init__(self, connection: asyncpg.Connection):
        self.connection = connection
        self._transaction = None
        # asyncpg connections run one query at a time
        self._lock = asyncio.Lock()

    async def begin(self) -> None:
        self._transaction = self.connection.transaction()
        await self._transaction.start()

    async def execute(self, statement: str, params: Sequence[Any]) -> int:
        async with self._lock:
            return rows_affected(await self.connection.execute(statement, *params))

    async def execute_isolated(self, statement: str, params: Sequence[Any]) -> int:
        # Nested transaction -> SAVEPOINT, so one rejection leaves the batch usable
        async with self._lock:
            async with self.connection.transaction():
                return rows_affected(await self.connection.execute(statement, *params))

    async def fetch_one(self, statement: str, params: Sequence[Any]) -> Optional[asyncpg.Record]:
        async with self._lock:
            return await self.connection.fetchrow(statement, *params)

    async def commit(self) -> None:
        if self._transaction is not None:
            await self._transaction.commit()
            self._transaction = None

    async def rollback(self) -> None:
        if self._transaction is not None:
            transaction, self._transaction = self._transaction, None
            await transaction.rollback()


class AsyncpgStorage:
    def __init__(self, pool: asyncpg.Pool, acquire_timeout: Optional[float] = None):
        self.pool = pool
        self.acquire_timeout = acquire_timeout

    @classmethod
    async def connect(cls, config: DatabaseConfig) -> "AsyncpgStorage":
        pool = await create_async_pool(config)
        return cls(pool, acquire_timeout=config.acquire_timeout)

    async def acquire(self) -> AsyncpgSession:
        connection = await self.pool.acquire(timeout=self.acquire_timeout)
        return AsyncpgSession(connection)

    async def release(self, session: AsyncpgSession) -> None:
        try:
            await self.pool.release(session.connection)
        except Exception as e:
            logger.warning(f"[Storage] Failed to release connection: {e}")

    async def close(self) -> None:
        await self.pool.close()
        logger.info("[Storage] Connection pool closed")
