"""
Database manager for the oracle.

One async engine per process; every statement runs in its own short
transaction so state transitions commit independently.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Sequence

from sqlalchemy import text
from sqlalchemy.engine import Result
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.sql.elements import ClauseElement, TextClause

from bitredict.config import DatabaseSettings
from bitredict.config.db_url import resolve_database_url, sanitize_url
from bitredict.shared.errors import TransientError

logger = logging.getLogger(__name__)


def _check_query(query: Any) -> None:
    if isinstance(query, str):
        raise TypeError("Raw SQL strings are disallowed. Use sqlalchemy.text().")
    if not isinstance(query, (TextClause, ClauseElement)):
        raise TypeError("Query must be a SQLAlchemy TextClause or ClauseElement.")


class DBM:
    def __init__(self, settings: DatabaseSettings, *, engine: AsyncEngine | None = None):
        self.settings = settings
        self.url = resolve_database_url(settings) if engine is None else str(engine.url)
        self.engine: AsyncEngine = engine or create_async_engine(
            self.url,
            echo=settings.echo,
            pool_size=settings.pool_size,
            pool_pre_ping=True,
            future=True,
        )
        self.session_maker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info({"dbm_init": {"url": sanitize_url(self.url), "pool_size": settings.pool_size}})

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_maker() as session:
            yield session

    async def read(
        self,
        query: Any,
        params: dict | None = None,
        *,
        mappings: bool = True,
    ) -> Sequence[Any]:
        """Execute a read-only statement and return all rows."""
        _check_query(query)
        try:
            async with self.session() as session:
                result: Result = await session.execute(query, params or {})
                return result.mappings().all() if mappings else result.all()
        except (OperationalError, InterfaceError) as exc:
            raise TransientError(f"database read failed: {exc}") from exc

    async def write(
        self,
        query: Any,
        params: dict | Sequence[dict] | None = None,
        *,
        return_rows: bool = False,
    ) -> Any:
        """Execute a write inside a transaction.

        Returns the affected row count, or the returned rows as mappings when
        return_rows is set (for INSERT ... RETURNING).
        """
        _check_query(query)
        if not params:
            raise ValueError("Parameterized writes are required. Provide a params mapping.")
        try:
            async with self.session() as session:
                async with session.begin():
                    result: Result = await session.execute(query, params)
                    if return_rows:
                        return result.mappings().all()
                    return result.rowcount or 0
        except (OperationalError, InterfaceError) as exc:
            raise TransientError(f"database write failed: {exc}") from exc
        except DBAPIError as exc:
            if exc.connection_invalidated:
                raise TransientError(f"database connection reset: {exc}") from exc
            raise

    async def ping(self) -> bool:
        rows = await self.read(text("SELECT 1 AS ok"))
        return bool(rows and rows[0]["ok"] == 1)

    async def dispose(self) -> None:
        await self.engine.dispose()


__all__ = ["DBM"]
