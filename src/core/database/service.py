"""
Async engine and session lifecycle for Apex.

One `DatabaseService` is built at startup and handed to the progression
store. It owns the engine and hands out two kinds of session:

- `get_transaction()`: commits when the block exits cleanly and rolls back
  when it raises. Every write goes through here.
- `get_session()`: no commit; for reads.

On PostgreSQL each session sets `statement_timeout` locally so a stuck lock
wait cannot hold a pool connection forever. Test runs use `NullPool`.

Retries are not handled here; see `TransactionRetryPolicy`.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Dict, Optional, Type

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool, Pool

from src.core.config.config import Config
from src.core.database.base import Base
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


class DatabaseInitializationError(RuntimeError):
    """The engine could not be created."""


class DatabaseNotInitializedError(RuntimeError):
    """A session was requested before `initialize()`."""


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    echo: bool = False
    pool_class: Type[Pool] = AsyncAdaptedQueuePool
    pool_size: int = 10
    max_overflow: int = 10
    pool_recycle: int = 1800
    pool_timeout: int = 30
    statement_timeout_ms: int = 30_000

    @property
    def is_postgres(self) -> bool:
        return self.url.startswith(("postgresql://", "postgresql+asyncpg://"))

    @property
    def url_scheme(self) -> str:
        """Driver part of the URL, safe to log (no credentials)."""
        return self.url.split(":", 1)[0] if ":" in self.url else "unknown"

    @classmethod
    def from_config(cls) -> "DatabaseSettings":
        if not isinstance(Config.DATABASE_URL, str) or not Config.DATABASE_URL:
            raise DatabaseInitializationError("DATABASE_URL must be a non-empty string")
        return cls(
            url=Config.DATABASE_URL,
            echo=Config.DATABASE_ECHO,
            pool_class=NullPool if Config.is_testing() else AsyncAdaptedQueuePool,
            pool_size=Config.DATABASE_POOL_SIZE,
            max_overflow=Config.DATABASE_MAX_OVERFLOW,
            pool_recycle=Config.DATABASE_POOL_RECYCLE,
            pool_timeout=Config.DATABASE_POOL_TIMEOUT,
            statement_timeout_ms=Config.DATABASE_STATEMENT_TIMEOUT_MS,
        )

    def engine_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"echo": self.echo, "poolclass": self.pool_class}
        if self.pool_class is not NullPool:
            kwargs.update(
                pool_size=self.pool_size,
                max_overflow=self.max_overflow,
                pool_recycle=self.pool_recycle,
                pool_timeout=self.pool_timeout,
                pool_pre_ping=True,
            )
        return kwargs


class DatabaseService:
    """
    >>> db = DatabaseService.from_config()
    >>> await db.initialize()
    >>> async with db.get_transaction() as session:
    ...     session.add(row)
    """

    def __init__(self, settings: DatabaseSettings) -> None:
        self._settings = settings
        self._engine: Optional[AsyncEngine] = None
        self._sessions: Optional[async_sessionmaker[AsyncSession]] = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls) -> "DatabaseService":
        return cls(DatabaseSettings.from_config())

    @property
    def settings(self) -> DatabaseSettings:
        return self._settings

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise DatabaseNotInitializedError("call DatabaseService.initialize() first")
        return self._engine

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Create the engine. Calling it again is a no-op."""
        async with self._lock:
            if self._engine is not None:
                return
            try:
                engine = create_async_engine(self._settings.url, **self._settings.engine_kwargs())
            except Exception as exc:
                logger.error(
                    "Database engine creation failed",
                    extra={"url_scheme": self._settings.url_scheme, "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise DatabaseInitializationError(f"Database initialization failed: {exc}") from exc

            self._engine = engine
            self._sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            logger.info(
                "Database engine ready",
                extra={
                    "url_scheme": self._settings.url_scheme,
                    "pool_class": self._settings.pool_class.__name__,
                },
            )

    async def shutdown(self) -> None:
        async with self._lock:
            engine, self._engine, self._sessions = self._engine, None, None
            if engine is not None:
                await engine.dispose()
                logger.info("Database engine disposed")

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema created", extra={"tables": len(Base.metadata.tables)})

    async def drop_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.info("Database schema dropped")

    async def health_check(self) -> bool:
        """`SELECT 1`. False when uninitialized or unreachable; never raises."""
        if self._engine is None:
            return False
        start = time.perf_counter()
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (DBAPIError, OSError) as exc:
            logger.warning(
                "Database health check failed",
                extra={"error_type": type(exc).__name__, "duration_ms": _elapsed_ms(start)},
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def _new_session(self) -> AsyncSession:
        if self._sessions is None:
            raise DatabaseNotInitializedError("call DatabaseService.initialize() first")
        return self._sessions()

    async def _apply_statement_timeout(self, session: AsyncSession) -> None:
        if self._settings.is_postgres:
            await session.execute(
                text(f"SET LOCAL statement_timeout = {int(self._settings.statement_timeout_ms)}")
            )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self._new_session() as session:
            await self._apply_statement_timeout(session)
            yield session

    @asynccontextmanager
    async def get_transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Session inside one transaction: commit on clean exit, rollback and
        re-raise otherwise. Never call `session.commit()` inside the block.
        """
        start = time.perf_counter()
        async with self._new_session() as session:
            try:
                await self._apply_statement_timeout(session)
                yield session
                await session.commit()
            except Exception as exc:
                await session.rollback()
                log = logger.warning if isinstance(exc, DBAPIError) else logger.debug
                log(
                    "Transaction rolled back",
                    extra={"error_type": type(exc).__name__, "duration_ms": _elapsed_ms(start)},
                )
                raise
            logger.debug("Transaction committed", extra={"duration_ms": _elapsed_ms(start)})


__all__ = [
    "DatabaseService",
    "DatabaseSettings",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
