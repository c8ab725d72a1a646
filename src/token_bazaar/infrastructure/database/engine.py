"""Async database engine and session management.

Provides:
    - Database: owns the SQLAlchemy async engine and session factory.
      Constructed once at startup, disposed at shutdown.
    - Database.session(): an async context manager that commits on success
      and rolls back on error.

Usage:
    db = Database.from_settings(get_settings())
    await db.create_all()
    async with db.session() as session:
        ...
    await db.dispose()
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from token_bazaar.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from token_bazaar.config import Settings

logger = get_logger(__name__)


class Database:
    """Engine plus session factory with an explicit lifecycle."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._session_factory = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> Database:
        engine = create_async_engine(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_pre_ping=True,
            echo=settings.db_echo_sql,
        )
        logger.info(
            "database.engine_created",
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )
        return cls(engine)

    @classmethod
    def from_url(cls, url: str) -> Database:
        """Build without pool tuning (SQLite and tests)."""
        return cls(create_async_engine(url))

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session that is committed on success or rolled back on error."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Create tables if they don't exist. Production deployments run migrations."""
        from token_bazaar.infrastructure.database.orm_models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database.tables_created")

    async def dispose(self) -> None:
        await self._engine.dispose()
        logger.info("database.engine_disposed")
