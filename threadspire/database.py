"""
Async SQLAlchemy engine + session factory.

The production target speaks the MySQL protocol, so we use the aiomysql
driver; tests point ``database_url`` at SQLite through aiosqlite.

A ``Backend`` is built once at startup and handed to every service: it owns
the engine, the session factory and the change feed. One session is one
unit of work; change events staged on it are published after commit.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from threadspire.config import Settings
from threadspire.realtime import ChangeFeed

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class Backend:
    """Engine, session factory and change feed for one running app."""

    def __init__(self, settings: Settings, changes: ChangeFeed | None = None):
        self.settings = settings
        url = settings.sqlalchemy_url
        engine_kwargs = {"echo": settings.db_echo}
        if not url.startswith("sqlite"):
            engine_kwargs.update(pool_pre_ping=True, pool_size=20, max_overflow=10)
        self.engine = create_async_engine(url, **engine_kwargs)
        self.sessionmaker = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self.changes = changes or ChangeFeed()

    async def init_schema(self) -> None:
        """Create all tables if they don't exist (idempotent)."""
        # models must be imported so their tables are registered on Base
        import threadspire.models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables initialised")

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session, commit on success, then publish staged changes."""
        async with self.sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                session.info.pop(ChangeFeed.PENDING_KEY, None)
                raise
        await self.changes.publish(session.info.pop(ChangeFeed.PENDING_KEY, []))


def get_backend(request: Request) -> Backend:
    return request.app.state.backend


async def get_db(request: Request):
    """FastAPI dependency that yields an async DB session."""
    async with get_backend(request).session() as session:
        yield session
