"""Async SQLAlchemy engine and session management."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from equipgg.config import Settings


class Database:
    """Store handle: one engine and session factory per process.

    Built in the application lifespan (or a test fixture) and passed to
    whoever needs sessions, instead of living in module globals.
    """

    def __init__(self, url: str, **engine_kwargs: Any) -> None:
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, **_engine_options(url, engine_kwargs))
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> Database:
        return cls(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )

    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield an async database session."""
        async with self.session_factory() as session:
            yield session

    async def close(self) -> None:
        """Dispose of the database engine."""
        await self.engine.dispose()


def _engine_options(url: str, overrides: dict[str, Any]) -> dict[str, Any]:
    if url.startswith("sqlite"):
        # In-memory SQLite must share one connection or every session sees an empty DB
        options: dict[str, Any] = {"echo": False}
        if ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"):
            options["poolclass"] = StaticPool
            options["connect_args"] = {"check_same_thread": False}
        overrides = {k: v for k, v in overrides.items() if k not in ("pool_size", "max_overflow")}
        options.update(overrides)
        return options

    options = {
        "pool_size": 20,
        "max_overflow": 10,
        "pool_pre_ping": True,
        "echo": False,
    }
    if url.startswith("postgresql+asyncpg"):
        options["connect_args"] = {"statement_cache_size": 0}
    options.update(overrides)
    return options
