"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session from the store handle attached to the app."""
    async for session in request.app.state.database.session():
        yield session


async def get_redis(request: Request) -> AsyncGenerator[object, None]:
    """Yield the Redis client attached to the app (may be None)."""
    yield getattr(request.app.state, "redis", None)
