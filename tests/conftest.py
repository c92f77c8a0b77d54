"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from equipgg.database import Database
from equipgg.db.base import Base
from equipgg.db.models import Achievement, InventoryItem, Item, Mission
from equipgg.main import create_app

USER_ID = 1001


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[Database, None]:
    """In-memory SQLite store with every table created."""
    database = Database("sqlite+aiosqlite://")
    async with database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield database
    await database.close()


@pytest_asyncio.fixture
async def db_session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for test setup and assertions."""
    async for session in database.session():
        yield session
        break


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Redis stand-in that records every publish."""
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    redis.ping = AsyncMock(return_value=True)
    return redis


@pytest_asyncio.fixture
async def client(database: Database, mock_redis: AsyncMock) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the ASGI app with the test store and broker attached."""
    app = create_app()
    # ASGITransport does not run the lifespan, so attach the handles directly
    app.state.database = database
    app.state.redis = mock_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def user_id() -> int:
    return USER_ID


@pytest_asyncio.fixture
async def make_mission(db_session: AsyncSession):
    """Factory: insert a mission into the catalog."""

    async def _make(
        slug: str,
        requirement_type: str,
        requirement_value: int = 1,
        *,
        type_: str = "daily",
        xp_reward: int = 0,
        coin_reward: int = 0,
        gem_reward: int = 0,
        repeatable: bool = True,
    ) -> Mission:
        mission = Mission(
            slug=slug,
            name=slug.replace("_", " ").title(),
            description="",
            type=type_,
            requirement_type=requirement_type,
            requirement_value=requirement_value,
            xp_reward=xp_reward,
            coin_reward=coin_reward,
            gem_reward=gem_reward,
            repeatable=repeatable,
            is_active=True,
        )
        db_session.add(mission)
        await db_session.commit()
        return mission

    return _make


@pytest_asyncio.fixture
async def make_achievement(db_session: AsyncSession):
    """Factory: insert an achievement into the catalog."""

    async def _make(
        slug: str,
        requirement_type: str,
        requirement_value: float,
        *,
        category: str = "betting",
        xp_reward: int = 0,
        coin_reward: int = 0,
        gem_reward: int = 0,
    ) -> Achievement:
        achievement = Achievement(
            slug=slug,
            name=slug.replace("_", " ").title(),
            description=f"Reach {requirement_value} {requirement_type}",
            category=category,
            requirement_type=requirement_type,
            requirement_value=requirement_value,
            xp_reward=xp_reward,
            coin_reward=coin_reward,
            gem_reward=gem_reward,
            rarity="common",
            is_active=True,
        )
        db_session.add(achievement)
        await db_session.commit()
        return achievement

    return _make


@pytest_asyncio.fixture
async def make_catalog_items(db_session: AsyncSession):
    """Factory: insert ``count`` catalog items of one rarity."""

    async def _make(rarity: str, count: int = 2) -> list[Item]:
        items = [
            Item(name=f"{rarity.title()} Item {i}", type="weapon", rarity=rarity, coin_price=100, is_active=True)
            for i in range(count)
        ]
        db_session.add_all(items)
        await db_session.commit()
        return items

    return _make


@pytest_asyncio.fixture
async def give_items(db_session: AsyncSession):
    """Factory: put items straight into a user's inventory."""

    async def _give(user_id: int, rarity: str, values: list[int], *, equipped: bool = False) -> list[InventoryItem]:
        rows = [
            InventoryItem(
                user_id=user_id,
                item_name=f"{rarity} #{i}",
                rarity=rarity,
                value=value,
                equipped=equipped,
                obtained_from="crate",
            )
            for i, value in enumerate(values)
        ]
        db_session.add_all(rows)
        await db_session.commit()
        return rows

    return _give
