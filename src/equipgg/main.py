"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from equipgg.config import get_settings
from equipgg.database import Database
from equipgg.gamification.router import router as progression_router
from equipgg.gamification.seed import seed_catalog
from equipgg.health.router import router as health_router
from equipgg.middleware import setup_middleware
from equipgg.notifications.router import router as notifications_router
from equipgg.redis_client import close_redis, create_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the store and broker handles once per process."""
    settings = get_settings()
    database = Database.from_settings(settings)
    redis = create_redis(settings.redis_url)
    app.state.database = database
    app.state.redis = redis

    # Seed catalog (idempotent)
    try:
        async for db in database.session():
            await seed_catalog(db)
    except Exception:
        logger.warning("Catalog seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await database.close()
    await close_redis(redis)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="EquipGG Progression Ledger",
        description="XP, missions, achievements, crate keys and trade-ups for EquipGG",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(progression_router)
    app.include_router(notifications_router)

    return app


app = create_app()
