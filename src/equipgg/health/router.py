"""Liveness, readiness and version endpoints for the ledger service."""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from equipgg.config import get_settings
from equipgg.db.models import Achievement, Item, Mission
from equipgg.dependencies import get_db, get_redis
from equipgg.middleware.logging import SERVICE_NAME

router = APIRouter()

CATALOG_TABLES = {"missions": Mission, "achievements": Achievement, "items": Item}


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness: the process is up."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    response: Response,
    db: AsyncSession = Depends(get_db),  # noqa: B008
    redis: object = Depends(get_redis),  # noqa: B008
) -> dict[str, object]:
    """Readiness: the ledger schema answers queries and the broker answers pings.

    The catalog sizes are reported alongside so an unseeded deployment is
    visible at a glance. Responds 503 while any check fails.
    """
    checks: dict[str, str] = {}
    catalog: dict[str, int] = {}

    try:
        for name, model in CATALOG_TABLES.items():
            catalog[name] = (await db.execute(select(func.count()).select_from(model))).scalar_one()
        checks["database"] = "ok"
    except Exception as exc:
        checks["database"] = f"error: {exc}"

    if redis is None:
        checks["redis"] = "error: not configured"
    else:
        try:
            await redis.ping()  # type: ignore[attr-defined]
            checks["redis"] = "ok"
        except Exception as exc:
            checks["redis"] = f"error: {exc}"

    ready = all(v == "ok" for v in checks.values())
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"status": "ready" if ready else "degraded", "checks": checks, "catalog": catalog}


@router.get("/version")
async def version() -> dict[str, object]:
    """Service build, environment and the active level curve."""
    settings = get_settings()
    return {
        "service": SERVICE_NAME,
        "version": settings.app_version,
        "environment": settings.environment,
        "level_curve": {
            "base": settings.xp_curve_base,
            "step": settings.xp_curve_step,
            "scale": settings.xp_curve_scale,
        },
    }
