"""Crate-key dispatcher.

Key balances only ever grow here and every grant is one atomic upsert.
Triggers that fire as a side effect of another reward (level-up, login
streak, mission tier) log and swallow failures; ``award_crate_keys``
itself raises so direct callers see them.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import IntEnum

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from equipgg.db.models import UserKeys
from equipgg.db.upsert import insert_for
from equipgg.errors import LedgerError, TransientStoreError, ValidationError
from equipgg.notifications.service import notify

logger = logging.getLogger(__name__)


class CrateId(IntEnum):
    LEVEL_UP = 1
    WEEKLY_LOYALTY = 2
    PRESTIGE = 3
    REWARD = 4
    EVENT = 5


CRATE_NAMES = {
    CrateId.LEVEL_UP: "Level Up Crate",
    CrateId.WEEKLY_LOYALTY: "Weekly Loyalty Crate",
    CrateId.PRESTIGE: "Prestige Crate",
    CrateId.REWARD: "Reward Crate",
    CrateId.EVENT: "Event Crate",
}

MISSION_TIER_KEYS = {"daily": 1, "weekly": 2, "special": 3}


# ---------------------------------------------------------------------------
# Grant calculators
# ---------------------------------------------------------------------------


def level_up_key_grants(old_level: int, new_level: int) -> dict[CrateId, int]:
    """Keys earned for every level in (old_level, new_level].

    1 Level Up key per level, +1 on multiples of 10, +1 Prestige key on
    multiples of 25.
    """
    level_up = prestige = 0
    for level in range(old_level + 1, new_level + 1):
        level_up += 1
        if level % 10 == 0:
            level_up += 1
        if level % 25 == 0:
            prestige += 1

    grants: dict[CrateId, int] = {}
    if level_up:
        grants[CrateId.LEVEL_UP] = level_up
    if prestige:
        grants[CrateId.PRESTIGE] = prestige
    return grants


def weekly_loyalty_key_count(week_streak: int) -> int:
    """1 key per completed streak week, 2 on every 4th week."""
    if week_streak < 1:
        return 0
    return 2 if week_streak % 4 == 0 else 1


def prestige_key_count(prestige_level: int) -> int:
    return max(0, min(prestige_level, 3))


def reward_key_count(mission_type: str) -> int:
    return MISSION_TIER_KEYS.get(mission_type, 0)


# ---------------------------------------------------------------------------
# Store operations
# ---------------------------------------------------------------------------


async def increment_keys(db: AsyncSession, user_id: int, crate_id: CrateId, count: int) -> int:
    """Atomically add ``count`` keys and return the new balance."""
    now = datetime.now(timezone.utc)
    stmt = insert_for(db, UserKeys).values(
        user_id=user_id,
        crate_id=int(crate_id),
        keys_count=count,
        acquired_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "crate_id"],
        set_={
            "keys_count": UserKeys.keys_count + stmt.excluded.keys_count,
            "updated_at": now,
        },
    ).returning(UserKeys.keys_count)
    result = await db.execute(stmt)
    return result.scalar_one()


async def award_crate_keys(
    db: AsyncSession,
    redis: object,
    user_id: int,
    crate_id: int,
    count: int = 1,
) -> int:
    """Grant keys, commit, then notify. Returns the new balance."""
    if count <= 0:
        raise ValidationError("Key count must be positive", count=count)
    try:
        crate = CrateId(crate_id)
    except ValueError as exc:
        raise ValidationError("Unknown crate", crate_id=crate_id) from exc

    try:
        balance = await increment_keys(db, user_id, crate, count)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise TransientStoreError("Failed to award crate keys", user_id=user_id, crate_id=int(crate)) from exc

    logger.info("Awarded %d %s key(s) to user %s", count, crate.name, user_id)

    name = CRATE_NAMES[crate]
    await notify(
        db,
        redis,
        user_id,
        "reward",
        "Crate Key Awarded",
        f"You received {count} {name} key{'s' if count > 1 else ''}",
        {
            "crate_id": int(crate),
            "crate_name": name,
            "keys_count": count,
            "balance": balance,
            "link": "/dashboard/crates",
        },
    )
    return balance


async def _grant_all(
    db: AsyncSession,
    redis: object,
    user_id: int,
    grants: dict[CrateId, int],
    reason: str,
) -> int:
    granted = 0
    for crate, count in grants.items():
        if count <= 0:
            continue
        try:
            await award_crate_keys(db, redis, user_id, crate, count)
            granted += count
        except LedgerError:
            logger.warning("Failed to grant %s keys (%s) to user %s", crate.name, reason, user_id, exc_info=True)
    return granted


async def award_level_up_crate_key(
    db: AsyncSession, redis: object, user_id: int, old_level: int, new_level: int
) -> int:
    return await _grant_all(db, redis, user_id, level_up_key_grants(old_level, new_level), "level_up")


async def award_weekly_loyalty_crate_key(
    db: AsyncSession, redis: object, user_id: int, week_streak: int
) -> int:
    grants = {CrateId.WEEKLY_LOYALTY: weekly_loyalty_key_count(week_streak)}
    return await _grant_all(db, redis, user_id, grants, "weekly_loyalty")


async def award_prestige_crate_key(
    db: AsyncSession, redis: object, user_id: int, prestige_level: int
) -> int:
    grants = {CrateId.PRESTIGE: prestige_key_count(prestige_level)}
    return await _grant_all(db, redis, user_id, grants, "prestige")


async def award_reward_crate_key(
    db: AsyncSession, redis: object, user_id: int, mission_type: str
) -> int:
    grants = {CrateId.REWARD: reward_key_count(mission_type)}
    return await _grant_all(db, redis, user_id, grants, f"mission_{mission_type}")


async def award_event_crate_key(db: AsyncSession, redis: object, user_id: int) -> int:
    return await _grant_all(db, redis, user_id, {CrateId.EVENT: 1}, "event")


async def get_user_keys(db: AsyncSession, user_id: int) -> dict[int, int]:
    """Key balance per crate id."""
    result = await db.execute(
        select(UserKeys.crate_id, UserKeys.keys_count)
        .where(UserKeys.user_id == user_id)
        .order_by(UserKeys.crate_id)
    )
    return {crate_id: keys_count for crate_id, keys_count in result}
