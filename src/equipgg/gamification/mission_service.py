"""Mission progress tracking, completion rewards and cycle resets.

Progress is written with one upsert per (user, mission) row and completion
is claimed with a conditional ``UPDATE ... WHERE completed = false``, so a
mission pays out exactly once per cycle however many concurrent actions
push it over its threshold.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import partial

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from equipgg.db.models import InventoryItem, Mission, UserMissionProgress
from equipgg.db.upsert import insert_for
from equipgg.errors import ValidationError
from equipgg.gamification.crate_keys import award_reward_crate_key
from equipgg.gamification.xp_service import RewardBurst, commit_burst, credit_xp
from equipgg.notifications.service import Channel, notify, publish

logger = logging.getLogger(__name__)

MISSION_TYPES = ("daily", "weekly", "special", "story")

# Advanced once per cycle when every other daily mission is complete
DAILY_AGGREGATE = "complete_daily_missions"

OWNERSHIP_COUNTERS = (
    "items_owned",
    "rare_items_owned",
    "epic_items_owned",
    "legendary_items_owned",
    "inventory_slots",
)


async def _missions_for(db: AsyncSession, requirement_type: str) -> list[Mission]:
    result = await db.execute(
        select(Mission)
        .where(Mission.requirement_type == requirement_type, Mission.is_active.is_(True))
        .order_by(Mission.sort_order, Mission.id)
    )
    return list(result.scalars().all())


async def _write_progress(
    db: AsyncSession,
    user_id: int,
    mission: Mission,
    value: int,
    *,
    absolute: bool,
) -> bool:
    """Advance progress and claim completion. Returns True on first completion."""
    now = datetime.now(timezone.utc)

    stmt = insert_for(db, UserMissionProgress).values(
        user_id=user_id,
        mission_id=mission.id,
        progress=value,
        completed=False,
        updated_at=now,
    )
    if absolute:
        # Never lower progress inside a cycle
        new_progress = case(
            (UserMissionProgress.progress < stmt.excluded.progress, stmt.excluded.progress),
            else_=UserMissionProgress.progress,
        )
    else:
        new_progress = UserMissionProgress.progress + stmt.excluded.progress
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "mission_id"],
        set_={"progress": new_progress, "updated_at": now},
    )
    await db.execute(stmt)

    claimed = await db.execute(
        update(UserMissionProgress)
        .where(
            UserMissionProgress.user_id == user_id,
            UserMissionProgress.mission_id == mission.id,
            UserMissionProgress.completed.is_(False),
            UserMissionProgress.progress >= mission.requirement_value,
        )
        .values(completed=True, completed_at=now)
        .returning(UserMissionProgress.id)
        .execution_options(synchronize_session=False)
    )
    return claimed.scalar_one_or_none() is not None


async def _reward_mission(
    db: AsyncSession,
    redis: object,
    burst: RewardBurst,
    mission: Mission,
) -> None:
    xp = 0
    if mission.xp_reward > 0:
        xp = await credit_xp(
            db,
            burst,
            mission.xp_reward,
            f"mission_{mission.type}",
            {"mission_id": mission.id},
            description=mission.name,
        )
    burst.credit(coins=mission.coin_reward, gems=mission.gem_reward)
    burst.after_commit(partial(_announce_completion, db, redis, burst.user_id, mission, xp))
    logger.info("Mission %s completed by user %s", mission.slug, burst.user_id)


async def _announce_completion(
    db: AsyncSession,
    redis: object,
    user_id: int,
    mission: Mission,
    xp: int,
) -> None:
    message = f"{mission.name} completed! +{xp} XP"
    if mission.coin_reward:
        message += f" and {mission.coin_reward} coins"

    await notify(
        db,
        redis,
        user_id,
        "mission_completed",
        "Mission Complete!",
        message,
        {
            "mission_id": mission.id,
            "mission_type": mission.type,
            "xp": xp,
            "coins": mission.coin_reward,
            "gems": mission.gem_reward,
        },
    )
    await publish(
        redis,
        Channel.XP_UPDATES,
        "mission_completed",
        {"mission_id": mission.id, "name": mission.name, "xp_reward": xp, "coin_reward": mission.coin_reward},
        user_id=user_id,
    )
    await award_reward_crate_key(db, redis, user_id, mission.type)


async def _advance_daily_aggregate(
    db: AsyncSession,
    redis: object,
    burst: RewardBurst,
    completed: list[Mission],
) -> list[Mission]:
    """Advance the aggregate mission when the last outstanding daily just completed."""
    if not any(m.type == "daily" and m.requirement_type != DAILY_AGGREGATE for m in completed):
        return []

    daily_ids = (
        select(Mission.id)
        .where(
            Mission.type == "daily",
            Mission.is_active.is_(True),
            Mission.requirement_type != DAILY_AGGREGATE,
        )
    )
    total = (
        await db.execute(
            select(func.count()).select_from(Mission).where(
                Mission.type == "daily",
                Mission.is_active.is_(True),
                Mission.requirement_type != DAILY_AGGREGATE,
            )
        )
    ).scalar_one()
    done = (
        await db.execute(
            select(func.count())
            .select_from(UserMissionProgress)
            .where(
                UserMissionProgress.user_id == burst.user_id,
                UserMissionProgress.mission_id.in_(daily_ids),
                UserMissionProgress.completed.is_(True),
            )
        )
    ).scalar_one()
    if done < total:
        return []

    newly: list[Mission] = []
    for aggregate in await _missions_for(db, DAILY_AGGREGATE):
        state = await db.execute(
            select(UserMissionProgress.completed).where(
                UserMissionProgress.user_id == burst.user_id,
                UserMissionProgress.mission_id == aggregate.id,
            )
        )
        if state.scalar_one_or_none():
            continue
        if await _write_progress(db, burst.user_id, aggregate, 1, absolute=False):
            await _reward_mission(db, redis, burst, aggregate)
            newly.append(aggregate)
    return newly


async def _progress(
    db: AsyncSession,
    redis: object,
    user_id: int,
    action_type: str,
    value: int,
    *,
    absolute: bool,
    burst: RewardBurst | None,
) -> list[Mission]:
    missions = await _missions_for(db, action_type)
    if not missions:
        return []

    own_burst = burst is None
    if burst is None:
        burst = RewardBurst(user_id=user_id)

    completed: list[Mission] = []
    for mission in missions:
        if await _write_progress(db, user_id, mission, value, absolute=absolute):
            await _reward_mission(db, redis, burst, mission)
            completed.append(mission)

    completed += await _advance_daily_aggregate(db, redis, burst, completed)

    if own_burst:
        await commit_burst(db, redis, burst)
    return completed


async def track_mission_progress(
    db: AsyncSession,
    redis: object,
    user_id: int,
    action_type: str,
    value: int = 1,
    *,
    burst: RewardBurst | None = None,
) -> list[Mission]:
    """Add ``value`` to every mission driven by ``action_type``.

    Returns the missions that completed in this call. When ``burst`` is
    given the caller commits it; otherwise the changes are committed here.
    """
    if value <= 0:
        raise ValidationError("Mission progress increment must be positive", value=value)
    return await _progress(db, redis, user_id, action_type, value, absolute=False, burst=burst)


async def set_mission_progress(
    db: AsyncSession,
    redis: object,
    user_id: int,
    action_type: str,
    absolute_value: int,
    *,
    burst: RewardBurst | None = None,
) -> list[Mission]:
    """Set progress for ownership-style counters recomputed from current state.

    Progress is raised to ``absolute_value`` but never lowered before a reset.
    """
    if absolute_value < 0:
        raise ValidationError("Mission progress must be non-negative", value=absolute_value)
    return await _progress(db, redis, user_id, action_type, absolute_value, absolute=True, burst=burst)


async def inventory_counters(db: AsyncSession, user_id: int) -> dict[str, int]:
    """Ownership counters recomputed from the user's current inventory."""
    result = await db.execute(
        select(InventoryItem.rarity, func.count())
        .where(InventoryItem.user_id == user_id)
        .group_by(InventoryItem.rarity)
    )
    by_rarity = {rarity: count for rarity, count in result}
    total = sum(by_rarity.values())
    return {
        "items_owned": total,
        "rare_items_owned": by_rarity.get("rare", 0),
        "epic_items_owned": by_rarity.get("epic", 0),
        "legendary_items_owned": by_rarity.get("legendary", 0),
        "inventory_slots": total,
    }


async def sync_inventory_missions(
    db: AsyncSession,
    redis: object,
    user_id: int,
    *,
    burst: RewardBurst | None = None,
) -> list[Mission]:
    """Feed every ownership counter to ``set_mission_progress``."""
    own_burst = burst is None
    if burst is None:
        burst = RewardBurst(user_id=user_id)

    counters = await inventory_counters(db, user_id)
    completed: list[Mission] = []
    for action_type in OWNERSHIP_COUNTERS:
        completed += await set_mission_progress(
            db, redis, user_id, action_type, counters[action_type], burst=burst
        )

    if own_burst:
        await commit_burst(db, redis, burst)
    return completed


async def _reset(db: AsyncSession, mission_type: str, user_id: int | None) -> int:
    repeatable_ids = (
        select(Mission.id)
        .where(Mission.type == mission_type, Mission.repeatable.is_(True))
    )
    stmt = (
        update(UserMissionProgress)
        .where(UserMissionProgress.mission_id.in_(repeatable_ids))
        .values(progress=0, completed=False, completed_at=None, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if user_id is not None:
        stmt = stmt.where(UserMissionProgress.user_id == user_id)
    result = await db.execute(stmt)
    await db.commit()
    logger.info("Reset %d %s mission rows (user=%s)", result.rowcount, mission_type, user_id)
    return result.rowcount


async def reset_daily_missions(db: AsyncSession, user_id: int | None = None) -> int:
    """Zero every repeatable daily mission. ``None`` resets all users."""
    return await _reset(db, "daily", user_id)


async def reset_weekly_missions(db: AsyncSession, user_id: int | None = None) -> int:
    """Zero every repeatable weekly mission. ``None`` resets all users."""
    return await _reset(db, "weekly", user_id)


async def get_user_missions(
    db: AsyncSession,
    user_id: int,
    mission_type: str | None = None,
) -> list[dict]:
    """Active missions with the user's progress, for display."""
    if mission_type is not None and mission_type not in MISSION_TYPES:
        raise ValidationError("Unknown mission type", mission_type=mission_type)
    query = (
        select(Mission, UserMissionProgress)
        .outerjoin(
            UserMissionProgress,
            (UserMissionProgress.mission_id == Mission.id) & (UserMissionProgress.user_id == user_id),
        )
        .where(Mission.is_active.is_(True))
        .order_by(Mission.sort_order, Mission.id)
        .execution_options(populate_existing=True)
    )
    if mission_type is not None:
        query = query.where(Mission.type == mission_type)
    result = await db.execute(query)

    missions = []
    for mission, progress in result.all():
        current = progress.progress if progress else 0
        missions.append({
            "id": mission.id,
            "slug": mission.slug,
            "name": mission.name,
            "description": mission.description,
            "type": mission.type,
            "requirement_type": mission.requirement_type,
            "requirement_value": mission.requirement_value,
            "progress": current,
            "completed": bool(progress and progress.completed),
            "percentage": min(round(current * 100 / mission.requirement_value, 2), 100.0),
            "xp_reward": mission.xp_reward,
            "coin_reward": mission.coin_reward,
            "gem_reward": mission.gem_reward,
        })
    return missions
