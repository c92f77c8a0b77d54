"""Achievement evaluation and unlocking.

One evaluator per ``requirement_type`` computes the user's current value.
Both the unlock check and the read-only progress query go through
``evaluate_requirement`` so they can't drift apart.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from equipgg.db.models import Achievement, Bet, InventoryItem, UserAchievement, UserEconomy
from equipgg.db.upsert import insert_for
from equipgg.errors import NotFoundError
from equipgg.gamification.xp_service import RewardBurst, commit_burst
from equipgg.notifications.service import Channel, notify, publish

logger = logging.getLogger(__name__)

# Settled bets scanned when computing a running win streak
WIN_STREAK_WINDOW = 50


@dataclass
class RequirementProgress:
    current: float
    required: float
    met: bool
    percentage: float


Counter = Callable[[AsyncSession, int, Achievement], Awaitable[float]]

COUNTERS: dict[str, Counter] = {}


def counter(requirement_type: str) -> Callable[[Counter], Counter]:
    """Register the current-value function for a requirement type."""

    def register(fn: Counter) -> Counter:
        COUNTERS[requirement_type] = fn
        return fn

    return register


@counter("bets_placed")
async def _bets_placed(db: AsyncSession, user_id: int, achievement: Achievement) -> float:
    result = await db.execute(select(func.count()).select_from(Bet).where(Bet.user_id == user_id))
    return result.scalar_one()


@counter("bets_won")
async def _bets_won(db: AsyncSession, user_id: int, achievement: Achievement) -> float:
    result = await db.execute(
        select(func.count()).select_from(Bet).where(Bet.user_id == user_id, Bet.status == "won")
    )
    return result.scalar_one()


@counter("win_streak")
async def _win_streak(db: AsyncSession, user_id: int, achievement: Achievement) -> float:
    return await current_win_streak(db, user_id, window=max(int(achievement.requirement_value), 1))


@counter("high_odds_win")
async def _high_odds_win(db: AsyncSession, user_id: int, achievement: Achievement) -> float:
    result = await db.execute(
        select(func.max(Bet.odds)).where(Bet.user_id == user_id, Bet.status == "won")
    )
    return result.scalar_one() or 0


@counter("single_bet_payout")
async def _single_bet_payout(db: AsyncSession, user_id: int, achievement: Achievement) -> float:
    result = await db.execute(
        select(func.max(Bet.payout)).where(Bet.user_id == user_id, Bet.status == "won")
    )
    return result.scalar_one() or 0


@counter("level")
async def _level(db: AsyncSession, user_id: int, achievement: Achievement) -> float:
    result = await db.execute(select(UserEconomy.level).where(UserEconomy.user_id == user_id))
    return result.scalar_one_or_none() or 1


@counter("items_owned")
async def _items_owned(db: AsyncSession, user_id: int, achievement: Achievement) -> float:
    result = await db.execute(
        select(func.count()).select_from(InventoryItem).where(InventoryItem.user_id == user_id)
    )
    return result.scalar_one()


@counter("crates_opened")
async def _crates_opened(db: AsyncSession, user_id: int, achievement: Achievement) -> float:
    # No crate-opening history is stored yet, so this never unlocks
    return 0


async def current_win_streak(db: AsyncSession, user_id: int, window: int = WIN_STREAK_WINDOW) -> int:
    """Consecutive wins at the head of the user's latest ``window`` settled bets.

    Pending bets have no outcome yet and are skipped. Drives both the
    ``win_streak`` mission and the ``win_streak`` achievement.
    """
    result = await db.execute(
        select(Bet.status)
        .where(Bet.user_id == user_id, Bet.status.in_(("won", "lost")))
        .order_by(Bet.settled_at.desc().nulls_last(), Bet.id.desc())
        .limit(window)
    )
    streak = 0
    for status in result.scalars():
        if status != "won":
            break
        streak += 1
    return streak


async def evaluate_requirement(
    db: AsyncSession,
    user_id: int,
    achievement: Achievement,
) -> RequirementProgress:
    """Current value, threshold, met flag and percentage for one achievement."""
    fn = COUNTERS.get(achievement.requirement_type)
    if fn is None:
        logger.warning("Unknown requirement type: %s", achievement.requirement_type)
        current: float = 0
    else:
        current = await fn(db, user_id, achievement)

    required = achievement.requirement_value
    met = fn is not None and current >= required
    if required <= 0:
        percentage = 100.0 if met else 0.0
    else:
        percentage = round(min(current * 100 / required, 100.0), 2)
    return RequirementProgress(current=current, required=required, met=met, percentage=percentage)


async def check_and_award_achievements(
    db: AsyncSession,
    redis: object,
    user_id: int,
    category: str | None = None,
    *,
    requirement_type: str | None = None,
) -> list[Achievement]:
    """Unlock every achievement the user now qualifies for.

    The unique (user_id, achievement_id) constraint decides who wins a race:
    an insert that hits an existing row is a no-op and pays nothing.
    Returns the achievements unlocked by this call.
    """
    query = select(Achievement).where(Achievement.is_active.is_(True)).order_by(Achievement.id)
    if category is not None:
        query = query.where(Achievement.category == category)
    if requirement_type is not None:
        query = query.where(Achievement.requirement_type == requirement_type)
    achievements = list((await db.execute(query)).scalars().all())
    if not achievements:
        return []

    unlocked_result = await db.execute(
        select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
    )
    unlocked = set(unlocked_result.scalars().all())

    burst = RewardBurst(user_id=user_id)
    newly: list[Achievement] = []

    for achievement in achievements:
        if achievement.id in unlocked:
            continue
        progress = await evaluate_requirement(db, user_id, achievement)
        if not progress.met:
            continue

        stmt = (
            insert_for(db, UserAchievement)
            .values(
                user_id=user_id,
                achievement_id=achievement.id,
                unlocked_at=datetime.now(timezone.utc),
            )
            .on_conflict_do_nothing(index_elements=["user_id", "achievement_id"])
            .returning(UserAchievement.id)
        )
        if (await db.execute(stmt)).scalar_one_or_none() is None:
            continue

        # Credited as-is, no rank boost
        burst.credit(
            xp=achievement.xp_reward,
            coins=achievement.coin_reward,
            gems=achievement.gem_reward,
            source="achievement",
            description=achievement.name,
            metadata={"achievement_id": achievement.id},
        )
        burst.after_commit(partial(_announce_unlock, db, redis, user_id, achievement))
        newly.append(achievement)
        logger.info("Achievement %s unlocked by user %s", achievement.slug, user_id)

    if newly:
        await commit_burst(db, redis, burst)
    return newly


async def _announce_unlock(
    db: AsyncSession,
    redis: object,
    user_id: int,
    achievement: Achievement,
) -> None:
    await notify(
        db,
        redis,
        user_id,
        "achievement",
        "Achievement Unlocked!",
        f"{achievement.name}: {achievement.description}",
        {
            "achievement_id": achievement.id,
            "rarity": achievement.rarity,
            "xp": achievement.xp_reward,
            "coins": achievement.coin_reward,
            "gems": achievement.gem_reward,
        },
    )
    await publish(
        redis,
        Channel.XP_UPDATES,
        "achievement_unlocked",
        {
            "achievement_id": achievement.id,
            "name": achievement.name,
            "description": achievement.description,
            "xp_reward": achievement.xp_reward,
        },
        user_id=user_id,
    )


async def get_achievement_progress(
    db: AsyncSession,
    user_id: int,
    achievement_id: int,
) -> RequirementProgress:
    """Read-only progress toward one achievement."""
    achievement = await db.get(Achievement, achievement_id)
    if achievement is None:
        raise NotFoundError("Achievement not found", achievement_id=achievement_id)
    return await evaluate_requirement(db, user_id, achievement)


async def get_user_achievements(db: AsyncSession, user_id: int) -> list[dict]:
    """Unlocked achievements for a user, newest first."""
    result = await db.execute(
        select(Achievement, UserAchievement.unlocked_at)
        .join(UserAchievement, UserAchievement.achievement_id == Achievement.id)
        .where(UserAchievement.user_id == user_id)
        .order_by(UserAchievement.unlocked_at.desc())
    )
    return [
        {
            "id": achievement.id,
            "slug": achievement.slug,
            "name": achievement.name,
            "category": achievement.category,
            "rarity": achievement.rarity,
            "unlocked_at": unlocked_at.isoformat(),
        }
        for achievement, unlocked_at in result.all()
    ]
