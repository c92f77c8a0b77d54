"""Daily login streaks and daily rank stipends.

Both are guarded by compare-and-swap updates on a date column, so a second
request on the same day (or a concurrent duplicate) changes nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from equipgg.config import get_settings
from equipgg.db.models import UserEconomy
from equipgg.gamification.crate_keys import award_weekly_loyalty_crate_key
from equipgg.gamification.mission_service import track_mission_progress
from equipgg.gamification.ranks import get_rank
from equipgg.gamification.xp_service import (
    LedgerResult,
    RewardBurst,
    commit_burst,
    credit_xp,
    get_or_create_economy,
)
from equipgg.notifications.service import notify

logger = logging.getLogger(__name__)


@dataclass
class LoginResult:
    streak: int
    xp_awarded: int
    loyalty_week: int | None
    ledger: LedgerResult


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def login_xp(streak: int) -> int:
    """Daily login XP: base plus a per-day bonus capped at the streak cap."""
    settings = get_settings()
    bonus = settings.daily_login_streak_bonus_xp * min(streak, settings.daily_login_streak_bonus_cap)
    return settings.daily_login_xp + bonus


async def record_daily_login(
    db: AsyncSession,
    redis: object,
    user_id: int,
    today: date | None = None,
) -> LoginResult | None:
    """Record today's login. Returns None if the user already logged in today.

    Consecutive day: streak + 1. Missed a day (or first login): streak = 1.
    Every 7th consecutive day grants Weekly Loyalty keys.
    """
    if today is None:
        today = utc_today()
    yesterday = today - timedelta(days=1)

    await get_or_create_economy(db, user_id)

    result = await db.execute(
        update(UserEconomy)
        .where(UserEconomy.user_id == user_id, UserEconomy.last_login_date == yesterday)
        .values(login_streak=UserEconomy.login_streak + 1, last_login_date=today)
        .returning(UserEconomy.login_streak)
        .execution_options(synchronize_session=False)
    )
    streak = result.scalar_one_or_none()

    if streak is None:
        result = await db.execute(
            update(UserEconomy)
            .where(
                UserEconomy.user_id == user_id,
                or_(UserEconomy.last_login_date.is_(None), UserEconomy.last_login_date < yesterday),
            )
            .values(login_streak=1, last_login_date=today)
            .returning(UserEconomy.login_streak)
            .execution_options(synchronize_session=False)
        )
        streak = result.scalar_one_or_none()

    if streak is None:
        await db.commit()
        return None

    burst = RewardBurst(user_id=user_id)
    xp = await credit_xp(db, burst, login_xp(streak), "daily_login", {"streak_days": streak})
    await track_mission_progress(db, redis, user_id, "login", 1, burst=burst)
    ledger = await commit_burst(db, redis, burst)

    loyalty_week = None
    if streak % 7 == 0:
        loyalty_week = streak // 7
        await award_weekly_loyalty_crate_key(db, redis, user_id, loyalty_week)

    logger.info("User %s logged in (streak %d)", user_id, streak)
    return LoginResult(streak=streak, xp_awarded=xp, loyalty_week=loyalty_week, ledger=ledger)


async def claim_daily_rank_rewards(
    db: AsyncSession,
    redis: object,
    user_id: int,
    today: date | None = None,
) -> dict | None:
    """Credit the current rank's daily stipend. Returns None if already claimed today."""
    if today is None:
        today = utc_today()

    economy = await get_or_create_economy(db, user_id)
    rank = get_rank(economy.level)

    result = await db.execute(
        update(UserEconomy)
        .where(
            UserEconomy.user_id == user_id,
            or_(UserEconomy.last_daily_claim.is_(None), UserEconomy.last_daily_claim < today),
        )
        .values(last_daily_claim=today)
        .returning(UserEconomy.user_id)
        .execution_options(synchronize_session=False)
    )
    if result.scalar_one_or_none() is None:
        await db.commit()
        return None

    burst = RewardBurst(user_id=user_id)
    burst.credit(coins=rank.daily_coins, gems=rank.daily_gems)
    await commit_burst(db, redis, burst)

    await notify(
        db,
        redis,
        user_id,
        "rank_reward",
        "Daily Rank Reward",
        f"{rank.name} stipend: {rank.daily_coins} coins"
        + (f" and {rank.daily_gems} gems" if rank.daily_gems else ""),
        {"rank": rank.name, "coins": rank.daily_coins, "gems": rank.daily_gems},
    )
    return {"rank": rank.name, "coins": rank.daily_coins, "gems": rank.daily_gems}
