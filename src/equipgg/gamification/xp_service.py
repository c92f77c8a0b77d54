"""XP ledger: reward bursts, level-up detection and the level-up cascade.

Every engine credits XP, coins and gems through a ``RewardBurst``. A burst
is applied to the ``user_economy`` row with a single atomic
``UPDATE ... RETURNING`` so credits from a mission completion, an
achievement and a level-up in the same event can't overwrite each other.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import case, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from equipgg.config import get_settings
from equipgg.db.models import UserEconomy, XPLedger
from equipgg.db.upsert import insert_for
from equipgg.errors import LedgerError, TransientStoreError, ValidationError
from equipgg.gamification.crate_keys import award_level_up_crate_key
from equipgg.gamification.level_curve import level_for_xp
from equipgg.gamification.ranks import apply_xp_boost, get_rank
from equipgg.notifications.service import Channel, notify, publish

logger = logging.getLogger(__name__)

# Gem bonus for milestone levels that don't follow the every-5th-level rule
_GEM_OVERRIDES = {10: 50, 25: 100, 50: 250, 100: 1000}


def level_up_reward(level: int) -> tuple[int, int]:
    """Coins and gems bundled with reaching ``level``."""
    coins = 100 * level
    if level in _GEM_OVERRIDES:
        gems = _GEM_OVERRIDES[level]
    elif level % 5 == 0:
        gems = (level // 5) * 10
    else:
        gems = 0
    return coins, gems


@dataclass
class XPEntry:
    amount: int
    source: str
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    # Already written to xp_ledger (idempotency claim)
    logged: bool = False


@dataclass
class RewardBurst:
    """Credits for one user accumulated during a single triggering event."""

    user_id: int
    xp: int = 0
    coins: int = 0
    gems: int = 0
    entries: list[XPEntry] = field(default_factory=list)
    followups: list[Callable[[], Awaitable[Any]]] = field(default_factory=list)

    def credit(
        self,
        *,
        xp: int = 0,
        coins: int = 0,
        gems: int = 0,
        source: str = "system",
        description: str = "",
        metadata: dict[str, Any] | None = None,
        logged: bool = False,
    ) -> None:
        if xp < 0 or coins < 0 or gems < 0:
            raise ValidationError(
                "Rewards must be non-negative", xp=xp, coins=coins, gems=gems
            )
        self.xp += xp
        self.coins += coins
        self.gems += gems
        if xp:
            self.entries.append(
                XPEntry(
                    amount=xp,
                    source=source,
                    description=description,
                    metadata=metadata or {},
                    logged=logged,
                )
            )

    def after_commit(self, callback: Callable[[], Awaitable[Any]]) -> None:
        """Register a side effect that runs only once the burst is committed."""
        self.followups.append(callback)


@dataclass
class LedgerResult:
    user_id: int
    xp_delta: int
    total_xp: int
    level_before: int
    level_after: int
    coins_delta: int = 0
    gems_delta: int = 0

    @property
    def leveled_up(self) -> bool:
        return self.level_after > self.level_before


async def get_or_create_economy(db: AsyncSession, user_id: int) -> UserEconomy:
    """Get or create the economy row for a user."""
    stmt = insert_for(db, UserEconomy).values(user_id=user_id)
    stmt = stmt.on_conflict_do_nothing(index_elements=["user_id"])
    await db.execute(stmt)

    result = await db.execute(
        select(UserEconomy)
        .where(UserEconomy.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def credit_xp(
    db: AsyncSession,
    burst: RewardBurst,
    amount: int,
    source: str,
    metadata: dict[str, Any] | None = None,
    *,
    description: str = "",
    boost: bool = True,
    idempotency_key: str | None = None,
) -> int:
    """Add an XP award to ``burst``. Returns the amount credited.

    The rank boost uses the level stored before this burst is applied.
    Returns 0 when ``idempotency_key`` was already used.
    """
    if amount <= 0:
        raise ValidationError("XP amount must be positive", amount=amount)

    if boost and get_settings().apply_rank_xp_boost:
        economy = await get_or_create_economy(db, burst.user_id)
        amount = apply_xp_boost(amount, economy.level)

    logged = False
    if idempotency_key is not None:
        stmt = (
            insert_for(db, XPLedger)
            .values(
                user_id=burst.user_id,
                amount=amount,
                source=source,
                description=description,
                entry_metadata=metadata or {},
                idempotency_key=idempotency_key,
                created_at=datetime.now(timezone.utc),
            )
            .on_conflict_do_nothing(index_elements=["idempotency_key"])
            .returning(XPLedger.id)
        )
        claimed = (await db.execute(stmt)).scalar_one_or_none()
        if claimed is None:
            logger.info("Duplicate XP grant %s for user %s", idempotency_key, burst.user_id)
            return 0
        logged = True

    burst.credit(
        xp=amount,
        source=source,
        description=description,
        metadata=metadata,
        logged=logged,
    )
    return amount


async def commit_burst(db: AsyncSession, redis: object, burst: RewardBurst) -> LedgerResult:
    """Apply a burst in one transaction, then run its follow-ups.

    Levels crossed are derived from the XP returned by the atomic update, so
    two bursts racing on the same row never both claim the same level.
    """
    now = datetime.now(timezone.utc)
    user_id = burst.user_id
    bonus_coins = bonus_gems = 0

    try:
        await get_or_create_economy(db, user_id)

        result = await db.execute(
            update(UserEconomy)
            .where(UserEconomy.user_id == user_id)
            .values(
                xp=UserEconomy.xp + burst.xp,
                coins=UserEconomy.coins + burst.coins,
                gems=UserEconomy.gems + burst.gems,
                updated_at=now,
            )
            .returning(UserEconomy.xp)
            .execution_options(synchronize_session=False)
        )
        total_xp = result.scalar_one()

        level_before = level_for_xp(total_xp - burst.xp)
        level_after = level_for_xp(total_xp)

        if level_after > level_before:
            for lvl in range(level_before + 1, level_after + 1):
                coins, gems = level_up_reward(lvl)
                bonus_coins += coins
                bonus_gems += gems
            await db.execute(
                update(UserEconomy)
                .where(UserEconomy.user_id == user_id)
                .values(
                    level=case(
                        (UserEconomy.level < level_after, level_after),
                        else_=UserEconomy.level,
                    ),
                    coins=UserEconomy.coins + bonus_coins,
                    gems=UserEconomy.gems + bonus_gems,
                )
                .execution_options(synchronize_session=False)
            )

        for entry in burst.entries:
            if entry.logged:
                continue
            db.add(XPLedger(
                user_id=user_id,
                amount=entry.amount,
                source=entry.source,
                description=entry.description,
                entry_metadata=entry.metadata,
                created_at=now,
            ))

        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise TransientStoreError("Failed to apply reward burst", user_id=user_id) from exc

    ledger = LedgerResult(
        user_id=user_id,
        xp_delta=burst.xp,
        total_xp=total_xp,
        level_before=level_before,
        level_after=level_after,
        coins_delta=burst.coins + bonus_coins,
        gems_delta=burst.gems + bonus_gems,
    )

    if burst.xp:
        await publish(
            redis,
            Channel.XP_UPDATES,
            "xp_gained",
            {"amount": burst.xp, "total_xp": total_xp, "level": level_after},
            user_id=user_id,
        )

    if ledger.leveled_up:
        await _level_up_cascade(db, redis, ledger, bonus_coins, bonus_gems)

    for callback in burst.followups:
        try:
            await callback()
        except Exception:
            logger.warning("Reward follow-up failed for user %s", user_id, exc_info=True)

    return ledger


async def _level_up_cascade(
    db: AsyncSession,
    redis: object,
    ledger: LedgerResult,
    bonus_coins: int,
    bonus_gems: int,
) -> None:
    """Notify, broadcast, grant milestone keys and re-check level achievements."""
    user_id = ledger.user_id
    rank = get_rank(ledger.level_after)

    await notify(
        db,
        redis,
        user_id,
        "level_up",
        "Level Up!",
        f"You reached level {ledger.level_after} ({rank.name})",
        {
            "old_level": ledger.level_before,
            "new_level": ledger.level_after,
            "rank": rank.name,
            "coins": bonus_coins,
            "gems": bonus_gems,
        },
        channel=Channel.XP_UPDATES,
    )
    await publish(
        redis,
        Channel.LEADERBOARD_UPDATES,
        "level_up",
        {
            "user_id": user_id,
            "old_level": ledger.level_before,
            "new_level": ledger.level_after,
            "rank": rank.name,
        },
    )

    await award_level_up_crate_key(db, redis, user_id, ledger.level_before, ledger.level_after)

    from equipgg.gamification.achievement_service import check_and_award_achievements

    try:
        await check_and_award_achievements(db, redis, user_id, requirement_type="level")
    except (LedgerError, SQLAlchemyError):
        logger.warning("Level achievement check failed for user %s", user_id, exc_info=True)


async def add_xp(
    db: AsyncSession,
    redis: object,
    user_id: int,
    amount: int,
    source: str,
    metadata: dict[str, Any] | None = None,
    *,
    description: str = "",
    idempotency_key: str | None = None,
) -> LedgerResult | None:
    """Grant XP to a user and run the level-up cascade.

    Returns None if ``idempotency_key`` was already used.
    """
    burst = RewardBurst(user_id=user_id)
    credited = await credit_xp(
        db,
        burst,
        amount,
        source,
        metadata,
        description=description,
        idempotency_key=idempotency_key,
    )
    if not credited:
        await db.rollback()
        return None
    return await commit_burst(db, redis, burst)


async def get_xp_history(db: AsyncSession, user_id: int, limit: int = 50) -> list[XPLedger]:
    """Most recent XP ledger entries for a user."""
    result = await db.execute(
        select(XPLedger)
        .where(XPLedger.user_id == user_id)
        .order_by(XPLedger.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
