"""Progression API endpoints. Each route delegates to one engine operation."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from equipgg.db.models import Achievement, Mission, UserEconomy
from equipgg.dependencies import get_db, get_redis
from equipgg.gamification.achievement_service import check_and_award_achievements, get_achievement_progress
from equipgg.gamification.crate_keys import award_crate_keys, get_user_keys
from equipgg.gamification.level_curve import compute_level
from equipgg.gamification.mission_service import (
    reset_daily_missions,
    reset_weekly_missions,
    set_mission_progress,
    track_mission_progress,
)
from equipgg.gamification.ranks import get_rank
from equipgg.gamification.schemas import (
    AchievementCheckRequest,
    AchievementCheckResponse,
    AchievementProgressResponse,
    AchievementSummary,
    CrateKeyGrantRequest,
    CrateKeyResponse,
    EventOutcomeResponse,
    EventRequest,
    LedgerResponse,
    LoginResponse,
    MissionProgressRequest,
    MissionProgressResponse,
    MissionResetRequest,
    MissionResetResponse,
    MissionSummary,
    ProgressionResponse,
    RankRewardResponse,
    TradeUpRequest,
    TradeUpResponse,
    XPGrantRequest,
)
from equipgg.gamification.streak_service import claim_daily_rank_rewards, record_daily_login
from equipgg.gamification.trade_up import process_trade_up
from equipgg.gamification.trigger_engine import TriggerEngine
from equipgg.gamification.xp_service import add_xp

router = APIRouter(prefix="/api/v1", tags=["Progression"])


def _mission_summary(m: Mission) -> MissionSummary:
    return MissionSummary(
        id=m.id,
        slug=m.slug,
        name=m.name,
        type=m.type,
        xp_reward=m.xp_reward,
        coin_reward=m.coin_reward,
        gem_reward=m.gem_reward,
    )


def _achievement_summary(a: Achievement) -> AchievementSummary:
    return AchievementSummary(
        id=a.id,
        slug=a.slug,
        name=a.name,
        description=a.description,
        category=a.category,
        rarity=a.rarity,
        xp_reward=a.xp_reward,
        coin_reward=a.coin_reward,
        gem_reward=a.gem_reward,
    )


@router.post("/events", response_model=EventOutcomeResponse)
async def submit_event(
    body: EventRequest,
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis),
):
    """Fan a gameplay event out to missions, XP, keys and achievements."""
    outcome = await TriggerEngine(db, redis).evaluate(body.user_id, body.event_type, body.data)
    return EventOutcomeResponse(
        event_type=outcome.event_type,
        xp_awarded=outcome.xp_awarded,
        missions_completed=outcome.missions_completed,
        achievements_unlocked=outcome.achievements_unlocked,
        keys_awarded=outcome.keys_awarded,
        level_before=outcome.level_before,
        level_after=outcome.level_after,
    )


@router.post("/users/{user_id}/xp", response_model=LedgerResponse)
async def grant_xp(
    user_id: int,
    body: XPGrantRequest,
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis),
):
    result = await add_xp(
        db,
        redis,
        user_id,
        body.amount,
        body.source,
        body.metadata,
        idempotency_key=body.idempotency_key,
    )
    if result is None:
        return LedgerResponse(user_id=user_id, granted=False)
    return LedgerResponse(
        user_id=user_id,
        xp_delta=result.xp_delta,
        total_xp=result.total_xp,
        level_before=result.level_before,
        level_after=result.level_after,
        leveled_up=result.leveled_up,
    )


@router.post("/users/{user_id}/missions/progress", response_model=MissionProgressResponse)
async def mission_progress(
    user_id: int,
    body: MissionProgressRequest,
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis),
):
    if body.mode == "set":
        completed = await set_mission_progress(db, redis, user_id, body.action_type, body.value)
    else:
        completed = await track_mission_progress(db, redis, user_id, body.action_type, body.value)
    return MissionProgressResponse(completed=[_mission_summary(m) for m in completed])


@router.post("/missions/reset", response_model=MissionResetResponse)
async def reset_missions(body: MissionResetRequest, db: AsyncSession = Depends(get_db)):
    """Scheduler hook for day/week boundaries."""
    if body.mission_type == "daily":
        rows = await reset_daily_missions(db, body.user_id)
    else:
        rows = await reset_weekly_missions(db, body.user_id)
    return MissionResetResponse(rows_reset=rows)


@router.post("/users/{user_id}/achievements/check", response_model=AchievementCheckResponse)
async def check_achievements(
    user_id: int,
    body: AchievementCheckRequest,
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis),
):
    unlocked = await check_and_award_achievements(db, redis, user_id, body.category)
    return AchievementCheckResponse(unlocked=[_achievement_summary(a) for a in unlocked])


@router.get(
    "/users/{user_id}/achievements/{achievement_id}/progress",
    response_model=AchievementProgressResponse,
)
async def achievement_progress(
    user_id: int,
    achievement_id: int,
    db: AsyncSession = Depends(get_db),
):
    progress = await get_achievement_progress(db, user_id, achievement_id)
    return AchievementProgressResponse(
        achievement_id=achievement_id,
        current=progress.current,
        required=progress.required,
        met=progress.met,
        percentage=progress.percentage,
    )


@router.post("/users/{user_id}/crate-keys", response_model=CrateKeyResponse)
async def grant_crate_keys(
    user_id: int,
    body: CrateKeyGrantRequest,
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis),
):
    balance = await award_crate_keys(db, redis, user_id, body.crate_id, body.count)
    return CrateKeyResponse(crate_id=body.crate_id, balance=balance)


@router.post("/users/{user_id}/trade-up", response_model=TradeUpResponse)
async def trade_up(
    user_id: int,
    body: TradeUpRequest,
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis),
):
    result = await process_trade_up(db, redis, user_id, body.item_ids)
    return TradeUpResponse(
        contract_id=result.contract_id,
        input_items=result.input_items,
        output_item=result.output_item,
    )


@router.post("/users/{user_id}/login", response_model=LoginResponse)
async def daily_login(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis),
):
    result = await record_daily_login(db, redis, user_id)
    if result is None:
        return LoginResponse(already_logged_in=True)
    return LoginResponse(
        already_logged_in=False,
        streak=result.streak,
        xp_awarded=result.xp_awarded,
        loyalty_week=result.loyalty_week,
    )


@router.post("/users/{user_id}/rank-rewards/claim", response_model=RankRewardResponse)
async def claim_rank_rewards(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis),
):
    reward = await claim_daily_rank_rewards(db, redis, user_id)
    if reward is None:
        return RankRewardResponse(claimed=False)
    return RankRewardResponse(claimed=True, **reward)


@router.get("/users/{user_id}/progression", response_model=ProgressionResponse)
async def get_progression(user_id: int, db: AsyncSession = Depends(get_db)):
    """XP, level, rank, balances and crate keys for a user."""
    economy = await db.get(UserEconomy, user_id, populate_existing=True)
    xp = economy.xp if economy else 0
    info = compute_level(xp)
    rank = get_rank(info["level"])
    keys = await get_user_keys(db, user_id)

    return ProgressionResponse(
        user_id=user_id,
        xp=xp,
        level=info["level"],
        xp_into_level=info["xp_into_level"],
        xp_for_level=info["xp_for_level"],
        progress_percentage=info["progress_percentage"],
        rank=rank.name,
        xp_boost=rank.xp_boost,
        daily_coins=rank.daily_coins,
        daily_gems=rank.daily_gems,
        coins=economy.coins if economy else 0,
        gems=economy.gems if economy else 0,
        login_streak=economy.login_streak if economy else 0,
        crate_keys=keys,
    )
