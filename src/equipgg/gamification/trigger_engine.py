"""Gameplay event dispatcher: fans one event out to every engine it feeds."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from equipgg.errors import ValidationError
from equipgg.gamification.achievement_service import check_and_award_achievements, current_win_streak
from equipgg.gamification.crate_keys import award_event_crate_key, award_prestige_crate_key
from equipgg.gamification.mission_service import (
    set_mission_progress,
    sync_inventory_missions,
    track_mission_progress,
)
from equipgg.gamification.streak_service import record_daily_login
from equipgg.gamification.xp_service import RewardBurst, commit_burst, credit_xp, get_or_create_economy

logger = logging.getLogger(__name__)

XP_SOURCES = {
    "bet_placed": 10,
    "bet_won": 50,
    "bet_won_high_odds": 100,
    "bet_lost": 5,
    "crate_opened": 20,
    "item_traded": 15,
}

UNBOX_BONUS_XP = {"rare": 50, "epic": 100, "legendary": 250}

EVENT_TYPES = (
    "bet_placed",
    "bet_won",
    "bet_lost",
    "crate_opened",
    "item_traded",
    "inventory_changed",
    "user_logged_in",
    "event_participation",
    "prestige_up",
)


@dataclass
class EventOutcome:
    event_type: str
    xp_awarded: int = 0
    missions_completed: list[str] = field(default_factory=list)
    achievements_unlocked: list[str] = field(default_factory=list)
    keys_awarded: int = 0
    level_before: int = 1
    level_after: int = 1


def _number(data: dict, key: str, default: Any, cast: type) -> Any:
    try:
        return cast(data.get(key, default))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {key}", value=data.get(key)) from None


class TriggerEngine:
    """Evaluates rewards for gameplay events.

    Mission and XP credits for one event share a single RewardBurst.
    Achievements are checked after that burst commits so level predicates
    see the new level.
    """

    def __init__(self, db: AsyncSession, redis: object) -> None:
        self.db = db
        self.redis = redis

    async def evaluate(self, user_id: int, event_type: str, data: dict | None = None) -> EventOutcome:
        if event_type not in EVENT_TYPES:
            raise ValidationError("Unknown event type", event_type=event_type)
        data = data or {}

        economy = await get_or_create_economy(self.db, user_id)
        outcome = EventOutcome(event_type=event_type, level_before=economy.level)
        burst = RewardBurst(user_id=user_id)

        handler = getattr(self, f"_on_{event_type}")
        await handler(user_id, data, burst, outcome)

        ledger = await commit_burst(self.db, self.redis, burst)
        outcome.xp_awarded += burst.xp
        outcome.level_after = ledger.level_after

        unlocked = await check_and_award_achievements(self.db, self.redis, user_id)
        outcome.achievements_unlocked = [a.slug for a in unlocked]

        logger.info(
            "Event %s for user %s: +%d XP, %d missions, %d achievements",
            event_type, user_id, outcome.xp_awarded,
            len(outcome.missions_completed), len(outcome.achievements_unlocked),
        )
        return outcome

    async def _credit(self, burst: RewardBurst, amount: int, source: str, metadata: dict | None = None) -> None:
        await credit_xp(self.db, burst, amount, source, metadata)

    async def _track(self, user_id: int, action: str, value: int, burst: RewardBurst, outcome: EventOutcome) -> None:
        completed = await track_mission_progress(self.db, self.redis, user_id, action, value, burst=burst)
        outcome.missions_completed += [m.slug for m in completed]

    async def _sync_inventory(self, user_id: int, burst: RewardBurst, outcome: EventOutcome) -> None:
        completed = await sync_inventory_missions(self.db, self.redis, user_id, burst=burst)
        outcome.missions_completed += [m.slug for m in completed]

    # --- Handlers ---

    async def _on_bet_placed(self, user_id: int, data: dict, burst: RewardBurst, outcome: EventOutcome) -> None:
        amount = _number(data, "amount", 0, int)
        await self._credit(burst, XP_SOURCES["bet_placed"], "bet_placed", {"amount": amount})
        await self._track(user_id, "bets_placed", 1, burst, outcome)
        if amount > 0:
            await self._track(user_id, "bet_amount", amount, burst, outcome)

    async def _on_bet_won(self, user_id: int, data: dict, burst: RewardBurst, outcome: EventOutcome) -> None:
        odds = _number(data, "odds", 1.0, float)
        payout = _number(data, "payout", 0, int)

        if odds > 2.0:
            await self._credit(burst, XP_SOURCES["bet_won_high_odds"], "bet_won", {"odds": odds})
        else:
            await self._credit(burst, XP_SOURCES["bet_won"], "bet_won", {"odds": odds})

        await self._track(user_id, "bets_won", 1, burst, outcome)
        if payout > 0:
            await self._track(user_id, "earn_coins", payout, burst, outcome)
        if odds >= 2.0:
            await self._track(user_id, "win_high_odds", 1, burst, outcome)

        streak = await current_win_streak(self.db, user_id)
        if streak > 0:
            completed = await set_mission_progress(
                self.db, self.redis, user_id, "win_streak", streak, burst=burst
            )
            outcome.missions_completed += [m.slug for m in completed]

    async def _on_bet_lost(self, user_id: int, data: dict, burst: RewardBurst, outcome: EventOutcome) -> None:
        await self._credit(burst, XP_SOURCES["bet_lost"], "bet_lost")

    async def _on_crate_opened(self, user_id: int, data: dict, burst: RewardBurst, outcome: EventOutcome) -> None:
        rarity = str(data.get("rarity", "common")).lower()
        xp = XP_SOURCES["crate_opened"] + UNBOX_BONUS_XP.get(rarity, 0)
        await self._credit(burst, xp, "crate_opened", {"rarity": rarity})
        await self._track(user_id, "crates_opened", 1, burst, outcome)
        await self._sync_inventory(user_id, burst, outcome)

    async def _on_item_traded(self, user_id: int, data: dict, burst: RewardBurst, outcome: EventOutcome) -> None:
        await self._credit(burst, XP_SOURCES["item_traded"], "item_traded")
        await self._track(user_id, "items_traded", 1, burst, outcome)
        await self._sync_inventory(user_id, burst, outcome)

    async def _on_inventory_changed(
        self, user_id: int, data: dict, burst: RewardBurst, outcome: EventOutcome
    ) -> None:
        await self._sync_inventory(user_id, burst, outcome)

    async def _on_user_logged_in(self, user_id: int, data: dict, burst: RewardBurst, outcome: EventOutcome) -> None:
        # Commits its own burst
        result = await record_daily_login(self.db, self.redis, user_id)
        if result is not None:
            outcome.xp_awarded += result.xp_awarded

    async def _on_event_participation(
        self, user_id: int, data: dict, burst: RewardBurst, outcome: EventOutcome
    ) -> None:
        outcome.keys_awarded += await award_event_crate_key(self.db, self.redis, user_id)
        await self._track(user_id, "event_participation", 1, burst, outcome)

    async def _on_prestige_up(self, user_id: int, data: dict, burst: RewardBurst, outcome: EventOutcome) -> None:
        prestige_level = _number(data, "prestige_level", 1, int)
        outcome.keys_awarded += await award_prestige_crate_key(self.db, self.redis, user_id, prestige_level)
