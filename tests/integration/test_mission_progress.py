"""Mission progress: monotonic counters, exactly-once completion, resets."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from equipgg.db.models import Notification, UserMissionProgress
from equipgg.errors import ValidationError
from equipgg.gamification.crate_keys import CrateId, get_user_keys
from equipgg.gamification.mission_service import (
    get_user_missions,
    inventory_counters,
    reset_daily_missions,
    reset_weekly_missions,
    set_mission_progress,
    sync_inventory_missions,
    track_mission_progress,
)
from equipgg.gamification.xp_service import get_or_create_economy


async def _progress(db, user_id: int, mission_id: int) -> tuple[int, bool] | None:
    result = await db.execute(
        select(UserMissionProgress.progress, UserMissionProgress.completed).where(
            UserMissionProgress.user_id == user_id,
            UserMissionProgress.mission_id == mission_id,
        )
    )
    row = result.one_or_none()
    return (row.progress, bool(row.completed)) if row else None


async def _notification_count(db, user_id: int, type_: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(Notification).where(
            Notification.user_id == user_id, Notification.type == type_
        )
    )
    return result.scalar_one()


class TestTrackMissionProgress:
    @pytest.mark.asyncio
    async def test_three_bets_complete_daily_mission_once(self, db_session, mock_redis, user_id, make_mission):
        mission = await make_mission("place_3_bets", "bets_placed", 3, xp_reward=100, coin_reward=50)

        assert await track_mission_progress(db_session, mock_redis, user_id, "bets_placed") == []
        assert await track_mission_progress(db_session, mock_redis, user_id, "bets_placed") == []
        completed = await track_mission_progress(db_session, mock_redis, user_id, "bets_placed")
        assert [m.slug for m in completed] == ["place_3_bets"]

        # A fourth bet changes nothing
        assert await track_mission_progress(db_session, mock_redis, user_id, "bets_placed") == []

        assert await _notification_count(db_session, user_id, "mission_completed") == 1
        assert (await _progress(db_session, user_id, mission.id))[1] is True

        economy = await get_or_create_economy(db_session, user_id)
        assert economy.xp == 100
        assert economy.coins == 50

    @pytest.mark.asyncio
    async def test_completion_grants_reward_key_by_tier(self, db_session, mock_redis, user_id, make_mission):
        await make_mission("weekly_bet", "bets_placed", 1, type_="weekly")

        await track_mission_progress(db_session, mock_redis, user_id, "bets_placed")

        keys = await get_user_keys(db_session, user_id)
        assert keys == {int(CrateId.REWARD): 2}

    @pytest.mark.asyncio
    async def test_increment_by_value(self, db_session, mock_redis, user_id, make_mission):
        mission = await make_mission("wager_1000", "bet_amount", 1000, type_="weekly")

        await track_mission_progress(db_session, mock_redis, user_id, "bet_amount", 400)
        await track_mission_progress(db_session, mock_redis, user_id, "bet_amount", 700)

        assert await _progress(db_session, user_id, mission.id) == (1100, True)

    @pytest.mark.asyncio
    async def test_unknown_action_is_noop(self, db_session, mock_redis, user_id, make_mission):
        await make_mission("place_bet", "bets_placed", 1)
        assert await track_mission_progress(db_session, mock_redis, user_id, "nothing_listens") == []

    @pytest.mark.asyncio
    async def test_non_positive_value_rejected(self, db_session, mock_redis, user_id):
        with pytest.raises(ValidationError):
            await track_mission_progress(db_session, mock_redis, user_id, "bets_placed", 0)

    @pytest.mark.asyncio
    async def test_one_action_feeds_every_matching_mission(self, db_session, mock_redis, user_id, make_mission):
        daily = await make_mission("daily_bet", "bets_placed", 1)
        story = await make_mission("first_bet", "bets_placed", 1, type_="story", repeatable=False)

        completed = await track_mission_progress(db_session, mock_redis, user_id, "bets_placed")

        assert {m.id for m in completed} == {daily.id, story.id}


class TestSetMissionProgress:
    @pytest.mark.asyncio
    async def test_never_lowers_progress(self, db_session, mock_redis, user_id, make_mission):
        mission = await make_mission("own_10", "items_owned", 10, type_="story")

        await set_mission_progress(db_session, mock_redis, user_id, "items_owned", 4)
        await set_mission_progress(db_session, mock_redis, user_id, "items_owned", 2)
        assert await _progress(db_session, user_id, mission.id) == (4, False)

        completed = await set_mission_progress(db_session, mock_redis, user_id, "items_owned", 10)
        assert [m.id for m in completed] == [mission.id]

    @pytest.mark.asyncio
    async def test_negative_value_rejected(self, db_session, mock_redis, user_id):
        with pytest.raises(ValidationError):
            await set_mission_progress(db_session, mock_redis, user_id, "items_owned", -1)


class TestDailyAggregate:
    @pytest.mark.asyncio
    async def test_advances_once_all_dailies_complete(self, db_session, mock_redis, user_id, make_mission):
        await make_mission("daily_login", "login", 1)
        await make_mission("daily_bet", "bets_placed", 1)
        aggregate = await make_mission(
            "finish_dailies", "complete_daily_missions", 2, type_="weekly", xp_reward=200
        )

        await track_mission_progress(db_session, mock_redis, user_id, "login")
        assert await _progress(db_session, user_id, aggregate.id) is None

        completed = await track_mission_progress(db_session, mock_redis, user_id, "bets_placed")
        assert aggregate.id not in {m.id for m in completed}
        assert await _progress(db_session, user_id, aggregate.id) == (1, False)

        # Dailies already done: no further advance this cycle
        await track_mission_progress(db_session, mock_redis, user_id, "bets_placed")
        assert await _progress(db_session, user_id, aggregate.id) == (1, False)

        # Next day
        await reset_daily_missions(db_session, user_id)
        await track_mission_progress(db_session, mock_redis, user_id, "login")
        completed = await track_mission_progress(db_session, mock_redis, user_id, "bets_placed")

        assert aggregate.id in {m.id for m in completed}
        assert await _progress(db_session, user_id, aggregate.id) == (2, True)


class TestResets:
    @pytest.mark.asyncio
    async def test_daily_reset_allows_second_completion(self, db_session, mock_redis, user_id, make_mission):
        await make_mission("daily_bet", "bets_placed", 1, xp_reward=10)

        await track_mission_progress(db_session, mock_redis, user_id, "bets_placed")
        rows = await reset_daily_missions(db_session, user_id)
        assert rows == 1
        completed = await track_mission_progress(db_session, mock_redis, user_id, "bets_placed")

        assert len(completed) == 1
        assert await _notification_count(db_session, user_id, "mission_completed") == 2

    @pytest.mark.asyncio
    async def test_non_repeatable_missions_survive_reset(self, db_session, mock_redis, user_id, make_mission):
        one_shot = await make_mission("intro_bet", "bets_placed", 1, repeatable=False)

        await track_mission_progress(db_session, mock_redis, user_id, "bets_placed")
        assert await reset_daily_missions(db_session) == 0
        assert await _progress(db_session, user_id, one_shot.id) == (1, True)

    @pytest.mark.asyncio
    async def test_weekly_reset_leaves_dailies(self, db_session, mock_redis, user_id, make_mission):
        daily = await make_mission("daily_bet", "bets_placed", 5)
        weekly = await make_mission("weekly_bet", "bets_placed", 25, type_="weekly")

        await track_mission_progress(db_session, mock_redis, user_id, "bets_placed", 3)
        assert await reset_weekly_missions(db_session) == 1

        assert await _progress(db_session, user_id, daily.id) == (3, False)
        assert await _progress(db_session, user_id, weekly.id) == (0, False)

    @pytest.mark.asyncio
    async def test_reset_scoped_to_user(self, db_session, mock_redis, user_id, make_mission):
        mission = await make_mission("daily_bet", "bets_placed", 5)
        other_user = user_id + 1

        await track_mission_progress(db_session, mock_redis, user_id, "bets_placed")
        await track_mission_progress(db_session, mock_redis, other_user, "bets_placed")
        await reset_daily_missions(db_session, other_user)

        assert await _progress(db_session, user_id, mission.id) == (1, False)
        assert await _progress(db_session, other_user, mission.id) == (0, False)


class TestInventorySync:
    @pytest.mark.asyncio
    async def test_counters_by_rarity(self, db_session, user_id, give_items):
        await give_items(user_id, "rare", [10, 10])
        await give_items(user_id, "epic", [50])
        await give_items(user_id, "common", [1, 1, 1])

        counters = await inventory_counters(db_session, user_id)
        assert counters == {
            "items_owned": 6,
            "rare_items_owned": 2,
            "epic_items_owned": 1,
            "legendary_items_owned": 0,
            "inventory_slots": 6,
        }

    @pytest.mark.asyncio
    async def test_sync_completes_ownership_missions(
        self, db_session, mock_redis, user_id, make_mission, give_items
    ):
        owned = await make_mission("own_3", "items_owned", 3, type_="story", repeatable=False)
        rares = await make_mission("own_2_rare", "rare_items_owned", 2, type_="story", repeatable=False)
        legend = await make_mission("own_legendary", "legendary_items_owned", 1, type_="story", repeatable=False)
        await give_items(user_id, "rare", [10, 20, 30])

        completed = await sync_inventory_missions(db_session, mock_redis, user_id)

        assert {m.id for m in completed} == {owned.id, rares.id}
        assert await _progress(db_session, user_id, legend.id) == (0, False)


class TestGetUserMissions:
    @pytest.mark.asyncio
    async def test_lists_progress(self, db_session, mock_redis, user_id, make_mission):
        await make_mission("daily_bet", "bets_placed", 4)
        await make_mission("weekly_bet", "bets_placed", 25, type_="weekly")
        await track_mission_progress(db_session, mock_redis, user_id, "bets_placed")

        missions = await get_user_missions(db_session, user_id, "daily")

        assert len(missions) == 1
        assert missions[0]["progress"] == 1
        assert missions[0]["percentage"] == 25.0
        assert missions[0]["completed"] is False

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, db_session, user_id):
        with pytest.raises(ValidationError):
            await get_user_missions(db_session, user_id, "monthly")

    @pytest.mark.asyncio
    async def test_catalog_rejects_unknown_type(self, db_session, make_mission):
        with pytest.raises(IntegrityError):
            await make_mission("monthly_bet", "bets_placed", type_="monthly")
        await db_session.rollback()
