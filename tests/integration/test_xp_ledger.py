"""XP ledger: grants, idempotency, level-up bundle and cascade."""

from __future__ import annotations

import json

import pytest
from sqlalchemy import BigInteger, func, select

from equipgg.db.models import Notification, UserAchievement, UserEconomy, UserKeys, XPLedger
from equipgg.errors import ValidationError
from equipgg.gamification.crate_keys import CrateId, get_user_keys
from equipgg.gamification.xp_service import (
    RewardBurst,
    add_xp,
    commit_burst,
    get_or_create_economy,
    get_xp_history,
)


async def _count_notifications(db, user_id: int, type_: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(Notification).where(
            Notification.user_id == user_id, Notification.type == type_
        )
    )
    return result.scalar_one()


def _published_events(redis) -> list[tuple[str, dict]]:
    return [(call.args[0], json.loads(call.args[1])) for call in redis.publish.await_args_list]


class TestGetOrCreateEconomy:
    @pytest.mark.asyncio
    async def test_creates_zeroed_row(self, db_session, user_id):
        economy = await get_or_create_economy(db_session, user_id)
        assert economy.xp == 0
        assert economy.level == 1
        assert economy.coins == 0

    @pytest.mark.asyncio
    async def test_second_call_returns_same_row(self, db_session, user_id):
        await get_or_create_economy(db_session, user_id)
        await db_session.commit()
        await get_or_create_economy(db_session, user_id)
        await db_session.commit()

        from equipgg.db.models import UserEconomy

        count = (await db_session.execute(select(func.count()).select_from(UserEconomy))).scalar_one()
        assert count == 1


class TestAddXP:
    @pytest.mark.asyncio
    async def test_grant_without_level_up(self, db_session, mock_redis, user_id):
        result = await add_xp(db_session, mock_redis, user_id, 100, "admin")

        assert result.xp_delta == 100
        assert result.total_xp == 100
        assert result.level_before == 1
        assert result.level_after == 1
        assert not result.leveled_up

        economy = await get_or_create_economy(db_session, user_id)
        assert economy.xp == 100
        assert economy.level == 1

    @pytest.mark.asyncio
    async def test_non_positive_amount_rejected(self, db_session, mock_redis, user_id):
        with pytest.raises(ValidationError):
            await add_xp(db_session, mock_redis, user_id, 0, "admin")
        with pytest.raises(ValidationError):
            await add_xp(db_session, mock_redis, user_id, -5, "admin")

    @pytest.mark.asyncio
    async def test_ledger_row_written(self, db_session, mock_redis, user_id):
        await add_xp(db_session, mock_redis, user_id, 40, "bet_placed", {"bet_id": 7}, description="Bet placed")

        history = await get_xp_history(db_session, user_id)
        assert len(history) == 1
        assert history[0].amount == 40
        assert history[0].source == "bet_placed"
        assert history[0].description == "Bet placed"
        assert history[0].entry_metadata == {"bet_id": 7}

    def test_ledger_amount_as_wide_as_balance(self):
        assert isinstance(XPLedger.__table__.c.amount.type, BigInteger)
        assert isinstance(UserEconomy.__table__.c.xp.type, BigInteger)

    @pytest.mark.asyncio
    async def test_xp_gained_published_to_user(self, db_session, mock_redis, user_id):
        await add_xp(db_session, mock_redis, user_id, 25, "admin")

        events = _published_events(mock_redis)
        assert (f"ws:user:{user_id}", {
            "channel": "xp_updates",
            "event": "xp_gained",
            "data": {"amount": 25, "total_xp": 25, "level": 1},
        }) in events


class TestIdempotency:
    @pytest.mark.asyncio
    async def test_duplicate_key_grants_once(self, db_session, mock_redis, user_id):
        first = await add_xp(db_session, mock_redis, user_id, 50, "badge", idempotency_key="grant:1")
        second = await add_xp(db_session, mock_redis, user_id, 50, "badge", idempotency_key="grant:1")

        assert first is not None
        assert second is None

        economy = await get_or_create_economy(db_session, user_id)
        assert economy.xp == 50  # Not 100

        count = (await db_session.execute(
            select(func.count()).select_from(XPLedger).where(XPLedger.idempotency_key == "grant:1")
        )).scalar_one()
        assert count == 1

    @pytest.mark.asyncio
    async def test_distinct_keys_both_apply(self, db_session, mock_redis, user_id):
        await add_xp(db_session, mock_redis, user_id, 50, "badge", idempotency_key="grant:a")
        await add_xp(db_session, mock_redis, user_id, 50, "badge", idempotency_key="grant:b")

        economy = await get_or_create_economy(db_session, user_id)
        assert economy.xp == 100


class TestLevelUp:
    @pytest.mark.asyncio
    async def test_reaching_level_2(self, db_session, mock_redis, user_id):
        result = await add_xp(db_session, mock_redis, user_id, 710, "admin")

        assert result.leveled_up
        assert (result.level_before, result.level_after) == (1, 2)
        assert result.coins_delta == 200

        economy = await get_or_create_economy(db_session, user_id)
        assert economy.level == 2
        assert economy.coins == 200
        assert economy.gems == 0

        assert await _count_notifications(db_session, user_id, "level_up") == 1
        keys = await get_user_keys(db_session, user_id)
        assert keys == {int(CrateId.LEVEL_UP): 1}

    @pytest.mark.asyncio
    async def test_multi_level_jump_pays_every_level(self, db_session, mock_redis, user_id):
        """1 -> 10 pays coins and gems for each of levels 2..10."""
        result = await add_xp(db_session, mock_redis, user_id, 16350, "admin")

        assert (result.level_before, result.level_after) == (1, 10)
        economy = await get_or_create_economy(db_session, user_id)
        assert economy.level == 10
        assert economy.coins == 5400
        assert economy.gems == 60  # level 5 (10) + level 10 (50)

        # One level-up notification for the whole jump
        assert await _count_notifications(db_session, user_id, "level_up") == 1

        keys = await get_user_keys(db_session, user_id)
        assert keys[int(CrateId.LEVEL_UP)] == 10

    @pytest.mark.asyncio
    async def test_level_25_grants_prestige_key(self, db_session, mock_redis, user_id):
        await add_xp(db_session, mock_redis, user_id, 16350, "admin")
        # Silver boost: 100000 * 1.05 = 105000 -> 121350 total, level 25
        result = await add_xp(db_session, mock_redis, user_id, 100000, "admin")

        assert result.xp_delta == 105000
        assert (result.level_before, result.level_after) == (10, 25)

        keys = await get_user_keys(db_session, user_id)
        # 10 for 1..10, 15 for 11..25 plus 1 for level 20
        assert keys[int(CrateId.LEVEL_UP)] == 26
        assert keys[int(CrateId.PRESTIGE)] == 1

    @pytest.mark.asyncio
    async def test_level_up_broadcast_on_leaderboard(self, db_session, mock_redis, user_id):
        await add_xp(db_session, mock_redis, user_id, 710, "admin")

        events = _published_events(mock_redis)
        shared = [payload for address, payload in events if address == "pubsub:leaderboard_updates"]
        assert len(shared) == 1
        assert shared[0]["event"] == "level_up"
        assert shared[0]["data"]["new_level"] == 2

    @pytest.mark.asyncio
    async def test_level_up_unlocks_level_achievement(self, db_session, mock_redis, user_id, make_achievement):
        await make_achievement("reach_level_2", "level", 2, category="progression", xp_reward=20)

        await add_xp(db_session, mock_redis, user_id, 710, "admin")

        unlocked = (await db_session.execute(
            select(func.count()).select_from(UserAchievement).where(UserAchievement.user_id == user_id)
        )).scalar_one()
        assert unlocked == 1

        economy = await get_or_create_economy(db_session, user_id)
        assert economy.xp == 730

    @pytest.mark.asyncio
    async def test_rank_boost_applies_from_silver(self, db_session, mock_redis, user_id):
        await add_xp(db_session, mock_redis, user_id, 16350, "admin")
        result = await add_xp(db_session, mock_redis, user_id, 100, "admin")
        assert result.xp_delta == 105


class TestRewardBurst:
    @pytest.mark.asyncio
    async def test_burst_applies_all_credits_at_once(self, db_session, mock_redis, user_id):
        burst = RewardBurst(user_id=user_id)
        burst.credit(xp=300, coins=10, source="mission_daily")
        burst.credit(xp=410, gems=5, source="achievement")

        result = await commit_burst(db_session, mock_redis, burst)

        assert result.total_xp == 710
        assert result.leveled_up
        economy = await get_or_create_economy(db_session, user_id)
        assert economy.coins == 10 + 200
        assert economy.gems == 5

        history = await get_xp_history(db_session, user_id)
        assert sorted(entry.amount for entry in history) == [300, 410]

    @pytest.mark.asyncio
    async def test_negative_credit_rejected(self, user_id):
        burst = RewardBurst(user_id=user_id)
        with pytest.raises(ValidationError):
            burst.credit(coins=-1)

    @pytest.mark.asyncio
    async def test_followups_run_after_commit(self, db_session, mock_redis, user_id):
        seen = []

        async def followup():
            economy = await get_or_create_economy(db_session, user_id)
            seen.append(economy.xp)

        burst = RewardBurst(user_id=user_id)
        burst.credit(xp=50, source="admin")
        burst.after_commit(followup)
        await commit_burst(db_session, mock_redis, burst)

        assert seen == [50]

    @pytest.mark.asyncio
    async def test_failing_followup_does_not_raise(self, db_session, mock_redis, user_id):
        async def broken():
            raise RuntimeError("boom")

        burst = RewardBurst(user_id=user_id)
        burst.credit(xp=50, source="admin")
        burst.after_commit(broken)
        result = await commit_burst(db_session, mock_redis, burst)

        assert result.total_xp == 50

    @pytest.mark.asyncio
    async def test_publish_failure_keeps_grant(self, db_session, mock_redis, user_id):
        mock_redis.publish.side_effect = ConnectionError("redis down")

        result = await add_xp(db_session, mock_redis, user_id, 710, "admin")

        assert result.leveled_up
        economy = await get_or_create_economy(db_session, user_id)
        assert economy.xp == 710
        assert economy.level == 2
        # Persisted even though the realtime push failed
        assert await _count_notifications(db_session, user_id, "level_up") == 1
        keys = (await db_session.execute(
            select(UserKeys.keys_count).where(UserKeys.user_id == user_id)
        )).scalar_one()
        assert keys == 1
