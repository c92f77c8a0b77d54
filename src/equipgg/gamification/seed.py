"""Default catalog: missions, achievements and trade-up items."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from equipgg.db.models import Achievement, Item, Mission
from equipgg.db.upsert import insert_for

logger = logging.getLogger(__name__)

MISSION_SEED_DATA: list[dict] = [
    # Daily
    {
        "slug": "daily_login",
        "name": "Show Up",
        "description": "Log in today",
        "type": "daily",
        "requirement_type": "login",
        "requirement_value": 1,
        "xp_reward": 25,
        "coin_reward": 10,
        "sort_order": 1,
    },
    {
        "slug": "daily_place_3_bets",
        "name": "Warm Up",
        "description": "Place 3 bets",
        "type": "daily",
        "requirement_type": "bets_placed",
        "requirement_value": 3,
        "xp_reward": 100,
        "coin_reward": 50,
        "sort_order": 2,
    },
    {
        "slug": "daily_win_bet",
        "name": "Winner Winner",
        "description": "Win a bet",
        "type": "daily",
        "requirement_type": "bets_won",
        "requirement_value": 1,
        "xp_reward": 150,
        "coin_reward": 75,
        "sort_order": 3,
    },
    {
        "slug": "daily_open_crate",
        "name": "Unboxer",
        "description": "Open a crate",
        "type": "daily",
        "requirement_type": "crates_opened",
        "requirement_value": 1,
        "xp_reward": 75,
        "sort_order": 4,
    },
    # Weekly
    {
        "slug": "weekly_daily_sweep",
        "name": "Daily Grinder",
        "description": "Complete every daily mission on 5 days",
        "type": "weekly",
        "requirement_type": "complete_daily_missions",
        "requirement_value": 5,
        "xp_reward": 1000,
        "coin_reward": 500,
        "gem_reward": 10,
        "sort_order": 10,
    },
    {
        "slug": "weekly_place_25_bets",
        "name": "Regular",
        "description": "Place 25 bets",
        "type": "weekly",
        "requirement_type": "bets_placed",
        "requirement_value": 25,
        "xp_reward": 500,
        "coin_reward": 250,
        "sort_order": 11,
    },
    {
        "slug": "weekly_wager_5000",
        "name": "High Roller",
        "description": "Wager 5,000 coins",
        "type": "weekly",
        "requirement_type": "bet_amount",
        "requirement_value": 5000,
        "xp_reward": 400,
        "coin_reward": 200,
        "sort_order": 12,
    },
    {
        "slug": "weekly_earn_10000",
        "name": "Payday",
        "description": "Earn 10,000 coins from winning bets",
        "type": "weekly",
        "requirement_type": "earn_coins",
        "requirement_value": 10000,
        "xp_reward": 600,
        "gem_reward": 5,
        "sort_order": 13,
    },
    # Special
    {
        "slug": "special_trade_up",
        "name": "Alchemist",
        "description": "Complete a trade-up contract",
        "type": "special",
        "requirement_type": "trade_up",
        "requirement_value": 1,
        "xp_reward": 200,
        "coin_reward": 100,
        "repeatable": False,
        "sort_order": 20,
    },
    {
        "slug": "special_high_odds",
        "name": "Underdog",
        "description": "Win 3 bets at odds of 2.0 or higher",
        "type": "special",
        "requirement_type": "win_high_odds",
        "requirement_value": 3,
        "xp_reward": 300,
        "gem_reward": 10,
        "repeatable": False,
        "sort_order": 21,
    },
    {
        "slug": "special_event",
        "name": "Event Regular",
        "description": "Take part in 3 events",
        "type": "special",
        "requirement_type": "event_participation",
        "requirement_value": 3,
        "xp_reward": 250,
        "repeatable": False,
        "sort_order": 22,
    },
    # Story
    {
        "slug": "story_first_bet",
        "name": "First Steps",
        "description": "Place your first bet",
        "type": "story",
        "requirement_type": "bets_placed",
        "requirement_value": 1,
        "xp_reward": 50,
        "repeatable": False,
        "sort_order": 30,
    },
    {
        "slug": "story_collector",
        "name": "Collector",
        "description": "Own 10 items",
        "type": "story",
        "requirement_type": "items_owned",
        "requirement_value": 10,
        "xp_reward": 200,
        "repeatable": False,
        "sort_order": 31,
    },
    {
        "slug": "story_rare_hoard",
        "name": "Rare Hoard",
        "description": "Own 5 rare items",
        "type": "story",
        "requirement_type": "rare_items_owned",
        "requirement_value": 5,
        "xp_reward": 250,
        "repeatable": False,
        "sort_order": 32,
    },
    {
        "slug": "story_epic_find",
        "name": "Epic Find",
        "description": "Own an epic item",
        "type": "story",
        "requirement_type": "epic_items_owned",
        "requirement_value": 1,
        "xp_reward": 300,
        "repeatable": False,
        "sort_order": 33,
    },
    {
        "slug": "story_legend",
        "name": "Legendary",
        "description": "Own a legendary item",
        "type": "story",
        "requirement_type": "legendary_items_owned",
        "requirement_value": 1,
        "xp_reward": 750,
        "gem_reward": 25,
        "repeatable": False,
        "sort_order": 34,
    },
    {
        "slug": "story_full_locker",
        "name": "Full Locker",
        "description": "Fill 50 inventory slots",
        "type": "story",
        "requirement_type": "inventory_slots",
        "requirement_value": 50,
        "xp_reward": 500,
        "repeatable": False,
        "sort_order": 35,
    },
    {
        "slug": "story_hot_streak",
        "name": "Hot Streak",
        "description": "Win 5 bets in a row",
        "type": "story",
        "requirement_type": "win_streak",
        "requirement_value": 5,
        "xp_reward": 400,
        "repeatable": False,
        "sort_order": 36,
    },
    {
        "slug": "story_trader",
        "name": "Trader",
        "description": "Complete 10 trades",
        "type": "story",
        "requirement_type": "items_traded",
        "requirement_value": 10,
        "xp_reward": 300,
        "repeatable": False,
        "sort_order": 37,
    },
]

ACHIEVEMENT_SEED_DATA: list[dict] = [
    # Betting
    {
        "slug": "first_bet",
        "name": "First Bet",
        "description": "Place your first bet",
        "category": "betting",
        "requirement_type": "bets_placed",
        "requirement_value": 1,
        "xp_reward": 50,
        "coin_reward": 25,
        "rarity": "common",
    },
    {
        "slug": "bets_100",
        "name": "Centurion",
        "description": "Place 100 bets",
        "category": "betting",
        "requirement_type": "bets_placed",
        "requirement_value": 100,
        "xp_reward": 500,
        "coin_reward": 250,
        "rarity": "rare",
    },
    {
        "slug": "first_win",
        "name": "First Blood",
        "description": "Win your first bet",
        "category": "betting",
        "requirement_type": "bets_won",
        "requirement_value": 1,
        "xp_reward": 100,
        "coin_reward": 50,
        "rarity": "common",
    },
    {
        "slug": "wins_50",
        "name": "Sharp",
        "description": "Win 50 bets",
        "category": "betting",
        "requirement_type": "bets_won",
        "requirement_value": 50,
        "xp_reward": 750,
        "gem_reward": 10,
        "rarity": "epic",
    },
    {
        "slug": "streak_5",
        "name": "On Fire",
        "description": "Win your last 5 bets",
        "category": "betting",
        "requirement_type": "win_streak",
        "requirement_value": 5,
        "xp_reward": 400,
        "gem_reward": 5,
        "rarity": "rare",
    },
    {
        "slug": "long_shot",
        "name": "Long Shot",
        "description": "Win a bet at odds of 5.0 or higher",
        "category": "betting",
        "requirement_type": "high_odds_win",
        "requirement_value": 5.0,
        "xp_reward": 500,
        "gem_reward": 10,
        "rarity": "epic",
    },
    {
        "slug": "big_payout",
        "name": "Jackpot",
        "description": "Win 10,000 coins on a single bet",
        "category": "betting",
        "requirement_type": "single_bet_payout",
        "requirement_value": 10000,
        "xp_reward": 1000,
        "gem_reward": 25,
        "rarity": "legendary",
    },
    # Progression
    {
        "slug": "level_10",
        "name": "Getting Serious",
        "description": "Reach level 10",
        "category": "progression",
        "requirement_type": "level",
        "requirement_value": 10,
        "xp_reward": 0,
        "coin_reward": 500,
        "rarity": "common",
    },
    {
        "slug": "level_25",
        "name": "Veteran",
        "description": "Reach level 25",
        "category": "progression",
        "requirement_type": "level",
        "requirement_value": 25,
        "xp_reward": 0,
        "coin_reward": 1500,
        "gem_reward": 25,
        "rarity": "rare",
    },
    {
        "slug": "level_50",
        "name": "Master",
        "description": "Reach level 50",
        "category": "progression",
        "requirement_type": "level",
        "requirement_value": 50,
        "xp_reward": 0,
        "coin_reward": 5000,
        "gem_reward": 100,
        "rarity": "legendary",
    },
    # Collection
    {
        "slug": "items_10",
        "name": "Stocked",
        "description": "Own 10 items",
        "category": "collection",
        "requirement_type": "items_owned",
        "requirement_value": 10,
        "xp_reward": 150,
        "rarity": "common",
    },
    {
        "slug": "items_100",
        "name": "Hoarder",
        "description": "Own 100 items",
        "category": "collection",
        "requirement_type": "items_owned",
        "requirement_value": 100,
        "xp_reward": 1000,
        "gem_reward": 20,
        "rarity": "epic",
    },
    {
        "slug": "crates_10",
        "name": "Crate Cracker",
        "description": "Open 10 crates",
        "category": "collection",
        "requirement_type": "crates_opened",
        "requirement_value": 10,
        "xp_reward": 200,
        "rarity": "common",
    },
]

_ITEM_NAMES = {
    "common": ["P250 | Sand Dune", "MP9 | Storm", "Nova | Predator", "UMP-45 | Urban DDPAT"],
    "uncommon": ["Glock-18 | Candy Apple", "MAC-10 | Heat", "Tec-9 | Isaac", "FAMAS | Pulse"],
    "rare": ["AK-47 | Redline", "M4A1-S | Guardian", "USP-S | Cortex", "P90 | Asiimov"],
    "epic": ["AWP | Hyper Beast", "M4A4 | Desolate Space", "Desert Eagle | Blaze", "AK-47 | Vulcan"],
    "legendary": ["AWP | Dragon Lore", "Karambit | Fade", "M9 Bayonet | Doppler", "AK-47 | Wild Lotus"],
}

_ITEM_PRICES = {"common": 50, "uncommon": 150, "rare": 500, "epic": 2000, "legendary": 10000}

ITEM_SEED_DATA: list[dict] = [
    {"name": name, "type": "weapon", "rarity": rarity, "coin_price": _ITEM_PRICES[rarity]}
    for rarity, names in _ITEM_NAMES.items()
    for name in names
]


async def seed_catalog(db: AsyncSession) -> dict[str, int]:
    """Upsert the default missions, achievements and items. Returns counts seeded."""
    for mission_data in MISSION_SEED_DATA:
        row = {"coin_reward": 0, "gem_reward": 0, "repeatable": True, **mission_data}
        stmt = insert_for(db, Mission).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=["slug"],
            set_={
                "name": stmt.excluded.name,
                "description": stmt.excluded.description,
                "type": stmt.excluded.type,
                "requirement_type": stmt.excluded.requirement_type,
                "requirement_value": stmt.excluded.requirement_value,
                "xp_reward": stmt.excluded.xp_reward,
                "coin_reward": stmt.excluded.coin_reward,
                "gem_reward": stmt.excluded.gem_reward,
                "repeatable": stmt.excluded.repeatable,
                "sort_order": stmt.excluded.sort_order,
            },
        )
        await db.execute(stmt)

    for achievement_data in ACHIEVEMENT_SEED_DATA:
        row = {"coin_reward": 0, "gem_reward": 0, **achievement_data}
        stmt = insert_for(db, Achievement).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=["slug"],
            set_={
                "name": stmt.excluded.name,
                "description": stmt.excluded.description,
                "category": stmt.excluded.category,
                "requirement_type": stmt.excluded.requirement_type,
                "requirement_value": stmt.excluded.requirement_value,
                "xp_reward": stmt.excluded.xp_reward,
                "coin_reward": stmt.excluded.coin_reward,
                "gem_reward": stmt.excluded.gem_reward,
                "rarity": stmt.excluded.rarity,
            },
        )
        await db.execute(stmt)

    for item_data in ITEM_SEED_DATA:
        stmt = insert_for(db, Item).values(**item_data)
        stmt = stmt.on_conflict_do_nothing(index_elements=["name"])
        await db.execute(stmt)

    await db.commit()
    counts = {
        "missions": len(MISSION_SEED_DATA),
        "achievements": len(ACHIEVEMENT_SEED_DATA),
        "items": len(ITEM_SEED_DATA),
    }
    logger.info("Seeded catalog: %s", counts)
    return counts
