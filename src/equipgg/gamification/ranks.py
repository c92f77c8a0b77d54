"""Rank tiers derived from level.

Ranks are never stored. Every caller derives the rank from the level it
just computed so a level change can't leave a stale rank behind.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass


@dataclass(frozen=True)
class Rank:
    name: str
    min_level: int
    max_level: int | None
    daily_coins: int
    daily_gems: int
    xp_boost: int
    crate_discount: int


# Sorted by min_level
RANKS: list[Rank] = [
    Rank("Bronze", 1, 9, daily_coins=50, daily_gems=0, xp_boost=0, crate_discount=0),
    Rank("Silver", 10, 19, daily_coins=100, daily_gems=0, xp_boost=5, crate_discount=0),
    Rank("Gold", 20, 29, daily_coins=200, daily_gems=5, xp_boost=10, crate_discount=0),
    Rank("Platinum", 30, 39, daily_coins=350, daily_gems=10, xp_boost=15, crate_discount=5),
    Rank("Diamond", 40, 49, daily_coins=500, daily_gems=20, xp_boost=20, crate_discount=10),
    Rank("Master", 50, 74, daily_coins=750, daily_gems=35, xp_boost=25, crate_discount=15),
    Rank("Grandmaster", 75, 99, daily_coins=1000, daily_gems=50, xp_boost=30, crate_discount=20),
    Rank("Legend", 100, None, daily_coins=1500, daily_gems=75, xp_boost=50, crate_discount=25),
]

_MIN_LEVELS = [r.min_level for r in RANKS]


def get_rank(level: int) -> Rank:
    """Rank for a level. Levels below 1 are treated as 1."""
    idx = bisect_right(_MIN_LEVELS, max(level, 1)) - 1
    return RANKS[idx]


def apply_xp_boost(amount: int, level: int) -> int:
    """Scale an XP award by the rank boost for ``level`` (floored)."""
    boost = get_rank(level).xp_boost
    return amount * (100 + boost) // 100
