"""XP to level curve.

A curve only defines the cumulative XP needed to reach a level. The inverse
(level for a total XP) is derived from that single function by search, so
"xp required for level N" and "level for N xp" can never disagree.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from functools import lru_cache

from equipgg.config import get_settings
from equipgg.gamification.ranks import get_rank


class LevelCurve(ABC):
    """Strictly increasing mapping from level to cumulative XP."""

    @abstractmethod
    def xp_for_level(self, level: int) -> int:
        """Total XP needed to reach ``level``. ``xp_for_level(1)`` is 0."""

    def level_for_xp(self, total_xp: int) -> int:
        """Highest level whose XP requirement is <= ``total_xp``."""
        if total_xp < 0:
            raise ValueError("total_xp must be non-negative")

        # Exponential search for an upper bound, then bisect
        lo, hi = 1, 2
        while self.xp_for_level(hi) <= total_xp:
            lo, hi = hi, hi * 2
        while hi - lo > 1:
            mid = (lo + hi) // 2
            if self.xp_for_level(mid) <= total_xp:
                lo = mid
            else:
                hi = mid
        return lo

    def xp_to_next_level(self, level: int) -> int:
        return self.xp_for_level(level + 1) - self.xp_for_level(level)


class HybridLevelCurve(LevelCurve):
    """Advancing from level k to k+1 costs ``base + step*k + scale*k**2`` XP.

    The cumulative sum has a closed form, so lookups stay O(1) however high
    the level goes.
    """

    def __init__(self, base: int = 500, step: int = 200, scale: int = 10) -> None:
        if base <= 0:
            raise ValueError("base must be positive")
        if step < 0 or scale < 0:
            raise ValueError("step and scale must be non-negative")
        self.base = base
        self.step = step
        self.scale = scale

    def xp_for_level(self, level: int) -> int:
        if level < 1:
            raise ValueError("level must be >= 1")
        n = level - 1
        return (
            self.base * n
            + self.step * n * (n + 1) // 2
            + self.scale * n * (n + 1) * (2 * n + 1) // 6
        )


@lru_cache
def get_level_curve() -> LevelCurve:
    """The process-wide curve, built from settings."""
    settings = get_settings()
    return HybridLevelCurve(
        base=settings.xp_curve_base,
        step=settings.xp_curve_step,
        scale=settings.xp_curve_scale,
    )


def level_for_xp(total_xp: int) -> int:
    return get_level_curve().level_for_xp(total_xp)


def compute_level(total_xp: int) -> dict:
    """Compute level info from total XP."""
    curve = get_level_curve()
    level = curve.level_for_xp(total_xp)
    floor_xp = curve.xp_for_level(level)
    xp_for_level = curve.xp_to_next_level(level)
    xp_into_level = total_xp - floor_xp
    rank = get_rank(level)

    return {
        "level": level,
        "xp_into_level": xp_into_level,
        "xp_for_level": xp_for_level,
        "next_level": level + 1,
        "progress_percentage": round(xp_into_level * 100 / xp_for_level, 2),
        "rank": rank.name,
    }
