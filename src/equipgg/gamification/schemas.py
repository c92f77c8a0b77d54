"""Pydantic request/response models for progression endpoints."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


# --- Events ---


class EventRequest(BaseModel):
    user_id: int
    event_type: str
    data: dict[str, Any] = {}


class EventOutcomeResponse(BaseModel):
    event_type: str
    xp_awarded: int
    missions_completed: list[str]
    achievements_unlocked: list[str]
    keys_awarded: int
    level_before: int
    level_after: int


# --- XP ---


class XPGrantRequest(BaseModel):
    amount: int = Field(gt=0)
    source: str = Field(min_length=1, max_length=64)
    metadata: dict[str, Any] = {}
    idempotency_key: str | None = Field(default=None, max_length=256)


class LedgerResponse(BaseModel):
    user_id: int
    granted: bool = True
    xp_delta: int = 0
    total_xp: int = 0
    level_before: int = 1
    level_after: int = 1
    leveled_up: bool = False


# --- Missions ---


class MissionProgressRequest(BaseModel):
    action_type: str = Field(min_length=1, max_length=64)
    value: int = 1
    mode: Literal["increment", "set"] = "increment"


class MissionSummary(BaseModel):
    id: int
    slug: str
    name: str
    type: str
    xp_reward: int
    coin_reward: int
    gem_reward: int


class MissionProgressResponse(BaseModel):
    completed: list[MissionSummary]


class MissionResetRequest(BaseModel):
    mission_type: Literal["daily", "weekly"]
    user_id: int | None = None


class MissionResetResponse(BaseModel):
    rows_reset: int


# --- Achievements ---


class AchievementCheckRequest(BaseModel):
    category: str | None = None


class AchievementSummary(BaseModel):
    id: int
    slug: str
    name: str
    description: str
    category: str
    rarity: str
    xp_reward: int
    coin_reward: int
    gem_reward: int


class AchievementCheckResponse(BaseModel):
    unlocked: list[AchievementSummary]


class AchievementProgressResponse(BaseModel):
    achievement_id: int
    current: float
    required: float
    met: bool
    percentage: float


# --- Crate keys ---


class CrateKeyGrantRequest(BaseModel):
    crate_id: int
    count: int = 1


class CrateKeyResponse(BaseModel):
    crate_id: int
    balance: int


# --- Trade-up ---


class TradeUpRequest(BaseModel):
    item_ids: list[int]


class TradeUpResponse(BaseModel):
    contract_id: int
    input_items: list[dict[str, Any]]
    output_item: dict[str, Any]


# --- Login / rank ---


class LoginResponse(BaseModel):
    already_logged_in: bool
    streak: int | None = None
    xp_awarded: int = 0
    loyalty_week: int | None = None


class RankRewardResponse(BaseModel):
    claimed: bool
    rank: str | None = None
    coins: int = 0
    gems: int = 0


# --- Progression ---


class ProgressionResponse(BaseModel):
    user_id: int
    xp: int
    level: int
    xp_into_level: int
    xp_for_level: int
    progress_percentage: float
    rank: str
    xp_boost: int
    daily_coins: int
    daily_gems: int
    coins: int
    gems: int
    login_streak: int
    crate_keys: dict[int, int]
