"""ORM models for the progression ledger.

These mirror the tables created by alembic/versions/001_progression_ledger.py.
User identity lives in the auth service; ``user_id`` here is its numeric id.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column

from equipgg.db.base import Base, BigIntPK, JSONType


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class UserEconomy(Base):
    """Per-user economy row: coins, gems, XP, level, login streak."""

    __tablename__ = "user_economy"
    __table_args__ = (
        CheckConstraint("coins >= 0", name="user_economy_coins_non_negative"),
        CheckConstraint("gems >= 0", name="user_economy_gems_non_negative"),
        CheckConstraint("xp >= 0", name="user_economy_xp_non_negative"),
    )

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    coins: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    gems: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    login_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_login_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_daily_claim: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())


class XPLedger(Base):
    """Immutable XP transaction log with optional idempotency key."""

    __tablename__ = "xp_ledger"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    source: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str] = mapped_column(String(256), nullable=False, default="", server_default="")
    entry_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    idempotency_key: Mapped[str | None] = mapped_column(String(256), unique=True, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ---------------------------------------------------------------------------
# Missions
# ---------------------------------------------------------------------------


class Mission(Base):
    """Mission catalog: read-only at runtime."""

    __tablename__ = "missions"
    __table_args__ = (
        CheckConstraint("requirement_value > 0", name="missions_requirement_positive"),
        CheckConstraint("type IN ('daily', 'weekly', 'special', 'story')", name="missions_type_valid"),
        Index("idx_missions_requirement_type", "requirement_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    requirement_type: Mapped[str] = mapped_column(String(64), nullable=False)
    requirement_value: Mapped[int] = mapped_column(Integer, nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    coin_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    gem_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    repeatable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")


class UserMissionProgress(Base):
    """Per-user mission progress: UNIQUE(user_id, mission_id)."""

    __tablename__ = "user_mission_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "mission_id", name="user_mission_progress_user_id_mission_id_key"),
        CheckConstraint("progress >= 0", name="user_mission_progress_non_negative"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    mission_id: Mapped[int] = mapped_column(Integer, ForeignKey("missions.id", ondelete="CASCADE"), nullable=False)
    progress: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------


class Achievement(Base):
    """Achievement catalog: read-only at runtime."""

    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    requirement_type: Mapped[str] = mapped_column(String(64), nullable=False)
    requirement_value: Mapped[float] = mapped_column(Float, nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    coin_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    gem_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    rarity: Mapped[str] = mapped_column(String(16), nullable=False, default="common", server_default="common")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())


class UserAchievement(Base):
    """Unlocked achievements: append-only, UNIQUE(user_id, achievement_id)."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="user_achievements_user_id_achievement_id_key"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False
    )
    unlocked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Crate keys
# ---------------------------------------------------------------------------


class UserKeys(Base):
    """Crate key balance per (user, crate): additive only."""

    __tablename__ = "user_keys"
    __table_args__ = (
        UniqueConstraint("user_id", "crate_id", name="user_keys_user_id_crate_id_key"),
        CheckConstraint("keys_count >= 0", name="user_keys_non_negative"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    crate_id: Mapped[int] = mapped_column(Integer, nullable=False)
    keys_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    acquired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ---------------------------------------------------------------------------
# Items & inventory
# ---------------------------------------------------------------------------


class Item(Base):
    """Item catalog: the pool trade-up outputs are drawn from."""

    __tablename__ = "items"
    __table_args__ = (Index("idx_items_rarity_active", "rarity", "is_active"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="weapon", server_default="weapon")
    rarity: Mapped[str] = mapped_column(String(16), nullable=False)
    coin_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    image_url: Mapped[str | None] = mapped_column(String(256), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())


class InventoryItem(Base):
    """An item owned by a user."""

    __tablename__ = "user_inventory"
    __table_args__ = (CheckConstraint("value >= 0", name="user_inventory_value_non_negative"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    item_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("items.id"), nullable=True)
    item_name: Mapped[str] = mapped_column(String(128), nullable=False)
    rarity: Mapped[str] = mapped_column(String(16), nullable=False)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    equipped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    obtained_from: Mapped[str | None] = mapped_column(String(32), nullable=True)
    acquired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())


class TradeUpContract(Base):
    """Audit record of a completed trade-up: append-only."""

    __tablename__ = "trade_up_contracts"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    input_items: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False)
    input_rarity: Mapped[str] = mapped_column(String(16), nullable=False)
    output_rarity: Mapped[str] = mapped_column(String(16), nullable=False)
    output_item_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    output_value: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ---------------------------------------------------------------------------
# Bets (written by the betting service, read by achievement predicates)
# ---------------------------------------------------------------------------


class Bet(Base):
    """A settled or pending bet."""

    __tablename__ = "bets"
    __table_args__ = (Index("idx_bets_user_created", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    match_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    odds: Mapped[float] = mapped_column(Float, nullable=False, default=1.0, server_default="1.0")
    payout: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", server_default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    """Persisted user notifications."""

    __tablename__ = "notifications"
    __table_args__ = (Index("idx_notifications_user_read", "user_id", "read"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())
