"""Notification persistence and realtime broadcast.

Every reward-producing step ends here:
1. Persist a Notification row for the user (own commit)
2. Publish a realtime event over Redis pub/sub

Both steps are best-effort. Failures are logged and reported back through
``DeliveryResult``/``bool`` so callers and tests can observe them, but they
never raise into the ledger code that already committed its mutation.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from equipgg.db.models import Notification

logger = logging.getLogger(__name__)


class Channel(str, Enum):
    """Realtime channels live clients can subscribe to."""

    MATCH_UPDATES = "match_updates"
    XP_UPDATES = "xp_updates"
    INVENTORY_CHANGES = "inventory_changes"
    LEADERBOARD_UPDATES = "leaderboard_updates"
    CHAT_MESSAGES = "chat_messages"
    NOTIFICATIONS = "notifications"
    BETTING = "betting"


VALID_TYPES = {
    "level_up",
    "xp_gained",
    "mission_completed",
    "achievement",
    "reward",
    "trade_up",
    "rank_reward",
    "system",
}


@dataclass
class DeliveryResult:
    notification_id: int | None
    persisted: bool
    published: bool


def channel_address(channel: Channel, user_id: int | None = None) -> str:
    """Redis channel name: private ``ws:user:{id}`` or shared ``pubsub:{channel}``."""
    if user_id is not None:
        return f"ws:user:{user_id}"
    return f"pubsub:{channel.value}"


async def publish(
    redis: Any | None,
    channel: Channel,
    event: str,
    data: dict[str, Any],
    user_id: int | None = None,
) -> bool:
    """Publish an event to a user's private address or to a shared channel.

    Returns True when the broker accepted the message.
    """
    if redis is None:
        return False

    payload = {"channel": channel.value, "event": event, "data": data}
    address = channel_address(channel, user_id)
    try:
        await redis.publish(address, json.dumps(payload, default=str))
    except Exception:
        logger.warning("Failed to publish %s on %s", event, address, exc_info=True)
        return False
    return True


async def notify(
    db: AsyncSession,
    redis: Any | None,
    user_id: int,
    type_: str,
    title: str,
    message: str,
    data: dict[str, Any] | None = None,
    *,
    channel: Channel = Channel.NOTIFICATIONS,
) -> DeliveryResult:
    """Persist a notification and push it to the user's live connections."""
    if type_ not in VALID_TYPES:
        raise ValueError(f"Invalid notification type: {type_}. Must be one of {VALID_TYPES}")

    notification = Notification(
        user_id=user_id,
        type=type_,
        title=title,
        message=message,
        data=data or {},
        read=False,
        created_at=datetime.now(timezone.utc),
    )
    notification_id: int | None = None
    persisted = False
    try:
        db.add(notification)
        await db.commit()
        notification_id = notification.id
        persisted = True
    except SQLAlchemyError:
        await db.rollback()
        logger.warning("Failed to persist %s notification for user %s", type_, user_id, exc_info=True)

    published = await publish(
        redis,
        channel,
        "notification",
        {
            "id": str(notification_id) if notification_id is not None else None,
            "type": type_,
            "title": title,
            "message": message,
            "data": data or {},
            "timestamp": notification.created_at.isoformat(),
            "read": False,
        },
        user_id=user_id,
    )
    return DeliveryResult(notification_id=notification_id, persisted=persisted, published=published)


async def get_notifications(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Notification], int]:
    """Get user's notifications (paginated, most recent first)."""
    offset = (page - 1) * per_page

    total_result = await db.execute(
        select(func.count()).select_from(Notification).where(Notification.user_id == user_id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.id.desc())
        .offset(offset)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def mark_all_as_read(db: AsyncSession, user_id: int) -> int:
    """Mark all unread notifications as read. Returns count updated."""
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount


async def get_unread_count(db: AsyncSession, user_id: int) -> int:
    """Get count of unread notifications."""
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
    )
    return result.scalar_one()
