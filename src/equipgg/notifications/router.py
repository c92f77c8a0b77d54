"""Notification API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from equipgg.dependencies import get_db
from equipgg.notifications.schemas import (
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from equipgg.notifications.service import get_notifications, get_unread_count, mark_all_as_read

router = APIRouter(prefix="/api/v1", tags=["Notifications"])


@router.get("/users/{user_id}/notifications", response_model=NotificationListResponse)
async def list_notifications(
    user_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """List a user's notifications (paginated)."""
    notifications, total = await get_notifications(db, user_id, page, per_page)
    return NotificationListResponse(
        notifications=[
            NotificationResponse(
                id=str(n.id),
                type=n.type,
                title=n.title,
                message=n.message,
                data=n.data or {},
                timestamp=n.created_at,
                read=n.read,
            )
            for n in notifications
        ],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.post("/users/{user_id}/notifications/read-all", status_code=200)
async def mark_all_read(user_id: int, db: AsyncSession = Depends(get_db)):
    """Mark all notifications as read."""
    count = await mark_all_as_read(db, user_id)
    return {"detail": f"Marked {count} notifications as read"}


@router.get("/users/{user_id}/notifications/unread-count", response_model=UnreadCountResponse)
async def get_unread_notification_count(user_id: int, db: AsyncSession = Depends(get_db)):
    """Get unread notification count."""
    count = await get_unread_count(db, user_id)
    return UnreadCountResponse(unread_count=count)
