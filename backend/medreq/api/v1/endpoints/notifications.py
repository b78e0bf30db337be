from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from medreq.api.deps import get_current_user
from medreq.db.session import get_db
from medreq.models.user import User
from medreq.schemas.notification import MarkAllReadOut, NotificationOut
from medreq.services import notifications as service

router = APIRouter()


@router.get("", response_model=list[NotificationOut])
async def list_mine(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[NotificationOut]:
    rows = await service.list_notifications(db, user_id=user.id, unread_only=unread_only, limit=limit)
    return [NotificationOut.model_validate(n) for n in rows]


@router.post("/{notification_id}/read", response_model=NotificationOut)
async def read_one(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> NotificationOut:
    notification = await service.mark_read(db, user_id=user.id, notification_id=notification_id)
    return NotificationOut.model_validate(notification)


@router.post("/read-all", response_model=MarkAllReadOut)
async def read_all(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> MarkAllReadOut:
    updated = await service.mark_all_read(db, user_id=user.id)
    return MarkAllReadOut(updated=updated)
