from __future__ import annotations

import logging
import uuid
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from medreq.core.errors import NotificationNotFound
from medreq.models.notification import Notification
from medreq.models.requisition import Requisition
from medreq.models.enums import Role
from medreq.models.user import User
from medreq.services.notification_rules import NotificationRequest, Recipient, RecipientKind
from medreq.services.workflow_rules import approver_names

logger = logging.getLogger("medreq_api.notifications")


async def resolve_recipients(db: AsyncSession, recipient: Recipient, requisition: Requisition) -> list[uuid.UUID]:
    if recipient.kind == RecipientKind.REQUESTER:
        return [requisition.requester_id]

    stmt = select(User.id).where(User.active.is_(True))
    if recipient.kind == RecipientKind.ROLE:
        stmt = stmt.where(User.role == Role(recipient.value))
    else:
        name = approver_names().get(recipient.value or "")
        if not name:
            return []
        stmt = stmt.where(User.name == name)
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def dispatch_notifications(
    db: AsyncSession,
    *,
    requisition: Requisition,
    requests: Iterable[NotificationRequest],
    supplier: str | None = None,
    sender: str | None = None,
) -> int:
    """Store one notification per resolved recipient and commit.

    Runs after the triggering transition has been committed. Failures are
    logged and rolled back; they never reach the caller.
    """
    requests = list(requests)
    if not requests:
        return 0

    requisition_id = requisition.id
    context = {
        "id": requisition_id,
        "department": requisition.department.value,
        "supplier": supplier,
        "status": requisition.status.value,
        "sender": sender,
    }
    created = 0
    try:
        async with db.begin_nested():
            for request in requests:
                recipients = await resolve_recipients(db, request.recipient, requisition)
                if not recipients:
                    logger.info(
                        "No recipient for notification",
                        extra={"requisition_id": str(requisition_id), "recipient": request.recipient.kind.value},
                    )
                    continue
                text = request.render(**context)
                for recipient_id in recipients:
                    db.add(Notification(recipient_id=recipient_id, requisition_id=requisition_id, message=text))
                    created += 1
    except SQLAlchemyError:
        logger.exception("Failed to dispatch notifications", extra={"requisition_id": str(requisition_id)})
        return 0
    try:
        await db.commit()
    except SQLAlchemyError:
        logger.exception("Failed to commit notifications", extra={"requisition_id": str(requisition_id)})
        await db.rollback()
        return 0
    return created


async def list_notifications(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    unread_only: bool = False,
    limit: int = 50,
) -> list[Notification]:
    stmt = select(Notification).where(Notification.recipient_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def mark_read(db: AsyncSession, *, user_id: uuid.UUID, notification_id: int) -> Notification:
    res = await db.execute(
        select(Notification).where(Notification.id == notification_id, Notification.recipient_id == user_id)
    )
    notification = res.scalar_one_or_none()
    if notification is None:
        raise NotificationNotFound(f"notification {notification_id} not found")
    if not notification.read:
        notification.read = True
        await db.commit()
    return notification


async def mark_all_read(db: AsyncSession, *, user_id: uuid.UUID) -> int:
    res = await db.execute(
        update(Notification)
        .where(Notification.recipient_id == user_id, Notification.read.is_(False))
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return int(res.rowcount or 0)
