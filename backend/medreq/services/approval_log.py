from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

import medreq.db.audit  # noqa: F401  registers the append-only flush guard
from medreq.models.approval_log import ApprovalLog
from medreq.models.enums import LogAction

logger = logging.getLogger("medreq_api.approval_log")

LOG_WRITE_WARNING = "the approval log entry for this action could not be recorded"


async def append_log(
    db: AsyncSession,
    *,
    requisition_id: uuid.UUID,
    user_id: uuid.UUID,
    action: LogAction,
    comment: str | None = None,
    signature: str | None = None,
) -> str | None:
    """Append one entry inside a savepoint.

    Returns None on success, or a warning for the caller's result when the
    entry could not be stored. The surrounding status change is kept either way.
    """
    try:
        async with db.begin_nested():
            db.add(
                ApprovalLog(
                    requisition_id=requisition_id,
                    user_id=user_id,
                    action=action,
                    comment=comment,
                    signature=signature,
                )
            )
    except SQLAlchemyError:
        logger.exception(
            "Failed to append approval log entry",
            extra={"requisition_id": str(requisition_id), "action": action.value},
        )
        return LOG_WRITE_WARNING
    return None


async def list_log(db: AsyncSession, requisition_id: uuid.UUID) -> list[ApprovalLog]:
    res = await db.execute(
        select(ApprovalLog)
        .where(ApprovalLog.requisition_id == requisition_id)
        .order_by(ApprovalLog.created_at.asc(), ApprovalLog.id.asc())
    )
    return list(res.scalars().all())
