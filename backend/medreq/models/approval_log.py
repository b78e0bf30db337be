from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from medreq.db.base import Base
from medreq.models.enums import LogAction, db_enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApprovalLog(Base):
    """One immutable entry of a requisition's audit trail."""

    __tablename__ = "approval_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    requisition_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("requisitions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    action: Mapped[LogAction] = mapped_column(db_enum(LogAction, 30), nullable=False, index=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
