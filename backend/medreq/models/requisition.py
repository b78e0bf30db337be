from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, Numeric, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from medreq.db.base import Base
from medreq.models.enums import Department, RequisitionStatus, RequisitionType, db_enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Requisition(Base):
    __tablename__ = "requisitions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    type: Mapped[RequisitionType] = mapped_column(db_enum(RequisitionType, 30), nullable=False, index=True)
    department: Mapped[Department] = mapped_column(db_enum(Department, 20), nullable=False)
    requester_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    status: Mapped[RequisitionStatus] = mapped_column(db_enum(RequisitionStatus), nullable=False, index=True)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)

    # Only set while status is QUERIED.
    queried_to: Mapped[Department | None] = mapped_column(db_enum(Department, 20), nullable=True)
    previous_status_on_query: Mapped[RequisitionStatus | None] = mapped_column(
        db_enum(RequisitionStatus), nullable=True
    )

    # {"preparedBy": {"name": ..., "signature": ..., "timestamp": ...}, ...}
    signatures: Mapped[dict[str, Any] | None] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __mapper_args__ = {"version_id_col": version}
