from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from medreq.db.base import Base


class HistologyItem(Base):
    __tablename__ = "histology_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    requisition_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("requisitions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    service_date: Mapped[date] = mapped_column(Date, nullable=False)
    patient_name: Mapped[str] = mapped_column(String(200), nullable=False)
    hospital_no: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    lab_no: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    # RECEIPT NO / HMO / COY
    receipt_no: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    outsource_service: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    outsource_bills: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    internal_charge: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    retainership: Mapped[str] = mapped_column(String(100), nullable=False, default="")
