from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from medreq.db.base import Base


class RequisitionItem(Base):
    __tablename__ = "requisition_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    requisition_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("requisitions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    supplier: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # standard requisitions
    estimated_unit_cost: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    # purchase orders
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    stock_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
