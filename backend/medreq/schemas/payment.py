from __future__ import annotations

from pydantic import Field

from medreq.schemas.base import DecimalBaseModel
from medreq.schemas.requisition import PaymentOut, RequisitionOut


class PaymentRecordedOut(DecimalBaseModel):
    payment: PaymentOut
    requisition: RequisitionOut
    warnings: list[str] = Field(default_factory=list)
