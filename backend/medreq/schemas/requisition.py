from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import ConfigDict, Field, field_validator

from medreq.models.enums import (
    Department,
    LogAction,
    RequisitionStatus,
    RequisitionType,
    SignatureSlot,
)
from medreq.schemas.base import DecimalBaseModel


class SignatureIn(DecimalBaseModel):
    signature: str = Field(min_length=1)
    # Defaults to the acting user's name and the time of the call.
    name: str | None = None
    timestamp: datetime | None = None


class LineItemIn(DecimalBaseModel):
    name: str = Field(min_length=1, max_length=200)
    quantity: int = Field(gt=0)
    description: str = ""
    supplier: str | None = None
    estimated_unit_cost: Decimal | None = Field(default=None, ge=0)
    unit_price: Decimal | None = Field(default=None, ge=0)
    stock_level: int | None = Field(default=None, ge=0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str):
        value = value.strip()
        if not value:
            raise ValueError("item name is required")
        return value


class HistologyItemIn(DecimalBaseModel):
    service_date: date
    patient_name: str = Field(min_length=1, max_length=200)
    hospital_no: str = ""
    lab_no: str = ""
    receipt_no: str = ""
    outsource_service: str = ""
    outsource_bills: Decimal = Field(default=Decimal("0"), ge=0)
    internal_charge: Decimal = Field(default=Decimal("0"), ge=0)
    retainership: str = ""


class StandardRequisitionCreate(DecimalBaseModel):
    items: list[LineItemIn] = Field(min_length=1)


class PurchaseOrderCreate(DecimalBaseModel):
    items: list[LineItemIn] = Field(min_length=1)
    signatures: dict[SignatureSlot, SignatureIn] = Field(default_factory=dict)


class HistologyRequisitionCreate(DecimalBaseModel):
    items: list[HistologyItemIn] = Field(min_length=1)
    signatures: dict[SignatureSlot, SignatureIn] = Field(default_factory=dict)


class TransitionIn(DecimalBaseModel):
    signature: str | None = None
    comment: str | None = None


class QueryIn(TransitionIn):
    queried_to: Department | None = None


class ItemPriceIn(DecimalBaseModel):
    item_id: uuid.UUID
    unit_price: Decimal = Field(ge=0)


class PricingIn(DecimalBaseModel):
    signature: str | None = None
    comment: str | None = None
    prices: list[ItemPriceIn] = Field(default_factory=list)


class ResubmitIn(DecimalBaseModel):
    items: list[LineItemIn] | None = None
    histology_items: list[HistologyItemIn] | None = None


class SignSlotIn(DecimalBaseModel):
    slot: SignatureSlot
    signature: str = Field(min_length=1)


class RequisitionOut(DecimalBaseModel):
    id: uuid.UUID
    type: RequisitionType
    department: Department
    requester_id: uuid.UUID
    requester_name: str | None = None
    status: RequisitionStatus
    total_cost: Decimal
    queried_to: Department | None = None
    previous_status_on_query: RequisitionStatus | None = None
    signatures: dict | None = None
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, json_encoders={Decimal: str})


class RequisitionItemOut(DecimalBaseModel):
    id: uuid.UUID
    position: int
    name: str
    quantity: int
    description: str
    supplier: str | None = None
    estimated_unit_cost: Decimal | None = None
    unit_price: Decimal | None = None
    stock_level: int | None = None

    model_config = ConfigDict(from_attributes=True, json_encoders={Decimal: str})


class HistologyItemOut(DecimalBaseModel):
    id: uuid.UUID
    position: int
    service_date: date
    patient_name: str
    hospital_no: str
    lab_no: str
    receipt_no: str
    outsource_service: str
    outsource_bills: Decimal
    internal_charge: Decimal
    retainership: str

    model_config = ConfigDict(from_attributes=True, json_encoders={Decimal: str})


class ApprovalLogOut(DecimalBaseModel):
    id: int
    user_id: uuid.UUID
    user_name: str | None = None
    action: LogAction
    comment: str | None = None
    signature: str | None = None
    created_at: datetime


class MessageOut(DecimalBaseModel):
    id: uuid.UUID
    requisition_id: uuid.UUID
    sender_id: uuid.UUID
    sender_name: str | None = None
    text: str
    created_at: datetime


class MessageCreate(DecimalBaseModel):
    text: str = Field(min_length=1, max_length=4000)


class PaymentOut(DecimalBaseModel):
    id: uuid.UUID
    requisition_id: uuid.UUID
    amount: Decimal
    payment_date: date
    proof_path: str | None = None
    recorded_by: uuid.UUID
    recorded_by_name: str | None = None
    created_at: datetime


class RequisitionDetailOut(RequisitionOut):
    items: list[RequisitionItemOut] = Field(default_factory=list)
    histology_items: list[HistologyItemOut] = Field(default_factory=list)
    approval_log: list[ApprovalLogOut] = Field(default_factory=list)
    messages: list[MessageOut] = Field(default_factory=list)
    payments: list[PaymentOut] = Field(default_factory=list)
    total_paid: Decimal = Decimal("0")
    outstanding_balance: Decimal = Decimal("0")


class TransitionOut(DecimalBaseModel):
    requisition: RequisitionOut
    warnings: list[str] = Field(default_factory=list)


class SplitFailureOut(DecimalBaseModel):
    supplier: str
    item_count: int
    reason: str


class PurchaseOrderSplitOut(DecimalBaseModel):
    created: list[RequisitionOut] = Field(default_factory=list)
    failed: list[SplitFailureOut] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
