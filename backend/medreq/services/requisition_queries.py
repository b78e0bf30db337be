from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from medreq.models.approval_log import ApprovalLog
from medreq.models.enums import RequisitionStatus, RequisitionType
from medreq.models.histology_item import HistologyItem
from medreq.models.message import Message
from medreq.models.payment import Payment
from medreq.models.requisition import Requisition
from medreq.models.requisition_item import RequisitionItem
from medreq.models.user import User
from medreq.services.approval_log import list_log
from medreq.services.payment_ledger import list_payments, outstanding_balance
from medreq.services.requisition_workflow import (
    list_messages,
    load_histology_items,
    load_items,
    load_requisition,
)


@dataclass
class RequisitionDetail:
    requisition: Requisition
    items: list[RequisitionItem] = field(default_factory=list)
    histology_items: list[HistologyItem] = field(default_factory=list)
    approval_log: list[ApprovalLog] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    payments: list[Payment] = field(default_factory=list)
    user_names: dict[uuid.UUID, str] = field(default_factory=dict)
    total_paid: Decimal = Decimal("0")
    outstanding_balance: Decimal = Decimal("0")


async def user_names(db: AsyncSession, user_ids: set[uuid.UUID]) -> dict[uuid.UUID, str]:
    if not user_ids:
        return {}
    res = await db.execute(select(User.id, User.name).where(User.id.in_(user_ids)))
    return {row.id: row.name for row in res.all()}


async def list_requisitions(
    db: AsyncSession,
    *,
    status: RequisitionStatus | None = None,
    req_type: RequisitionType | None = None,
    requester_id: uuid.UUID | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Requisition]:
    stmt = select(Requisition)
    if status is not None:
        stmt = stmt.where(Requisition.status == status)
    if req_type is not None:
        stmt = stmt.where(Requisition.type == req_type)
    if requester_id is not None:
        stmt = stmt.where(Requisition.requester_id == requester_id)
    stmt = stmt.order_by(Requisition.created_at.desc()).offset(offset).limit(limit)
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def get_requisition_detail(db: AsyncSession, requisition_id: uuid.UUID) -> RequisitionDetail:
    requisition = await load_requisition(db, requisition_id, lock=False)
    detail = RequisitionDetail(requisition=requisition)
    if requisition.type == RequisitionType.HISTOLOGY_PAYMENT:
        detail.histology_items = await load_histology_items(db, requisition.id)
    else:
        detail.items = await load_items(db, requisition.id)
    detail.approval_log = await list_log(db, requisition.id)
    detail.messages = await list_messages(db, requisition.id)
    detail.payments = await list_payments(db, requisition.id)

    paid = sum((p.amount for p in detail.payments), Decimal("0"))
    detail.total_paid = paid
    detail.outstanding_balance = outstanding_balance(requisition.total_cost, paid)

    ids = {requisition.requester_id}
    ids.update(entry.user_id for entry in detail.approval_log)
    ids.update(m.sender_id for m in detail.messages)
    ids.update(p.recorded_by for p in detail.payments)
    detail.user_names = await user_names(db, ids)
    return detail
