"""Requisition workflow engine.

Every mutating operation follows the same shape: load the requisition under
a row lock, check the stage gate, mutate, flush (the version column turns a
lost update into ``ConcurrentUpdate``), append the approval log entry in a
savepoint, commit, then dispatch notifications outside the committed unit.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from medreq.core.errors import (
    ConcurrentUpdate,
    InvalidRequest,
    RequisitionNotFound,
    TransitionNotAllowed,
)
from medreq.models.enums import (
    Department,
    LogAction,
    RequisitionStatus,
    RequisitionType,
    SignatureSlot,
)
from medreq.models.histology_item import HistologyItem
from medreq.models.message import Message
from medreq.models.requisition import Requisition
from medreq.models.requisition_item import RequisitionItem
from medreq.models.user import User
from medreq.schemas.requisition import HistologyItemIn, LineItemIn, SignatureIn
from medreq.services import workflow_rules as rules
from medreq.services.approval_log import append_log
from medreq.services.notification_rules import MESSAGE_RULE, FanOutEvent, fan_out
from medreq.services.notifications import dispatch_notifications

logger = logging.getLogger("medreq_api.workflow")

S = RequisitionStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TransitionResult:
    requisition: Requisition
    warnings: list[str] = field(default_factory=list)


async def load_requisition(db: AsyncSession, requisition_id: uuid.UUID, *, lock: bool = True) -> Requisition:
    stmt = select(Requisition).where(Requisition.id == requisition_id)
    if lock:
        stmt = stmt.with_for_update()
    res = await db.execute(stmt.execution_options(populate_existing=True))
    requisition = res.scalar_one_or_none()
    if requisition is None:
        raise RequisitionNotFound(f"requisition {requisition_id} not found")
    return requisition


async def flush_transition(db: AsyncSession) -> None:
    try:
        await db.flush()
    except StaleDataError as exc:
        await db.rollback()
        raise ConcurrentUpdate(
            "requisition was changed by another action; reload it and try again"
        ) from exc


async def commit_transition(db: AsyncSession) -> None:
    try:
        await db.commit()
    except StaleDataError as exc:
        await db.rollback()
        raise ConcurrentUpdate(
            "requisition was changed by another action; reload it and try again"
        ) from exc


async def _record(
    db: AsyncSession,
    requisition: Requisition,
    *,
    actor: User,
    action: LogAction,
    event: FanOutEvent,
    comment: str | None = None,
    signature: str | None = None,
    supplier: str | None = None,
) -> TransitionResult:
    requisition.updated_at = utcnow()
    await flush_transition(db)

    warnings: list[str] = []
    warning = await append_log(
        db,
        requisition_id=requisition.id,
        user_id=actor.id,
        action=action,
        comment=comment,
        signature=signature,
    )
    if warning:
        warnings.append(warning)
    await commit_transition(db)

    logger.info(
        "Requisition %s",
        action.value.lower(),
        extra={
            "requisition_id": str(requisition.id),
            "status": requisition.status.value,
            "actor_id": str(actor.id),
        },
    )
    await dispatch_notifications(
        db,
        requisition=requisition,
        requests=fan_out(requisition.type, requisition.status, event),
        supplier=supplier,
    )
    return TransitionResult(requisition=requisition, warnings=warnings)


def require_creator(actor: User) -> None:
    if actor.role not in rules.CREATOR_ROLES:
        raise TransitionNotAllowed(f"role '{actor.role.value}' cannot create requisitions")
    if not rules.is_origin_department(actor.department):
        raise InvalidRequest(f"requisitions cannot originate from department '{actor.department.value}'")


def _require_signature(signature: str | None) -> str:
    if not signature or not signature.strip():
        raise InvalidRequest("a signature is required for this action")
    return signature


def _require_comment(comment: str | None, action: str) -> str:
    if not comment or not comment.strip():
        raise InvalidRequest(f"a comment is required to {action} a requisition")
    return comment.strip()


def _check_gate(actor: User, requisition: Requisition, action: str) -> None:
    reason = rules.gate_denial(actor, requisition, action)
    if reason:
        raise TransitionNotAllowed(reason)


def signature_entry(actor: User, signature: SignatureIn) -> dict[str, Any]:
    return {
        "name": signature.name or actor.name,
        "signature": signature.signature,
        "timestamp": (signature.timestamp or utcnow()).isoformat(),
    }


def build_signatures(actor: User, signatures: dict[SignatureSlot, SignatureIn] | None) -> dict[str, Any]:
    return {slot.value: signature_entry(actor, sig) for slot, sig in (signatures or {}).items()}


def standard_total(items: Iterable[LineItemIn | RequisitionItem]) -> Decimal:
    return rules.sum_amounts(rules.line_total(i.quantity, i.estimated_unit_cost) for i in items)


def priced_total(items: Iterable[LineItemIn | RequisitionItem]) -> Decimal:
    return rules.sum_amounts(rules.line_total(i.quantity, i.unit_price) for i in items)


def histology_total(items: Iterable[HistologyItemIn | HistologyItem]) -> Decimal:
    return rules.sum_amounts(i.outsource_bills + i.internal_charge for i in items)


def build_line_items(requisition_id: uuid.UUID, items: list[LineItemIn]) -> list[RequisitionItem]:
    return [
        RequisitionItem(
            requisition_id=requisition_id,
            position=idx,
            name=item.name,
            quantity=item.quantity,
            description=item.description or "",
            supplier=(item.supplier or "").strip() or None,
            estimated_unit_cost=item.estimated_unit_cost,
            unit_price=item.unit_price,
            stock_level=item.stock_level,
        )
        for idx, item in enumerate(items)
    ]


def build_histology_items(requisition_id: uuid.UUID, items: list[HistologyItemIn]) -> list[HistologyItem]:
    return [
        HistologyItem(requisition_id=requisition_id, position=idx, **item.model_dump())
        for idx, item in enumerate(items)
    ]


async def load_items(db: AsyncSession, requisition_id: uuid.UUID) -> list[RequisitionItem]:
    res = await db.execute(
        select(RequisitionItem)
        .where(RequisitionItem.requisition_id == requisition_id)
        .order_by(RequisitionItem.position.asc())
    )
    return list(res.scalars().all())


async def load_histology_items(db: AsyncSession, requisition_id: uuid.UUID) -> list[HistologyItem]:
    res = await db.execute(
        select(HistologyItem)
        .where(HistologyItem.requisition_id == requisition_id)
        .order_by(HistologyItem.position.asc())
    )
    return list(res.scalars().all())


def new_requisition(
    actor: User,
    req_type: RequisitionType,
    *,
    total_cost: Decimal,
    signatures: dict[str, Any] | None = None,
) -> Requisition:
    now = utcnow()
    return Requisition(
        id=uuid.uuid4(),
        type=req_type,
        department=actor.department,
        requester_id=actor.id,
        status=rules.initial_status(req_type, actor.department),
        total_cost=total_cost,
        signatures=signatures or None,
        created_at=now,
        updated_at=now,
    )


async def create_standard_requisition(
    db: AsyncSession,
    *,
    requester: User,
    items: list[LineItemIn],
) -> TransitionResult:
    require_creator(requester)
    if not items:
        raise InvalidRequest("a requisition needs at least one item")

    requisition = new_requisition(requester, RequisitionType.STANDARD, total_cost=standard_total(items))
    db.add(requisition)
    await db.flush()
    db.add_all(build_line_items(requisition.id, items))
    return await _record(
        db,
        requisition,
        actor=requester,
        action=LogAction.SUBMITTED,
        event=FanOutEvent.SUBMITTED,
    )


async def create_histology_requisition(
    db: AsyncSession,
    *,
    requester: User,
    items: list[HistologyItemIn],
    signatures: dict[SignatureSlot, SignatureIn] | None = None,
) -> TransitionResult:
    require_creator(requester)
    if not items:
        raise InvalidRequest("a histology payment request needs at least one entry")
    if SignatureSlot.PREPARED_BY not in (signatures or {}):
        raise InvalidRequest("histology payment requests must be signed by the preparer (preparedBy)")

    requisition = new_requisition(
        requester,
        RequisitionType.HISTOLOGY_PAYMENT,
        total_cost=histology_total(items),
        signatures=build_signatures(requester, signatures),
    )
    db.add(requisition)
    await db.flush()
    db.add_all(build_histology_items(requisition.id, items))
    return await _record(
        db,
        requisition,
        actor=requester,
        action=LogAction.SUBMITTED,
        event=FanOutEvent.SUBMITTED,
    )


async def approve_requisition(
    db: AsyncSession,
    *,
    requisition_id: uuid.UUID,
    actor: User,
    signature: str | None,
    comment: str | None = None,
) -> TransitionResult:
    requisition = await load_requisition(db, requisition_id)
    _check_gate(actor, requisition, rules.APPROVE)
    signature = _require_signature(signature)

    next_status = rules.forward_status(requisition.type, requisition.status)
    if next_status is None:
        raise TransitionNotAllowed(f"cannot approve a requisition in status '{requisition.status.value}'")
    requisition.status = next_status
    return await _record(
        db,
        requisition,
        actor=actor,
        action=LogAction.APPROVED,
        event=FanOutEvent.ADVANCED,
        comment=(comment or "").strip() or None,
        signature=signature,
    )


async def query_requisition(
    db: AsyncSession,
    *,
    requisition_id: uuid.UUID,
    actor: User,
    signature: str | None,
    comment: str | None,
    queried_to: Department | None = None,
) -> TransitionResult:
    requisition = await load_requisition(db, requisition_id)
    _check_gate(actor, requisition, rules.QUERY)
    comment = _require_comment(comment, "query")
    signature = _require_signature(signature)

    target = queried_to or requisition.department
    if not rules.is_origin_department(target):
        raise InvalidRequest(f"a requisition cannot be queried to department '{target.value}'")

    requisition.previous_status_on_query = requisition.status
    requisition.queried_to = target
    requisition.status = S.QUERIED
    return await _record(
        db,
        requisition,
        actor=actor,
        action=LogAction.QUERIED,
        event=FanOutEvent.ADVANCED,
        comment=comment,
        signature=signature,
    )


async def reject_requisition(
    db: AsyncSession,
    *,
    requisition_id: uuid.UUID,
    actor: User,
    signature: str | None,
    comment: str | None,
) -> TransitionResult:
    requisition = await load_requisition(db, requisition_id)
    _check_gate(actor, requisition, rules.REJECT)
    comment = _require_comment(comment, "reject")
    signature = _require_signature(signature)

    requisition.status = S.REJECTED
    requisition.queried_to = None
    requisition.previous_status_on_query = None
    return await _record(
        db,
        requisition,
        actor=actor,
        action=LogAction.REJECTED,
        event=FanOutEvent.ADVANCED,
        comment=comment,
        signature=signature,
    )


async def price_purchase_order(
    db: AsyncSession,
    *,
    requisition_id: uuid.UUID,
    actor: User,
    prices: dict[uuid.UUID, Decimal],
    signature: str | None,
    comment: str | None = None,
) -> TransitionResult:
    requisition = await load_requisition(db, requisition_id)
    _check_gate(actor, requisition, rules.PRICE)
    signature = _require_signature(signature)

    items = await load_items(db, requisition.id)
    item_ids = {item.id for item in items}
    missing = item_ids - set(prices)
    unknown = set(prices) - item_ids
    if missing:
        raise InvalidRequest(f"a unit price is required for every item ({len(missing)} missing)")
    if unknown:
        raise InvalidRequest("prices were supplied for items that are not on this requisition")
    for item in items:
        price = prices[item.id]
        if price is None or price < 0:
            raise InvalidRequest(f"unit price for '{item.name}' must be zero or more")
    for item in items:
        item.unit_price = prices[item.id]

    requisition.total_cost = priced_total(items)
    requisition.status = rules.forward_status(requisition.type, requisition.status)
    return await _record(
        db,
        requisition,
        actor=actor,
        action=LogAction.PRICED,
        event=FanOutEvent.PRICED,
        comment=(comment or "").strip() or None,
        signature=signature,
    )


async def resubmit_requisition(
    db: AsyncSession,
    *,
    requisition_id: uuid.UUID,
    actor: User,
    items: list[LineItemIn] | None = None,
    histology_items: list[HistologyItemIn] | None = None,
) -> TransitionResult:
    requisition = await load_requisition(db, requisition_id)
    if requisition.status not in rules.RESUBMITTABLE_STATUSES:
        raise TransitionNotAllowed(
            f"only queried or rejected requisitions can be resubmitted (status is '{requisition.status.value}')"
        )
    if requisition.requester_id != actor.id:
        raise TransitionNotAllowed("only the requester can resubmit a requisition")

    is_histology = requisition.type == RequisitionType.HISTOLOGY_PAYMENT
    if (is_histology and items is not None) or (not is_histology and histology_items is not None):
        raise InvalidRequest(f"wrong item collection for a {requisition.type.value} requisition")

    if is_histology:
        if histology_items is not None:
            if not histology_items:
                raise InvalidRequest("a histology payment request needs at least one entry")
            await db.execute(
                delete(HistologyItem)
                .where(HistologyItem.requisition_id == requisition.id)
                .execution_options(synchronize_session=False)
            )
            db.add_all(build_histology_items(requisition.id, histology_items))
            await db.flush()
        requisition.total_cost = histology_total(await load_histology_items(db, requisition.id))
    else:
        if items is not None:
            if not items:
                raise InvalidRequest("a requisition needs at least one item")
            await db.execute(
                delete(RequisitionItem)
                .where(RequisitionItem.requisition_id == requisition.id)
                .execution_options(synchronize_session=False)
            )
            db.add_all(build_line_items(requisition.id, items))
            await db.flush()
        stored = await load_items(db, requisition.id)
        if requisition.type == RequisitionType.STANDARD:
            requisition.total_cost = standard_total(stored)
        else:
            requisition.total_cost = priced_total(stored)

    requisition.status = rules.resubmission_status(requisition, requisition.previous_status_on_query)
    requisition.queried_to = None
    requisition.previous_status_on_query = None
    return await _record(
        db,
        requisition,
        actor=actor,
        action=LogAction.RESUBMITTED,
        event=FanOutEvent.RESUBMITTED,
    )


async def sign_requisition(
    db: AsyncSession,
    *,
    requisition_id: uuid.UUID,
    actor: User,
    slot: SignatureSlot,
    signature: str,
) -> TransitionResult:
    requisition = await load_requisition(db, requisition_id)
    current = dict(requisition.signatures or {})
    if current.get(slot.value):
        raise InvalidRequest(f"signature slot '{slot.value}' is already signed")
    reason = rules.signature_denial(actor, requisition, slot)
    if reason:
        raise TransitionNotAllowed(reason)
    signature = _require_signature(signature)

    current[slot.value] = signature_entry(actor, SignatureIn(signature=signature))
    requisition.signatures = current
    requisition.updated_at = utcnow()
    await flush_transition(db)

    warning = await append_log(
        db,
        requisition_id=requisition.id,
        user_id=actor.id,
        action=LogAction.REVIEWED,
        comment=f"signed {slot.value}",
        signature=signature,
    )
    await commit_transition(db)
    logger.info(
        "Requisition signed",
        extra={"requisition_id": str(requisition.id), "slot": slot.value, "actor_id": str(actor.id)},
    )
    return TransitionResult(requisition=requisition, warnings=[warning] if warning else [])


async def add_message(
    db: AsyncSession,
    *,
    requisition_id: uuid.UUID,
    sender: User,
    text: str,
) -> Message:
    text = (text or "").strip()
    if not text:
        raise InvalidRequest("message text is required")
    requisition = await load_requisition(db, requisition_id, lock=False)

    message = Message(requisition_id=requisition.id, sender_id=sender.id, text=text, created_at=utcnow())
    db.add(message)
    await db.commit()

    if sender.id != requisition.requester_id:
        await dispatch_notifications(db, requisition=requisition, requests=[MESSAGE_RULE], sender=sender.name)
    return message


async def list_messages(db: AsyncSession, requisition_id: uuid.UUID) -> list[Message]:
    await load_requisition(db, requisition_id, lock=False)
    res = await db.execute(
        select(Message)
        .where(Message.requisition_id == requisition_id)
        .order_by(Message.created_at.asc(), Message.id.asc())
    )
    return list(res.scalars().all())
