"""Per-supplier split of a purchase order.

Each supplier group becomes its own requisition. The header, its items and
the Submitted log entry go out in a single commit, so readers never see a
header without its items. When any part of a group fails the transaction is
rolled back and the group is reported as failed; groups committed before it
stay in place.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from medreq.core.errors import InvalidRequest
from medreq.models.enums import Department, LogAction, RequisitionType, SignatureSlot
from medreq.models.requisition import Requisition
from medreq.models.user import User
from medreq.schemas.requisition import LineItemIn, SignatureIn
from medreq.services.approval_log import append_log
from medreq.services.notification_rules import FanOutEvent, fan_out
from medreq.services.notifications import dispatch_notifications
from medreq.services.requisition_workflow import (
    build_line_items,
    build_signatures,
    new_requisition,
    priced_total,
    require_creator,
)

logger = logging.getLogger("medreq_api.purchase_orders")

MISC_SUPPLIER = "miscellaneous supplier"
LAB_REQUIRED_SLOTS = (SignatureSlot.PREPARED_BY, SignatureSlot.LEVEL_CONFIRMED_BY)


@dataclass
class SupplierGroup:
    key: str
    label: str
    items: list[LineItemIn] = field(default_factory=list)


@dataclass
class SplitFailure:
    supplier: str
    item_count: int
    reason: str


@dataclass
class SplitResult:
    created: list[Requisition] = field(default_factory=list)
    failed: list[SplitFailure] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def supplier_key(supplier: str | None) -> str:
    key = (supplier or "").strip().lower()
    return key or MISC_SUPPLIER


def group_by_supplier(items: list[LineItemIn]) -> list[SupplierGroup]:
    """Partition items by trimmed, case-insensitive supplier, keeping first-seen order."""
    groups: dict[str, SupplierGroup] = {}
    for item in items:
        key = supplier_key(item.supplier)
        group = groups.get(key)
        if group is None:
            label = (item.supplier or "").strip() or MISC_SUPPLIER
            group = groups[key] = SupplierGroup(key=key, label=label)
        group.items.append(item)
    return list(groups.values())


async def insert_group_items(db: AsyncSession, requisition: Requisition, items: list[LineItemIn]) -> None:
    db.add_all(build_line_items(requisition.id, items))
    await db.flush()


async def _create_group(
    db: AsyncSession,
    requester: User,
    group: SupplierGroup,
    signatures: dict[SignatureSlot, SignatureIn] | None,
) -> tuple[Requisition, str | None]:
    # Lab orders wait for store pricing, so their total starts at zero.
    total = priced_total(group.items) if requester.department == Department.PHARMACY else Decimal("0")
    requisition = new_requisition(
        requester,
        RequisitionType.PURCHASE_ORDER,
        total_cost=total,
        signatures=build_signatures(requester, signatures),
    )
    requisition_id = requisition.id
    requester_id = requester.id

    try:
        db.add(requisition)
        await db.flush()
        async with db.begin_nested():
            await insert_group_items(db, requisition, group.items)
        warning = await append_log(
            db,
            requisition_id=requisition_id,
            user_id=requester_id,
            action=LogAction.SUBMITTED,
        )
        await db.commit()
    except SQLAlchemyError:
        logger.exception(
            "Failed to store purchase order, rolling back",
            extra={"requisition_id": str(requisition_id), "supplier": group.label},
        )
        await db.rollback()
        raise
    return requisition, warning


async def create_purchase_orders(
    db: AsyncSession,
    *,
    requester: User,
    items: list[LineItemIn],
    signatures: dict[SignatureSlot, SignatureIn] | None = None,
) -> SplitResult:
    require_creator(requester)
    if not items:
        raise InvalidRequest("a purchase order needs at least one item")
    if requester.department == Department.LAB:
        missing = [slot.value for slot in LAB_REQUIRED_SLOTS if slot not in (signatures or {})]
        if missing:
            raise InvalidRequest(f"Lab purchase orders must be signed in: {', '.join(missing)}")

    result = SplitResult()
    for group in group_by_supplier(items):
        try:
            requisition, warning = await _create_group(db, requester, group, signatures)
        except SQLAlchemyError as exc:
            result.failed.append(
                SplitFailure(supplier=group.label, item_count=len(group.items), reason=str(exc.__class__.__name__))
            )
            # The rollback expired everything still held by the session.
            for obj in (requester, *result.created):
                await db.refresh(obj)
            continue

        if warning:
            result.warnings.append(f"{group.label}: {warning}")
        result.created.append(requisition)
        logger.info(
            "Purchase order created",
            extra={"requisition_id": str(requisition.id), "supplier": group.label, "items": len(group.items)},
        )
        await dispatch_notifications(
            db,
            requisition=requisition,
            requests=fan_out(requisition.type, requisition.status, FanOutEvent.SUBMITTED),
            supplier=group.label,
        )

    if result.failed:
        logger.warning(
            "Purchase order split partially failed",
            extra={"created_count": len(result.created), "failed": [f.supplier for f in result.failed]},
        )
    return result
