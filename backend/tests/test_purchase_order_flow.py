from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from medreq.core.errors import InvalidRequest, TransitionNotAllowed
from medreq.models.approval_log import ApprovalLog
from medreq.models.enums import LogAction, RequisitionStatus
from medreq.models.notification import Notification
from medreq.schemas.requisition import LineItemIn
from medreq.services.payment_ledger import add_payment, mark_as_paid, total_paid
from medreq.services.purchase_orders import create_purchase_orders
from medreq.services.requisition_workflow import (
    approve_requisition,
    load_items,
    price_purchase_order,
)

S = RequisitionStatus


async def _lab_po(db_session, actors, lab_signatures):
    result = await create_purchase_orders(
        db_session,
        requester=actors.lab,
        items=[
            LineItemIn(name="Gloves", quantity=3, supplier="Acme"),
            LineItemIn(name="Swabs", quantity=3, supplier="  acme "),
        ],
        signatures=lab_signatures,
    )
    assert result.failed == []
    assert len(result.created) == 1
    return result.created[0]


async def _log_actions(db_session, requisition_id):
    res = await db_session.execute(
        select(ApprovalLog.action)
        .where(ApprovalLog.requisition_id == requisition_id)
        .order_by(ApprovalLog.created_at.asc(), ApprovalLog.id.asc())
    )
    return list(res.scalars().all())


@pytest.mark.asyncio
async def test_lab_purchase_order_runs_from_submission_to_paid(db_session, actors, lab_signatures, proof_storage):
    req = await _lab_po(db_session, actors, lab_signatures)
    assert req.status == S.PENDING_CHAIRMAN_REVIEW
    assert req.total_cost == Decimal("0")

    await approve_requisition(db_session, requisition_id=req.id, actor=actors.chairman, signature="sig-ch")
    assert req.status == S.PENDING_STORE_PRICING

    items = await load_items(db_session, req.id)
    prices = {items[0].id: Decimal("100"), items[1].id: Decimal("50")}
    await price_purchase_order(
        db_session, requisition_id=req.id, actor=actors.pharmacy, prices=prices, signature="sig-ph"
    )
    assert req.status == S.PENDING_AUDITOR_REVIEW
    assert req.total_cost == Decimal("450")

    await approve_requisition(db_session, requisition_id=req.id, actor=actors.auditor, signature="sig-au")
    assert req.status == S.PENDING_FINAL_APPROVAL
    await approve_requisition(db_session, requisition_id=req.id, actor=actors.chairman, signature="sig-ch")
    assert req.status == S.PO_COMPLETED

    paid = await add_payment(
        db_session,
        requisition_id=req.id,
        actor=actors.accounts,
        amount=Decimal("450"),
        payment_date=date(2026, 3, 1),
        storage=proof_storage,
    )
    assert paid.requisition.status == S.PAYMENT_PROCESSING
    assert await total_paid(db_session, req.id) == Decimal("450")

    done = await mark_as_paid(db_session, requisition_id=req.id, actor=actors.accounts)
    assert done.requisition.status == S.PAID
    assert done.warnings == []

    assert await _log_actions(db_session, req.id) == [
        LogAction.SUBMITTED,
        LogAction.APPROVED,
        LogAction.PRICED,
        LogAction.APPROVED,
        LogAction.APPROVED,
        LogAction.PAYMENT_ADDED,
        LogAction.MARKED_AS_PAID,
    ]


@pytest.mark.asyncio
async def test_auditor_cannot_act_on_chairman_review(db_session, actors, lab_signatures):
    req = await _lab_po(db_session, actors, lab_signatures)

    with pytest.raises(TransitionNotAllowed):
        await approve_requisition(db_session, requisition_id=req.id, actor=actors.auditor, signature="sig")

    assert req.status == S.PENDING_CHAIRMAN_REVIEW
    assert await _log_actions(db_session, req.id) == [LogAction.SUBMITTED]


@pytest.mark.asyncio
async def test_approval_requires_signature(db_session, actors, lab_signatures):
    req = await _lab_po(db_session, actors, lab_signatures)
    with pytest.raises(InvalidRequest):
        await approve_requisition(db_session, requisition_id=req.id, actor=actors.chairman, signature="")
    assert req.status == S.PENDING_CHAIRMAN_REVIEW


@pytest.mark.asyncio
async def test_pricing_requires_every_item(db_session, actors, lab_signatures):
    req = await _lab_po(db_session, actors, lab_signatures)
    await approve_requisition(db_session, requisition_id=req.id, actor=actors.chairman, signature="sig")
    items = await load_items(db_session, req.id)

    with pytest.raises(InvalidRequest):
        await price_purchase_order(
            db_session,
            requisition_id=req.id,
            actor=actors.pharmacy,
            prices={items[0].id: Decimal("10")},
            signature="sig",
        )
    assert req.status == S.PENDING_STORE_PRICING


@pytest.mark.asyncio
async def test_bad_price_leaves_every_item_unpriced(db_session, actors, lab_signatures):
    req = await _lab_po(db_session, actors, lab_signatures)
    await approve_requisition(db_session, requisition_id=req.id, actor=actors.chairman, signature="sig")
    items = await load_items(db_session, req.id)

    with pytest.raises(InvalidRequest, match="must be zero or more"):
        await price_purchase_order(
            db_session,
            requisition_id=req.id,
            actor=actors.pharmacy,
            prices={items[0].id: Decimal("10"), items[1].id: Decimal("-1")},
            signature="sig",
        )
    assert [item.unit_price for item in items] == [None, None]
    assert req.total_cost == Decimal("0")
    assert req.status == S.PENDING_STORE_PRICING


@pytest.mark.asyncio
async def test_overpayment_is_rejected_and_balance_kept(db_session, actors, lab_signatures, proof_storage):
    req = await _lab_po(db_session, actors, lab_signatures)
    await approve_requisition(db_session, requisition_id=req.id, actor=actors.chairman, signature="s")
    items = await load_items(db_session, req.id)
    await price_purchase_order(
        db_session,
        requisition_id=req.id,
        actor=actors.pharmacy,
        prices={items[0].id: Decimal("100"), items[1].id: Decimal("50")},
        signature="s",
    )
    await approve_requisition(db_session, requisition_id=req.id, actor=actors.auditor, signature="s")
    await approve_requisition(db_session, requisition_id=req.id, actor=actors.chairman, signature="s")

    with pytest.raises(InvalidRequest, match="exceeds outstanding balance"):
        await add_payment(
            db_session,
            requisition_id=req.id,
            actor=actors.accounts,
            amount=Decimal("500"),
            payment_date=date(2026, 3, 1),
            storage=proof_storage,
        )
    assert await total_paid(db_session, req.id) == Decimal("0")
    assert req.status == S.PO_COMPLETED

    await add_payment(
        db_session,
        requisition_id=req.id,
        actor=actors.accounts,
        amount=Decimal("400"),
        payment_date=date(2026, 3, 1),
        storage=proof_storage,
    )
    with pytest.raises(InvalidRequest, match="exceeds outstanding balance"):
        await add_payment(
            db_session,
            requisition_id=req.id,
            actor=actors.accounts,
            amount=Decimal("100"),
            payment_date=date(2026, 3, 2),
            storage=proof_storage,
        )
    assert await total_paid(db_session, req.id) == Decimal("400")

    with pytest.raises(InvalidRequest, match="must be settled"):
        await mark_as_paid(db_session, requisition_id=req.id, actor=actors.accounts)


@pytest.mark.asyncio
async def test_each_stage_notifies_its_owner(db_session, actors, lab_signatures):
    req = await _lab_po(db_session, actors, lab_signatures)
    await approve_requisition(db_session, requisition_id=req.id, actor=actors.chairman, signature="s")

    res = await db_session.execute(
        select(Notification.recipient_id, Notification.message).where(Notification.requisition_id == req.id)
    )
    rows = res.all()
    by_recipient = {row.recipient_id: row.message for row in rows}
    assert by_recipient[actors.chairman.id].startswith(f"New PO {req.id} from Lab (Supplier: Acme)")
    assert "requires pricing" in by_recipient[actors.pharmacy.id]
    assert actors.auditor.id not in by_recipient
