from decimal import Decimal

import pytest

from medreq.core.errors import InvalidRequest, TransitionNotAllowed
from medreq.models.enums import Department, RequisitionStatus
from medreq.schemas.requisition import LineItemIn
from medreq.services.purchase_orders import create_purchase_orders
from medreq.services.requisition_workflow import (
    approve_requisition,
    create_standard_requisition,
    load_items,
    query_requisition,
    reject_requisition,
    resubmit_requisition,
)

S = RequisitionStatus


async def _pharmacy_po(db_session, actors):
    result = await create_purchase_orders(
        db_session,
        requester=actors.pharmacy,
        items=[LineItemIn(name="Paracetamol", quantity=10, supplier="MedCo", unit_price=Decimal("2.50"))],
    )
    return result.created[0]


@pytest.mark.asyncio
async def test_query_then_resubmit_returns_to_the_queried_stage(db_session, actors):
    req = await _pharmacy_po(db_session, actors)
    assert req.status == S.PENDING_AUDITOR_REVIEW
    assert req.total_cost == Decimal("25")

    await approve_requisition(db_session, requisition_id=req.id, actor=actors.auditor, signature="s")
    assert req.status == S.PENDING_FINAL_APPROVAL

    await query_requisition(
        db_session,
        requisition_id=req.id,
        actor=actors.chairman,
        signature="s",
        comment="Confirm the quantity",
    )
    assert req.status == S.QUERIED
    assert req.queried_to == Department.PHARMACY
    assert req.previous_status_on_query == S.PENDING_FINAL_APPROVAL

    await resubmit_requisition(
        db_session,
        requisition_id=req.id,
        actor=actors.pharmacy,
        items=[LineItemIn(name="Paracetamol", quantity=4, supplier="MedCo", unit_price=Decimal("2.50"))],
    )
    assert req.status == S.PENDING_FINAL_APPROVAL
    assert req.queried_to is None
    assert req.previous_status_on_query is None
    assert req.total_cost == Decimal("10")
    items = await load_items(db_session, req.id)
    assert [(i.name, i.quantity) for i in items] == [("Paracetamol", 4)]


@pytest.mark.asyncio
async def test_rejected_requisition_restarts_at_its_first_stage(db_session, actors):
    created = await create_standard_requisition(
        db_session,
        requester=actors.lab,
        items=[LineItemIn(name="Reagent", quantity=2, estimated_unit_cost=Decimal("12.5"))],
    )
    req = created.requisition
    assert req.total_cost == Decimal("25")

    await reject_requisition(
        db_session, requisition_id=req.id, actor=actors.auditor, signature="s", comment="Not budgeted"
    )
    assert req.status == S.REJECTED

    # No new items: stored items stay and the total is recomputed from them.
    await resubmit_requisition(db_session, requisition_id=req.id, actor=actors.lab)
    assert req.status == S.PENDING_APPROVAL
    assert req.total_cost == Decimal("25")


@pytest.mark.asyncio
async def test_only_the_requester_can_resubmit(db_session, actors):
    req = await _pharmacy_po(db_session, actors)
    await reject_requisition(
        db_session, requisition_id=req.id, actor=actors.auditor, signature="s", comment="Wrong supplier"
    )
    with pytest.raises(TransitionNotAllowed):
        await resubmit_requisition(db_session, requisition_id=req.id, actor=actors.lab)
    assert req.status == S.REJECTED


@pytest.mark.asyncio
async def test_pending_requisition_cannot_be_resubmitted(db_session, actors):
    req = await _pharmacy_po(db_session, actors)
    with pytest.raises(TransitionNotAllowed):
        await resubmit_requisition(db_session, requisition_id=req.id, actor=actors.pharmacy)


@pytest.mark.asyncio
@pytest.mark.parametrize("comment", [None, "", "   "])
async def test_query_and_reject_need_a_comment(db_session, actors, comment):
    req = await _pharmacy_po(db_session, actors)
    with pytest.raises(InvalidRequest):
        await query_requisition(
            db_session, requisition_id=req.id, actor=actors.auditor, signature="s", comment=comment
        )
    with pytest.raises(InvalidRequest):
        await reject_requisition(
            db_session, requisition_id=req.id, actor=actors.auditor, signature="s", comment=comment
        )
    assert req.status == S.PENDING_AUDITOR_REVIEW


@pytest.mark.asyncio
async def test_query_can_target_another_origin_department_but_not_finance(db_session, actors):
    req = await _pharmacy_po(db_session, actors)
    with pytest.raises(InvalidRequest):
        await query_requisition(
            db_session,
            requisition_id=req.id,
            actor=actors.auditor,
            signature="s",
            comment="Check with finance",
            queried_to=Department.FINANCE,
        )
    assert req.status == S.PENDING_AUDITOR_REVIEW

    await query_requisition(
        db_session,
        requisition_id=req.id,
        actor=actors.auditor,
        signature="s",
        comment="Lab should confirm",
        queried_to=Department.LAB,
    )
    assert req.queried_to == Department.LAB


@pytest.mark.asyncio
async def test_resubmission_rejects_the_wrong_item_collection(db_session, actors):
    req = await _pharmacy_po(db_session, actors)
    await reject_requisition(
        db_session, requisition_id=req.id, actor=actors.auditor, signature="s", comment="Redo"
    )
    with pytest.raises(InvalidRequest):
        await resubmit_requisition(
            db_session, requisition_id=req.id, actor=actors.pharmacy, histology_items=[]
        )
