from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from medreq.core.errors import InvalidRequest
from medreq.models.approval_log import ApprovalLog
from medreq.models.enums import RequisitionStatus, RequisitionType, SignatureSlot
from medreq.models.requisition import Requisition
from medreq.models.requisition_item import RequisitionItem
from medreq.schemas.requisition import LineItemIn, SignatureIn
from medreq.services import purchase_orders
from medreq.services.purchase_orders import (
    MISC_SUPPLIER,
    create_purchase_orders,
    group_by_supplier,
)


def _item(name, supplier, price=None):
    return LineItemIn(name=name, quantity=2, supplier=supplier, unit_price=price)


async def _count(db_session, model):
    res = await db_session.execute(select(func.count()).select_from(model))
    return res.scalar_one()


def test_grouping_is_trimmed_case_insensitive_and_keeps_first_seen_order():
    groups = group_by_supplier(
        [
            _item("a", " Beta Ltd "),
            _item("b", "ACME"),
            _item("c", "beta ltd"),
            _item("d", None),
            _item("e", "   "),
        ]
    )
    assert [g.label for g in groups] == ["Beta Ltd", "ACME", MISC_SUPPLIER]
    assert [[i.name for i in g.items] for g in groups] == [["a", "c"], ["b"], ["d", "e"]]


@pytest.mark.asyncio
async def test_three_suppliers_become_three_purchase_orders(db_session, actors):
    result = await create_purchase_orders(
        db_session,
        requester=actors.pharmacy,
        items=[
            _item("Syringes", "Acme", Decimal("1.50")),
            _item("Gauze", "Beta", Decimal("4")),
            _item("Masks", "acme", Decimal("0.50")),
            _item("Tape", None, Decimal("3")),
        ],
    )
    assert result.failed == []
    assert len(result.created) == 3
    assert all(r.type == RequisitionType.PURCHASE_ORDER for r in result.created)
    assert all(r.status == RequisitionStatus.PENDING_AUDITOR_REVIEW for r in result.created)
    assert [r.total_cost for r in result.created] == [Decimal("4.00"), Decimal("8.00"), Decimal("6.00")]

    assert await _count(db_session, Requisition) == 3
    assert await _count(db_session, RequisitionItem) == 4
    assert await _count(db_session, ApprovalLog) == 3


@pytest.mark.asyncio
async def test_failed_group_is_rolled_back_and_others_are_kept(db_session, actors, monkeypatch):
    original = purchase_orders.insert_group_items

    async def flaky_insert(db, requisition, items):
        if items[0].supplier == "Beta":
            raise SQLAlchemyError("items table unavailable")
        await original(db, requisition, items)

    monkeypatch.setattr(purchase_orders, "insert_group_items", flaky_insert)

    result = await create_purchase_orders(
        db_session,
        requester=actors.pharmacy,
        items=[
            _item("Syringes", "Acme", Decimal("1")),
            _item("Gauze", "Beta", Decimal("1")),
            _item("Tape", "Gamma", Decimal("1")),
        ],
    )

    assert len(result.created) == 2
    assert [f.supplier for f in result.failed] == ["Beta"]
    assert result.failed[0].item_count == 1

    # No orphan header for the failed supplier.
    assert await _count(db_session, Requisition) == 2
    assert await _count(db_session, RequisitionItem) == 2


@pytest.mark.asyncio
async def test_failed_commit_leaves_no_header_behind(db_session, actors, monkeypatch):
    original = purchase_orders.insert_group_items
    real_commit = db_session.commit
    state = {"fail_next_commit": False}

    async def insert_and_arm(db, requisition, items):
        await original(db, requisition, items)
        if items[0].supplier == "Beta":
            state["fail_next_commit"] = True

    async def commit():
        if state["fail_next_commit"]:
            state["fail_next_commit"] = False
            raise OperationalError("COMMIT", {}, Exception("database is locked"))
        await real_commit()

    monkeypatch.setattr(purchase_orders, "insert_group_items", insert_and_arm)
    monkeypatch.setattr(db_session, "commit", commit)

    result = await create_purchase_orders(
        db_session,
        requester=actors.pharmacy,
        items=[
            _item("Syringes", "Acme", Decimal("1")),
            _item("Gauze", "Beta", Decimal("1")),
            _item("Tape", "Gamma", Decimal("2")),
        ],
    )

    assert [f.supplier for f in result.failed] == ["Beta"]
    assert result.failed[0].reason == "OperationalError"
    assert [r.total_cost for r in result.created] == [Decimal("2.00"), Decimal("4.00")]

    assert await _count(db_session, Requisition) == 2
    assert await _count(db_session, RequisitionItem) == 2
    assert await _count(db_session, ApprovalLog) == 2


@pytest.mark.asyncio
async def test_readers_never_see_a_header_without_its_items(db_session, async_session, actors, monkeypatch):
    original = purchase_orders.insert_group_items
    seen = {}

    async def insert_while_watched(db, requisition, items):
        await original(db, requisition, items)
        reader = async_session()
        try:
            seen["headers"] = await _count(reader, Requisition)
            seen["items"] = await _count(reader, RequisitionItem)
        finally:
            await reader.close()

    monkeypatch.setattr(purchase_orders, "insert_group_items", insert_while_watched)

    result = await create_purchase_orders(
        db_session,
        requester=actors.pharmacy,
        items=[_item("Syringes", "Acme", Decimal("1")), _item("Masks", "Acme", Decimal("1"))],
    )

    assert len(result.created) == 1
    assert seen == {"headers": 0, "items": 0}
    assert await _count(db_session, Requisition) == 1
    assert await _count(db_session, RequisitionItem) == 2


@pytest.mark.asyncio
async def test_lab_purchase_orders_need_both_signatures(db_session, actors):
    with pytest.raises(InvalidRequest, match="levelConfirmedBy"):
        await create_purchase_orders(
            db_session,
            requester=actors.lab,
            items=[_item("Gloves", "Acme")],
            signatures={SignatureSlot.PREPARED_BY: SignatureIn(signature="sig")},
        )
    assert await _count(db_session, Requisition) == 0


@pytest.mark.asyncio
async def test_lab_signatures_are_stored_on_every_split_order(db_session, actors, lab_signatures):
    result = await create_purchase_orders(
        db_session,
        requester=actors.lab,
        items=[_item("Gloves", "Acme"), _item("Pipettes", "Beta")],
        signatures=lab_signatures,
    )
    assert len(result.created) == 2
    for req in result.created:
        assert set(req.signatures) == {"preparedBy", "levelConfirmedBy"}
        assert req.signatures["preparedBy"]["name"] == actors.lab.name
        assert req.total_cost == Decimal("0")
