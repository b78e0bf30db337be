import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from medreq.core.errors import CollaboratorFailure, InvalidRequest, TransitionNotAllowed
from medreq.models.enums import RequisitionStatus
from medreq.schemas.requisition import LineItemIn
from medreq.services.payment_ledger import (
    add_payment,
    format_amount,
    list_payments,
    mark_as_paid,
    outstanding_balance,
    total_paid,
)
from medreq.services.proof_storage import (
    LocalProofStorage,
    ProofStorageError,
    ProofUpload,
    proof_key,
    validate_proof,
)
from medreq.services.requisition_workflow import approve_requisition, create_standard_requisition

PDF = ProofUpload(filename="receipt.pdf", content_type="application/pdf", data=b"%PDF-1.4 proof")


async def _approved(db_session, actors, cost="100"):
    created = await create_standard_requisition(
        db_session,
        requester=actors.pharmacy,
        items=[LineItemIn(name="Cotton wool", quantity=1, estimated_unit_cost=Decimal(cost))],
    )
    req = created.requisition
    await approve_requisition(db_session, requisition_id=req.id, actor=actors.auditor, signature="s")
    return req


def test_proof_key_layout():
    actor_id = uuid.UUID("11111111-1111-1111-1111-111111111111")
    req_id = uuid.UUID("22222222-2222-2222-2222-222222222222")
    moment = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    key = proof_key(actor_id, req_id, "bank slip (1).pdf", now=moment)
    assert key == f"{actor_id}/{req_id}/{int(moment.timestamp() * 1000)}_bank_slip_1_.pdf"


def test_outstanding_balance_never_goes_negative():
    assert outstanding_balance(Decimal("100"), Decimal("40")) == Decimal("60.00")
    assert outstanding_balance(Decimal("100"), Decimal("140")) == Decimal("0.00")
    assert format_amount(Decimal("1234.5")).endswith("1,234.50")


@pytest.mark.parametrize(
    "upload",
    [
        ProofUpload(filename="proof.exe", content_type="application/octet-stream", data=b"MZ"),
        ProofUpload(filename="proof.pdf", content_type="text/plain", data=b"x"),
        ProofUpload(filename="proof.png", content_type="image/png", data=b""),
    ],
)
def test_invalid_proofs_are_refused(upload):
    with pytest.raises(InvalidRequest):
        validate_proof(upload)


def test_storage_refuses_keys_outside_its_root(tmp_path):
    storage = LocalProofStorage(tmp_path / "proofs")
    with pytest.raises(ProofStorageError):
        storage.save("../escape.pdf", b"data")


@pytest.mark.asyncio
async def test_partial_payment_with_proof_is_stored(db_session, actors, proof_storage):
    req = await _approved(db_session, actors)

    result = await add_payment(
        db_session,
        requisition_id=req.id,
        actor=actors.accounts,
        amount=Decimal("40"),
        payment_date=date(2026, 2, 1),
        proof=PDF,
        storage=proof_storage,
    )
    assert result.requisition.status == RequisitionStatus.PAYMENT_PROCESSING
    assert result.payment.proof_path.startswith(f"{actors.accounts.id}/{req.id}/")
    assert proof_storage.path(result.payment.proof_path).read_bytes() == PDF.data

    payments = await list_payments(db_session, req.id)
    assert [p.amount for p in payments] == [Decimal("40")]


@pytest.mark.asyncio
async def test_only_accounts_can_record_payments(db_session, actors, proof_storage):
    req = await _approved(db_session, actors)
    with pytest.raises(TransitionNotAllowed):
        await add_payment(
            db_session,
            requisition_id=req.id,
            actor=actors.chairman,
            amount=Decimal("10"),
            payment_date=date(2026, 2, 1),
            storage=proof_storage,
        )


@pytest.mark.asyncio
async def test_pending_requisition_cannot_be_paid(db_session, actors, proof_storage):
    created = await create_standard_requisition(
        db_session,
        requester=actors.lab,
        items=[LineItemIn(name="Reagent", quantity=1, estimated_unit_cost=Decimal("5"))],
    )
    with pytest.raises(InvalidRequest):
        await add_payment(
            db_session,
            requisition_id=created.requisition.id,
            actor=actors.accounts,
            amount=Decimal("5"),
            payment_date=date(2026, 2, 1),
            storage=proof_storage,
        )


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
async def test_non_positive_amounts_are_refused(db_session, actors, proof_storage, amount):
    req = await _approved(db_session, actors)
    with pytest.raises(InvalidRequest, match="greater than zero"):
        await add_payment(
            db_session,
            requisition_id=req.id,
            actor=actors.accounts,
            amount=amount,
            payment_date=date(2026, 2, 1),
            storage=proof_storage,
        )


@pytest.mark.asyncio
async def test_sub_cent_amounts_are_refused_rather_than_rounded(db_session, actors, proof_storage):
    req = await _approved(db_session, actors, cost="200")
    with pytest.raises(InvalidRequest, match="more than two decimal places"):
        await add_payment(
            db_session,
            requisition_id=req.id,
            actor=actors.accounts,
            amount=Decimal("100.999"),
            payment_date=date(2026, 2, 1),
            storage=proof_storage,
        )
    assert await total_paid(db_session, req.id) == Decimal("0")

    paid = await add_payment(
        db_session,
        requisition_id=req.id,
        actor=actors.accounts,
        amount=Decimal("100.990"),
        payment_date=date(2026, 2, 1),
        storage=proof_storage,
    )
    assert paid.payment.amount == Decimal("100.99")


@pytest.mark.asyncio
async def test_failed_upload_leaves_no_payment(db_session, actors):
    class BrokenStorage(LocalProofStorage):
        def save(self, key, data):
            raise ProofStorageError("disk full")

    req = await _approved(db_session, actors)
    with pytest.raises(CollaboratorFailure):
        await add_payment(
            db_session,
            requisition_id=req.id,
            actor=actors.accounts,
            amount=Decimal("10"),
            payment_date=date(2026, 2, 1),
            proof=PDF,
            storage=BrokenStorage("/nonexistent"),
        )
    assert await list_payments(db_session, req.id) == []
    assert req.status == RequisitionStatus.APPROVED


@pytest.mark.asyncio
async def test_paid_requisition_refuses_further_payments(db_session, actors, proof_storage):
    req = await _approved(db_session, actors, cost="20")
    await add_payment(
        db_session,
        requisition_id=req.id,
        actor=actors.accounts,
        amount=Decimal("20"),
        payment_date=date(2026, 2, 1),
        storage=proof_storage,
    )
    await mark_as_paid(db_session, requisition_id=req.id, actor=actors.accounts)

    with pytest.raises(InvalidRequest, match="already marked as paid"):
        await add_payment(
            db_session,
            requisition_id=req.id,
            actor=actors.accounts,
            amount=Decimal("1"),
            payment_date=date(2026, 2, 2),
            storage=proof_storage,
        )
