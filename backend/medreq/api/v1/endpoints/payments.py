from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from medreq.api.deps import get_current_user, require_roles
from medreq.api.v1.endpoints.requisitions import parse_uuid, payment_out, requisition_out
from medreq.db.session import get_db
from medreq.models.enums import Role
from medreq.models.payment import Payment
from medreq.models.user import User
from medreq.schemas.payment import PaymentRecordedOut
from medreq.schemas.requisition import PaymentOut, TransitionOut
from medreq.services.payment_ledger import add_payment, list_payments, mark_as_paid
from medreq.services.proof_storage import ProofStorageError, ProofUpload, get_proof_storage
from medreq.services.requisition_workflow import load_requisition

router = APIRouter()


@router.get("/{requisition_id}/payments", response_model=list[PaymentOut])
async def list_for_requisition(
    requisition_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[PaymentOut]:
    req = await load_requisition(db, parse_uuid(requisition_id), lock=False)
    return [payment_out(p) for p in await list_payments(db, req.id)]


@router.post("/{requisition_id}/payments", response_model=PaymentRecordedOut, status_code=status.HTTP_201_CREATED)
async def record_payment(
    requisition_id: str,
    amount: Decimal = Form(...),
    payment_date: date = Form(...),
    file: UploadFile | None = File(None),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles([Role.ACCOUNTS])),
) -> PaymentRecordedOut:
    proof = None
    if file is not None and file.filename:
        proof = ProofUpload(
            filename=file.filename,
            content_type=file.content_type or "",
            data=await file.read(),
        )
    result = await add_payment(
        db,
        requisition_id=parse_uuid(requisition_id),
        actor=user,
        amount=amount,
        payment_date=payment_date,
        proof=proof,
    )
    return PaymentRecordedOut(
        payment=payment_out(result.payment, recorded_by_name=user.name),
        requisition=requisition_out(result.requisition),
        warnings=result.warnings,
    )


@router.post("/{requisition_id}/mark-paid", response_model=TransitionOut)
async def mark_paid(
    requisition_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles([Role.ACCOUNTS])),
) -> TransitionOut:
    result = await mark_as_paid(db, requisition_id=parse_uuid(requisition_id), actor=user)
    return TransitionOut(requisition=requisition_out(result.requisition), warnings=result.warnings)


@router.get("/{requisition_id}/payments/{payment_id}/proof")
async def download_proof(
    requisition_id: str,
    payment_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    res = await db.execute(
        select(Payment).where(
            Payment.id == parse_uuid(payment_id, "payment_id"),
            Payment.requisition_id == parse_uuid(requisition_id),
        )
    )
    payment = res.scalar_one_or_none()
    if payment is None or not payment.proof_path:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Proof not found")
    try:
        path = get_proof_storage().path(payment.proof_path)
    except ProofStorageError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Proof file missing")
    return FileResponse(path, filename=path.name)
