from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from medreq.api.deps import get_current_user, require_roles
from medreq.db.session import get_db
from medreq.models.enums import RequisitionStatus, RequisitionType, Role
from medreq.models.payment import Payment
from medreq.models.requisition import Requisition
from medreq.models.user import User
from medreq.schemas.requisition import (
    ApprovalLogOut,
    HistologyItemOut,
    HistologyRequisitionCreate,
    MessageOut,
    PaymentOut,
    PricingIn,
    PurchaseOrderCreate,
    PurchaseOrderSplitOut,
    QueryIn,
    RequisitionDetailOut,
    RequisitionItemOut,
    RequisitionOut,
    ResubmitIn,
    SignSlotIn,
    SplitFailureOut,
    StandardRequisitionCreate,
    TransitionIn,
    TransitionOut,
)
from medreq.services import requisition_workflow as workflow
from medreq.services.purchase_orders import create_purchase_orders
from medreq.services.requisition_queries import get_requisition_detail, list_requisitions, user_names

router = APIRouter()

CREATORS = (Role.LAB_ADMIN, Role.PHARMACY_ADMIN)


def parse_uuid(value: str, label: str = "requisition_id") -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {label}")


def requisition_out(req: Requisition, *, requester_name: str | None = None) -> RequisitionOut:
    out = RequisitionOut.model_validate(req)
    out.requester_name = requester_name
    return out


def payment_out(payment: Payment, *, recorded_by_name: str | None = None) -> PaymentOut:
    return PaymentOut(
        id=payment.id,
        requisition_id=payment.requisition_id,
        amount=payment.amount,
        payment_date=payment.payment_date,
        proof_path=payment.proof_path,
        recorded_by=payment.recorded_by,
        recorded_by_name=recorded_by_name,
        created_at=payment.created_at,
    )


def _transition_out(result: workflow.TransitionResult, actor: User) -> TransitionOut:
    req = result.requisition
    requester_name = actor.name if req.requester_id == actor.id else None
    return TransitionOut(requisition=requisition_out(req, requester_name=requester_name), warnings=result.warnings)


@router.get("", response_model=list[RequisitionOut])
async def list_all(
    status_filter: RequisitionStatus | None = Query(default=None, alias="status"),
    type: RequisitionType | None = Query(default=None),
    mine: bool = Query(default=False),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[RequisitionOut]:
    rows = await list_requisitions(
        db,
        status=status_filter,
        req_type=type,
        requester_id=user.id if mine else None,
        limit=limit,
        offset=offset,
    )
    names = await user_names(db, {r.requester_id for r in rows})
    return [requisition_out(r, requester_name=names.get(r.requester_id)) for r in rows]


@router.get("/{requisition_id}", response_model=RequisitionDetailOut)
async def get_detail(
    requisition_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> RequisitionDetailOut:
    detail = await get_requisition_detail(db, parse_uuid(requisition_id))
    names = detail.user_names
    req = detail.requisition
    base = requisition_out(req, requester_name=names.get(req.requester_id)).model_dump()
    return RequisitionDetailOut(
        **base,
        items=[RequisitionItemOut.model_validate(i) for i in detail.items],
        histology_items=[HistologyItemOut.model_validate(i) for i in detail.histology_items],
        approval_log=[
            ApprovalLogOut(
                id=e.id,
                user_id=e.user_id,
                user_name=names.get(e.user_id),
                action=e.action,
                comment=e.comment,
                signature=e.signature,
                created_at=e.created_at,
            )
            for e in detail.approval_log
        ],
        messages=[
            MessageOut(
                id=m.id,
                requisition_id=m.requisition_id,
                sender_id=m.sender_id,
                sender_name=names.get(m.sender_id),
                text=m.text,
                created_at=m.created_at,
            )
            for m in detail.messages
        ],
        payments=[payment_out(p, recorded_by_name=names.get(p.recorded_by)) for p in detail.payments],
        total_paid=detail.total_paid,
        outstanding_balance=detail.outstanding_balance,
    )


@router.post("/standard", response_model=TransitionOut, status_code=status.HTTP_201_CREATED)
async def create_standard(
    payload: StandardRequisitionCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(CREATORS)),
) -> TransitionOut:
    result = await workflow.create_standard_requisition(db, requester=user, items=payload.items)
    return _transition_out(result, user)


@router.post("/purchase-orders", response_model=PurchaseOrderSplitOut, status_code=status.HTTP_201_CREATED)
async def create_purchase_order(
    payload: PurchaseOrderCreate,
    response: Response,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(CREATORS)),
) -> PurchaseOrderSplitOut:
    result = await create_purchase_orders(db, requester=user, items=payload.items, signatures=payload.signatures)
    if result.failed:
        response.status_code = status.HTTP_207_MULTI_STATUS if result.created else status.HTTP_500_INTERNAL_SERVER_ERROR
    return PurchaseOrderSplitOut(
        created=[requisition_out(r, requester_name=user.name) for r in result.created],
        failed=[SplitFailureOut(supplier=f.supplier, item_count=f.item_count, reason=f.reason) for f in result.failed],
        warnings=result.warnings,
    )


@router.post("/histology", response_model=TransitionOut, status_code=status.HTTP_201_CREATED)
async def create_histology(
    payload: HistologyRequisitionCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(CREATORS)),
) -> TransitionOut:
    result = await workflow.create_histology_requisition(
        db, requester=user, items=payload.items, signatures=payload.signatures
    )
    return _transition_out(result, user)


@router.post("/{requisition_id}/approve", response_model=TransitionOut)
async def approve(
    requisition_id: str,
    payload: TransitionIn,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TransitionOut:
    result = await workflow.approve_requisition(
        db,
        requisition_id=parse_uuid(requisition_id),
        actor=user,
        signature=payload.signature,
        comment=payload.comment,
    )
    return _transition_out(result, user)


@router.post("/{requisition_id}/query", response_model=TransitionOut)
async def query(
    requisition_id: str,
    payload: QueryIn,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TransitionOut:
    result = await workflow.query_requisition(
        db,
        requisition_id=parse_uuid(requisition_id),
        actor=user,
        signature=payload.signature,
        comment=payload.comment,
        queried_to=payload.queried_to,
    )
    return _transition_out(result, user)


@router.post("/{requisition_id}/reject", response_model=TransitionOut)
async def reject(
    requisition_id: str,
    payload: TransitionIn,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TransitionOut:
    result = await workflow.reject_requisition(
        db,
        requisition_id=parse_uuid(requisition_id),
        actor=user,
        signature=payload.signature,
        comment=payload.comment,
    )
    return _transition_out(result, user)


@router.post("/{requisition_id}/price", response_model=TransitionOut)
async def price(
    requisition_id: str,
    payload: PricingIn,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TransitionOut:
    result = await workflow.price_purchase_order(
        db,
        requisition_id=parse_uuid(requisition_id),
        actor=user,
        prices={p.item_id: p.unit_price for p in payload.prices},
        signature=payload.signature,
        comment=payload.comment,
    )
    return _transition_out(result, user)


@router.post("/{requisition_id}/resubmit", response_model=TransitionOut)
async def resubmit(
    requisition_id: str,
    payload: ResubmitIn,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TransitionOut:
    result = await workflow.resubmit_requisition(
        db,
        requisition_id=parse_uuid(requisition_id),
        actor=user,
        items=payload.items,
        histology_items=payload.histology_items,
    )
    return _transition_out(result, user)


@router.post("/{requisition_id}/signatures", response_model=TransitionOut)
async def sign(
    requisition_id: str,
    payload: SignSlotIn,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TransitionOut:
    result = await workflow.sign_requisition(
        db,
        requisition_id=parse_uuid(requisition_id),
        actor=user,
        slot=payload.slot,
        signature=payload.signature,
    )
    return _transition_out(result, user)
