"""Payments recorded against approved requisitions.

A requisition's outstanding balance is ``total_cost - sum(payments)`` and
never goes below zero. The balance check and the insert happen while the
requisition row is locked; the version bump on the requisition makes two
racing payments conflict instead of both passing the check.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from medreq.core.config import settings
from medreq.core.errors import CollaboratorFailure, InvalidRequest, TransitionNotAllowed
from medreq.models.enums import LogAction, RequisitionStatus, Role
from medreq.models.payment import Payment
from medreq.models.requisition import Requisition
from medreq.models.user import User
from medreq.services.approval_log import append_log
from medreq.services.notification_rules import FanOutEvent, fan_out
from medreq.services.notifications import dispatch_notifications
from medreq.services.proof_storage import (
    LocalProofStorage,
    ProofStorageError,
    ProofUpload,
    get_proof_storage,
    proof_key,
    validate_proof,
)
from medreq.services.requisition_workflow import (
    commit_transition,
    flush_transition,
    load_requisition,
    utcnow,
)
from medreq.services.workflow_rules import PAYABLE_STATUSES

logger = logging.getLogger("medreq_api.payments")


@dataclass
class PaymentResult:
    payment: Payment
    requisition: Requisition
    warnings: list[str] = field(default_factory=list)


@dataclass
class MarkPaidResult:
    requisition: Requisition
    warnings: list[str] = field(default_factory=list)


CENT = Decimal("0.01")


def _money(value: Decimal | int | str | None) -> Decimal:
    return Decimal(str(value if value is not None else 0)).quantize(CENT)


def format_amount(amount: Decimal) -> str:
    return f"{settings.currency_label} {_money(amount):,.2f}"


def outstanding_balance(total_cost: Decimal, total_paid: Decimal) -> Decimal:
    return max(_money(total_cost) - _money(total_paid), Decimal("0.00"))


async def total_paid(db: AsyncSession, requisition_id: uuid.UUID) -> Decimal:
    res = await db.execute(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.requisition_id == requisition_id)
    )
    return _money(res.scalar_one())


async def list_payments(db: AsyncSession, requisition_id: uuid.UUID) -> list[Payment]:
    res = await db.execute(
        select(Payment)
        .where(Payment.requisition_id == requisition_id)
        .order_by(Payment.payment_date.asc(), Payment.created_at.asc())
    )
    return list(res.scalars().all())


def _require_accounts(actor: User) -> None:
    if actor.role != Role.ACCOUNTS:
        raise TransitionNotAllowed("only Accounts can record payments")


def _require_payable(requisition: Requisition) -> None:
    if requisition.status == RequisitionStatus.PAID:
        raise InvalidRequest("requisition is already marked as paid")
    if requisition.status not in PAYABLE_STATUSES:
        raise InvalidRequest(f"a requisition in status '{requisition.status.value}' cannot receive payments")


async def add_payment(
    db: AsyncSession,
    *,
    requisition_id: uuid.UUID,
    actor: User,
    amount: Decimal,
    payment_date: date,
    proof: ProofUpload | None = None,
    storage: LocalProofStorage | None = None,
) -> PaymentResult:
    requisition = await load_requisition(db, requisition_id)
    _require_accounts(actor)
    _require_payable(requisition)

    try:
        entered = Decimal(str(amount))
    except InvalidOperation as exc:
        raise InvalidRequest("payment amount must be a number") from exc
    if not entered.is_finite() or entered != entered.quantize(CENT):
        raise InvalidRequest("payment amount cannot have more than two decimal places")
    amount = _money(entered)
    if amount <= 0:
        raise InvalidRequest("payment amount must be greater than zero")
    outstanding = outstanding_balance(requisition.total_cost, await total_paid(db, requisition.id))
    if amount > outstanding:
        raise InvalidRequest(
            f"payment of {format_amount(amount)} exceeds outstanding balance of {format_amount(outstanding)}"
        )
    if proof is not None:
        validate_proof(proof)

    stored_key: str | None = None
    if proof is not None:
        storage = storage or get_proof_storage()
        try:
            stored_key = storage.save(proof_key(actor.id, requisition.id, proof.filename), proof.data)
        except ProofStorageError as exc:
            logger.exception("Proof upload failed", extra={"requisition_id": str(requisition.id)})
            raise CollaboratorFailure(f"payment proof could not be stored: {exc}") from exc

    try:
        payment = Payment(
            requisition_id=requisition.id,
            amount=amount,
            payment_date=payment_date,
            proof_path=stored_key,
            recorded_by=actor.id,
            created_at=utcnow(),
        )
        db.add(payment)
        requisition.status = RequisitionStatus.PAYMENT_PROCESSING
        requisition.updated_at = utcnow()
        await flush_transition(db)

        warnings: list[str] = []
        warning = await append_log(
            db,
            requisition_id=requisition.id,
            user_id=actor.id,
            action=LogAction.PAYMENT_ADDED,
            comment=format_amount(amount),
        )
        if warning:
            warnings.append(warning)
        await commit_transition(db)
    except Exception:
        if stored_key:
            storage.delete(stored_key)
        raise

    logger.info(
        "Payment recorded",
        extra={"requisition_id": str(requisition.id), "amount": str(amount), "actor_id": str(actor.id)},
    )
    return PaymentResult(payment=payment, requisition=requisition, warnings=warnings)


async def mark_as_paid(db: AsyncSession, *, requisition_id: uuid.UUID, actor: User) -> MarkPaidResult:
    requisition = await load_requisition(db, requisition_id)
    _require_accounts(actor)
    _require_payable(requisition)

    outstanding = outstanding_balance(requisition.total_cost, await total_paid(db, requisition.id))
    if outstanding != 0:
        raise InvalidRequest(
            f"outstanding balance of {format_amount(outstanding)} must be settled before marking as paid"
        )

    requisition.status = RequisitionStatus.PAID
    requisition.updated_at = utcnow()
    await flush_transition(db)
    warnings: list[str] = []
    warning = await append_log(
        db,
        requisition_id=requisition.id,
        user_id=actor.id,
        action=LogAction.MARKED_AS_PAID,
    )
    if warning:
        warnings.append(warning)
    await commit_transition(db)

    logger.info("Requisition marked as paid", extra={"requisition_id": str(requisition.id)})
    await dispatch_notifications(
        db,
        requisition=requisition,
        requests=fan_out(requisition.type, requisition.status, FanOutEvent.ADVANCED),
    )
    return MarkPaidResult(requisition=requisition, warnings=warnings)
