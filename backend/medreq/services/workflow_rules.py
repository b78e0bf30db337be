"""Static workflow tables for the three requisition variants.

Everything here is pure data plus small lookups so that the gating rules can
be read (and tested) in one place. The engine in
``medreq.services.requisition_workflow`` is the only writer.

Gating is two-level: the actor's role must match the stage, and for the
Approver role the actor's name must also match the named approver bound to
that stage (``settings.chairman_name`` / ``settings.auditor_name``).
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Protocol
import uuid

from medreq.core.config import settings
from medreq.models.enums import (
    ORIGIN_DEPARTMENTS,
    Department,
    RequisitionStatus,
    RequisitionType,
    Role,
    SignatureSlot,
)

S = RequisitionStatus
T = RequisitionType

CHAIRMAN = "chairman"
AUDITOR = "auditor"

APPROVE = "approve"
PRICE = "price"
QUERY = "query"
REJECT = "reject"


class Actor(Protocol):
    id: uuid.UUID
    name: str
    role: Role
    department: Department


class RequisitionLike(Protocol):
    type: RequisitionType
    status: RequisitionStatus
    department: Department
    requester_id: uuid.UUID


@dataclass(frozen=True)
class StageGate:
    role: Role
    approvers: tuple[str, ...] = ()
    # The forward action this stage accepts; query/reject are open to the same holder.
    advance: str = APPROVE


STAGE_GATES: dict[RequisitionStatus, StageGate] = {
    S.PENDING_APPROVAL: StageGate(Role.APPROVER, (CHAIRMAN, AUDITOR)),
    S.PENDING_CHAIRMAN_REVIEW: StageGate(Role.APPROVER, (CHAIRMAN,)),
    S.PENDING_STORE_PRICING: StageGate(Role.PHARMACY_ADMIN, advance=PRICE),
    S.PENDING_AUDITOR_REVIEW: StageGate(Role.APPROVER, (AUDITOR,)),
    S.PENDING_FINAL_APPROVAL: StageGate(Role.APPROVER, (CHAIRMAN,)),
    S.PENDING_AUDITOR_APPROVAL: StageGate(Role.APPROVER, (AUDITOR,)),
    S.PENDING_CHAIRMAN_APPROVAL: StageGate(Role.APPROVER, (CHAIRMAN,)),
}

# Pending stages that belong to each variant.
TYPE_STAGES: dict[RequisitionType, frozenset[RequisitionStatus]] = {
    T.STANDARD: frozenset({S.PENDING_APPROVAL}),
    T.PURCHASE_ORDER: frozenset(
        {
            S.PENDING_CHAIRMAN_REVIEW,
            S.PENDING_STORE_PRICING,
            S.PENDING_AUDITOR_REVIEW,
            S.PENDING_FINAL_APPROVAL,
        }
    ),
    T.HISTOLOGY_PAYMENT: frozenset({S.PENDING_AUDITOR_APPROVAL, S.PENDING_CHAIRMAN_APPROVAL}),
}

# (type, current status) -> status reached by the stage's forward action.
FORWARD_TRANSITIONS: dict[tuple[RequisitionType, RequisitionStatus], RequisitionStatus] = {
    (T.STANDARD, S.PENDING_APPROVAL): S.APPROVED,
    (T.PURCHASE_ORDER, S.PENDING_CHAIRMAN_REVIEW): S.PENDING_STORE_PRICING,
    (T.PURCHASE_ORDER, S.PENDING_STORE_PRICING): S.PENDING_AUDITOR_REVIEW,
    (T.PURCHASE_ORDER, S.PENDING_AUDITOR_REVIEW): S.PENDING_FINAL_APPROVAL,
    (T.PURCHASE_ORDER, S.PENDING_FINAL_APPROVAL): S.PO_COMPLETED,
    (T.HISTOLOGY_PAYMENT, S.PENDING_AUDITOR_APPROVAL): S.PENDING_CHAIRMAN_APPROVAL,
    (T.HISTOLOGY_PAYMENT, S.PENDING_CHAIRMAN_APPROVAL): S.HISTOLOGY_APPROVED,
}

PAYABLE_STATUSES = frozenset({S.APPROVED, S.PO_COMPLETED, S.HISTOLOGY_APPROVED, S.PAYMENT_PROCESSING})
RESUBMITTABLE_STATUSES = frozenset({S.QUERIED, S.REJECTED})
CREATOR_ROLES = frozenset({Role.LAB_ADMIN, Role.PHARMACY_ADMIN})
REQUESTER_SLOTS = frozenset({SignatureSlot.PREPARED_BY, SignatureSlot.LEVEL_CONFIRMED_BY})

ACTION_LABELS = {APPROVE: "approve", PRICE: "price", QUERY: "query", REJECT: "reject"}


def approver_names() -> dict[str, str]:
    return {CHAIRMAN: settings.chairman_name, AUDITOR: settings.auditor_name}


def initial_status(req_type: RequisitionType, department: Department) -> RequisitionStatus:
    if req_type == T.STANDARD:
        return S.PENDING_APPROVAL
    if req_type == T.HISTOLOGY_PAYMENT:
        return S.PENDING_AUDITOR_APPROVAL
    if department == Department.PHARMACY:
        return S.PENDING_AUDITOR_REVIEW
    return S.PENDING_CHAIRMAN_REVIEW


def gate_for(req_type: RequisitionType, status: RequisitionStatus) -> StageGate | None:
    if status not in TYPE_STAGES.get(req_type, frozenset()):
        return None
    return STAGE_GATES.get(status)


def forward_status(req_type: RequisitionType, status: RequisitionStatus) -> RequisitionStatus | None:
    return FORWARD_TRANSITIONS.get((req_type, status))


def gate_denial(actor: Actor, requisition: RequisitionLike, action: str) -> str | None:
    """Return why ``actor`` may not perform ``action`` now, or None when allowed."""
    label = ACTION_LABELS.get(action, action)
    status = requisition.status
    gate = gate_for(requisition.type, status)
    if gate is None:
        return f"cannot {label} a requisition in status '{status.value}'"
    if action in (APPROVE, PRICE) and gate.advance != action:
        return f"'{status.value}' does not accept the {label} action"
    if actor.role != gate.role:
        return f"role '{actor.role.value}' cannot {label} a requisition in status '{status.value}'"
    if gate.approvers:
        names = approver_names()
        allowed = {names[key] for key in gate.approvers}
        if actor.name not in allowed:
            owners = " or ".join(sorted(allowed))
            return f"only {owners} may {label} a requisition in status '{status.value}'"
    return None


def authorized(actor: Actor, requisition: RequisitionLike, action: str = APPROVE) -> bool:
    return gate_denial(actor, requisition, action) is None


def signature_denial(actor: Actor, requisition: RequisitionLike, slot: SignatureSlot) -> str | None:
    """Return why ``actor`` may not fill ``slot`` now, or None when allowed.

    The requester's own slots can be signed while the requisition is pending
    or queried back to them. ``checkedBy`` belongs to the holder of the
    current stage.
    """
    status = requisition.status
    gate = gate_for(requisition.type, status)
    if slot in REQUESTER_SLOTS:
        if gate is None and status != S.QUERIED:
            return f"cannot sign a requisition in status '{status.value}'"
        if actor.id != requisition.requester_id:
            return f"only the requester may sign '{slot.value}'"
        return None
    if gate is None:
        return f"cannot sign a requisition in status '{status.value}'"
    return gate_denial(actor, requisition, gate.advance)


def resubmission_status(requisition: RequisitionLike, previous: RequisitionStatus | None) -> RequisitionStatus:
    # Queried requisitions resume where they were; rejected ones start over.
    if requisition.status == S.QUERIED and previous is not None:
        return previous
    return initial_status(requisition.type, requisition.department)


def is_origin_department(department: Department | None) -> bool:
    return department in ORIGIN_DEPARTMENTS


def line_total(quantity: int, unit_amount: Decimal | None) -> Decimal:
    return Decimal(quantity) * (unit_amount if unit_amount is not None else Decimal("0"))


def sum_amounts(values: Iterable[Decimal]) -> Decimal:
    total = Decimal("0")
    for value in values:
        total += value
    return total.quantize(Decimal("0.01"))
