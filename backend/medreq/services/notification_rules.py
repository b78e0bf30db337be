"""Who gets told what when a requisition moves.

Pure lookups: ``fan_out`` maps an event on a requisition to a list of
``NotificationRequest`` (recipient selector plus message template). Resolving
selectors to users and storing rows is done by
``medreq.services.notifications``.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass

from medreq.models.enums import RequisitionStatus, RequisitionType, Role
from medreq.services.workflow_rules import AUDITOR, CHAIRMAN

S = RequisitionStatus
T = RequisitionType


class FanOutEvent(str, enum.Enum):
    SUBMITTED = "submitted"
    ADVANCED = "advanced"
    PRICED = "priced"
    RESUBMITTED = "resubmitted"


class RecipientKind(str, enum.Enum):
    ROLE = "role"
    NAME = "name"
    REQUESTER = "requester"


@dataclass(frozen=True)
class Recipient:
    kind: RecipientKind
    # Role value for ROLE, approver key (chairman/auditor) for NAME.
    value: str | None = None

    @classmethod
    def role(cls, role: Role) -> "Recipient":
        return cls(RecipientKind.ROLE, role.value)

    @classmethod
    def named(cls, approver: str) -> "Recipient":
        return cls(RecipientKind.NAME, approver)

    @classmethod
    def requester(cls) -> "Recipient":
        return cls(RecipientKind.REQUESTER)


@dataclass(frozen=True)
class NotificationRequest:
    recipient: Recipient
    template: str

    def render(self, **context: str) -> str:
        values = {"id": "", "department": "", "supplier": "", "status": "", "sender": ""}
        values.update({k: str(v) for k, v in context.items() if v is not None})
        return self.template.format(**values)


def _n(recipient: Recipient, template: str) -> NotificationRequest:
    return NotificationRequest(recipient, template)


_CHAIRMAN = Recipient.named(CHAIRMAN)
_AUDITOR = Recipient.named(AUDITOR)
_ACCOUNTS = Recipient.role(Role.ACCOUNTS)
_STORE = Recipient.role(Role.PHARMACY_ADMIN)
_REQUESTER = Recipient.requester()

_NEW_PO = "New PO {id} from {department} (Supplier: {supplier}) requires review."

SUBMISSION_RULES: dict[tuple[RequisitionType, RequisitionStatus], tuple[NotificationRequest, ...]] = {
    (T.STANDARD, S.PENDING_APPROVAL): (
        _n(_CHAIRMAN, "New requisition {id} from {department} requires approval."),
        _n(_AUDITOR, "New requisition {id} from {department} requires approval."),
    ),
    (T.PURCHASE_ORDER, S.PENDING_AUDITOR_REVIEW): (_n(_AUDITOR, _NEW_PO),),
    (T.PURCHASE_ORDER, S.PENDING_CHAIRMAN_REVIEW): (_n(_CHAIRMAN, _NEW_PO),),
    (T.HISTOLOGY_PAYMENT, S.PENDING_AUDITOR_APPROVAL): (
        _n(_AUDITOR, "New Histology Payment request {id} requires approval."),
    ),
}

TRANSITION_RULES: dict[tuple[RequisitionType, RequisitionStatus], tuple[NotificationRequest, ...]] = {
    (T.STANDARD, S.APPROVED): (_n(_ACCOUNTS, "Requisition {id} has been approved and is ready for payment."),),
    (T.PURCHASE_ORDER, S.PENDING_STORE_PRICING): (_n(_STORE, "PO {id} has been approved by the Chairman and requires pricing."),),
    (T.PURCHASE_ORDER, S.PENDING_AUDITOR_REVIEW): (_n(_AUDITOR, "PO {id} requires review."),),
    (T.PURCHASE_ORDER, S.PENDING_FINAL_APPROVAL): (_n(_CHAIRMAN, "PO {id} has been reviewed and requires final approval."),),
    (T.PURCHASE_ORDER, S.PO_COMPLETED): (_n(_ACCOUNTS, "PO {id} is complete and ready for payment processing."),),
    (T.HISTOLOGY_PAYMENT, S.PENDING_CHAIRMAN_APPROVAL): (
        _n(_CHAIRMAN, "Histology Payment request {id} has been approved by the Auditor and requires your approval."),
    ),
    (T.HISTOLOGY_PAYMENT, S.HISTOLOGY_APPROVED): (
        _n(_ACCOUNTS, "Histology Payment request {id} has been approved and is ready for payment."),
    ),
}

PRICED_RULES = (_n(_AUDITOR, "PO {id} has been priced and requires review."),)

# Status the requester is told about, whatever the variant.
REQUESTER_RULES: dict[RequisitionStatus, tuple[NotificationRequest, ...]] = {
    S.QUERIED: (_n(_REQUESTER, "Your requisition {id} was queried."),),
    S.REJECTED: (_n(_REQUESTER, "Your requisition {id} was rejected."),),
    S.PAID: (_n(_REQUESTER, "Your requisition {id} has been paid."),),
}

_RESUBMITTED = "Requisition {id} has been resubmitted and requires your attention."

# Owner of the stage a resubmitted requisition lands on.
STAGE_OWNERS: dict[RequisitionStatus, tuple[Recipient, ...]] = {
    S.PENDING_APPROVAL: (_CHAIRMAN, _AUDITOR),
    S.PENDING_CHAIRMAN_REVIEW: (_CHAIRMAN,),
    S.PENDING_STORE_PRICING: (_STORE,),
    S.PENDING_AUDITOR_REVIEW: (_AUDITOR,),
    S.PENDING_FINAL_APPROVAL: (_CHAIRMAN,),
    S.PENDING_AUDITOR_APPROVAL: (_AUDITOR,),
    S.PENDING_CHAIRMAN_APPROVAL: (_CHAIRMAN,),
}

MESSAGE_RULE = _n(_REQUESTER, "{sender} sent a message on requisition {id}.")


def fan_out(
    req_type: RequisitionType,
    status: RequisitionStatus,
    event: FanOutEvent = FanOutEvent.ADVANCED,
) -> list[NotificationRequest]:
    """Return the notifications owed after ``event`` left a requisition at ``status``.

    An empty list means nobody is notified; that is not an error.
    """
    if status in REQUESTER_RULES:
        return list(REQUESTER_RULES[status])
    if event == FanOutEvent.SUBMITTED:
        return list(SUBMISSION_RULES.get((req_type, status), ()))
    if event == FanOutEvent.PRICED:
        return list(PRICED_RULES)
    if event == FanOutEvent.RESUBMITTED:
        return [_n(owner, _RESUBMITTED) for owner in STAGE_OWNERS.get(status, ())]
    return list(TRANSITION_RULES.get((req_type, status), ()))
