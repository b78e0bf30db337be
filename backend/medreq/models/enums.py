from __future__ import annotations

import enum

from sqlalchemy import Enum as SAEnum


class Role(str, enum.Enum):
    LAB_ADMIN = "Lab Admin"
    PHARMACY_ADMIN = "Pharmacy Admin"
    APPROVER = "Approver"
    ACCOUNTS = "Accounts"


class Department(str, enum.Enum):
    LAB = "Lab"
    PHARMACY = "Pharmacy"
    MANAGEMENT = "Management"
    FINANCE = "Finance"


# Departments a requisition can originate from or be queried to.
ORIGIN_DEPARTMENTS = (Department.LAB, Department.PHARMACY)


class RequisitionType(str, enum.Enum):
    STANDARD = "STANDARD"
    PURCHASE_ORDER = "PURCHASE_ORDER"
    HISTOLOGY_PAYMENT = "HISTOLOGY_PAYMENT"


class RequisitionStatus(str, enum.Enum):
    # standard
    PENDING_APPROVAL = "Pending Approval"
    APPROVED = "Approved"

    # purchase order
    PENDING_CHAIRMAN_REVIEW = "Pending Chairman Review"
    PENDING_STORE_PRICING = "Pending Store Pricing"
    PENDING_AUDITOR_REVIEW = "Pending Auditor Review"
    PENDING_FINAL_APPROVAL = "Pending Final Approval"
    PO_COMPLETED = "Purchase Order Completed"

    # histology
    PENDING_AUDITOR_APPROVAL = "Pending Auditor Approval"
    PENDING_CHAIRMAN_APPROVAL = "Pending Chairman Approval"
    HISTOLOGY_APPROVED = "Histology Approved"

    # payment
    PAYMENT_PROCESSING = "Payment Processing"
    PAID = "Paid"

    # Deprecated: legacy terminal state of early standard requisitions.
    # Stored rows may still carry it; no transition produces it.
    PROCESSED = "Processed"

    QUERIED = "Queried"
    REJECTED = "Rejected"


class LogAction(str, enum.Enum):
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    QUERIED = "Queried"
    REJECTED = "Rejected"
    PRICED = "Priced"
    REVIEWED = "Reviewed"
    PAYMENT_ADDED = "Payment Added"
    MARKED_AS_PAID = "Marked as Paid"
    RESUBMITTED = "Resubmitted"
    PROCESSED = "Processed"  # legacy, never written


class SignatureSlot(str, enum.Enum):
    PREPARED_BY = "preparedBy"
    LEVEL_CONFIRMED_BY = "levelConfirmedBy"
    CHECKED_BY = "checkedBy"


def db_enum(enum_cls: type[enum.Enum], length: int = 40) -> SAEnum:
    # Stored as the enum value (e.g. "Pending Approval") in a plain VARCHAR.
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=length,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )
