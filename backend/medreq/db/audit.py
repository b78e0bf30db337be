from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import Session

from medreq.models.approval_log import ApprovalLog
from medreq.models.message import Message


APPEND_ONLY_MODELS = (ApprovalLog, Message)


class AppendOnlyViolation(RuntimeError):
    pass


@event.listens_for(Session, "before_flush")
def refuse_history_rewrites(session: Session, _flush_context, _instances) -> None:
    for obj in session.dirty:
        if isinstance(obj, APPEND_ONLY_MODELS) and session.is_modified(obj, include_collections=False):
            raise AppendOnlyViolation(
                f"{type(obj).__tablename__} entries are append-only and cannot be modified"
            )
    for obj in session.deleted:
        if isinstance(obj, APPEND_ONLY_MODELS):
            raise AppendOnlyViolation(
                f"{type(obj).__tablename__} entries are append-only and cannot be deleted"
            )
