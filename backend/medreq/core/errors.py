from __future__ import annotations


class WorkflowError(Exception):
    """Base class for every rejection raised by the requisition engine.

    The message always names the rule that was violated so it can be shown
    to the caller unchanged.
    """

    status_code = 400

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class InvalidRequest(WorkflowError):
    status_code = 400


class TransitionNotAllowed(WorkflowError):
    status_code = 403


class RequisitionNotFound(WorkflowError):
    status_code = 404


class ConcurrentUpdate(WorkflowError):
    status_code = 409


class CollaboratorFailure(WorkflowError):
    status_code = 502


class NotificationNotFound(WorkflowError):
    status_code = 404
