from __future__ import annotations

from typing import Any


class AuditFlowError(Exception):
    """Base class for audit session failures; carries the HTTP mapping used by the API."""

    status_code = 400
    code = "audit_flow_error"

    def __init__(self, detail: str, *, extra: dict[str, Any] | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.extra = extra or {}


class TransitionNotAllowed(AuditFlowError):
    status_code = 409
    code = "transition_not_allowed"


class PrecheckRejected(AuditFlowError):
    status_code = 400
    code = "precheck_rejected"


class UnknownChecklistItem(AuditFlowError):
    status_code = 404
    code = "unknown_checklist_item"


class DuplicateAuditError(AuditFlowError):
    status_code = 409
    code = "duplicate_audit"


class SessionBusy(AuditFlowError):
    status_code = 409
    code = "session_busy"


class AuditSessionNotFound(AuditFlowError):
    status_code = 404
    code = "audit_session_not_found"


class StoreUnavailable(AuditFlowError):
    status_code = 503
    code = "store_unavailable"
