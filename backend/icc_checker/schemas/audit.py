from datetime import date, datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from icc_checker.schemas.checklist import ChecklistItemRead


class AuditRecordRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID | None = None
    store_id: UUID
    store_name: str
    verifier_name: str
    audit_date: date
    period_covered: str
    results: dict[str, dict[str, Any]] = Field(default_factory=dict)
    comment: str | None = None
    created_at: datetime | None = None


class PrecheckRequest(BaseModel):
    store_id: UUID | None = None
    access_code: str = Field(default="", max_length=64)
    verifier_name: str = Field(default="", max_length=120)
    audit_date: date | None = None


class PrecheckGateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    show_code_field: bool
    code_ok: bool
    code_error: bool
    date_error: bool = False
    store_lookup_failed: bool
    latest_audit: AuditRecordRead | None = None
    latest_lookup_failed: bool
    duplicate_audit: AuditRecordRead | None = None
    duplicate_lookup_failed: bool
    can_continue: bool
    can_view_existing: bool


class ItemResponseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: str
    comment: str = ""


class AuditSessionRead(BaseModel):
    id: UUID
    phase: str
    store_id: UUID | None = None
    store_name: str = ""
    verifier_name: str = ""
    audit_date: date | None = None
    period_start: date | None = None
    period_end: date | None = None
    period_covered: str = ""
    completion: int = 0
    can_finalize: bool = False
    persisted: bool = False
    overall_comment: str | None = None
    items: list[ChecklistItemRead] = Field(default_factory=list)
    responses: dict[str, ItemResponseRead] = Field(default_factory=dict)
    history: list[AuditRecordRead] = Field(default_factory=list)
    history_lookup_failed: bool = False
    last_gate: PrecheckGateRead | None = None


class ItemEditRequest(BaseModel):
    status: Literal["compliant", "non_compliant"] | None = None
    comment: str | None = Field(default="", max_length=2000)


class ItemEditResult(BaseModel):
    applied: bool
    completion: int
    can_finalize: bool


class FinalizeRequest(BaseModel):
    overall_comment: str | None = Field(default=None, max_length=4000)


class SummaryLineRead(BaseModel):
    item_id: str
    title: str
    icon: str
    status: str
    label: str
    comment: str = ""


class AuditSummaryRead(BaseModel):
    store_name: str
    verifier_name: str
    audit_date: date | None = None
    period_covered: str
    completion: int
    all_ok: bool
    message: str
    overall_comment: str | None = None
    lines: list[SummaryLineRead]


class MailDraftRead(BaseModel):
    recipient: str
    subject: str
    body: str
    mailto_url: str
