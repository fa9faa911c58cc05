from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from icc_checker.core.config import settings
from icc_checker.core.dependencies import get_backend, get_history_limit, get_item_source, get_session_registry
from icc_checker.schemas.audit import (
    AuditRecordRead,
    AuditSessionRead,
    AuditSummaryRead,
    FinalizeRequest,
    ItemEditRequest,
    ItemEditResult,
    ItemResponseRead,
    MailDraftRead,
    PrecheckGateRead,
    PrecheckRequest,
    SummaryLineRead,
)
from icc_checker.schemas.checklist import ChecklistItemRead
from icc_checker.services import mail_export
from icc_checker.services.audit_session import (
    AuditSession,
    AuditStateMachine,
    AuditSummary,
    PrecheckFields,
    PrecheckGate,
)
from icc_checker.services.backend import SqlAuditBackend
from icc_checker.services.checklist import ItemSource
from icc_checker.services.session_registry import AuditSessionRegistry

router = APIRouter(prefix="/audit-sessions", tags=["audit-sessions"])


class MachineFactory:
    """Builds the state machine for one request around a held session."""

    def __init__(
        self,
        backend: SqlAuditBackend = Depends(get_backend),
        item_source: ItemSource = Depends(get_item_source),
        history_limit: int = Depends(get_history_limit),
    ) -> None:
        self.backend = backend
        self.item_source = item_source
        self.history_limit = history_limit

    def __call__(self, session: AuditSession) -> AuditStateMachine:
        return AuditStateMachine(session, self.backend, self.item_source, history_limit=self.history_limit)


def _fields(payload: PrecheckRequest) -> PrecheckFields:
    return PrecheckFields(
        store_id=payload.store_id,
        access_code=payload.access_code,
        verifier_name=payload.verifier_name,
        audit_date=payload.audit_date,
    )


def _serialize_gate(gate: PrecheckGate) -> PrecheckGateRead:
    return PrecheckGateRead.model_validate(gate, from_attributes=True)


def _serialize_session(session: AuditSession, machine: AuditStateMachine | None = None) -> AuditSessionRead:
    state = session.state
    completion = machine.completion if machine else 0
    return AuditSessionRead(
        id=session.id,
        phase=session.phase.value,
        store_id=state.store_id,
        store_name=state.store_name,
        verifier_name=state.verifier_name,
        audit_date=state.audit_date,
        period_start=state.period_start,
        period_end=state.period_end,
        period_covered=state.period_covered,
        completion=completion,
        can_finalize=machine.can_finalize if machine else False,
        persisted=state.persisted,
        overall_comment=state.overall_comment,
        items=[ChecklistItemRead.model_validate(item) for item in session.items],
        responses={
            item_id: ItemResponseRead(status=response.status.value, comment=response.comment)
            for item_id, response in state.responses.items()
        },
        history=[AuditRecordRead.model_validate(record) for record in session.history],
        history_lookup_failed=session.history_lookup_failed,
        last_gate=_serialize_gate(session.last_gate) if session.last_gate else None,
    )


def _serialize_summary(summary: AuditSummary) -> AuditSummaryRead:
    return AuditSummaryRead(
        store_name=summary.store_name,
        verifier_name=summary.verifier_name,
        audit_date=summary.audit_date,
        period_covered=summary.period_covered,
        completion=summary.completion,
        all_ok=summary.all_ok,
        message=summary.message,
        overall_comment=summary.overall_comment,
        lines=[
            SummaryLineRead(
                item_id=line.item.id,
                title=line.item.title,
                icon=line.item.display_icon,
                status=line.status.value,
                label=line.label,
                comment=line.comment,
            )
            for line in summary.lines
        ],
    )


@router.post("", response_model=AuditSessionRead, status_code=status.HTTP_201_CREATED)
async def open_audit_session(registry: AuditSessionRegistry = Depends(get_session_registry)) -> AuditSessionRead:
    return _serialize_session(registry.create())


@router.get("/{session_id}", response_model=AuditSessionRead)
async def read_audit_session(
    session_id: UUID,
    registry: AuditSessionRegistry = Depends(get_session_registry),
    machines: MachineFactory = Depends(),
) -> AuditSessionRead:
    async with registry.hold(session_id) as session:
        return _serialize_session(session, machines(session))


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_audit_session(
    session_id: UUID,
    registry: AuditSessionRegistry = Depends(get_session_registry),
) -> Response:
    async with registry.hold(session_id):
        pass
    registry.discard(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{session_id}/precheck", response_model=PrecheckGateRead)
async def evaluate_precheck(
    session_id: UUID,
    payload: PrecheckRequest,
    registry: AuditSessionRegistry = Depends(get_session_registry),
    machines: MachineFactory = Depends(),
) -> PrecheckGateRead:
    async with registry.hold(session_id) as session:
        gate = await machines(session).evaluate(_fields(payload))
    return _serialize_gate(gate)


@router.post("/{session_id}/start", response_model=AuditSessionRead)
async def start_audit(
    session_id: UUID,
    payload: PrecheckRequest,
    registry: AuditSessionRegistry = Depends(get_session_registry),
    machines: MachineFactory = Depends(),
) -> AuditSessionRead:
    async with registry.hold(session_id) as session:
        machine = machines(session)
        await machine.begin(_fields(payload))
        return _serialize_session(session, machine)


@router.post("/{session_id}/view-existing", response_model=AuditSummaryRead)
async def view_existing_audit(
    session_id: UUID,
    payload: PrecheckRequest,
    registry: AuditSessionRegistry = Depends(get_session_registry),
    machines: MachineFactory = Depends(),
) -> AuditSummaryRead:
    async with registry.hold(session_id) as session:
        summary = await machines(session).view_existing(_fields(payload))
    return _serialize_summary(summary)


@router.post("/{session_id}/checklist", response_model=AuditSessionRead)
async def open_checklist(
    session_id: UUID,
    registry: AuditSessionRegistry = Depends(get_session_registry),
    machines: MachineFactory = Depends(),
) -> AuditSessionRead:
    async with registry.hold(session_id) as session:
        machine = machines(session)
        machine.open_checklist()
        return _serialize_session(session, machine)


@router.put("/{session_id}/items/{item_id}", response_model=ItemEditResult)
async def edit_item(
    session_id: UUID,
    item_id: str,
    payload: ItemEditRequest,
    registry: AuditSessionRegistry = Depends(get_session_registry),
    machines: MachineFactory = Depends(),
) -> ItemEditResult:
    async with registry.hold(session_id) as session:
        machine = machines(session)
        applied = machine.edit_item(item_id, payload.status, payload.comment)
        return ItemEditResult(applied=applied, completion=machine.completion, can_finalize=machine.can_finalize)


@router.post("/{session_id}/finalize", response_model=AuditSummaryRead)
async def finalize_audit(
    session_id: UUID,
    payload: FinalizeRequest | None = None,
    registry: AuditSessionRegistry = Depends(get_session_registry),
    machines: MachineFactory = Depends(),
) -> AuditSummaryRead:
    async with registry.hold(session_id) as session:
        summary = await machines(session).finalize(payload.overall_comment if payload else None)
    return _serialize_summary(summary)


@router.get("/{session_id}/summary", response_model=AuditSummaryRead)
async def read_summary(
    session_id: UUID,
    registry: AuditSessionRegistry = Depends(get_session_registry),
    machines: MachineFactory = Depends(),
) -> AuditSummaryRead:
    async with registry.hold(session_id) as session:
        summary = machines(session).summary()
    return _serialize_summary(summary)


@router.get("/{session_id}/mail", response_model=MailDraftRead)
async def export_mail(
    session_id: UUID,
    registry: AuditSessionRegistry = Depends(get_session_registry),
    machines: MachineFactory = Depends(),
) -> MailDraftRead:
    async with registry.hold(session_id) as session:
        summary = machines(session).summary()
    draft = mail_export.build_summary_mail(summary, recipient=settings.mail_recipient)
    return MailDraftRead(
        recipient=draft.recipient, subject=draft.subject, body=draft.body, mailto_url=draft.mailto_url
    )


@router.post("/{session_id}/restart", response_model=AuditSessionRead)
async def restart_audit(
    session_id: UUID,
    registry: AuditSessionRegistry = Depends(get_session_registry),
    machines: MachineFactory = Depends(),
) -> AuditSessionRead:
    async with registry.hold(session_id) as session:
        machine = machines(session)
        machine.restart()
        return _serialize_session(session, machine)
