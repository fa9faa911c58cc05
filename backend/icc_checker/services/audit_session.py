"""Audit session state machine.

One verification runs through ``precheck -> start -> checklist -> summary``. The
pre-check gate is a pure function of the entered fields and of what the store
returned for them, so it can be evaluated without touching any transport layer.
The machine itself is rebuilt around a held ``AuditSession`` for every call, with
the backend and item source of that call injected.
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping, Sequence

from icc_checker.core.config import settings
from icc_checker.services.backend import AuditBackend, AuditSnapshot, LookupResult, StoreRef
from icc_checker.services.checklist import ChecklistItemDefinition, ItemSource
from icc_checker.services.exceptions import (
    PrecheckRejected,
    TransitionNotAllowed,
    UnknownChecklistItem,
)

logger = logging.getLogger(__name__)


class Phase(str, enum.Enum):
    precheck = "precheck"
    start = "start"
    checklist = "checklist"
    summary = "summary"
    admin_login = "admin_login"
    admin_dashboard = "admin_dashboard"
    store_admin = "store_admin"
    category_admin = "category_admin"


ALLOWED_TRANSITIONS: dict[Phase, set[Phase]] = {
    Phase.precheck: {Phase.start, Phase.summary, Phase.admin_login},
    Phase.start: {Phase.checklist},
    Phase.checklist: {Phase.summary},
    Phase.summary: {Phase.precheck},
    Phase.admin_login: {Phase.admin_dashboard, Phase.precheck},
    Phase.admin_dashboard: {Phase.store_admin, Phase.category_admin, Phase.admin_login, Phase.precheck},
    Phase.store_admin: {Phase.admin_dashboard, Phase.admin_login},
    Phase.category_admin: {Phase.admin_dashboard, Phase.admin_login},
}

ADMIN_SCREENS = frozenset({Phase.admin_dashboard, Phase.store_admin, Phase.category_admin})


def can_transition(current: Phase, target: Phase) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def admin_gate(target: Phase, *, authenticated: bool, is_admin: bool) -> Phase:
    """Screen actually reached when asking for an admin screen; checked on every entry."""
    if target not in ADMIN_SCREENS:
        raise ValueError(f"{target.value} is not an administration screen")
    if not authenticated or not is_admin:
        return Phase.admin_login
    return target


class ItemStatus(str, enum.Enum):
    pending = "pending"
    compliant = "compliant"
    non_compliant = "non_compliant"


# Values written by the first releases of the web client.
_LEGACY_STATUSES = {
    "todo": ItemStatus.pending,
    "done": ItemStatus.compliant,
    "error": ItemStatus.non_compliant,
}

STATUS_LABELS = {
    ItemStatus.pending: "À faire",
    ItemStatus.compliant: "OK",
    ItemStatus.non_compliant: "Non conf.",
}

ALL_OK_MESSAGE = "Tout est OK ! Aucun manquement détecté."
ISSUES_MESSAGE = "Erreurs ou manquements détectés"


def parse_status(raw: Any) -> ItemStatus | None:
    if isinstance(raw, ItemStatus):
        return raw
    value = str(raw or "").strip().lower().replace("-", "_")
    if value in _LEGACY_STATUSES:
        return _LEGACY_STATUSES[value]
    try:
        return ItemStatus(value)
    except ValueError:
        return None


@dataclass
class ItemResponse:
    status: ItemStatus
    comment: str = ""

    def as_dict(self) -> dict[str, str]:
        return {"status": self.status.value, "comment": self.comment}


def responses_from_results(results: Mapping[str, Any] | None) -> dict[str, ItemResponse]:
    """Rebuild a response mapping from a stored record, dropping malformed entries."""
    responses: dict[str, ItemResponse] = {}
    for item_id, entry in (results or {}).items():
        if not isinstance(entry, Mapping):
            continue
        item_status = parse_status(entry.get("status"))
        if item_status is None:
            continue
        responses[str(item_id)] = ItemResponse(status=item_status, comment=str(entry.get("comment") or ""))
    return responses


# ---- covered period ----

# Earliest date whose covered week is still a valid calendar date.
MIN_AUDIT_DATE = date.min + timedelta(days=7)


def compute_period(audit_date: date) -> tuple[date, date]:
    return audit_date - timedelta(days=7), audit_date - timedelta(days=1)


def format_display_date(value: date) -> str:
    return value.strftime(settings.date_display_format)


def parse_display_date(text: str) -> date | None:
    try:
        return datetime.strptime(text.strip(), settings.date_display_format).date()
    except ValueError:
        return None


def period_label(start: date, end: date) -> str:
    return f"du {format_display_date(start)} au {format_display_date(end)}"


def split_period_label(text: str | None) -> tuple[str, str]:
    parts = (text or "").split(" au ")
    start = parts[0].strip()
    if start.startswith("du "):
        start = start[3:].strip()
    end = parts[1].strip() if len(parts) > 1 else ""
    return start, end


# ---- completion ----


def completion_percent(items: Sequence[ChecklistItemDefinition], responses: Mapping[str, ItemResponse]) -> int:
    total = len(items)
    if total == 0:
        return 0
    answered = 0
    for item in items:
        response = responses.get(item.id)
        if response is not None and response.status != ItemStatus.pending:
            answered += 1
    percent = Decimal(100 * answered) / Decimal(total)
    return int(percent.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def has_issues(items: Sequence[ChecklistItemDefinition], responses: Mapping[str, ItemResponse]) -> bool:
    for item in items:
        response = responses.get(item.id)
        if response is not None and response.status == ItemStatus.non_compliant:
            return True
    return False


# ---- pre-check gate ----


@dataclass(frozen=True)
class PrecheckFields:
    store_id: uuid.UUID | None = None
    access_code: str = ""
    verifier_name: str = ""
    audit_date: date | None = None


@dataclass(frozen=True)
class PrecheckLookups:
    store: StoreRef | None = None
    store_lookup_failed: bool = False
    latest: LookupResult[AuditSnapshot] = field(default_factory=LookupResult.not_found)
    duplicate: LookupResult[AuditSnapshot] = field(default_factory=LookupResult.not_found)


@dataclass(frozen=True)
class PrecheckGate:
    show_code_field: bool = False
    code_ok: bool = False
    code_error: bool = False
    date_error: bool = False
    store_lookup_failed: bool = False
    latest_audit: AuditSnapshot | None = None
    latest_lookup_failed: bool = False
    duplicate_audit: AuditSnapshot | None = None
    duplicate_lookup_failed: bool = False
    can_continue: bool = False
    can_view_existing: bool = False


def evaluate_precheck(fields: PrecheckFields, lookups: PrecheckLookups) -> PrecheckGate:
    store = lookups.store if fields.store_id is not None else None
    if store is None:
        return PrecheckGate(store_lookup_failed=lookups.store_lookup_failed)

    code = fields.access_code or ""
    code_ok = code == store.code
    code_error = bool(code) and not code_ok

    # History is shown before the code is right; a same-date audit is not.
    latest = lookups.latest.value if lookups.latest.is_found else None
    duplicate = None
    duplicate_lookup_failed = False
    date_ok = fields.audit_date is not None and fields.audit_date >= MIN_AUDIT_DATE
    if code_ok and date_ok:
        duplicate = lookups.duplicate.value if lookups.duplicate.is_found else None
        duplicate_lookup_failed = lookups.duplicate.failed_lookup

    basic_ok = code_ok and bool(fields.verifier_name.strip()) and date_ok
    return PrecheckGate(
        show_code_field=True,
        code_ok=code_ok,
        code_error=code_error,
        date_error=fields.audit_date is not None and not date_ok,
        latest_audit=latest,
        latest_lookup_failed=lookups.latest.failed_lookup,
        duplicate_audit=duplicate,
        duplicate_lookup_failed=duplicate_lookup_failed,
        can_continue=basic_ok and duplicate is None,
        can_view_existing=duplicate is not None,
    )


# ---- session ----


@dataclass
class SessionState:
    store_id: uuid.UUID | None = None
    store_name: str = ""
    verifier_name: str = ""
    audit_date: date | None = None
    period_start: date | None = None
    period_end: date | None = None
    period_covered: str = ""
    responses: dict[str, ItemResponse] = field(default_factory=dict)
    overall_comment: str | None = None
    persisted: bool = False


@dataclass(frozen=True)
class SummaryLine:
    item: ChecklistItemDefinition
    status: ItemStatus
    comment: str

    @property
    def label(self) -> str:
        return STATUS_LABELS[self.status]


@dataclass(frozen=True)
class AuditSummary:
    store_name: str
    verifier_name: str
    audit_date: date | None
    period_covered: str
    completion: int
    all_ok: bool
    message: str
    overall_comment: str | None
    lines: list[SummaryLine]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AuditSession:
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    phase: Phase = Phase.precheck
    state: SessionState = field(default_factory=SessionState)
    items: list[ChecklistItemDefinition] = field(default_factory=list)
    history: list[AuditSnapshot] = field(default_factory=list)
    history_lookup_failed: bool = False
    last_gate: PrecheckGate | None = None
    created_at: datetime = field(default_factory=_utcnow)
    touched_at: datetime = field(default_factory=_utcnow)


class AuditStateMachine:
    def __init__(
        self,
        session: AuditSession,
        backend: AuditBackend,
        item_source: ItemSource,
        *,
        history_limit: int = 3,
    ) -> None:
        self.session = session
        self.backend = backend
        self.item_source = item_source
        self.history_limit = history_limit

    @property
    def phase(self) -> Phase:
        return self.session.phase

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def completion(self) -> int:
        return completion_percent(self.session.items, self.state.responses)

    @property
    def can_finalize(self) -> bool:
        return self.phase == Phase.checklist and self.completion == 100

    def _move(self, target: Phase) -> None:
        current = self.session.phase
        if not can_transition(current, target):
            raise TransitionNotAllowed(
                f"Cannot go from {current.value} to {target.value}",
                extra={"phase": current.value, "target": target.value},
            )
        self.session.phase = target
        logger.info("audit session moved", extra={"from_phase": current.value, "to_phase": target.value})

    def _require(self, phase: Phase, action: str) -> None:
        if self.session.phase != phase:
            raise TransitionNotAllowed(
                f"{action} is only possible in the {phase.value} phase",
                extra={"phase": self.session.phase.value},
            )

    async def _lookups(self, fields: PrecheckFields) -> PrecheckLookups:
        if fields.store_id is None:
            return PrecheckLookups()
        store_result = await self.backend.get_store(fields.store_id)
        if not store_result.is_found:
            return PrecheckLookups(store_lookup_failed=store_result.failed_lookup)
        latest = await self.backend.latest_audit_for_store(fields.store_id)
        duplicate: LookupResult[AuditSnapshot] = LookupResult.not_found()
        if fields.audit_date is not None and fields.audit_date >= MIN_AUDIT_DATE:
            duplicate = await self.backend.find_audit_by_store_and_date(fields.store_id, fields.audit_date)
        return PrecheckLookups(store=store_result.value, latest=latest, duplicate=duplicate)

    async def _gate(self, fields: PrecheckFields) -> tuple[PrecheckGate, PrecheckLookups]:
        self._require(Phase.precheck, "Pre-check")
        lookups = await self._lookups(fields)
        gate = evaluate_precheck(fields, lookups)
        self.session.last_gate = gate
        return gate, lookups

    async def evaluate(self, fields: PrecheckFields) -> PrecheckGate:
        gate, _ = await self._gate(fields)
        return gate

    async def begin(self, fields: PrecheckFields) -> PrecheckGate:
        gate, lookups = await self._gate(fields)
        store = lookups.store
        if not gate.can_continue or store is None:
            raise PrecheckRejected("The pre-check form is not valid", extra={"gate": gate})

        # The session is left untouched until every read has succeeded.
        items = await self.item_source.active_items()
        history = await self.backend.recent_audits_for_store(store.id, self.history_limit)

        state = SessionState(
            store_id=store.id,
            store_name=store.name,
            verifier_name=fields.verifier_name.strip(),
            audit_date=fields.audit_date,
        )
        if state.period_start is None and state.audit_date is not None:
            state.period_start, state.period_end = compute_period(state.audit_date)
            state.period_covered = period_label(state.period_start, state.period_end)

        self._move(Phase.start)
        self.session.state = state
        self.session.items = items
        self.session.history = list(history.value or [])
        self.session.history_lookup_failed = history.failed_lookup
        return gate

    async def view_existing(self, fields: PrecheckFields) -> AuditSummary:
        gate = await self.evaluate(fields)
        record = gate.duplicate_audit
        if not gate.can_view_existing or record is None:
            raise PrecheckRejected("There is no existing audit to show", extra={"gate": gate})

        items = await self.item_source.active_items()
        start_text, end_text = split_period_label(record.period_covered)
        self._move(Phase.summary)
        # Persisted up front: this session shows a stored record and never writes.
        self.session.state = SessionState(
            store_id=record.store_id,
            store_name=record.store_name,
            verifier_name=record.verifier_name,
            audit_date=record.audit_date,
            period_start=parse_display_date(start_text) if start_text else None,
            period_end=parse_display_date(end_text) if end_text else None,
            period_covered=record.period_covered,
            responses=responses_from_results(record.results),
            overall_comment=record.comment,
            persisted=True,
        )
        self.session.items = items
        return self.summary()

    def open_checklist(self) -> None:
        self._move(Phase.checklist)

    def edit_item(self, item_id: str, status: ItemStatus | str | None, comment: str | None = "") -> bool:
        """Apply one item edit; returns False when no status was chosen."""
        self._require(Phase.checklist, "Editing an item")
        if not any(item.id == item_id for item in self.session.items):
            raise UnknownChecklistItem(f"Unknown checklist item {item_id}", extra={"item_id": item_id})
        item_status = parse_status(status) if status is not None else None
        if item_status is None or item_status == ItemStatus.pending:
            return False
        self.state.responses[item_id] = ItemResponse(status=item_status, comment=(comment or "").strip())
        return True

    def build_record(self) -> AuditSnapshot:
        return AuditSnapshot(
            store_id=self.state.store_id,  # type: ignore[arg-type]
            store_name=self.state.store_name,
            verifier_name=self.state.verifier_name,
            audit_date=self.state.audit_date,  # type: ignore[arg-type]
            period_covered=self.state.period_covered,
            results={item_id: response.as_dict() for item_id, response in self.state.responses.items()},
            comment=self.state.overall_comment,
        )

    async def finalize(self, overall_comment: str | None = None) -> AuditSummary:
        if self.phase == Phase.summary:
            return self.summary()
        self._require(Phase.checklist, "Finishing the checklist")
        if self.completion != 100:
            raise TransitionNotAllowed(
                "Every checklist item must be answered first", extra={"completion": self.completion}
            )
        if overall_comment is not None:
            self.state.overall_comment = overall_comment.strip() or None
        if not self.state.persisted:
            await self.backend.insert_audit(self.build_record())
            self.state.persisted = True
        self._move(Phase.summary)
        return self.summary()

    def summary(self) -> AuditSummary:
        self._require(Phase.summary, "The summary")
        items = self.session.items
        responses = self.state.responses
        lines = []
        for item in items:
            response = responses.get(item.id)
            lines.append(
                SummaryLine(
                    item=item,
                    status=response.status if response else ItemStatus.pending,
                    comment=response.comment if response else "",
                )
            )
        all_ok = not has_issues(items, responses)
        return AuditSummary(
            store_name=self.state.store_name,
            verifier_name=self.state.verifier_name,
            audit_date=self.state.audit_date,
            period_covered=self.state.period_covered,
            completion=self.completion,
            all_ok=all_ok,
            message=ALL_OK_MESSAGE if all_ok else ISSUES_MESSAGE,
            overall_comment=self.state.overall_comment,
            lines=lines,
        )

    def restart(self) -> None:
        self._move(Phase.precheck)
        self.session.state = SessionState()
        self.session.items = []
        self.session.history = []
        self.session.history_lookup_failed = False
        self.session.last_gate = None
