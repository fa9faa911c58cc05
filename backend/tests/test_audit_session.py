import uuid
from dataclasses import replace
from datetime import date

import pytest

from icc_checker.services.audit_session import (
    ALL_OK_MESSAGE,
    ISSUES_MESSAGE,
    ItemResponse,
    AuditSession,
    AuditStateMachine,
    ItemStatus,
    MIN_AUDIT_DATE,
    Phase,
    PrecheckFields,
    PrecheckLookups,
    admin_gate,
    can_transition,
    completion_percent,
    compute_period,
    evaluate_precheck,
    parse_status,
    period_label,
    split_period_label,
)
from icc_checker.services.backend import AuditSnapshot, LookupResult, StoreRef
from icc_checker.services.checklist import ChecklistItemDefinition, StaticItemSource
from icc_checker.services.exceptions import (
    DuplicateAuditError,
    PrecheckRejected,
    StoreUnavailable,
    TransitionNotAllowed,
    UnknownChecklistItem,
)


ITEMS = [
    ChecklistItemDefinition(id="a", title="Caisse", description="Compter la caisse", order=1),
    ChecklistItemDefinition(id="b", title="Coffre", description="Compter le coffre", order=2),
    ChecklistItemDefinition(id="c", title="Codes", description="Changer les codes", order=3),
]


class FakeBackend:
    def __init__(self) -> None:
        self.stores: dict[uuid.UUID, StoreRef] = {}
        self.records: list[AuditSnapshot] = []
        self.inserts = 0
        self.failing: set[str] = set()

    def add_store(self, name: str = "Acme", code: str = "1234") -> StoreRef:
        store = StoreRef(id=uuid.uuid4(), name=name, code=code)
        self.stores[store.id] = store
        return store

    async def list_stores(self) -> list[StoreRef]:
        if "list_stores" in self.failing:
            raise StoreUnavailable("Stores could not be loaded")
        return list(self.stores.values())

    async def get_store(self, store_id):
        if "get_store" in self.failing:
            return LookupResult.failed("boom")
        store = self.stores.get(store_id)
        return LookupResult.found(store) if store else LookupResult.not_found()

    async def find_audit_by_store_and_date(self, store_id, audit_date):
        if "find" in self.failing:
            return LookupResult.failed("boom")
        for record in self.records:
            if record.store_id == store_id and record.audit_date == audit_date:
                return LookupResult.found(record)
        return LookupResult.not_found()

    async def latest_audit_for_store(self, store_id):
        if "latest" in self.failing:
            return LookupResult.failed("boom")
        records = sorted((r for r in self.records if r.store_id == store_id), key=lambda r: r.audit_date, reverse=True)
        return LookupResult.found(records[0]) if records else LookupResult.not_found()

    async def recent_audits_for_store(self, store_id, limit):
        if "recent" in self.failing:
            return LookupResult.failed("boom")
        records = sorted((r for r in self.records if r.store_id == store_id), key=lambda r: r.audit_date, reverse=True)
        return LookupResult.found(records[:limit]) if records else LookupResult.not_found()

    async def insert_audit(self, record: AuditSnapshot) -> AuditSnapshot:
        self.inserts += 1
        for existing in self.records:
            if existing.store_id == record.store_id and existing.audit_date == record.audit_date:
                raise DuplicateAuditError("An audit already exists for this store and date")
        record.id = uuid.uuid4()
        self.records.append(record)
        return record


def _machine(backend: FakeBackend, items=ITEMS) -> AuditStateMachine:
    return AuditStateMachine(AuditSession(), backend, StaticItemSource(items))


def _record(store: StoreRef, audit_date: date, **results) -> AuditSnapshot:
    return AuditSnapshot(
        store_id=store.id,
        store_name=store.name,
        verifier_name="Bob",
        audit_date=audit_date,
        period_covered=period_label(*compute_period(audit_date)),
        results={key: {"status": value, "comment": ""} for key, value in results.items()},
    )


def test_completion_is_rounded_half_up() -> None:
    responses = {"a": ItemResponse(ItemStatus.compliant)}
    assert completion_percent(ITEMS, {}) == 0
    assert completion_percent(ITEMS, responses) == 33
    responses["b"] = ItemResponse(ItemStatus.non_compliant)
    assert completion_percent(ITEMS, responses) == 67
    responses["c"] = ItemResponse(ItemStatus.compliant)
    assert completion_percent(ITEMS, responses) == 100
    assert completion_percent([], responses) == 0
    eight = [ChecklistItemDefinition(id=str(i), title=str(i), description="x") for i in range(8)]
    assert completion_percent(eight, {"0": ItemResponse(ItemStatus.compliant)}) == 13


def test_pending_and_unknown_responses_do_not_count() -> None:
    responses = {"a": ItemResponse(ItemStatus.pending), "zzz": ItemResponse(ItemStatus.compliant)}
    assert completion_percent(ITEMS, responses) == 0


@pytest.mark.parametrize(
    ("audit_date", "start", "end"),
    [
        (date(2024, 3, 15), date(2024, 3, 8), date(2024, 3, 14)),
        (date(2024, 3, 1), date(2024, 2, 23), date(2024, 2, 29)),
        (date(2025, 1, 3), date(2024, 12, 27), date(2025, 1, 2)),
    ],
)
def test_period_covers_the_seven_previous_days(audit_date: date, start: date, end: date) -> None:
    assert compute_period(audit_date) == (start, end)


def test_period_label_round_trips_through_split() -> None:
    label = period_label(date(2024, 2, 23), date(2024, 2, 29))
    assert label == "du 23/02/2024 au 29/02/2024"
    assert split_period_label(label) == ("23/02/2024", "29/02/2024")
    assert split_period_label(None) == ("", "")


def test_legacy_statuses_are_understood() -> None:
    assert parse_status("done") == ItemStatus.compliant
    assert parse_status("error") == ItemStatus.non_compliant
    assert parse_status("todo") == ItemStatus.pending
    assert parse_status("non-compliant") == ItemStatus.non_compliant
    assert parse_status("maybe") is None


def test_transition_table() -> None:
    assert can_transition(Phase.precheck, Phase.start)
    assert can_transition(Phase.checklist, Phase.summary)
    assert not can_transition(Phase.precheck, Phase.checklist)
    assert not can_transition(Phase.summary, Phase.checklist)


def test_admin_gate_sends_everyone_but_admins_to_login() -> None:
    assert admin_gate(Phase.store_admin, authenticated=True, is_admin=True) == Phase.store_admin
    assert admin_gate(Phase.store_admin, authenticated=True, is_admin=False) == Phase.admin_login
    assert admin_gate(Phase.category_admin, authenticated=False, is_admin=False) == Phase.admin_login
    with pytest.raises(ValueError):
        admin_gate(Phase.checklist, authenticated=True, is_admin=True)


def test_code_gate() -> None:
    store = StoreRef(id=uuid.uuid4(), name="Acme", code="1234")
    lookups = PrecheckLookups(store=store)
    base = PrecheckFields(store_id=store.id, verifier_name="Alice", audit_date=date(2024, 3, 15))

    assert not evaluate_precheck(PrecheckFields(), lookups).show_code_field

    empty = evaluate_precheck(base, lookups)
    assert empty.show_code_field and not empty.code_ok and not empty.code_error

    wrong = evaluate_precheck(replace(base, access_code="12345"), lookups)
    assert wrong.code_error and not wrong.can_continue

    right = evaluate_precheck(replace(base, access_code="1234"), lookups)
    assert right.code_ok and right.can_continue

    nameless = evaluate_precheck(
        PrecheckFields(store_id=store.id, access_code="1234", verifier_name="  ", audit_date=date(2024, 3, 15)),
        lookups,
    )
    assert nameless.code_ok and not nameless.can_continue


def test_duplicate_is_hidden_until_the_code_is_right() -> None:
    store = StoreRef(id=uuid.uuid4(), name="Acme", code="1234")
    existing = _record(store, date(2024, 3, 15), a="compliant")
    lookups = PrecheckLookups(
        store=store, latest=LookupResult.found(existing), duplicate=LookupResult.found(existing)
    )

    wrong = evaluate_precheck(
        PrecheckFields(store_id=store.id, access_code="0000", verifier_name="Alice", audit_date=date(2024, 3, 15)),
        lookups,
    )
    assert wrong.duplicate_audit is None
    assert not wrong.can_view_existing
    assert wrong.latest_audit is existing

    right = evaluate_precheck(
        PrecheckFields(store_id=store.id, access_code="1234", verifier_name="Alice", audit_date=date(2024, 3, 15)),
        lookups,
    )
    assert right.duplicate_audit is existing
    assert right.can_view_existing
    assert not right.can_continue


def test_lookup_failures_are_flagged_not_hidden() -> None:
    store = StoreRef(id=uuid.uuid4(), name="Acme", code="1234")
    gate = evaluate_precheck(
        PrecheckFields(store_id=store.id, access_code="1234", verifier_name="Alice", audit_date=date(2024, 3, 15)),
        PrecheckLookups(store=store, latest=LookupResult.failed("x"), duplicate=LookupResult.failed("x")),
    )
    assert gate.latest_lookup_failed
    assert gate.duplicate_lookup_failed
    assert gate.latest_audit is None

    missing = evaluate_precheck(PrecheckFields(store_id=store.id), PrecheckLookups(store_lookup_failed=True))
    assert missing.store_lookup_failed and not missing.show_code_field


def test_audit_date_needs_a_whole_covered_week() -> None:
    store = StoreRef(id=uuid.uuid4(), name="Acme", code="1234")
    lookups = PrecheckLookups(store=store)
    base = PrecheckFields(store_id=store.id, access_code="1234", verifier_name="Alice")

    too_early = evaluate_precheck(replace(base, audit_date=date(1, 1, 3)), lookups)
    assert too_early.date_error
    assert not too_early.can_continue

    earliest = evaluate_precheck(replace(base, audit_date=MIN_AUDIT_DATE), lookups)
    assert not earliest.date_error and earliest.can_continue
    assert compute_period(MIN_AUDIT_DATE) == (date.min, date(1, 1, 7))

    undated = evaluate_precheck(base, lookups)
    assert not undated.date_error and not undated.can_continue


@pytest.mark.anyio
async def test_begin_rejects_an_invalid_form_and_stays_on_precheck() -> None:
    backend = FakeBackend()
    store = backend.add_store()
    machine = _machine(backend)

    with pytest.raises(PrecheckRejected) as excinfo:
        await machine.begin(PrecheckFields(store_id=store.id, access_code="9999", verifier_name="Alice", audit_date=date(2024, 3, 15)))
    assert excinfo.value.extra["gate"].code_error
    assert machine.phase == Phase.precheck


@pytest.mark.anyio
async def test_item_edits_overwrite_and_pending_is_ignored() -> None:
    backend = FakeBackend()
    store = backend.add_store()
    machine = _machine(backend)
    await machine.begin(PrecheckFields(store_id=store.id, access_code="1234", verifier_name="Alice", audit_date=date(2024, 3, 15)))

    with pytest.raises(TransitionNotAllowed):
        machine.edit_item("a", "compliant")
    machine.open_checklist()

    assert machine.edit_item("a", "compliant", "rien")
    assert machine.edit_item("a", "compliant", "rien")
    assert machine.state.responses["a"].comment == "rien"
    assert machine.completion == 33

    assert machine.edit_item("a", "non_compliant", "  écart  ")
    assert machine.state.responses["a"].status == ItemStatus.non_compliant
    assert machine.state.responses["a"].comment == "écart"
    assert machine.completion == 33

    assert machine.edit_item("a", "compliant", "corrigé")
    assert list(machine.state.responses) == ["a"]
    assert machine.state.responses["a"] == ItemResponse(ItemStatus.compliant, "corrigé")

    assert not machine.edit_item("b", None)
    assert not machine.edit_item("b", "pending")
    assert "b" not in machine.state.responses

    with pytest.raises(UnknownChecklistItem):
        machine.edit_item("nope", "compliant")


@pytest.mark.anyio
async def test_finalize_requires_full_completion_and_writes_once() -> None:
    backend = FakeBackend()
    store = backend.add_store()
    machine = _machine(backend)
    await machine.begin(PrecheckFields(store_id=store.id, access_code="1234", verifier_name="Alice", audit_date=date(2024, 3, 15)))
    machine.open_checklist()
    machine.edit_item("a", "compliant")
    machine.edit_item("b", "compliant")

    assert not machine.can_finalize
    with pytest.raises(TransitionNotAllowed):
        await machine.finalize()
    assert backend.inserts == 0

    machine.edit_item("c", "compliant")
    assert machine.can_finalize
    summary = await machine.finalize("  ras  ")
    again = await machine.finalize()

    assert backend.inserts == 1
    assert machine.phase == Phase.summary
    assert summary.all_ok and summary.message == ALL_OK_MESSAGE
    assert summary.overall_comment == "ras"
    assert again == summary


@pytest.mark.anyio
async def test_duplicate_insert_keeps_the_session_on_the_checklist() -> None:
    backend = FakeBackend()
    store = backend.add_store()
    fields = PrecheckFields(store_id=store.id, access_code="1234", verifier_name="Alice", audit_date=date(2024, 3, 15))
    first, second = _machine(backend), _machine(backend)
    await first.begin(fields)
    await second.begin(fields)
    for machine in (first, second):
        machine.open_checklist()
        for item in ITEMS:
            machine.edit_item(item.id, "compliant")

    await first.finalize()
    with pytest.raises(DuplicateAuditError):
        await second.finalize()

    assert second.phase == Phase.checklist
    assert not second.state.persisted
    assert len(backend.records) == 1


@pytest.mark.anyio
async def test_start_loads_history_and_reports_lookup_failures() -> None:
    backend = FakeBackend()
    store = backend.add_store()
    for day in (1, 2, 3, 4):
        backend.records.append(_record(store, date(2024, 3, day), a="compliant"))

    machine = AuditStateMachine(AuditSession(), backend, StaticItemSource(ITEMS), history_limit=3)
    await machine.begin(PrecheckFields(store_id=store.id, access_code="1234", verifier_name="Alice", audit_date=date(2024, 3, 15)))
    assert [record.audit_date.day for record in machine.session.history] == [4, 3, 2]
    assert not machine.session.history_lookup_failed

    backend.failing.add("recent")
    other = _machine(backend)
    await other.begin(PrecheckFields(store_id=store.id, access_code="1234", verifier_name="Alice", audit_date=date(2024, 3, 16)))
    assert other.session.history == []
    assert other.session.history_lookup_failed


@pytest.mark.anyio
async def test_view_existing_shows_the_stored_record_without_writing() -> None:
    backend = FakeBackend()
    store = backend.add_store()
    backend.records.append(_record(store, date(2024, 3, 15), a="done", b="error", c="compliant"))
    machine = _machine(backend)

    summary = await machine.view_existing(
        PrecheckFields(store_id=store.id, access_code="1234", verifier_name="Alice", audit_date=date(2024, 3, 15))
    )

    assert machine.phase == Phase.summary
    assert machine.state.persisted
    assert machine.state.period_start == date(2024, 3, 8)
    assert summary.verifier_name == "Bob"
    assert summary.completion == 100
    assert not summary.all_ok and summary.message == ISSUES_MESSAGE
    assert [line.label for line in summary.lines] == ["OK", "Non conf.", "OK"]

    await machine.finalize()
    assert backend.inserts == 0


@pytest.mark.anyio
async def test_restart_clears_the_session() -> None:
    backend = FakeBackend()
    store = backend.add_store()
    machine = _machine(backend)
    await machine.begin(PrecheckFields(store_id=store.id, access_code="1234", verifier_name="Alice", audit_date=date(2024, 3, 15)))
    machine.open_checklist()
    for item in ITEMS:
        machine.edit_item(item.id, "compliant")
    await machine.finalize()

    machine.restart()

    assert machine.phase == Phase.precheck
    assert machine.state.store_id is None
    assert machine.state.responses == {}
    assert not machine.state.persisted
    assert machine.session.items == []


@pytest.mark.anyio
async def test_acme_scenario() -> None:
    backend = FakeBackend()
    store = backend.add_store("Acme", "7777")
    items = [
        ChecklistItemDefinition(id="A", title="A", description="A", order=1),
        ChecklistItemDefinition(id="B", title="B", description="B", order=2),
    ]
    machine = _machine(backend, items)

    gate = await machine.evaluate(PrecheckFields(store_id=store.id, access_code="77", verifier_name="Alice"))
    assert gate.code_error and not gate.can_continue

    fields = PrecheckFields(store_id=store.id, access_code="7777", verifier_name="Alice", audit_date=date(2024, 3, 1))
    gate = await machine.begin(fields)
    assert gate.can_continue
    assert machine.state.period_covered == "du 23/02/2024 au 29/02/2024"

    machine.open_checklist()
    machine.edit_item("A", "compliant")
    machine.edit_item("B", "non_compliant", "Écart de 20€")
    assert machine.completion == 100
    summary = await machine.finalize()

    assert summary.message == ISSUES_MESSAGE
    stored = backend.records[0]
    assert stored.store_name == "Acme"
    assert stored.verifier_name == "Alice"
    assert stored.results == {
        "A": {"status": "compliant", "comment": ""},
        "B": {"status": "non_compliant", "comment": "Écart de 20€"},
    }

    machine.restart()
    again = await machine.evaluate(fields)
    assert again.duplicate_audit is not None
    assert not again.can_continue
    assert again.can_view_existing
