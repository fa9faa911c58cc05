"""Capability interface the audit state machine talks to, and its SQL implementation.

Reads used for validation and history come back as ``LookupResult`` so callers can
tell "nothing recorded" apart from "the store could not be queried".
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Generic, Protocol, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from icc_checker.models.audit import AuditRecord
from icc_checker.models.store import Store
from icc_checker.services import audits as audits_service
from icc_checker.services import stores as stores_service
from icc_checker.services.exceptions import DuplicateAuditError, StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LookupOutcome(str, enum.Enum):
    found = "found"
    not_found = "not_found"
    error = "error"


@dataclass(frozen=True)
class LookupResult(Generic[T]):
    outcome: LookupOutcome
    value: T | None = None
    error: str | None = None

    @classmethod
    def found(cls, value: T) -> "LookupResult[T]":
        return cls(LookupOutcome.found, value=value)

    @classmethod
    def not_found(cls) -> "LookupResult[T]":
        return cls(LookupOutcome.not_found)

    @classmethod
    def failed(cls, message: str) -> "LookupResult[T]":
        return cls(LookupOutcome.error, error=message)

    @property
    def failed_lookup(self) -> bool:
        return self.outcome == LookupOutcome.error

    @property
    def is_found(self) -> bool:
        return self.outcome == LookupOutcome.found


@dataclass(frozen=True)
class StoreRef:
    id: uuid.UUID
    name: str
    code: str


@dataclass
class AuditSnapshot:
    store_id: uuid.UUID
    store_name: str
    verifier_name: str
    audit_date: date
    period_covered: str
    results: dict[str, dict[str, Any]] = field(default_factory=dict)
    comment: str | None = None
    id: uuid.UUID | None = None
    created_at: datetime | None = None


class AuditBackend(Protocol):
    async def list_stores(self) -> list[StoreRef]: ...

    async def get_store(self, store_id: uuid.UUID) -> LookupResult[StoreRef]: ...

    async def find_audit_by_store_and_date(self, store_id: uuid.UUID, audit_date: date) -> LookupResult[AuditSnapshot]: ...

    async def latest_audit_for_store(self, store_id: uuid.UUID) -> LookupResult[AuditSnapshot]: ...

    async def recent_audits_for_store(self, store_id: uuid.UUID, limit: int) -> LookupResult[list[AuditSnapshot]]: ...

    async def insert_audit(self, record: AuditSnapshot) -> AuditSnapshot: ...


def store_ref(row: Store) -> StoreRef:
    return StoreRef(id=row.id, name=row.name, code=row.code)


def audit_snapshot(row: AuditRecord) -> AuditSnapshot:
    return AuditSnapshot(
        id=row.id,
        store_id=row.store_id,
        store_name=row.store_name,
        verifier_name=row.verifier_name,
        audit_date=row.audit_date,
        period_covered=row.period_covered,
        results=dict(row.results or {}),
        comment=row.comment,
        created_at=row.created_at,
    )


class SqlAuditBackend:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_stores(self) -> list[StoreRef]:
        try:
            rows = await stores_service.list_stores(self.session)
        except SQLAlchemyError:
            logger.exception("store list failed")
            raise StoreUnavailable("Stores could not be loaded") from None
        return [store_ref(row) for row in rows]

    async def get_store(self, store_id: uuid.UUID) -> LookupResult[StoreRef]:
        try:
            row = await stores_service.get_store(self.session, store_id)
        except SQLAlchemyError as exc:
            logger.warning("store lookup failed: %s", exc)
            return LookupResult.failed("store lookup failed")
        return LookupResult.found(store_ref(row)) if row else LookupResult.not_found()

    async def find_audit_by_store_and_date(self, store_id: uuid.UUID, audit_date: date) -> LookupResult[AuditSnapshot]:
        try:
            row = await audits_service.find_by_store_and_date(self.session, store_id, audit_date)
        except SQLAlchemyError as exc:
            logger.warning("duplicate audit lookup failed: %s", exc)
            return LookupResult.failed("duplicate audit lookup failed")
        return LookupResult.found(audit_snapshot(row)) if row else LookupResult.not_found()

    async def latest_audit_for_store(self, store_id: uuid.UUID) -> LookupResult[AuditSnapshot]:
        try:
            row = await audits_service.latest_for_store(self.session, store_id)
        except SQLAlchemyError as exc:
            logger.warning("latest audit lookup failed: %s", exc)
            return LookupResult.failed("latest audit lookup failed")
        return LookupResult.found(audit_snapshot(row)) if row else LookupResult.not_found()

    async def recent_audits_for_store(self, store_id: uuid.UUID, limit: int) -> LookupResult[list[AuditSnapshot]]:
        try:
            rows = await audits_service.recent_for_store(self.session, store_id, limit)
        except SQLAlchemyError as exc:
            logger.warning("audit history lookup failed: %s", exc)
            return LookupResult.failed("audit history lookup failed")
        if not rows:
            return LookupResult.not_found()
        return LookupResult.found([audit_snapshot(row) for row in rows])

    async def insert_audit(self, record: AuditSnapshot) -> AuditSnapshot:
        row = AuditRecord(
            store_id=record.store_id,
            store_name=record.store_name,
            verifier_name=record.verifier_name,
            audit_date=record.audit_date,
            period_covered=record.period_covered,
            results=record.results,
            comment=record.comment,
        )
        try:
            row = await audits_service.insert_record(self.session, row)
        except IntegrityError:
            await self.session.rollback()
            logger.info(
                "audit insert rejected by unique constraint",
                extra={"store_id": str(record.store_id), "audit_date": record.audit_date.isoformat()},
            )
            raise DuplicateAuditError("An audit already exists for this store and date") from None
        except SQLAlchemyError:
            await self.session.rollback()
            logger.exception("audit insert failed")
            raise StoreUnavailable("The audit could not be saved") from None
        logger.info("audit recorded", extra={"audit_id": str(row.id), "store_id": str(row.store_id)})
        return audit_snapshot(row)
