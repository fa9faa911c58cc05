import uuid
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from icc_checker.models.audit import AuditRecord


async def find_by_store_and_date(session: AsyncSession, store_id: uuid.UUID, audit_date: date) -> AuditRecord | None:
    result = await session.execute(
        select(AuditRecord).where(AuditRecord.store_id == store_id, AuditRecord.audit_date == audit_date).limit(1)
    )
    return result.scalar_one_or_none()


async def recent_for_store(session: AsyncSession, store_id: uuid.UUID, limit: int) -> list[AuditRecord]:
    result = await session.execute(
        select(AuditRecord)
        .where(AuditRecord.store_id == store_id)
        .order_by(AuditRecord.audit_date.desc(), AuditRecord.created_at.desc())
        .limit(max(1, limit))
    )
    return list(result.scalars().all())


async def latest_for_store(session: AsyncSession, store_id: uuid.UUID) -> AuditRecord | None:
    records = await recent_for_store(session, store_id, 1)
    return records[0] if records else None


async def insert_record(session: AsyncSession, record: AuditRecord) -> AuditRecord:
    """Insert and commit; IntegrityError from the (store, date) constraint propagates."""
    session.add(record)
    await session.commit()
    await session.refresh(record)
    return record


async def count_records(session: AsyncSession) -> int:
    return int((await session.execute(select(func.count()).select_from(AuditRecord))).scalar_one() or 0)


async def store_has_records(session: AsyncSession, store_id: uuid.UUID) -> bool:
    result = await session.execute(select(AuditRecord.id).where(AuditRecord.store_id == store_id).limit(1))
    return result.first() is not None
