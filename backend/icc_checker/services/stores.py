import logging
import uuid

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from icc_checker.models.store import Store
from icc_checker.services import audits as audits_service

logger = logging.getLogger(__name__)

STORE_IN_USE = "Store has recorded audits and cannot be deleted"


async def list_stores(session: AsyncSession) -> list[Store]:
    result = await session.execute(select(Store).order_by(func.lower(Store.name)))
    return list(result.scalars().all())


async def get_store(session: AsyncSession, store_id: uuid.UUID) -> Store | None:
    return await session.get(Store, store_id)


async def find_store_by_name(session: AsyncSession, name: str) -> Store | None:
    result = await session.execute(select(Store).where(Store.name == name.strip()))
    return result.scalar_one_or_none()


async def _commit(session: AsyncSession, action: str, conflict: str = "A store with this name already exists") -> None:
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=conflict) from None
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("store %s failed", action)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"Store {action} failed") from None


async def create_store(session: AsyncSession, *, name: str, code: str) -> Store:
    name = (name or "").strip()
    code = (code or "").strip()
    if not name or not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Store name and code are required")
    if await find_store_by_name(session, name):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A store with this name already exists")
    store = Store(name=name, code=code)
    session.add(store)
    await _commit(session, "creation")
    logger.info("store created", extra={"store_id": str(store.id)})
    return store


async def update_store_code(session: AsyncSession, store_id: uuid.UUID, code: str) -> Store:
    code = (code or "").strip()
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Store code cannot be empty")
    store = await get_store(session, store_id)
    if store is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Store not found")
    store.code = code
    await _commit(session, "update")
    logger.info("store code updated", extra={"store_id": str(store_id)})
    return store


async def delete_store(session: AsyncSession, store_id: uuid.UUID) -> None:
    store = await get_store(session, store_id)
    if store is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Store not found")
    if await audits_service.store_has_records(session, store_id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=STORE_IN_USE)
    await session.delete(store)
    await _commit(session, "deletion", conflict=STORE_IN_USE)
    logger.info("store deleted", extra={"store_id": str(store_id)})
