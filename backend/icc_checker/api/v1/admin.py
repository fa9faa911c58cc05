from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from icc_checker.core.dependencies import require_admin
from icc_checker.db.session import get_session
from icc_checker.models.checklist import ChecklistItem
from icc_checker.models.store import Store
from icc_checker.models.user import User
from icc_checker.schemas.checklist import ChecklistItemCreate, ChecklistItemRead, ChecklistItemUpdate
from icc_checker.schemas.store import StoreAdminRead, StoreCodeUpdate, StoreCreate
from icc_checker.services import audits as audits_service
from icc_checker.services import stores as stores_service
from icc_checker.services.checklist import DynamicItemSource

router = APIRouter(prefix="/admin", tags=["admin"])


def _items(items: list) -> list[ChecklistItemRead]:
    return [ChecklistItemRead.model_validate(item) for item in items]


@router.get("/dashboard")
async def admin_dashboard(
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> dict[str, int]:
    stores_total = await session.scalar(select(func.count()).select_from(Store))
    items_total = await session.scalar(select(func.count()).select_from(ChecklistItem))
    return {
        "stores": int(stores_total or 0),
        "checklist_items": int(items_total or 0),
        "audits": await audits_service.count_records(session),
    }


@router.get("/stores", response_model=list[StoreAdminRead])
async def admin_list_stores(
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> list[StoreAdminRead]:
    stores = await stores_service.list_stores(session)
    return [StoreAdminRead.model_validate(store) for store in stores]


@router.post("/stores", response_model=list[StoreAdminRead], status_code=status.HTTP_201_CREATED)
async def admin_add_store(
    payload: StoreCreate,
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> list[StoreAdminRead]:
    await stores_service.create_store(session, name=payload.name, code=payload.code)
    return [StoreAdminRead.model_validate(store) for store in await stores_service.list_stores(session)]


@router.patch("/stores/{store_id}", response_model=list[StoreAdminRead])
async def admin_update_store_code(
    store_id: UUID,
    payload: StoreCodeUpdate,
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> list[StoreAdminRead]:
    await stores_service.update_store_code(session, store_id, payload.code)
    return [StoreAdminRead.model_validate(store) for store in await stores_service.list_stores(session)]


@router.delete("/stores/{store_id}", response_model=list[StoreAdminRead])
async def admin_remove_store(
    store_id: UUID,
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> list[StoreAdminRead]:
    await stores_service.delete_store(session, store_id)
    return [StoreAdminRead.model_validate(store) for store in await stores_service.list_stores(session)]


@router.get("/checklist-items", response_model=list[ChecklistItemRead])
async def admin_list_items(
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> list[ChecklistItemRead]:
    return _items(await DynamicItemSource(session).reload())


@router.post("/checklist-items", response_model=list[ChecklistItemRead], status_code=status.HTTP_201_CREATED)
async def admin_add_item(
    payload: ChecklistItemCreate,
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> list[ChecklistItemRead]:
    items = await DynamicItemSource(session).add(payload.title, payload.description, payload.icon, payload.order)
    return _items(items)


@router.patch("/checklist-items/{item_id}", response_model=list[ChecklistItemRead])
async def admin_update_item(
    item_id: UUID,
    payload: ChecklistItemUpdate,
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> list[ChecklistItemRead]:
    return _items(await DynamicItemSource(session).update(item_id, payload.to_fields()))


@router.delete("/checklist-items/{item_id}", response_model=list[ChecklistItemRead])
async def admin_remove_item(
    item_id: UUID,
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
) -> list[ChecklistItemRead]:
    return _items(await DynamicItemSource(session).remove(item_id))
