from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from icc_checker.core.config import settings
from icc_checker.core.dependencies import get_backend
from icc_checker.schemas.audit import AuditRecordRead
from icc_checker.schemas.store import StorePublic
from icc_checker.services.backend import SqlAuditBackend
from icc_checker.services.exceptions import StoreUnavailable

router = APIRouter(prefix="/stores", tags=["stores"])


@router.get("", response_model=list[StorePublic])
async def list_stores(backend: SqlAuditBackend = Depends(get_backend)) -> list[StorePublic]:
    stores = await backend.list_stores()
    return [StorePublic(id=store.id, name=store.name) for store in stores]


@router.get("/{store_id}/audits", response_model=list[AuditRecordRead])
async def store_history(
    store_id: UUID,
    limit: int = Query(default=settings.store_history_limit, ge=1, le=50),
    backend: SqlAuditBackend = Depends(get_backend),
) -> list[AuditRecordRead]:
    store = await backend.get_store(store_id)
    if store.failed_lookup:
        raise StoreUnavailable("Store could not be loaded")
    if not store.is_found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Store not found")
    history = await backend.recent_audits_for_store(store_id, limit)
    if history.failed_lookup:
        raise StoreUnavailable("Audit history could not be loaded")
    return [AuditRecordRead.model_validate(record) for record in history.value or []]
