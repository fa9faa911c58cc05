from fastapi import APIRouter, Depends

from icc_checker.core.dependencies import get_item_source
from icc_checker.schemas.checklist import ChecklistItemRead
from icc_checker.services.checklist import ItemSource

router = APIRouter(prefix="/checklist", tags=["checklist"])


@router.get("/items", response_model=list[ChecklistItemRead])
async def list_active_items(source: ItemSource = Depends(get_item_source)) -> list[ChecklistItemRead]:
    items = await source.active_items()
    return [ChecklistItemRead.model_validate(item) for item in items]
