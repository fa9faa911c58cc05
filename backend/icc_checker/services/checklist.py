from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from icc_checker.models.checklist import ChecklistItem
from icc_checker.services.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

DEFAULT_ICON = "📌"
_UPDATABLE_FIELDS = ("title", "description", "icon", "sort_order", "is_active")


@dataclass(frozen=True)
class ChecklistItemDefinition:
    id: str
    title: str
    description: str
    icon: str | None = None
    order: int | None = None
    active: bool = True

    @property
    def display_icon(self) -> str:
        return self.icon or DEFAULT_ICON


DEFAULT_CHECKLIST: tuple[ChecklistItemDefinition, ...] = (
    ChecklistItemDefinition(
        id="fonds-de-caisse",
        title="Fonds de caisse",
        description="Le fonds de caisse a été compté en début et en fin de journée et correspond au montant attendu.",
        icon="💶",
        order=1,
    ),
    ChecklistItemDefinition(
        id="remises-en-banque",
        title="Remises en banque",
        description="Les remises en banque de la semaine ont été déposées et les bordereaux sont archivés.",
        icon="🏦",
        order=2,
    ),
    ChecklistItemDefinition(
        id="coffre",
        title="Coffre",
        description="Le contenu du coffre a été recompté et consigné dans le registre.",
        icon="🔐",
        order=3,
    ),
    ChecklistItemDefinition(
        id="annulations-remboursements",
        title="Annulations et remboursements",
        description="Chaque annulation ou remboursement est justifié par un ticket et signé par un responsable.",
        icon="🧾",
        order=4,
    ),
    ChecklistItemDefinition(
        id="remises-accordees",
        title="Remises accordées",
        description="Les remises manuelles saisies en caisse sont justifiées et autorisées.",
        icon="🏷",
        order=5,
    ),
    ChecklistItemDefinition(
        id="inventaire-tournant",
        title="Inventaire tournant",
        description="L'inventaire tournant de la semaine a été réalisé et les écarts ont été analysés.",
        icon="📦",
        order=6,
    ),
    ChecklistItemDefinition(
        id="receptions",
        title="Réceptions marchandises",
        description="Les bons de livraison ont été contrôlés et rapprochés des commandes.",
        icon="🚚",
        order=7,
    ),
    ChecklistItemDefinition(
        id="codes-acces",
        title="Codes d'accès",
        description="Les codes d'accès caisse sont personnels et aucun code n'est partagé entre vendeurs.",
        icon="🔑",
        order=8,
    ),
)


def _sort_key(item: ChecklistItemDefinition) -> tuple[bool, int, str]:
    # Items without an order go last, as with an ascending SQL sort.
    return (item.order is None, item.order or 0, item.title.lower())


def order_items(items: Sequence[ChecklistItemDefinition]) -> list[ChecklistItemDefinition]:
    return sorted(items, key=_sort_key)


def active_only(items: Sequence[ChecklistItemDefinition]) -> list[ChecklistItemDefinition]:
    return [item for item in order_items(items) if item.active]


def definition_from_row(row: ChecklistItem) -> ChecklistItemDefinition:
    return ChecklistItemDefinition(
        id=str(row.id),
        title=row.title,
        description=row.description,
        icon=row.icon,
        order=row.sort_order,
        active=row.is_active is not False,
    )


class ItemSource(Protocol):
    async def active_items(self) -> list[ChecklistItemDefinition]: ...


class StaticItemSource:
    """Compiled-in checklist."""

    def __init__(self, items: Sequence[ChecklistItemDefinition] = DEFAULT_CHECKLIST) -> None:
        self._items = tuple(items)

    async def active_items(self) -> list[ChecklistItemDefinition]:
        return active_only(self._items)


class DynamicItemSource:
    """Admin-managed checklist stored in the database.

    Mutations are written first and the whole list is then reloaded; the reloaded
    list is what callers get back, never a locally patched copy.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def reload(self) -> list[ChecklistItemDefinition]:
        try:
            rows = await list_items(self.session)
        except SQLAlchemyError:
            logger.exception("checklist item load failed")
            raise StoreUnavailable("Checklist items could not be loaded") from None
        return order_items([definition_from_row(row) for row in rows])

    async def active_items(self) -> list[ChecklistItemDefinition]:
        return active_only(await self.reload())

    async def add(
        self, title: str, description: str, icon: str | None = None, order: int | None = None
    ) -> list[ChecklistItemDefinition]:
        await create_item(self.session, title=title, description=description, icon=icon, sort_order=order)
        return await self.reload()

    async def update(self, item_id: uuid.UUID, fields: dict[str, Any]) -> list[ChecklistItemDefinition]:
        await update_item(self.session, item_id, fields)
        return await self.reload()

    async def remove(self, item_id: uuid.UUID) -> list[ChecklistItemDefinition]:
        await delete_item(self.session, item_id)
        return await self.reload()


def _required_text(value: str | None, label: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{label} is required")
    return cleaned


def _optional_text(value: str | None) -> str | None:
    cleaned = (value or "").strip()
    return cleaned or None


async def list_items(session: AsyncSession) -> list[ChecklistItem]:
    result = await session.execute(
        select(ChecklistItem).order_by(ChecklistItem.sort_order.is_(None), ChecklistItem.sort_order, ChecklistItem.title)
    )
    return list(result.scalars().all())


async def _commit_or_unavailable(session: AsyncSession, action: str) -> None:
    try:
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("checklist item %s failed", action)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"Checklist item {action} failed"
        ) from None


async def _get_item_or_404(session: AsyncSession, item_id: uuid.UUID) -> ChecklistItem:
    item = await session.get(ChecklistItem, item_id)
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Checklist item not found")
    return item


async def create_item(
    session: AsyncSession,
    *,
    title: str,
    description: str,
    icon: str | None = None,
    sort_order: int | None = None,
) -> ChecklistItem:
    item = ChecklistItem(
        title=_required_text(title, "Title"),
        description=_required_text(description, "Description"),
        icon=_optional_text(icon),
        sort_order=sort_order,
        is_active=True,
    )
    session.add(item)
    await _commit_or_unavailable(session, "creation")
    logger.info("checklist item created", extra={"item_id": str(item.id)})
    return item


async def update_item(session: AsyncSession, item_id: uuid.UUID, data: dict[str, Any]) -> ChecklistItem:
    item = await _get_item_or_404(session, item_id)
    for field, value in data.items():
        if field not in _UPDATABLE_FIELDS:
            continue
        if field in ("title", "description"):
            value = _required_text(value, field.capitalize())
        elif field == "icon":
            value = _optional_text(value)
        setattr(item, field, value)
    await _commit_or_unavailable(session, "update")
    logger.info("checklist item updated", extra={"item_id": str(item_id), "fields": sorted(data)})
    return item


async def delete_item(session: AsyncSession, item_id: uuid.UUID) -> None:
    item = await _get_item_or_404(session, item_id)
    await session.delete(item)
    await _commit_or_unavailable(session, "deletion")
    logger.info("checklist item deleted", extra={"item_id": str(item_id)})
