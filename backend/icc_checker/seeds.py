import argparse
import asyncio

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.future import select

from icc_checker.core.config import settings
from icc_checker.models.checklist import ChecklistItem
from icc_checker.services.checklist import DEFAULT_CHECKLIST, ChecklistItemDefinition


def _build_item(definition: ChecklistItemDefinition) -> ChecklistItem:
    return ChecklistItem(
        title=definition.title,
        description=definition.description,
        icon=definition.icon,
        sort_order=definition.order,
        is_active=definition.active,
    )


async def seed_checklist(session: AsyncSession) -> int:
    """Insert the built-in checklist items whose title is not in the database yet."""
    existing = set((await session.execute(select(ChecklistItem.title))).scalars().all())
    created = 0
    for definition in DEFAULT_CHECKLIST:
        if definition.title in existing:
            continue
        session.add(_build_item(definition))
        created += 1
    await session.commit()
    return created


async def main() -> None:
    engine = create_async_engine(settings.database_url, future=True, echo=False)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)
    async with SessionLocal() as session:
        created = await seed_checklist(session)
    await engine.dispose()
    print(f"Checklist items created: {created}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Load the default checklist items")
    parser.parse_args()
    asyncio.run(main())
