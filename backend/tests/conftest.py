import asyncio
from collections.abc import Iterator
from typing import Dict

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from icc_checker.db.base import Base
from icc_checker.db.session import get_session
from icc_checker.main import app
from icc_checker.models import Store, User
from icc_checker.core import security
from icc_checker.seeds import seed_checklist


@pytest.fixture(scope="module")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def test_app() -> Iterator[Dict[str, object]]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async def init_models() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with SessionLocal() as session:
            await seed_checklist(session)

    asyncio.run(init_models())

    async def override_get_session():
        async with SessionLocal() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    client = TestClient(app)
    yield {"client": client, "session_factory": SessionLocal}
    client.close()
    app.dependency_overrides.clear()
    asyncio.run(engine.dispose())


async def _add_store(session_factory, name: str, code: str) -> str:
    async with session_factory() as session:
        store = Store(name=name, code=code)
        session.add(store)
        await session.commit()
        return str(store.id)


async def _add_user(session_factory, email: str, password: str, is_admin: bool) -> None:
    async with session_factory() as session:
        session.add(User(email=email, hashed_password=security.hash_password(password), is_admin=is_admin))
        await session.commit()


@pytest.fixture
def make_store(test_app: Dict[str, object]):
    session_factory = test_app["session_factory"]

    def _make(name: str = "Acme", code: str = "1234") -> str:
        return asyncio.run(_add_store(session_factory, name, code))

    return _make


@pytest.fixture
def make_user(test_app: Dict[str, object]):
    session_factory = test_app["session_factory"]

    def _make(email: str, password: str, *, is_admin: bool = False) -> None:
        asyncio.run(_add_user(session_factory, email, password, is_admin))

    return _make
