import os
import sys
from datetime import datetime, timezone
from itertools import count
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()
os.environ.setdefault("TRACING_ENABLED", "false")
os.environ.setdefault("SEED_PRIZE_CATALOG", "false")

from bonuswheel_api.app import create_app  # noqa: E402
from bonuswheel_api.db.base import Base  # noqa: E402
from bonuswheel_api.db.session import get_session  # noqa: E402
import bonuswheel_api.models  # noqa: E402,F401
from bonuswheel_api.models.customer import Customer, CustomerRoleEnum  # noqa: E402
from bonuswheel_api.observability.ledger import get_ledger_store  # noqa: E402


_external_ids = count(1000)


async def create_customer(session: AsyncSession, *, role: str = CustomerRoleEnum.CUSTOMER.value) -> Customer:
    external_id = next(_external_ids)
    now = datetime.now(timezone.utc)
    customer = Customer(
        external_id=external_id,
        first_name="Test",
        last_name=f"Customer{external_id}",
        phone=f"+7900{external_id:07d}",
        role=role,
        created_at=now,
        updated_at=now,
    )
    session.add(customer)
    await session.commit()
    return customer


@pytest.fixture(autouse=True)
def reset_ledger_store():
    get_ledger_store().reset()
    yield
    get_ledger_store().reset()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """Engine with one connection per session, for tests that need real concurrency."""

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        future=True,
        connect_args={"timeout": 15},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_customer():
    return create_customer
