"""
Pytest fixtures for test database, client, and admin authentication.

Each test gets its own SQLite database file (aiosqlite) so concurrent holds
run against a real unique index, with separate connections per session.
"""

import os
import tempfile

# Settings are read once; configure them before the application is imported.
os.environ["DATABASE_URL"] = (
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'boxoffice_unused.db')}"
)
os.environ["REDIS_ENABLED"] = "false"
os.environ["SWEEPER_ENABLED"] = "false"
os.environ["TWOCHECKOUT_MERCHANT_CODE"] = "TEST-MERCHANT"
os.environ["TWOCHECKOUT_SECRET_KEY"] = "test-secret"
os.environ["TWOCHECKOUT_SANDBOX"] = "true"
os.environ["ADMIN_EMAIL"] = "admin@teatri.al"
os.environ["ADMIN_PASSWORD"] = "admin-password"
os.environ["RESEND_API_KEY"] = ""
os.environ["CRON_SECRET"] = ""

from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from boxoffice.main import app
from boxoffice.db.base import Base
from boxoffice.db.session import get_session_factory
from boxoffice.core.security import create_access_token, generate_public_token
from boxoffice.models.event import Event, PriceArea
from boxoffice.models.order import LockStatus, Order, SeatLock
from boxoffice.services.pricing import SaleStatus, build_selectors

TEST_SECRET = "test-secret"

FRONT_ROWS = ["A", "B", "C", "D", "E"]
BACK_ROWS = ["F", "G", "H", "J", "K", "L", "M", "N", "P", "Q", "R"]


def make_order(event_id: int, email: str = "buyer@example.com") -> Order:
    """Unsaved PENDING order for inventory-level tests."""
    return Order(
        event_id=event_id,
        email=email,
        full_name="Test Buyer",
        currency="ALL",
        total_amount=0,
        public_token=generate_public_token(),
    )


async def count_locks(db: AsyncSession, event_id: int, status: Optional[LockStatus] = None) -> int:
    query = select(func.count(SeatLock.id)).where(SeatLock.event_id == event_id)
    if status is not None:
        query = query.where(SeatLock.status == LockStatus(status).value)
    return (await db.execute(query)).scalar() or 0


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Fresh database file per test with all tables created."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'boxoffice_test.db'}",
        echo=False,
        connect_args={"timeout": 30},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests (and background tasks) use the test database."""
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict:
    token = create_access_token(data={"sub": "admin@teatri.al"})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def test_event(db_session: AsyncSession) -> Event:
    """
    Upcoming event priced in two tiers:
    rows A-E at 1000 (priority 10), rows F-R at 500 (priority 5).
    Everything else matches no rule and is not for sale.
    """
    event = Event(
        title="La Traviata",
        description="Opera in three acts",
        start_date=datetime.now(timezone.utc) + timedelta(days=30),
        location="Main Hall",
    )
    db_session.add(event)
    await db_session.flush()

    db_session.add_all([
        PriceArea(
            event_id=event.id,
            name="Front",
            selectors=build_selectors(rows=FRONT_ROWS),
            sale_status=SaleStatus.FOR_SALE.value,
            price=1000,
            priority=10,
            color="#c0392b",
        ),
        PriceArea(
            event_id=event.id,
            name="Back",
            selectors=build_selectors(rows=BACK_ROWS),
            sale_status=SaleStatus.FOR_SALE.value,
            price=500,
            priority=5,
            color="#2980b9",
        ),
    ])
    await db_session.commit()
    return event


@pytest_asyncio.fixture
async def past_event(db_session: AsyncSession) -> Event:
    event = Event(
        title="Last Season Gala",
        start_date=datetime.now(timezone.utc) - timedelta(days=30),
        location="Main Hall",
    )
    db_session.add(event)
    await db_session.commit()
    return event
