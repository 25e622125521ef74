"""
Pytest configuration and shared fixtures for the order engine tests.

Provides an in-memory SQLite DB, an ASGI test client wired to it, a
simulated payment processor, seeded catalog products and caller tokens.
"""
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from config import settings
from tests.fakes import WEBHOOK_SECRET

# ── Test Configuration ───────────────────────────────────────────────
# Set test-only values for settings that would normally come from .env
settings.jwt_secret = "test-jwt-secret-for-pytest-only"
settings.webhook_secret = WEBHOOK_SECRET
settings.simulation_mode = True

from main import app  # noqa: E402
from database import Base, get_db  # noqa: E402
from middleware.auth import issue_access_token  # noqa: E402
from middleware.rate_limit import get_limiter  # noqa: E402
from services.catalog_service import create_product  # noqa: E402
from services.payment_processor import SimulatedProcessor, reset_processor, set_processor  # noqa: E402

SHOP_ID = "shop-aaaa"
OTHER_SHOP_ID = "shop-bbbb"


# ── Database Fixtures ────────────────────────────────────────────────


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create an in-memory SQLite database session for each test.

    Uses StaticPool to allow in-memory SQLite with async SQLAlchemy.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def processor() -> SimulatedProcessor:
    """Simulated processor installed as the active adapter."""
    sim = SimulatedProcessor()
    set_processor(sim)
    yield sim
    reset_processor()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, processor: SimulatedProcessor):
    """
    ASGI test client with the in-memory database.

    Overrides get_db dependency to use test DB session.
    """
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    get_limiter().reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
    get_limiter().reset()


# ── Test Data Fixtures ────────────────────────────────────────────────


@pytest_asyncio.fixture
async def products(db_session: AsyncSession) -> dict:
    """Three products: burger (20.00) and fries (5.00) from one shop, soda (2.50) from another."""
    burger = await create_product(db_session, shop_id=SHOP_ID, name="Burger", price_cents=2000)
    fries = await create_product(db_session, shop_id=SHOP_ID, name="Fries", price_cents=500)
    soda = await create_product(db_session, shop_id=OTHER_SHOP_ID, name="Soda", price_cents=250)
    sold_out = await create_product(
        db_session, shop_id=SHOP_ID, name="Milkshake", price_cents=700, is_available=False
    )
    await db_session.commit()
    return {"burger": burger.id, "fries": fries.id, "soda": soda.id, "sold_out": sold_out.id}


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer_headers() -> dict:
    return _bearer(issue_access_token(user_id="cust-1", name="Ada"))


@pytest.fixture
def other_customer_headers() -> dict:
    return _bearer(issue_access_token(user_id="cust-2"))


@pytest.fixture
def shop_headers() -> dict:
    return _bearer(issue_access_token(user_id="owner-1", role="shop_owner", shop_id=SHOP_ID))


@pytest.fixture
def other_shop_headers() -> dict:
    return _bearer(issue_access_token(user_id="owner-2", role="shop_owner", shop_id=OTHER_SHOP_ID))


@pytest.fixture
def driver_headers() -> dict:
    return _bearer(issue_access_token(user_id="driver-1", role="driver"))


@pytest.fixture
def admin_headers() -> dict:
    return _bearer(issue_access_token(user_id="admin-1", role="admin"))
