"""
Shared fixtures for the payouts test suite.

Provides settings, an in-memory database and seeded creators so that all
tests run WITHOUT the shop API or a real database server.
"""

import os

# Must be set before the app modules read their settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SHOP_DOMAIN", "test-shop.myshopify.com")
os.environ.setdefault("SHOP_ACCESS_TOKEN", "shpat_test")

import uuid
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.database import Base, enable_sqlite_savepoints
from app.models.creator import Creator, CreatorRole, Product, ProductStatus

from shop_fixtures import SleepRecorder


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@pytest.fixture
def config():
    """Settings with test credentials and default business rules."""
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        SHOP_DOMAIN="test-shop.myshopify.com",
        SHOP_ACCESS_TOKEN="shpat_test",
        SHOP_BASE_CURRENCY="GBP",
        COMMISSION_RATE=Decimal("0.30"),
        PAYOUT_MIN_THRESHOLD=Decimal("20.00"),
        REFUND_ATTRIBUTION="status_override",
        CRON_API_KEY=None,
    )


@pytest.fixture
def sleep():
    return SleepRecorder()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(test_engine)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def add_creator(
    db: AsyncSession,
    name: str,
    products=(),
    currency: str = None,
    role: str = CreatorRole.CREATOR.value,
    is_approved: bool = True,
    payment_method: str = "paypal",
) -> Creator:
    """Insert a creator with (external_id, status) products."""
    creator = Creator(
        id=uuid.uuid4(),
        name=name,
        email=f"{name.lower().replace(' ', '.')}@example.com",
        role=role,
        is_approved=is_approved,
        payment_method=payment_method,
        currency=currency,
    )
    db.add(creator)
    for external_id, status in products:
        db.add(Product(
            creator_id=creator.id,
            external_product_id=external_id,
            title=f"Product {external_id}",
            status=status,
        ))
    await db.commit()
    # Reload so the products relationship is populated
    db.expunge(creator)
    return creator


@pytest.fixture
async def creators(db):
    """Two approved creators and one unapproved one."""
    alice = await add_creator(db, "Alice", [("101", ProductStatus.APPROVED.value), ("102", ProductStatus.APPROVED.value)])
    bob = await add_creator(db, "Bob", [("201", ProductStatus.APPROVED.value), ("202", ProductStatus.PENDING.value)], currency="EUR")
    carol = await add_creator(db, "Carol", [("301", ProductStatus.APPROVED.value)], is_approved=False)
    return {"alice": alice, "bob": bob, "carol": carol}


@pytest.fixture
def make_creator(db):
    async def _make(name, products=(), **kwargs):
        return await add_creator(db, name, products, **kwargs)
    return _make
