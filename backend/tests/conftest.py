"""Pytest configuration and fixtures for roastery tests.

Each test gets a fresh in-memory SQLite database (through aiosqlite) with
the full schema created from the models, a seeded catalog, one user per
role, and an HTTP client wired to the same session.
"""

from datetime import date
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from roastery.auth.jwt import create_access_token
from roastery.auth.permissions import resolve_permissions
from roastery.database import Base, get_db
from roastery.main import app
from roastery.models import (
    GreenBean,
    InventoryItem,
    Location,
    PackageTemplate,
    ProductDefinition,
    RoastingBatch,
    User,
    UserRole,
)
from roastery.services.roasting import finish_batch, start_batch


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """In-memory SQLite engine with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the get_db dependency bound to the test session."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Users & tokens ───────────────────────────────────────────────

async def _make_user(db: AsyncSession, role: UserRole, name: str) -> User:
    user = User(
        email=f"{role.value.lower()}@roastery.test",
        full_name=name,
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    return user


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await _make_user(db_session, UserRole.ADMIN, "Alex Admin")


@pytest_asyncio.fixture
async def manager(db_session: AsyncSession) -> User:
    return await _make_user(db_session, UserRole.MANAGER, "Morgan Manager")


@pytest_asyncio.fixture
async def roaster(db_session: AsyncSession) -> User:
    return await _make_user(db_session, UserRole.ROASTER, "Robin Roaster")


@pytest_asyncio.fixture
async def cashier(db_session: AsyncSession) -> User:
    return await _make_user(db_session, UserRole.CASHIER, "Casey Cashier")


@pytest_asyncio.fixture
async def warehouse(db_session: AsyncSession) -> User:
    return await _make_user(db_session, UserRole.WAREHOUSE_STAFF, "Wren Warehouse")


def _token_for(user: User) -> str:
    return create_access_token(
        user_id=user.id,
        role=user.role.value,
        permissions=resolve_permissions(user.role.value, user.custom_permissions),
    )


@pytest.fixture
def auth_headers():
    """Build bearer headers for a user, carrying its effective permissions."""

    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {_token_for(user)}"}

    return _headers


# ── Catalog ──────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def roastery_location(db_session: AsyncSession) -> Location:
    location = Location(name="Roastery", location_type="ROASTERY", is_roastery=True)
    db_session.add(location)
    await db_session.flush()
    return location


@pytest_asyncio.fixture
async def branch(db_session: AsyncSession) -> Location:
    location = Location(name="Downtown Branch", location_type="BRANCH")
    db_session.add(location)
    await db_session.flush()
    return location


@pytest_asyncio.fixture
async def bean(db_session: AsyncSession) -> GreenBean:
    lot = GreenBean(
        origin="Ethiopia",
        variety="Yirgacheffe",
        supplier="Highland Importers",
        quantity_kg=50.0,
        cost_per_kg=40.0,
    )
    db_session.add(lot)
    await db_session.flush()
    return lot


@pytest_asyncio.fixture
async def template_250g(db_session: AsyncSession) -> PackageTemplate:
    template = PackageTemplate(
        size_label="250g",
        weight_kg=0.25,
        unit_cost=2.0,
        shelf_life_days=180,
        sku_prefix="ETH250",
    )
    db_session.add(template)
    await db_session.flush()
    return template


@pytest_asyncio.fixture
async def template_1kg(db_session: AsyncSession) -> PackageTemplate:
    template = PackageTemplate(
        size_label="1kg",
        weight_kg=1.0,
        unit_cost=5.0,
        shelf_life_days=None,
        sku_prefix="ETH1K",
    )
    db_session.add(template)
    await db_session.flush()
    return template


@pytest_asyncio.fixture
async def packaged_product(db_session: AsyncSession, template_250g) -> ProductDefinition:
    product = ProductDefinition(
        name="Ethiopia Yirgacheffe 250g",
        category="Single Origin",
        product_type="PACKAGED_COFFEE",
        roast_level="Light",
        template_id=template_250g.id,
        base_price=65.0,
        labor_cost=1.5,
        roasting_overhead=0.5,
    )
    db_session.add(product)
    await db_session.flush()
    return product


@pytest_asyncio.fixture
async def kilo_product(db_session: AsyncSession, template_1kg) -> ProductDefinition:
    product = ProductDefinition(
        name="Ethiopia Yirgacheffe 1kg",
        product_type="PACKAGED_COFFEE",
        template_id=template_1kg.id,
        base_price=220.0,
    )
    db_session.add(product)
    await db_session.flush()
    return product


@pytest_asyncio.fixture
async def milk(db_session: AsyncSession, branch) -> InventoryItem:
    item = InventoryItem(
        name="Milk", item_type="INGREDIENT", unit="ml",
        location_id=branch.id, stock_qty=10000.0, price=0.01,
    )
    db_session.add(item)
    await db_session.flush()
    return item


@pytest_asyncio.fixture
async def espresso_beans(db_session: AsyncSession, branch) -> InventoryItem:
    item = InventoryItem(
        name="Espresso Beans", item_type="INGREDIENT", unit="g",
        location_id=branch.id, stock_qty=1000.0, price=0.2,
    )
    db_session.add(item)
    await db_session.flush()
    return item


@pytest_asyncio.fixture
async def vanilla_syrup(db_session: AsyncSession, branch) -> InventoryItem:
    item = InventoryItem(
        name="Vanilla Syrup", item_type="INGREDIENT", unit="pump",
        location_id=branch.id, stock_qty=50.0, price=0.5,
    )
    db_session.add(item)
    await db_session.flush()
    return item


@pytest_asyncio.fixture
async def latte_product(db_session: AsyncSession, milk, espresso_beans, vanilla_syrup) -> ProductDefinition:
    product = ProductDefinition(
        name="Latte",
        product_type="BEVERAGE",
        base_price=20.0,
        recipe=[
            {"ingredient_id": espresso_beans.id, "name": "Espresso Beans", "amount": 18, "unit": "g"},
            {"ingredient_id": milk.id, "name": "Milk", "amount": 200, "unit": "ml"},
        ],
        add_ons=[
            {"id": "vanilla", "name": "Vanilla", "price": 3.0, "ingredient_id": vanilla_syrup.id},
            {"id": "extra-shot", "name": "Extra shot", "price": 4.0},
        ],
    )
    db_session.add(product)
    await db_session.flush()
    return product


@pytest_asyncio.fixture
async def latte_item(db_session: AsyncSession, branch, latte_product) -> InventoryItem:
    item = InventoryItem(
        name="Latte", item_type="BEVERAGE", location_id=branch.id,
        stock_qty=0.0, price=20.0, product_id=latte_product.id,
    )
    db_session.add(item)
    await db_session.flush()
    return item


@pytest_asyncio.fixture
async def shelf_item(db_session: AsyncSession, branch) -> InventoryItem:
    """A packaged item priced at 50 with 100 on the shelf."""
    item = InventoryItem(
        name="House Blend 500g", item_type="PACKAGED_COFFEE", size="500g",
        location_id=branch.id, stock_qty=100.0, price=50.0, cost_per_unit=30.0,
    )
    db_session.add(item)
    await db_session.flush()
    return item


# ── Batches ──────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def completed_batch(db_session: AsyncSession, roaster, bean) -> RoastingBatch:
    """12 kg green in, 10 kg roasted out."""
    batch = await start_batch(
        db_session, roaster,
        bean_id=bean.id, pre_weight_kg=12.0, level="Light",
        roast_date=date(2026, 3, 2),
    )
    return await finish_batch(
        db_session, roaster, batch_id=batch.id, post_weight_kg=10.0,
    )


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
