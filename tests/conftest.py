"""
Shared fixtures: a throwaway SQLite database per test, menu item seeding,
service instances and an HTTP client wired to the FastAPI app.
"""

from decimal import Decimal
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.core.config import Settings
from app.database import Database
from app.main import app, get_app_settings
from app.models import InventoryType, MenuItem
from app.services.orders import get_order_service
from app.services.stock import get_stock_ledger


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}",
        transaction_max_retries=10,
        transaction_retry_backoff_seconds=0.02,
        strict_status_transitions=False,
    )


@pytest_asyncio.fixture
async def db(settings):
    database = Database.from_settings(settings)
    await database.create_all()
    yield database
    await database.dispose()


@pytest_asyncio.fixture
async def session(db):
    async with db.session() as session:
        yield session


@pytest.fixture
def order_service(session, settings):
    return get_order_service(session, settings)


@pytest.fixture
def ledger(session, settings):
    return get_stock_ledger(session, settings)


@pytest.fixture
def make_item(db):
    """Insert a menu item in its own committed transaction, return its id."""

    async def _make(
        name: str = "Burger",
        price: str = "14000",
        tracked: bool = True,
        stock: Optional[int] = 10,
        low_stock_alert: Optional[int] = 5,
        is_available: bool = True,
        auto_mark_unavailable: bool = True,
        deleted: bool = False,
    ) -> int:
        item = MenuItem(
            name=name,
            price=Decimal(price),
            is_available=is_available,
            inventory_type=InventoryType.TRACKED if tracked else InventoryType.UNLIMITED,
            stock_quantity=stock if tracked else None,
            initial_stock=stock if tracked else None,
            low_stock_alert=low_stock_alert if tracked else None,
            auto_mark_unavailable=auto_mark_unavailable,
            deleted=deleted,
        )
        async with db.session() as s:
            s.add(item)
            await s.commit()
            return item.id

    return _make


@pytest.fixture
def fetch_item(db):
    """Read the committed state of a menu item through a fresh session."""

    async def _fetch(item_id: int) -> MenuItem:
        async with db.session() as s:
            return await s.get(MenuItem, item_id)

    return _fetch


@pytest_asyncio.fixture
async def client(db, settings):
    app.state.db = db
    app.dependency_overrides[get_app_settings] = lambda: settings
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
