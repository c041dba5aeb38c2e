"""
Order Service Factory

Wires the order workflow to one request-scoped session: the menu item
lookup, the order store and the stock ledger all share that session and one
transaction runner, so a workflow commits or rolls back as a single unit.

Usage:
    from app.services.orders import get_order_service

    service = get_order_service(session)
    order = await service.create_order(waiter_id, order_data)
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings
from app.database import TransactionRunner
from app.services.menu import MenuItemLookup
from app.services.orders.base import BaseOrderRepository, OrderFilters, OrderLineDraft
from app.services.orders.repository import OrderRepository
from app.services.orders.service import OrderService
from app.services.stock import StockLedger


def get_order_service(
    session: AsyncSession,
    settings: Optional[Settings] = None,
) -> OrderService:
    """Build the order workflow bound to a session."""
    settings = settings or get_settings()
    transaction = TransactionRunner(session, settings)
    return OrderService(
        orders=OrderRepository(session),
        menu=MenuItemLookup(session),
        stock=StockLedger(session, settings, transaction),
        transaction=transaction,
        settings=settings,
    )


__all__ = [
    "get_order_service",
    "OrderService",
    "BaseOrderRepository",
    "OrderRepository",
    "OrderFilters",
    "OrderLineDraft",
]
