"""
Stock Ledger

Usage:
    from app.services.stock import get_stock_ledger

    ledger = get_stock_ledger(session)
    await ledger.add_stock(item_id=12, quantity=10, reason="Delivery", actor=user_id)
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.services.stock.base import BaseStockLedger, StockChange, StockResetEntry
from app.services.stock.ledger import StockLedger


def get_stock_ledger(
    session: AsyncSession,
    settings: Optional[Settings] = None,
) -> BaseStockLedger:
    """Build the stock ledger bound to a session."""
    return StockLedger(session, settings)


__all__ = [
    "get_stock_ledger",
    "BaseStockLedger",
    "StockLedger",
    "StockChange",
    "StockResetEntry",
]
