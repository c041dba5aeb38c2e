"""
                        Services Module

Business logic behind the API. Each service has an abstract base defining
its contract, a SQLAlchemy implementation, and a `get_*` factory binding it
to a session.

Services:
    - menu: Menu item resolution for order creation
    - orders: Order aggregate store and the order lifecycle workflow
    - stock: Stock ledger (mutations, audit trail, inventory reads)
"""

from app.services.menu import get_menu_item_lookup
from app.services.orders import get_order_service
from app.services.stock import get_stock_ledger

__all__ = ["get_menu_item_lookup", "get_order_service", "get_stock_ledger"]
