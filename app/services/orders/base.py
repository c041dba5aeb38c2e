"""
Order Aggregate Store Abstract Base Class

Persists an order together with its lines as one unit and applies the
few mutations an order ever sees: its total (once, after pricing) and its
status. Nothing here commits; the order workflow owns the transaction.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from app.models import Order, OrderStatus, OrderType
from app.services.pagination import Page


@dataclass
class OrderLineDraft:
    """A priced line, ready to be persisted."""
    menu_item_id: int
    quantity: int
    price_at_order: Decimal
    notes: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.price_at_order * self.quantity


@dataclass
class OrderFilters:
    status: Optional[OrderStatus] = None
    type: Optional[OrderType] = None
    waiter_id: Optional[str] = None
    table_id: Optional[int] = None
    created_on: Optional[date] = None


class BaseOrderRepository(ABC):

    @abstractmethod
    async def create(
        self,
        waiter_id: str,
        order_type: OrderType,
        lines: Sequence[OrderLineDraft],
        table_id: Optional[int] = None,
        customer_id: Optional[str] = None,
        notes: Optional[str] = None,
        external_order_id: Optional[str] = None,
    ) -> Order:
        """Persist a PENDING order with a zero total and all its lines."""
        pass

    @abstractmethod
    async def update_total(self, order: Order, total_amount: Decimal) -> Order:
        pass

    @abstractmethod
    async def update_status(self, order: Order, status: OrderStatus) -> Order:
        pass

    @abstractmethod
    async def cancel(self, order: Order) -> Order:
        pass

    @abstractmethod
    async def find_by_id(self, order_id: str, lock: bool = False) -> Optional[Order]:
        """
        Load an order with its lines and their menu items.

        With `lock`, the order row is held FOR UPDATE until the transaction ends.
        """
        pass

    @abstractmethod
    async def find_all(
        self,
        filters: OrderFilters,
        page: int = 1,
        limit: int = 20,
    ) -> Page[Order]:
        """Paginated orders with lines, newest first."""
        pass
