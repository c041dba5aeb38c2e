"""
Stock Ledger Abstract Base Class

Defines the interface contract for every inventory mutation and inventory
read. The ledger owns stock quantities of TRACKED menu items and the
append-only StockAdjustment audit trail.

Concurrency contract:
    Every mutating operation locks the menu item row it touches for the
    duration of its transaction, so all mutations on one item are strictly
    serialized while mutations on different items proceed in parallel.
    Multi-item operations lock in ascending item id.

Transaction scoping:
    - add_stock, remove_stock, daily_stock_reset and set_inventory_type run as
      their own transaction and commit before returning.
    - deduct_stock_for_order and revert_stock_for_order join the caller's
      transaction; the order workflow commits or rolls them back together
      with the order write.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from app.models import InventoryType, MenuItem, StockAdjustment
from app.services.pagination import Page


@dataclass
class StockChange:
    """Outcome of one stock mutation."""
    item_id: int
    previous_stock: int
    new_stock: int

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
        }


@dataclass
class StockResetEntry:
    """Target state of one item in a daily reset."""
    item_id: int
    quantity: int
    low_stock_alert: Optional[int] = None


class BaseStockLedger(ABC):

    # =========================================================================
    # SELF-COMMITTING MUTATIONS
    # =========================================================================

    @abstractmethod
    async def add_stock(
        self,
        item_id: int,
        quantity: int,
        reason: str,
        actor: Optional[str] = None,
    ) -> MenuItem:
        """
        Add units to a TRACKED item and record MANUAL_ADD.

        Raises:
            NotFoundError: Unknown item
            InvalidInventoryOperationError: Item is UNLIMITED
        """
        pass

    @abstractmethod
    async def remove_stock(
        self,
        item_id: int,
        quantity: int,
        reason: str,
        actor: Optional[str] = None,
    ) -> MenuItem:
        """
        Remove units from a TRACKED item and record MANUAL_REMOVE.

        Reaching zero on an item with auto_mark_unavailable also marks it
        unavailable in the same transaction.

        Raises:
            NotFoundError: Unknown item
            InvalidInventoryOperationError: Item is UNLIMITED
            InsufficientStockError: Stock would go negative
        """
        pass

    @abstractmethod
    async def daily_stock_reset(
        self,
        entries: Sequence[StockResetEntry],
        actor: Optional[str] = None,
    ) -> List[StockChange]:
        """
        Set stock = initial stock = the given quantity for every entry, mark
        the items available, and record one DAILY_RESET per item. The batch
        is all-or-nothing.

        Raises:
            NotFoundError: Unknown item
            InvalidInventoryOperationError: A targeted item is not TRACKED
        """
        pass

    @abstractmethod
    async def set_inventory_type(
        self,
        item_id: int,
        inventory_type: InventoryType,
        low_stock_alert: Optional[int] = None,
        initial_stock: Optional[int] = None,
        actor: Optional[str] = None,
    ) -> MenuItem:
        """
        Switch an item between TRACKED and UNLIMITED.

        TRACKED -> UNLIMITED clears every stock field. UNLIMITED -> TRACKED
        initialises stock and initial stock to `initial_stock` (default 0),
        the threshold to `low_stock_alert` or the configured default, and
        enables auto_mark_unavailable.
        """
        pass

    # =========================================================================
    # ORDER WORKFLOW MUTATIONS (join the caller's transaction)
    # =========================================================================

    @abstractmethod
    async def deduct_stock_for_order(
        self,
        item_id: int,
        quantity: int,
        order_id: str,
        actor: Optional[str] = None,
    ) -> Optional[StockChange]:
        """
        Deduct stock for an order line and record ORDER_DEDUCT.

        Sufficiency is re-verified under the row lock; any earlier check is
        advisory. Returns None when the item is no longer TRACKED.

        Raises:
            NotFoundError: Unknown item
            InsufficientStockError: Not enough stock at lock time
        """
        pass

    @abstractmethod
    async def revert_stock_for_order(
        self,
        item_id: int,
        quantity: int,
        order_id: str,
        actor: Optional[str] = None,
    ) -> Optional[StockChange]:
        """
        Return a cancelled order line's units and record ORDER_CANCELLED.

        Returns None (nothing to restore) for missing or UNLIMITED items.
        """
        pass

    # =========================================================================
    # READS
    # =========================================================================

    @abstractmethod
    async def find_low_stock(self) -> List[MenuItem]:
        """TRACKED items whose stock is at or below their threshold."""
        pass

    @abstractmethod
    async def find_out_of_stock(self) -> List[MenuItem]:
        """TRACKED items with zero stock."""
        pass

    @abstractmethod
    async def find_tracked(self) -> List[MenuItem]:
        """Every TRACKED item."""
        pass

    @abstractmethod
    async def find_history(
        self,
        item_id: int,
        page: int = 1,
        limit: int = 20,
    ) -> Page[StockAdjustment]:
        """Paginated audit trail of one item, newest first."""
        pass
