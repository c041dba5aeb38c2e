"""
Order Lifecycle Orchestrator

Composes the menu item lookup, the order aggregate store and the stock
ledger into the order workflows:

    create_order  - validate, price, persist and reserve stock, all-or-nothing
    update_status - generic fulfillment progress, guarded by the state machine
    cancel_order  - compensating stock reversion plus the CANCELLED flip

Order creation flow (one transaction):
    1. Resolve every referenced menu item in one read (missing -> 404)
    2. Reject unavailable items, naming all of them
    3. Advisory stock pre-check for TRACKED items (fast fail only)
    4. Freeze price_at_order from the current menu price
    5. Total = sum(price_at_order * quantity)
    6. Persist order + lines, write the total, hand every line to the stock
       ledger in ascending item id; the ledger decides TRACKED under the item
       lock and re-checks stock there
    7. Commit, then reload the order with lines and menu items

Any failure in 1-6 rolls the whole unit back: no order, no lines, no
deductions. The service depends only on the abstract lookup, store and
ledger interfaces.
"""

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from app.core.config import Settings, get_settings
from app.core.exceptions import (
    InsufficientStockError,
    ItemsUnavailableError,
    NotFoundError,
)
from app.database import TransactionRunner
from app.models import MenuItem, Order, OrderStatus
from app.schemas import OrderCreate, OrderItemCreate
from app.services.menu.base import BaseMenuItemLookup
from app.services.orders import status as status_machine
from app.services.orders.base import BaseOrderRepository, OrderFilters, OrderLineDraft
from app.services.pagination import Page, validate_page
from app.services.stock.base import BaseStockLedger

logger = logging.getLogger(__name__)

MONEY = Decimal("0.01")


class OrderService:

    def __init__(
        self,
        orders: BaseOrderRepository,
        menu: BaseMenuItemLookup,
        stock: BaseStockLedger,
        transaction: TransactionRunner,
        settings: Optional[Settings] = None,
    ):
        self.orders = orders
        self.menu = menu
        self.stock = stock
        self.transaction = transaction
        self.settings = settings or get_settings()

    # =========================================================================
    # READS
    # =========================================================================

    async def get_order(self, order_id: str) -> Order:
        order = await self.orders.find_by_id(order_id)
        if order is None:
            raise NotFoundError.order(order_id)
        return order

    async def list_orders(
        self,
        filters: Optional[OrderFilters] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Page[Order]:
        limit = limit or self.settings.default_page_size
        validate_page(page, limit, self.settings.max_page_size)
        return await self.orders.find_all(filters or OrderFilters(), page=page, limit=limit)

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_order(self, waiter_id: str, data: OrderCreate) -> Order:
        """
        Create an order and reserve its stock in one atomic unit.

        Raises:
            NotFoundError: A referenced menu item does not exist
            ItemsUnavailableError: One or more items are marked unavailable
            InsufficientStockError: A TRACKED item cannot cover the request
            TransactionFailedError: Persistence failed; nothing was kept
        """

        async def work() -> str:
            items = await self.menu.find_items_by_ids(line.menu_item_id for line in data.items)

            self._ensure_available(items.values())
            self._ensure_stock(data.items, items)

            drafts = [
                OrderLineDraft(
                    menu_item_id=line.menu_item_id,
                    quantity=line.quantity,
                    price_at_order=Decimal(items[line.menu_item_id].price).quantize(MONEY),
                    notes=line.notes,
                )
                for line in data.items
            ]
            total = sum((draft.line_total for draft in drafts), Decimal("0")).quantize(MONEY)

            order = await self.orders.create(
                waiter_id=waiter_id,
                order_type=data.type,
                lines=drafts,
                table_id=data.table_id,
                customer_id=data.customer_id,
                notes=data.notes,
                external_order_id=data.external_order_id,
            )
            await self.orders.update_total(order, total)

            # Ascending item id keeps lock acquisition order stable across orders.
            # Every line goes to the ledger: tracking is decided under the item
            # lock, not from the unlocked lookup above.
            for draft in sorted(drafts, key=lambda draft: draft.menu_item_id):
                await self.stock.deduct_stock_for_order(
                    draft.menu_item_id,
                    draft.quantity,
                    order.id,
                    actor=waiter_id,
                )

            return order.id

        order_id = await self.transaction.run(work, name="create_order")
        order = await self.get_order(order_id)
        logger.info(
            f"Order {order.id} created by waiter {waiter_id}: "
            f"{len(order.lines)} line(s), total {order.total_amount}"
        )
        return order

    @staticmethod
    def _ensure_available(items: Iterable[MenuItem]) -> None:
        unavailable = sorted(
            (item for item in items if not item.is_available),
            key=lambda item: item.id,
        )
        if unavailable:
            raise ItemsUnavailableError(item.name for item in unavailable)

    @staticmethod
    def _ensure_stock(lines: List[OrderItemCreate], items: Dict[int, MenuItem]) -> None:
        """Advisory check; the deduction under lock is authoritative."""
        requested: Dict[int, int] = defaultdict(int)
        for line in lines:
            requested[line.menu_item_id] += line.quantity

        for item_id in sorted(requested):
            item = items[item_id]
            if not item.is_tracked:
                continue
            available = item.stock_quantity or 0
            if available < requested[item_id]:
                raise InsufficientStockError(
                    item.name,
                    available=available,
                    required=requested[item_id],
                )

    # =========================================================================
    # STATUS
    # =========================================================================

    async def update_status(self, order_id: str, new_status: OrderStatus) -> Order:
        """
        Move an order along the fulfillment flow.

        Raises:
            NotFoundError: Unknown order
            InvalidStatusTransitionError: Order is terminal, CANCELLED was
                requested, or (strict mode) the step is not the next one
        """

        async def work() -> Order:
            order = await self.orders.find_by_id(order_id, lock=True)
            if order is None:
                raise NotFoundError.order(order_id)

            status_machine.validate_status_update(
                order.status,
                new_status,
                strict=self.settings.strict_status_transitions,
            )
            previous = order.status
            await self.orders.update_status(order, new_status)
            logger.info(f"Order {order_id}: {previous.value} -> {new_status.value}")
            return order

        return await self.transaction.run(work, name=f"update_status order {order_id}")

    # =========================================================================
    # CANCEL
    # =========================================================================

    async def cancel_order(self, order_id: str, actor: Optional[str] = None) -> Order:
        """
        Cancel an order and return its TRACKED stock, atomically.

        Raises:
            NotFoundError: Unknown order
            CannotCancelDeliveredError: Order was delivered
            AlreadyCancelledError: Order is already cancelled
        """

        async def work() -> Order:
            order = await self.orders.find_by_id(order_id, lock=True)
            if order is None:
                raise NotFoundError.order(order_id)

            status_machine.validate_cancellation(order_id, order.status)

            lines = sorted(order.lines, key=lambda line: (line.menu_item_id, line.id))
            for line in lines:
                if line.menu_item is not None and line.menu_item.is_tracked:
                    await self.stock.revert_stock_for_order(
                        line.menu_item_id,
                        line.quantity,
                        order.id,
                        actor=actor,
                    )

            await self.orders.cancel(order)
            return order

        order = await self.transaction.run(work, name=f"cancel_order {order_id}")
        logger.info(f"Order {order_id} cancelled")
        return order
