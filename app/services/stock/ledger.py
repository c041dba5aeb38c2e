"""
SQLAlchemy-backed Stock Ledger.

Each mutation follows the same shape:

    1. SELECT ... FOR UPDATE the menu item row (populate_existing, so the
       identity map never serves a stale quantity)
    2. guarded UPDATE computed in SQL:
           SET stock_quantity = stock_quantity + :delta
           WHERE id = :id AND stock_quantity >= :needed
           RETURNING stock_quantity, is_available
       a missing row means the stock was not there
    3. INSERT the StockAdjustment row in the same transaction

The guard makes the write itself the authoritative sufficiency check, even
on backends that ignore FOR UPDATE (SQLite).
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from sqlalchemy import and_, case, false, func, select, true, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.core.config import Settings, get_settings
from app.core.exceptions import (
    InsufficientStockError,
    InvalidInventoryOperationError,
    NotFoundError,
)
from app.database import TransactionRunner
from app.models import InventoryType, MenuItem, StockAdjustment, StockAdjustmentType, utc_now
from app.services.pagination import Page, validate_page
from app.services.stock.base import BaseStockLedger, StockChange, StockResetEntry

logger = logging.getLogger(__name__)

DAILY_RESET_REASON = "Begin of the day"
TRACKING_ENABLED_REASON = "Inventory tracking enabled"


class StockLedger(BaseStockLedger):

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        transaction: Optional[TransactionRunner] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.transaction = transaction or TransactionRunner(session, self.settings)
        self._last_recorded_at: Optional[datetime] = None

    # =========================================================================
    # SELF-COMMITTING MUTATIONS
    # =========================================================================

    async def add_stock(
        self,
        item_id: int,
        quantity: int,
        reason: str,
        actor: Optional[str] = None,
    ) -> MenuItem:
        self._require_positive(quantity)

        async def work() -> MenuItem:
            item = await self._lock_tracked_item(item_id, "add stock to")
            change = await self._apply_delta(item, quantity, availability=true())
            self._record(
                item_id,
                StockAdjustmentType.MANUAL_ADD,
                change,
                quantity,
                reason=reason,
                actor=actor,
            )
            return item

        item = await self.transaction.run(work, name=f"add_stock item {item_id}")
        logger.info(f"Added {quantity} to item #{item_id} ({item.stock_quantity} in stock)")
        return item

    async def remove_stock(
        self,
        item_id: int,
        quantity: int,
        reason: str,
        actor: Optional[str] = None,
    ) -> MenuItem:
        self._require_positive(quantity)

        async def work() -> MenuItem:
            item = await self._lock_tracked_item(item_id, "remove stock from")
            was_available = item.is_available
            change = await self._apply_delta(item, -quantity)
            self._record(
                item_id,
                StockAdjustmentType.MANUAL_REMOVE,
                change,
                quantity,
                reason=reason,
                actor=actor,
            )
            self._record_auto_block(item, was_available, actor=actor)
            return item

        item = await self.transaction.run(work, name=f"remove_stock item {item_id}")
        logger.info(f"Removed {quantity} from item #{item_id} ({item.stock_quantity} in stock)")
        return item

    async def daily_stock_reset(
        self,
        entries: Sequence[StockResetEntry],
        actor: Optional[str] = None,
    ) -> List[StockChange]:
        for entry in entries:
            if entry.quantity < 0:
                raise InvalidInventoryOperationError(
                    f"Reset quantity for item {entry.item_id} cannot be negative"
                )

        # Fixed lock order across concurrent batches
        ordered = sorted(entries, key=lambda entry: entry.item_id)

        async def work() -> List[StockChange]:
            changes = []
            for entry in ordered:
                item = await self._lock_item(entry.item_id)
                if item is None:
                    raise NotFoundError.menu_item(entry.item_id)
                if not item.is_tracked:
                    raise InvalidInventoryOperationError(
                        f"Only TRACKED items can have stock reset ({item.name} is UNLIMITED)"
                    )

                change = StockChange(
                    item_id=item.id,
                    previous_stock=item.stock_quantity or 0,
                    new_stock=entry.quantity,
                )
                item.stock_quantity = entry.quantity
                item.initial_stock = entry.quantity
                if entry.low_stock_alert is not None:
                    item.low_stock_alert = entry.low_stock_alert
                item.is_available = True

                self._record(
                    item.id,
                    StockAdjustmentType.DAILY_RESET,
                    change,
                    entry.quantity,
                    reason=DAILY_RESET_REASON,
                    actor=actor,
                )
                changes.append(change)
            return changes

        changes = await self.transaction.run(work, name="daily_stock_reset")
        logger.info(f"Daily stock reset applied to {len(changes)} item(s)")
        return changes

    async def set_inventory_type(
        self,
        item_id: int,
        inventory_type: InventoryType,
        low_stock_alert: Optional[int] = None,
        initial_stock: Optional[int] = None,
        actor: Optional[str] = None,
    ) -> MenuItem:
        if initial_stock is not None and initial_stock < 0:
            raise InvalidInventoryOperationError("Initial stock cannot be negative")

        async def work() -> MenuItem:
            item = await self._lock_item(item_id)
            if item is None:
                raise NotFoundError.menu_item(item_id)

            previous_type = item.inventory_type

            if previous_type == InventoryType.TRACKED and inventory_type == InventoryType.UNLIMITED:
                item.stock_quantity = None
                item.initial_stock = None
                item.low_stock_alert = None

            elif previous_type == InventoryType.UNLIMITED and inventory_type == InventoryType.TRACKED:
                seed = initial_stock or 0
                item.stock_quantity = seed
                item.initial_stock = seed
                item.low_stock_alert = low_stock_alert or self.settings.default_low_stock_alert
                item.auto_mark_unavailable = True
                if seed > 0:
                    self._record(
                        item.id,
                        StockAdjustmentType.MANUAL_ADD,
                        StockChange(item.id, 0, seed),
                        seed,
                        reason=TRACKING_ENABLED_REASON,
                        actor=actor,
                    )

            elif inventory_type == InventoryType.TRACKED and low_stock_alert is not None:
                item.low_stock_alert = low_stock_alert

            item.inventory_type = inventory_type
            return item

        item = await self.transaction.run(work, name=f"set_inventory_type item {item_id}")
        logger.info(f"Item #{item_id} inventory type is now {inventory_type.value}")
        return item

    # =========================================================================
    # ORDER WORKFLOW MUTATIONS
    # =========================================================================

    async def deduct_stock_for_order(
        self,
        item_id: int,
        quantity: int,
        order_id: str,
        actor: Optional[str] = None,
    ) -> Optional[StockChange]:
        self._require_positive(quantity)

        item = await self._lock_item(item_id)
        if item is None:
            raise NotFoundError.menu_item(item_id)
        if not item.is_tracked:
            logger.debug(f"Item #{item_id} is not tracked, nothing to deduct for order {order_id}")
            return None

        was_available = item.is_available
        change = await self._apply_delta(item, -quantity)
        self._record(
            item_id,
            StockAdjustmentType.ORDER_DEDUCT,
            change,
            quantity,
            reason=f"Order {order_id}",
            actor=actor,
            order_id=order_id,
        )
        self._record_auto_block(item, was_available, actor=actor, order_id=order_id)
        return change

    async def revert_stock_for_order(
        self,
        item_id: int,
        quantity: int,
        order_id: str,
        actor: Optional[str] = None,
    ) -> Optional[StockChange]:
        self._require_positive(quantity)

        item = await self._lock_item(item_id)
        if item is None or not item.is_tracked:
            logger.warning(
                f"Item #{item_id} is missing or not tracked; "
                f"no stock restored for cancelled order {order_id}"
            )
            return None

        restore_availability = case(
            (
                and_(
                    MenuItem.auto_mark_unavailable.is_(True),
                    MenuItem.stock_quantity + quantity > 0,
                ),
                true(),
            ),
            else_=MenuItem.is_available,
        )
        change = await self._apply_delta(item, quantity, availability=restore_availability)
        self._record(
            item_id,
            StockAdjustmentType.ORDER_CANCELLED,
            change,
            quantity,
            reason=f"Order {order_id} cancelled",
            actor=actor,
            order_id=order_id,
        )
        return change

    # =========================================================================
    # READS
    # =========================================================================

    async def find_low_stock(self) -> List[MenuItem]:
        result = await self.session.execute(
            select(MenuItem)
            .where(
                MenuItem.inventory_type == InventoryType.TRACKED,
                MenuItem.deleted.is_(False),
                MenuItem.stock_quantity <= MenuItem.low_stock_alert,
            )
            .order_by(MenuItem.name)
        )
        return list(result.scalars().all())

    async def find_out_of_stock(self) -> List[MenuItem]:
        result = await self.session.execute(
            select(MenuItem)
            .where(
                MenuItem.inventory_type == InventoryType.TRACKED,
                MenuItem.deleted.is_(False),
                MenuItem.stock_quantity == 0,
            )
            .order_by(MenuItem.name)
        )
        return list(result.scalars().all())

    async def find_tracked(self) -> List[MenuItem]:
        result = await self.session.execute(
            select(MenuItem)
            .where(
                MenuItem.inventory_type == InventoryType.TRACKED,
                MenuItem.deleted.is_(False),
            )
            .order_by(MenuItem.id)
        )
        return list(result.scalars().all())

    async def find_history(
        self,
        item_id: int,
        page: int = 1,
        limit: int = 20,
    ) -> Page[StockAdjustment]:
        validate_page(page, limit, self.settings.max_page_size)
        result_page: Page[StockAdjustment] = Page(page=page, limit=limit)

        total_result = await self.session.execute(
            select(func.count(StockAdjustment.id)).where(StockAdjustment.menu_item_id == item_id)
        )
        result_page.total = total_result.scalar() or 0

        result = await self.session.execute(
            select(StockAdjustment)
            .where(StockAdjustment.menu_item_id == item_id)
            .order_by(StockAdjustment.created_at.desc(), StockAdjustment.id.desc())
            .offset(result_page.offset)
            .limit(limit)
        )
        result_page.items = list(result.scalars().all())
        return result_page

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _lock_item(self, item_id: int) -> Optional[MenuItem]:
        result = await self.session.execute(
            select(MenuItem)
            .where(MenuItem.id == item_id, MenuItem.deleted.is_(False))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _lock_tracked_item(self, item_id: int, action: str) -> MenuItem:
        item = await self._lock_item(item_id)
        if item is None:
            raise NotFoundError.menu_item(item_id)
        if not item.is_tracked:
            raise InvalidInventoryOperationError(f"Cannot {action} UNLIMITED item {item.name}")
        return item

    async def _apply_delta(self, item: MenuItem, delta: int, availability=None) -> StockChange:
        """
        Apply `delta` to the locked item's stock in SQL and sync the ORM copy.

        Negative deltas only match rows that still hold enough stock. When no
        availability expression is given, a decrement that empties the item
        marks it unavailable if auto_mark_unavailable is set.
        """
        if availability is None:
            availability = case(
                (
                    and_(
                        MenuItem.auto_mark_unavailable.is_(True),
                        MenuItem.stock_quantity + delta <= 0,
                    ),
                    false(),
                ),
                else_=MenuItem.is_available,
            )

        stmt = update(MenuItem).where(
            MenuItem.id == item.id,
            MenuItem.inventory_type == InventoryType.TRACKED,
        )
        if delta < 0:
            stmt = stmt.where(MenuItem.stock_quantity >= -delta)

        stmt = (
            stmt.values(
                stock_quantity=MenuItem.stock_quantity + delta,
                is_available=availability,
            )
            .returning(MenuItem.stock_quantity, MenuItem.is_available, MenuItem.updated_at)
            .execution_options(synchronize_session=False)
        )
        row = (await self.session.execute(stmt)).one_or_none()

        if row is None:
            logger.info(
                f"Rejected stock change of {delta} on item #{item.id}: "
                f"{item.stock_quantity} available"
            )
            raise InsufficientStockError(
                item.name,
                available=item.stock_quantity,
                required=-delta,
            )

        new_stock, is_available, updated_at = row
        set_committed_value(item, "stock_quantity", new_stock)
        set_committed_value(item, "is_available", bool(is_available))
        set_committed_value(item, "updated_at", updated_at)
        return StockChange(item_id=item.id, previous_stock=new_stock - delta, new_stock=new_stock)

    def _record(
        self,
        item_id: int,
        adjustment_type: StockAdjustmentType,
        change: StockChange,
        quantity: int,
        reason: Optional[str] = None,
        actor: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> None:
        self.session.add(
            StockAdjustment(
                created_at=self._next_recorded_at(),
                menu_item_id=item_id,
                adjustment_type=adjustment_type,
                previous_stock=change.previous_stock,
                new_stock=change.new_stock,
                quantity=quantity,
                reason=reason,
                user_id=actor,
                order_id=order_id,
            )
        )

    def _next_recorded_at(self) -> datetime:
        """Strictly increasing timestamps, so history order matches write order."""
        now = utc_now()
        if self._last_recorded_at is not None and now <= self._last_recorded_at:
            now = self._last_recorded_at + timedelta(microseconds=1)
        self._last_recorded_at = now
        return now

    def _record_auto_block(
        self,
        item: MenuItem,
        was_available: bool,
        actor: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> None:
        """Audit an availability flip caused by the stock running out."""
        if was_available and not item.is_available and item.stock_quantity == 0:
            logger.info(f"Item #{item.id} ({item.name}) sold out and was blocked")
            self._record(
                item.id,
                StockAdjustmentType.AUTO_BLOCKED,
                StockChange(item.id, 0, 0),
                0,
                reason="Stock depleted",
                actor=actor,
                order_id=order_id,
            )

    @staticmethod
    def _require_positive(quantity: int) -> None:
        if quantity <= 0:
            raise InvalidInventoryOperationError("Quantity must be a positive integer")
