import asyncio
from collections import Counter
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import (
    AlreadyCancelledError,
    CannotCancelDeliveredError,
    InsufficientStockError,
    InvalidStatusTransitionError,
    ItemsUnavailableError,
    NotFoundError,
    TransactionFailedError,
)
from app.models import (
    InventoryType,
    MenuItem,
    Order,
    OrderLine,
    OrderStatus,
    StockAdjustment,
    StockAdjustmentType,
)
from app.schemas import OrderCreate
from app.services.menu import MenuItemLookup
from app.services.orders import OrderFilters, OrderService, get_order_service
from app.services.stock import StockLedger, get_stock_ledger

WAITER = "waiter-1"


def order_for(*lines, **fields) -> OrderCreate:
    return OrderCreate(
        items=[{"menuItemId": item_id, "quantity": quantity} for item_id, quantity in lines],
        **fields,
    )


async def count_rows(db, model) -> int:
    async with db.session() as s:
        return (await s.execute(select(func.count()).select_from(model))).scalar()


# =============================================================================
# CREATE
# =============================================================================

async def test_create_order_prices_lines_and_deducts_stock(order_service, make_item, fetch_item):
    burger = await make_item(name="Burger", price="14000", stock=10)
    fries = await make_item(name="Fries", price="4500.50", tracked=False)

    order = await order_service.create_order(WAITER, order_for((burger, 2), (fries, 3), tableId=7))

    assert order.status == OrderStatus.PENDING
    assert order.waiter_id == WAITER
    assert order.table_id == 7
    assert order.total_amount == Decimal("41501.50")
    assert [(line.menu_item_id, line.quantity, line.price_at_order) for line in order.lines] == [
        (burger, 2, Decimal("14000.00")),
        (fries, 3, Decimal("4500.50")),
    ]
    assert order.lines[0].menu_item.name == "Burger"
    assert (await fetch_item(burger)).stock_quantity == 8


async def test_deduction_is_audited_with_order_reference(order_service, ledger, make_item):
    burger = await make_item(stock=4)

    order = await order_service.create_order(WAITER, order_for((burger, 3)))

    history = await ledger.find_history(burger)
    assert history.total == 1
    adjustment = history.items[0]
    assert adjustment.adjustment_type == StockAdjustmentType.ORDER_DEDUCT
    assert (adjustment.previous_stock, adjustment.new_stock, adjustment.quantity) == (4, 1, 3)
    assert adjustment.order_id == order.id
    assert adjustment.user_id == WAITER


async def test_sell_out_history_lists_block_after_deduction(order_service, ledger, make_item):
    burger = await make_item(stock=2)

    await order_service.create_order(WAITER, order_for((burger, 2)))

    history = await ledger.find_history(burger)
    assert [adj.adjustment_type for adj in history.items] == [
        StockAdjustmentType.AUTO_BLOCKED,
        StockAdjustmentType.ORDER_DEDUCT,
    ]
    assert history.items[0].created_at > history.items[1].created_at


async def test_unlimited_items_always_succeed(order_service, make_item, fetch_item):
    water = await make_item(name="Water", price="1000", tracked=False)

    order = await order_service.create_order(WAITER, order_for((water, 500)))

    assert order.total_amount == Decimal("500000.00")
    item = await fetch_item(water)
    assert item.stock_quantity is None
    assert item.is_available is True


async def test_unavailable_items_are_all_named(order_service, make_item):
    soup = await make_item(name="Soup", is_available=False)
    cake = await make_item(name="Cake", is_available=False)
    burger = await make_item(name="Burger")

    with pytest.raises(ItemsUnavailableError) as exc_info:
        await order_service.create_order(WAITER, order_for((cake, 1), (burger, 1), (soup, 1)))

    assert exc_info.value.item_names == ["Soup", "Cake"]
    assert exc_info.value.message == "The following items are not available: Soup, Cake"


async def test_unknown_menu_item_is_not_found(db, order_service, make_item):
    burger = await make_item()

    with pytest.raises(NotFoundError) as exc_info:
        await order_service.create_order(WAITER, order_for((burger, 1), (4242, 1)))

    assert exc_info.value.error_code == "MENU_ITEM_NOT_FOUND"
    assert await count_rows(db, Order) == 0


async def test_precheck_sums_quantities_of_repeated_item(db, order_service, make_item, fetch_item):
    burger = await make_item(stock=3)

    with pytest.raises(InsufficientStockError) as exc_info:
        await order_service.create_order(WAITER, order_for((burger, 2), (burger, 2)))

    assert exc_info.value.available == 3
    assert exc_info.value.required == 4
    assert (await fetch_item(burger)).stock_quantity == 3
    assert await count_rows(db, Order) == 0


async def test_failed_deduction_rolls_back_the_whole_order(db, order_service, make_item, fetch_item, monkeypatch):
    # Skip the advisory check so the guarded deduction is what rejects the order
    monkeypatch.setattr(OrderService, "_ensure_stock", staticmethod(lambda lines, items: None))
    pasta = await make_item(name="Pasta", stock=5)
    salmon = await make_item(name="Salmon", stock=1)

    with pytest.raises(InsufficientStockError) as exc_info:
        await order_service.create_order(WAITER, order_for((pasta, 1), (salmon, 3)))

    assert exc_info.value.item_name == "Salmon"
    assert (await fetch_item(pasta)).stock_quantity == 5
    assert (await fetch_item(salmon)).stock_quantity == 1
    assert await count_rows(db, Order) == 0
    assert await count_rows(db, OrderLine) == 0
    assert await count_rows(db, StockAdjustment) == 0


async def test_storage_failure_surfaces_as_transaction_failed(db, order_service, make_item, fetch_item, monkeypatch):
    def failing_record(self, *args, **kwargs):
        raise IntegrityError("INSERT INTO stock_adjustments", {}, Exception("constraint failed"))

    monkeypatch.setattr(StockLedger, "_record", failing_record)
    burger = await make_item(stock=5)

    with pytest.raises(TransactionFailedError) as exc_info:
        await order_service.create_order(WAITER, order_for((burger, 2)))

    assert exc_info.value.status_code == 500
    assert exc_info.value.error_code == "TRANSACTION_FAILED"
    assert (await fetch_item(burger)).stock_quantity == 5
    assert await count_rows(db, Order) == 0
    assert await count_rows(db, OrderLine) == 0
    assert await count_rows(db, StockAdjustment) == 0


async def test_tracking_enabled_after_lookup_still_deducts(db, settings, order_service, ledger, make_item, fetch_item, monkeypatch):
    burger = await make_item(tracked=False)
    lookup_items = MenuItemLookup.find_items_by_ids

    async def lookup_then_enable_tracking(self, item_ids):
        items = await lookup_items(self, item_ids)
        async with db.session() as s:
            await get_stock_ledger(s, settings).set_inventory_type(
                burger, InventoryType.TRACKED, initial_stock=10
            )
        return items

    monkeypatch.setattr(MenuItemLookup, "find_items_by_ids", lookup_then_enable_tracking)

    order = await order_service.create_order(WAITER, order_for((burger, 3)))

    assert (await fetch_item(burger)).stock_quantity == 7
    history = await ledger.find_history(burger)
    deductions = [adj for adj in history.items if adj.adjustment_type == StockAdjustmentType.ORDER_DEDUCT]
    assert len(deductions) == 1
    assert deductions[0].order_id == order.id
    assert (deductions[0].previous_stock, deductions[0].new_stock) == (10, 7)


async def test_tracking_enabled_after_lookup_cannot_oversell(db, settings, order_service, make_item, fetch_item, monkeypatch):
    burger = await make_item(tracked=False)
    lookup_items = MenuItemLookup.find_items_by_ids

    async def lookup_then_enable_tracking(self, item_ids):
        items = await lookup_items(self, item_ids)
        async with db.session() as s:
            await get_stock_ledger(s, settings).set_inventory_type(
                burger, InventoryType.TRACKED, initial_stock=1
            )
        return items

    monkeypatch.setattr(MenuItemLookup, "find_items_by_ids", lookup_then_enable_tracking)

    with pytest.raises(InsufficientStockError):
        await order_service.create_order(WAITER, order_for((burger, 5)))

    assert (await fetch_item(burger)).stock_quantity == 1
    assert await count_rows(db, Order) == 0


async def test_concurrent_orders_never_oversell(db, settings, make_item, fetch_item):
    burger = await make_item(stock=5)

    async def place_order():
        async with db.session() as s:
            service = get_order_service(s, settings)
            return await service.create_order(WAITER, order_for((burger, 3)))

    results = await asyncio.gather(place_order(), place_order(), return_exceptions=True)

    succeeded = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, Exception)]
    assert len(succeeded) == 1
    assert len(failed) == 1
    assert isinstance(failed[0], InsufficientStockError)
    assert (await fetch_item(burger)).stock_quantity == 2
    assert await count_rows(db, Order) == 1


async def test_selling_out_blocks_further_orders(order_service, make_item, fetch_item):
    cake = await make_item(name="Cake", stock=2)

    await order_service.create_order(WAITER, order_for((cake, 2)))

    item = await fetch_item(cake)
    assert item.stock_quantity == 0
    assert item.is_available is False

    with pytest.raises(ItemsUnavailableError):
        await order_service.create_order(WAITER, order_for((cake, 1)))


async def test_price_change_does_not_affect_existing_order(db, order_service, make_item):
    burger = await make_item(price="14000")
    order = await order_service.create_order(WAITER, order_for((burger, 2)))

    async with db.session() as s:
        await s.execute(update(MenuItem).where(MenuItem.id == burger).values(price=Decimal("99000")))
        await s.commit()

    reloaded = await order_service.get_order(order.id)
    assert reloaded.total_amount == Decimal("28000.00")
    assert reloaded.lines[0].price_at_order == Decimal("14000.00")


# =============================================================================
# STATUS & CANCEL
# =============================================================================

async def test_create_then_cancel_restores_stock(order_service, ledger, make_item, fetch_item):
    burger = await make_item(price="14000", stock=6)

    order = await order_service.create_order(WAITER, order_for((burger, 2)))
    assert order.total_amount == Decimal("28000.00")
    assert (await fetch_item(burger)).stock_quantity == 4

    cancelled = await order_service.cancel_order(order.id, actor="manager-1")

    assert cancelled.status == OrderStatus.CANCELLED
    assert (await fetch_item(burger)).stock_quantity == 6

    history = await ledger.find_history(burger)
    assert Counter(adj.adjustment_type for adj in history.items) == Counter({
        StockAdjustmentType.ORDER_DEDUCT: 1,
        StockAdjustmentType.ORDER_CANCELLED: 1,
    })


async def test_cancel_makes_sold_out_item_available_again(order_service, make_item, fetch_item):
    cake = await make_item(name="Cake", stock=1)
    order = await order_service.create_order(WAITER, order_for((cake, 1)))
    assert (await fetch_item(cake)).is_available is False

    await order_service.cancel_order(order.id)

    item = await fetch_item(cake)
    assert item.stock_quantity == 1
    assert item.is_available is True


async def test_cancel_skips_items_no_longer_tracked(order_service, ledger, make_item, fetch_item):
    burger = await make_item(stock=5)
    order = await order_service.create_order(WAITER, order_for((burger, 2)))
    await ledger.set_inventory_type(burger, InventoryType.UNLIMITED)

    cancelled = await order_service.cancel_order(order.id)

    assert cancelled.status == OrderStatus.CANCELLED
    assert (await fetch_item(burger)).stock_quantity is None


async def test_status_updates_until_delivered(order_service, make_item):
    burger = await make_item()
    order = await order_service.create_order(WAITER, order_for((burger, 1)))

    order = await order_service.update_status(order.id, OrderStatus.IN_KITCHEN)
    assert order.status == OrderStatus.IN_KITCHEN
    order = await order_service.update_status(order.id, OrderStatus.DELIVERED)
    assert order.status == OrderStatus.DELIVERED

    with pytest.raises(InvalidStatusTransitionError):
        await order_service.update_status(order.id, OrderStatus.READY)
    with pytest.raises(CannotCancelDeliveredError):
        await order_service.cancel_order(order.id)


async def test_status_update_cannot_cancel(order_service, make_item, fetch_item):
    burger = await make_item(stock=5)
    order = await order_service.create_order(WAITER, order_for((burger, 1)))

    with pytest.raises(InvalidStatusTransitionError):
        await order_service.update_status(order.id, OrderStatus.CANCELLED)

    assert (await order_service.get_order(order.id)).status == OrderStatus.PENDING
    assert (await fetch_item(burger)).stock_quantity == 4


async def test_strict_mode_enforces_one_step(session, settings, make_item):
    strict = get_order_service(session, settings.model_copy(update={"strict_status_transitions": True}))
    burger = await make_item()
    order = await strict.create_order(WAITER, order_for((burger, 1)))

    with pytest.raises(InvalidStatusTransitionError):
        await strict.update_status(order.id, OrderStatus.PAID)

    order = await strict.update_status(order.id, OrderStatus.SENT_TO_CASHIER)
    assert order.status == OrderStatus.SENT_TO_CASHIER


async def test_cancel_twice_fails_without_double_restore(order_service, make_item, fetch_item):
    burger = await make_item(stock=5)
    order = await order_service.create_order(WAITER, order_for((burger, 2)))
    await order_service.cancel_order(order.id)

    with pytest.raises(AlreadyCancelledError):
        await order_service.cancel_order(order.id)
    with pytest.raises(InvalidStatusTransitionError):
        await order_service.update_status(order.id, OrderStatus.READY)

    assert (await fetch_item(burger)).stock_quantity == 5


async def test_unknown_order_is_not_found(order_service):
    with pytest.raises(NotFoundError) as exc_info:
        await order_service.get_order("missing")
    assert exc_info.value.error_code == "ORDER_NOT_FOUND"

    with pytest.raises(NotFoundError):
        await order_service.cancel_order("missing")
    with pytest.raises(NotFoundError):
        await order_service.update_status("missing", OrderStatus.PAID)


# =============================================================================
# LIST
# =============================================================================

async def test_list_orders_filters_and_paginates(order_service, make_item):
    burger = await make_item(stock=50)
    for table_id in (1, 1, 2):
        await order_service.create_order(WAITER, order_for((burger, 1), tableId=table_id))
    await order_service.create_order("waiter-2", order_for((burger, 1), tableId=1))

    page = await order_service.list_orders(OrderFilters(table_id=1), page=1, limit=2)
    assert page.total == 3
    assert page.total_pages == 2
    assert len(page.items) == 2

    mine = await order_service.list_orders(OrderFilters(waiter_id="waiter-2"))
    assert mine.total == 1

    paid = await order_service.list_orders(OrderFilters(status=OrderStatus.PAID))
    assert paid.total == 0
