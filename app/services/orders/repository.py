"""
SQLAlchemy-backed Order Aggregate Store.
"""

import logging
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models import Order, OrderLine, OrderStatus, OrderType
from app.services.orders.base import BaseOrderRepository, OrderFilters, OrderLineDraft
from app.services.pagination import Page

logger = logging.getLogger(__name__)

MONEY = Decimal("0.01")


def _with_lines(stmt):
    return stmt.options(selectinload(Order.lines).selectinload(OrderLine.menu_item))


class OrderRepository(BaseOrderRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

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
        order = Order(
            waiter_id=waiter_id,
            type=order_type,
            status=OrderStatus.PENDING,
            total_amount=Decimal("0.00"),
            table_id=table_id,
            customer_id=customer_id,
            notes=notes,
            external_order_id=external_order_id,
            lines=[
                OrderLine(
                    menu_item_id=line.menu_item_id,
                    quantity=line.quantity,
                    price_at_order=line.price_at_order,
                    notes=line.notes,
                )
                for line in lines
            ],
        )
        self.session.add(order)
        await self.session.flush()
        logger.debug(f"Order {order.id} staged with {len(lines)} line(s)")
        return order

    async def update_total(self, order: Order, total_amount: Decimal) -> Order:
        order.total_amount = Decimal(total_amount).quantize(MONEY)
        await self.session.flush()
        return order

    async def update_status(self, order: Order, status: OrderStatus) -> Order:
        order.status = status
        await self.session.flush()
        return order

    async def cancel(self, order: Order) -> Order:
        return await self.update_status(order, OrderStatus.CANCELLED)

    async def find_by_id(self, order_id: str, lock: bool = False) -> Optional[Order]:
        stmt = _with_lines(select(Order).where(Order.id == order_id))
        if lock:
            stmt = stmt.with_for_update(of=Order)
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def find_all(
        self,
        filters: OrderFilters,
        page: int = 1,
        limit: int = 20,
    ) -> Page[Order]:
        conditions = []
        if filters.status:
            conditions.append(Order.status == filters.status)
        if filters.type:
            conditions.append(Order.type == filters.type)
        if filters.waiter_id:
            conditions.append(Order.waiter_id == filters.waiter_id)
        if filters.table_id:
            conditions.append(Order.table_id == filters.table_id)
        if filters.created_on:
            start_of_day = datetime.combine(filters.created_on, time.min, tzinfo=timezone.utc)
            conditions.append(Order.created_at >= start_of_day)
            conditions.append(Order.created_at < start_of_day + timedelta(days=1))

        result_page: Page[Order] = Page(page=page, limit=limit)

        total_result = await self.session.execute(
            select(func.count(Order.id)).where(*conditions)
        )
        result_page.total = total_result.scalar() or 0

        result = await self.session.execute(
            _with_lines(select(Order).where(*conditions))
            .order_by(Order.created_at.desc())
            .offset(result_page.offset)
            .limit(limit)
        )
        result_page.items = list(result.scalars().all())
        return result_page
