"""
SQLAlchemy Database Models

Orders, their line items, menu items with optional tracked inventory, and the
append-only stock adjustment ledger.
"""

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from app.database import Base


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> str:
    return str(uuid.uuid4())


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "PENDING"
    SENT_TO_CASHIER = "SENT_TO_CASHIER"
    PAID = "PAID"
    IN_KITCHEN = "IN_KITCHEN"
    READY = "READY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class OrderType(str, enum.Enum):
    """Where the order is served. WHATSAPP is the external ordering channel."""
    DINE_IN = "DINE_IN"
    TAKE_OUT = "TAKE_OUT"
    DELIVERY = "DELIVERY"
    WHATSAPP = "WHATSAPP"


class InventoryType(str, enum.Enum):
    TRACKED = "TRACKED"
    UNLIMITED = "UNLIMITED"


class StockAdjustmentType(str, enum.Enum):
    DAILY_RESET = "DAILY_RESET"
    MANUAL_ADD = "MANUAL_ADD"
    MANUAL_REMOVE = "MANUAL_REMOVE"
    ORDER_DEDUCT = "ORDER_DEDUCT"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    AUTO_BLOCKED = "AUTO_BLOCKED"


class MenuItem(Base):
    """
    Menu item as seen by the order engine.

    TRACKED items carry stock_quantity / initial_stock / low_stock_alert;
    UNLIMITED items keep all three NULL. Rows are never physically deleted:
    `deleted` is a tombstone filtered out of every default query.
    """
    __tablename__ = "menu_items"
    __table_args__ = (
        CheckConstraint(
            "stock_quantity IS NULL OR stock_quantity >= 0",
            name="ck_menu_items_stock_non_negative",
        ),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)

    # =========================================================================
    # INVENTORY
    # =========================================================================
    inventory_type = Column(
        Enum(InventoryType, native_enum=False, length=20),
        default=InventoryType.UNLIMITED,
        nullable=False,
        index=True
    )
    stock_quantity = Column(Integer, nullable=True)
    initial_stock = Column(Integer, nullable=True)
    low_stock_alert = Column(Integer, nullable=True)
    auto_mark_unavailable = Column(Boolean, default=True, nullable=False)

    # =========================================================================
    # TOMBSTONE & TIMESTAMPS
    # =========================================================================
    deleted = Column(Boolean, default=False, nullable=False, index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    @property
    def is_tracked(self) -> bool:
        return self.inventory_type == InventoryType.TRACKED

    def __repr__(self):
        return f"<MenuItem #{self.id} - {self.name} - {self.inventory_type.value}>"


class Order(Base):
    """
    Order aggregate root.

    Created PENDING with a zero total; the total is written once after the
    lines are priced. Never physically deleted: CANCELLED and DELIVERED are
    its terminal states.
    """
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    table_id = Column(Integer, nullable=True, index=True)
    waiter_id = Column(String(36), nullable=False, index=True)
    customer_id = Column(String(36), nullable=True)

    status = Column(
        Enum(OrderStatus, native_enum=False, length=20),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )
    type = Column(
        Enum(OrderType, native_enum=False, length=20),
        default=OrderType.DINE_IN,
        nullable=False,
        index=True
    )
    total_amount = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    notes = Column(Text, nullable=True)
    external_order_id = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    lines = relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLine.id",
    )

    def __repr__(self):
        return f"<Order #{self.id} - {self.type.value} - {self.status.value}>"


class OrderLine(Base):
    """
    One line of an order. price_at_order is frozen at creation and never
    recomputed from the live menu.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    price_at_order = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    order = relationship("Order", back_populates="lines")
    menu_item = relationship("MenuItem")

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.price_at_order) * self.quantity

    def __repr__(self):
        return f"<OrderLine #{self.id} - item {self.menu_item_id} x{self.quantity}>"


class StockAdjustment(Base):
    """
    Append-only inventory ledger. One row per stock mutation, written in the
    same transaction as the mutation. Never updated or deleted.
    """
    __tablename__ = "stock_adjustments"

    id = Column(String(36), primary_key=True, default=new_uuid)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False, index=True)
    adjustment_type = Column(
        Enum(StockAdjustmentType, native_enum=False, length=20),
        nullable=False,
        index=True
    )
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    user_id = Column(String(36), nullable=True)
    order_id = Column(String(36), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False, index=True)

    menu_item = relationship("MenuItem")

    def __repr__(self):
        return (
            f"<StockAdjustment {self.adjustment_type.value} item {self.menu_item_id}: "
            f"{self.previous_stock} -> {self.new_stock}>"
        )
