"""
Pydantic Schemas for Request/Response Validation

Request bodies accept the camelCase field names used by the POS clients
(`menuItemId`, `tableId`, ...) as well as snake_case.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models import InventoryType, OrderStatus, OrderType, StockAdjustmentType


# =============================================================================
# REQUEST SCHEMAS - ORDERS
# =============================================================================

class OrderItemCreate(BaseModel):
    """Single line in an order."""
    model_config = ConfigDict(populate_by_name=True)

    menu_item_id: int = Field(..., gt=0, alias="menuItemId", examples=[12])
    quantity: int = Field(..., ge=1, examples=[2])
    notes: Optional[str] = Field(None, max_length=200, examples=["no onions"])


class OrderCreate(BaseModel):
    """Request schema for creating a new order."""
    model_config = ConfigDict(populate_by_name=True)

    table_id: Optional[int] = Field(None, gt=0, alias="tableId")
    customer_id: Optional[str] = Field(None, max_length=36, alias="customerId")
    type: OrderType = Field(default=OrderType.DINE_IN, examples=["DINE_IN"])
    items: List[OrderItemCreate] = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=500)
    external_order_id: Optional[str] = Field(None, max_length=100, alias="externalOrderId")


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


# =============================================================================
# REQUEST SCHEMAS - STOCK
# =============================================================================

class StockChangeRequest(BaseModel):
    quantity: int = Field(..., gt=0)
    reason: str = Field(..., min_length=3, max_length=500)


class DailyStockResetItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    item_id: int = Field(..., gt=0, alias="itemId")
    quantity: int = Field(..., ge=0)
    low_stock_alert: Optional[int] = Field(None, ge=1, alias="lowStockAlert")


class DailyStockResetRequest(BaseModel):
    items: List[DailyStockResetItem] = Field(..., min_length=1)


class InventoryTypeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    inventory_type: InventoryType = Field(..., alias="inventoryType")
    low_stock_alert: Optional[int] = Field(None, ge=1, alias="lowStockAlert")
    initial_stock: Optional[int] = Field(None, ge=0, alias="initialStock")


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class MenuItemSnapshot(BaseModel):
    """Menu item as resolved when an order is read."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    price: Decimal
    is_available: bool
    inventory_type: InventoryType


class MenuItemStockResponse(MenuItemSnapshot):
    stock_quantity: Optional[int] = None
    initial_stock: Optional[int] = None
    low_stock_alert: Optional[int] = None
    auto_mark_unavailable: bool
    updated_at: Optional[datetime] = None


class OrderLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    menu_item_id: int
    quantity: int
    price_at_order: Decimal
    notes: Optional[str] = None
    menu_item: Optional[MenuItemSnapshot] = None


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: OrderStatus
    type: OrderType
    total_amount: Decimal
    table_id: Optional[int] = None
    customer_id: Optional[str] = None
    waiter_id: str
    notes: Optional[str] = None
    external_order_id: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    lines: List[OrderLineResponse] = []


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    page: int
    limit: int
    total_pages: int
    orders: List[OrderResponse]


class StockAdjustmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    menu_item_id: int
    adjustment_type: StockAdjustmentType
    previous_stock: int
    new_stock: int
    quantity: int
    reason: Optional[str] = None
    user_id: Optional[str] = None
    order_id: Optional[str] = None
    created_at: datetime


class StockHistoryResponse(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int
    adjustments: List[StockAdjustmentResponse]


class DailyStockResetResult(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    item_id: int
    previous_stock: int
    new_stock: int


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    message: str
    error_code: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    timestamp: datetime
