"""
FastAPI Application Entry Point

Restaurant order management and inventory consistency backend.

Endpoints:
    - POST   /orders: Create an order and reserve its stock
    - GET    /orders: List orders (filters + pagination)
    - GET    /orders/{order_id}: Get one order with its lines
    - PATCH  /orders/{order_id}/status: Advance the order status
    - DELETE /orders/{order_id}: Cancel an order and restore its stock
    - POST   /menu-items/{item_id}/stock/add: Manual stock addition
    - POST   /menu-items/{item_id}/stock/remove: Manual stock removal
    - POST   /menu-items/stock/daily-reset: Batch daily stock reset
    - PATCH  /menu-items/{item_id}/inventory-type: Switch TRACKED / UNLIMITED
    - GET    /menu-items/stock/low: Items at or below their alert threshold
    - GET    /menu-items/stock/out: Sold out items
    - GET    /menu-items/{item_id}/stock/history: Stock adjustment ledger
    - GET    /health: System health check
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, List, Optional

import redis
from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from app.core.config import Settings, get_settings, setup_logging
from app.core.exceptions import AppError
from app.database import Database, get_database, get_db
from app.models import OrderStatus, OrderType
from app.schemas import (
    DailyStockResetRequest,
    DailyStockResetResult,
    ErrorResponse,
    HealthResponse,
    InventoryTypeRequest,
    MenuItemStockResponse,
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    StockAdjustmentResponse,
    StockChangeRequest,
    StockHistoryResponse,
)
from app.services.orders import OrderFilters, OrderService, get_order_service
from app.services.stock import BaseStockLedger, StockResetEntry, get_stock_ledger

settings = get_settings()
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Open the storage handle on startup, dispose it on shutdown.
    """
    setup_logging()

    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info(f"   Strict status transitions: {settings.strict_status_transitions}")
    logger.info("=" * 60)

    db = Database.from_settings(settings)
    await db.create_all()
    app.state.db = db
    logger.info(f"Database ready ({db.dialect_name})")

    yield  # Application runs

    logger.info("Shutting down...")
    await db.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Order lifecycle and inventory consistency backend. Order creation, "
        "cancellation and every stock mutation are atomic and never oversell."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_app_settings() -> Settings:
    return get_settings()


def order_service(
    db: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_app_settings),
) -> OrderService:
    return get_order_service(db, app_settings)


def stock_ledger(
    db: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_app_settings),
) -> BaseStockLedger:
    return get_stock_ledger(db, app_settings)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: Database = Depends(get_database),
    app_settings: Settings = Depends(get_app_settings),
) -> HealthResponse:
    """Verify the database and the Celery broker are reachable."""

    db_status = "healthy"
    try:
        await db.ping()
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    redis_status = "healthy"
    try:
        r = redis.Redis.from_url(app_settings.redis_url, socket_timeout=2)
        r.ping()
        r.close()
    except Exception as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    overall = "operational" if db_status == "healthy" and redis_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# ORDER ENDPOINTS
# =============================================================================

@app.post(
    "/orders",
    response_model=OrderResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Create Order",
)
async def create_order(
    order_data: OrderCreate,
    x_user_id: str = Header(..., alias="x-user-id"),
    service: OrderService = Depends(order_service),
) -> OrderResponse:
    """
    Create an order for the calling waiter.

    Prices are frozen from the current menu and TRACKED stock is deducted in
    the same transaction; on any failure nothing is persisted.
    """
    order = await service.create_order(x_user_id, order_data)
    return OrderResponse.model_validate(order)


@app.get(
    "/orders",
    response_model=OrderListResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    type: Optional[OrderType] = Query(None),
    waiter_id: Optional[str] = Query(None, alias="waiterId"),
    table_id: Optional[int] = Query(None, alias="tableId"),
    created_on: Optional[date] = Query(None, alias="date"),
    page: int = Query(1),
    limit: int = Query(settings.default_page_size),
    service: OrderService = Depends(order_service),
) -> OrderListResponse:
    """Retrieve a filtered, paginated list of orders, newest first."""
    filters = OrderFilters(
        status=status,
        type=type,
        waiter_id=waiter_id,
        table_id=table_id,
        created_on=created_on,
    )
    result = await service.list_orders(filters, page=page, limit=limit)

    return OrderListResponse(
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
        orders=[OrderResponse.model_validate(order) for order in result.items],
    )


@app.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def get_order(
    order_id: str,
    service: OrderService = Depends(order_service),
) -> OrderResponse:
    """Get a specific order with its lines."""
    order = await service.get_order(order_id)
    return OrderResponse.model_validate(order)


@app.patch(
    "/orders/{order_id}/status",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def update_order_status(
    order_id: str,
    body: OrderStatusUpdate,
    service: OrderService = Depends(order_service),
) -> OrderResponse:
    order = await service.update_status(order_id, body.status)
    return OrderResponse.model_validate(order)


@app.delete(
    "/orders/{order_id}",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def cancel_order(
    order_id: str,
    x_user_id: Optional[str] = Header(None, alias="x-user-id"),
    service: OrderService = Depends(order_service),
) -> OrderResponse:
    """Cancel an order; TRACKED stock it reserved is returned."""
    order = await service.cancel_order(order_id, actor=x_user_id)
    return OrderResponse.model_validate(order)


# =============================================================================
# STOCK ENDPOINTS
# =============================================================================
# Static /menu-items/stock/* paths are declared before the {item_id} routes.

@app.post(
    "/menu-items/stock/daily-reset",
    response_model=List[DailyStockResetResult],
    responses=ERROR_RESPONSES,
    tags=["Stock"],
)
async def daily_stock_reset(
    body: DailyStockResetRequest,
    x_user_id: Optional[str] = Header(None, alias="x-user-id"),
    ledger: BaseStockLedger = Depends(stock_ledger),
) -> List[DailyStockResetResult]:
    """Reset a batch of items to their opening stock, all or nothing."""
    entries = [
        StockResetEntry(
            item_id=item.item_id,
            quantity=item.quantity,
            low_stock_alert=item.low_stock_alert,
        )
        for item in body.items
    ]
    changes = await ledger.daily_stock_reset(entries, actor=x_user_id)
    return [DailyStockResetResult(**change.to_dict()) for change in changes]


@app.get(
    "/menu-items/stock/low",
    response_model=List[MenuItemStockResponse],
    tags=["Stock"],
)
async def low_stock_items(
    ledger: BaseStockLedger = Depends(stock_ledger),
) -> List[MenuItemStockResponse]:
    items = await ledger.find_low_stock()
    return [MenuItemStockResponse.model_validate(item) for item in items]


@app.get(
    "/menu-items/stock/out",
    response_model=List[MenuItemStockResponse],
    tags=["Stock"],
)
async def out_of_stock_items(
    ledger: BaseStockLedger = Depends(stock_ledger),
) -> List[MenuItemStockResponse]:
    items = await ledger.find_out_of_stock()
    return [MenuItemStockResponse.model_validate(item) for item in items]


@app.post(
    "/menu-items/{item_id}/stock/add",
    response_model=MenuItemStockResponse,
    responses=ERROR_RESPONSES,
    tags=["Stock"],
)
async def add_stock(
    item_id: int,
    body: StockChangeRequest,
    x_user_id: Optional[str] = Header(None, alias="x-user-id"),
    ledger: BaseStockLedger = Depends(stock_ledger),
) -> MenuItemStockResponse:
    item = await ledger.add_stock(item_id, body.quantity, body.reason, actor=x_user_id)
    return MenuItemStockResponse.model_validate(item)


@app.post(
    "/menu-items/{item_id}/stock/remove",
    response_model=MenuItemStockResponse,
    responses=ERROR_RESPONSES,
    tags=["Stock"],
)
async def remove_stock(
    item_id: int,
    body: StockChangeRequest,
    x_user_id: Optional[str] = Header(None, alias="x-user-id"),
    ledger: BaseStockLedger = Depends(stock_ledger),
) -> MenuItemStockResponse:
    item = await ledger.remove_stock(item_id, body.quantity, body.reason, actor=x_user_id)
    return MenuItemStockResponse.model_validate(item)


@app.patch(
    "/menu-items/{item_id}/inventory-type",
    response_model=MenuItemStockResponse,
    responses=ERROR_RESPONSES,
    tags=["Stock"],
)
async def set_inventory_type(
    item_id: int,
    body: InventoryTypeRequest,
    x_user_id: Optional[str] = Header(None, alias="x-user-id"),
    ledger: BaseStockLedger = Depends(stock_ledger),
) -> MenuItemStockResponse:
    item = await ledger.set_inventory_type(
        item_id,
        body.inventory_type,
        low_stock_alert=body.low_stock_alert,
        initial_stock=body.initial_stock,
        actor=x_user_id,
    )
    return MenuItemStockResponse.model_validate(item)


@app.get(
    "/menu-items/{item_id}/stock/history",
    response_model=StockHistoryResponse,
    responses=ERROR_RESPONSES,
    tags=["Stock"],
)
async def stock_history(
    item_id: int,
    page: int = Query(1),
    limit: int = Query(settings.default_page_size),
    ledger: BaseStockLedger = Depends(stock_ledger),
) -> StockHistoryResponse:
    """Stock adjustments of one item, newest first."""
    result = await ledger.find_history(item_id, page=page, limit=limit)
    return StockHistoryResponse(
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
        adjustments=[StockAdjustmentResponse.model_validate(adj) for adj in result.items],
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render typed business errors with their status and error code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.error_code} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    content: dict[str, Any] = {
        "success": False,
        "message": str(exc) if settings.debug else "An unexpected error occurred",
        "error_code": "INTERNAL_ERROR",
    }
    return JSONResponse(status_code=500, content=content)
