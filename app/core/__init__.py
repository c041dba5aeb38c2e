"""
Core module initialization.
Exports configuration, logging utilities and the error taxonomy.
"""

from app.core.config import get_settings, Settings, EnvironmentMode
from app.core.exceptions import (
    AppError,
    NotFoundError,
    ItemsUnavailableError,
    InsufficientStockError,
    InvalidStatusTransitionError,
    CannotCancelDeliveredError,
    AlreadyCancelledError,
    InvalidInventoryOperationError,
    TransactionFailedError,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "AppError",
    "NotFoundError",
    "ItemsUnavailableError",
    "InsufficientStockError",
    "InvalidStatusTransitionError",
    "CannotCancelDeliveredError",
    "AlreadyCancelledError",
    "InvalidInventoryOperationError",
    "TransactionFailedError",
]
