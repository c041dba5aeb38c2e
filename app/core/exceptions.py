"""
Application Error Taxonomy

Every failure the order and stock engine detects is raised as a subclass of
AppError carrying an HTTP status and a stable machine-readable error code.
The API layer renders them uniformly; nothing below it swallows them.
"""

from typing import Iterable, Optional


class AppError(Exception):
    """Base class for all typed business errors."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": False,
            "message": self.message,
            "error_code": self.error_code,
        }


class NotFoundError(AppError):
    status_code = 404
    error_code = "NOT_FOUND"

    @classmethod
    def order(cls, order_id: str) -> "NotFoundError":
        return cls(f"Order with ID {order_id} not found", error_code="ORDER_NOT_FOUND")

    @classmethod
    def menu_item(cls, item_id: int) -> "NotFoundError":
        return cls(f"Menu Item ID {item_id} not found", error_code="MENU_ITEM_NOT_FOUND")


class ItemsUnavailableError(AppError):
    """Raised with the names of every unavailable item, not just the first."""

    status_code = 400
    error_code = "ITEMS_NOT_AVAILABLE"

    def __init__(self, item_names: Iterable[str]):
        self.item_names = list(item_names)
        super().__init__(
            f"The following items are not available: {', '.join(self.item_names)}"
        )


class InsufficientStockError(AppError):
    status_code = 400
    error_code = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        item_name: str,
        available: Optional[int] = None,
        required: Optional[int] = None,
    ):
        self.item_name = item_name
        self.available = available
        self.required = required
        message = f"Insufficient stock for {item_name}"
        if available is not None and required is not None:
            message += f". Available: {available}, Required: {required}"
        super().__init__(message)


class InvalidStatusTransitionError(AppError):
    status_code = 400
    error_code = "INVALID_STATUS_TRANSITION"


class CannotCancelDeliveredError(AppError):
    status_code = 400
    error_code = "CANNOT_CANCEL_DELIVERED_ORDER"

    def __init__(self, order_id: str):
        super().__init__(f"Cannot cancel delivered order {order_id}")


class AlreadyCancelledError(AppError):
    status_code = 400
    error_code = "ORDER_ALREADY_CANCELLED"

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} is already cancelled")


class InvalidInventoryOperationError(AppError):
    status_code = 400
    error_code = "INVALID_INVENTORY_OPERATION"


class TransactionFailedError(AppError):
    """Persistence failure; the whole unit of work was rolled back."""

    status_code = 500
    error_code = "TRANSACTION_FAILED"
