"""
Order Status State Machine

    PENDING -> SENT_TO_CASHIER -> PAID -> IN_KITCHEN -> READY -> DELIVERED
    CANCELLED (from any non-terminal status, cancellation workflow only)

DELIVERED and CANCELLED are terminal. Pure logic, no I/O.
"""

from typing import Optional

from app.core.exceptions import (
    AlreadyCancelledError,
    CannotCancelDeliveredError,
    InvalidStatusTransitionError,
)
from app.models import OrderStatus

ORDER_FLOW = (
    OrderStatus.PENDING,
    OrderStatus.SENT_TO_CASHIER,
    OrderStatus.PAID,
    OrderStatus.IN_KITCHEN,
    OrderStatus.READY,
    OrderStatus.DELIVERED,
)

INITIAL_STATUS = OrderStatus.PENDING
TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def next_status(status: OrderStatus) -> Optional[OrderStatus]:
    """The status one step forward in the fulfillment flow, if any."""
    if status not in ORDER_FLOW:
        return None
    index = ORDER_FLOW.index(status)
    if index + 1 >= len(ORDER_FLOW):
        return None
    return ORDER_FLOW[index + 1]


def validate_status_update(
    current: OrderStatus,
    target: OrderStatus,
    strict: bool = False,
) -> None:
    """
    Check a generic status update.

    Terminal orders never move and CANCELLED is never set here. Without
    `strict`, any other target is accepted; with it, only the next step.

    Raises:
        InvalidStatusTransitionError
    """
    if current == OrderStatus.DELIVERED:
        raise InvalidStatusTransitionError("Cannot change status of delivered order")
    if current == OrderStatus.CANCELLED:
        raise InvalidStatusTransitionError("Cannot change status of cancelled order")
    if target == OrderStatus.CANCELLED:
        raise InvalidStatusTransitionError(
            "Orders can only be cancelled through the cancellation operation"
        )

    if strict:
        expected = next_status(current)
        if target != expected:
            raise InvalidStatusTransitionError(
                f"Cannot move order from {current.value} to {target.value}; "
                f"next status is {expected.value}"
            )


def validate_cancellation(order_id: str, current: OrderStatus) -> None:
    """
    Raises:
        CannotCancelDeliveredError: Order was delivered
        AlreadyCancelledError: Order is already cancelled
    """
    if current == OrderStatus.DELIVERED:
        raise CannotCancelDeliveredError(order_id)
    if current == OrderStatus.CANCELLED:
        raise AlreadyCancelledError(order_id)
