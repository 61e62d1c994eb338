"""Order and payment status transition tables.

Every status change in the system is planned here. Callers name the status
they want; the tables map that request to an event, look up
``(current state, event) -> next state`` and run the event's guard. Anything
not in a table is an illegal transition.
"""

from enum import Enum
from typing import Any, Callable, Mapping

from storefront.api.middleware.error_handler import InvalidTransitionError
from storefront.models.order import OrderStatus, PaymentMethod, PaymentStatus


class OrderEvent(str, Enum):
    """Fulfilment events that move an order through its lifecycle."""

    START_PACKING = "start_packing"
    SHIP = "ship"
    DISPATCH = "dispatch"
    DELIVER = "deliver"
    CANCEL = "cancel"


class PaymentEvent(str, Enum):
    """Payment events reported by the gateway or the admin console."""

    CAPTURE = "capture"
    FAIL = "fail"
    REFUND = "refund"


_CANCELLABLE = (
    OrderStatus.PLACED,
    OrderStatus.PACKING,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
)

ORDER_TRANSITIONS: dict[tuple[OrderStatus, OrderEvent], OrderStatus] = {
    (OrderStatus.PLACED, OrderEvent.START_PACKING): OrderStatus.PACKING,
    (OrderStatus.PACKING, OrderEvent.SHIP): OrderStatus.SHIPPED,
    (OrderStatus.SHIPPED, OrderEvent.DISPATCH): OrderStatus.OUT_FOR_DELIVERY,
    (OrderStatus.OUT_FOR_DELIVERY, OrderEvent.DELIVER): OrderStatus.DELIVERED,
    **{(status, OrderEvent.CANCEL): OrderStatus.CANCELLED for status in _CANCELLABLE},
}

ORDER_EVENT_FOR_TARGET: dict[OrderStatus, OrderEvent] = {
    OrderStatus.PACKING: OrderEvent.START_PACKING,
    OrderStatus.SHIPPED: OrderEvent.SHIP,
    OrderStatus.OUT_FOR_DELIVERY: OrderEvent.DISPATCH,
    OrderStatus.DELIVERED: OrderEvent.DELIVER,
    OrderStatus.CANCELLED: OrderEvent.CANCEL,
}

PAYMENT_TRANSITIONS: dict[tuple[PaymentStatus, PaymentEvent], PaymentStatus] = {
    (PaymentStatus.PENDING, PaymentEvent.CAPTURE): PaymentStatus.COMPLETED,
    (PaymentStatus.PENDING, PaymentEvent.FAIL): PaymentStatus.FAILED,
    (PaymentStatus.COMPLETED, PaymentEvent.REFUND): PaymentStatus.REFUNDED,
}

PAYMENT_EVENT_FOR_TARGET: dict[PaymentStatus, PaymentEvent] = {
    PaymentStatus.COMPLETED: PaymentEvent.CAPTURE,
    PaymentStatus.FAILED: PaymentEvent.FAIL,
    PaymentStatus.REFUNDED: PaymentEvent.REFUND,
}

# A guard returns a rejection reason, or None when the transition may proceed.
OrderGuard = Callable[[Mapping[str, Any]], str | None]


def _payment_settled_before_delivery(order: Mapping[str, Any]) -> str | None:
    """Gateway orders ship only once paid; COD is paid on delivery."""
    if PaymentMethod(order["payment_method"]) is PaymentMethod.COD:
        return None
    payment_status = PaymentStatus(order["payment_status"])
    if payment_status is PaymentStatus.COMPLETED:
        return None
    return f"Cannot mark delivered while payment is {payment_status.value}"


ORDER_GUARDS: dict[OrderEvent, OrderGuard] = {
    OrderEvent.DELIVER: _payment_settled_before_delivery,
}


def plan_order_transition(order: Mapping[str, Any], target: OrderStatus | str) -> OrderStatus:
    """Validate moving an order to a new fulfilment status.

    Args:
        order: Current order row (needs order_status, payment_status, payment_method).
        target: Requested order status.

    Returns:
        OrderStatus: The status the order will have after the transition.

    Raises:
        InvalidTransitionError: With the specific reason the change is refused.
    """
    current = OrderStatus(order["order_status"])
    target = OrderStatus(target)

    if current is target:
        raise InvalidTransitionError(f"Order is already {current.value}")
    if current in (OrderStatus.DELIVERED, OrderStatus.CANCELLED):
        raise InvalidTransitionError(
            f"Order is {current.value} and its status can no longer change"
        )

    event = ORDER_EVENT_FOR_TARGET.get(target)
    next_status = ORDER_TRANSITIONS.get((current, event)) if event else None
    if next_status is None:
        raise InvalidTransitionError(
            f"Cannot move order from {current.value} to {target.value}; "
            "status only advances one step at a time"
        )

    guard = ORDER_GUARDS.get(event)
    if guard:
        reason = guard(order)
        if reason:
            raise InvalidTransitionError(reason)

    return next_status


def plan_payment_transition(current: PaymentStatus | str, target: PaymentStatus | str) -> PaymentStatus:
    """Validate a payment status change.

    Args:
        current: Payment status the order has now.
        target: Requested payment status.

    Returns:
        PaymentStatus: The payment status after the transition.

    Raises:
        InvalidTransitionError: If the table has no such edge.
    """
    current = PaymentStatus(current)
    target = PaymentStatus(target)

    event = PAYMENT_EVENT_FOR_TARGET.get(target)
    next_status = PAYMENT_TRANSITIONS.get((current, event)) if event else None
    if next_status is None:
        raise InvalidTransitionError(
            f"Cannot change payment status from {current.value} to {target.value}"
        )
    return next_status
