"""Order status state machine.

Orders move pending -> processing -> shipped -> delivered, with a side branch
to cancelled. Two capability levels act on the same machine: customers may
only cancel, and only before the parcel ships; admins may set any status.
"""
from enum import Enum

from nek.core.errors import BusinessRuleError


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class Capability(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


PROGRESSION = {
    OrderStatus.PENDING: OrderStatus.PROCESSING,
    OrderStatus.PROCESSING: OrderStatus.SHIPPED,
    OrderStatus.SHIPPED: OrderStatus.DELIVERED,
}
CANCELLABLE = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})


def next_status(current):
    return PROGRESSION.get(OrderStatus(current))


def can_transition(current, target, capability: Capability) -> bool:
    current, target = OrderStatus(current), OrderStatus(target)
    if capability is Capability.ADMIN:
        return True
    return target is OrderStatus.CANCELLED and current in CANCELLABLE


def transition(order, target, capability: Capability):
    """Move ``order`` to ``target`` or raise BusinessRuleError."""
    target = OrderStatus(target)
    if not can_transition(order.status, target, capability):
        if target is OrderStatus.CANCELLED:
            raise BusinessRuleError("Order cannot be cancelled")
        raise BusinessRuleError(f"Order cannot move from {order.status} to {target.value}")

    order.status = target.value
    if capability is Capability.CUSTOMER and target is OrderStatus.CANCELLED:
        # payment goes back to pending; stock is not returned
        order.payment_status = PaymentStatus.PENDING.value
    return order
