# Overview: Service-layer operations for lifecycle; transition tables for orders, payments and deliveries.

"""
Fulfillment lifecycle tables.

ORDER:
    pending -> confirmed -> processing -> ready_for_pickup -> out_for_delivery -> delivered
    pending | confirmed -> cancelled
    delivered -> refunded
    cancelled -> refunded          (only when the payment was captured)

PAYMENT:
    pending -> authorized | captured | failed
    authorized -> captured | failed
    failed -> pending               (customer retries checkout)
    captured -> refunded | partially_refunded
    partially_refunded -> partially_refunded | refunded

DELIVERY:
    assigned -> picked_up -> in_transit -> nearby -> delivered
    in_transit -> delivered         (nearby is an optional courtesy ping)
    any non-terminal -> failed

RULES:
1. No skipping along the main chain and no moving backwards.
2. Requesting the terminal state an entity is already in is a no-op.
3. Requesting the non-terminal state an entity is already in is rejected
   for orders; deliveries accept it as a timeline ping.
"""

from __future__ import annotations

from ..errors import InvalidTransition, ValidationError
from ..value_objects import DELIVERY_STATUSES, ORDER_STATUSES, PAYMENT_STATUSES


ORDER_CHAIN = (
    "pending",
    "confirmed",
    "processing",
    "ready_for_pickup",
    "out_for_delivery",
    "delivered",
)

ORDER_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"processing", "cancelled"}),
    "processing": frozenset({"ready_for_pickup"}),
    "ready_for_pickup": frozenset({"out_for_delivery"}),
    "out_for_delivery": frozenset({"delivered"}),
    "delivered": frozenset({"refunded"}),
    "cancelled": frozenset({"refunded"}),
    "refunded": frozenset(),
}
ORDER_TERMINAL = frozenset({"delivered", "cancelled", "refunded"})

# Statuses the back office hears about in the shared admin inbox
ADMIN_FACING_STATUSES = frozenset({"cancelled", "delivered", "refunded"})

PAYMENT_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"authorized", "captured", "failed"}),
    "authorized": frozenset({"captured", "failed"}),
    "failed": frozenset({"pending"}),
    "captured": frozenset({"refunded", "partially_refunded"}),
    "partially_refunded": frozenset({"partially_refunded", "refunded"}),
    "refunded": frozenset(),
}

DELIVERY_TRANSITIONS: dict[str, frozenset[str]] = {
    "assigned": frozenset({"picked_up", "failed"}),
    "picked_up": frozenset({"in_transit", "failed"}),
    "in_transit": frozenset({"nearby", "delivered", "failed"}),
    "nearby": frozenset({"delivered", "failed"}),
    "delivered": frozenset(),
    "failed": frozenset(),
}
DELIVERY_TERMINAL = frozenset({"delivered", "failed"})


def validate_order_status(status: str) -> None:
    if status not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid order status '{status}'. Must be one of: {', '.join(ORDER_STATUSES)}"
        )


def validate_payment_status(status: str) -> None:
    if status not in PAYMENT_STATUSES:
        raise ValidationError(
            f"Invalid payment status '{status}'. Must be one of: {', '.join(PAYMENT_STATUSES)}"
        )


def validate_delivery_status(status: str) -> None:
    if status not in DELIVERY_STATUSES:
        raise ValidationError(
            f"Invalid delivery status '{status}'. Must be one of: {', '.join(DELIVERY_STATUSES)}"
        )


def can_transition_order(current: str, target: str, *, payment_status: str | None = None) -> bool:
    if target not in ORDER_TRANSITIONS.get(current, ()):
        return False
    if current == "cancelled" and target == "refunded":
        return payment_status == "captured"
    return True


def chain_position(status: str) -> int:
    """Index along the main fulfillment chain, -1 for cancelled/refunded."""
    try:
        return ORDER_CHAIN.index(status)
    except ValueError:
        return -1


def require_order_transition(current: str, target: str, *, payment_status: str | None, snapshot: dict) -> None:
    validate_order_status(target)
    if not can_transition_order(current, target, payment_status=payment_status):
        raise InvalidTransition(
            f"Cannot change order status from {current} to {target}",
            details={"current_status": current, "requested_status": target, "current": snapshot},
        )


def require_payment_transition(current: str, target: str, *, snapshot: dict) -> None:
    validate_payment_status(target)
    if target not in PAYMENT_TRANSITIONS.get(current, ()):
        raise InvalidTransition(
            f"Cannot change payment status from {current} to {target}",
            details={"current_payment_status": current, "requested_status": target, "current": snapshot},
        )


def require_delivery_transition(current: str, target: str, *, snapshot: dict) -> None:
    validate_delivery_status(target)
    if target not in DELIVERY_TRANSITIONS.get(current, ()):
        raise InvalidTransition(
            f"Cannot change delivery status from {current} to {target}",
            details={"current_status": current, "requested_status": target, "current": snapshot},
        )
