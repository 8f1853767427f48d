# Overview: Service-layer operations for orders; checkout, status transitions and payment status.

"""
Order State Machine

Owns order status and payment status. Each public operation is a single
transaction: the status write, stock effects, history entry and
notifications either all commit or none do.

TRANSITION EFFECTS:
    -> cancelled   release every reservation held by the order
    -> delivered   commit stock, stamp actual_delivery_at, capture COD payment
    -> refunded    mark a captured payment refunded

NOTIFICATIONS:
    Exactly one customer notification per transition, plus one to the shared
    admin inbox for cancelled, delivered and refunded. Transitions mirrored
    from delivery tracking skip the customer notification here because the
    delivery sub-machine sends its own.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func, update

from ..errors import InvalidTransition, NotFound, Unauthorized, ValidationError
from ..extensions import db
from ..models import Address, Customer, DeliveryTracking, DocumentSequence, Order, OrderItem, Product
from ..models.base import generate_id
from ..time_utils import period_starts, utcnow
from ..value_objects import (
    ORDER_STATUSES,
    PAYMENT_METHODS,
    Actor,
    CustomerTarget,
    DeliveryAddress,
    StatusHistoryEntry,
)
from . import discount_service, lifecycle_service, notification_service, stock_service, zone_service
from .concurrency import begin_write, lock_for_update, run_with_retry


STAFF_ROLES = frozenset({"admin", "staff"})


# =============================================================================
# Helpers (join the caller's transaction)
# =============================================================================


def _next_order_number(pad: int = 6) -> str:
    """
    Allocate the next ORD-NNNNNN number inside the current transaction.

    The increment is a single UPDATE, so the number is only visible once the
    order commits and a rolled-back checkout leaves the counter untouched.
    """
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == "ORDER")
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type="ORDER")
            .scalar()
        )
        next_num = current - 1
    else:
        # First order ever; the migration seeds this row on real databases
        db.session.add(DocumentSequence(document_type="ORDER", next_number=2))
        db.session.flush()
        next_num = 1
    return f"ORD-{next_num:0{pad}d}"


def _unit_price_cents(product: Product) -> int:
    discount = product.discount_percent or 0
    if discount <= 0:
        return product.price_cents
    # Half-up rounding to the nearest fils
    return (product.price_cents * (100 - discount) + 50) // 100


def compute_vat_cents(taxable_cents: int, rate_bps: int) -> int:
    return (taxable_cents * rate_bps + 5000) // 10000


def _aggregate_lines(order: Order) -> list[tuple[str, int]]:
    totals: dict[str, int] = {}
    for item in order.items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return list(totals.items())


def _append_history(order: Order, status: str, actor: Actor, note: str | None = None) -> None:
    entry = StatusHistoryEntry(status=status, changed_by=actor.label, changed_at=utcnow(), notes=note)
    # New list so the JSON column is flagged dirty
    order.status_history = [*(order.status_history or []), entry.to_dict()]


def _load_order(order_id: str, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter(Order.id == order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if not order:
        raise NotFound("Order not found", details={"order_id": order_id})
    return order


def _authorize_transition(order: Order, new_status: str, actor: Actor) -> None:
    if actor.kind == "customer":
        if order.customer_id != actor.id:
            raise NotFound("Order not found", details={"order_id": order.id})
        if new_status != "cancelled":
            raise Unauthorized("Customers can only cancel their own orders")
        return
    if actor.kind == "driver" or actor.role not in STAFF_ROLES:
        raise Unauthorized("Only staff can change order status directly")


def _require_no_live_delivery(order: Order) -> None:
    """A driver-held order is only delivered through the tracking, with proof."""
    tracking = db.session.query(DeliveryTracking).filter(
        DeliveryTracking.order_id == order.id,
        DeliveryTracking.status.notin_(tuple(lifecycle_service.DELIVERY_TERMINAL)),
    ).first()
    if tracking is not None:
        raise InvalidTransition(
            f"Order {order.order_number} has an active delivery; complete it with proof of delivery",
            details={
                "current_status": order.status,
                "delivery_status": tracking.status,
                "tracking_id": tracking.id,
                "current": order.to_dict(),
            },
        )


def _notify_customer(order: Order, status: str) -> None:
    content = notification_service.order_status_content(order.order_number, status)
    if content is None:
        return
    title, message = content
    notification_service.dispatch(
        CustomerTarget(order.customer_id),
        "order",
        title,
        message,
        link="/orders",
        link_id=order.id,
    )


def _notify_admin(order: Order, status: str, actor: Actor) -> None:
    if status not in lifecycle_service.ADMIN_FACING_STATUSES:
        return
    title, message = notification_service.admin_status_content(order, status, actor.name or actor.label)
    notification_service.dispatch(
        notification_service.admin_target(),
        "order_status",
        title,
        message,
        link="/admin/dashboard",
        link_tab="orders",
        link_id=order.id,
    )


def _apply_effects(order: Order, new_status: str, actor: Actor) -> None:
    if new_status == "cancelled":
        for product_id, quantity in _aggregate_lines(order):
            stock_service._release(product_id, quantity, order.id, actor.label)
    elif new_status == "delivered":
        order.actual_delivery_at = utcnow()
        for product_id, quantity in _aggregate_lines(order):
            stock_service._commit(product_id, quantity, order.id, actor.label)
        if order.payment_method == "cod" and order.payment_status in ("pending", "authorized"):
            order.payment_status = "captured"
    elif new_status == "refunded":
        if order.payment_status in ("captured", "partially_refunded"):
            order.payment_status = "refunded"


def _apply_transition(
    order: Order,
    new_status: str,
    actor: Actor,
    note: str | None = None,
) -> bool:
    """
    Validate and apply one adjacent transition. Returns False for the
    idempotent repeat of a terminal status.
    """
    if new_status == order.status and new_status in lifecycle_service.ORDER_TERMINAL:
        return False

    lifecycle_service.require_order_transition(
        order.status,
        new_status,
        payment_status=order.payment_status,
        snapshot=order.to_dict(),
    )

    previous = order.status
    _apply_effects(order, new_status, actor)
    order.status = new_status
    _append_history(order, new_status, actor, note)
    _notify_customer(order, new_status)
    _notify_admin(order, new_status, actor)
    current_app.logger.info(
        "Order %s status %s -> %s by %s", order.order_number, previous, new_status, actor.label
    )
    return True


def _mirror_from_delivery(order: Order, target_status: str, actor: Actor, note: str | None = None) -> bool:
    """
    Move the order forward along the fulfillment chain to ``target_status``.

    Never moves backwards: an order already at or past the target is left
    alone. Terminal orders reject the mirror unless they already sit at the
    target. Writes a single history entry for the jump.
    """
    if order.status == target_status:
        return False
    if order.status in lifecycle_service.ORDER_TERMINAL:
        raise InvalidTransition(
            f"Order {order.order_number} is {order.status}",
            details={"current_status": order.status, "requested_status": target_status, "current": order.to_dict()},
        )
    current_pos = lifecycle_service.chain_position(order.status)
    target_pos = lifecycle_service.chain_position(target_status)
    if target_pos <= current_pos:
        return False

    previous = order.status
    _apply_effects(order, target_status, actor)
    order.status = target_status
    _append_history(order, target_status, actor, note or "Updated from delivery tracking")
    _notify_admin(order, target_status, actor)
    current_app.logger.info(
        "Order %s status %s -> %s mirrored from delivery by %s",
        order.order_number, previous, target_status, actor.label,
    )
    return True


# =============================================================================
# Checkout
# =============================================================================


def _parse_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")
    parsed = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict) or not raw.get("product_id"):
            raise ValidationError("Each item needs a product_id", details={"index": index})
        quantity = raw.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("quantity must be a positive integer", details={"index": index})
        parsed.append({"product_id": raw["product_id"], "quantity": quantity, "notes": raw.get("notes")})
    return parsed


def _resolve_address(customer: Customer, address_id: str | None, delivery_address: dict | None) -> DeliveryAddress:
    if address_id:
        address = db.session.query(Address).filter(
            Address.id == address_id,
            Address.customer_id == customer.id,
        ).first()
        if not address:
            raise NotFound("Address not found", details={"address_id": address_id})
        return DeliveryAddress.from_dict(address.snapshot())
    if delivery_address is not None:
        return DeliveryAddress.from_dict(delivery_address)
    raise ValidationError("address_id or delivery_address is required")


def create_order(
    customer_id: str,
    items: list[dict],
    *,
    payment_method: str,
    address_id: str | None = None,
    delivery_address: dict | None = None,
    delivery_notes: str | None = None,
    express: bool = False,
    discount_code: str | None = None,
    actor: Actor | None = None,
    source: str = "web",
) -> Order:
    """
    Place an order: snapshot prices, reserve every line, persist as pending.

    Raises InsufficientStock (nothing persisted, no stock held) when any line
    cannot be reserved. A ``discount_code`` that cannot be used is a
    ValidationError, never silently ignored.
    """
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method '{payment_method}'. Must be one of: {', '.join(PAYMENT_METHODS)}"
        )
    lines = _parse_items(items)

    def _op():
        begin_write()
        customer = db.session.get(Customer, customer_id)
        if not customer or not customer.is_active:
            raise NotFound("Customer not found", details={"customer_id": customer_id})
        placed_by = actor or Actor(kind="customer", id=customer.id, name=customer.full_name)
        address = _resolve_address(customer, address_id, delivery_address)

        order_id = generate_id("ord")
        order_items = []
        subtotal = 0
        for position, line in enumerate(lines):
            product = db.session.get(Product, line["product_id"])
            if not product or not product.is_active:
                raise NotFound("Product not found", details={"product_id": line["product_id"]})
            unit_price = _unit_price_cents(product)
            line_total = unit_price * line["quantity"]
            subtotal += line_total
            order_items.append(OrderItem(
                order_id=order_id,
                position=position,
                product_id=product.id,
                product_name=product.name,
                product_name_ar=product.name_ar,
                sku=product.sku,
                quantity=line["quantity"],
                unit_price_cents=unit_price,
                total_price_cents=line_total,
                notes=line["notes"],
            ))

        zone = zone_service.find_zone(address.emirate, address.area)
        if zone is None:
            raise ValidationError(
                "Delivery is not available in your area",
                details={"emirate": address.emirate, "area": address.area},
            )
        delivery_fee = zone.delivery_fee_cents
        if express:
            if not zone.express_enabled:
                raise ValidationError("Express delivery is not available for this area")
            # Express replaces the zone fee rather than adding to it
            delivery_fee = zone.express_fee_cents
        if subtotal < zone.minimum_order_cents:
            raise ValidationError(
                "Order is below the minimum for this delivery zone",
                details={"minimum_order_cents": zone.minimum_order_cents, "subtotal_cents": subtotal},
            )

        discount = 0
        redeemed_code = None
        if discount_code:
            redeemed, discount = discount_service._redeem(discount_code, subtotal)
            redeemed_code = redeemed.code
        vat_rate_bps = current_app.config.get("VAT_RATE_BPS", 500)
        vat_amount = compute_vat_cents(subtotal - discount, vat_rate_bps)
        total = subtotal - discount + delivery_fee + vat_amount

        # Reserve before the order row exists; a shortfall rolls back everything
        stock_service._reserve_for_order(
            [(line["product_id"], line["quantity"]) for line in lines],
            order_id,
            placed_by.label,
        )

        now = utcnow()
        order = Order(
            id=order_id,
            order_number=_next_order_number(),
            customer_id=customer.id,
            customer_name=customer.full_name,
            customer_email=customer.email,
            customer_mobile=customer.mobile,
            subtotal_cents=subtotal,
            discount_cents=discount,
            discount_code=redeemed_code,
            delivery_fee_cents=delivery_fee,
            vat_amount_cents=vat_amount,
            vat_rate_bps=vat_rate_bps,
            total_cents=total,
            status="pending",
            payment_status="pending",
            payment_method=payment_method,
            address_id=address_id,
            delivery_address=address.to_dict(),
            delivery_notes=delivery_notes,
            delivery_zone_id=zone.id,
            is_express=bool(express),
            estimated_delivery_at=now + timedelta(minutes=zone.estimated_minutes),
            status_history=[],
            source=source,
        )
        db.session.add(order)
        db.session.add_all(order_items)
        _append_history(order, "pending", placed_by, "Order placed")
        db.session.flush()

        title, message = notification_service.order_placed_content(order)
        notification_service.dispatch(
            CustomerTarget(customer.id), "order", title, message, link="/orders", link_id=order.id
        )
        title, message = notification_service.new_order_admin_content(order)
        notification_service.dispatch(
            notification_service.admin_target(),
            "order_placed",
            title,
            message,
            link="/admin/dashboard",
            link_tab="orders",
            link_id=order.id,
        )

        db.session.commit()
        current_app.logger.info(
            "Order %s created for customer %s (%s items, total %s)",
            order.order_number, customer.id, len(order_items), total,
        )
        return order

    return run_with_retry(_op)


# =============================================================================
# Transitions
# =============================================================================


def transition(order_id: str, new_status: str, actor: Actor, note: str | None = None) -> Order:
    """
    Move an order to ``new_status``.

    Raises NotFound, InvalidTransition (details carry the unchanged order),
    or Unauthorized. Repeating a terminal status returns the order untouched.
    While a driver's delivery is still open the order can only reach
    ``delivered`` through delivery_service.complete().
    """
    lifecycle_service.validate_order_status(new_status)

    def _op():
        begin_write()
        order = _load_order(order_id, lock=True)
        _authorize_transition(order, new_status, actor)
        if new_status == "delivered" and order.status != "delivered":
            _require_no_live_delivery(order)
        _apply_transition(order, new_status, actor, note)
        db.session.commit()
        return order

    return run_with_retry(_op)


def cancel_order(order_id: str, actor: Actor, reason: str | None = None) -> Order:
    return transition(order_id, "cancelled", actor, reason)


def update_payment_status(order_id: str, payment_status: str, actor: Actor) -> Order:
    lifecycle_service.validate_payment_status(payment_status)
    if actor.role not in STAFF_ROLES or actor.kind != "staff":
        raise Unauthorized("Only staff can change payment status")

    def _op():
        begin_write()
        order = _load_order(order_id, lock=True)
        if order.payment_status == payment_status and payment_status == "refunded":
            return order
        lifecycle_service.require_payment_transition(
            order.payment_status, payment_status, snapshot=order.to_dict()
        )
        previous = order.payment_status
        order.payment_status = payment_status
        db.session.commit()
        current_app.logger.info(
            "Order %s payment %s -> %s by %s", order.order_number, previous, payment_status, actor.label
        )
        return order

    return run_with_retry(_op)


def record_gateway_result(order_id: str, result: dict, actor: Actor) -> Order:
    """
    Consume an opaque gateway result ``{captured, gateway_transaction_id}``.

    A repeated capture for an already captured order is a no-op.
    """
    if not isinstance(result, dict) or not isinstance(result.get("captured"), bool):
        raise ValidationError("Gateway result requires a boolean 'captured'")
    if actor.kind != "staff":
        raise Unauthorized("Only staff can record gateway results")
    target = "captured" if result["captured"] else "failed"

    def _op():
        begin_write()
        order = _load_order(order_id, lock=True)
        if order.payment_status != target:
            lifecycle_service.require_payment_transition(
                order.payment_status, target, snapshot=order.to_dict()
            )
            order.payment_status = target
        transaction_id = result.get("gateway_transaction_id")
        if transaction_id:
            order.gateway_transaction_id = str(transaction_id)
        db.session.commit()
        return order

    return run_with_retry(_op)


# =============================================================================
# Reads
# =============================================================================


def _visible_to(order: Order, actor: Actor | None) -> bool:
    if actor is None or actor.kind == "staff":
        return True
    if actor.kind == "customer":
        return order.customer_id == actor.id
    tracking = db.session.query(DeliveryTracking).filter(DeliveryTracking.order_id == order.id).first()
    return tracking is not None and tracking.driver_id == actor.id


def get_order(order_id: str, actor: Actor | None = None) -> Order:
    order = db.session.get(Order, order_id)
    if not order or not _visible_to(order, actor):
        raise NotFound("Order not found", details={"order_id": order_id})
    return order


def get_order_by_number(order_number: str, actor: Actor | None = None) -> Order:
    order = db.session.query(Order).filter(Order.order_number == order_number).first()
    if not order or not _visible_to(order, actor):
        raise NotFound("Order not found", details={"order_number": order_number})
    return order


def list_orders(
    *,
    customer_id: str | None = None,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Order], int]:
    if status and status not in ORDER_STATUSES:
        raise ValidationError(f"Invalid order status '{status}'")
    page = max(1, page)
    limit = max(1, min(limit, 100))

    query = db.session.query(Order)
    if customer_id:
        query = query.filter(Order.customer_id == customer_id)
    if status:
        query = query.filter(Order.status == status)
    if start:
        query = query.filter(Order.created_at >= start)
    if end:
        query = query.filter(Order.created_at <= end)

    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.order_number.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return orders, total


def order_stats(now: datetime | None = None) -> dict:
    """Dashboard counters: orders per status and sales per period."""
    per_status = dict.fromkeys(ORDER_STATUSES, 0)
    for status, count in db.session.query(Order.status, func.count(Order.id)).group_by(Order.status):
        per_status[status] = count

    revenue_filter = Order.status.notin_(("cancelled", "refunded"))
    stats = {"by_status": per_status, "total_orders": sum(per_status.values())}
    for period, since in period_starts(now).items():
        count, sales = db.session.query(
            func.count(Order.id), func.coalesce(func.sum(Order.total_cents), 0)
        ).filter(Order.created_at >= since, revenue_filter).one()
        stats[f"{period}_orders"] = count
        stats[f"{period}_sales_cents"] = int(sales)

    revenue_count, revenue_total = db.session.query(
        func.count(Order.id), func.coalesce(func.sum(Order.total_cents), 0)
    ).filter(revenue_filter).one()
    stats["average_order_value_cents"] = int(revenue_total) // revenue_count if revenue_count else 0
    stats["pending_orders"] = per_status["pending"]
    return stats
