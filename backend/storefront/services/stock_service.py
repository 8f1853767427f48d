# Overview: Service-layer operations for stock; encapsulates business logic and database work.

"""
Stock Ledger

Per product: quantity (owned), reserved_quantity (held by open orders) and
available_quantity (quantity - reserved). Every change appends an immutable
StockMovement.

RESERVATION:
    A reservation is a single conditional UPDATE guarded by
    ``quantity - reserved_quantity >= :n``. If the row count is zero the
    reservation lost (or never had) the stock, so two concurrent reservations
    can never over-commit a product.

IDEMPOTENCY:
    release and commit look for an existing released/out movement for the
    same order and product first; a retried call is a no-op.

Functions prefixed with an underscore join the caller's transaction and do
not commit. The public wrappers run as one transaction each.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import update

from ..errors import FulfillmentError, InsufficientStock, NotFound, ValidationError
from ..extensions import db
from ..models import Product, Stock, StockMovement
from ..time_utils import utcnow
from . import notification_service
from .concurrency import begin_write, lock_for_update, run_with_retry


def _require_positive(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer", details={"quantity": quantity})
    return quantity


def _check_invariant(stock: Stock) -> None:
    if not 0 <= stock.reserved_quantity <= stock.quantity:
        raise ValidationError(
            "Stock invariant violated",
            details={"product_id": stock.product_id, "quantity": stock.quantity, "reserved": stock.reserved_quantity},
        )
    if stock.available_quantity != stock.quantity - stock.reserved_quantity:
        raise ValidationError("Stock available quantity out of sync", details={"product_id": stock.product_id})


def _load_stock(product_id: str, *, lock: bool = False) -> Stock:
    query = db.session.query(Stock).filter(Stock.product_id == product_id)
    if lock:
        query = lock_for_update(query)
    stock = query.populate_existing().first()
    if not stock:
        raise NotFound("Stock record not found", details={"product_id": product_id})
    return stock


def _record_movement(
    stock: Stock,
    movement_type: str,
    quantity: int,
    *,
    previous_quantity: int,
    previous_reserved: int,
    reason: str | None = None,
    reference_type: str | None = None,
    reference_id: str | None = None,
    performed_by: str | None = None,
) -> StockMovement:
    movement = StockMovement(
        product_id=stock.product_id,
        type=movement_type,
        quantity=quantity,
        previous_quantity=previous_quantity,
        new_quantity=stock.quantity,
        previous_reserved=previous_reserved,
        new_reserved=stock.reserved_quantity,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
        performed_by=performed_by,
    )
    db.session.add(movement)
    return movement


def _has_movement(product_id: str, order_id: str, movement_type: str) -> bool:
    return db.session.query(StockMovement.id).filter(
        StockMovement.reference_type == "order",
        StockMovement.reference_id == order_id,
        StockMovement.product_id == product_id,
        StockMovement.type == movement_type,
    ).first() is not None


def _reserved_by_order(product_id: str, order_id: str) -> int:
    rows = db.session.query(StockMovement.quantity).filter(
        StockMovement.reference_type == "order",
        StockMovement.reference_id == order_id,
        StockMovement.product_id == product_id,
        StockMovement.type == "reserved",
    ).all()
    return sum(row.quantity for row in rows)


def _notify_if_crossed_low(stock: Stock, previous_available: int) -> None:
    if previous_available > stock.low_stock_threshold >= stock.available_quantity:
        product = stock.product
        title, message = notification_service.low_stock_content(
            product.name, stock.available_quantity, product.unit
        )
        notification_service.dispatch(
            notification_service.admin_target(),
            "stock",
            title,
            message,
            link="/admin/dashboard",
            link_tab="inventory",
            link_id=stock.product_id,
        )


def _reserve(product_id: str, quantity: int, order_id: str, performed_by: str | None = None) -> Stock:
    _require_positive(quantity)
    stmt = (
        update(Stock)
        .where(
            Stock.product_id == product_id,
            Stock.quantity - Stock.reserved_quantity >= quantity,
        )
        .values(
            reserved_quantity=Stock.reserved_quantity + quantity,
            available_quantity=Stock.quantity - Stock.reserved_quantity - quantity,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        current = db.session.query(Stock).filter(Stock.product_id == product_id).populate_existing().first()
        if current is None and db.session.get(Product, product_id) is None:
            raise NotFound("Product not found", details={"product_id": product_id})
        available = current.available_quantity if current else 0
        raise InsufficientStock(
            "Insufficient stock",
            details={"items": [{"product_id": product_id, "requested": quantity, "available": available}]},
        )

    stock = _load_stock(product_id)
    _check_invariant(stock)
    _record_movement(
        stock,
        "reserved",
        quantity,
        previous_quantity=stock.quantity,
        previous_reserved=stock.reserved_quantity - quantity,
        reason="Reserved for order",
        reference_type="order",
        reference_id=order_id,
        performed_by=performed_by,
    )
    _notify_if_crossed_low(stock, stock.available_quantity + quantity)
    return stock


def _reserve_for_order(lines: list[tuple[str, int]], order_id: str, performed_by: str | None = None) -> None:
    """
    Reserve every (product_id, quantity) line or none of them.

    All shortfalls are collected before raising so the caller sees every
    short item at once; the caller's rollback undoes the lines that did fit.
    """
    totals: dict[str, int] = {}
    for product_id, quantity in lines:
        totals[product_id] = totals.get(product_id, 0) + _require_positive(quantity)

    shortfalls = []
    for product_id, quantity in totals.items():
        try:
            _reserve(product_id, quantity, order_id, performed_by)
        except InsufficientStock as exc:
            shortfalls.extend(exc.details.get("items", []))

    if shortfalls:
        raise InsufficientStock("Insufficient stock for one or more items", details={"items": shortfalls})


def _release(product_id: str, quantity: int, order_id: str, performed_by: str | None = None) -> Stock | None:
    _require_positive(quantity)
    if _has_movement(product_id, order_id, "released") or _has_movement(product_id, order_id, "out"):
        return None

    stock = _load_stock(product_id, lock=True)
    held = min(quantity, _reserved_by_order(product_id, order_id))
    if held <= 0:
        return None

    previous_quantity = stock.quantity
    previous_reserved = stock.reserved_quantity
    stock.reserved_quantity = max(0, stock.reserved_quantity - held)
    stock.available_quantity = stock.quantity - stock.reserved_quantity
    _check_invariant(stock)
    _record_movement(
        stock,
        "released",
        previous_reserved - stock.reserved_quantity,
        previous_quantity=previous_quantity,
        previous_reserved=previous_reserved,
        reason="Order cancelled",
        reference_type="order",
        reference_id=order_id,
        performed_by=performed_by,
    )
    return stock


def _commit(product_id: str, quantity: int, order_id: str, performed_by: str | None = None) -> Stock | None:
    _require_positive(quantity)
    if _has_movement(product_id, order_id, "out"):
        return None

    stock = _load_stock(product_id, lock=True)
    if stock.quantity < quantity:
        raise InsufficientStock(
            "Cannot commit more than is on hand",
            details={"items": [{"product_id": product_id, "requested": quantity, "on_hand": stock.quantity}]},
        )

    previous_quantity = stock.quantity
    previous_reserved = stock.reserved_quantity
    previous_available = stock.available_quantity
    held = 0 if _has_movement(product_id, order_id, "released") else min(
        quantity, _reserved_by_order(product_id, order_id), stock.reserved_quantity
    )
    stock.quantity -= quantity
    stock.reserved_quantity -= held
    stock.available_quantity = stock.quantity - stock.reserved_quantity
    _check_invariant(stock)
    _record_movement(
        stock,
        "out",
        quantity,
        previous_quantity=previous_quantity,
        previous_reserved=previous_reserved,
        reason="Order delivered",
        reference_type="order",
        reference_id=order_id,
        performed_by=performed_by,
    )
    _notify_if_crossed_low(stock, previous_available)
    return stock


def reserve(product_id: str, quantity: int, order_id: str, performed_by: str | None = None) -> Stock:
    def _op():
        begin_write()
        stock = _reserve(product_id, quantity, order_id, performed_by)
        db.session.commit()
        return stock

    return run_with_retry(_op)


def release(product_id: str, quantity: int, order_id: str, performed_by: str | None = None) -> Stock | None:
    def _op():
        begin_write()
        stock = _release(product_id, quantity, order_id, performed_by)
        db.session.commit()
        return stock

    return run_with_retry(_op)


def commit(product_id: str, quantity: int, order_id: str, performed_by: str | None = None) -> Stock | None:
    def _op():
        begin_write()
        stock = _commit(product_id, quantity, order_id, performed_by)
        db.session.commit()
        return stock

    return run_with_retry(_op)


# =============================================================================
# Back-office stock management
# =============================================================================


def get_stock(product_id: str) -> Stock:
    return _load_stock(product_id)


def list_stock(*, low_stock_only: bool = False) -> list[Stock]:
    query = db.session.query(Stock).join(Product, Product.id == Stock.product_id)
    if low_stock_only:
        query = query.filter(Stock.available_quantity <= Stock.low_stock_threshold)
    return query.order_by(Product.name.asc()).all()


def restock(
    product_id: str,
    quantity: int,
    *,
    performed_by: str | None = None,
    reason: str | None = None,
    batch_number: str | None = None,
) -> Stock:
    """Receive ``quantity`` more units; creates the stock row on first receipt."""
    def _op():
        _require_positive(quantity)
        begin_write()
        product = db.session.get(Product, product_id)
        if not product:
            raise NotFound("Product not found", details={"product_id": product_id})

        stock = lock_for_update(db.session.query(Stock).filter(Stock.product_id == product_id)).first()
        if stock is None:
            stock = Stock(product_id=product_id, quantity=0, reserved_quantity=0, available_quantity=0)
            db.session.add(stock)

        previous_quantity = stock.quantity or 0
        previous_reserved = stock.reserved_quantity or 0
        stock.quantity = previous_quantity + quantity
        stock.reserved_quantity = previous_reserved
        stock.available_quantity = stock.quantity - stock.reserved_quantity
        stock.last_restocked_at = utcnow()
        _check_invariant(stock)

        note = reason or "Restock"
        if batch_number:
            note = f"{note} (batch {batch_number})"
        _record_movement(
            stock,
            "in",
            quantity,
            previous_quantity=previous_quantity,
            previous_reserved=previous_reserved,
            reason=note,
            reference_type="manual",
            performed_by=performed_by,
        )
        db.session.commit()
        return stock

    return run_with_retry(_op)


def adjust(product_id: str, new_quantity: int, *, reason: str, performed_by: str | None = None) -> Stock:
    """Set on-hand quantity after a count; never below what open orders hold."""
    def _op():
        if isinstance(new_quantity, bool) or not isinstance(new_quantity, int) or new_quantity < 0:
            raise ValidationError("new_quantity must be a non-negative integer")
        if not reason:
            raise ValidationError("reason is required for adjustments")
        begin_write()
        stock = _load_stock(product_id, lock=True)
        if new_quantity < stock.reserved_quantity:
            raise ValidationError(
                "Cannot adjust below reserved quantity",
                details={"reserved_quantity": stock.reserved_quantity, "new_quantity": new_quantity},
            )

        previous_quantity = stock.quantity
        previous_available = stock.available_quantity
        stock.quantity = new_quantity
        stock.available_quantity = stock.quantity - stock.reserved_quantity
        _check_invariant(stock)
        _record_movement(
            stock,
            "adjustment",
            new_quantity - previous_quantity,
            previous_quantity=previous_quantity,
            previous_reserved=stock.reserved_quantity,
            reason=reason,
            reference_type="manual",
            performed_by=performed_by,
        )
        _notify_if_crossed_low(stock, previous_available)
        db.session.commit()
        return stock

    return run_with_retry(_op)


def write_off(product_id: str, quantity: int, *, reason: str, performed_by: str | None = None) -> Stock:
    """Remove ``quantity`` unreserved units (waste, damage, spoilage)."""
    def _op():
        _require_positive(quantity)
        if not reason:
            raise ValidationError("reason is required for write-offs")
        begin_write()
        stock = _load_stock(product_id, lock=True)
        if stock.available_quantity < quantity:
            raise InsufficientStock(
                "Insufficient stock",
                details={"items": [{"product_id": product_id, "requested": quantity, "available": stock.available_quantity}]},
            )

        previous_quantity = stock.quantity
        previous_available = stock.available_quantity
        stock.quantity = previous_quantity - quantity
        stock.available_quantity = stock.quantity - stock.reserved_quantity
        _check_invariant(stock)
        _record_movement(
            stock,
            "out",
            quantity,
            previous_quantity=previous_quantity,
            previous_reserved=stock.reserved_quantity,
            reason=reason,
            reference_type="manual",
            performed_by=performed_by,
        )
        _notify_if_crossed_low(stock, previous_available)
        db.session.commit()
        return stock

    return run_with_retry(_op)


BULK_TYPES = ("in", "out", "adjustment")


def bulk_update(updates: list, performed_by: str | None = None) -> list[dict]:
    """
    Apply a list of ``{product_id, quantity, type, reason}`` changes.

    The payload shape is checked up front; after that each item is its own
    transaction, so one failing product does not roll back the others.
    ``adjustment`` sets the on-hand quantity, ``in``/``out`` move it by
    ``quantity``.
    """
    if not isinstance(updates, list) or not updates:
        raise ValidationError("updates must be a non-empty list")
    for index, item in enumerate(updates):
        if not isinstance(item, dict):
            raise ValidationError("Each update must be an object", details={"index": index})
        if not isinstance(item.get("product_id"), str) or not item["product_id"]:
            raise ValidationError("product_id is required", details={"index": index})
        if item.get("type") not in BULK_TYPES:
            raise ValidationError(f"type must be one of {', '.join(BULK_TYPES)}", details={"index": index})
        if not isinstance(item.get("reason"), str) or not item["reason"].strip():
            raise ValidationError("reason is required", details={"index": index})
        quantity = item.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise ValidationError("quantity must be a non-negative integer", details={"index": index})

    results = []
    for item in updates:
        product_id, quantity, reason = item["product_id"], item["quantity"], item["reason"].strip()
        try:
            if item["type"] == "in":
                stock = restock(product_id, quantity, performed_by=performed_by, reason=reason)
            elif item["type"] == "out":
                stock = write_off(product_id, quantity, reason=reason, performed_by=performed_by)
            else:
                stock = adjust(product_id, quantity, reason=reason, performed_by=performed_by)
        except FulfillmentError as e:
            current_app.logger.warning("Bulk stock update failed for %s: %s", product_id, e)
            results.append({"product_id": product_id, "success": False, "error": str(e)})
            continue
        results.append({"product_id": product_id, "success": True, "stock": stock.to_dict()})

    current_app.logger.info(
        "Bulk stock update by %s: %d of %d applied",
        performed_by,
        sum(1 for r in results if r["success"]),
        len(results),
    )
    return results


def update_thresholds(
    product_id: str,
    *,
    low_stock_threshold: int | None = None,
    reorder_point: int | None = None,
    reorder_quantity: int | None = None,
) -> Stock:
    def _op():
        begin_write()
        stock = _load_stock(product_id, lock=True)
        for field, value in (
            ("low_stock_threshold", low_stock_threshold),
            ("reorder_point", reorder_point),
            ("reorder_quantity", reorder_quantity),
        ):
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError(f"{field} must be a non-negative integer")
            setattr(stock, field, value)
        db.session.commit()
        return stock

    return run_with_retry(_op)


def low_stock_alerts() -> list[dict]:
    """Products at or below their threshold, most urgent first."""
    alerts = []
    for stock in list_stock(low_stock_only=True):
        if stock.available_quantity <= 0:
            urgency = "out_of_stock"
        elif stock.available_quantity <= stock.low_stock_threshold // 2:
            urgency = "critical"
        else:
            urgency = "low"
        alerts.append({
            "product_id": stock.product_id,
            "product_name": stock.product.name,
            "sku": stock.product.sku,
            "available_quantity": stock.available_quantity,
            "low_stock_threshold": stock.low_stock_threshold,
            "reorder_point": stock.reorder_point,
            "suggested_reorder_quantity": stock.reorder_quantity,
            "urgency": urgency,
        })
    rank = {"out_of_stock": 0, "critical": 1, "low": 2}
    alerts.sort(key=lambda a: (rank[a["urgency"]], a["available_quantity"], a["product_name"]))
    return alerts


def list_movements(
    *,
    product_id: str | None = None,
    movement_type: str | None = None,
    reference_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
) -> list[StockMovement]:
    if movement_type and movement_type not in StockMovement.TYPES:
        raise ValidationError(f"Unknown movement type '{movement_type}'")
    query = db.session.query(StockMovement)
    if product_id:
        query = query.filter(StockMovement.product_id == product_id)
    if movement_type:
        query = query.filter(StockMovement.type == movement_type)
    if reference_id:
        query = query.filter(StockMovement.reference_id == reference_id)
    if start:
        query = query.filter(StockMovement.created_at >= start)
    if end:
        query = query.filter(StockMovement.created_at <= end)
    return query.order_by(StockMovement.created_at.desc()).limit(limit).all()
