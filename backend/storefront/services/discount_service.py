# Overview: Service-layer operations for checkout discount codes.

"""
Discount Codes

A code takes ``value`` percent (capped by maximum_discount_cents) or a fixed
``value`` cents off the order subtotal, never more than the subtotal itself.
Codes are matched case-insensitively.

REDEMPTION:
    Checkout redeems inside its own transaction. The usage counter moves with
    a conditional UPDATE guarded by ``usage_limit = 0 OR usage_count <
    usage_limit``, so the last use of a limited code cannot be handed out
    twice. A rolled-back checkout leaves the counter untouched.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_, update

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import DiscountCode
from ..time_utils import utcnow
from ..validation import datetime_field
from .concurrency import begin_write, run_with_retry


def _normalise(code) -> str:
    if not isinstance(code, str) or not code.strip():
        raise ValidationError("discount code must be a non-empty string", details={"field": "discount_code"})
    return code.strip().upper()


def _non_negative(data: dict, field: str, default: int | None = None) -> int | None:
    value = data.get(field, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field} must be a non-negative integer", details={"field": field})
    return value


def compute_discount_cents(code: DiscountCode, subtotal_cents: int) -> int:
    if code.type == "percentage":
        # Half-up on whole cents
        amount = (subtotal_cents * code.value + 50) // 100
        if code.maximum_discount_cents is not None:
            amount = min(amount, code.maximum_discount_cents)
    else:
        amount = code.value
    return min(amount, subtotal_cents)


def _usable_code(code: str, subtotal_cents: int) -> DiscountCode:
    normalised = _normalise(code)
    discount = db.session.query(DiscountCode).filter(DiscountCode.code == normalised).first()
    if discount is None or not discount.is_active:
        raise ValidationError("Invalid discount code", details={"discount_code": normalised})
    now = utcnow()
    if (discount.valid_from and now < discount.valid_from) or (discount.valid_to and now > discount.valid_to):
        raise ValidationError("Discount code has expired or is not yet valid", details={"discount_code": normalised})
    if discount.usage_limit and discount.usage_count >= discount.usage_limit:
        raise ValidationError("Discount code has reached its usage limit", details={"discount_code": normalised})
    if subtotal_cents < discount.minimum_order_cents:
        raise ValidationError(
            "Order is below the minimum for this discount code",
            details={"discount_code": normalised, "minimum_order_cents": discount.minimum_order_cents},
        )
    return discount


def _redeem(code: str, subtotal_cents: int) -> tuple[DiscountCode, int]:
    """Validate and consume one use of ``code``. Joins the caller's transaction."""
    discount = _usable_code(code, subtotal_cents)
    stmt = (
        update(DiscountCode)
        .where(
            DiscountCode.id == discount.id,
            or_(DiscountCode.usage_limit == 0, DiscountCode.usage_count < DiscountCode.usage_limit),
        )
        .values(usage_count=DiscountCode.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount != 1:
        raise ValidationError("Discount code has reached its usage limit", details={"discount_code": discount.code})
    return discount, compute_discount_cents(discount, subtotal_cents)


def quote(code: str, subtotal_cents) -> dict:
    """What ``code`` would take off ``subtotal_cents``; consumes nothing."""
    if isinstance(subtotal_cents, bool) or not isinstance(subtotal_cents, int) or subtotal_cents < 0:
        raise ValidationError("order_total_cents must be a non-negative integer")
    discount = _usable_code(code, subtotal_cents)
    return {
        "code": discount.code,
        "type": discount.type,
        "value": discount.value,
        "discount_cents": compute_discount_cents(discount, subtotal_cents),
    }


def list_codes(*, active_only: bool = False) -> list[DiscountCode]:
    query = db.session.query(DiscountCode)
    if active_only:
        query = query.filter(DiscountCode.is_active.is_(True))
    return query.order_by(DiscountCode.created_at.desc()).all()


def create_code(data: dict, performed_by: str | None = None) -> DiscountCode:
    if not isinstance(data, dict):
        raise ValidationError("Discount code payload must be an object")
    code = _normalise(data.get("code"))
    if data.get("type") not in DiscountCode.TYPES:
        raise ValidationError(f"type must be one of {', '.join(DiscountCode.TYPES)}", details={"field": "type"})
    value = _non_negative(data, "value")
    if not value:
        raise ValidationError("value must be a positive integer", details={"field": "value"})
    if data["type"] == "percentage" and value > 100:
        raise ValidationError("percentage value cannot exceed 100", details={"field": "value"})
    valid_from = datetime_field(data, "valid_from")
    valid_to = datetime_field(data, "valid_to")
    if valid_from and valid_to and valid_to <= valid_from:
        raise ValidationError("valid_to must be after valid_from", details={"field": "valid_to"})

    discount = DiscountCode(
        code=code,
        type=data["type"],
        value=value,
        minimum_order_cents=_non_negative(data, "minimum_order_cents", 0),
        maximum_discount_cents=_non_negative(data, "maximum_discount_cents"),
        usage_limit=_non_negative(data, "usage_limit", 0),
        usage_count=0,
        valid_from=valid_from,
        valid_to=valid_to,
        is_active=True,
    )

    def _op():
        begin_write()
        if db.session.query(DiscountCode.id).filter(DiscountCode.code == code).first():
            raise ValidationError("Discount code already exists", details={"discount_code": code})
        db.session.add(discount)
        db.session.commit()
        current_app.logger.info("Discount code %s created by %s", code, performed_by)
        return discount

    return run_with_retry(_op)


def deactivate_code(code_id: str, performed_by: str | None = None) -> DiscountCode:
    """Codes are never deleted; orders keep the code they were placed with."""
    def _op():
        begin_write()
        discount = db.session.get(DiscountCode, code_id)
        if not discount:
            raise NotFound("Discount code not found", details={"code_id": code_id})
        discount.is_active = False
        db.session.commit()
        current_app.logger.info("Discount code %s deactivated by %s", discount.code, performed_by)
        return discount

    return run_with_retry(_op)
