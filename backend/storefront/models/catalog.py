from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import generate_id


class Product(db.Model):
    """
    Catalog snapshot source.

    Catalog management lives elsewhere; orders only read name and price here
    and copy them onto their line items.
    """
    __tablename__ = "products"

    id = db.Column(db.String(40), primary_key=True, default=lambda: generate_id("prod"))
    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    name_ar = db.Column(db.String(255), nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False)
    # Whole-percent product discount applied to the unit price at checkout
    discount_percent = db.Column(db.Integer, nullable=False, default=0)
    unit = db.Column(db.String(16), nullable=False, default="piece")  # kg, piece, g

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "name_ar": self.name_ar,
            "price_cents": self.price_cents,
            "discount_percent": self.discount_percent,
            "unit": self.unit,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Stock(db.Model):
    """
    On-hand and reserved quantity for one product.

    Only stock_service writes these rows. The CHECK constraints back up the
    ledger invariant: 0 <= reserved <= quantity, available = quantity - reserved.
    """
    __tablename__ = "stock"
    __table_args__ = (
        db.CheckConstraint("reserved_quantity >= 0", name="ck_stock_reserved_non_negative"),
        db.CheckConstraint("reserved_quantity <= quantity", name="ck_stock_reserved_within_quantity"),
        db.CheckConstraint(
            "available_quantity = quantity - reserved_quantity",
            name="ck_stock_available_matches",
        ),
    )

    id = db.Column(db.String(40), primary_key=True, default=lambda: generate_id("stock"))
    product_id = db.Column(db.String(40), db.ForeignKey("products.id"), nullable=False, unique=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)
    available_quantity = db.Column(db.Integer, nullable=False, default=0)

    low_stock_threshold = db.Column(db.Integer, nullable=False, default=5)
    reorder_point = db.Column(db.Integer, nullable=False, default=10)
    reorder_quantity = db.Column(db.Integer, nullable=False, default=20)
    last_restocked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", backref=db.backref("stock", uselist=False, lazy=True))

    @property
    def is_low(self) -> bool:
        return self.available_quantity <= self.low_stock_threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "sku": self.product.sku if self.product else None,
            "quantity": self.quantity,
            "reserved_quantity": self.reserved_quantity,
            "available_quantity": self.available_quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "reorder_point": self.reorder_point,
            "reorder_quantity": self.reorder_quantity,
            "last_restocked_at": to_utc_z(self.last_restocked_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """Append-only audit row for every stock change."""
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id", "product_id", "type"),
    )

    TYPES = ("in", "out", "adjustment", "reserved", "released")

    id = db.Column(db.String(40), primary_key=True, default=lambda: generate_id("mov"))
    product_id = db.Column(db.String(40), db.ForeignKey("products.id"), nullable=False)
    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)
    previous_reserved = db.Column(db.Integer, nullable=False)
    new_reserved = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    reference_type = db.Column(db.String(32), nullable=True)  # order, manual
    reference_id = db.Column(db.String(40), nullable=True)
    performed_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "type": self.type,
            "quantity": self.quantity,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "previous_reserved": self.previous_reserved,
            "new_reserved": self.new_reserved,
            "reason": self.reason,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "performed_by": self.performed_by,
            "created_at": to_utc_z(self.created_at),
        }


class DeliveryZone(db.Model):
    __tablename__ = "delivery_zones"

    id = db.Column(db.String(40), primary_key=True, default=lambda: generate_id("zone"))
    name = db.Column(db.String(100), nullable=False)
    name_ar = db.Column(db.String(100), nullable=True)
    emirate = db.Column(db.String(64), nullable=False, index=True)
    # Area names this zone covers; empty covers the whole emirate
    areas = db.Column(db.JSON, nullable=False, default=list)
    delivery_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    minimum_order_cents = db.Column(db.Integer, nullable=False, default=0)
    estimated_minutes = db.Column(db.Integer, nullable=False, default=60)
    express_enabled = db.Column(db.Boolean, nullable=False, default=False)
    express_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "name_ar": self.name_ar,
            "emirate": self.emirate,
            "areas": list(self.areas or []),
            "delivery_fee_cents": self.delivery_fee_cents,
            "minimum_order_cents": self.minimum_order_cents,
            "estimated_minutes": self.estimated_minutes,
            "express_enabled": self.express_enabled,
            "express_fee_cents": self.express_fee_cents,
            "is_active": self.is_active,
        }


class DiscountCode(db.Model):
    """
    Checkout promo code. ``value`` is a whole percent for ``percentage``
    codes and cents for ``fixed`` ones.
    """
    __tablename__ = "discount_codes"
    __table_args__ = (
        db.CheckConstraint("type IN ('percentage', 'fixed')", name="ck_discount_codes_type"),
        db.CheckConstraint("usage_count >= 0", name="ck_discount_codes_usage_non_negative"),
    )

    TYPES = ("percentage", "fixed")

    id = db.Column(db.String(40), primary_key=True, default=lambda: generate_id("disc"))
    code = db.Column(db.String(50), nullable=False, unique=True)  # stored upper-case
    type = db.Column(db.String(16), nullable=False)
    value = db.Column(db.Integer, nullable=False)
    minimum_order_cents = db.Column(db.Integer, nullable=False, default=0)
    maximum_discount_cents = db.Column(db.Integer, nullable=True)
    usage_limit = db.Column(db.Integer, nullable=False, default=0)  # 0 = unlimited
    usage_count = db.Column(db.Integer, nullable=False, default=0)
    valid_from = db.Column(db.DateTime(timezone=True), nullable=True)
    valid_to = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "type": self.type,
            "value": self.value,
            "minimum_order_cents": self.minimum_order_cents,
            "maximum_discount_cents": self.maximum_discount_cents,
            "usage_limit": self.usage_limit,
            "usage_count": self.usage_count,
            "valid_from": to_utc_z(self.valid_from),
            "valid_to": to_utc_z(self.valid_to),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
