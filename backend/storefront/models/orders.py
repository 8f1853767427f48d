from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import generate_id


class Order(db.Model):
    """
    Customer order.

    Status and payment status only change through order_service; rows are
    never deleted (cancellation is a status). ``version_id`` gives every
    write a compare-and-swap on the previous version.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_customer_created", "customer_id", "created_at"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.CheckConstraint(
            "total_cents = subtotal_cents - discount_cents + delivery_fee_cents + vat_amount_cents",
            name="ck_orders_total_reconciles",
        ),
    )

    id = db.Column(db.String(40), primary_key=True, default=lambda: generate_id("ord"))
    order_number = db.Column(db.String(32), nullable=False, unique=True)

    customer_id = db.Column(db.String(40), db.ForeignKey("customers.id"), nullable=False, index=True)
    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_mobile = db.Column(db.String(32), nullable=True)

    # All amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_code = db.Column(db.String(50), nullable=True)
    delivery_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    vat_amount_cents = db.Column(db.Integer, nullable=False)
    vat_rate_bps = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(24), nullable=False, default="pending")
    payment_status = db.Column(db.String(24), nullable=False, default="pending", index=True)
    payment_method = db.Column(db.String(16), nullable=False)
    gateway_transaction_id = db.Column(db.String(128), nullable=True)

    address_id = db.Column(db.String(40), db.ForeignKey("addresses.id"), nullable=True)
    delivery_address = db.Column(db.JSON, nullable=False)
    delivery_notes = db.Column(db.Text, nullable=True)
    delivery_zone_id = db.Column(db.String(40), db.ForeignKey("delivery_zones.id"), nullable=True)
    is_express = db.Column(db.Boolean, nullable=False, default=False)
    estimated_delivery_at = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_delivery_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Append-only list of {status, changed_by, changed_at, notes?}
    status_history = db.Column(db.JSON, nullable=False, default=list)

    source = db.Column(db.String(16), nullable=False, default="web")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        order_by="OrderItem.position",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status!r}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_mobile": self.customer_mobile,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "discount_code": self.discount_code,
            "delivery_fee_cents": self.delivery_fee_cents,
            "vat_amount_cents": self.vat_amount_cents,
            "vat_rate_bps": self.vat_rate_bps,
            "total_cents": self.total_cents,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "gateway_transaction_id": self.gateway_transaction_id,
            "address_id": self.address_id,
            "delivery_address": self.delivery_address,
            "delivery_notes": self.delivery_notes,
            "delivery_zone_id": self.delivery_zone_id,
            "is_express": self.is_express,
            "estimated_delivery_at": to_utc_z(self.estimated_delivery_at),
            "actual_delivery_at": to_utc_z(self.actual_delivery_at),
            "status_history": list(self.status_history or []),
            "source": self.source,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Line item snapshot; written once at order creation."""
    __tablename__ = "order_items"

    id = db.Column(db.String(40), primary_key=True, default=lambda: generate_id("item"))
    order_id = db.Column(db.String(40), db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.String(40), db.ForeignKey("products.id"), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    product_name_ar = db.Column(db.String(255), nullable=True)
    sku = db.Column(db.String(64), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_name_ar": self.product_name_ar,
            "sku": self.sku,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "notes": self.notes,
        }


class DocumentSequence(db.Model):
    """Per-document-type counter behind human-readable numbers (ORD-000001)."""
    __tablename__ = "document_sequences"

    document_type = db.Column(db.String(32), primary_key=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
