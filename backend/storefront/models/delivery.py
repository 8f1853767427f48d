from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import generate_id


class DeliveryTracking(db.Model):
    """
    Delivery state for one order, created on first driver assignment.

    Re-assignments reuse the row. ``timeline`` is append-only; services
    always assign a new list so the JSON column is flagged dirty.
    """
    __tablename__ = "delivery_tracking"

    id = db.Column(db.String(40), primary_key=True, default=lambda: generate_id("track"))
    order_id = db.Column(db.String(40), db.ForeignKey("orders.id"), nullable=False, unique=True)
    order_number = db.Column(db.String(32), nullable=False, index=True)

    driver_id = db.Column(db.String(40), db.ForeignKey("staff_users.id"), nullable=False, index=True)
    driver_name = db.Column(db.String(255), nullable=False)
    driver_mobile = db.Column(db.String(32), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="assigned", index=True)
    current_location = db.Column(db.JSON, nullable=True)
    estimated_arrival = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_arrival = db.Column(db.DateTime(timezone=True), nullable=True)
    delivery_proof = db.Column(db.JSON, nullable=True)
    timeline = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship("Order", backref=db.backref("tracking", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "order_number": self.order_number,
            "driver_id": self.driver_id,
            "driver_name": self.driver_name,
            "driver_mobile": self.driver_mobile,
            "status": self.status,
            "current_location": self.current_location,
            "estimated_arrival": to_utc_z(self.estimated_arrival),
            "actual_arrival": to_utc_z(self.actual_arrival),
            "delivery_proof": self.delivery_proof,
            "timeline": list(self.timeline or []),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
