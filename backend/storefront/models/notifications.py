from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import generate_id


class Notification(db.Model):
    """
    In-app inbox row owned by exactly one audience.

    ``staff_user_id`` is a staff id or the shared admin inbox id, so it is not
    a foreign key. The CHECK constraint rejects rows with both or neither owner.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.CheckConstraint(
            "(staff_user_id IS NULL) <> (customer_id IS NULL)",
            name="ck_notifications_single_owner",
        ),
        db.Index("ix_notifications_staff_created", "staff_user_id", "created_at"),
        db.Index("ix_notifications_customer_created", "customer_id", "created_at"),
    )

    id = db.Column(db.String(40), primary_key=True, default=lambda: generate_id("notif"))
    staff_user_id = db.Column(db.String(40), nullable=True)
    customer_id = db.Column(db.String(40), db.ForeignKey("customers.id"), nullable=True)

    type = db.Column(db.String(32), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    title_ar = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    message_ar = db.Column(db.Text, nullable=False)
    link = db.Column(db.String(255), nullable=True)
    link_tab = db.Column(db.String(50), nullable=True)
    link_id = db.Column(db.String(40), nullable=True)

    unread = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "staff_user_id": self.staff_user_id,
            "customer_id": self.customer_id,
            "type": self.type,
            "title": self.title,
            "title_ar": self.title_ar,
            "message": self.message,
            "message_ar": self.message_ar,
            "link": self.link,
            "link_tab": self.link_tab,
            "link_id": self.link_id,
            "unread": self.unread,
            "created_at": to_utc_z(self.created_at),
        }
