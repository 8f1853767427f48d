from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .base import generate_id


class StaffUser(db.Model):
    """
    Back-office accounts: admins, staff and delivery drivers.

    Drivers are staff users with role ``delivery``; assignment refuses any
    other role.
    """
    __tablename__ = "staff_users"

    ROLES = ("admin", "staff", "delivery")

    id = db.Column(db.String(40), primary_key=True, default=lambda: generate_id("user"))
    username = db.Column(db.String(64), nullable=False, unique=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    first_name = db.Column(db.String(100), nullable=False)
    family_name = db.Column(db.String(100), nullable=False)
    mobile = db.Column(db.String(32), nullable=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(16), nullable=False, default="staff", index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.family_name}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "first_name": self.first_name,
            "family_name": self.family_name,
            "mobile": self.mobile,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at),
        }


class Customer(db.Model):
    __tablename__ = "customers"

    id = db.Column(db.String(40), primary_key=True, default=lambda: generate_id("cust"))
    email = db.Column(db.String(255), nullable=False, unique=True)
    first_name = db.Column(db.String(100), nullable=False)
    family_name = db.Column(db.String(100), nullable=False)
    mobile = db.Column(db.String(32), nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)
    preferred_language = db.Column(db.String(2), nullable=False, default="en")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.family_name}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "family_name": self.family_name,
            "mobile": self.mobile,
            "preferred_language": self.preferred_language,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Address(db.Model):
    """Saved customer address; orders copy it into their own snapshot."""
    __tablename__ = "addresses"

    id = db.Column(db.String(40), primary_key=True, default=lambda: generate_id("addr"))
    customer_id = db.Column(db.String(40), db.ForeignKey("customers.id"), nullable=False, index=True)
    label = db.Column(db.String(50), nullable=True)
    full_name = db.Column(db.String(200), nullable=False)
    mobile = db.Column(db.String(32), nullable=False)
    emirate = db.Column(db.String(64), nullable=False)
    area = db.Column(db.String(100), nullable=False)
    street = db.Column(db.String(200), nullable=False)
    building = db.Column(db.String(100), nullable=False)
    floor = db.Column(db.String(20), nullable=True)
    apartment = db.Column(db.String(20), nullable=True)
    landmark = db.Column(db.String(200), nullable=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def snapshot(self) -> dict:
        return {
            "label": self.label,
            "full_name": self.full_name,
            "mobile": self.mobile,
            "emirate": self.emirate,
            "area": self.area,
            "street": self.street,
            "building": self.building,
            "floor": self.floor,
            "apartment": self.apartment,
            "landmark": self.landmark,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }


class StaffSession(db.Model):
    """
    Staff bearer session. Only the SHA-256 hash of the token is stored.
    """
    __tablename__ = "staff_sessions"

    id = db.Column(db.String(40), primary_key=True, default=lambda: generate_id("ssn"))
    user_id = db.Column(db.String(40), db.ForeignKey("staff_users.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("StaffUser")


class CustomerSession(db.Model):
    __tablename__ = "customer_sessions"

    id = db.Column(db.String(40), primary_key=True, default=lambda: generate_id("cssn"))
    customer_id = db.Column(db.String(40), db.ForeignKey("customers.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    customer = db.relationship("Customer")
