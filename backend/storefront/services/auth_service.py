# Overview: Service-layer operations for auth; account creation and credential checks.

"""
Authentication for back-office staff and storefront customers.

Passwords are hashed with bcrypt; the cost factor comes from
``BCRYPT_ROUNDS`` (12 by default, lowered in tests). Session issuance lives
in session_service.
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import Customer, StaffUser
from ..time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Minimum 8 characters with at least one letter and one digit.

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_staff_user(
    username: str,
    email: str,
    password: str,
    *,
    first_name: str,
    family_name: str,
    role: str = "staff",
    mobile: str | None = None,
) -> StaffUser:
    if role not in StaffUser.ROLES:
        raise ValidationError(f"Invalid role '{role}'. Must be one of: {', '.join(StaffUser.ROLES)}")

    existing = db.session.query(StaffUser).filter(
        db.or_(StaffUser.username == username, StaffUser.email == email)
    ).first()
    if existing:
        raise ValidationError("Username or email already exists")

    user = StaffUser(
        username=username,
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        family_name=family_name,
        role=role,
        mobile=mobile,
    )
    db.session.add(user)
    db.session.commit()
    return user


def create_customer(
    email: str,
    password: str,
    *,
    first_name: str,
    family_name: str,
    mobile: str | None = None,
) -> Customer:
    if db.session.query(Customer).filter(Customer.email == email).first():
        raise ValidationError("Email already registered")

    customer = Customer(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        family_name=family_name,
        mobile=mobile,
    )
    db.session.add(customer)
    db.session.commit()
    return customer


def authenticate_staff(username: str, password: str) -> StaffUser | None:
    """Username or email login. Returns None on any mismatch."""
    user = db.session.query(StaffUser).filter(
        db.or_(StaffUser.username == username, StaffUser.email == username),
        StaffUser.is_active.is_(True),
    ).first()
    if not user or not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def authenticate_customer(email: str, password: str) -> Customer | None:
    customer = db.session.query(Customer).filter(
        Customer.email == email,
        Customer.is_active.is_(True),
    ).first()
    if not customer or not verify_password(password, customer.password_hash):
        return None

    customer.last_login_at = utcnow()
    db.session.commit()
    return customer
