# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Bearer session store for staff and customers.

Tokens are 32 random bytes (hex) handed to the client once; only their
SHA-256 hash is stored. Sessions expire after SESSION_LIFETIME_HOURS and can
be revoked on logout.

Lookups are read-only so actor resolution never opens a write transaction
ahead of the operation it guards.
"""

import hashlib
import secrets
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import Customer, CustomerSession, StaffSession, StaffUser
from ..time_utils import utcnow


def generate_token() -> str:
    return secrets.token_hex(32)  # 32 bytes = 64 hex characters


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _expiry():
    return utcnow() + timedelta(hours=current_app.config.get("SESSION_LIFETIME_HOURS", 24))


def create_staff_session(user_id: str) -> tuple[StaffSession, str]:
    """Returns (session_record, plaintext_token)."""
    token = generate_token()
    session = StaffSession(user_id=user_id, token_hash=hash_token(token), expires_at=_expiry())
    db.session.add(session)
    db.session.commit()
    return session, token


def create_customer_session(customer_id: str) -> tuple[CustomerSession, str]:
    token = generate_token()
    session = CustomerSession(customer_id=customer_id, token_hash=hash_token(token), expires_at=_expiry())
    db.session.add(session)
    db.session.commit()
    return session, token


def lookup_staff_session(token: str) -> StaffUser | None:
    """Active staff user behind ``token``, or None."""
    session = db.session.query(StaffSession).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session or session.expires_at < utcnow():
        return None
    user = session.user
    if not user or not user.is_active:
        return None
    return user


def lookup_customer_session(token: str) -> Customer | None:
    session = db.session.query(CustomerSession).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session or session.expires_at < utcnow():
        return None
    customer = session.customer
    if not customer or not customer.is_active:
        return None
    return customer


def get_role(user_id: str) -> str | None:
    return db.session.query(StaffUser.role).filter(StaffUser.id == user_id).scalar()


def revoke_session(token: str) -> bool:
    """
    Revoke whichever session ``token`` belongs to.

    Returns True if a session was revoked, False if not found.
    """
    token_hash = hash_token(token)
    now = utcnow()
    for model in (StaffSession, CustomerSession):
        session = db.session.query(model).filter_by(token_hash=token_hash, is_revoked=False).first()
        if session:
            session.is_revoked = True
            session.revoked_at = now
            db.session.commit()
            return True
    return False
