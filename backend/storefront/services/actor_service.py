# Overview: Service-layer operations for actors; maps a bearer token to the identity behind a request.

from __future__ import annotations

from flask import current_app

from ..errors import Unauthenticated
from ..value_objects import Actor, CustomerTarget, StaffTarget
from . import session_service


def resolve_actor(token: str | None) -> Actor:
    """
    Resolve ``token`` to an Actor.

    Staff sessions win over customer sessions. Admins share one notification
    inbox (SHARED_ADMIN_NOTIFICATION_ID); other staff and drivers keep their
    own id. ``delivery`` staff resolve as drivers.
    """
    if not token:
        raise Unauthenticated("Authentication required")

    user = session_service.lookup_staff_session(token)
    if user is not None:
        role = session_service.get_role(user.id)
        if role == "admin":
            target = StaffTarget(current_app.config["SHARED_ADMIN_NOTIFICATION_ID"])
        else:
            target = StaffTarget(user.id)
        kind = "driver" if role == "delivery" else "staff"
        return Actor(kind=kind, id=user.id, role=role, name=user.full_name, notification_target=target)

    customer = session_service.lookup_customer_session(token)
    if customer is not None:
        return Actor(
            kind="customer",
            id=customer.id,
            name=customer.full_name,
            notification_target=CustomerTarget(customer.id),
        )

    raise Unauthenticated("Invalid or expired token")
