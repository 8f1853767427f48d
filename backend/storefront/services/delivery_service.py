# Overview: Service-layer operations for delivery tracking; driver assignment and delivery progress.

"""
Delivery Tracking Sub-Machine

A tracking row is created on the first driver assignment and reused by every
re-assignment. Each status call appends to the timeline (same-status calls
are location pings). Progress is mirrored onto the parent order in the same
transaction:

    assign                   -> order ready_for_pickup
    picked_up | in_transit   -> order out_for_delivery
    delivered                -> order delivered (stock commit, COD capture)

Mirroring only ever moves the order forward.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..errors import InvalidActor, InvalidTransition, NotFound, Unauthorized, ValidationError
from ..extensions import db
from ..models import DeliveryTracking, Order, StaffUser
from ..time_utils import utcnow
from ..value_objects import (
    Actor,
    CustomerTarget,
    DeliveryAddress,
    DeliveryProof,
    GeoPoint,
    StaffTarget,
    TimelineEntry,
)
from . import lifecycle_service, notification_service, order_service
from .concurrency import begin_write, lock_for_update, run_with_retry


def _require_staff(actor: Actor) -> None:
    if actor.kind != "staff" or actor.role not in order_service.STAFF_ROLES:
        raise Unauthorized("Only staff can assign deliveries")


def _require_operator(tracking: DeliveryTracking, actor: Actor) -> None:
    """Staff, or the driver currently assigned to this tracking."""
    if actor.kind == "staff" and actor.role in order_service.STAFF_ROLES:
        return
    if actor.kind == "driver" and tracking.driver_id == actor.id:
        return
    raise Unauthorized("Only the assigned driver or staff can update this delivery")


def _append_timeline(
    tracking: DeliveryTracking,
    status: str,
    *,
    location: GeoPoint | None = None,
    note: str | None = None,
) -> None:
    entry = TimelineEntry(status=status, timestamp=utcnow(), location=location, note=note)
    tracking.timeline = [*(tracking.timeline or []), entry.to_dict()]


def _set_location(tracking: DeliveryTracking, location: GeoPoint) -> None:
    stamped = GeoPoint(location.latitude, location.longitude, utcnow())
    tracking.current_location = stamped.to_dict()


def _load_tracking(tracking_id: str | None = None, order_id: str | None = None, *, lock: bool = False) -> DeliveryTracking:
    if not tracking_id and not order_id:
        raise ValidationError("tracking_id or order_id is required")
    query = db.session.query(DeliveryTracking)
    if tracking_id:
        query = query.filter(DeliveryTracking.id == tracking_id)
    else:
        query = query.filter(DeliveryTracking.order_id == order_id)
    if lock:
        query = lock_for_update(query)
    tracking = query.first()
    if not tracking:
        raise NotFound(
            "Delivery tracking not found",
            details={"tracking_id": tracking_id, "order_id": order_id},
        )
    return tracking


def _require_open_order(order: Order, tracking: DeliveryTracking) -> None:
    """A finished order takes no more driver updates of any kind."""
    if order.status in lifecycle_service.ORDER_TERMINAL:
        raise InvalidTransition(
            f"Order {order.order_number} is {order.status}",
            details={
                "current_status": tracking.status,
                "order_status": order.status,
                "current": tracking.to_dict(),
            },
        )


def _notify_customer(order: Order, content) -> None:
    title, message = content
    notification_service.dispatch(
        CustomerTarget(order.customer_id),
        "delivery",
        title,
        message,
        link="/orders",
        link_id=order.id,
    )


# =============================================================================
# Assignment
# =============================================================================


def assign(
    order_id: str,
    driver_id: str,
    actor: Actor,
    estimated_arrival: datetime | None = None,
) -> DeliveryTracking:
    """
    Assign (or re-assign) a driver to an order.

    Raises NotFound for a missing order or driver, InvalidActor when the user
    is not a delivery driver, InvalidTransition for finished orders or an
    already delivered tracking.
    """
    _require_staff(actor)

    def _op():
        begin_write()
        order = order_service._load_order(order_id, lock=True)
        driver = db.session.get(StaffUser, driver_id)
        if not driver or not driver.is_active:
            raise NotFound("Driver not found", details={"driver_id": driver_id})
        if driver.role != "delivery":
            raise InvalidActor(
                "Assigned user is not a delivery driver",
                details={"driver_id": driver_id, "role": driver.role},
            )
        if order.status in lifecycle_service.ORDER_TERMINAL:
            raise InvalidTransition(
                f"Cannot assign a driver to a {order.status} order",
                details={"current_status": order.status, "current": order.to_dict()},
            )

        tracking = lock_for_update(
            db.session.query(DeliveryTracking).filter(DeliveryTracking.order_id == order.id)
        ).first()
        if tracking is None:
            tracking = DeliveryTracking(
                order_id=order.id,
                order_number=order.order_number,
                driver_id=driver.id,
                driver_name=driver.full_name,
                driver_mobile=driver.mobile,
                status="assigned",
                estimated_arrival=estimated_arrival,
                timeline=[],
            )
            db.session.add(tracking)
            note = f"Assigned to {driver.full_name}"
        else:
            if tracking.status == "delivered":
                raise InvalidTransition(
                    "Delivery already completed",
                    details={"current_status": tracking.status, "current": tracking.to_dict()},
                )
            note = f"Reassigned from {tracking.driver_name} to {driver.full_name}"
            tracking.driver_id = driver.id
            tracking.driver_name = driver.full_name
            tracking.driver_mobile = driver.mobile
            tracking.status = "assigned"
            tracking.estimated_arrival = estimated_arrival or tracking.estimated_arrival
        _append_timeline(tracking, "assigned", note=note)

        order_service._mirror_from_delivery(order, "ready_for_pickup", actor, note)

        _notify_customer(order, notification_service.driver_assigned_content(driver.full_name, driver.mobile))
        address = DeliveryAddress.from_dict(order.delivery_address)
        title, message = notification_service.new_delivery_content(
            order.order_number, order.customer_name, address.one_line()
        )
        notification_service.dispatch(
            StaffTarget(driver.id),
            "delivery",
            title,
            message,
            link="/driver",
            link_id=order.id,
        )

        db.session.commit()
        current_app.logger.info(
            "Order %s assigned to driver %s by %s", order.order_number, driver.id, actor.label
        )
        return tracking

    return run_with_retry(_op)


# =============================================================================
# Progress
# =============================================================================


def _on_status_reached(tracking: DeliveryTracking, order: Order, status: str, actor: Actor, note: str | None, proof: DeliveryProof | None) -> None:
    if status in ("picked_up", "in_transit"):
        order_service._mirror_from_delivery(order, "out_for_delivery", actor, note)
        _notify_customer(order, notification_service.order_status_content(order.order_number, "out_for_delivery"))
    elif status == "nearby":
        _notify_customer(order, notification_service.driver_nearby_content(order.order_number))
    elif status == "delivered":
        tracking.actual_arrival = utcnow()
        tracking.delivery_proof = proof.to_dict()
        order_service._mirror_from_delivery(order, "delivered", actor, note)
        _notify_customer(
            order,
            notification_service.delivered_with_note_content(order.order_number, proof.notes or note),
        )
    elif status == "failed":
        _notify_customer(order, notification_service.delivery_failed_content(order.order_number))
        title, message = notification_service.delivery_failed_admin_content(
            order.order_number, tracking.driver_name, note
        )
        notification_service.dispatch(
            notification_service.admin_target(),
            "delivery",
            title,
            message,
            link="/admin/dashboard",
            link_tab="delivery",
            link_id=order.id,
        )


def advance(
    new_status: str,
    actor: Actor,
    *,
    tracking_id: str | None = None,
    order_id: str | None = None,
    location: dict | None = None,
    note: str | None = None,
    proof: dict | None = None,
) -> DeliveryTracking:
    """
    Move a delivery to ``new_status``.

    Same-status calls on a live delivery append a timeline ping. Repeating a
    terminal status is a no-op. Reaching ``delivered`` requires ``proof``.
    """
    lifecycle_service.validate_delivery_status(new_status)
    point = GeoPoint.from_dict(location) if location is not None else None

    def _op():
        begin_write()
        tracking = _load_tracking(tracking_id, order_id, lock=True)
        _require_operator(tracking, actor)

        if new_status == tracking.status and tracking.status in lifecycle_service.DELIVERY_TERMINAL:
            return tracking
        order = order_service._load_order(tracking.order_id, lock=True)
        _require_open_order(order, tracking)

        if new_status == tracking.status:
            _append_timeline(tracking, new_status, location=point, note=note)
            if point is not None:
                _set_location(tracking, point)
            db.session.commit()
            return tracking

        lifecycle_service.require_delivery_transition(
            tracking.status, new_status, snapshot=tracking.to_dict()
        )
        delivery_proof = DeliveryProof.from_dict(proof) if new_status == "delivered" else None

        previous = tracking.status
        tracking.status = new_status
        _append_timeline(tracking, new_status, location=point, note=note)
        if point is not None:
            _set_location(tracking, point)
        _on_status_reached(tracking, order, new_status, actor, note, delivery_proof)

        db.session.commit()
        current_app.logger.info(
            "Delivery %s for order %s %s -> %s by %s",
            tracking.id, tracking.order_number, previous, new_status, actor.label,
        )
        return tracking

    return run_with_retry(_op)


def complete(tracking_id: str, proof: dict, actor: Actor, note: str | None = None) -> DeliveryTracking:
    return advance("delivered", actor, tracking_id=tracking_id, proof=proof, note=note)


def update_location(tracking_id: str, latitude, longitude, actor: Actor) -> DeliveryTracking:
    """Last-write-wins position update. Adds no timeline entry."""
    point = GeoPoint.from_dict({"latitude": latitude, "longitude": longitude})

    def _op():
        begin_write()
        tracking = _load_tracking(tracking_id, lock=True)
        _require_operator(tracking, actor)
        if tracking.status in lifecycle_service.DELIVERY_TERMINAL:
            raise InvalidTransition(
                f"Delivery is already {tracking.status}",
                details={"current_status": tracking.status, "current": tracking.to_dict()},
            )
        _require_open_order(order_service._load_order(tracking.order_id), tracking)
        _set_location(tracking, point)
        db.session.commit()
        return tracking

    return run_with_retry(_op)


# =============================================================================
# Reads
# =============================================================================


def _visible_to(tracking: DeliveryTracking, actor: Actor) -> bool:
    if actor.kind == "staff":
        return True
    if actor.kind == "driver":
        return tracking.driver_id == actor.id
    return tracking.order is not None and tracking.order.customer_id == actor.id


def _visible_or_404(tracking: DeliveryTracking, actor: Actor) -> DeliveryTracking:
    if not _visible_to(tracking, actor):
        raise NotFound("Delivery tracking not found", details={"tracking_id": tracking.id})
    return tracking


def get_tracking(tracking_id: str, actor: Actor) -> DeliveryTracking:
    return _visible_or_404(_load_tracking(tracking_id), actor)


def get_tracking_by_order(order_id: str, actor: Actor) -> DeliveryTracking:
    return _visible_or_404(_load_tracking(order_id=order_id), actor)


def get_tracking_by_order_number(order_number: str, actor: Actor) -> DeliveryTracking:
    tracking = db.session.query(DeliveryTracking).filter(DeliveryTracking.order_number == order_number).first()
    if not tracking:
        raise NotFound("Delivery tracking not found", details={"order_number": order_number})
    return _visible_or_404(tracking, actor)


def tracking_summary(tracking: DeliveryTracking) -> dict:
    data = tracking.to_dict()
    order = tracking.order
    data["order"] = {
        "status": order.status,
        "customer_name": order.customer_name,
        "customer_mobile": order.customer_mobile,
        "delivery_address": order.delivery_address,
        "delivery_notes": order.delivery_notes,
        "total_cents": order.total_cents,
        "payment_method": order.payment_method,
        "payment_status": order.payment_status,
    }
    return data


def list_trackings(
    actor: Actor,
    *,
    driver_id: str | None = None,
    status: str | None = None,
    order_id: str | None = None,
) -> list[DeliveryTracking]:
    if actor.kind == "customer":
        raise Unauthorized("Customers cannot list deliveries")
    if actor.kind == "driver":
        driver_id = actor.id
    if status:
        lifecycle_service.validate_delivery_status(status)

    query = db.session.query(DeliveryTracking)
    if driver_id:
        query = query.filter(DeliveryTracking.driver_id == driver_id)
    if status:
        query = query.filter(DeliveryTracking.status == status)
    if order_id:
        query = query.filter(DeliveryTracking.order_id == order_id)
    return query.order_by(DeliveryTracking.updated_at.desc()).all()


def list_drivers() -> list[dict]:
    """Active delivery drivers with their count of unfinished deliveries."""
    active_counts = dict(
        db.session.query(DeliveryTracking.driver_id, func.count(DeliveryTracking.id))
        .filter(DeliveryTracking.status.notin_(tuple(lifecycle_service.DELIVERY_TERMINAL)))
        .group_by(DeliveryTracking.driver_id)
        .all()
    )
    drivers = (
        db.session.query(StaffUser)
        .filter(StaffUser.role == "delivery", StaffUser.is_active.is_(True))
        .order_by(StaffUser.first_name.asc())
        .all()
    )
    result = []
    for driver in drivers:
        data = driver.to_dict()
        data["name"] = driver.full_name
        data["active_deliveries"] = active_counts.get(driver.id, 0)
        result.append(data)
    return result
