# Overview: Service-layer operations for delivery zones; fees, minimums and coverage checks.

"""
Delivery Zones

A zone prices delivery for one emirate, optionally narrowed to a list of
areas. Checkout and the public availability check resolve zones the same
way through find_zone().

COVERAGE:
    active zones in the address emirate, first match wins
    a zone with no areas covers the whole emirate
    otherwise the requested area and one of the zone's area names must
    contain one another (case-insensitive)
"""

from __future__ import annotations

from flask import current_app

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import DeliveryZone, Order
from .concurrency import begin_write, run_with_retry


INT_FIELDS = ("delivery_fee_cents", "minimum_order_cents", "estimated_minutes", "express_fee_cents")
BOOL_FIELDS = ("is_active", "express_enabled")


def _clean_text(data: dict, field: str, *, required: bool = False) -> str | None:
    value = data.get(field)
    if value is None:
        if required:
            raise ValidationError(f"{field} is required", details={"field": field})
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a non-empty string", details={"field": field})
    return value.strip()


def _clean_areas(value) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(a, str) and a.strip() for a in value):
        raise ValidationError("areas must be a list of area names", details={"field": "areas"})
    return [a.strip() for a in value]


def _apply_fields(zone: DeliveryZone, data: dict) -> None:
    for field in ("name", "name_ar", "emirate"):
        if field in data:
            value = _clean_text(data, field, required=field != "name_ar")
            setattr(zone, field, value)
    if "areas" in data:
        zone.areas = _clean_areas(data["areas"])
    for field in INT_FIELDS:
        if field in data:
            value = data[field]
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError(f"{field} must be a non-negative integer", details={"field": field})
            setattr(zone, field, value)
    for field in BOOL_FIELDS:
        if field in data:
            if not isinstance(data[field], bool):
                raise ValidationError(f"{field} must be true or false", details={"field": field})
            setattr(zone, field, data[field])
    if zone.estimated_minutes is not None and zone.estimated_minutes <= 0:
        raise ValidationError("estimated_minutes must be positive", details={"field": "estimated_minutes"})


def _covers(zone: DeliveryZone, area: str | None) -> bool:
    if not zone.areas or not area:
        return True
    wanted = area.lower()
    return any(name.lower() in wanted or wanted in name.lower() for name in zone.areas)


def find_zone(emirate: str, area: str | None = None) -> DeliveryZone | None:
    """The active zone delivering to ``emirate``/``area``, or None."""
    zones = (
        db.session.query(DeliveryZone)
        .filter(DeliveryZone.emirate == emirate, DeliveryZone.is_active.is_(True))
        .order_by(DeliveryZone.name.asc())
        .all()
    )
    # Zones naming specific areas win over emirate-wide ones
    zones.sort(key=lambda z: 0 if z.areas else 1)
    for zone in zones:
        if _covers(zone, area):
            return zone
    return None


def list_zones(*, emirate: str | None = None, active_only: bool = False) -> list[DeliveryZone]:
    query = db.session.query(DeliveryZone)
    if emirate:
        query = query.filter(DeliveryZone.emirate == emirate)
    if active_only:
        query = query.filter(DeliveryZone.is_active.is_(True))
    return query.order_by(DeliveryZone.emirate.asc(), DeliveryZone.name.asc()).all()


def get_zone(zone_id: str) -> DeliveryZone:
    zone = db.session.get(DeliveryZone, zone_id)
    if not zone:
        raise NotFound("Delivery zone not found", details={"zone_id": zone_id})
    return zone


def create_zone(data: dict, performed_by: str | None = None) -> DeliveryZone:
    if not isinstance(data, dict):
        raise ValidationError("Zone payload must be an object")

    def _op():
        begin_write()
        zone = DeliveryZone(
            areas=[],
            delivery_fee_cents=0,
            minimum_order_cents=0,
            estimated_minutes=60,
            express_enabled=False,
            express_fee_cents=0,
            is_active=True,
        )
        _clean_text(data, "name", required=True)
        _clean_text(data, "emirate", required=True)
        _apply_fields(zone, data)
        db.session.add(zone)
        db.session.commit()
        current_app.logger.info("Delivery zone %s (%s) created by %s", zone.name, zone.emirate, performed_by)
        return zone

    return run_with_retry(_op)


def update_zone(zone_id: str, data: dict, performed_by: str | None = None) -> DeliveryZone:
    """Partial update: only the fields present in ``data`` change."""
    if not isinstance(data, dict):
        raise ValidationError("Zone payload must be an object")

    def _op():
        begin_write()
        zone = get_zone(zone_id)
        _apply_fields(zone, data)
        db.session.commit()
        current_app.logger.info("Delivery zone %s updated by %s", zone.id, performed_by)
        return zone

    return run_with_retry(_op)


def delete_zone(zone_id: str, performed_by: str | None = None) -> bool:
    """
    Remove a zone. Returns False when orders still reference it; such a zone
    is deactivated instead so their history keeps its fee source.
    """
    def _op():
        begin_write()
        zone = get_zone(zone_id)
        in_use = db.session.query(Order.id).filter(Order.delivery_zone_id == zone.id).first() is not None
        if in_use:
            zone.is_active = False
        else:
            db.session.delete(zone)
        db.session.commit()
        current_app.logger.info(
            "Delivery zone %s %s by %s", zone_id, "deactivated" if in_use else "deleted", performed_by
        )
        return not in_use

    return run_with_retry(_op)


def check_availability(emirate: str, area: str | None = None, order_total_cents: int | None = None) -> dict:
    if not emirate or not isinstance(emirate, str):
        raise ValidationError("emirate is required", details={"field": "emirate"})
    if order_total_cents is not None and (
        isinstance(order_total_cents, bool) or not isinstance(order_total_cents, int) or order_total_cents < 0
    ):
        raise ValidationError("order_total_cents must be a non-negative integer")

    zone = find_zone(emirate, area)
    if zone is None:
        return {"available": False, "message": "Delivery is not available in your area"}

    meets_minimum = order_total_cents is None or order_total_cents >= zone.minimum_order_cents
    return {
        "available": True,
        "zone": zone.to_dict(),
        "meets_minimum_order": meets_minimum,
        "minimum_order_cents": zone.minimum_order_cents,
        "delivery_fee_cents": zone.delivery_fee_cents,
        "estimated_minutes": zone.estimated_minutes,
        "express_enabled": zone.express_enabled,
    }
