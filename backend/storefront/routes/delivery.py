# Overview: Flask API routes for delivery tracking and delivery zones; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_kind, require_role
from ..errors import FulfillmentError, ValidationError
from ..services import delivery_service, zone_service
from ..validation import bool_arg, datetime_field, json_body, optional_int


delivery_bp = Blueprint("delivery", __name__, url_prefix="/api/delivery")


@delivery_bp.get("/drivers")
@require_auth
@require_role("admin", "staff")
def list_drivers_route():
    try:
        return jsonify({"drivers": delivery_service.list_drivers()}), 200
    except Exception:
        current_app.logger.exception("Failed to list drivers")
        return jsonify({"error": "Internal server error"}), 500


@delivery_bp.get("/tracking")
@require_auth
@require_kind("staff", "driver")
def list_tracking_route():
    """Drivers only ever see their own deliveries."""
    try:
        trackings = delivery_service.list_trackings(
            g.actor,
            driver_id=request.args.get("driver_id") or None,
            status=request.args.get("status") or None,
            order_id=request.args.get("order_id") or None,
        )
        return jsonify({"tracking": [delivery_service.tracking_summary(t) for t in trackings]}), 200

    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list delivery tracking")
        return jsonify({"error": "Internal server error"}), 500


@delivery_bp.post("/tracking/assign")
@require_auth
@require_role("admin", "staff")
def assign_route():
    try:
        data = json_body()
        order_id = data.get("order_id")
        driver_id = data.get("driver_id")
        if not order_id or not driver_id:
            raise ValidationError("order_id and driver_id required")
        tracking = delivery_service.assign(
            order_id,
            driver_id,
            g.actor,
            estimated_arrival=datetime_field(data, "estimated_arrival"),
        )
        return jsonify({"tracking": tracking.to_dict()}), 200

    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to assign delivery")
        return jsonify({"error": "Internal server error"}), 500


@delivery_bp.get("/tracking/<tracking_id>")
@require_auth
def get_tracking_route(tracking_id: str):
    try:
        tracking = delivery_service.get_tracking(tracking_id, g.actor)
        return jsonify({"tracking": tracking.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load delivery tracking")
        return jsonify({"error": "Internal server error"}), 500


@delivery_bp.get("/tracking/by-order/<order_id>")
@require_auth
def get_tracking_by_order_route(order_id: str):
    try:
        tracking = delivery_service.get_tracking_by_order(order_id, g.actor)
        return jsonify({"tracking": tracking.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load delivery tracking for order")
        return jsonify({"error": "Internal server error"}), 500


@delivery_bp.get("/tracking/order/<order_number>")
@require_auth
def get_tracking_by_number_route(order_number: str):
    try:
        tracking = delivery_service.get_tracking_by_order_number(order_number, g.actor)
        return jsonify({"tracking": tracking.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load delivery tracking by order number")
        return jsonify({"error": "Internal server error"}), 500


def _advance_from_request(**target):
    data = json_body()
    status = data.get("status")
    if not status:
        raise ValidationError("status required")
    return delivery_service.advance(
        status,
        g.actor,
        location=data.get("location"),
        note=data.get("notes"),
        proof=data.get("proof"),
        **target,
    )


@delivery_bp.post("/tracking/<tracking_id>/status")
@require_auth
@require_kind("staff", "driver")
def advance_route(tracking_id: str):
    try:
        tracking = _advance_from_request(tracking_id=tracking_id)
        return jsonify({"tracking": tracking.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update delivery status")
        return jsonify({"error": "Internal server error"}), 500


@delivery_bp.post("/tracking/by-order/<order_id>/status")
@require_auth
@require_kind("staff", "driver")
def advance_by_order_route(order_id: str):
    try:
        tracking = _advance_from_request(order_id=order_id)
        return jsonify({"tracking": tracking.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update delivery status for order")
        return jsonify({"error": "Internal server error"}), 500


@delivery_bp.post("/tracking/<tracking_id>/complete")
@require_auth
@require_kind("staff", "driver")
def complete_route(tracking_id: str):
    """Finish a delivery. Body: {signature?, photo?, notes?}; one of signature/photo required."""
    try:
        data = json_body()
        tracking = delivery_service.complete(tracking_id, data, g.actor, note=data.get("notes"))
        return jsonify({"tracking": tracking.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete delivery")
        return jsonify({"error": "Internal server error"}), 500


@delivery_bp.patch("/tracking/<tracking_id>/location")
@require_auth
@require_kind("staff", "driver")
def update_location_route(tracking_id: str):
    try:
        data = json_body()
        if data.get("latitude") is None or data.get("longitude") is None:
            raise ValidationError("latitude and longitude required")
        tracking = delivery_service.update_location(
            tracking_id, data["latitude"], data["longitude"], g.actor
        )
        return jsonify({"tracking": tracking.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update driver location")
        return jsonify({"error": "Internal server error"}), 500


@delivery_bp.get("/zones")
@require_auth
@require_role("admin", "staff")
def list_zones_route():
    try:
        zones = zone_service.list_zones(
            emirate=request.args.get("emirate") or None,
            active_only=bool_arg("active_only"),
        )
        return jsonify({"zones": [zone.to_dict() for zone in zones]}), 200
    except Exception:
        current_app.logger.exception("Failed to list delivery zones")
        return jsonify({"error": "Internal server error"}), 500


@delivery_bp.get("/zones/<zone_id>")
@require_auth
@require_role("admin", "staff")
def get_zone_route(zone_id: str):
    try:
        return jsonify({"zone": zone_service.get_zone(zone_id).to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load delivery zone")
        return jsonify({"error": "Internal server error"}), 500


@delivery_bp.post("/zones")
@require_auth
@require_role("admin")
def create_zone_route():
    try:
        zone = zone_service.create_zone(json_body(), performed_by=g.actor.label)
        return jsonify({"zone": zone.to_dict()}), 201
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create delivery zone")
        return jsonify({"error": "Internal server error"}), 500


@delivery_bp.put("/zones/<zone_id>")
@require_auth
@require_role("admin")
def update_zone_route(zone_id: str):
    try:
        zone = zone_service.update_zone(zone_id, json_body(), performed_by=g.actor.label)
        return jsonify({"zone": zone.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update delivery zone")
        return jsonify({"error": "Internal server error"}), 500


@delivery_bp.delete("/zones/<zone_id>")
@require_auth
@require_role("admin")
def delete_zone_route(zone_id: str):
    """Zones still referenced by orders are deactivated rather than removed."""
    try:
        deleted = zone_service.delete_zone(zone_id, performed_by=g.actor.label)
        message = "Zone deleted" if deleted else "Zone is used by existing orders and was deactivated"
        return jsonify({"deleted": deleted, "message": message}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete delivery zone")
        return jsonify({"error": "Internal server error"}), 500


@delivery_bp.post("/check-availability")
def check_availability_route():
    """Public: the storefront asks before checkout."""
    try:
        data = json_body()
        result = zone_service.check_availability(
            data.get("emirate"),
            data.get("area") or None,
            optional_int(data.get("order_total_cents"), "order_total_cents", minimum=0),
        )
        return jsonify(result), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to check delivery availability")
        return jsonify({"error": "Internal server error"}), 500
