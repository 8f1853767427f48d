# Overview: Flask API routes for checkout discount codes; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify

from ..decorators import require_auth, require_role
from ..errors import FulfillmentError
from ..services import discount_service
from ..validation import bool_arg, json_body


discounts_bp = Blueprint("discounts", __name__, url_prefix="/api/discount-codes")


@discounts_bp.get("")
@require_auth
@require_role("admin", "staff")
def list_codes_route():
    try:
        codes = discount_service.list_codes(active_only=bool_arg("active_only"))
        return jsonify({"discount_codes": [code.to_dict() for code in codes]}), 200
    except Exception:
        current_app.logger.exception("Failed to list discount codes")
        return jsonify({"error": "Internal server error"}), 500


@discounts_bp.post("")
@require_auth
@require_role("admin")
def create_code_route():
    try:
        code = discount_service.create_code(json_body(), performed_by=g.actor.label)
        return jsonify({"discount_code": code.to_dict()}), 201
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create discount code")
        return jsonify({"error": "Internal server error"}), 500


@discounts_bp.delete("/<code_id>")
@require_auth
@require_role("admin")
def deactivate_code_route(code_id: str):
    try:
        code = discount_service.deactivate_code(code_id, performed_by=g.actor.label)
        return jsonify({"discount_code": code.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate discount code")
        return jsonify({"error": "Internal server error"}), 500


@discounts_bp.post("/validate")
@require_auth
def validate_code_route():
    """Preview a code against a basket total; does not consume a use."""
    try:
        data = json_body()
        return jsonify(discount_service.quote(data.get("code"), data.get("order_total_cents"))), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to validate discount code")
        return jsonify({"error": "Internal server error"}), 500
