# Overview: Flask API routes for stock; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import FulfillmentError
from ..services import stock_service
from ..validation import bool_arg, datetime_arg, int_arg, json_body, optional_int, strict_int


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
@require_auth
@require_role("admin", "staff")
def list_stock_route():
    try:
        stocks = stock_service.list_stock(low_stock_only=bool_arg("low_stock"))
        return jsonify({"stock": [stock.to_dict() for stock in stocks]}), 200
    except Exception:
        current_app.logger.exception("Failed to list stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/alerts")
@require_auth
@require_role("admin", "staff")
def low_stock_alerts_route():
    try:
        return jsonify({"alerts": stock_service.low_stock_alerts()}), 200
    except Exception:
        current_app.logger.exception("Failed to compute low stock alerts")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/movements")
@require_auth
@require_role("admin", "staff")
def list_movements_route():
    try:
        movements = stock_service.list_movements(
            product_id=request.args.get("product_id") or None,
            movement_type=request.args.get("type") or None,
            reference_id=request.args.get("order_id") or None,
            start=datetime_arg("start"),
            end=datetime_arg("end"),
            limit=int_arg("limit", 100, maximum=500),
        )
        return jsonify({"movements": [movement.to_dict() for movement in movements]}), 200

    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/<product_id>")
@require_auth
@require_role("admin", "staff")
def get_stock_route(product_id: str):
    try:
        return jsonify({"stock": stock_service.get_stock(product_id).to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/restock/<product_id>")
@require_auth
@require_role("admin", "staff")
def restock_route(product_id: str):
    try:
        data = json_body()
        stock = stock_service.restock(
            product_id,
            strict_int(data.get("quantity"), "quantity", minimum=1),
            performed_by=g.actor.label,
            reason=data.get("reason"),
            batch_number=data.get("batch_number"),
        )
        return jsonify({"stock": stock.to_dict()}), 200

    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to restock product")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/<product_id>/adjust")
@require_auth
@require_role("admin")
def adjust_route(product_id: str):
    """Set on-hand quantity after a physical count. Admin only."""
    try:
        data = json_body()
        stock = stock_service.adjust(
            product_id,
            strict_int(data.get("quantity"), "quantity", minimum=0),
            reason=data.get("reason"),
            performed_by=g.actor.label,
        )
        return jsonify({"stock": stock.to_dict()}), 200

    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/bulk-update")
@require_auth
@require_role("admin")
def bulk_update_route():
    """Body: {"updates": [{product_id, quantity, type: in|out|adjustment, reason}]}."""
    try:
        data = json_body()
        results = stock_service.bulk_update(data.get("updates"), performed_by=g.actor.label)
        return jsonify({"results": results, "message": f"Processed {len(results)} stock updates"}), 200

    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to bulk update stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.patch("/<product_id>/thresholds")
@require_auth
@require_role("admin", "staff")
def thresholds_route(product_id: str):
    try:
        data = json_body()
        stock = stock_service.update_thresholds(
            product_id,
            low_stock_threshold=optional_int(data.get("low_stock_threshold"), "low_stock_threshold", minimum=0),
            reorder_point=optional_int(data.get("reorder_point"), "reorder_point", minimum=0),
            reorder_quantity=optional_int(data.get("reorder_quantity"), "reorder_quantity", minimum=0),
        )
        return jsonify({"stock": stock.to_dict()}), 200

    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update stock thresholds")
        return jsonify({"error": "Internal server error"}), 500
