# Overview: Flask API routes for orders; parses input and returns JSON responses.

"""Order API routes: checkout, status transitions and payment status."""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_kind, require_role
from ..errors import FulfillmentError, ValidationError
from ..services import order_service
from ..validation import datetime_arg, int_arg, json_body


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
@require_kind("customer", "staff")
def create_order_route():
    """
    Place an order.

    Customers order for themselves; staff place phone orders on behalf of a
    customer given as ``customer_id``.
    """
    try:
        data = json_body()
        actor = g.actor
        if actor.kind == "customer":
            customer_id = actor.id
            source = "web"
        else:
            customer_id = data.get("customer_id")
            if not customer_id:
                raise ValidationError("customer_id required")
            source = "staff"

        order = order_service.create_order(
            customer_id,
            data.get("items"),
            payment_method=data.get("payment_method"),
            address_id=data.get("address_id"),
            delivery_address=data.get("delivery_address"),
            delivery_notes=data.get("delivery_notes"),
            express=bool(data.get("express", False)),
            discount_code=data.get("discount_code") or None,
            actor=actor,
            source=source,
        )
        return jsonify({"order": order.to_dict()}), 201

    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
def list_orders_route():
    """Staff see every order; customers only their own; drivers none."""
    try:
        actor = g.actor
        if actor.kind == "driver":
            return jsonify({"error": "Permission denied", "kind": "unauthorized"}), 403

        customer_id = actor.id if actor.kind == "customer" else request.args.get("customer_id")
        page = int_arg("page", 1)
        limit = int_arg("limit", 20, maximum=100)
        orders, total = order_service.list_orders(
            customer_id=customer_id,
            status=request.args.get("status") or None,
            start=datetime_arg("start"),
            end=datetime_arg("end"),
            page=page,
            limit=limit,
        )
        return jsonify({
            "orders": [order.to_dict() for order in orders],
            "total": total,
            "page": page,
            "limit": limit,
        }), 200

    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/stats")
@require_auth
@require_role("admin", "staff")
def order_stats_route():
    try:
        return jsonify({"stats": order_service.order_stats()}), 200
    except Exception:
        current_app.logger.exception("Failed to compute order stats")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<order_id>")
@require_auth
def get_order_route(order_id: str):
    try:
        order = order_service.get_order(order_id, g.actor)
        return jsonify({"order": order.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/number/<order_number>")
@require_auth
def get_order_by_number_route(order_number: str):
    try:
        order = order_service.get_order_by_number(order_number, g.actor)
        return jsonify({"order": order.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load order by number")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<order_id>/status")
@require_auth
def update_status_route(order_id: str):
    """
    Transition an order.

    A rejected transition answers 409 with the unchanged order under
    ``details.current`` so the client knows nothing happened.
    """
    try:
        data = json_body()
        status = data.get("status")
        if not status:
            raise ValidationError("status required")
        order = order_service.transition(order_id, status, g.actor, data.get("notes"))
        return jsonify({"order": order.to_dict()}), 200

    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<order_id>/cancel")
@require_auth
def cancel_order_route(order_id: str):
    try:
        data = json_body()
        order = order_service.cancel_order(order_id, g.actor, data.get("reason"))
        return jsonify({"order": order.to_dict()}), 200

    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<order_id>/payment")
@require_auth
@require_role("admin", "staff")
def update_payment_route(order_id: str):
    try:
        data = json_body()
        payment_status = data.get("payment_status")
        if not payment_status:
            raise ValidationError("payment_status required")
        order = order_service.update_payment_status(order_id, payment_status, g.actor)
        return jsonify({"order": order.to_dict()}), 200

    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update payment status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<order_id>/gateway-result")
@require_auth
@require_role("admin", "staff")
def gateway_result_route(order_id: str):
    try:
        order = order_service.record_gateway_result(order_id, json_body(), g.actor)
        return jsonify({"order": order.to_dict()}), 200

    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record gateway result")
        return jsonify({"error": "Internal server error"}), 500
