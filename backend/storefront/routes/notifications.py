# Overview: Flask API routes for the in-app notification inbox.

"""
Every route scopes to the caller's own inbox: an admin's shared inbox, a
staff member's or driver's personal inbox, or a customer's inbox.
"""

from flask import Blueprint, current_app, g, jsonify

from ..decorators import require_auth
from ..errors import FulfillmentError
from ..services import notification_service
from ..validation import bool_arg, int_arg


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    try:
        notifications = notification_service.list_for(
            g.actor,
            limit=int_arg("limit", notification_service.DEFAULT_LIST_LIMIT, maximum=200),
            unread_only=bool_arg("unread"),
        )
        return jsonify({
            "notifications": [n.to_dict() for n in notifications],
            "unread_count": notification_service.unread_count(g.actor),
        }), 200

    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list notifications")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.patch("/read-all")
@require_auth
def mark_all_read_route():
    try:
        count = notification_service.mark_all_read(g.actor)
        return jsonify({"updated": count}), 200
    except Exception:
        current_app.logger.exception("Failed to mark notifications read")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.patch("/<notification_id>/read")
@require_auth
def mark_read_route(notification_id: str):
    try:
        notification = notification_service.mark_read(notification_id, g.actor)
        return jsonify({"notification": notification.to_dict()}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to mark notification read")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.delete("/<notification_id>")
@require_auth
def delete_notification_route(notification_id: str):
    try:
        notification_service.delete(notification_id, g.actor)
        return jsonify({"deleted": True}), 200
    except FulfillmentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete notification")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.delete("")
@require_auth
def clear_notifications_route():
    try:
        count = notification_service.clear(g.actor)
        return jsonify({"deleted": count}), 200
    except Exception:
        current_app.logger.exception("Failed to clear notifications")
        return jsonify({"error": "Internal server error"}), 500
