# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes.

Staff (admin, staff, delivery) and customers log in through separate
endpoints and receive a bearer token. The same Authorization header then
works across every protected route; the token decides which kind of actor
is calling.
"""

from flask import Blueprint, current_app, g, jsonify

from ..decorators import bearer_token, require_auth
from ..services import auth_service, session_service
from ..validation import json_body


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/staff/login")
def staff_login_route():
    try:
        data = json_body()
        username = data.get("username") or data.get("email")
        password = data.get("password")
        if not all([username, password]):
            return jsonify({"error": "username/email and password required"}), 400

        user = auth_service.authenticate_staff(username, password)
        if not user:
            current_app.logger.warning("Failed staff login for %s", username)
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_staff_session(user.id)
        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "expires_at": session.expires_at.isoformat(),
            "message": "Login successful",
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login staff user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/customer/login")
def customer_login_route():
    try:
        data = json_body()
        email = data.get("email")
        password = data.get("password")
        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        customer = auth_service.authenticate_customer(email, password)
        if not customer:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_customer_session(customer.id)
        return jsonify({
            "customer": customer.to_dict(),
            "token": token,
            "expires_at": session.expires_at.isoformat(),
            "message": "Login successful",
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login customer")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """Revoke the bearer token so it cannot be reused."""
    try:
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authorization header required"}), 401
        if not session_service.revoke_session(token):
            return jsonify({"error": "Invalid or expired token"}), 401
        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    actor = g.actor
    return jsonify({
        "actor": {
            "kind": actor.kind,
            "id": actor.id,
            "role": actor.role,
            "name": actor.name,
        }
    }), 200
