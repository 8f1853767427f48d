# Overview: Request decorators resolving the acting identity and enforcing who may call a route.

from functools import wraps

from flask import g, jsonify, request

from .errors import Unauthenticated
from .services import actor_service


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Resolve the bearer token into ``g.actor`` (customer, staff or driver).

    Returns 401 when the header is missing or the token matches no live
    session.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            g.actor = actor_service.resolve_actor(bearer_token())
        except Unauthenticated as e:
            return jsonify(e.to_dict()), e.status_code
        return f(*args, **kwargs)

    return decorated_function


def require_kind(*kinds: str):
    """Allow only the given actor kinds. Use after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Authentication required", "kind": "unauthenticated"}), 401
            if actor.kind not in kinds:
                return jsonify({
                    "error": "Permission denied",
                    "kind": "unauthorized",
                    "details": {"allowed": list(kinds), "actor_kind": actor.kind},
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_role(*roles: str):
    """Allow only staff whose role is one of ``roles``. Use after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Authentication required", "kind": "unauthenticated"}), 401
            if actor.kind != "staff" or actor.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "kind": "unauthorized",
                    "details": {"required_roles": list(roles)},
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator
