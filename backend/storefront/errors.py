# Overview: Domain error taxonomy for fulfillment operations; mapped to JSON at the request boundary.

from __future__ import annotations


class FulfillmentError(Exception):
    """
    Base class for recoverable fulfillment failures.

    Each subclass carries a stable ``kind`` for clients and the HTTP status
    the request boundary answers with. ``details`` holds structured context
    (for rejected transitions, the current unchanged state).
    """
    kind = "error"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "kind": self.kind, "details": self.details}


class ValidationError(FulfillmentError):
    kind = "validation_error"


class NotFound(FulfillmentError):
    kind = "not_found"
    status_code = 404


class InvalidTransition(FulfillmentError):
    """Illegal state change. ``details["current"]`` is the untouched record."""
    kind = "invalid_transition"
    status_code = 409


class InsufficientStock(FulfillmentError):
    kind = "insufficient_stock"
    status_code = 409


class InvalidActor(FulfillmentError):
    kind = "invalid_actor"


class InvalidTarget(FulfillmentError):
    kind = "invalid_target"


class Unauthenticated(FulfillmentError):
    kind = "unauthenticated"
    status_code = 401


class Unauthorized(FulfillmentError):
    kind = "unauthorized"
    status_code = 403
