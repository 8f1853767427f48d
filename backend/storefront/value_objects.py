# Overview: Typed value objects stored in JSON columns or passed between services.

"""
Typed shapes for the JSON columns on orders and delivery tracking, plus the
transient Actor and notification target types.

Every ``from_dict`` validates on the way in so a malformed payload is rejected
before it reaches a row; every ``to_dict`` produces the exact JSON that is
persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional, Union

from .errors import ValidationError
from .time_utils import to_utc_z


ORDER_STATUSES = (
    "pending",
    "confirmed",
    "processing",
    "ready_for_pickup",
    "out_for_delivery",
    "delivered",
    "cancelled",
    "refunded",
)
PAYMENT_STATUSES = ("pending", "authorized", "captured", "failed", "refunded", "partially_refunded")
PAYMENT_METHODS = ("card", "cod", "bank_transfer")
DELIVERY_STATUSES = ("assigned", "picked_up", "in_transit", "nearby", "delivered", "failed")

ActorKind = Literal["customer", "staff", "driver"]


def _require_str(data: dict, key: str, label: str | None = None) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label or key} is required", details={"field": key})
    return value.strip()


def _optional_str(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string", details={"field": key})
    return value.strip() or None


def _coordinate(value, key: str, bound: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValidationError(f"{key} must be a number", details={"field": key})
    try:
        number = float(value)
    except ValueError:
        raise ValidationError(f"{key} must be a number", details={"field": key})
    if not -bound <= number <= bound:
        raise ValidationError(f"{key} out of range", details={"field": key, "value": number})
    return number


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float
    updated_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict | None) -> Optional["GeoPoint"]:
        if data is None:
            return None
        if not isinstance(data, dict):
            raise ValidationError("location must be an object")
        lat = data.get("latitude", data.get("lat"))
        lng = data.get("longitude", data.get("lng"))
        if lat is None or lng is None:
            raise ValidationError("location requires latitude and longitude")
        # Position time is always stamped server-side
        return cls(
            latitude=_coordinate(lat, "latitude", 90),
            longitude=_coordinate(lng, "longitude", 180),
        )

    def to_dict(self) -> dict:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "updated_at": to_utc_z(self.updated_at),
        }


@dataclass(frozen=True)
class DeliveryAddress:
    """Snapshot of where an order goes; copied onto the order at checkout."""
    full_name: str
    mobile: str
    emirate: str
    area: str
    street: str
    building: str
    label: Optional[str] = None
    floor: Optional[str] = None
    apartment: Optional[str] = None
    landmark: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict) -> "DeliveryAddress":
        if not isinstance(data, dict):
            raise ValidationError("delivery_address must be an object")
        lat = data.get("latitude")
        lng = data.get("longitude")
        return cls(
            full_name=_require_str(data, "full_name"),
            mobile=_require_str(data, "mobile"),
            emirate=_require_str(data, "emirate"),
            area=_require_str(data, "area"),
            street=_require_str(data, "street"),
            building=_require_str(data, "building"),
            label=_optional_str(data, "label"),
            floor=_optional_str(data, "floor"),
            apartment=_optional_str(data, "apartment"),
            landmark=_optional_str(data, "landmark"),
            latitude=_coordinate(lat, "latitude", 90) if lat is not None else None,
            longitude=_coordinate(lng, "longitude", 180) if lng is not None else None,
        )

    def one_line(self) -> str:
        return f"{self.building}, {self.street}, {self.area}"

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "full_name": self.full_name,
            "mobile": self.mobile,
            "emirate": self.emirate,
            "area": self.area,
            "street": self.street,
            "building": self.building,
            "floor": self.floor,
            "apartment": self.apartment,
            "landmark": self.landmark,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }


@dataclass(frozen=True)
class DeliveryProof:
    signature: Optional[str] = None
    photo: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "DeliveryProof":
        if not isinstance(data, dict):
            raise ValidationError("delivery proof is required to complete a delivery")
        proof = cls(
            signature=_optional_str(data, "signature"),
            photo=_optional_str(data, "photo"),
            notes=_optional_str(data, "notes"),
        )
        if not proof.signature and not proof.photo:
            raise ValidationError("delivery proof needs a signature or a photo")
        return proof

    def to_dict(self) -> dict:
        return {"signature": self.signature, "photo": self.photo, "notes": self.notes}


@dataclass(frozen=True)
class StatusHistoryEntry:
    status: str
    changed_by: str
    changed_at: datetime
    notes: Optional[str] = None

    def to_dict(self) -> dict:
        entry = {
            "status": self.status,
            "changed_by": self.changed_by,
            "changed_at": to_utc_z(self.changed_at),
        }
        if self.notes:
            entry["notes"] = self.notes
        return entry


@dataclass(frozen=True)
class TimelineEntry:
    """
    One delivery event. ``status`` is restricted to the delivery states, so
    the set of entry variants is closed; ``location`` and ``note`` are
    optional on every variant.
    """
    status: str
    timestamp: datetime
    location: Optional[GeoPoint] = None
    note: Optional[str] = None

    def __post_init__(self):
        if self.status not in DELIVERY_STATUSES:
            raise ValidationError(f"Unknown delivery status '{self.status}'")

    def to_dict(self) -> dict:
        entry = {"status": self.status, "timestamp": to_utc_z(self.timestamp)}
        if self.location is not None:
            entry["location"] = {"latitude": self.location.latitude, "longitude": self.location.longitude}
        if self.note:
            entry["note"] = self.note
        return entry


@dataclass(frozen=True)
class BilingualText:
    en: str
    ar: str


@dataclass(frozen=True)
class StaffTarget:
    staff_id: str


@dataclass(frozen=True)
class CustomerTarget:
    customer_id: str


NotificationTarget = Union[StaffTarget, CustomerTarget]


@dataclass(frozen=True)
class Actor:
    """Resolved identity behind a request."""
    kind: ActorKind
    id: str
    role: Optional[str] = None
    name: Optional[str] = None
    notification_target: NotificationTarget = field(default=None)

    def __post_init__(self):
        if self.notification_target is None:
            target = CustomerTarget(self.id) if self.kind == "customer" else StaffTarget(self.id)
            object.__setattr__(self, "notification_target", target)

    @property
    def is_staff(self) -> bool:
        return self.kind == "staff"

    @property
    def is_admin(self) -> bool:
        return self.kind == "staff" and self.role == "admin"

    @property
    def label(self) -> str:
        return f"{self.kind}:{self.id}"
