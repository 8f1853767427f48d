# Overview: Service-layer operations for notifications; audience-scoped in-app inbox.

"""
Notification Dispatcher

Every row belongs to exactly one audience: a staff inbox (an individual
staff user, a driver, or the shared admin inbox) or a customer. Reads and
mutations are always filtered by the caller's own target, so a request can
never see or touch another audience's rows.

dispatch() joins the caller's transaction and never commits; the inbox
operations below it are standalone and commit on their own.
"""

from __future__ import annotations

from flask import current_app

from ..errors import InvalidTarget, NotFound
from ..extensions import db
from ..models import Notification
from ..value_objects import Actor, BilingualText, CustomerTarget, NotificationTarget, StaffTarget
from .concurrency import run_with_retry


DEFAULT_LIST_LIMIT = 50


def admin_target() -> StaffTarget:
    """The shared inbox every admin reads."""
    return StaffTarget(current_app.config["SHARED_ADMIN_NOTIFICATION_ID"])


def dispatch(
    target: NotificationTarget,
    notification_type: str,
    title: BilingualText,
    message: BilingualText,
    *,
    link: str | None = None,
    link_tab: str | None = None,
    link_id: str | None = None,
) -> Notification:
    """Write one inbox row for ``target``. Does not commit."""
    if isinstance(target, StaffTarget) and target.staff_id:
        owner = {"staff_user_id": target.staff_id, "customer_id": None}
    elif isinstance(target, CustomerTarget) and target.customer_id:
        owner = {"staff_user_id": None, "customer_id": target.customer_id}
    else:
        raise InvalidTarget("Notification target must be a staff or a customer id", details={"target": repr(target)})

    notification = Notification(
        type=notification_type,
        title=title.en,
        title_ar=title.ar,
        message=message.en,
        message_ar=message.ar,
        link=link,
        link_tab=link_tab,
        link_id=link_id,
        unread=True,
        **owner,
    )
    db.session.add(notification)
    db.session.flush()
    return notification


def _owned_by(query, target: NotificationTarget):
    if isinstance(target, StaffTarget):
        return query.filter(Notification.staff_user_id == target.staff_id)
    if isinstance(target, CustomerTarget):
        return query.filter(Notification.customer_id == target.customer_id)
    raise InvalidTarget("Unknown notification target")


def list_for(actor: Actor, *, limit: int = DEFAULT_LIST_LIMIT, unread_only: bool = False) -> list[Notification]:
    query = _owned_by(db.session.query(Notification), actor.notification_target)
    if unread_only:
        query = query.filter(Notification.unread.is_(True))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_count(actor: Actor) -> int:
    query = _owned_by(db.session.query(Notification), actor.notification_target)
    return query.filter(Notification.unread.is_(True)).count()


def _get_owned(notification_id: str, actor: Actor) -> Notification:
    notification = _owned_by(
        db.session.query(Notification).filter(Notification.id == notification_id),
        actor.notification_target,
    ).first()
    if not notification:
        # Rows owned by someone else look exactly like missing rows
        raise NotFound("Notification not found", details={"notification_id": notification_id})
    return notification


def mark_read(notification_id: str, actor: Actor) -> Notification:
    def _op():
        notification = _get_owned(notification_id, actor)
        notification.unread = False
        db.session.commit()
        return notification

    return run_with_retry(_op)


def mark_all_read(actor: Actor) -> int:
    def _op():
        query = _owned_by(db.session.query(Notification), actor.notification_target)
        count = query.filter(Notification.unread.is_(True)).update(
            {Notification.unread: False}, synchronize_session=False
        )
        db.session.commit()
        return count

    return run_with_retry(_op)


def delete(notification_id: str, actor: Actor) -> None:
    def _op():
        notification = _get_owned(notification_id, actor)
        db.session.delete(notification)
        db.session.commit()

    run_with_retry(_op)


def clear(actor: Actor) -> int:
    def _op():
        count = _owned_by(db.session.query(Notification), actor.notification_target).delete(
            synchronize_session=False
        )
        db.session.commit()
        return count

    return run_with_retry(_op)


# =============================================================================
# Message templates
# =============================================================================


def format_aed(cents: int) -> str:
    return f"{cents // 100}.{cents % 100:02d}"


ORDER_STATUS_CONTENT = {
    "confirmed": (
        BilingualText("Order Confirmed", "تم تأكيد الطلب"),
        BilingualText("Great news! Your order {n} has been confirmed", "أخبار سارة! تم تأكيد طلبك {n}"),
    ),
    "processing": (
        BilingualText("Order Being Prepared", "جاري تحضير الطلب"),
        BilingualText("Your order {n} is now being prepared", "جاري تحضير طلبك {n} الآن"),
    ),
    "ready_for_pickup": (
        BilingualText("Order Ready", "الطلب جاهز"),
        BilingualText("Your order {n} is ready for pickup/delivery", "طلبك {n} جاهز للاستلام/التوصيل"),
    ),
    "out_for_delivery": (
        BilingualText("Out for Delivery", "في الطريق إليك"),
        BilingualText("Your order {n} is on its way to you!", "طلبك {n} في الطريق إليك!"),
    ),
    "delivered": (
        BilingualText("Order Delivered", "تم تسليم الطلب"),
        BilingualText("Your order {n} has been delivered. Enjoy!", "تم تسليم طلبك {n}. بالهناء والشفاء!"),
    ),
    "cancelled": (
        BilingualText("Order Cancelled", "تم إلغاء الطلب"),
        BilingualText("Your order {n} has been cancelled", "تم إلغاء طلبك {n}"),
    ),
    "refunded": (
        BilingualText("Order Refunded", "تم استرداد مبلغ الطلب"),
        BilingualText("Your order {n} has been refunded", "تم استرداد مبلغ طلبك {n}"),
    ),
}

ADMIN_STATUS_CONTENT = {
    "cancelled": (
        BilingualText("Order Cancelled", "تم إلغاء الطلب"),
        BilingualText("Order {n} was cancelled by {actor}", "تم إلغاء الطلب {n} بواسطة {actor}"),
    ),
    "delivered": (
        BilingualText("Order Delivered", "تم تسليم الطلب"),
        BilingualText("Order {n} was delivered to {customer}", "تم تسليم الطلب {n} إلى {customer}"),
    ),
    "refunded": (
        BilingualText("Order Refunded", "تم استرداد مبلغ الطلب"),
        BilingualText(
            "Order {n} was refunded - Total: {total} AED",
            "تم استرداد مبلغ الطلب {n} - المجموع: {total} درهم",
        ),
    ),
}


def _fill(text: BilingualText, **values) -> BilingualText:
    return BilingualText(text.en.format(**values), text.ar.format(**values))


def order_status_content(order_number: str, status: str) -> tuple[BilingualText, BilingualText] | None:
    template = ORDER_STATUS_CONTENT.get(status)
    if template is None:
        return None
    title, message = template
    return title, _fill(message, n=order_number)


def admin_status_content(order, status: str, actor_label: str) -> tuple[BilingualText, BilingualText] | None:
    template = ADMIN_STATUS_CONTENT.get(status)
    if template is None:
        return None
    title, message = template
    return title, _fill(
        message,
        n=order.order_number,
        actor=actor_label,
        customer=order.customer_name,
        total=format_aed(order.total_cents),
    )


def order_placed_content(order) -> tuple[BilingualText, BilingualText]:
    return (
        BilingualText("Order Placed Successfully", "تم تقديم الطلب بنجاح"),
        _fill(
            BilingualText(
                "Your order {n} has been placed and is being processed",
                "تم تقديم طلبك {n} وجاري معالجته",
            ),
            n=order.order_number,
        ),
    )


def new_order_admin_content(order) -> tuple[BilingualText, BilingualText]:
    return (
        BilingualText("New Order Received", "تم استلام طلب جديد"),
        _fill(
            BilingualText(
                "New order {n} from {customer} - Total: {total} AED",
                "طلب جديد {n} من {customer} - المجموع: {total} درهم",
            ),
            n=order.order_number,
            customer=order.customer_name,
            total=format_aed(order.total_cents),
        ),
    )


def driver_assigned_content(driver_name: str, driver_mobile: str | None) -> tuple[BilingualText, BilingualText]:
    mobile = driver_mobile or "-"
    return (
        BilingualText("Driver Assigned to Your Order", "تم تعيين سائق لطلبك"),
        BilingualText(
            f"Driver: {driver_name} | Mobile: {mobile}",
            f"السائق: {driver_name} | الهاتف: {mobile}",
        ),
    )


def new_delivery_content(order_number: str, customer_name: str, address: str) -> tuple[BilingualText, BilingualText]:
    return (
        BilingualText("New Delivery Assigned", "تم تعيين توصيل جديد"),
        BilingualText(
            f"Order {order_number} assigned to you. Customer: {customer_name}. Address: {address}",
            f"تم تعيين الطلب {order_number} لك. العميل: {customer_name}. العنوان: {address}",
        ),
    )


def driver_nearby_content(order_number: str) -> tuple[BilingualText, BilingualText]:
    return (
        BilingualText("Driver Nearby", "السائق بالقرب منك"),
        BilingualText(
            f"Your driver is almost there with order {order_number}",
            f"السائق على وشك الوصول مع طلبك {order_number}",
        ),
    )


def delivery_failed_content(order_number: str) -> tuple[BilingualText, BilingualText]:
    return (
        BilingualText("Delivery Failed", "فشل التوصيل"),
        BilingualText(
            f"We could not deliver your order {order_number}. Our team will contact you.",
            f"تعذر توصيل طلبك {order_number}. سيتواصل معك فريقنا.",
        ),
    )


def delivery_failed_admin_content(order_number: str, driver_name: str, note: str | None) -> tuple[BilingualText, BilingualText]:
    reason = note or "-"
    return (
        BilingualText("Delivery Failed", "فشل التوصيل"),
        BilingualText(
            f"Delivery for order {order_number} failed. Driver: {driver_name}. Note: {reason}",
            f"فشل توصيل الطلب {order_number}. السائق: {driver_name}. ملاحظة: {reason}",
        ),
    )


def delivered_with_note_content(order_number: str, note: str | None) -> tuple[BilingualText, BilingualText]:
    if not note:
        return order_status_content(order_number, "delivered")
    return (
        BilingualText("Order Delivered", "تم تسليم الطلب"),
        BilingualText(
            f"Your order {order_number} has been delivered. Driver note: {note}",
            f"تم تسليم طلبك {order_number}. ملاحظة السائق: {note}",
        ),
    )


def low_stock_content(product_name: str, available: int, unit: str) -> tuple[BilingualText, BilingualText]:
    return (
        BilingualText("Low Stock Alert", "تنبيه انخفاض المخزون"),
        BilingualText(
            f"{product_name} is low on stock: {available} {unit} available",
            f"{product_name} منخفض في المخزون: {available} {unit} متوفر",
        ),
    )
