"""
Notification inbox tests.

Verifies:
- Every admin reads the same shared inbox; other staff keep their own
- A caller can never read, mark or delete another audience's rows
- A notification needs exactly one owner
"""

import pytest

from conftest import actor_for, customer_token, staff_token
from storefront.errors import InvalidTarget, NotFound, Unauthenticated
from storefront.services import actor_service, notification_service, session_service
from storefront.value_objects import BilingualText, CustomerTarget, StaffTarget


TITLE = BilingualText("Hello", "مرحبا")
MESSAGE = BilingualText("Test message", "رسالة اختبار")


def _send(db_session, target, count=1):
    sent = [notification_service.dispatch(target, "test", TITLE, MESSAGE) for _ in range(count)]
    db_session.commit()
    return sent


class TestDispatch:
    def test_requires_an_owner(self, db_session):
        with pytest.raises(InvalidTarget):
            notification_service.dispatch(StaffTarget(""), "test", TITLE, MESSAGE)
        with pytest.raises(InvalidTarget):
            notification_service.dispatch(None, "test", TITLE, MESSAGE)

    def test_rejects_blank_or_unknown_targets(self, db_session):
        with pytest.raises(InvalidTarget):
            notification_service.dispatch(CustomerTarget(""), "test", TITLE, MESSAGE)
        with pytest.raises(InvalidTarget):
            notification_service.dispatch({"staff_id": "user_1"}, "test", TITLE, MESSAGE)
        with pytest.raises(InvalidTarget):
            notification_service.dispatch("user_1", "test", TITLE, MESSAGE)

    def test_bilingual_fields_stored(self, db_session, customer):
        [notification] = _send(db_session, CustomerTarget(customer.id))
        data = notification.to_dict()
        assert (data["title"], data["title_ar"]) == ("Hello", "مرحبا")
        assert data["unread"] is True


class TestInbox:
    def test_admins_share_one_inbox(self, db_session, admin_user, second_admin, staff_user, place_order):
        place_order()

        first = notification_service.list_for(actor_for(admin_user))
        second = notification_service.list_for(actor_for(second_admin))
        assert [n.id for n in first] == [n.id for n in second]
        assert [n.type for n in first] == ["order_placed"]
        assert notification_service.list_for(actor_for(staff_user)) == []

    def test_mark_read_and_counts(self, db_session, customer_actor, customer):
        sent = _send(db_session, CustomerTarget(customer.id), count=3)

        notification_service.mark_read(sent[0].id, customer_actor)
        assert notification_service.unread_count(customer_actor) == 2
        assert len(notification_service.list_for(customer_actor, unread_only=True)) == 2

        assert notification_service.mark_all_read(customer_actor) == 2
        assert notification_service.unread_count(customer_actor) == 0

    def test_other_audience_rows_look_missing(self, db_session, customer, other_customer, staff_actor):
        [theirs] = _send(db_session, CustomerTarget(customer.id))
        intruder = actor_for(other_customer)

        with pytest.raises(NotFound):
            notification_service.mark_read(theirs.id, intruder)
        with pytest.raises(NotFound):
            notification_service.delete(theirs.id, staff_actor)
        assert notification_service.clear(intruder) == 0
        assert notification_service.unread_count(actor_for(customer)) == 1

    def test_delete_and_clear(self, db_session, driver_actor, driver):
        sent = _send(db_session, StaffTarget(driver.id), count=3)

        notification_service.delete(sent[0].id, driver_actor)
        assert len(notification_service.list_for(driver_actor)) == 2

        assert notification_service.clear(driver_actor) == 2
        assert notification_service.list_for(driver_actor) == []

    def test_list_limit(self, db_session, customer_actor, customer):
        _send(db_session, CustomerTarget(customer.id), count=5)
        assert len(notification_service.list_for(customer_actor, limit=3)) == 3


class TestActorResolution:
    def test_staff_roles(self, db_session, admin_user, staff_user, driver):
        admin = actor_service.resolve_actor(staff_token(admin_user))
        assert (admin.kind, admin.role, admin.notification_target) == ("staff", "admin", StaffTarget("admin"))
        assert admin.is_admin

        staff = actor_service.resolve_actor(staff_token(staff_user))
        assert staff.notification_target == StaffTarget(staff_user.id)

        rider = actor_service.resolve_actor(staff_token(driver))
        assert (rider.kind, rider.role) == ("driver", "delivery")

    def test_customer(self, db_session, customer):
        actor = actor_service.resolve_actor(customer_token(customer))
        assert (actor.kind, actor.id, actor.name) == ("customer", customer.id, "Layla Haddad")
        assert actor.notification_target == CustomerTarget(customer.id)
        assert actor.label == f"customer:{customer.id}"

    def test_bad_tokens(self, db_session, customer):
        with pytest.raises(Unauthenticated):
            actor_service.resolve_actor(None)
        with pytest.raises(Unauthenticated):
            actor_service.resolve_actor("not-a-token")

        token = customer_token(customer)
        assert session_service.revoke_session(token) is True
        with pytest.raises(Unauthenticated):
            actor_service.resolve_actor(token)
