"""
Order state machine: assignment, the delivery workflow, cancellation and reads.

Every command is checked in the same order: role capability, order exists,
actor may touch this order, status allows the command.
"""

import pytest

from meato.errors import Conflict, Forbidden, NotFound, ValidationError
from meato.models import Order, OrderStatus, PaymentStatus, Product
from meato.permissions import Role
from meato.services import order_service
from meato.services.notification_service import ORDER_DELIVERY_ASSIGNED
from meato.services.session_service import actor_for


@pytest.fixture
def product(make_product):
    return make_product(price_cents=10000, stock=50)


@pytest.fixture
def place_order(customer, product, address):
    def _place(quantity=3, shop=None, user=customer):
        return order_service.create_order(
            actor_for(user) if user is not None else None,
            address,
            items=[{"product_id": product.id, "quantity": quantity}],
            shop_id=shop.id if shop is not None else None,
        )

    return _place


@pytest.fixture
def order(place_order):
    return place_order()


@pytest.fixture
def assigned(order, admin, courier):
    return order_service.assign(actor_for(admin), order.id, courier.id)


@pytest.fixture
def out_for_delivery(assigned, courier):
    order_service.accept(actor_for(courier), assigned.id)
    return order_service.mark_out_for_delivery(actor_for(courier), assigned.id)


def _reload(db_session, order_id):
    db_session.expire_all()
    return db_session.get(Order, order_id)


def _stock(db_session, product_id):
    db_session.expire_all()
    return db_session.get(Product, product_id).stock


class TestAssign:

    def test_assign(self, notifier, order, admin, courier):
        result = order_service.assign(actor_for(admin), order.id, courier.id)

        assert result.status == OrderStatus.ASSIGNED
        assert result.delivery_person_id == courier.id
        assert notifier.events[-1] == ORDER_DELIVERY_ASSIGNED
        assert notifier.sent[-1][1]["recipient"]["phone"] == courier.phone

    def test_processing_orders_can_be_assigned(self, order, admin, courier):
        order_service.admin_update_status(actor_for(admin), order.id, status=OrderStatus.PROCESSING)
        assert order_service.assign(actor_for(admin), order.id, courier.id).status == OrderStatus.ASSIGNED

    def test_assign_twice(self, db_session, assigned, admin, other_courier, courier):
        with pytest.raises(Conflict):
            order_service.assign(actor_for(admin), assigned.id, other_courier.id)
        assert _reload(db_session, assigned.id).delivery_person_id == courier.id

    def test_assignee_must_be_a_delivery_person(self, order, admin, customer):
        with pytest.raises(ValidationError):
            order_service.assign(actor_for(admin), order.id, customer.id)

    def test_assignee_is_required(self, order, admin):
        with pytest.raises(ValidationError):
            order_service.assign(actor_for(admin), order.id, None)

    def test_customer_cannot_assign(self, order, customer, courier):
        with pytest.raises(Forbidden):
            order_service.assign(actor_for(customer), order.id, courier.id)

    def test_unknown_order(self, admin, courier):
        with pytest.raises(NotFound):
            order_service.assign(actor_for(admin), 987654, courier.id)

    def test_shop_admin_scope(self, db_session, place_order, make_shop, make_user, shop, shop_admin, courier):
        other_shop = make_shop()
        foreign = place_order(shop=other_shop)
        with pytest.raises(Forbidden):
            order_service.assign(actor_for(shop_admin), foreign.id, courier.id)
        assert _reload(db_session, foreign.id).status == OrderStatus.PENDING

        own = place_order(shop=shop)
        outsider = make_user(Role.DELIVERY_PERSON, shop=other_shop)
        with pytest.raises(Forbidden):
            order_service.assign(actor_for(shop_admin), own.id, outsider.id)
        assert order_service.assign(actor_for(shop_admin), own.id, courier.id).status == OrderStatus.ASSIGNED


class TestAcceptReject:

    def test_accept(self, assigned, courier):
        order = order_service.accept(actor_for(courier), assigned.id)
        assert order.status == OrderStatus.ACCEPTED
        assert order.accepted_at is not None

    def test_accept_twice(self, assigned, courier):
        order_service.accept(actor_for(courier), assigned.id)
        with pytest.raises(Conflict):
            order_service.accept(actor_for(courier), assigned.id)

    def test_wrong_assignee(self, db_session, assigned, other_courier):
        with pytest.raises(Forbidden):
            order_service.accept(actor_for(other_courier), assigned.id)
        order = _reload(db_session, assigned.id)
        assert order.status == OrderStatus.ASSIGNED
        assert order.accepted_at is None

    def test_wrong_assignee_is_forbidden_even_when_status_is_wrong(self, out_for_delivery, other_courier):
        with pytest.raises(Forbidden):
            order_service.accept(actor_for(other_courier), out_for_delivery.id)

    def test_admin_cannot_accept(self, assigned, admin):
        with pytest.raises(Forbidden) as exc:
            order_service.accept(actor_for(admin), assigned.id)
        assert exc.value.details["required_permission"] == "ACCEPT_DELIVERY"

    def test_accept_unassigned_order(self, order, courier):
        with pytest.raises(Forbidden):
            order_service.accept(actor_for(courier), order.id)

    def test_reject_restores_stock(self, db_session, assigned, courier, product):
        assert _stock(db_session, product.id) == 47

        order = order_service.reject(actor_for(courier), assigned.id, reason="  Too far  ")

        assert order.status == OrderStatus.REJECTED
        assert order.rejection_reason == "Too far"
        assert order.rejected_at is not None
        assert order.delivery_person_id == courier.id
        assert _stock(db_session, product.id) == 50

    def test_rejected_is_terminal(self, assigned, courier, admin):
        order_service.reject(actor_for(courier), assigned.id)
        with pytest.raises(Conflict):
            order_service.accept(actor_for(courier), assigned.id)
        with pytest.raises(Conflict):
            order_service.cancel(actor_for(admin), assigned.id)

    def test_cannot_reject_after_accepting(self, assigned, courier):
        order_service.accept(actor_for(courier), assigned.id)
        with pytest.raises(Conflict):
            order_service.reject(actor_for(courier), assigned.id)


class TestDeliveryWorkflow:

    def test_out_for_delivery_requires_accept(self, assigned, courier):
        with pytest.raises(Conflict):
            order_service.mark_out_for_delivery(actor_for(courier), assigned.id)

    def test_end_to_end(self, db_session, out_for_delivery, courier):
        me = actor_for(courier)
        order_service.mark_reached(me, out_for_delivery.id)
        order_service.collect_cash(me, out_for_delivery.id, 300)
        order_service.mark_delivered(me, out_for_delivery.id)

        order = _reload(db_session, out_for_delivery.id)
        assert order.status == OrderStatus.DELIVERED
        assert order.reached_confirmed is True
        assert order.cash_collected is True
        assert order.amount_collected_1_cents == 30000
        assert order.to_dict()["amount_collected_1"] == 300.0
        assert order.payment_status == PaymentStatus.PAID
        assert order.delivered_at is not None
        assert order.delivery_step == "delivered"

    def test_reached_is_idempotent(self, out_for_delivery, courier):
        first = order_service.mark_reached(actor_for(courier), out_for_delivery.id)
        version = first.version_id
        second = order_service.mark_reached(actor_for(courier), out_for_delivery.id)
        assert second.reached_confirmed is True
        assert second.version_id == version
        assert second.delivery_step == "reached"

    def test_cash_before_reaching(self, out_for_delivery, courier):
        with pytest.raises(Conflict):
            order_service.collect_cash(actor_for(courier), out_for_delivery.id, 300)

    @pytest.mark.parametrize("amount,confirm", [(299, None), (300, 299), ("abc", None), (-300, None)])
    def test_cash_amount_checks(self, db_session, out_for_delivery, courier, amount, confirm):
        order_service.mark_reached(actor_for(courier), out_for_delivery.id)
        with pytest.raises(ValidationError):
            order_service.collect_cash(actor_for(courier), out_for_delivery.id, amount, confirm_amount=confirm)
        assert _reload(db_session, out_for_delivery.id).cash_collected is False

    def test_cash_collected_once(self, out_for_delivery, courier):
        me = actor_for(courier)
        order_service.mark_reached(me, out_for_delivery.id)
        order = order_service.collect_cash(me, out_for_delivery.id, "300.00", confirm_amount=300)
        assert order.amount_collected_2_cents == 30000
        with pytest.raises(Conflict):
            order_service.collect_cash(me, out_for_delivery.id, 300)

    def test_deliver_requires_payment(self, out_for_delivery, courier):
        order_service.mark_reached(actor_for(courier), out_for_delivery.id)
        with pytest.raises(Conflict):
            order_service.mark_delivered(actor_for(courier), out_for_delivery.id)

    def test_deliver_prepaid_order(self, out_for_delivery, courier, admin):
        order_service.admin_update_status(actor_for(admin), out_for_delivery.id, payment_status=PaymentStatus.PAID)
        order = order_service.mark_delivered(actor_for(courier), out_for_delivery.id)
        assert order.status == OrderStatus.DELIVERED

    def test_other_courier_cannot_collect(self, out_for_delivery, courier, other_courier):
        order_service.mark_reached(actor_for(courier), out_for_delivery.id)
        with pytest.raises(Forbidden):
            order_service.collect_cash(actor_for(other_courier), out_for_delivery.id, 300)


class TestCancelAndOverride:

    def test_cancel_restores_stock(self, db_session, order, admin, product):
        assert _stock(db_session, product.id) == 47
        cancelled = order_service.cancel(actor_for(admin), order.id, reason="Customer called")

        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cancellation_reason == "Customer called"
        assert cancelled.cancelled_at is not None
        assert _stock(db_session, product.id) == 50

    def test_cancel_out_for_delivery(self, db_session, out_for_delivery, admin, product):
        order_service.cancel(actor_for(admin), out_for_delivery.id)
        assert _stock(db_session, product.id) == 50

    def test_cancel_twice(self, db_session, order, admin, product):
        order_service.cancel(actor_for(admin), order.id)
        with pytest.raises(Conflict):
            order_service.cancel(actor_for(admin), order.id)
        assert _stock(db_session, product.id) == 50

    def test_cancel_restores_shop_inventory(self, db_session, place_order, shop, product, stock_in_shop, admin):
        row = stock_in_shop(shop, product, 5)
        order = place_order(quantity=2, shop=shop)
        order_service.cancel(actor_for(admin), order.id)

        db_session.expire_all()
        assert row.stock == 5
        assert _stock(db_session, product.id) == 50

    def test_delivered_cannot_be_cancelled(self, out_for_delivery, courier, admin):
        me = actor_for(courier)
        order_service.mark_reached(me, out_for_delivery.id)
        order_service.collect_cash(me, out_for_delivery.id, 300)
        order_service.mark_delivered(me, out_for_delivery.id)
        with pytest.raises(Conflict):
            order_service.cancel(actor_for(admin), out_for_delivery.id)

    def test_shop_admin_cannot_cancel_other_shops_orders(self, place_order, make_shop, shop_admin):
        foreign = place_order(shop=make_shop())
        with pytest.raises(Forbidden):
            order_service.cancel(actor_for(shop_admin), foreign.id)

    def test_manual_override_has_no_side_effects(self, db_session, order, admin, product):
        updated = order_service.admin_update_status(actor_for(admin), order.id, status=OrderStatus.CANCELLED)
        assert updated.status == OrderStatus.CANCELLED
        assert updated.cancelled_at is None
        assert _stock(db_session, product.id) == 47

    def test_manual_override_rejects_unknown_status(self, order, admin):
        with pytest.raises(ValidationError):
            order_service.admin_update_status(actor_for(admin), order.id, status="teleported")
        with pytest.raises(ValidationError):
            order_service.admin_update_status(actor_for(admin), order.id)

    def test_manual_override_on_terminal_order(self, order, admin):
        order_service.cancel(actor_for(admin), order.id)
        with pytest.raises(Conflict):
            order_service.admin_update_status(actor_for(admin), order.id, status=OrderStatus.PENDING)

    def test_courier_cannot_override(self, order, courier):
        with pytest.raises(Forbidden):
            order_service.admin_update_status(actor_for(courier), order.id, status=OrderStatus.DELIVERED)


class TestReads:

    def test_user_sees_only_own_orders(self, place_order, customer, make_user):
        other = make_user()
        mine = place_order()
        place_order(user=other)

        result = order_service.list_user_orders(actor_for(customer))
        assert [o["id"] for o in result["items"]] == [mine.id]

    def test_newest_first_with_pagination(self, place_order, customer):
        orders = [place_order(quantity=1) for _ in range(3)]
        result = order_service.list_user_orders(actor_for(customer), page=1, per_page=2)

        assert [o["id"] for o in result["items"]] == [orders[2].id, orders[1].id]
        assert result["pagination"]["total"] == 3
        assert result["pagination"]["has_next"] is True

    def test_negative_page_size_is_clamped(self, place_order, customer):
        place_order(quantity=1)
        place_order(quantity=1)
        result = order_service.list_user_orders(actor_for(customer), page=1, per_page=-5)

        assert result["count"] == 1
        assert result["pagination"]["per_page"] == 1
        assert result["pagination"]["total_pages"] == 2

    def test_get_other_users_order(self, place_order, make_user):
        order = place_order()
        with pytest.raises(Forbidden):
            order_service.get_user_order(actor_for(make_user()), order.id)

    def test_admin_can_read_any_order(self, order, admin):
        assert order_service.get_user_order(actor_for(admin), order.id).id == order.id

    def test_admin_listing_is_shop_scoped(self, place_order, shop, make_shop, shop_admin, admin):
        own = place_order(shop=shop)
        place_order(shop=make_shop())

        scoped = order_service.list_admin_orders(actor_for(shop_admin))
        assert [o["id"] for o in scoped["items"]] == [own.id]
        assert order_service.list_admin_orders(actor_for(admin))["count"] == 2

    def test_admin_status_filter(self, place_order, admin):
        keep = place_order()
        order_service.cancel(actor_for(admin), place_order().id)
        result = order_service.list_admin_orders(actor_for(admin), status=OrderStatus.PENDING)
        assert [o["id"] for o in result["items"]] == [keep.id]
        with pytest.raises(ValidationError):
            order_service.list_admin_orders(actor_for(admin), status="lost")

    def test_delivery_listing(self, assigned, place_order, courier, other_courier):
        place_order()
        assert [o["id"] for o in order_service.list_delivery_orders(actor_for(courier))["items"]] == [assigned.id]
        assert order_service.list_delivery_orders(actor_for(other_courier))["count"] == 0

    def test_tracking_projection(self, assigned, courier):
        tracking = order_service.track_order(assigned.id)
        assert tracking["status"] == OrderStatus.ASSIGNED
        assert tracking["delivery_person"] == {"name": courier.name, "phone": courier.phone}
        assert tracking["items"][0]["quantity"] == 3
        assert "delivery_address" not in tracking
        with pytest.raises(NotFound):
            order_service.track_order(123456)
