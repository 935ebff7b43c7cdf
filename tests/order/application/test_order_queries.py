import pytest
from protean.exceptions import ObjectNotFoundError, ValidationError

from storefront.order.order import OrderStatus
from storefront.order.queries import (
    get_order_by_payment_id,
    get_order_for_viewer,
    list_orders,
    list_orders_for_user,
)


class TestOrderVisibility:
    def test_owner_sees_order(self, placed_order):
        order_id = placed_order(user_id="user-1")
        assert str(get_order_for_viewer(order_id, user_id="user-1").id) == order_id

    def test_session_owner_sees_guest_order(self, placed_order):
        order_id = placed_order(session_id="sess-guest")
        assert str(get_order_for_viewer(order_id, session_id="sess-guest").id) == order_id

    def test_other_user_gets_not_found(self, placed_order):
        order_id = placed_order(user_id="user-1")
        with pytest.raises(ObjectNotFoundError):
            get_order_for_viewer(order_id, user_id="user-2")

    def test_admin_sees_everything(self, placed_order):
        order_id = placed_order(user_id="user-1")
        assert get_order_for_viewer(order_id, is_admin=True) is not None


class TestOrderListing:
    def test_orders_for_user(self, placed_order):
        mine = placed_order(user_id="user-1")
        placed_order(user_id="user-2")

        assert [str(o.id) for o in list_orders_for_user("user-1")] == [mine]

    def test_anonymous_user_lists_nothing(self, placed_order):
        placed_order()
        assert list_orders_for_user(None) == []

    def test_list_by_status(self, placed_order, paid_order):
        placed_order()
        paid = paid_order()

        assert len(list_orders()) == 2
        assert [str(o.id) for o in list_orders(OrderStatus.PAID.value)] == [str(paid.id)]

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            list_orders("lost")


class TestLookupByPayment:
    def test_found(self, paid_order):
        order = paid_order()
        assert str(get_order_by_payment_id(order.payment_id).id) == str(order.id)

    def test_missing(self):
        with pytest.raises(ObjectNotFoundError):
            get_order_by_payment_id("pay_unknown")
