from datetime import timedelta

import pytest

from domain.checkout.entity import Checkout, CheckoutStatus
from domain.checkout.service import merge_guest_checkout
from domain.common.exceptions import (
    CheckoutExpiredException,
    CheckoutIncompleteException,
    CheckoutItemNotFoundException,
    CheckoutNotActiveException,
    DiscountNotApplicableException,
    DomainValidationException,
)
from domain.common.value_objects import Address, CustomerDetails, GuestContact, GuestOwner, RegisteredOwner
from domain.order.entity import OrderStatus

ADDRESS = Address(street="1 Main St", city="Oslo", postal_code="0150", country="NO")


def _checkout(owner=None, now=None):
    return Checkout.start(owner or RegisteredOwner(1), now=now)


def _ready(checkout):
    checkout.set_shipping_address(ADDRESS)
    checkout.set_billing_address(ADDRESS)
    checkout.set_customer_details(CustomerDetails(email="a@example.com", full_name="Ann"))
    return checkout


def test_add_same_item_accumulates_quantity():
    checkout = _checkout()
    checkout.add_item(1, 2, 1000, weight=0.5)
    checkout.add_item(1, 1, 1000, weight=0.5)
    checkout.add_item(1, 1, 1000, variant_id=9)
    assert [(i.key, i.quantity) for i in checkout.items] == [((1, None), 3), ((1, 9), 1)]
    assert checkout.total_amount == 4000
    assert checkout.total_weight == 1.5
    assert checkout.total_items() == 4


def test_invalid_item_leaves_checkout_unchanged():
    checkout = _checkout()
    checkout.add_item(1, 1, 1000)
    with pytest.raises(DomainValidationException):
        checkout.add_item(2, 0, 1000)
    with pytest.raises(DomainValidationException):
        checkout.update_item(1, -1)
    with pytest.raises(CheckoutItemNotFoundException):
        checkout.remove_item(5)
    assert checkout.total_amount == 1000 and len(checkout.items) == 1


def test_final_amount_identity_and_floor():
    checkout = _checkout()
    checkout.add_item(1, 1, 1000)
    checkout.set_shipping_method(3, 500, rate_id=7)
    assert checkout.final_amount == 1500
    checkout.discount_amount = 5000
    checkout.recalculate_totals()
    assert checkout.final_amount == 0


def test_recalculate_keeps_known_discount(make_discount):
    checkout = _checkout()
    checkout.add_item(1, 2, 1000)
    checkout.apply_discount(make_discount(id=1))
    assert (checkout.total_amount, checkout.discount_amount, checkout.final_amount) == (2000, 400, 1600)
    checkout.update_item(1, 1)
    # the aggregate never re-derives the discount itself
    assert (checkout.total_amount, checkout.discount_amount, checkout.final_amount) == (1000, 400, 600)


def test_failed_discount_keeps_previous_state(make_discount):
    checkout = _checkout()
    checkout.add_item(1, 1, 1000)
    checkout.apply_discount(make_discount(id=1))
    with pytest.raises(DiscountNotApplicableException):
        checkout.apply_discount(make_discount(id=2, code="BIG", min_order_value=99999))
    assert checkout.applied_discount.code == "SAVE20"
    checkout.apply_discount(None)
    assert checkout.discount_amount == 0 and checkout.final_amount == 1000


def test_terminal_and_expired_checkouts_reject_changes(now):
    checkout = _checkout(now=now)
    checkout.mark_abandoned(now)
    with pytest.raises(CheckoutNotActiveException):
        checkout.add_item(1, 1, 100, now=now)

    stale = _checkout(now=now - timedelta(days=2))
    assert stale.is_expired(now)
    with pytest.raises(CheckoutExpiredException):
        stale.add_item(1, 1, 100, now=now)
    stale.mark_expired(now)
    assert stale.status == CheckoutStatus.EXPIRED


def test_extend_expiry(now):
    checkout = _checkout(now=now)
    checkout.extend_expiry(timedelta(hours=48), now)
    assert checkout.expires_at == now + timedelta(hours=48)
    with pytest.raises(DomainValidationException):
        checkout.extend_expiry(timedelta(0), now)


def test_to_order_requires_complete_information():
    checkout = _checkout()
    with pytest.raises(CheckoutIncompleteException) as exc:
        checkout.to_order()
    assert set(exc.value.details["missing"]) == {"items", "shipping_address", "billing_address", "customer_details"}


def test_to_order_snapshots_totals_and_owner(make_discount):
    checkout = _ready(_checkout(GuestOwner("sess-1")))
    checkout.add_item(1, 2, 1000, product_name="Mug", sku="MUG-1")
    checkout.set_shipping_method(3, 500)
    checkout.apply_discount(make_discount(id=4))
    order = checkout.to_order()
    assert isinstance(order.owner, GuestContact) and order.owner.email == "a@example.com"
    assert order.status == OrderStatus.PENDING
    assert order.is_number_provisional() and order.order_number.startswith("GS-")
    assert (order.total_amount, order.shipping_cost, order.discount_amount, order.final_amount) == (2000, 500, 400, 2100)
    assert order.items[0].subtotal == 2000 and order.items[0].sku == "MUG-1"


def test_merge_guest_into_user_checkout():
    user = _checkout(RegisteredOwner(7))
    user.add_item(1, 1, 1000)
    user.set_shipping_address(ADDRESS)
    guest = _checkout(GuestOwner("sess-9"))
    guest.add_item(1, 2, 1000)
    guest.add_item(2, 1, 500)
    guest.set_shipping_address(Address(street="Other", country="SE"))
    guest.set_customer_details(CustomerDetails(email="g@example.com", full_name="Guest"))

    merged = merge_guest_checkout(user, guest)
    assert [(i.product_id, i.quantity) for i in merged.items] == [(1, 3), (2, 1)]
    assert merged.shipping_address == ADDRESS
    assert merged.customer_details.email == "g@example.com"
    assert merged.total_amount == 3500
    assert isinstance(merged.owner, RegisteredOwner)


def test_owner_is_required():
    with pytest.raises(DomainValidationException):
        GuestOwner(" ")
    with pytest.raises(DomainValidationException):
        Checkout(id=None, owner=None)
