from datetime import datetime, timezone

import pytest

from domain.common.exceptions import DomainValidationException, InvalidStatusTransitionException
from domain.common.value_objects import GuestContact, RegisteredOwner
from domain.order.entity import ALLOWED_TRANSITIONS, Order, OrderItem, OrderStatus
from domain.order.events import OrderPlaced, OrderStatusChanged


def _order(status=OrderStatus.PENDING, owner=None):
    return Order(
        id=None,
        owner=owner or RegisteredOwner(3),
        items=[OrderItem(product_id=1, quantity=2, price=1000, subtotal=2000)],
        status=status,
        total_amount=2000,
        final_amount=2000,
        created_at=datetime(2024, 5, 17, tzinfo=timezone.utc),
    )


@pytest.mark.parametrize("source", list(OrderStatus))
@pytest.mark.parametrize("target", list(OrderStatus))
def test_transition_table_is_enforced(source, target):
    order = _order(source)
    if target == source:
        assert order.update_status(target) is False
    elif target in ALLOWED_TRANSITIONS[source]:
        assert order.update_status(target) is True
        assert order.status == target
    else:
        with pytest.raises(InvalidStatusTransitionException):
            order.update_status(target)
        assert order.status == source


def test_can_transition_to():
    shipped = _order(OrderStatus.SHIPPED)
    assert shipped.can_transition_to(OrderStatus.DELIVERED)
    assert shipped.can_transition_to("shipped")
    assert not shipped.can_transition_to(OrderStatus.PAID)
    assert not _order(OrderStatus.REFUNDED).can_transition_to(OrderStatus.PENDING)


def test_terminal_states():
    assert _order(OrderStatus.CANCELLED).is_terminal()
    assert _order(OrderStatus.REFUNDED).is_terminal()
    assert not _order(OrderStatus.SHIPPED).is_terminal()


def test_delivered_sets_completed_at_once():
    order = _order(OrderStatus.SHIPPED)
    order.update_status(OrderStatus.DELIVERED)
    first = order.completed_at
    assert first is not None
    order.update_status(OrderStatus.DELIVERED)
    assert order.completed_at == first


def test_order_numbers_provisional_then_final():
    order = _order()
    assert order.order_number == "ORD-20240517-TEMP"
    assert order.assign_order_number(42) is True
    assert order.order_number == "ORD-20240517-000042"
    assert order.assign_order_number(42) is False

    guest = _order(owner=GuestContact(email="g@example.com"))
    guest.assign_order_number(7)
    assert guest.order_number == "GS-20240517-000007"


def test_number_requires_persisted_id():
    with pytest.raises(DomainValidationException):
        _order().assign_order_number()


def test_setters_reject_empty_values():
    order = _order()
    for setter in (order.set_payment_id, order.set_tracking_code, order.set_action_url, order.set_payment_provider):
        with pytest.raises(DomainValidationException):
            setter(" ")


def test_order_requires_items():
    with pytest.raises(DomainValidationException):
        Order(id=None, owner=RegisteredOwner(1), items=[])


def test_discount_recomputed_from_order(make_discount):
    order = _order()
    applied = order.apply_discount(make_discount(id=1))
    assert applied.amount == 400 and order.final_amount == 1600
    order.remove_discount()
    assert order.final_amount == 2000


class _Repo:
    def __init__(self):
        self.saved = {}

    async def create(self, order):
        order.id = len(self.saved) + 1
        self.saved[order.id] = order
        return order

    async def update(self, order):
        self.saved[order.id] = order
        return order

    async def get_by_id(self, order_id, *, for_update=False):
        return self.saved.get(order_id)


@pytest.mark.asyncio
async def test_domain_service_places_order_and_emits_events():
    from domain.order.service import OrderDomainService

    service = OrderDomainService(_Repo())
    order = await service.place_order(_order())
    assert order.order_number == "ORD-20240517-000001"
    assert await service.change_status(order, OrderStatus.PAID) is True
    assert await service.change_status(order, OrderStatus.PAID) is False
    events = service.get_domain_events()
    assert [type(e) for e in events] == [OrderPlaced, OrderStatusChanged]
    assert events[1].previous_status == "pending" and events[1].new_status == "paid"
    assert service.get_domain_events() == []


@pytest.mark.asyncio
async def test_domain_service_repairs_provisional_number():
    from domain.order.service import OrderDomainService

    repo = _Repo()
    order = _order()
    order.id = 9
    repo.saved[9] = order
    service = OrderDomainService(repo)
    assert await service.repair_order_number(order) is True
    assert repo.saved[9].order_number == "ORD-20240517-000009"
    assert await service.repair_order_number(order) is False
