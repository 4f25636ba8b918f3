import pytest

from application.ports.notification import ORDER_SHIPPED, ORDER_STATUS_UPDATE
from application.services.order_service import OrderApplicationService, publish_order_events
from domain.common.exceptions import (
    InvalidStatusTransitionException,
    OrderNotFoundException,
    PaymentAlreadyProcessedException,
)
from domain.common.value_objects import CustomerDetails, GuestContact, RegisteredOwner
from domain.order.entity import Order, OrderItem, OrderStatus
from domain.order.events import OrderStatusChanged


def _order(owner=None, email="buyer@example.com", status=OrderStatus.PENDING):
    return Order(
        id=None,
        owner=owner or RegisteredOwner(1),
        items=[OrderItem(product_id=1, quantity=2, price=1000, subtotal=2000)],
        status=status,
        total_amount=2000,
        final_amount=2000,
        customer_details=CustomerDetails(email=email, full_name="Kari Nordmann"),
    )


async def _insert(uow_factory, order):
    """Persist without finalizing the order number, like a crash between insert and update."""
    async with uow_factory() as uow:
        return await uow.order_repository.create(order)


@pytest.fixture
def service(uow_factory, notifier):
    return OrderApplicationService(uow_factory, notifier)


@pytest.mark.asyncio
async def test_get_order_repairs_provisional_number(service, uow_factory, store):
    order = await _insert(uow_factory, _order())
    assert order.is_number_provisional()

    loaded = await service.get_order(order.id)
    assert loaded.order_number.endswith(f"-{order.id:06d}")
    assert not store.orders[order.id].is_number_provisional()


@pytest.mark.asyncio
async def test_missing_order(service):
    with pytest.raises(OrderNotFoundException):
        await service.get_order(404)
    with pytest.raises(OrderNotFoundException):
        await service.get_by_order_number("ORD-20240101-000404")


@pytest.mark.asyncio
async def test_status_update_notifies_once(service, uow_factory, notifier):
    order = await _insert(uow_factory, _order())
    updated = await service.update_status(order.id, OrderStatus.PAID)
    assert updated.status == "paid"
    await service.update_status(order.id, OrderStatus.PAID)
    assert notifier.templates() == [ORDER_STATUS_UPDATE]
    _, data = notifier.sent[0]
    assert (data["previous_status"], data["new_status"]) == ("pending", "paid")


@pytest.mark.asyncio
async def test_illegal_status_update_is_rejected(service, uow_factory, store):
    order = await _insert(uow_factory, _order())
    with pytest.raises(InvalidStatusTransitionException):
        await service.update_status(order.id, OrderStatus.SHIPPED)
    assert store.orders[order.id].status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_ship_sets_tracking_code(service, uow_factory, store, notifier):
    order = await _insert(uow_factory, _order(status=OrderStatus.CAPTURED))
    shipped = await service.ship(order.id, "TRACK-123")
    assert shipped.status == "shipped" and shipped.tracking_code == "TRACK-123"
    assert notifier.templates() == [ORDER_SHIPPED]

    delivered = await service.update_status(order.id, OrderStatus.DELIVERED)
    assert delivered.completed_at is not None


@pytest.mark.asyncio
async def test_order_level_discount(service, uow_factory, make_discount):
    async with uow_factory() as uow:
        await uow.discount_repository.create(make_discount())
    order = await _insert(uow_factory, _order())

    discounted = await service.apply_discount(order.id, "save20")
    assert (discounted.discount_amount, discounted.final_amount) == (400, 1600)
    restored = await service.remove_discount(order.id)
    assert restored.final_amount == 2000

    await service.update_status(order.id, OrderStatus.PAID)
    with pytest.raises(PaymentAlreadyProcessedException):
        await service.apply_discount(order.id, "SAVE20")


@pytest.mark.asyncio
async def test_repair_order_numbers_batch(service, uow_factory):
    await _insert(uow_factory, _order())
    await _insert(uow_factory, _order(owner=GuestContact(email="guest@example.com")))
    assert await service.repair_order_numbers() == 2
    assert await service.repair_order_numbers() == 0


@pytest.mark.asyncio
async def test_list_by_user(service, uow_factory):
    await _insert(uow_factory, _order(owner=RegisteredOwner(5)))
    await _insert(uow_factory, _order(owner=RegisteredOwner(6)))
    orders = await service.list_by_user(5)
    assert [o.user_id for o in orders] == [5]


@pytest.mark.asyncio
async def test_notifier_failures_do_not_propagate():
    class Broken:
        async def notify(self, template, data):
            raise RuntimeError("smtp down")

    event = OrderStatusChanged(order_id=1, order_number="ORD-1", previous_status="pending", new_status="paid", email="a@b.c")
    await publish_order_events(Broken(), [event])
    await publish_order_events(None, [event])
