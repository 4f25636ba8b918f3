from datetime import timedelta

import pytest

from application.dto import AddressDTO, DiscountCreateDTO, DiscountUpdateDTO, PaginationParams
from application.ports.catalog import StaticCatalog
from application.services.discount_service import (
    DiscountApplicationService,
    resolve_category_products,
)
from application.services.shipping_service import ShippingApplicationService
from domain.common.exceptions import (
    DiscountCodeAlreadyExistsException,
    DiscountNotFoundException,
    DiscountUsageLimitReachedException,
    DomainValidationException,
    ShippingNotAvailableException,
)
from domain.discount.entity import DiscountMethod, DiscountType


OSLO = AddressDTO(street="Karl Johans gate 1", city="Oslo", postal_code="0154", country="no")


def _create_dto(now, **overrides):
    values = dict(
        code=" spring10 ",
        discount_type=DiscountType.BASKET,
        method=DiscountMethod.FIXED,
        value=300,
        start_date=now - timedelta(days=1),
        end_date=now + timedelta(days=7),
    )
    values.update(overrides)
    return DiscountCreateDTO(**values)


@pytest.mark.asyncio
async def test_create_discount_normalizes_code_and_rejects_duplicates(uow_factory, now):
    service = DiscountApplicationService(uow_factory)
    created = await service.create_discount(_create_dto(now))
    assert created.code == "SPRING10"
    assert created.current_usage == 0

    fetched = await service.get_by_code("spring10")
    assert fetched.id == created.id

    with pytest.raises(DiscountCodeAlreadyExistsException):
        await service.create_discount(_create_dto(now, code="SPRING10"))


@pytest.mark.asyncio
async def test_update_discount_keeps_unset_fields(uow_factory, now):
    service = DiscountApplicationService(uow_factory)
    created = await service.create_discount(_create_dto(now, min_order_value=1000))

    updated = await service.update_discount(created.id, DiscountUpdateDTO(value=500))
    assert updated.value == 500
    assert updated.min_order_value == 1000

    with pytest.raises(DomainValidationException):
        await service.update_discount(created.id, DiscountUpdateDTO(value=150.5))
    assert (await service.get_by_code("SPRING10")).value == 500

    with pytest.raises(DiscountNotFoundException):
        await service.update_discount(999, DiscountUpdateDTO(value=1))


@pytest.mark.asyncio
async def test_deactivated_discount_is_not_listed(uow_factory, now):
    service = DiscountApplicationService(uow_factory)
    first = await service.create_discount(_create_dto(now, code="A"))
    await service.create_discount(_create_dto(now, code="B"))
    await service.create_discount(_create_dto(now, code="EXPIRED", end_date=now - timedelta(hours=1)))

    assert [d.code for d in await service.list_valid()] == ["A", "B"]

    await service.deactivate_discount(first.id)
    assert [d.code for d in await service.list_valid()] == ["B"]
    assert await service.list_valid(PaginationParams(page=2, size=1)) == []


@pytest.mark.asyncio
async def test_redeem_stops_at_usage_limit(uow_factory, now):
    service = DiscountApplicationService(uow_factory)
    created = await service.create_discount(_create_dto(now, usage_limit=1))

    await service.redeem(created.id)
    with pytest.raises(DiscountUsageLimitReachedException):
        await service.redeem(created.id)
    assert (await service.get_by_code("SPRING10")).current_usage == 1


@pytest.mark.asyncio
async def test_category_restriction_expands_through_catalog(make_discount):
    discount = make_discount(discount_type=DiscountType.PRODUCT, category_ids=[7, 8])
    catalog = StaticCatalog({7: [1, 2], 8: [3], 9: [4]})

    assert await resolve_category_products(catalog, discount) == {1, 2, 3}
    assert await resolve_category_products(None, discount) is None
    assert await resolve_category_products(catalog, make_discount()) is None


@pytest.mark.asyncio
async def test_shipping_options_sorted_by_cost(uow_factory):
    shipping = ShippingApplicationService(uow_factory)
    standard = await shipping.create_method("Standard", estimated_delivery_days=4)
    express = await shipping.create_method("Express", estimated_delivery_days=1)
    nordics = await shipping.create_zone("Nordics", countries=["NO", "SE"])
    await shipping.create_rate(
        express.id, nordics.id, 900, weight_tiers=[(0.0, 2.0, 100), (2.0, 10.0, 400)]
    )
    standard_rate = await shipping.create_rate(standard.id, nordics.id, 500, free_shipping_threshold=5000)

    options = await shipping.calculate_options(OSLO, order_value=2000, weight=3.0)
    assert [(o.name, o.cost) for o in options] == [("Standard", 500), ("Express", 1300)]

    options = await shipping.calculate_options(OSLO, order_value=6000, weight=3.0)
    assert options[0].shipping_rate_id == standard_rate.id
    assert options[0].free_shipping is True

    await shipping.set_method_active(express.id, False)
    options = await shipping.calculate_options(OSLO, order_value=2000, weight=3.0)
    assert [o.name for o in options] == ["Standard"]

    assert await shipping.calculate_options(AddressDTO(country="DE"), 2000, 1.0) == []


@pytest.mark.asyncio
async def test_rate_cost_respects_min_order_value_and_tiers(uow_factory):
    shipping = ShippingApplicationService(uow_factory)
    method = await shipping.create_method("Standard")
    zone = await shipping.create_zone("Norway", countries=["NO"])
    rate = await shipping.create_rate(method.id, zone.id, 400, min_order_value=1000)
    await shipping.add_value_tier(rate.id, 1000, 4999, 200)

    assert await shipping.get_rate_cost(rate.id, OSLO, 1500, 1.0) == 600
    with pytest.raises(ShippingNotAvailableException):
        await shipping.get_rate_cost(rate.id, OSLO, 500, 1.0)

    await shipping.update_rate(rate.id, base_rate=100, free_shipping_threshold=1200)
    assert await shipping.get_rate_cost(rate.id, OSLO, 1500, 1.0) == 0
    await shipping.update_rate(rate.id, clear_free_shipping=True)
    assert await shipping.get_rate_cost(rate.id, OSLO, 1500, 1.0) == 300
