import pytest

from domain.common.exceptions import (
    DomainValidationException,
    ShippingNotAvailableException,
    ShippingRateNotFoundException,
)
from domain.common.value_objects import Address
from domain.shipping.entity import (
    ShippingMethod,
    ShippingRate,
    ShippingZone,
    ValueBasedRate,
    WeightBasedRate,
)
from domain.shipping.service import ShippingDomainService


US_CA = Address(street="1 Main St", city="LA", state="CA", postal_code="90001", country="US")


def _rate(**overrides):
    values = dict(id=1, shipping_method_id=1, shipping_zone_id=1, base_rate=500)
    values.update(overrides)
    return ShippingRate(**values)


def test_zone_matching_short_circuits_by_level():
    zone = ShippingZone(id=1, name="West", countries=["us"], states=["ca", "or"])
    assert zone.matches(US_CA)
    assert not zone.matches(Address(street="x", state="NY", country="US"))
    assert not zone.matches(Address(street="x", state="CA", country="CA"))


def test_empty_zone_dimensions_are_wildcards():
    zone = ShippingZone(id=1, name="Anywhere")
    assert zone.matches(US_CA)
    zip_zone = ShippingZone(id=2, name="LA", countries=["US"], zip_codes=["90001"])
    assert zip_zone.matches(US_CA)
    assert not zip_zone.matches(Address(street="x", postal_code="10001", country="US"))


def test_cost_adds_first_matching_tiers():
    rate = _rate(
        weight_based_rates=[WeightBasedRate(0, 1, 100), WeightBasedRate(0.5, 5, 300)],
        value_based_rates=[ValueBasedRate(0, 10000, 50)],
    )
    assert rate.calculate_cost(order_value=2000, weight=0.8) == 500 + 100 + 50
    assert rate.calculate_cost(order_value=20000, weight=3) == 500 + 300


def test_weight_tier_boundary_belongs_to_lower_tier():
    rate = _rate(base_rate=0, weight_based_rates=[WeightBasedRate(0, 1, 5), WeightBasedRate(1, 5, 10)])
    assert rate.calculate_cost(order_value=1000, weight=3) == 10
    assert rate.calculate_cost(order_value=1000, weight=1) == 5
    assert rate.calculate_cost(order_value=1000, weight=6) == 0


def test_free_shipping_threshold_and_min_order_value():
    rate = _rate(free_shipping_threshold=5000, min_order_value=1000)
    assert rate.calculate_cost(5000, 1) == 0
    assert rate.calculate_cost(999, 1) == 0
    assert not rate.accepts(999)
    assert rate.calculate_cost(1000, 1) == 500


@pytest.mark.parametrize(
    "tier",
    [lambda: WeightBasedRate(2, 1, 100), lambda: WeightBasedRate(0, 1, -1), lambda: ValueBasedRate(-1, 10, 0)],
)
def test_invalid_tiers(tier):
    with pytest.raises(DomainValidationException):
        tier()


def test_negative_base_rate_rejected():
    with pytest.raises(DomainValidationException):
        _rate(base_rate=-1)


class _Repos:
    def __init__(self, methods, zones, rates):
        self.methods = {m.id: m for m in methods}
        self.zones = zones
        self.rates = {r.id: r for r in rates}

    async def get_by_ids(self, ids):
        return [self.methods[i] for i in ids if i in self.methods]

    async def list_active(self):
        return [z for z in self.zones if z.active]

    async def list_by_zone_ids(self, zone_ids, active_only=True):
        return [r for r in self.rates.values() if r.shipping_zone_id in set(zone_ids) and (r.active or not active_only)]

    async def get_by_id(self, rate_id):
        return self.rates.get(rate_id)


def _service():
    repos = _Repos(
        methods=[
            ShippingMethod(id=1, name="Standard", estimated_delivery_days=5),
            ShippingMethod(id=2, name="Express", estimated_delivery_days=1),
            ShippingMethod(id=3, name="Retired", active=False),
        ],
        zones=[ShippingZone(id=10, name="US", countries=["US"]), ShippingZone(id=11, name="EU", countries=["DE"])],
        rates=[
            _rate(id=100, shipping_method_id=1, shipping_zone_id=10, base_rate=500, free_shipping_threshold=10000),
            _rate(id=101, shipping_method_id=2, shipping_zone_id=10, base_rate=1500),
            _rate(id=102, shipping_method_id=3, shipping_zone_id=10, base_rate=100),
            _rate(id=103, shipping_method_id=1, shipping_zone_id=11, base_rate=900),
            _rate(id=104, shipping_method_id=1, shipping_zone_id=10, base_rate=200, min_order_value=50000),
        ],
    )
    return ShippingDomainService(repos, repos, repos)


@pytest.mark.asyncio
async def test_options_filtered_and_sorted_by_cost():
    options = await _service().shipping_options(US_CA, order_value=2000, weight=1.0)
    assert [(o.shipping_rate_id, o.cost) for o in options] == [(100, 500), (101, 1500)]


@pytest.mark.asyncio
async def test_free_shipping_option_flagged():
    options = await _service().shipping_options(US_CA, order_value=10000, weight=1.0)
    assert options[0].free_shipping and options[0].cost == 0


@pytest.mark.asyncio
async def test_quote_rejects_rates_outside_address_zone():
    service = _service()
    assert (await service.quote(100, US_CA, 2000)).id == 100
    with pytest.raises(ShippingNotAvailableException):
        await service.quote(103, US_CA, 2000)
    with pytest.raises(ShippingRateNotFoundException):
        await service.quote(999, US_CA, 2000)


@pytest.mark.asyncio
async def test_no_zone_means_no_options():
    assert await _service().shipping_options(Address(street="x", country="JP"), 2000, 1.0) == []
