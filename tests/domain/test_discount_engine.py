from datetime import timedelta
from decimal import Decimal

import pytest

from domain.common.exceptions import (
    DiscountNotApplicableException,
    DiscountUsageLimitReachedException,
    DomainValidationException,
)
from domain.discount.entity import DiscountMethod, DiscountType, PriceableOrder, PricedLine


def _order(*lines):
    return PriceableOrder(total_amount=sum(s for _, s in lines), lines=tuple(PricedLine(p, s) for p, s in lines))


def test_basket_percentage(make_discount):
    discount = make_discount()
    assert discount.calculate(_order((1, 1000), (2, 1000))) == 400


def test_basket_fixed_capped_by_order_total(make_discount):
    discount = make_discount(method=DiscountMethod.FIXED, value=Decimal("5000"))
    assert discount.calculate(_order((1, 1200))) == 1200


def test_max_discount_value_caps(make_discount):
    discount = make_discount(value=Decimal("50"), max_discount_value=300)
    assert discount.calculate(_order((1, 2000))) == 300


def test_min_order_value_not_met(make_discount):
    discount = make_discount(min_order_value=5000)
    order = _order((1, 2000))
    assert discount.calculate(order) == 0
    with pytest.raises(DiscountNotApplicableException):
        discount.apply_to(order)


def test_product_fixed_applies_once_per_matching_line(make_discount):
    discount = make_discount(
        discount_type=DiscountType.PRODUCT,
        method=DiscountMethod.FIXED,
        value=Decimal("300"),
        product_ids=[1],
    )
    # quantity is already folded into the subtotal
    assert discount.calculate(_order((1, 3000), (2, 1000))) == 300
    assert discount.calculate(_order((1, 200))) == 200


def test_product_percentage_only_on_eligible_lines(make_discount):
    discount = make_discount(discount_type=DiscountType.PRODUCT, value=Decimal("10"), product_ids=[2])
    assert discount.calculate(_order((1, 3000), (2, 1000))) == 100


def test_category_restriction_with_and_without_expansion(make_discount):
    discount = make_discount(discount_type=DiscountType.PRODUCT, value=Decimal("10"), category_ids=[7])
    order = _order((1, 1000), (2, 1000))
    assert discount.is_applicable(order)
    assert discount.calculate(order, category_product_ids={2}) == 100
    assert discount.calculate(order, category_product_ids={99}) == 0


def test_validity_window_is_half_open(make_discount, now):
    discount = make_discount(start_date=now, end_date=now + timedelta(days=1))
    assert discount.is_valid(now)
    assert not discount.is_valid(now + timedelta(days=1))
    assert not discount.is_valid(now - timedelta(seconds=1))


def test_inactive_or_exhausted_discount(make_discount):
    inactive = make_discount(active=False)
    assert not inactive.is_valid()
    with pytest.raises(DiscountNotApplicableException):
        inactive.apply_to(_order((1, 1000)))

    exhausted = make_discount(usage_limit=1, current_usage=1)
    with pytest.raises(DiscountUsageLimitReachedException):
        exhausted.apply_to(_order((1, 1000)))
    with pytest.raises(DiscountUsageLimitReachedException):
        exhausted.increment_usage()


def test_apply_to_returns_snapshot(make_discount):
    applied = make_discount(id=5).apply_to(_order((1, 2000)))
    assert (applied.discount_id, applied.code, applied.amount) == (5, "SAVE20", 400)


@pytest.mark.parametrize(
    "overrides",
    [
        {"code": " "},
        {"value": Decimal("0")},
        {"value": Decimal("101")},
        {"method": DiscountMethod.FIXED, "value": Decimal("1.5")},
        {"discount_type": DiscountType.PRODUCT},
        {"min_order_value": -1},
    ],
)
def test_invalid_definitions_rejected(make_discount, overrides):
    with pytest.raises(DomainValidationException):
        make_discount(**overrides)


def test_end_before_start_rejected(make_discount, now):
    with pytest.raises(DomainValidationException):
        make_discount(start_date=now, end_date=now - timedelta(days=1))


def test_revise_restores_on_invalid_change(make_discount):
    discount = make_discount()
    with pytest.raises(DomainValidationException):
        discount.revise(value=Decimal("150"))
    assert discount.value == Decimal("20")
    discount.revise(value=Decimal("15"))
    assert discount.value == Decimal("15")
