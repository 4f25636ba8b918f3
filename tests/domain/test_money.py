from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException
from domain.common.money import apply_percentage, format_amount, get_currency, to_major_units, to_minor_units


def test_percentage_truncates_toward_zero():
    assert apply_percentage(2000, 20) == 400
    assert apply_percentage(999, Decimal("12.5")) == 124
    assert apply_percentage(-999, Decimal("12.5")) == -124


def test_percentage_accepts_float_via_string():
    assert apply_percentage(1000, 33.3) == 333


def test_minor_units_round_half_up_on_entry():
    assert to_minor_units("12.345") == 1235
    assert to_minor_units(Decimal("0.005")) == 1
    assert to_minor_units(100, "JPY") == 100


def test_minor_units_reject_float():
    with pytest.raises(DomainValidationException):
        to_minor_units(1.1)


def test_major_units_and_formatting():
    assert to_major_units(1234) == Decimal("12.34")
    assert format_amount(123456) == "$1,234.56"
    assert format_amount(-50, "EUR") == "-€0.50"


def test_unknown_currency_rejected():
    with pytest.raises(DomainValidationException):
        get_currency("XXX")
