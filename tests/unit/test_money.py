"""Unit tests for fixed-point money helpers"""

import pytest
from decimal import Decimal
from tradecredit.domain.exceptions import InvalidInput
from tradecredit.domain.money import apply_percent, format_cents, split_with_remainder, to_percent


def test_apply_percent_exact():
    assert apply_percent(20000, Decimal("30")) == 6000


def test_apply_percent_rounds_half_up():
    # 333 * 15% = 49.95 -> 50
    assert apply_percent(333, Decimal("15")) == 50
    # 1001 * 12.5% = 125.125 -> 125
    assert apply_percent(1001, Decimal("12.5")) == 125
    # 5 * 50% = 2.5 -> 3
    assert apply_percent(5, Decimal("50")) == 3


def test_apply_percent_bounds():
    assert apply_percent(12345, Decimal("0")) == 0
    assert apply_percent(12345, Decimal("100")) == 12345


@pytest.mark.parametrize("bad", [Decimal("-0.01"), Decimal("100.01"), "abc", None])
def test_to_percent_rejects_out_of_range(bad):
    with pytest.raises(InvalidInput):
        to_percent(bad)


def test_split_with_remainder_last_share_absorbs():
    """14000 / 3 -> two floor shares, remainder on the last"""
    assert split_with_remainder(14000, 3) == [4666, 4666, 4668]
    assert split_with_remainder(40003, 4) == [10000, 10000, 10000, 10003]


def test_split_with_remainder_smaller_than_parts():
    assert split_with_remainder(2, 3) == [0, 0, 2]


def test_split_with_remainder_rejects_zero_parts():
    with pytest.raises(InvalidInput):
        split_with_remainder(100, 0)


def test_format_cents():
    assert format_cents(5000000, "USD") == "USD 50,000.00"
    assert format_cents(-105, "BRL") == "BRL -1.05"


def test_to_percent_allows_at_most_two_decimals():
    assert to_percent("33.33") == Decimal("33.33")
    assert to_percent(Decimal("33.330")) == Decimal("33.33")
    with pytest.raises(InvalidInput):
        to_percent(Decimal("33.335"))
    with pytest.raises(InvalidInput):
        apply_percent(100000, Decimal("0.001"))
