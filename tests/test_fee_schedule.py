"""
Tests for the tiered platform fee
Run with: pytest tests/test_fee_schedule.py -v
"""

import pytest

from stakepool.core.errors import InvalidInputError
from stakepool.core.fee_schedule import MAX_FEE_RATE, fee_rate, fee_tier_label


@pytest.mark.parametrize("count, expected", [
    (0,    0.0),
    (1,    0.0),
    (2,    0.01),
    (3,    0.01),
    (5,    0.01),
    (6,    0.015),
    (10,   0.015),
    (11,   0.02),
    (20,   0.02),
    (21,   0.025),
    (50,   0.025),
    (51,   0.05),
    (100,  0.05),
    (101,  0.10),
    (200,  0.10),
    (201,  0.15),
    (500,  0.15),
    (501,  0.19),
    (10_000, 0.19),
])
def test_fee_rate_boundaries(count, expected):
    assert fee_rate(count) == pytest.approx(expected)


def test_fee_rate_is_non_decreasing():
    rates = [fee_rate(n) for n in range(0, 700)]
    assert all(a <= b for a, b in zip(rates, rates[1:]))


def test_fee_rate_never_exceeds_ceiling():
    assert max(fee_rate(n) for n in range(0, 2000, 7)) == MAX_FEE_RATE
    assert MAX_FEE_RATE == pytest.approx(0.19)


@pytest.mark.parametrize("count, label", [
    (0,   "under 2 active investors"),
    (4,   "2-5 active investors"),
    (8,   "6-10 active investors"),
    (150, "101-200 active investors"),
    (900, "over 500 active investors"),
])
def test_fee_tier_label(count, label):
    assert fee_tier_label(count) == label


@pytest.mark.parametrize("bad", [-1, -100, 2.5, "3", None, True])
def test_invalid_count_raises(bad):
    with pytest.raises(InvalidInputError):
        fee_rate(bad)
    with pytest.raises(InvalidInputError):
        fee_tier_label(bad)
