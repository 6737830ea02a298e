from __future__ import annotations

import pytest

from range_vault.core.constants import MAX_TICK, MIN_TICK
from range_vault.core.errors import RangeValidationError
from range_vault.vault.range_selector import (
    base_range,
    check_range,
    implied_tick,
    range_from_balances,
    threshold_for,
)


def test_threshold_for():
    assert threshold_for(60, 10) == 600
    with pytest.raises(RangeValidationError):
        threshold_for(60, 0)


def test_base_range_at_tick_zero():
    assert base_range(0, threshold_for(60, 10), 60) == (-600, 600)


@pytest.mark.parametrize(
    "tick,expected",
    [
        (59, (-600, 600)),
        (60, (-540, 660)),
        (-1, (-660, 540)),
        (-60, (-660, 540)),
        (-61, (-720, 480)),
    ],
)
def test_base_range_floors_toward_negative_infinity(tick, expected):
    assert base_range(tick, 600, 60) == expected


@pytest.mark.parametrize("tick", [MIN_TICK + 100, MAX_TICK - 100])
def test_base_range_outside_tick_bounds(tick):
    with pytest.raises(RangeValidationError):
        base_range(tick, 600, 60)


def test_check_range_rejects_misaligned_and_inverted():
    with pytest.raises(RangeValidationError):
        check_range(-590, 600, 60)
    with pytest.raises(RangeValidationError):
        check_range(600, -600, 60)
    with pytest.raises(RangeValidationError):
        check_range(0, 0, 60)
    check_range(-600, 600, 60)


def test_implied_tick_of_equal_balances():
    assert implied_tick(10**18, 10**18) == 0


def test_implied_tick_follows_balance_ratio():
    tick = implied_tick(10**18, 2 * 10**18)
    # ln 2 / ln 1.0001 = 6931.47
    assert tick == 6931
    assert implied_tick(2 * 10**18, 10**18) == -tick - 1


def test_range_from_balances():
    assert range_from_balances(10**18, 10**18, 600, 60) == (-600, 600)
    lower, upper = range_from_balances(10**18, 2 * 10**18, 600, 60)
    assert lower % 60 == 0 and upper % 60 == 0
    assert upper - lower == 1200
    assert lower < 6931 < upper


@pytest.mark.parametrize("balances", [(0, 10**18), (10**18, 0), (0, 0)])
def test_range_from_balances_needs_both_tokens(balances):
    with pytest.raises(RangeValidationError):
        range_from_balances(*balances, 600, 60)


def test_range_from_balances_extreme_ratio():
    with pytest.raises(RangeValidationError):
        range_from_balances(1, 10**40, 600, 60)


@pytest.mark.parametrize(
    "balance0,balance1,spacing,multiplier",
    [
        (10**18, 10**18, 60, 10),
        (3 * 10**17, 10**6, 10, 5),
        (10**6, 7 * 10**20, 200, 3),
        (123_456_789, 987_654_321, 1, 1),
    ],
)
def test_ranges_are_ordered_and_aligned(balance0, balance1, spacing, multiplier):
    lower, upper = range_from_balances(
        balance0, balance1, threshold_for(spacing, multiplier), spacing
    )
    assert lower < upper
    assert lower % spacing == 0
    assert upper % spacing == 0
