from __future__ import annotations

import pytest

from range_vault.core.constants import (
    MAX_SQRT_RATIO,
    MAX_TICK,
    MAX_UINT128,
    MIN_SQRT_RATIO,
    MIN_TICK,
    Q96,
)
from range_vault.core.errors import ArithmeticOverflowError
from range_vault.core.utils.uniswap_v3_math import (
    amounts_for_liq_inrange,
    compute_swap_step,
    liq_for_amounts,
    liq_to_withdraw,
    round_tick_to_spacing,
    sqrt_price_x96_from_tick,
    tick_from_sqrt_price_x96,
    to_uint128,
)


def test_round_tick_to_spacing():
    assert round_tick_to_spacing(61, 60) == 60
    assert round_tick_to_spacing(60, 60) == 60
    assert round_tick_to_spacing(-1, 60) == -60
    assert round_tick_to_spacing(-61, 60) == -120
    assert round_tick_to_spacing(0, 60) == 0


def test_round_tick_to_spacing_rejects_zero_spacing():
    with pytest.raises(ValueError):
        round_tick_to_spacing(10, 0)


def test_sqrt_price_at_known_ticks():
    assert sqrt_price_x96_from_tick(0) == Q96
    assert sqrt_price_x96_from_tick(MIN_TICK) == MIN_SQRT_RATIO
    assert sqrt_price_x96_from_tick(MAX_TICK) == MAX_SQRT_RATIO


def test_sqrt_price_rejects_out_of_range_tick():
    with pytest.raises(ValueError):
        sqrt_price_x96_from_tick(MAX_TICK + 1)


@pytest.mark.parametrize("tick", [MIN_TICK, -600, -61, -1, 0, 1, 59, 600, MAX_TICK - 1])
def test_tick_from_sqrt_price_inverts_exactly(tick):
    sqrt_p = sqrt_price_x96_from_tick(tick)
    assert tick_from_sqrt_price_x96(sqrt_p) == tick
    assert tick_from_sqrt_price_x96(sqrt_p + 1) == tick


def test_tick_from_sqrt_price_just_below_tick():
    assert tick_from_sqrt_price_x96(sqrt_price_x96_from_tick(60) - 1) == 59


def test_tick_from_sqrt_price_bounds():
    with pytest.raises(ValueError):
        tick_from_sqrt_price_x96(MIN_SQRT_RATIO - 1)
    with pytest.raises(ValueError):
        tick_from_sqrt_price_x96(MAX_SQRT_RATIO)


def test_to_uint128_bounds():
    assert to_uint128(MAX_UINT128) == MAX_UINT128
    with pytest.raises(ArithmeticOverflowError):
        to_uint128(MAX_UINT128 + 1)


def test_amounts_below_range_are_all_token0():
    a = sqrt_price_x96_from_tick(60)
    b = sqrt_price_x96_from_tick(120)
    amount0, amount1 = amounts_for_liq_inrange(Q96, a, b, 10**18)
    assert amount0 > 0
    assert amount1 == 0


def test_amounts_above_range_are_all_token1():
    a = sqrt_price_x96_from_tick(-120)
    b = sqrt_price_x96_from_tick(-60)
    amount0, amount1 = amounts_for_liq_inrange(Q96, a, b, 10**18)
    assert amount0 == 0
    assert amount1 > 0


def test_round_up_never_below_round_down():
    a = sqrt_price_x96_from_tick(-600)
    b = sqrt_price_x96_from_tick(600)
    sqrt_p = sqrt_price_x96_from_tick(17)
    down = amounts_for_liq_inrange(sqrt_p, a, b, 123_456_789_012_345)
    up = amounts_for_liq_inrange(sqrt_p, a, b, 123_456_789_012_345, round_up=True)
    assert up[0] - down[0] in (0, 1)
    assert up[1] - down[1] in (0, 1)


def test_liquidity_for_amounts_spends_no_more_than_given():
    a = sqrt_price_x96_from_tick(-600)
    b = sqrt_price_x96_from_tick(600)
    liquidity = liq_for_amounts(Q96, a, b, 10**18, 10**18)
    amount0, amount1 = amounts_for_liq_inrange(Q96, a, b, liquidity, round_up=True)
    assert 0 < amount0 <= 10**18
    assert 0 < amount1 <= 10**18


@pytest.mark.parametrize(
    "amounts", [(10**15, 0), (0, 10**15), (10**15, 10**15), (1, 1), (999_999, 3)]
)
def test_liq_to_withdraw_is_minimal(amounts):
    a = sqrt_price_x96_from_tick(-600)
    b = sqrt_price_x96_from_tick(600)
    sqrt_p = sqrt_price_x96_from_tick(120)
    liquidity = liq_to_withdraw(sqrt_p, a, b, *amounts)
    got0, got1 = amounts_for_liq_inrange(sqrt_p, a, b, liquidity)
    assert got0 >= amounts[0] and got1 >= amounts[1]
    if liquidity > 0:
        less0, less1 = amounts_for_liq_inrange(sqrt_p, a, b, liquidity - 1)
        assert less0 < amounts[0] or less1 < amounts[1]


def test_liq_to_withdraw_none_when_token_absent():
    a = sqrt_price_x96_from_tick(60)
    b = sqrt_price_x96_from_tick(120)
    # price below the range: only token0 is held
    assert liq_to_withdraw(Q96, a, b, 0, 1) is None


def test_compute_swap_step_reaches_target_with_ample_input():
    target = sqrt_price_x96_from_tick(-60)
    sqrt_next, amount_in, amount_out, fee = compute_swap_step(
        Q96, target, 10**22, 10**30, 3000
    )
    assert sqrt_next == target
    assert amount_in > 0 and amount_out > 0
    assert fee == -((-amount_in * 3000) // (1_000_000 - 3000))


def test_compute_swap_step_consumes_all_input_when_short():
    target = sqrt_price_x96_from_tick(600)
    remaining = 10**15
    sqrt_next, amount_in, amount_out, fee = compute_swap_step(
        Q96, target, 10**22, remaining, 3000
    )
    assert Q96 < sqrt_next < target
    assert amount_in + fee == remaining
    assert amount_out < amount_in
