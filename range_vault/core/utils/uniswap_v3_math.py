"""Uniswap v3 math helpers.

Integer tick/price/liquidity conversions with the rounding the pool itself
applies, used by the vault engine, the range selector and the simulated pool.
"""

from __future__ import annotations

from range_vault.core.constants import (
    GLOBAL_DIVISOR,
    MAX_SQRT_RATIO,
    MAX_TICK,
    MAX_UINT128,
    MIN_SQRT_RATIO,
    MIN_TICK,
    Q96,
)
from range_vault.core.errors import ArithmeticOverflowError

Q32 = 1 << 32


def round_tick_to_spacing(tick: int, spacing: int) -> int:
    """Floor ``tick`` to a multiple of ``spacing`` (toward negative infinity)."""
    if spacing <= 0:
        raise ValueError(f"tick spacing must be positive, got {spacing}")
    return tick - (tick % spacing)


def mul_div(a: int, b: int, denominator: int) -> int:
    return (a * b) // denominator


def mul_div_rounding_up(a: int, b: int, denominator: int) -> int:
    return -((-a * b) // denominator)


def div_rounding_up(a: int, b: int) -> int:
    return -((-a) // b)


def to_uint128(value: int) -> int:
    if value < 0 or value > MAX_UINT128:
        raise ArithmeticOverflowError(f"liquidity {value} outside uint128")
    return value


def amt0_for_liq(
    sqrt_a: int, sqrt_b: int, liquidity: int, *, round_up: bool = False
) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if a == 0:
        raise ValueError("sqrt price bound must be positive")
    numerator1 = liquidity << 96
    numerator2 = b - a
    if round_up:
        return div_rounding_up(mul_div_rounding_up(numerator1, numerator2, b), a)
    return mul_div(numerator1, numerator2, b) // a


def amt1_for_liq(
    sqrt_a: int, sqrt_b: int, liquidity: int, *, round_up: bool = False
) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if round_up:
        return mul_div_rounding_up(liquidity, b - a, Q96)
    return mul_div(liquidity, b - a, Q96)


def liq_for_amt0(sqrt_a: int, sqrt_b: int, amount0: int) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    intermediate = mul_div(a, b, Q96)
    return mul_div(amount0, intermediate, b - a)


def liq_for_amt1(sqrt_a: int, sqrt_b: int, amount1: int) -> int:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    return mul_div(amount1, Q96, b - a)


def liq_for_amounts(
    sqrt_p: int, sqrt_a: int, sqrt_b: int, amount0: int, amount1: int
) -> int:
    """Maximum liquidity the amounts can back at ``sqrt_p`` (uint128 checked)."""
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if sqrt_p <= a:
        liquidity = liq_for_amt0(a, b, amount0)
    elif sqrt_p < b:
        liquidity = min(liq_for_amt0(sqrt_p, b, amount0), liq_for_amt1(a, sqrt_p, amount1))
    else:
        liquidity = liq_for_amt1(a, b, amount1)
    return to_uint128(liquidity)


def amounts_for_liq_inrange(
    sqrt_p: int, sqrt_a: int, sqrt_b: int, liquidity: int, *, round_up: bool = False
) -> tuple[int, int]:
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    if sqrt_p <= a:
        amount0 = amt0_for_liq(a, b, liquidity, round_up=round_up)
        amount1 = 0
    elif sqrt_p < b:
        amount0 = amt0_for_liq(sqrt_p, b, liquidity, round_up=round_up)
        amount1 = amt1_for_liq(a, sqrt_p, liquidity, round_up=round_up)
    else:
        amount0 = 0
        amount1 = amt1_for_liq(a, b, liquidity, round_up=round_up)
    return amount0, amount1


def liq_to_withdraw(
    sqrt_p: int, sqrt_a: int, sqrt_b: int, amount0: int, amount1: int
) -> int | None:
    """Smallest liquidity whose burn at ``sqrt_p`` yields at least both amounts.

    Returns ``None`` when the range holds none of a requested token at this
    price (e.g. token1 requested while the price sits below the range).
    """
    a, b = _sorted_bounds(sqrt_a, sqrt_b)
    liquidity = 0
    if amount0 > 0:
        lo = max(sqrt_p, a)
        if lo >= b:
            return None
        # floor(floor(L * Q96 * (b - lo) / b) / lo) >= amount0  <=>  L >= amount0 * lo * b / (Q96 * (b - lo))
        liquidity = max(liquidity, div_rounding_up(amount0 * lo * b, Q96 * (b - lo)))
    if amount1 > 0:
        hi = min(sqrt_p, b)
        if hi <= a:
            return None
        liquidity = max(liquidity, div_rounding_up(amount1 * Q96, hi - a))
    return liquidity


def sqrt_price_x96_from_tick(
    tick: int, *, min_tick: int = MIN_TICK, max_tick: int = MAX_TICK
) -> int:
    if tick < min_tick or tick > max_tick:
        raise ValueError(f"tick {tick} out of range [{min_tick}, {max_tick}]")

    abs_tick = tick if tick >= 0 else -tick
    ratio = 0x100000000000000000000000000000000

    if abs_tick & 0x1:
        ratio = (ratio * 0xFFFCB933BD6FAD37AA2D162D1A594001) >> 128
    if abs_tick & 0x2:
        ratio = (ratio * 0xFFF97272373D413259A46990580E213A) >> 128
    if abs_tick & 0x4:
        ratio = (ratio * 0xFFF2E50F5F656932EF12357CF3C7FDCC) >> 128
    if abs_tick & 0x8:
        ratio = (ratio * 0xFFE5CACA7E10E4E61C3624EAA0941CD0) >> 128
    if abs_tick & 0x10:
        ratio = (ratio * 0xFFCB9843D60F6159C9DB58835C926644) >> 128
    if abs_tick & 0x20:
        ratio = (ratio * 0xFF973B41FA98C081472E6896DFB254C0) >> 128
    if abs_tick & 0x40:
        ratio = (ratio * 0xFF2EA16466C96A3843EC78B326B52861) >> 128
    if abs_tick & 0x80:
        ratio = (ratio * 0xFE5DEE046A99A2A811C461F1969C3053) >> 128
    if abs_tick & 0x100:
        ratio = (ratio * 0xFCBE86C7900A88AEDCFFC83B479AA3A4) >> 128
    if abs_tick & 0x200:
        ratio = (ratio * 0xF987A7253AC413176F2B074CF7815E54) >> 128
    if abs_tick & 0x400:
        ratio = (ratio * 0xF3392B0822B70005940C7A398E4B70F3) >> 128
    if abs_tick & 0x800:
        ratio = (ratio * 0xE7159475A2C29B7443B29C7FA6E889D9) >> 128
    if abs_tick & 0x1000:
        ratio = (ratio * 0xD097F3BDFD2022B8845AD8F792AA5825) >> 128
    if abs_tick & 0x2000:
        ratio = (ratio * 0xA9F746462D870FDF8A65DC1F90E061E5) >> 128
    if abs_tick & 0x4000:
        ratio = (ratio * 0x70D869A156D2A1B890BB3DF62BAF32F7) >> 128
    if abs_tick & 0x8000:
        ratio = (ratio * 0x31BE135F97D08FD981231505542FCFA6) >> 128
    if abs_tick & 0x10000:
        ratio = (ratio * 0x9AA508B5B7A84E1C677DE54F3E99BC9) >> 128
    if abs_tick & 0x20000:
        ratio = (ratio * 0x5D6AF8DEDB81196699C329225EE604) >> 128
    if abs_tick & 0x40000:
        ratio = (ratio * 0x2216E584F5FA1EA926041BEDFE98) >> 128
    if abs_tick & 0x80000:
        ratio = (ratio * 0x48A170391F7DC42444E8FA2) >> 128

    if tick > 0:
        ratio = (1 << 256) // ratio

    sqrt_price_x96 = ratio >> 32
    if ratio & (Q32 - 1):
        sqrt_price_x96 += 1
    return int(sqrt_price_x96)


def tick_from_sqrt_price_x96(sqrt_price_x96: int) -> int:
    """Greatest tick whose sqrt ratio is <= ``sqrt_price_x96``."""
    if sqrt_price_x96 < MIN_SQRT_RATIO or sqrt_price_x96 >= MAX_SQRT_RATIO:
        raise ValueError(
            f"sqrt price {sqrt_price_x96} out of range [{MIN_SQRT_RATIO}, {MAX_SQRT_RATIO})"
        )
    lo, hi = MIN_TICK, MAX_TICK
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if sqrt_price_x96_from_tick(mid) <= sqrt_price_x96:
            lo = mid
        else:
            hi = mid - 1
    return lo


def next_sqrt_price_from_input(
    sqrt_p: int, liquidity: int, amount_in: int, zero_for_one: bool
) -> int:
    if sqrt_p <= 0 or liquidity <= 0:
        raise ValueError("sqrt price and liquidity must be positive")
    if amount_in == 0:
        return sqrt_p
    if zero_for_one:
        numerator1 = liquidity << 96
        return mul_div_rounding_up(numerator1, sqrt_p, numerator1 + amount_in * sqrt_p)
    return sqrt_p + (amount_in << 96) // liquidity


def compute_swap_step(
    sqrt_current: int,
    sqrt_target: int,
    liquidity: int,
    amount_remaining: int,
    fee_pips: int,
) -> tuple[int, int, int, int]:
    """Exact-input swap step within one constant-liquidity segment.

    Returns ``(sqrt_next, amount_in, amount_out, fee_amount)``.
    """
    zero_for_one = sqrt_current >= sqrt_target
    amount_less_fee = mul_div(amount_remaining, GLOBAL_DIVISOR - fee_pips, GLOBAL_DIVISOR)
    if zero_for_one:
        amount_in = amt0_for_liq(sqrt_target, sqrt_current, liquidity, round_up=True)
    else:
        amount_in = amt1_for_liq(sqrt_current, sqrt_target, liquidity, round_up=True)

    if amount_less_fee >= amount_in:
        sqrt_next = sqrt_target
    else:
        sqrt_next = next_sqrt_price_from_input(
            sqrt_current, liquidity, amount_less_fee, zero_for_one
        )
    reached_target = sqrt_next == sqrt_target

    if zero_for_one:
        if not reached_target:
            amount_in = amt0_for_liq(sqrt_next, sqrt_current, liquidity, round_up=True)
        amount_out = amt1_for_liq(sqrt_next, sqrt_current, liquidity)
    else:
        if not reached_target:
            amount_in = amt1_for_liq(sqrt_current, sqrt_next, liquidity, round_up=True)
        amount_out = amt0_for_liq(sqrt_current, sqrt_next, liquidity)

    if not reached_target:
        fee_amount = amount_remaining - amount_in
    else:
        fee_amount = mul_div_rounding_up(amount_in, fee_pips, GLOBAL_DIVISOR - fee_pips)
    return sqrt_next, amount_in, amount_out, fee_amount


def _sorted_bounds(sqrt_a: int, sqrt_b: int) -> tuple[int, int]:
    a, b = sorted((int(sqrt_a), int(sqrt_b)))
    return a, b
