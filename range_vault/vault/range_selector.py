"""Where the vault's liquidity sits.

A range is always ``threshold`` ticks either side of a reference tick floored
to the pool's spacing. The reference is the pool tick on init and rebalance,
and the price implied by the vault's own balances on rerange, when the spot
price right after pulling all liquidity is not trusted.
"""

from __future__ import annotations

from range_vault.core.constants import MAX_SQRT_RATIO, MAX_TICK, MIN_SQRT_RATIO, MIN_TICK
from range_vault.core.errors import ArithmeticOverflowError, RangeValidationError
from range_vault.core.utils.fixed_point import sqrt_from_price
from range_vault.core.utils.uniswap_v3_math import (
    round_tick_to_spacing,
    tick_from_sqrt_price_x96,
)


def threshold_for(tick_spacing: int, multiplier: int) -> int:
    if tick_spacing <= 0 or multiplier <= 0:
        raise RangeValidationError(
            f"spacing and multiplier must be positive, got {tick_spacing}, {multiplier}"
        )
    return tick_spacing * multiplier


def check_range(tick_lower: int, tick_upper: int, tick_spacing: int) -> None:
    if tick_lower >= tick_upper:
        raise RangeValidationError(f"lower tick {tick_lower} >= upper tick {tick_upper}")
    if tick_lower < MIN_TICK:
        raise RangeValidationError(f"lower tick {tick_lower} below {MIN_TICK}")
    if tick_upper > MAX_TICK:
        raise RangeValidationError(f"upper tick {tick_upper} above {MAX_TICK}")
    if tick_lower % tick_spacing or tick_upper % tick_spacing:
        raise RangeValidationError(
            f"range [{tick_lower}, {tick_upper}] not aligned to spacing {tick_spacing}"
        )


def base_range(reference_tick: int, threshold: int, tick_spacing: int) -> tuple[int, int]:
    if tick_spacing <= 0:
        raise RangeValidationError(f"tick spacing must be positive, got {tick_spacing}")
    floored = round_tick_to_spacing(reference_tick, tick_spacing)
    tick_lower, tick_upper = floored - threshold, floored + threshold
    check_range(tick_lower, tick_upper, tick_spacing)
    return tick_lower, tick_upper


def implied_tick(balance0: int, balance1: int) -> int:
    """Tick of the price ``balance1 / balance0``."""
    if balance0 <= 0 or balance1 <= 0:
        raise RangeValidationError(
            f"balances ({balance0}, {balance1}) imply no price"
        )
    try:
        sqrt_price_x96 = sqrt_from_price(balance1, balance0)
    except ArithmeticOverflowError as exc:
        raise RangeValidationError(f"implied price out of range: {exc}") from exc
    if not MIN_SQRT_RATIO <= sqrt_price_x96 < MAX_SQRT_RATIO:
        raise RangeValidationError(
            f"implied sqrt price {sqrt_price_x96} outside the pool's price range"
        )
    return tick_from_sqrt_price_x96(sqrt_price_x96)


def range_from_balances(
    balance0: int, balance1: int, threshold: int, tick_spacing: int
) -> tuple[int, int]:
    return base_range(implied_tick(balance0, balance1), threshold, tick_spacing)
