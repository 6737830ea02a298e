from __future__ import annotations

from dataclasses import dataclass

from range_vault.core.constants import GLOBAL_DIVISOR, MAX_SQRT_RATIO, MIN_SQRT_RATIO


@dataclass(frozen=True)
class SwapPlan:
    zero_for_one: bool
    amount: int
    sqrt_price_limit_x96: int

    @property
    def is_noop(self) -> bool:
        return self.amount == 0


def direction(desired0: int, desired1: int, achievable0: int, achievable1: int) -> bool:
    """True when token0 is the over-supplied side (swap token0 into token1).

    Relative excesses ``(desired - achievable) / desired`` are compared by
    cross-multiplying so no division is needed.
    """
    excess0 = desired0 - achievable0
    excess1 = desired1 - achievable1
    if desired1 == 0:
        return excess0 > 0
    if desired0 == 0:
        return False
    return excess0 * desired1 > excess1 * desired0


def swap_amount(desired: int, achievable: int) -> int:
    return max(0, (desired - achievable) // 2)


def price_limit(current_sqrt_price_x96: int, impact_ppm: int, zero_for_one: bool) -> int:
    delta = current_sqrt_price_x96 * (impact_ppm // 2) // GLOBAL_DIVISOR
    if zero_for_one:
        limit = current_sqrt_price_x96 - delta
    else:
        limit = current_sqrt_price_x96 + delta
    return min(max(limit, MIN_SQRT_RATIO + 1), MAX_SQRT_RATIO - 1)


def plan_swap(
    desired0: int,
    desired1: int,
    achievable0: int,
    achievable1: int,
    current_sqrt_price_x96: int,
    impact_ppm: int,
) -> SwapPlan:
    zero_for_one = direction(desired0, desired1, achievable0, achievable1)
    if zero_for_one:
        amount = swap_amount(desired0, achievable0)
    else:
        amount = swap_amount(desired1, achievable1)
    return SwapPlan(
        zero_for_one=zero_for_one,
        amount=amount,
        sqrt_price_limit_x96=price_limit(current_sqrt_price_x96, impact_ppm, zero_for_one),
    )
