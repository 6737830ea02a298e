"""Conversions between Q64.96 square-root prices and linear prices."""

from __future__ import annotations

from range_vault.core.constants import MAX_UINT160, MAX_UINT256
from range_vault.core.errors import ArithmeticOverflowError

RESOLUTION_X2 = 192


def isqrt(n: int) -> int:
    """Floor of the square root of ``n`` by Newton's method."""
    if n < 0:
        raise ValueError(f"isqrt of negative number {n}")
    if n == 0:
        return 0
    x = n
    y = (x + 1) // 2
    while y < x:
        x = y
        y = (x + n // x) // 2
    return x


def price_from_sqrt(sqrt_price_x96: int, precision: int) -> int:
    """Linear price scaled by ``precision``: ``sqrtP**2 * precision >> 192``."""
    if sqrt_price_x96 < 0 or sqrt_price_x96 > MAX_UINT160:
        raise ArithmeticOverflowError(f"sqrt price {sqrt_price_x96} outside uint160")
    if precision <= 0:
        raise ValueError(f"precision must be positive, got {precision}")
    price = (sqrt_price_x96 * sqrt_price_x96 * precision) >> RESOLUTION_X2
    if price > MAX_UINT256:
        raise ArithmeticOverflowError(f"price {price} outside uint256")
    return price


def sqrt_from_price(price: int, precision: int) -> int:
    """Inverse of :func:`price_from_sqrt`, floored."""
    if price < 0:
        raise ValueError(f"price must be non-negative, got {price}")
    if precision <= 0:
        raise ValueError(f"precision must be positive, got {precision}")
    sqrt_price_x96 = isqrt((price << RESOLUTION_X2) // precision)
    if sqrt_price_x96 > MAX_UINT160:
        raise ArithmeticOverflowError(f"sqrt price {sqrt_price_x96} outside uint160")
    return sqrt_price_x96
