from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import TYPE_CHECKING, Any, TypeVar

from loguru import logger

from range_vault.core.errors import PriceDeviationError, ReentrancyError

if TYPE_CHECKING:
    from range_vault.adapters.pool_adapter.base import PoolOracle

F = TypeVar("F", bound=Callable[..., Any])


def nonreentrant(fn: F) -> F:
    """Reject a nested call into any guarded method of the same object.

    The owner exposes a boolean ``_entered`` attribute; it is always released
    on the way out, including when the call raises.
    """

    @wraps(fn)
    def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
        if self._entered:
            raise ReentrancyError(f"{fn.__name__} called while another operation is running")
        self._entered = True
        try:
            return fn(self, *args, **kwargs)
        finally:
            self._entered = False

    return wrapper  # type: ignore[return-value]


def check_deviation(oracle: PoolOracle, twap_duration: int, max_twap_deviation: int) -> int:
    """Abort when spot has drifted more than ``max_twap_deviation`` ticks from TWAP.

    Returns the observed deviation so callers can log it.
    """
    current = oracle.current_tick()
    twap = oracle.time_weighted_average_tick(twap_duration)
    deviation = abs(current - twap)
    if deviation > max_twap_deviation:
        logger.warning(
            f"Deviation guard tripped: tick={current} twap={twap} max={max_twap_deviation}"
        )
        raise PriceDeviationError(current, twap, max_twap_deviation)
    return deviation
