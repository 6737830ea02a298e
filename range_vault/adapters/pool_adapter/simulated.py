"""In-memory concentrated-liquidity pool.

Positions, swaps and fees follow Uniswap v3 integer math: amounts owed on
mint round up, amounts returned on burn round down, and exact-input swaps walk
constant-liquidity segments between initialized ticks. Fees accrue to the
positions active in each segment pro rata to liquidity and become collectable
only once the position is touched (mint, burn or a zero-liquidity poke).

Observations of the cumulative tick are written whenever the tick changes,
which backs :meth:`SimulatedPool.time_weighted_average_tick`.
"""

from __future__ import annotations

import time
from bisect import bisect_right
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from range_vault.adapters.pool_adapter.base import (
    Pool,
    PoolCallbackReceiver,
    PositionInfo,
)
from range_vault.adapters.token_adapter.ledger import ERC20Token
from range_vault.core.adapters.BaseAdapter import BaseAdapter
from range_vault.core.constants import (
    MAX_SQRT_RATIO,
    MAX_TICK,
    MIN_SQRT_RATIO,
    MIN_TICK,
)
from range_vault.core.errors import PoolError
from range_vault.core.utils.addresses import derive_address, ensure_address
from range_vault.core.utils.uniswap_v3_math import (
    amounts_for_liq_inrange,
    compute_swap_step,
    sqrt_price_x96_from_tick,
    tick_from_sqrt_price_x96,
    to_uint128,
)


class ManualClock:
    """Deterministic seconds clock for simulations and tests."""

    def __init__(self, start: int = 1_700_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("clock cannot move backwards")
        self.now += seconds
        return self.now


@dataclass
class _Position:
    liquidity: int = 0
    tokens_owed0: int = 0
    tokens_owed1: int = 0
    pending_fees0: int = 0
    pending_fees1: int = 0

    def touch(self) -> None:
        self.tokens_owed0 += self.pending_fees0
        self.tokens_owed1 += self.pending_fees1
        self.pending_fees0 = 0
        self.pending_fees1 = 0


class SimulatedPool(BaseAdapter, Pool):
    adapter_type = "SIMULATED_POOL"

    def __init__(
        self,
        token0: ERC20Token,
        token1: ERC20Token,
        *,
        fee: int = 3000,
        tick_spacing: int = 60,
        tick: int = 0,
        sqrt_price_x96: int | None = None,
        background_liquidity: int = 0,
        clock: Callable[[], int] | None = None,
        address: str | None = None,
    ):
        if token0.address == token1.address:
            raise ValueError("pool tokens must differ")
        if tick_spacing <= 0:
            raise ValueError(f"tick spacing must be positive, got {tick_spacing}")
        if not 0 <= fee < 1_000_000:
            raise ValueError(f"fee must be in [0, 1e6), got {fee}")
        name = f"{token0.symbol}/{token1.symbol}-{fee}"
        super().__init__(name, address=address or derive_address(f"pool:{name}"))
        self.token0 = token0
        self.token1 = token1
        self.fee = fee
        self.tick_spacing = tick_spacing
        self.sqrt_price_x96 = (
            sqrt_price_x96 if sqrt_price_x96 is not None else sqrt_price_x96_from_tick(tick)
        )
        self.tick = tick_from_sqrt_price_x96(self.sqrt_price_x96)
        self._clock = clock or (lambda: int(time.time()))
        self._positions: dict[tuple[str, int, int], _Position] = {}
        self._observations: list[tuple[int, int]] = [(self._clock(), 0)]
        self.background_owner = derive_address(f"background-lp:{self.address}")
        if background_liquidity > 0:
            self.add_background_liquidity(background_liquidity)

    # ── oracle ───────────────────────────────────────────────────────────────

    def current_tick(self) -> int:
        return self.tick

    def current_sqrt_price(self) -> int:
        return self.sqrt_price_x96

    def observe(self, seconds_ago: int) -> int:
        """Tick cumulative ``seconds_ago`` seconds before now."""
        if seconds_ago < 0:
            raise ValueError("seconds_ago must be non-negative")
        return self._tick_cumulative_at(self._clock() - seconds_ago)

    def time_weighted_average_tick(self, window: int) -> int:
        if window <= 0:
            raise ValueError(f"TWAP window must be positive, got {window}")
        delta = self.observe(0) - self.observe(window)
        # floor division rounds toward negative infinity like the on-chain oracle
        return delta // window

    def _tick_cumulative_at(self, timestamp: int) -> int:
        last_ts, last_cum = self._observations[-1]
        if timestamp >= last_ts:
            return last_cum + self.tick * (timestamp - last_ts)
        timestamps = [ts for ts, _ in self._observations]
        idx = bisect_right(timestamps, timestamp) - 1
        if idx < 0:
            raise PoolError(f"OLD: no observation at or before {timestamp}")
        t0, c0 = self._observations[idx]
        t1, c1 = self._observations[idx + 1]
        return c0 + (c1 - c0) // (t1 - t0) * (timestamp - t0)

    def _write_observation(self) -> None:
        now = self._clock()
        last_ts, last_cum = self._observations[-1]
        if now < last_ts:
            raise PoolError("clock moved backwards")
        if now > last_ts:
            self._observations.append((now, last_cum + self.tick * (now - last_ts)))

    # ── positions ────────────────────────────────────────────────────────────

    def position(self, owner: str, tick_lower: int, tick_upper: int) -> PositionInfo:
        pos = self._positions.get((ensure_address(owner), tick_lower, tick_upper))
        if pos is None:
            return PositionInfo()
        return PositionInfo(pos.liquidity, pos.tokens_owed0, pos.tokens_owed1)

    def mint(
        self,
        caller: PoolCallbackReceiver,
        tick_lower: int,
        tick_upper: int,
        liquidity: int,
        data: Any = None,
    ) -> tuple[int, int]:
        self._check_ticks(tick_lower, tick_upper)
        if liquidity <= 0:
            raise PoolError("mint liquidity must be positive")
        to_uint128(liquidity)
        amount0, amount1 = amounts_for_liq_inrange(
            self.sqrt_price_x96,
            sqrt_price_x96_from_tick(tick_lower),
            sqrt_price_x96_from_tick(tick_upper),
            liquidity,
            round_up=True,
        )

        balance0_before = self.token0.balance_of(self.address)
        balance1_before = self.token1.balance_of(self.address)
        caller.uniswap_v3_mint_callback(self, amount0, amount1, data)
        if amount0 > 0 and self.token0.balance_of(self.address) < balance0_before + amount0:
            raise PoolError("M0: token0 payment missing")
        if amount1 > 0 and self.token1.balance_of(self.address) < balance1_before + amount1:
            raise PoolError("M1: token1 payment missing")

        pos = self._positions.setdefault(
            (ensure_address(caller.address), tick_lower, tick_upper), _Position()
        )
        pos.touch()
        pos.liquidity += liquidity
        self.logger.debug(
            f"mint [{tick_lower}, {tick_upper}] L={liquidity} amounts=({amount0}, {amount1})"
        )
        return amount0, amount1

    def burn(
        self, caller: PoolCallbackReceiver, tick_lower: int, tick_upper: int, liquidity: int
    ) -> tuple[int, int]:
        if liquidity < 0:
            raise PoolError("burn liquidity must be non-negative")
        pos = self._positions.get((ensure_address(caller.address), tick_lower, tick_upper))
        if pos is None or (liquidity == 0 and pos.liquidity == 0):
            raise PoolError("NP: cannot poke a position without liquidity")
        if liquidity > pos.liquidity:
            raise PoolError(f"LS: burning {liquidity} of {pos.liquidity}")

        amount0, amount1 = amounts_for_liq_inrange(
            self.sqrt_price_x96,
            sqrt_price_x96_from_tick(tick_lower),
            sqrt_price_x96_from_tick(tick_upper),
            liquidity,
        )
        pos.touch()
        pos.liquidity -= liquidity
        pos.tokens_owed0 += amount0
        pos.tokens_owed1 += amount1
        if liquidity:
            self.logger.debug(
                f"burn [{tick_lower}, {tick_upper}] L={liquidity} amounts=({amount0}, {amount1})"
            )
        return amount0, amount1

    def collect(
        self,
        caller: PoolCallbackReceiver,
        recipient: str,
        tick_lower: int,
        tick_upper: int,
        amount0_requested: int,
        amount1_requested: int,
    ) -> tuple[int, int]:
        pos = self._positions.get((ensure_address(caller.address), tick_lower, tick_upper))
        if pos is None:
            return 0, 0
        amount0 = min(amount0_requested, pos.tokens_owed0)
        amount1 = min(amount1_requested, pos.tokens_owed1)
        if amount0 > 0:
            pos.tokens_owed0 -= amount0
            self.token0.transfer(self.address, recipient, amount0)
        if amount1 > 0:
            pos.tokens_owed1 -= amount1
            self.token1.transfer(self.address, recipient, amount1)
        return amount0, amount1

    # ── swaps ────────────────────────────────────────────────────────────────

    def swap(
        self,
        caller: PoolCallbackReceiver,
        recipient: str,
        zero_for_one: bool,
        amount_specified: int,
        sqrt_price_limit_x96: int,
        data: Any = None,
    ) -> tuple[int, int]:
        if amount_specified <= 0:
            raise PoolError("AS: exact-input amount must be positive")
        if zero_for_one:
            valid_limit = MIN_SQRT_RATIO < sqrt_price_limit_x96 < self.sqrt_price_x96
        else:
            valid_limit = self.sqrt_price_x96 < sqrt_price_limit_x96 < MAX_SQRT_RATIO
        if not valid_limit:
            raise PoolError(f"SPL: invalid price limit {sqrt_price_limit_x96}")

        remaining = amount_specified
        amount_out = 0
        sqrt_p = self.sqrt_price_x96
        tick = self.tick
        fee_segments: list[tuple[int, int, int]] = []

        while remaining > 0 and sqrt_p != sqrt_price_limit_x96:
            next_tick = self._next_initialized_tick(tick, zero_for_one)
            sqrt_next_tick = sqrt_price_x96_from_tick(next_tick)
            if zero_for_one:
                sqrt_target = max(sqrt_next_tick, sqrt_price_limit_x96)
            else:
                sqrt_target = min(sqrt_next_tick, sqrt_price_limit_x96)

            liquidity = self._active_liquidity(tick)
            if liquidity == 0:
                sqrt_p = sqrt_target
            else:
                sqrt_p, step_in, step_out, fee_amount = compute_swap_step(
                    sqrt_p, sqrt_target, liquidity, remaining, self.fee
                )
                remaining -= step_in + fee_amount
                amount_out += step_out
                fee_segments.append((tick, liquidity, fee_amount))

            if sqrt_p == sqrt_next_tick:
                tick = next_tick - 1 if zero_for_one else next_tick
            else:
                tick = tick_from_sqrt_price_x96(sqrt_p)

        amount_in = amount_specified - remaining
        if zero_for_one:
            amount0, amount1 = amount_in, -amount_out
            token_in, token_out = self.token0, self.token1
        else:
            amount0, amount1 = -amount_out, amount_in
            token_in, token_out = self.token1, self.token0

        balance_before = token_in.balance_of(self.address)
        caller.uniswap_v3_swap_callback(self, amount0, amount1, data)
        if token_in.balance_of(self.address) < balance_before + amount_in:
            raise PoolError("IIA: swap input not received")

        self._write_observation()
        self.sqrt_price_x96 = sqrt_p
        self.tick = tick
        for segment_tick, liquidity, fee_amount in fee_segments:
            self._distribute_fee(segment_tick, liquidity, fee_amount, zero_for_one)
        if amount_out > 0:
            token_out.transfer(self.address, recipient, amount_out)

        self.logger.debug(
            f"swap zero_for_one={zero_for_one} in={amount_in} out={amount_out} tick={tick}"
        )
        return amount0, amount1

    def _active_liquidity(self, tick: int) -> int:
        return sum(
            pos.liquidity
            for (_, lower, upper), pos in self._positions.items()
            if lower <= tick < upper
        )

    def _next_initialized_tick(self, tick: int, lte: bool) -> int:
        boundaries = {
            t
            for (_, lower, upper), pos in self._positions.items()
            if pos.liquidity > 0
            for t in (lower, upper)
        }
        if lte:
            return max((t for t in boundaries if t <= tick), default=MIN_TICK)
        return min((t for t in boundaries if t > tick), default=MAX_TICK)

    def _distribute_fee(
        self, tick: int, liquidity: int, fee_amount: int, zero_for_one: bool
    ) -> None:
        if fee_amount <= 0:
            return
        for (_, lower, upper), pos in self._positions.items():
            if pos.liquidity > 0 and lower <= tick < upper:
                share = fee_amount * pos.liquidity // liquidity
                if zero_for_one:
                    pos.pending_fees0 += share
                else:
                    pos.pending_fees1 += share

    def _check_ticks(self, tick_lower: int, tick_upper: int) -> None:
        if tick_lower >= tick_upper:
            raise PoolError(f"TLU: lower {tick_lower} >= upper {tick_upper}")
        if tick_lower < MIN_TICK:
            raise PoolError(f"TLM: lower {tick_lower} below {MIN_TICK}")
        if tick_upper > MAX_TICK:
            raise PoolError(f"TUM: upper {tick_upper} above {MAX_TICK}")
        if tick_lower % self.tick_spacing or tick_upper % self.tick_spacing:
            raise PoolError(
                f"ticks [{tick_lower}, {tick_upper}] not multiples of {self.tick_spacing}"
            )

    # ── simulation hooks ─────────────────────────────────────────────────────

    def add_background_liquidity(
        self,
        liquidity: int,
        tick_lower: int | None = None,
        tick_upper: int | None = None,
    ) -> tuple[int, int]:
        """Seed third-party liquidity, funded out of thin air (full range by default)."""
        max_aligned = (MAX_TICK // self.tick_spacing) * self.tick_spacing
        tick_lower = -max_aligned if tick_lower is None else tick_lower
        tick_upper = max_aligned if tick_upper is None else tick_upper
        self._check_ticks(tick_lower, tick_upper)
        amount0, amount1 = amounts_for_liq_inrange(
            self.sqrt_price_x96,
            sqrt_price_x96_from_tick(tick_lower),
            sqrt_price_x96_from_tick(tick_upper),
            liquidity,
            round_up=True,
        )
        self.token0.mint(self.address, amount0)
        self.token1.mint(self.address, amount1)
        pos = self._positions.setdefault(
            (self.background_owner, tick_lower, tick_upper), _Position()
        )
        pos.liquidity += liquidity
        return amount0, amount1

    def credit_fees(
        self, owner: str, tick_lower: int, tick_upper: int, amount0: int, amount1: int
    ) -> None:
        """Accrue trading fees to a position as if swaps had paid them."""
        pos = self._positions.get((ensure_address(owner), tick_lower, tick_upper))
        if pos is None or pos.liquidity == 0:
            raise PoolError("NP: no liquidity to credit fees to")
        self.token0.mint(self.address, amount0)
        self.token1.mint(self.address, amount1)
        pos.pending_fees0 += amount0
        pos.pending_fees1 += amount1

    def set_price_tick(self, tick: int) -> None:
        """Jump the spot price to ``tick`` without trading."""
        self._write_observation()
        self.sqrt_price_x96 = sqrt_price_x96_from_tick(tick)
        self.tick = tick
