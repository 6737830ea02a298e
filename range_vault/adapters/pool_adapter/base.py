"""Interface of the concentrated-liquidity pool the vault manages a position in."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Protocol

from range_vault.adapters.token_adapter.ledger import ERC20Token


@dataclass
class PositionInfo:
    liquidity: int = 0
    tokens_owed0: int = 0
    tokens_owed1: int = 0


class PoolCallbackReceiver(Protocol):
    """What a pool caller must expose so the pool can request payment."""

    address: str

    def uniswap_v3_mint_callback(
        self, caller: Any, amount0_owed: int, amount1_owed: int, data: Any
    ) -> None: ...

    def uniswap_v3_swap_callback(
        self, caller: Any, amount0_delta: int, amount1_delta: int, data: Any
    ) -> None: ...


class PoolOracle(ABC):
    """Read-only price view: spot price/tick, spacing and the TWAP oracle."""

    tick_spacing: int

    @abstractmethod
    def current_tick(self) -> int:
        pass

    @abstractmethod
    def current_sqrt_price(self) -> int:
        pass

    @abstractmethod
    def time_weighted_average_tick(self, window: int) -> int:
        pass


class Pool(PoolOracle):
    """Mutating primitives of the pool.

    ``caller`` plays the role of the message sender: it owns the position and
    receives the payment callbacks for ``mint`` and ``swap``.
    """

    token0: ERC20Token
    token1: ERC20Token
    fee: int
    address: str

    @abstractmethod
    def mint(
        self,
        caller: PoolCallbackReceiver,
        tick_lower: int,
        tick_upper: int,
        liquidity: int,
        data: Any = None,
    ) -> tuple[int, int]:
        pass

    @abstractmethod
    def burn(
        self, caller: PoolCallbackReceiver, tick_lower: int, tick_upper: int, liquidity: int
    ) -> tuple[int, int]:
        pass

    @abstractmethod
    def collect(
        self,
        caller: PoolCallbackReceiver,
        recipient: str,
        tick_lower: int,
        tick_upper: int,
        amount0_requested: int,
        amount1_requested: int,
    ) -> tuple[int, int]:
        pass

    @abstractmethod
    def swap(
        self,
        caller: PoolCallbackReceiver,
        recipient: str,
        zero_for_one: bool,
        amount_specified: int,
        sqrt_price_limit_x96: int,
        data: Any = None,
    ) -> tuple[int, int]:
        pass

    @abstractmethod
    def position(self, owner: str, tick_lower: int, tick_upper: int) -> PositionInfo:
        pass
