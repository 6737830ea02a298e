"""Read-only view of a deployed Uniswap v3 pool.

``UniswapV3PoolReader`` pulls slot0, spacing and the oracle's tick cumulatives
in one round trip and freezes them into a :class:`PoolSnapshot`, which speaks
the same :class:`PoolOracle` interface as the simulated pool. Range previews
and the deviation guard can then be evaluated against chain data.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from eth_utils import to_checksum_address

from range_vault.adapters.pool_adapter.base import PoolOracle
from range_vault.core.adapters.BaseAdapter import BaseAdapter
from range_vault.core.adapters.decorators import status_tuple
from range_vault.core.constants.uniswap_v3_pool_abi import UNISWAP_V3_POOL_ABI
from range_vault.core.utils.web3 import web3_from_chain_id
from range_vault.vault.guards import check_deviation


@dataclass(frozen=True)
class PoolSnapshot(PoolOracle):
    chain_id: int
    pool_address: str
    sqrt_price_x96: int
    tick: int
    tick_spacing: int
    fee: int
    liquidity: int
    # seconds_ago -> tickCumulative
    tick_cumulatives: dict[int, int] = field(default_factory=dict)

    def current_tick(self) -> int:
        return self.tick

    def current_sqrt_price(self) -> int:
        return self.sqrt_price_x96

    def time_weighted_average_tick(self, window: int) -> int:
        if window <= 0:
            raise ValueError(f"TWAP window must be positive, got {window}")
        if 0 not in self.tick_cumulatives or window not in self.tick_cumulatives:
            raise ValueError(f"snapshot has no observation for a {window}s window")
        delta = self.tick_cumulatives[0] - self.tick_cumulatives[window]
        return delta // window


class UniswapV3PoolReader(BaseAdapter):
    adapter_type = "UNISWAP_V3_POOL_READER"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        chain_id: int,
        pool_address: str,
    ) -> None:
        super().__init__("uniswap_v3_pool_reader", config, address=pool_address)
        self.chain_id = int(chain_id)
        self.pool_address = to_checksum_address(str(pool_address))

    @status_tuple
    async def get_pool_snapshot(
        self, twap_windows: Iterable[int] | None = None
    ) -> PoolSnapshot:
        if twap_windows is None:
            twap_windows = self.config.get("twap_windows", (60,))
        windows = [int(w) for w in twap_windows]
        if any(w <= 0 for w in windows):
            raise ValueError(f"TWAP windows must be positive, got {windows}")
        seconds_agos = sorted({0, *windows})

        async with web3_from_chain_id(self.chain_id) as w3:
            pool = w3.eth.contract(address=self.pool_address, abi=UNISWAP_V3_POOL_ABI)
            slot0 = await pool.functions.slot0().call()
            tick_spacing = await pool.functions.tickSpacing().call()
            fee = await pool.functions.fee().call()
            liquidity = await pool.functions.liquidity().call()
            tick_cumulatives, _ = await pool.functions.observe(seconds_agos).call()

        if len(tick_cumulatives) != len(seconds_agos):
            raise ValueError(
                f"observe returned {len(tick_cumulatives)} values for {len(seconds_agos)} windows"
            )
        snapshot = PoolSnapshot(
            chain_id=self.chain_id,
            pool_address=self.pool_address,
            sqrt_price_x96=int(slot0[0]),
            tick=int(slot0[1]),
            tick_spacing=int(tick_spacing),
            fee=int(fee),
            liquidity=int(liquidity),
            tick_cumulatives={
                s: int(c) for s, c in zip(seconds_agos, tick_cumulatives, strict=True)
            },
        )
        self.logger.debug(
            f"snapshot tick={snapshot.tick} spacing={snapshot.tick_spacing} windows={windows}"
        )
        return snapshot

    @status_tuple
    async def check_twap_deviation(self, twap_duration: int, max_twap_deviation: int) -> int:
        """Deviation in ticks between spot and TWAP; fails when above the tolerance."""
        ok, snapshot = await self.get_pool_snapshot((twap_duration,))
        if not ok:
            raise RuntimeError(snapshot)
        return check_deviation(snapshot, twap_duration, max_twap_deviation)
