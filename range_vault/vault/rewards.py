"""Pull-based distribution of harvested trading fees to share holders.

Harvested fees (net of the protocol cut) are folded into global
reward-per-share accumulators. Each account keeps a checkpoint of the
accumulators at its last settlement, so its claim is
``balance * (stored - paid) / 1e18`` on top of what was already settled.

Settlement has to run before any change of share supply or position
liquidity, in the order poke, harvest, accrue, settle (see :meth:`update`).
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from loguru import logger

from range_vault.adapters.pool_adapter.base import Pool, PoolCallbackReceiver
from range_vault.adapters.token_adapter.ledger import ShareLedger
from range_vault.core.constants import GLOBAL_DIVISOR, MAX_UINT128, PRECISION
from range_vault.core.errors import InsufficientFeesError
from range_vault.core.utils.addresses import ensure_address
from range_vault.vault.events import CollectFees, EventLog


@dataclass
class UserAccount:
    token0_rewards: int = 0
    token1_rewards: int = 0
    token0_per_share_paid: int = 0
    token1_per_share_paid: int = 0


class RewardLedger:
    def __init__(
        self,
        pool: Pool,
        shares: ShareLedger,
        owner: PoolCallbackReceiver,
        events: EventLog,
        protocol_fee_ppm: int,
    ):
        self.pool = pool
        self.shares = shares
        self.owner = owner
        self.events = events
        self.protocol_fee_ppm = protocol_fee_ppm
        self.users: dict[str, UserAccount] = {}
        self.token0_per_share_stored = 0
        self.token1_per_share_stored = 0
        self.accrued_protocol_fees0 = 0
        self.accrued_protocol_fees1 = 0
        self.users_fees0 = 0
        self.users_fees1 = 0
        self.users_fees_paid0 = 0
        self.users_fees_paid1 = 0
        self.logger = logger.bind(vault=events.source, component="rewards")

    def poke(self, tick_lower: int, tick_upper: int) -> bool:
        """Make the pool credit fee growth to the position. False if there is no position."""
        info = self.pool.position(self.owner.address, tick_lower, tick_upper)
        if info.liquidity == 0:
            return False
        self.pool.burn(self.owner, tick_lower, tick_upper, 0)
        return True

    def harvest(self, tick_lower: int, tick_upper: int) -> tuple[int, int]:
        """Collect everything the position is owed; returns the users' share."""
        collected0, collected1 = self.pool.collect(
            self.owner, self.owner.address, tick_lower, tick_upper, MAX_UINT128, MAX_UINT128
        )
        if collected0 == 0 and collected1 == 0:
            return 0, 0

        protocol0 = collected0 * self.protocol_fee_ppm // GLOBAL_DIVISOR
        protocol1 = collected1 * self.protocol_fee_ppm // GLOBAL_DIVISOR
        user0 = collected0 - protocol0
        user1 = collected1 - protocol1
        self.accrued_protocol_fees0 += protocol0
        self.accrued_protocol_fees1 += protocol1
        self.users_fees0 += user0
        self.users_fees1 += user1
        self.events.emit(
            CollectFees(
                vault=self.events.source,
                fees0=collected0,
                fees1=collected1,
                protocol_fees0=protocol0,
                protocol_fees1=protocol1,
                users_fees0=user0,
                users_fees1=user1,
            )
        )
        return user0, user1

    def accrue(self, user0: int, user1: int) -> None:
        total_supply = self.shares.total_supply
        if total_supply == 0:
            # no holders: fees stay in the vault without moving the accumulators
            return
        self.token0_per_share_stored += user0 * PRECISION // total_supply
        self.token1_per_share_stored += user1 * PRECISION // total_supply

    def settle(self, account: str | None) -> None:
        if account is None:
            return
        account = ensure_address(account)
        user = self.users.setdefault(account, UserAccount())
        balance = self.shares.balance_of(account)
        owed0 = balance * (self.token0_per_share_stored - user.token0_per_share_paid) // PRECISION
        owed1 = balance * (self.token1_per_share_stored - user.token1_per_share_paid) // PRECISION
        user.token0_rewards += owed0
        user.token1_rewards += owed1
        user.token0_per_share_paid = self.token0_per_share_stored
        user.token1_per_share_paid = self.token1_per_share_stored
        if owed0 or owed1:
            self.logger.debug(f"settled {account}: +({owed0}, {owed1})")

    def update(self, account: str | None, tick_lower: int, tick_upper: int) -> None:
        if self.poke(tick_lower, tick_upper):
            user0, user1 = self.harvest(tick_lower, tick_upper)
            self.accrue(user0, user1)
        self.settle(account)

    def earned(self, account: str) -> tuple[int, int]:
        user = self.users.get(ensure_address(account), UserAccount())
        balance = self.shares.balance_of(account)
        return (
            balance * (self.token0_per_share_stored - user.token0_per_share_paid) // PRECISION
            + user.token0_rewards,
            balance * (self.token1_per_share_stored - user.token1_per_share_paid) // PRECISION
            + user.token1_rewards,
        )

    def user(self, account: str) -> UserAccount:
        return replace(self.users.get(ensure_address(account), UserAccount()))

    def check_claim(self, account: str, amount0: int, amount1: int) -> None:
        user = self.users.get(ensure_address(account), UserAccount())
        if amount0 > user.token0_rewards:
            raise InsufficientFeesError("token0", amount0, user.token0_rewards)
        if amount1 > user.token1_rewards:
            raise InsufficientFeesError("token1", amount1, user.token1_rewards)

    def pay_out(self, account: str, amount0: int, amount1: int) -> None:
        self.check_claim(account, amount0, amount1)
        user = self.users.setdefault(ensure_address(account), UserAccount())
        user.token0_rewards -= amount0
        user.token1_rewards -= amount1
        self.users_fees_paid0 += amount0
        self.users_fees_paid1 += amount1

    def check_protocol_claim(self, amount0: int, amount1: int) -> None:
        if amount0 > self.accrued_protocol_fees0:
            raise InsufficientFeesError("token0", amount0, self.accrued_protocol_fees0)
        if amount1 > self.accrued_protocol_fees1:
            raise InsufficientFeesError("token1", amount1, self.accrued_protocol_fees1)

    def take_protocol_fees(self, amount0: int, amount1: int) -> None:
        self.check_protocol_claim(amount0, amount1)
        self.accrued_protocol_fees0 -= amount0
        self.accrued_protocol_fees1 -= amount1
