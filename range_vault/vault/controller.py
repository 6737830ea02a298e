"""Vault orchestration: one concentrated-liquidity position shared by many depositors.

Every mutating entry point runs under the re-entrancy guard, checks its
preconditions, runs the spot-vs-TWAP deviation guard, settles rewards for the
affected account (or for nobody, on repositioning) and only then touches the
pool. Tokens the vault holds outside the position (harvested fees, rounding
dust) are its idle balances; repositioning reinvests all of them.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from range_vault.adapters.pool_adapter.base import Pool
from range_vault.adapters.token_adapter.ledger import ERC20Token, ShareLedger
from range_vault.core.config import get_governance_address
from range_vault.core.constants import PRECISION, SHARE_DECIMALS
from range_vault.core.errors import (
    AlreadyInitializedError,
    InsufficientLiquidityError,
    NotInitializedError,
    PreconditionError,
    RangeValidationError,
    SupplyCapExceededError,
    UnauthorizedCallbackError,
)
from range_vault.core.utils.addresses import derive_address, ensure_address
from range_vault.core.utils.fixed_point import price_from_sqrt
from range_vault.core.utils.uniswap_v3_math import (
    amounts_for_liq_inrange,
    liq_for_amounts,
    liq_to_withdraw,
    sqrt_price_x96_from_tick,
)
from range_vault.vault.events import (
    Deposit,
    EventLog,
    Initialized,
    ProtocolFeesPaid,
    Rerange,
    RewardPaid,
    Snapshot,
    Withdraw,
)
from range_vault.vault.governance import Governance
from range_vault.vault.guards import check_deviation, nonreentrant
from range_vault.vault.imbalance import plan_swap
from range_vault.vault.params import StrategyParams
from range_vault.vault.range_selector import (
    base_range,
    range_from_balances,
    threshold_for,
)
from range_vault.vault.rewards import RewardLedger, UserAccount


@dataclass(frozen=True)
class MintCallbackData:
    payer: str


@dataclass(frozen=True)
class SwapCallbackData:
    zero_for_one: bool


@dataclass(frozen=True)
class VaultState:
    tick_lower: int
    tick_upper: int
    universal_multiplier: int
    max_total_supply: int
    total_supply: int
    liquidity: int
    accrued_protocol_fees0: int
    accrued_protocol_fees1: int
    users_fees0: int
    users_fees1: int
    token0_per_share_stored: int
    token1_per_share_stored: int
    finalized: bool


def calc_shares(
    amount0: int, amount1: int, universal_multiplier: int, decimals1: int
) -> int:
    """Shares for a deposit, valued in token1 at the price fixed on init, 18 decimals."""
    if decimals1 > SHARE_DECIMALS:
        raise ValueError(f"token1 decimals {decimals1} exceed share decimals")
    return amount0 * universal_multiplier // 10**decimals1 + amount1 * 10 ** (
        SHARE_DECIMALS - decimals1
    )


class VaultController:
    def __init__(
        self,
        pool: Pool,
        *,
        governance: str | Governance | None = None,
        params: StrategyParams | None = None,
        address: str | None = None,
        name: str = "range-vault",
    ):
        if pool.token1.decimals > SHARE_DECIMALS:
            raise ValueError(
                f"{pool.token1.symbol} has {pool.token1.decimals} decimals, max {SHARE_DECIMALS}"
            )
        self.name = name
        self.pool = pool
        self.token0: ERC20Token = pool.token0
        self.token1: ERC20Token = pool.token1
        self.tick_spacing = pool.tick_spacing
        self.address = (
            ensure_address(address) if address else derive_address(f"vault:{name}:{pool.address}")
        )
        self.logger = logger.bind(vault=name, address=self.address)
        self.events = EventLog(self.address)
        if governance is None:
            governance = get_governance_address()
            if governance is None:
                raise ValueError("no governance given and none configured (vault.governance)")
        if isinstance(governance, Governance):
            self.governance = governance
            if self.governance.events is None:
                self.governance.events = self.events
        else:
            self.governance = Governance(governance, events=self.events)
        self.params = params or StrategyParams.from_config()
        self.shares = ShareLedger(
            f"RV-{self.token0.symbol}-{self.token1.symbol}",
            address=derive_address(f"shares:{self.address}"),
            before_transfer=self._before_share_transfer,
        )
        self.rewards = RewardLedger(
            pool, self.shares, self, self.events, self.params.protocol_fee_ppm
        )
        self.tick_lower = 0
        self.tick_upper = 0
        self.universal_multiplier = 0
        self.finalized = False
        self._entered = False

    # ── lifecycle ────────────────────────────────────────────────────────────

    @nonreentrant
    def init(self, caller: str) -> None:
        self.governance.only_governance(caller)
        if self.finalized:
            raise AlreadyInitializedError()
        tick_lower, tick_upper = base_range(
            self.pool.current_tick(), self._threshold(), self.tick_spacing
        )
        self.universal_multiplier = price_from_sqrt(self.pool.current_sqrt_price(), PRECISION)
        self.tick_lower, self.tick_upper = tick_lower, tick_upper
        self.finalized = True
        self.events.emit(
            Initialized(
                vault=self.address,
                tick_lower=tick_lower,
                tick_upper=tick_upper,
                universal_multiplier=self.universal_multiplier,
            )
        )

    # ── depositor operations ─────────────────────────────────────────────────

    @nonreentrant
    def deposit(
        self, sender: str, amount0_desired: int, amount1_desired: int, to: str | None = None
    ) -> tuple[int, int, int]:
        """Add liquidity from ``sender``; shares go to ``to``. Returns (shares, amount0, amount1)."""
        self._require_active()
        if amount0_desired <= 0 or amount1_desired <= 0:
            raise PreconditionError("deposit amounts must both be positive")
        sender = ensure_address(sender)
        to = ensure_address(to) if to else sender
        self._check_deviation()

        sqrt_p = self.pool.current_sqrt_price()
        sqrt_a, sqrt_b = self._range_sqrt_prices()
        liquidity = liq_for_amounts(sqrt_p, sqrt_a, sqrt_b, amount0_desired, amount1_desired)
        if liquidity == 0:
            raise PreconditionError("deposit too small to mint any liquidity")
        # the pool charges round-up amounts; shares on those bound what gets minted
        max0, max1 = amounts_for_liq_inrange(sqrt_p, sqrt_a, sqrt_b, liquidity, round_up=True)
        projected = calc_shares(max0, max1, self.universal_multiplier, self.token1.decimals)
        if projected == 0:
            raise PreconditionError("deposit too small to mint any shares")
        if self.shares.total_supply + projected > self.params.max_total_supply:
            raise SupplyCapExceededError(
                self.shares.total_supply + projected, self.params.max_total_supply
            )

        self.rewards.update(to, self.tick_lower, self.tick_upper)
        amount0, amount1 = self.pool.mint(
            self, self.tick_lower, self.tick_upper, liquidity, MintCallbackData(payer=sender)
        )
        shares = calc_shares(amount0, amount1, self.universal_multiplier, self.token1.decimals)
        self.shares.mint(to, shares)
        self.events.emit(
            Deposit(
                vault=self.address,
                sender=sender,
                to=to,
                shares=shares,
                amount0=amount0,
                amount1=amount1,
            )
        )
        return shares, amount0, amount1

    @nonreentrant
    def withdraw(self, sender: str, shares: int, to: str | None = None) -> tuple[int, int]:
        """Burn ``shares`` of ``sender`` for the matching slice of the position."""
        self._require_active()
        if shares <= 0:
            raise PreconditionError("shares must be positive")
        sender = ensure_address(sender)
        to = ensure_address(to) if to else sender
        balance = self.shares.balance_of(sender)
        if shares > balance:
            raise PreconditionError(f"{sender} holds {balance} shares, cannot withdraw {shares}")
        self._check_deviation()

        self.rewards.update(sender, self.tick_lower, self.tick_upper)
        liquidity = self.position_liquidity() * shares // self.shares.total_supply
        amount0 = amount1 = 0
        if liquidity > 0:
            amount0, amount1 = self.pool.burn(self, self.tick_lower, self.tick_upper, liquidity)
            self.pool.collect(self, to, self.tick_lower, self.tick_upper, amount0, amount1)
        self.shares.burn(sender, shares)
        self.events.emit(
            Withdraw(
                vault=self.address,
                sender=sender,
                to=to,
                shares=shares,
                amount0=amount0,
                amount1=amount1,
            )
        )
        return amount0, amount1

    @nonreentrant
    def collect_fees(self, sender: str, amount0: int, amount1: int) -> tuple[int, int]:
        """Pay out claimable rewards of ``sender``."""
        self._require_active()
        self._check_claim_amounts(amount0, amount1)
        sender = ensure_address(sender)
        self._check_deviation()

        self.rewards.update(sender, self.tick_lower, self.tick_upper)
        self.rewards.check_claim(sender, amount0, amount1)
        self._ensure_idle(amount0, amount1)
        self.rewards.pay_out(sender, amount0, amount1)
        self._send(sender, amount0, amount1)
        self.events.emit(
            RewardPaid(vault=self.address, account=sender, amount0=amount0, amount1=amount1)
        )
        return amount0, amount1

    def transfer(self, sender: str, recipient: str, shares: int) -> None:
        self.shares.transfer(sender, recipient, shares)

    def transfer_from(self, spender: str, owner: str, recipient: str, shares: int) -> None:
        self.shares.transfer_from(spender, owner, recipient, shares)

    # ── repositioning ────────────────────────────────────────────────────────

    @nonreentrant
    def rerange(self, caller: str) -> tuple[int, int]:
        """Re-center the position on the price implied by the vault's own balances."""
        self._require_active()
        caller = ensure_address(caller)
        self._check_deviation()

        self.rewards.update(None, self.tick_lower, self.tick_upper)
        # validate the destination before pulling liquidity
        in_position0, in_position1 = self.position_amounts()
        idle0, idle1 = self.idle_balances()
        range_from_balances(
            idle0 + in_position0, idle1 + in_position1, self._threshold(), self.tick_spacing
        )

        self._burn_all()
        balance0, balance1 = self.idle_balances()
        self.events.emit(Snapshot(vault=self.address, balance0=balance0, balance1=balance1))
        tick_lower, tick_upper = range_from_balances(
            balance0, balance1, self._threshold(), self.tick_spacing
        )
        return self._reposition(caller, tick_lower, tick_upper)

    @nonreentrant
    def rebalance(self, caller: str) -> tuple[int, int]:
        """Re-center on spot, swapping half of the excess token to restore the ratio."""
        self.governance.only_governance(caller)
        self._require_active()
        caller = ensure_address(caller)
        self._check_deviation()

        self.rewards.update(None, self.tick_lower, self.tick_upper)
        threshold = self._threshold()
        base_lower, base_upper = base_range(
            self.pool.current_tick(), threshold, self.tick_spacing
        )
        self._burn_all()

        balance0, balance1 = self.idle_balances()
        self.events.emit(Snapshot(vault=self.address, balance0=balance0, balance1=balance1))
        sqrt_p = self.pool.current_sqrt_price()
        sqrt_a = sqrt_price_x96_from_tick(base_lower)
        sqrt_b = sqrt_price_x96_from_tick(base_upper)
        liquidity = liq_for_amounts(sqrt_p, sqrt_a, sqrt_b, balance0, balance1)
        achievable0, achievable1 = amounts_for_liq_inrange(sqrt_p, sqrt_a, sqrt_b, liquidity)
        plan = plan_swap(
            balance0, balance1, achievable0, achievable1, sqrt_p, self.params.price_impact_ppm
        )
        if not plan.is_noop:
            self.logger.info(
                f"Rebalance swap zero_for_one={plan.zero_for_one} amount={plan.amount}"
            )
            self.pool.swap(
                self,
                self.address,
                plan.zero_for_one,
                plan.amount,
                plan.sqrt_price_limit_x96,
                SwapCallbackData(zero_for_one=plan.zero_for_one),
            )

        balance0, balance1 = self.idle_balances()
        self.events.emit(Snapshot(vault=self.address, balance0=balance0, balance1=balance1))
        try:
            tick_lower, tick_upper = range_from_balances(
                balance0, balance1, threshold, self.tick_spacing
            )
        except RangeValidationError as exc:
            # liquidity is already out; the spot range was validated before the burn
            self.logger.warning(
                f"Rebalance falls back to spot range [{base_lower}, {base_upper}]: {exc}"
            )
            tick_lower, tick_upper = base_lower, base_upper
        return self._reposition(caller, tick_lower, tick_upper)

    # ── governance ───────────────────────────────────────────────────────────

    @nonreentrant
    def collect_protocol_fees(self, caller: str, amount0: int, amount1: int) -> tuple[int, int]:
        self.governance.only_governance(caller)
        self._require_active()
        self._check_claim_amounts(amount0, amount1)
        caller = ensure_address(caller)
        self._check_deviation()

        self.rewards.update(None, self.tick_lower, self.tick_upper)
        self.rewards.check_protocol_claim(amount0, amount1)
        self._ensure_idle(amount0, amount1)
        self.rewards.take_protocol_fees(amount0, amount1)
        self._send(caller, amount0, amount1)
        self.events.emit(
            ProtocolFeesPaid(vault=self.address, recipient=caller, amount0=amount0, amount1=amount1)
        )
        return amount0, amount1

    @nonreentrant
    def emergency_burn(self, caller: str, liquidity: int) -> tuple[int, int]:
        """Pull ``liquidity`` out of the active range into idle balances, no settlement."""
        self.governance.only_governance(caller)
        self._require_active()
        if liquidity <= 0:
            raise PreconditionError("liquidity must be positive")
        if liquidity > self.position_liquidity():
            raise InsufficientLiquidityError(
                f"position holds {self.position_liquidity()}, cannot burn {liquidity}"
            )
        amount0, amount1 = self.pool.burn(self, self.tick_lower, self.tick_upper, liquidity)
        self.pool.collect(
            self, self.address, self.tick_lower, self.tick_upper, amount0, amount1
        )
        self.logger.warning(f"Emergency burn of {liquidity} liquidity: ({amount0}, {amount1})")
        return amount0, amount1

    @nonreentrant
    def set_strategy_params(self, caller: str, params: StrategyParams) -> None:
        self.governance.only_governance(caller)
        if params.protocol_fee_ppm != self.params.protocol_fee_ppm and self.finalized:
            # fees earned so far are split at the rate in force when they accrued
            self.rewards.update(None, self.tick_lower, self.tick_upper)
        self.params = params
        self.rewards.protocol_fee_ppm = params.protocol_fee_ppm
        self.logger.info(f"Strategy params updated: {params.model_dump()}")

    def set_max_total_supply(self, caller: str, max_total_supply: int) -> None:
        self.set_strategy_params(caller, self._params_with(max_total_supply=max_total_supply))

    def set_protocol_fee(self, caller: str, protocol_fee_ppm: int) -> None:
        self.set_strategy_params(caller, self._params_with(protocol_fee_ppm=protocol_fee_ppm))

    # ── pool callbacks ───────────────────────────────────────────────────────

    def uniswap_v3_mint_callback(
        self, caller: object, amount0_owed: int, amount1_owed: int, data: MintCallbackData
    ) -> None:
        self._require_pool(caller)
        if amount0_owed > 0:
            self._pay(self.token0, data.payer, self.pool.address, amount0_owed)
        if amount1_owed > 0:
            self._pay(self.token1, data.payer, self.pool.address, amount1_owed)

    def uniswap_v3_swap_callback(
        self, caller: object, amount0_delta: int, amount1_delta: int, data: SwapCallbackData
    ) -> None:
        self._require_pool(caller)
        if data.zero_for_one and amount0_delta > 0:
            self._pay(self.token0, self.address, self.pool.address, amount0_delta)
        elif not data.zero_for_one and amount1_delta > 0:
            self._pay(self.token1, self.address, self.pool.address, amount1_delta)

    # ── views ────────────────────────────────────────────────────────────────

    def position_liquidity(self) -> int:
        return self.pool.position(self.address, self.tick_lower, self.tick_upper).liquidity

    def position_amounts(self) -> tuple[int, int]:
        """Tokens the position would return if fully burned now."""
        liquidity = self.position_liquidity()
        if liquidity == 0:
            return 0, 0
        sqrt_a, sqrt_b = self._range_sqrt_prices()
        return amounts_for_liq_inrange(self.pool.current_sqrt_price(), sqrt_a, sqrt_b, liquidity)

    def idle_balances(self) -> tuple[int, int]:
        return self.token0.balance_of(self.address), self.token1.balance_of(self.address)

    def total_amounts(self) -> tuple[int, int]:
        position0, position1 = self.position_amounts()
        idle0, idle1 = self.idle_balances()
        return position0 + idle0, position1 + idle1

    def earned(self, account: str) -> tuple[int, int]:
        return self.rewards.earned(account)

    def user(self, account: str) -> UserAccount:
        return self.rewards.user(account)

    def state(self) -> VaultState:
        r = self.rewards
        return VaultState(
            tick_lower=self.tick_lower,
            tick_upper=self.tick_upper,
            universal_multiplier=self.universal_multiplier,
            max_total_supply=self.params.max_total_supply,
            total_supply=self.shares.total_supply,
            liquidity=self.position_liquidity(),
            accrued_protocol_fees0=r.accrued_protocol_fees0,
            accrued_protocol_fees1=r.accrued_protocol_fees1,
            users_fees0=r.users_fees0,
            users_fees1=r.users_fees1,
            token0_per_share_stored=r.token0_per_share_stored,
            token1_per_share_stored=r.token1_per_share_stored,
            finalized=self.finalized,
        )

    # ── internals ────────────────────────────────────────────────────────────

    @nonreentrant
    def _before_share_transfer(self, sender: str, recipient: str, amount: int) -> None:
        if not self.finalized:
            return
        self.rewards.update(sender, self.tick_lower, self.tick_upper)
        self.rewards.settle(recipient)

    def _require_active(self) -> None:
        if not self.finalized:
            raise NotInitializedError()

    def _require_pool(self, caller: object) -> None:
        if caller is not self.pool:
            raise UnauthorizedCallbackError(f"callback from {caller!r}, expected the vault's pool")

    def _check_deviation(self) -> int:
        return check_deviation(
            self.pool, self.params.twap_duration, self.params.max_twap_deviation
        )

    def _check_claim_amounts(self, amount0: int, amount1: int) -> None:
        if amount0 < 0 or amount1 < 0:
            raise PreconditionError("claim amounts must be non-negative")
        if amount0 == 0 and amount1 == 0:
            raise PreconditionError("nothing to collect")

    def _threshold(self) -> int:
        return threshold_for(self.tick_spacing, self.params.tick_range_multiplier)

    def _range_sqrt_prices(self) -> tuple[int, int]:
        return sqrt_price_x96_from_tick(self.tick_lower), sqrt_price_x96_from_tick(self.tick_upper)

    def _params_with(self, **changes: int) -> StrategyParams:
        return StrategyParams(**{**self.params.model_dump(), **changes})

    def _burn_all(self) -> tuple[int, int]:
        liquidity = self.position_liquidity()
        if liquidity == 0:
            return 0, 0
        amount0, amount1 = self.pool.burn(self, self.tick_lower, self.tick_upper, liquidity)
        self.pool.collect(self, self.address, self.tick_lower, self.tick_upper, amount0, amount1)
        return amount0, amount1

    def _reposition(self, caller: str, tick_lower: int, tick_upper: int) -> tuple[int, int]:
        balance0, balance1 = self.idle_balances()
        sqrt_p = self.pool.current_sqrt_price()
        liquidity = liq_for_amounts(
            sqrt_p,
            sqrt_price_x96_from_tick(tick_lower),
            sqrt_price_x96_from_tick(tick_upper),
            balance0,
            balance1,
        )
        self.tick_lower, self.tick_upper = tick_lower, tick_upper
        amount0 = amount1 = 0
        if liquidity > 0:
            amount0, amount1 = self.pool.mint(
                self, tick_lower, tick_upper, liquidity, MintCallbackData(payer=self.address)
            )
        self.events.emit(
            Rerange(
                vault=self.address,
                caller=caller,
                tick_lower=tick_lower,
                tick_upper=tick_upper,
                amount0=amount0,
                amount1=amount1,
            )
        )
        return amount0, amount1

    def _ensure_idle(self, amount0: int, amount1: int) -> None:
        """Burn just enough liquidity that idle balances cover a payout."""
        idle0, idle1 = self.idle_balances()
        short0 = max(0, amount0 - idle0)
        short1 = max(0, amount1 - idle1)
        if short0 == 0 and short1 == 0:
            return
        sqrt_a, sqrt_b = self._range_sqrt_prices()
        needed = liq_to_withdraw(
            self.pool.current_sqrt_price(), sqrt_a, sqrt_b, short0, short1
        )
        available = self.position_liquidity()
        if needed is None or needed > available:
            raise InsufficientLiquidityError(
                f"cannot raise ({short0}, {short1}) from a position of {available} liquidity"
            )
        amount0_out, amount1_out = self.pool.burn(self, self.tick_lower, self.tick_upper, needed)
        self.pool.collect(
            self, self.address, self.tick_lower, self.tick_upper, amount0_out, amount1_out
        )
        self.logger.debug(f"Burned {needed} liquidity to cover payout shortfall")

    def _send(self, recipient: str, amount0: int, amount1: int) -> None:
        if amount0 > 0:
            self.token0.transfer(self.address, recipient, amount0)
        if amount1 > 0:
            self.token1.transfer(self.address, recipient, amount1)

    def _pay(self, token: ERC20Token, payer: str, recipient: str, value: int) -> None:
        if payer == self.address:
            token.transfer(self.address, recipient, value)
        else:
            token.transfer_from(self.address, payer, recipient, value)
