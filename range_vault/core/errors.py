from __future__ import annotations


class VaultError(RuntimeError):
    """Base class for every failure raised by the vault engine.

    All of these are synchronous aborts: nothing is retried by the engine.
    """


class PreconditionError(VaultError):
    pass


class AlreadyInitializedError(PreconditionError):
    def __init__(self) -> None:
        super().__init__("Vault already initialized")


class NotInitializedError(PreconditionError):
    def __init__(self) -> None:
        super().__init__("Vault not initialized")


class InsufficientFeesError(PreconditionError):
    def __init__(self, token: str, requested: int, available: int):
        self.token = token
        self.requested = requested
        self.available = available
        super().__init__(
            f"Requested {requested} {token} fees, only {available} available"
        )


class InsufficientLiquidityError(PreconditionError):
    pass


class SupplyCapExceededError(PreconditionError):
    def __init__(self, total_supply: int, max_total_supply: int):
        self.total_supply = total_supply
        self.max_total_supply = max_total_supply
        super().__init__(
            f"Total supply {total_supply} would exceed cap {max_total_supply}"
        )


class UnauthorizedError(VaultError):
    pass


class UnauthorizedCallbackError(UnauthorizedError):
    pass


class RangeValidationError(VaultError):
    pass


class PriceDeviationError(VaultError):
    def __init__(self, current_tick: int, twap_tick: int, max_deviation: int):
        self.current_tick = current_tick
        self.twap_tick = twap_tick
        self.max_deviation = max_deviation
        super().__init__(
            f"Price deviation {abs(current_tick - twap_tick)} ticks "
            f"(tick={current_tick}, twap={twap_tick}) exceeds {max_deviation}"
        )


class ReentrancyError(VaultError):
    pass


class ArithmeticOverflowError(VaultError, OverflowError):
    pass


class InsufficientBalanceError(VaultError):
    def __init__(self, token: str, account: str, requested: int, available: int):
        self.token = token
        self.account = account
        self.requested = requested
        self.available = available
        super().__init__(
            f"{account} holds {available} {token}, needs {requested}"
        )


class InsufficientAllowanceError(VaultError):
    pass


class PoolError(VaultError):
    pass
