"""In-process fungible token books used by the pool, the vault and tests."""

from __future__ import annotations

from collections.abc import Callable

from loguru import logger

from range_vault.core.constants import MAX_UINT256
from range_vault.core.errors import InsufficientAllowanceError, InsufficientBalanceError
from range_vault.core.utils.addresses import derive_address, ensure_address


class ERC20Token:
    def __init__(self, symbol: str, decimals: int = 18, *, address: str | None = None):
        if decimals < 0:
            raise ValueError(f"decimals must be non-negative, got {decimals}")
        self.symbol = symbol
        self.decimals = decimals
        self.address = ensure_address(address) if address else derive_address(f"token:{symbol}")
        self.total_supply = 0
        self._balances: dict[str, int] = {}
        self._allowances: dict[tuple[str, str], int] = {}
        self.logger = logger.bind(token=symbol)

    def __repr__(self) -> str:
        return f"ERC20Token({self.symbol!r}, decimals={self.decimals})"

    def balance_of(self, account: str) -> int:
        return self._balances.get(ensure_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((ensure_address(owner), ensure_address(spender)), 0)

    def approve(self, owner: str, spender: str, amount: int) -> None:
        _check_amount(amount)
        self._allowances[(ensure_address(owner), ensure_address(spender))] = amount

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        self._move(sender, recipient, amount)

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> None:
        key = (ensure_address(owner), ensure_address(spender))
        allowed = self._allowances.get(key, 0)
        if allowed < amount:
            raise InsufficientAllowanceError(
                f"{spender} may spend {allowed} {self.symbol} of {owner}, needs {amount}"
            )
        self._move(owner, recipient, amount)
        if allowed != MAX_UINT256:
            self._allowances[key] = allowed - amount

    def mint(self, to: str, amount: int) -> None:
        _check_amount(amount)
        to = ensure_address(to)
        self._balances[to] = self._balances.get(to, 0) + amount
        self.total_supply += amount

    def burn(self, account: str, amount: int) -> None:
        _check_amount(amount)
        account = ensure_address(account)
        balance = self._balances.get(account, 0)
        if balance < amount:
            raise InsufficientBalanceError(self.symbol, account, amount, balance)
        self._balances[account] = balance - amount
        self.total_supply -= amount

    def _move(self, sender: str, recipient: str, amount: int) -> None:
        _check_amount(amount)
        sender = ensure_address(sender)
        recipient = ensure_address(recipient)
        balance = self._balances.get(sender, 0)
        if balance < amount:
            raise InsufficientBalanceError(self.symbol, sender, amount, balance)
        self._balances[sender] = balance - amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount


class ShareLedger(ERC20Token):
    """Vault share token.

    ``before_transfer`` runs ahead of every holder-to-holder move so the owner
    of the ledger can settle both parties first. Mint and burn skip the hook;
    the vault settles explicitly around those.
    """

    def __init__(
        self,
        symbol: str,
        *,
        address: str | None = None,
        before_transfer: Callable[[str, str, int], None] | None = None,
    ):
        super().__init__(symbol, 18, address=address)
        self.before_transfer = before_transfer

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        if self.before_transfer is not None:
            self.before_transfer(ensure_address(sender), ensure_address(recipient), amount)
        super().transfer(sender, recipient, amount)

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> None:
        if self.before_transfer is not None:
            self.before_transfer(ensure_address(owner), ensure_address(recipient), amount)
        super().transfer_from(spender, owner, recipient, amount)


def _check_amount(amount: int) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
        raise ValueError(f"amount must be a non-negative int, got {amount!r}")
