from __future__ import annotations

import pytest

from range_vault.adapters.token_adapter.ledger import ERC20Token, ShareLedger
from range_vault.core.constants import MAX_UINT256
from range_vault.core.errors import InsufficientAllowanceError, InsufficientBalanceError
from range_vault.core.utils.addresses import derive_address

ALICE = derive_address("alice")
BOB = derive_address("bob")
SPENDER = derive_address("spender")


@pytest.fixture
def token() -> ERC20Token:
    token = ERC20Token("USDC", 6)
    token.mint(ALICE, 1_000)
    return token


def test_address_is_deterministic():
    assert ERC20Token("USDC", 6).address == ERC20Token("USDC", 6).address
    assert ERC20Token("USDC", 6).address != ERC20Token("DAI").address


def test_mint_and_transfer(token):
    token.transfer(ALICE, BOB, 400)
    assert token.balance_of(ALICE) == 600
    assert token.balance_of(BOB) == 400
    assert token.total_supply == 1_000


def test_transfer_accepts_lowercase_addresses(token):
    token.transfer(ALICE.lower(), BOB.lower(), 1)
    assert token.balance_of(BOB) == 1


def test_transfer_over_balance(token):
    with pytest.raises(InsufficientBalanceError) as excinfo:
        token.transfer(ALICE, BOB, 1_001)
    assert excinfo.value.available == 1_000
    assert token.balance_of(ALICE) == 1_000


def test_transfer_from_spends_allowance(token):
    token.approve(ALICE, SPENDER, 300)
    token.transfer_from(SPENDER, ALICE, BOB, 200)
    assert token.allowance(ALICE, SPENDER) == 100
    with pytest.raises(InsufficientAllowanceError):
        token.transfer_from(SPENDER, ALICE, BOB, 101)


def test_infinite_allowance_is_not_decremented(token):
    token.approve(ALICE, SPENDER, MAX_UINT256)
    token.transfer_from(SPENDER, ALICE, BOB, 500)
    assert token.allowance(ALICE, SPENDER) == MAX_UINT256


def test_burn(token):
    token.burn(ALICE, 250)
    assert token.total_supply == 750
    with pytest.raises(InsufficientBalanceError):
        token.burn(ALICE, 751)


@pytest.mark.parametrize("amount", [-1, 1.5, True])
def test_rejects_non_integer_amounts(token, amount):
    with pytest.raises(ValueError):
        token.transfer(ALICE, BOB, amount)


def test_rejects_invalid_address(token):
    with pytest.raises(ValueError):
        token.balance_of("not-an-address")


def test_share_ledger_hook_runs_before_transfers():
    seen: list[tuple[str, str, int]] = []
    shares = ShareLedger("RV", before_transfer=lambda s, r, a: seen.append((s, r, a)))
    shares.mint(ALICE, 10)
    shares.approve(ALICE, SPENDER, 10)

    shares.transfer(ALICE, BOB, 3)
    shares.transfer_from(SPENDER, ALICE, BOB, 2)
    shares.burn(BOB, 1)

    assert seen == [(ALICE, BOB, 3), (ALICE, BOB, 2)]
    assert shares.decimals == 18
    assert shares.balance_of(BOB) == 4


def test_share_ledger_hook_failure_blocks_transfer():
    def refuse(sender, recipient, amount):
        raise RuntimeError("blocked")

    shares = ShareLedger("RV", before_transfer=refuse)
    shares.mint(ALICE, 10)
    with pytest.raises(RuntimeError):
        shares.transfer(ALICE, BOB, 1)
    assert shares.balance_of(ALICE) == 10
