"""
conftest.py - Shared pytest fixtures for optionledger tests

Provides common fixtures used across unit and conformance tests:
- A funded chain ledger with BTC and ETH denominations
- A contract host bound to an uninstantiated option address
- An active option (1 BTC collateral, 40 ETH counter offer, expires 100_000)
"""

import pytest
from decimal import Decimal

from optionledger import (
    Ledger, Move, ContractHost, InstantiateMsg,
    native_token, coins, build_transaction,
    SYSTEM_WALLET,
)


START_HEIGHT = 12_345
EXPIRES = 100_000
OPTION = "option"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def fund(ledger: Ledger, wallet: str, amount, denom: str) -> None:
    """Issue funds to a wallet from the system wallet."""
    tx = build_transaction(ledger, [
        Move(Decimal(str(amount)), denom, SYSTEM_WALLET, wallet, f"mint_{wallet}_{denom}")
    ])
    ledger.execute(tx)


def balances_snapshot(ledger: Ledger) -> dict:
    """All (wallet, unit) balances, for before/after comparisons."""
    return {
        (w, u): ledger.get_balance(w, u)
        for w in sorted(ledger.list_wallets())
        for u in ledger.list_units()
    }


def storage_snapshot(ledger: Ledger) -> dict:
    return {c: dict(slots) for c, slots in ledger.storage.items()}


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def chain():
    """Quiet ledger at START_HEIGHT with funded creator, someone and anyone."""
    ledger = Ledger("test", initial_height=START_HEIGHT, verbose=False)
    ledger.register_unit(native_token("BTC", "Bitcoin"))
    ledger.register_unit(native_token("ETH", "Ether"))
    for wallet in ("creator", "someone", "anyone"):
        ledger.register_wallet(wallet)

    fund(ledger, "creator", 10, "BTC")
    fund(ledger, "someone", 100, "ETH")
    fund(ledger, "anyone", 100, "ETH")
    return ledger


@pytest.fixture
def host(chain):
    """Contract host for an option that has not been instantiated yet."""
    return ContractHost(chain, OPTION)


@pytest.fixture
def active_option(host):
    """Option created by 'creator': 1 BTC collateral for 40 ETH, expires at EXPIRES."""
    host.instantiate(
        "creator",
        coins(1, "BTC"),
        InstantiateMsg(counter_offer=coins(40, "ETH"), expires=EXPIRES),
    )
    return host
