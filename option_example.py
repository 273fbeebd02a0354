"""
option_example.py - Step-by-Step Covered Option Example

Demonstrates the complete lifecycle of a covered option contract:
1. Setup: Create ledger, register denominations, fund wallets
2. Creation: Creator locks collateral and names the counter offer
3. Transfer: Ownership moves to a buyer
4. Exercise: The owner pays the counter offer and receives the collateral
5. Expiry: A second option expires unexercised and is burned by the keeper

Run this file directly:
    python option_example.py
"""

from decimal import Decimal
from optionledger import (
    # Core
    Ledger, Move, native_token, coins, build_transaction, SYSTEM_WALLET,

    # Contract
    ContractHost, InstantiateMsg, Transfer, Finalize,
    FundsMismatch, NotYetExpired,

    # Engine
    LifecycleEngine,
)


def show_balances(ledger: Ledger, wallets) -> None:
    for wallet in wallets:
        btc = ledger.get_balance(wallet, "BTC")
        eth = ledger.get_balance(wallet, "ETH")
        print(f"  {wallet:<10} {btc.normalize()} BTC, {eth.normalize()} ETH")


def main():
    print("=" * 70)
    print("COVERED OPTION - STEP BY STEP")
    print("=" * 70)

    # =========================================================================
    # STEP 1: SETUP
    # =========================================================================
    print("\n" + "=" * 70)
    print("STEP 1: SETUP")
    print("=" * 70)
    print("""
    We create a ledger at block height 12,345 and register:
    - BTC (collateral)
    - ETH (counter offer)
    - Two wallets: Alice (creator) and Bob (buyer)
    """)

    ledger = Ledger(name="option_demo", initial_height=12_345, verbose=True)

    print("--- Registering Denominations ---")
    ledger.register_unit(native_token("BTC", "Bitcoin"))
    ledger.register_unit(native_token("ETH", "Ether"))

    alice = ledger.register_wallet("alice")
    bob = ledger.register_wallet("bob")

    print("\n--- Funding Wallets ---")
    ledger.execute(build_transaction(ledger, [
        Move(Decimal("2"), "BTC", SYSTEM_WALLET, alice, "fund_alice"),
        Move(Decimal("100"), "ETH", SYSTEM_WALLET, bob, "fund_bob"),
    ]))
    show_balances(ledger, [alice, bob])

    # =========================================================================
    # STEP 2: CREATE THE OPTION
    # =========================================================================
    print("\n" + "=" * 70)
    print("STEP 2: CREATE THE OPTION")
    print("=" * 70)
    print("""
    Alice locks 1 BTC and asks 40 ETH for it, exercisable until block 100,000.
    The collateral moves into the contract wallet in the same transaction
    that stores the option record.
    """)

    option = ContractHost(ledger, "option_1")
    option.instantiate(alice, coins(1, "BTC"),
                       InstantiateMsg(counter_offer=coins(40, "ETH"), expires=100_000))
    print(f"Config: {option.query('config')}")

    # =========================================================================
    # STEP 3: TRANSFER
    # =========================================================================
    print("\n" + "=" * 70)
    print("STEP 3: TRANSFER OWNERSHIP")
    print("=" * 70)

    option.execute(alice, (), {"transfer": {"recipient": bob}})
    print(f"Owner is now: {option.query('config')['owner']}")

    # =========================================================================
    # STEP 4: EXERCISE
    # =========================================================================
    print("\n" + "=" * 70)
    print("STEP 4: EXERCISE")
    print("=" * 70)

    print("--- Underpaying is refused, nothing moves ---")
    try:
        option.execute(bob, coins(39, "ETH"), Finalize())
    except FundsMismatch as e:
        print(f"Refused: {e}")

    ledger.advance_height(50_000)
    print("\n--- Paying exactly 40 ETH at height 50,000 ---")
    option.execute(bob, coins(40, "ETH"), Finalize())
    show_balances(ledger, [alice, bob, "option_1"])

    # =========================================================================
    # STEP 5: EXPIRY
    # =========================================================================
    print("\n" + "=" * 70)
    print("STEP 5: EXPIRY AND BURN")
    print("=" * 70)
    print("""
    Alice writes a second option with the remaining BTC. Nobody exercises it;
    once the expiry height is reached the lifecycle engine burns it and the
    collateral returns to Alice.
    """)

    second = ContractHost(ledger, "option_2")
    second.instantiate(alice, coins(1, "BTC"),
                       InstantiateMsg(counter_offer=coins(40, "ETH"), expires=60_000))
    second.execute(alice, (), Transfer(bob))

    try:
        second.execute(bob, (), "burn")
    except NotYetExpired as e:
        print(f"Too early: {e}")

    engine = LifecycleEngine(ledger)
    engine.register("option_2")
    txs = engine.run([55_000, 60_000, 65_000])
    print(f"Lifecycle transactions executed: {len(txs)}")
    show_balances(ledger, [alice, bob, "option_2"])

    result = ledger.verify_double_entry()
    print(f"\nConservation holds: {result['valid']}")


if __name__ == "__main__":
    main()
