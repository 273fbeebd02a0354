"""
optionledger - Covered Option Contract on an In-Process Ledger

A creator locks collateral in an option contract and names a counter offer
and an expiry block height. The owner may exercise before expiry by paying
exactly the counter offer; after expiry anyone may burn the option to refund
the creator.

Usage:
    from optionledger import (
        Ledger, ContractHost, native_token, coins, Move, build_transaction, SYSTEM_WALLET,
    )

    ledger = Ledger("chain", initial_height=12_345)
    ledger.register_unit(native_token("BTC", "Bitcoin"))
    ledger.register_unit(native_token("ETH", "Ether"))
    ledger.register_wallet("alice")
    ledger.register_wallet("bob")

    # Fund wallets via SYSTEM_WALLET (proper issuance)
    ledger.execute(build_transaction(ledger, [
        Move(Decimal("1"), "BTC", SYSTEM_WALLET, "alice", "mint"),
        Move(Decimal("40"), "ETH", SYSTEM_WALLET, "bob", "mint"),
    ]))

    host = ContractHost(ledger, "option_1")
    host.instantiate("alice", coins(1, "BTC"),
                     {"counter_offer": [{"amount": "40", "denom": "ETH"}], "expires": 100_000})
    host.execute("alice", (), {"transfer": {"recipient": "bob"}})
    host.execute("bob", coins(40, "ETH"), "finalize")
"""

# Core types
from .core import (
    LedgerView,
    SmartContract,
    Coin,
    Funds,
    Move,
    StorageChange,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    empty_pending_transaction,
    bank_send,
    coins,
    normalize_funds,
    funds_equal,
    Unit,
    ExecuteResult,
    LedgerError,
    UnitNotRegistered,
    WalletNotRegistered,
    TransactionRejected,
    ContractError,
    Expired,
    NotYetExpired,
    Unauthorized,
    FundsMismatch,
    FundsNotEmpty,
    NotFound,
    native_token,
    SYSTEM_WALLET,
    UNIT_TYPE_CRYPTO,
)

# Ledger
from .ledger import Ledger

# Messages
from .msg import (
    MessageInfo,
    InstantiateMsg,
    ExecuteMsg,
    QueryMsg,
    Transfer,
    Finalize,
    Burn,
    Config,
    parse_instantiate_msg,
    parse_execute_msg,
    parse_query_msg,
    funds_to_json,
    funds_from_json,
)

# Covered option contract
from .contracts.covered_option import (
    CONTRACT_NAME,
    CONTRACT_VERSION,
    STATE_KEY,
    CONTRACT_INFO_KEY,
    OptionState,
    instantiate,
    transfer,
    finalize,
    burn,
    query_config,
    execute,
    query,
    is_active,
    blocks_until_expiry,
    option_contract,
)

# Host and engine
from .host import ContractHost
from .lifecycle_engine import LifecycleEngine

__version__ = CONTRACT_VERSION

__all__ = [
    # Core
    'LedgerView',
    'SmartContract',
    'Coin',
    'Funds',
    'Move',
    'StorageChange',
    'Transaction',
    'PendingTransaction',
    'TransactionOrigin',
    'OriginType',
    'build_transaction',
    'empty_pending_transaction',
    'bank_send',
    'coins',
    'normalize_funds',
    'funds_equal',
    'Unit',
    'ExecuteResult',
    'native_token',
    'SYSTEM_WALLET',
    'UNIT_TYPE_CRYPTO',
    # Errors
    'LedgerError',
    'UnitNotRegistered',
    'WalletNotRegistered',
    'TransactionRejected',
    'ContractError',
    'Expired',
    'NotYetExpired',
    'Unauthorized',
    'FundsMismatch',
    'FundsNotEmpty',
    'NotFound',
    # Ledger
    'Ledger',
    # Messages
    'MessageInfo',
    'InstantiateMsg',
    'ExecuteMsg',
    'QueryMsg',
    'Transfer',
    'Finalize',
    'Burn',
    'Config',
    'parse_instantiate_msg',
    'parse_execute_msg',
    'parse_query_msg',
    'funds_to_json',
    'funds_from_json',
    # Covered option
    'CONTRACT_NAME',
    'CONTRACT_VERSION',
    'STATE_KEY',
    'CONTRACT_INFO_KEY',
    'OptionState',
    'instantiate',
    'transfer',
    'finalize',
    'burn',
    'query_config',
    'execute',
    'query',
    'is_active',
    'blocks_until_expiry',
    'option_contract',
    # Host and engine
    'ContractHost',
    'LifecycleEngine',
]
