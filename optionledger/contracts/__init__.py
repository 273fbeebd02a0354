"""
Contracts module - Pure contract functions executed by the ledger host.

All contract entry points and related helpers are re-exported here for convenience.
"""

from .covered_option import (
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

__all__ = [
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
]
