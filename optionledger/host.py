"""
host.py - Invocation Host for a Single Contract Instance

ContractHost binds one contract address on one Ledger. Each call is one
invocation: the sender and attached funds are wrapped in a MessageInfo, the
message is decoded if it arrived in wire form, the pure contract function
builds a PendingTransaction against the ledger (as a read-only view) and the
ledger applies it atomically.

A ContractError raised by the contract aborts the invocation before anything
is submitted. A ledger rejection (e.g., the sender cannot cover the attached
funds) surfaces as TransactionRejected. In both cases balances and storage
are exactly as before the call.
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from .core import (
    PendingTransaction, Transaction, ExecuteResult,
    LedgerError, TransactionRejected, Unauthorized,
)
from .ledger import Ledger
from .msg import (
    MessageInfo, InstantiateMsg, ExecuteMsg, QueryMsg,
    parse_instantiate_msg, parse_execute_msg, parse_query_msg,
)
from .contracts import covered_option


class ContractHost:
    """
    Dispatches invocations against one covered option contract.

    Example:
        host = ContractHost(ledger, "option_1")
        host.instantiate("alice", coins(1, "BTC"),
                         {"counter_offer": [{"amount": "40", "denom": "ETH"}], "expires": 100_000})
        host.execute("alice", (), {"transfer": {"recipient": "bob"}})
        host.query("config")
    """

    def __init__(self, ledger: Ledger, contract: str):
        """
        Args:
            ledger: Ledger holding balances, storage and the block height
            contract: Contract address; registered as a wallet if needed
        """
        self.ledger = ledger
        self.contract = contract
        if not ledger.is_registered(contract):
            ledger.register_wallet(contract)

    @property
    def instantiated(self) -> bool:
        return self.ledger.get_storage(self.contract, covered_option.CONTRACT_INFO_KEY) is not None

    def instantiate(
        self,
        sender: str,
        funds: Optional[Iterable[Any]],
        msg: Union[InstantiateMsg, Mapping[str, Any]],
    ) -> Transaction:
        """
        Create the option with funds as collateral.

        Raises:
            LedgerError: If this contract address was already instantiated
            Unauthorized: If the sender is the contract itself
            Expired: If the requested expiry is not above the current height
            TransactionRejected: If the ledger rejects the transaction
        """
        if self.instantiated:
            raise LedgerError(f"Contract {self.contract} already instantiated")
        if not isinstance(msg, InstantiateMsg):
            msg = parse_instantiate_msg(msg)
        info = self._info(sender, funds)
        return self._commit(covered_option.instantiate(self.ledger, self.contract, info, msg))

    def execute(
        self,
        sender: str,
        funds: Optional[Iterable[Any]],
        msg: Union[ExecuteMsg, str, Mapping[str, Any]],
    ) -> Transaction:
        """
        Run Transfer, Finalize or Burn.

        Raises:
            ContractError: On any constraint violation, including a sender equal
                to the contract address (nothing is applied)
            TransactionRejected: If the ledger rejects the transaction
        """
        if isinstance(msg, (str, Mapping)):
            msg = parse_execute_msg(msg)
        info = self._info(sender, funds)
        return self._commit(covered_option.execute(self.ledger, self.contract, info, msg))

    def query(self, msg: Union[QueryMsg, str, Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Read-only query.

        Raises:
            NotFound: If the option is not active
        """
        if isinstance(msg, (str, Mapping)):
            msg = parse_query_msg(msg)
        return covered_option.query(self.ledger, self.contract, msg)

    def _info(self, sender: str, funds: Optional[Iterable[Any]]) -> MessageInfo:
        # A contract cannot invoke itself: attached funds would move contract -> contract
        if sender == self.contract:
            raise Unauthorized(sender)
        return MessageInfo(sender=sender, funds=funds or ())

    def _commit(self, pending: PendingTransaction) -> Transaction:
        result = self.ledger.execute(pending)
        if result == ExecuteResult.REJECTED:
            raise TransactionRejected(self.ledger.last_rejection or "unknown reason")
        return self.ledger.transaction_log[-1]
