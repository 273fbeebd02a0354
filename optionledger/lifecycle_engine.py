"""
lifecycle_engine.py - Lifecycle Engine

Advances the ledger's block height and polls registered contracts so that
height-driven events (burning expired options) fire without a user call.

Execution order each step():
1. Advance ledger height
2. Poll every registered contract in sorted address order
3. Repeat until no contract produces a transaction (cascading effects)

The transaction log is the audit trail - no separate event status tracking needed.
"""

from __future__ import annotations
from typing import Callable, Dict, Iterable, List, Optional

from .core import (
    PendingTransaction, Transaction,
    ExecuteResult, LedgerError, SYSTEM_WALLET,
)
from .ledger import Ledger
from .contracts.covered_option import option_contract

ContractPoller = Callable[..., PendingTransaction]


class LifecycleEngine:
    """
    Block-driven contract polling on top of a Ledger.

    Example:
        engine = LifecycleEngine(ledger)
        engine.register("option_1")
        engine.step(100_000)   # burns option_1 if it has expired
    """

    def __init__(
        self,
        ledger: Ledger,
        contracts: Optional[Dict[str, ContractPoller]] = None,
        keeper: str = SYSTEM_WALLET,
    ):
        """
        Args:
            ledger: The ledger to operate on
            contracts: Contract address -> poller (callable or object with check_lifecycle)
            keeper: Sender used for keeper-triggered invocations
        """
        self.ledger = ledger
        self.contracts: Dict[str, ContractPoller] = contracts or {}
        self.keeper = keeper

        # Safety limit for cascading events
        self.max_passes = 10
        self.verbose = ledger.verbose

    def register(self, contract: str, poller: ContractPoller = option_contract) -> None:
        """Register a contract address for polling (covered option by default)."""
        if not self.ledger.is_registered(contract):
            raise LedgerError(f"Contract {contract} not registered with ledger {self.ledger.name}")
        self.contracts[contract] = poller

    def step(self, height: int) -> List[Transaction]:
        """
        Advance to height and execute everything that became due.

        Returns:
            List of executed transactions
        """
        self.ledger.advance_height(height)
        executed: List[Transaction] = []

        for _ in range(self.max_passes):
            pass_executed = self._poll_contracts(height)
            executed.extend(pass_executed)
            if not pass_executed:
                break

        return executed

    def _poll_contracts(self, height: int) -> List[Transaction]:
        executed: List[Transaction] = []

        for contract in sorted(self.contracts):
            poller = self.contracts[contract]

            if hasattr(poller, 'check_lifecycle'):
                pending = poller.check_lifecycle(self.ledger, contract, height, self.keeper)
            else:
                pending = poller(self.ledger, contract, height, self.keeper)

            if not isinstance(pending, PendingTransaction):
                raise LedgerError(
                    f"Contract {contract} must return PendingTransaction, got {type(pending)}"
                )

            if pending.is_empty():
                continue

            if self.verbose:
                print(f"[LIFECYCLE] {contract}: {pending.attribute('action')} at height {height}")

            if self.ledger.execute(pending) == ExecuteResult.REJECTED:
                raise LedgerError(
                    f"Lifecycle event failed for {contract}: {self.ledger.last_rejection}"
                )

            executed.append(self.ledger.transaction_log[-1])

        return executed

    def run(self, heights: Iterable[int]) -> List[Transaction]:
        """Step through a sequence of heights, returning all executed transactions."""
        all_transactions: List[Transaction] = []
        for height in heights:
            all_transactions.extend(self.step(height))
        return all_transactions
