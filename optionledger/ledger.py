"""
ledger.py - Stateful Ledger and Contract Host State

The Ledger class is the central state manager. It is the only module that
mutates state, ensuring controlled and auditable changes.

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access by contract functions
    - Executes transactions atomically (all moves and storage writes, or none)
    - Maintains wallet balances, denominations and contract storage
    - Tracks the block height and provides temporal operations (clone_at, replay)
    - Always validates and always logs
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, List, Set, Optional, Tuple, Any
import copy
from decimal import Decimal

from .core import (
    # Types
    Move, Transaction, Unit, PendingTransaction,
    ExecuteResult,
    BalanceMap, ContractStorage,
    # Constants
    QUANTITY_EPSILON, SYSTEM_WALLET,
    # Exceptions
    LedgerError, UnitNotRegistered, WalletNotRegistered,
)


class Ledger:
    """
    Double-entry ledger with contract storage, full validation and audit trail.

    Implements the LedgerView protocol, allowing the ledger to be passed to pure
    contract functions that access only read-only methods.

    Design Principles:
        - Always validates: every transaction is checked against registration,
          balance constraints, storage preconditions and height.
        - Always logs: every applied transaction is recorded in the audit trail,
          enabling clone_at() and replay().

    Thread Safety:
        Not thread-safe. The host serializes invocations against one Ledger.

    Example:
        ledger = Ledger("main")
        ledger.register_unit(native_token("BTC", "Bitcoin"))
        ledger.register_wallet("alice")

        tx = build_transaction(ledger, [
            Move(Decimal("1"), "BTC", SYSTEM_WALLET, "alice", "mint")
        ])
        result = ledger.execute(tx)
    """

    def __init__(
        self,
        name: str,
        initial_height: int = 0,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_height: Starting block height (default: 0)
            verbose: Print registrations, applied and rejected transactions (default: True)
            test_mode: Allow set_balance() calls (default: False)
        """
        if initial_height < 0:
            raise ValueError(f"initial_height must be non-negative, got {initial_height}")
        self.name = name
        self.balances: Dict[str, Dict[str, Decimal]] = {}
        self.units: Dict[str, Unit] = {}
        self.registered_wallets: Set[str] = set()
        self.storage: Dict[str, ContractStorage] = {}
        self.transaction_log: List[Transaction] = []
        self.last_rejection: Optional[str] = None
        self._current_height: int = initial_height
        self.verbose = verbose
        self._test_mode = test_mode
        # Monotonic sequence counter for execution ordering
        self._next_sequence: int = 0

        # The system wallet is always present (issuance and keeper calls)
        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(lambda: Decimal("0"))

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_height(self) -> int:
        """Current block height of the ledger."""
        return self._current_height

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """
        Get the balance of a specific unit in a wallet.

        Raises:
            WalletNotRegistered: If wallet is not registered
            UnitNotRegistered: If unit is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return self.balances[wallet_id].get(unit_symbol, Decimal("0"))

    def get_storage(self, contract: str, key: str) -> Optional[Any]:
        """
        Get a copy of the value stored under key for a contract.

        Returns None if the contract has no value under that key.
        """
        value = self.storage.get(contract, {}).get(key)
        return copy.deepcopy(value) if value is not None else None

    def list_wallets(self) -> Set[str]:
        """List all registered wallet IDs."""
        return self.registered_wallets.copy()

    def list_units(self) -> List[str]:
        """List all registered unit symbols."""
        return sorted(self.units.keys())

    def get_unit(self, symbol: str) -> Unit:
        """Return the Unit object for a given symbol."""
        if symbol not in self.units:
            raise UnitNotRegistered(f"Unit {symbol} not registered")
        return self.units[symbol]

    def get_wallet_balances(self, wallet_id: str) -> BalanceMap:
        """Get all non-zero balances for a wallet."""
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        return {u: q for u, q in self.balances[wallet_id].items() if abs(q) > QUANTITY_EPSILON}

    def total_supply(self, unit_symbol: str) -> Decimal:
        """
        Total supply of a unit across all wallets.

        Wallets are sorted before summation to ensure deterministic
        accumulation order.
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return sum(
            (self.balances[w].get(unit_symbol, Decimal("0")) for w in sorted(self.registered_wallets)),
            Decimal("0"),
        )

    def verify_double_entry(
        self,
        expected_supplies: Dict[str, Decimal] = None,
        tolerance: Decimal = Decimal("1e-9")
    ) -> Dict[str, Any]:
        """
        Verify that conservation laws hold for all units.

        For every unit, the sum of all balances across all wallets (including
        the system wallet) must equal a constant.

        Args:
            expected_supplies: Optional dict mapping unit symbols to expected totals.
            tolerance: Maximum allowed difference for decimal comparisons.

        Returns:
            Dict with keys 'valid', 'supplies' and 'discrepancies'.

        Example:
            result = ledger.verify_double_entry()
            assert result['valid'], f"Conservation violated: {result['discrepancies']}"
        """
        supplies = {}
        discrepancies = []

        for unit_symbol in self.units:
            current_supply = self.total_supply(unit_symbol)
            supplies[unit_symbol] = current_supply

            if expected_supplies and unit_symbol in expected_supplies:
                expected = expected_supplies[unit_symbol]
                difference = abs(current_supply - expected)
                if difference > tolerance:
                    discrepancies.append({
                        'unit': unit_symbol,
                        'expected': expected,
                        'actual': current_supply,
                        'difference': difference,
                    })

        if expected_supplies:
            for unit_symbol, expected in expected_supplies.items():
                if unit_symbol not in supplies:
                    discrepancies.append({
                        'unit': unit_symbol,
                        'expected': expected,
                        'actual': Decimal("0"),
                        'difference': abs(expected),
                        'error': 'unit not registered',
                    })

        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    def is_registered(self, wallet_id: str) -> bool:
        """Check if a wallet is registered."""
        return wallet_id in self.registered_wallets

    # ========================================================================
    # BLOCK HEIGHT
    # ========================================================================

    def advance_height(self, new_height: int) -> None:
        """
        Advance the ledger's block height.

        Height can only move forward, never backward.

        Raises:
            ValueError: If new_height is below the current height
        """
        if new_height < self._current_height:
            raise ValueError(
                f"Cannot move height backwards: {new_height} < {self._current_height}"
            )
        self._current_height = new_height

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Register a new wallet (user address or contract address).

        Raises:
            ValueError: If wallet is already registered or the id is empty
        """
        if not wallet_id or not wallet_id.strip():
            raise ValueError("Wallet id cannot be empty")
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(lambda: Decimal("0"))
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        """
        Register a new denomination.

        Raises:
            ValueError: If unit symbol is already registered
        """
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        if self.verbose:
            print(f"Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]")

    def set_balance(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        """
        Set a wallet's balance for a unit directly.

        WARNING: This bypasses double-entry accounting and is only available in
        test mode. Balances set this way are not part of the transaction log.

        Raises:
            LedgerError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() is disabled in production mode. "
                "Use build_transaction() and execute() to modify balances. "
                "Set test_mode=True when creating Ledger for testing."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        if not isinstance(quantity, Decimal):
            quantity = Decimal(str(quantity))
        self.balances[wallet_id][unit_symbol] = quantity

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """
        Generate a unique execution ID.

        Format: exec:{ledger_name}:{sequence:012d}:{height}
        """
        return f"exec:{self.name}:{sequence:012d}:{self._current_height}"

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        All moves and storage changes are applied together or not at all.
        Storage changes are checked against their old_value, so a transaction
        built from state that has since changed (including a resubmission of
        an already applied contract transaction) is rejected.

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.REJECTED if validation failed (reason in last_rejection)
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED

        valid, reason = self._validate_pending(pending)
        if not valid:
            self.last_rejection = reason
            if self.verbose:
                print(f"✗ REJECTED: {reason}")
            return ExecuteResult.REJECTED

        self.last_rejection = None

        sequence = self._next_sequence
        self._next_sequence += 1
        exec_id = self._generate_exec_id(sequence)

        tx = Transaction(
            moves=pending.moves,
            storage_changes=pending.storage_changes,
            origin=pending.origin,
            height=pending.height,
            intent_id=pending.intent_id,
            exec_id=exec_id,
            ledger_name=self.name,
            execution_height=self._current_height,
            sequence_number=sequence,
            attributes=pending.attributes,
        )

        self._execute_moves(tx.moves)
        self._apply_storage_changes(tx.storage_changes)

        # Log transaction (always - audit trail is mandatory)
        self.transaction_log.append(tx)

        if self.verbose:
            self._print_tx_result(tx, "APPLIED", "✓")
        return ExecuteResult.APPLIED

    def _print_tx_result(self, tx: Transaction, result: str, icon: str) -> None:
        """Print transaction details with a result line appended."""
        lines = repr(tx).split('\n')
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines[-1] = f"├{bar}┤"
        lines.append(f"│{pad(' ' + icon + ' ' + result)}│")
        lines.append(f"└{bar}┘")
        print("\n".join(lines))

    def _validate_pending(self, pending: PendingTransaction) -> Tuple[bool, str]:
        """
        Validate pending transaction against all constraints.

        Checks performed:
        1. Height validation (transaction must not be from a future block)
        2. Unit and wallet registration
        3. Storage preconditions (old_value must match current storage)
        4. Balance constraint validation (min/max balance limits)

        Returns:
            Tuple of (success, reason); reason is empty on success
        """
        if pending.height > self._current_height:
            return False, "future height"

        for move in pending.moves:
            unit = self.units.get(move.unit_symbol)
            if unit is None:
                return False, f"unit not registered: {move.unit_symbol}"
            if not self.is_registered(move.source):
                return False, f"wallet not registered: {move.source}"
            if not self.is_registered(move.dest):
                return False, f"wallet not registered: {move.dest}"
            # Sender and receiver must see the same amount; no rounding on apply
            if not unit.is_exact(move.quantity):
                return False, (
                    f"precision: {move.quantity} {move.unit_symbol} exceeds "
                    f"{unit.decimal_places} decimal places"
                )

        for sc in pending.storage_changes:
            if not self.is_registered(sc.contract):
                return False, f"contract not registered: {sc.contract}"
            current = self.storage.get(sc.contract, {}).get(sc.key)
            if current != sc.old_value:
                return False, f"stale storage: {sc.contract}.{sc.key}"

        # Net balance change per (wallet, unit); intermediate overdrafts are fine
        net: Dict[Tuple[str, str], Decimal] = defaultdict(Decimal)
        for move in pending.moves:
            net[(move.source, move.unit_symbol)] -= move.quantity
            net[(move.dest, move.unit_symbol)] += move.quantity

        # SYSTEM_WALLET is exempt from balance validation
        for (wallet, unit_sym), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue

            unit = self.units[unit_sym]
            proposed = self.balances[wallet][unit_sym] + delta

            if proposed < unit.min_balance:
                return False, f"{wallet} {unit_sym}: {proposed} < min {unit.min_balance}"
            if proposed > unit.max_balance:
                return False, f"{wallet} {unit_sym}: {proposed} > max {unit.max_balance}"

        return True, ""

    def _shift(self, move: Move, sign: int) -> None:
        """Apply a move (sign=1) or undo it (sign=-1). Quantities are exact."""
        amount = move.quantity * sign
        self.balances[move.source][move.unit_symbol] -= amount
        self.balances[move.dest][move.unit_symbol] += amount

    def _execute_moves(self, moves) -> None:
        for move in moves:
            self._shift(move, 1)

    def _apply_storage_changes(self, changes) -> None:
        for sc in changes:
            self._write_slot(sc.contract, sc.key, sc.new_value)

    def _write_slot(self, contract: str, key: str, value: Any) -> None:
        slots = self.storage.setdefault(contract, {})
        if value is None:
            slots.pop(key, None)
            if not slots:
                del self.storage[contract]
        else:
            slots[key] = copy.deepcopy(value)

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create a fully independent deep copy of this ledger.

        Cloned state includes units, wallets, balances, contract storage,
        transaction log, height and configuration.
        """
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned._current_height = self._current_height
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode
        cloned.last_rejection = self.last_rejection

        # Units are frozen and stateless
        cloned.units = dict(self.units)
        cloned.registered_wallets = self.registered_wallets.copy()
        cloned.storage = copy.deepcopy(self.storage)
        cloned.transaction_log = list(self.transaction_log)
        cloned._next_sequence = self._next_sequence

        cloned.balances = {}
        for wallet, bals in self.balances.items():
            cloned.balances[wallet] = defaultdict(lambda: Decimal("0"), bals)

        return cloned

    def clone_at(self, target_height: int) -> Ledger:
        """
        Create a copy of this ledger as it existed at a past block height.

        Walks backward through all transactions executed after target_height
        and reverses them: balances are restored and every storage slot is
        put back to its old_value.

        Raises:
            ValueError: If target_height is in the future
        """
        if target_height > self._current_height:
            raise ValueError(f"Target height {target_height} is in the future")

        cloned = self.clone()
        cloned._current_height = target_height

        cloned.transaction_log = [
            tx for tx in self.transaction_log
            if tx.execution_height <= target_height
        ]
        cloned._next_sequence = len(cloned.transaction_log)

        for tx in reversed(self.transaction_log):
            if tx.execution_height <= target_height:
                break

            for move in reversed(tx.moves):
                cloned._shift(move, -1)
            for sc in reversed(tx.storage_changes):
                cloned._write_slot(sc.contract, sc.key, sc.old_value)

        return cloned

    def replay(self, from_tx: int = 0) -> Ledger:
        """
        Create a new ledger by replaying the transaction log.

        Note: Initial balances set via set_balance() are NOT replayed because
        they are not part of the transaction log. Use clone() or clone_at() if
        you need to preserve them.

        Raises:
            LedgerError: If any logged transaction is rejected during replay
        """
        new_ledger = Ledger(
            name=f"{self.name}_replayed",
            initial_height=0,
            verbose=self.verbose,
            test_mode=self._test_mode
        )

        new_ledger.units = dict(self.units)

        for wallet in sorted(self.registered_wallets):
            if wallet != SYSTEM_WALLET:
                new_ledger.register_wallet(wallet)

        for tx in self.transaction_log[from_tx:]:
            if tx.execution_height > new_ledger._current_height:
                new_ledger.advance_height(tx.execution_height)

            pending = PendingTransaction(
                moves=tx.moves,
                storage_changes=tx.storage_changes,
                origin=tx.origin,
                height=tx.height,
                attributes=tx.attributes,
            )

            result = new_ledger.execute(pending)
            if result == ExecuteResult.REJECTED:
                raise LedgerError(f"Replay failed at tx {tx.exec_id}: {new_ledger.last_rejection}")

        return new_ledger
