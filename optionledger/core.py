"""
Core types and pure functions for the option ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access
2. Immutable data structures: Coin, Move, StorageChange, PendingTransaction, Transaction, Unit
3. Exceptions: LedgerError, ContractError and the contract error taxonomy
4. Fund helpers: coins(), normalize_funds(), funds_equal()
5. Unit factories: Functions to create denomination units

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_EVEN, ROUND_DOWN, getcontext
from enum import Enum
import hashlib
from typing import (
    Dict, List, Set, Optional, Any, Protocol,
    Tuple, FrozenSet, Iterable, runtime_checkable,
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Coin arithmetic must be deterministic. The global context is configured
# once at import time.
#
# PRECONDITION: No other code should modify the global Decimal context.
# If thread-local contexts are needed, use decimal.localcontext().
#
_LEDGER_DECIMAL_CONTEXT = getcontext()
_LEDGER_DECIMAL_CONTEXT.prec = 50
_LEDGER_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and for lifecycle keeper invocations.
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

# Unit type constants (strings, not enum).
UNIT_TYPE_CRYPTO = "CRYPTO"

# Quantities with absolute value below this threshold are treated as zero.
QUANTITY_EPSILON = Decimal("1e-12")

# Per-asset-class precision
DECIMAL_PRECISION = {
    'CRYPTO': 8,
}

DECIMAL_ROUNDING = {
    'CRYPTO': ROUND_DOWN,
}


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from unit symbol to quantity held in a single wallet.
BalanceMap = Dict[str, Decimal]

# Mapping from storage key to stored value for a single contract.
ContractStorage = Dict[str, Any]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Contract functions receive a LedgerView and never mutate it. They describe
    what should happen by returning a PendingTransaction, which the Ledger
    validates and applies atomically.

    This is a type-level guarantee. The Ledger class implements this protocol
    but also provides mutation methods. For testing, FakeView provides a truly
    immutable implementation.
    """

    @property
    def current_height(self) -> int:
        """Return the current block height of the ledger."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """
        Return the balance of a specific unit in a wallet.

        Returns Decimal("0") if the wallet holds nothing of the unit.
        """
        ...

    def get_storage(self, contract: str, key: str) -> Optional[Any]:
        """Return the value stored under key for a contract, or None if absent."""
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...


class SmartContract(Protocol):
    """
    Protocol for lifecycle-aware contracts.

    Polled by the LifecycleEngine after every height change. Returns a
    PendingTransaction (empty if nothing is due).
    """

    def check_lifecycle(
        self,
        view: LedgerView,
        contract: str,
        height: int,
        keeper: str,
    ) -> 'PendingTransaction':
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was validated and applied to the ledger.
    REJECTED: Transaction failed validation (balance constraints, unknown
              wallets or units, stale storage, future height).
    """
    APPLIED = "applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    USER_ACTION = "user_action"           # Manual transfer or funding
    CONTRACT = "contract"                 # Contract invocation
    LIFECYCLE = "lifecycle"               # Keeper-driven lifecycle event (expiry)
    SYSTEM = "system"                     # Issuance, initial setup


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when attempting to operate on a unit that has not been registered with the ledger."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when attempting to operate on a wallet that has not been registered with the ledger."""
    pass


class TransactionRejected(LedgerError):
    """Raised by the host when the ledger rejects a contract's pending transaction."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Transaction rejected: {reason}")


class ContractError(LedgerError):
    """Base exception for contract constraint violations. Nothing is applied."""
    pass


class Expired(ContractError):
    """Option creation or exercise attempted at or after the expiry height."""

    def __init__(self, expires: int, height: int):
        self.expires = expires
        self.height = height
        super().__init__(f"Option expired, expires: {expires}, block height: {height}")


class NotYetExpired(ContractError):
    """Burn attempted before the expiry height."""

    def __init__(self, expires: int, height: int):
        self.expires = expires
        self.height = height
        super().__init__(f"Option not yet expired, expires: {expires}, block height: {height}")


class Unauthorized(ContractError):
    """Caller is not the party required for the operation."""

    def __init__(self, sender: str):
        self.sender = sender
        super().__init__(f"Unauthorized: {sender}")


class FundsMismatch(ContractError):
    """Funds attached to an exercise do not equal the counter offer."""

    def __init__(self, expected: Tuple['Coin', ...], received: Tuple['Coin', ...]):
        self.expected = expected
        self.received = received
        super().__init__(
            f"Counter offer mismatch, counter offer: {format_funds(expected)}, "
            f"funds: {format_funds(received)}"
        )


class FundsNotEmpty(ContractError):
    """Burn attempted with funds attached."""

    def __init__(self, funds: Tuple['Coin', ...]):
        self.funds = funds
        super().__init__(f"Funds not empty, funds: {format_funds(funds)}")


class NotFound(ContractError):
    """No value in the contract's storage slot (option not active)."""

    def __init__(self, contract: str, key: str):
        self.contract = contract
        self.key = key
        super().__init__(f"{contract}: nothing stored under '{key}'")


# ============================================================================
# COINS AND FUNDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Coin:
    """
    An amount of a single denomination.

    Amounts are strictly positive: zero-amount coins are not valid funds.
    """
    amount: Decimal
    denom: str

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))
        if not self.denom or not self.denom.strip():
            raise ValueError("Coin denom cannot be empty")
        if not self.amount.is_finite():
            raise ValueError(f"Coin amount must be finite, got {self.amount}")
        if self.amount <= Decimal("0"):
            raise ValueError(f"Coin amount must be positive, got {self.amount}")

    def __repr__(self) -> str:
        return f"{self.amount}{self.denom}"


Funds = Tuple[Coin, ...]


def coins(amount: Any, denom: str) -> Funds:
    """Funds made of a single coin, e.g. coins(40, "ETH")."""
    return (Coin(Decimal(str(amount)), denom),)


def normalize_funds(funds: Optional[Iterable[Any]]) -> Funds:
    """
    Convert an iterable of Coin, (amount, denom) pairs or {"amount", "denom"}
    mappings into a tuple of Coin. Order is preserved.
    """
    if not funds:
        return ()
    result: List[Coin] = []
    for item in funds:
        if isinstance(item, Coin):
            result.append(item)
        elif isinstance(item, dict):
            result.append(Coin(Decimal(str(item['amount'])), item['denom']))
        else:
            amount, denom = item
            result.append(Coin(Decimal(str(amount)), denom))
    return tuple(result)


def funds_equal(left: Iterable[Coin], right: Iterable[Coin]) -> bool:
    """
    Multiset equality of two fund lists.

    Order is irrelevant. Every (denom, amount) pair must occur the same number
    of times on both sides, so [20 ETH, 20 ETH] does not equal [40 ETH].
    """
    return Counter((c.denom, c.amount) for c in left) == Counter((c.denom, c.amount) for c in right)


def format_funds(funds: Iterable[Coin]) -> str:
    return "[" + ", ".join(repr(c) for c in funds) + "]"


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin source
        source_id: Identifier of the caller (sender address, keeper, etc.)
        contract: Address of the contract invoked (if applicable)
        action: Contract operation invoked (e.g., "instantiate", "finalize")
    """
    origin_type: OriginType
    source_id: str
    contract: Optional[str] = None
    action: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.contract:
            parts.append(f"contract={self.contract}")
        if self.action:
            parts.append(f"action={self.action}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# STORAGE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class StorageChange:
    """
    Write to a single contract storage slot.

    old_value is the value the contract read when it built the transaction;
    the ledger rejects the change if storage no longer holds it. A new_value
    of None removes the slot.

    Attributes:
        contract: Address of the contract that owns the slot
        key: Storage slot name
        old_value: Value before the change (None if the slot was empty)
        new_value: Value after the change (None to remove)
    """
    contract: str
    key: str
    old_value: Any
    new_value: Any

    @property
    def is_removal(self) -> bool:
        return self.new_value is None


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of value between two wallets.

    Attributes:
        quantity: The amount to transfer (must be finite and non-zero).
        unit_symbol: The denomination being transferred (e.g., "BTC").
        source: The wallet ID from which value is debited.
        dest: The wallet ID to which value is credited.
        contract_id: Identifier of the contract step generating this move.
        metadata: Optional additional information about the move.
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal, got {type(self.quantity)}")
        if self.quantity.is_infinite() or self.quantity.is_nan():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if abs(self.quantity) < QUANTITY_EPSILON:
            raise ValueError("Move quantity is effectively zero")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


def bank_send(source: str, dest: str, funds: Iterable[Coin], contract_id: str) -> List[Move]:
    """One move per coin, sending funds from source to dest."""
    return [
        Move(quantity=c.amount, unit_symbol=c.denom, source=source, dest=dest, contract_id=contract_id)
        for c in funds
    ]


def _normalize_decimal(d: Decimal) -> str:
    """
    Canonical string for a Decimal: Decimal("1.0") and Decimal("1.00") both
    become "1", and scientific notation is avoided.
    """
    normalized = d.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Independent of dict insertion order and Decimal representation.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return f"D:{_normalize_decimal(value)}"
    if isinstance(value, (int, float)):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, Coin):
        return f"C:{_normalize_decimal(value.amount)}{value.denom}"
    if hasattr(value, 'to_dict'):
        return _canonicalize(value.to_dict())
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    return f"R:{repr(value)}"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    storage_changes: Tuple[StorageChange, ...],
    origin: TransactionOrigin,
    height: int,
    attributes: Tuple[Tuple[str, str], ...] = (),
) -> str:
    """
    Deterministic content hash of a transaction's intent.

    Same inputs always produce the same intent_id. Used for audit and for
    matching replayed transactions against the source ledger's log.
    """
    content_parts = [
        f"origin:{origin.origin_type.value}:{origin.source_id}",
        f"height:{height}",
    ]
    if origin.contract:
        content_parts.append(f"contract:{origin.contract}")
    if origin.action:
        content_parts.append(f"action:{origin.action}")

    # Move order is significant (sends are observable in order)
    for m in moves:
        qty = _normalize_decimal(m.quantity)
        content_parts.append(f"move:{qty}|{m.unit_symbol}|{m.source}|{m.dest}|{m.contract_id}")

    for sc in sorted(storage_changes, key=lambda s: (s.contract, s.key)):
        content_parts.append(
            f"storage:{sc.contract}|{sc.key}|{_canonicalize(sc.old_value)}|{_canonicalize(sc.new_value)}"
        )

    for key, value in attributes:
        content_parts.append(f"attr:{key}={value}")

    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction specification before execution - represents INTENT.

    Created by contract functions and submitted to the ledger for execution.

    Attributes:
        moves: Value transfers, in order (attached funds first, then sends)
        storage_changes: Contract storage writes and removals
        origin: Who/what created this transaction and why
        height: Block height at which the transaction was built
        attributes: Observable (key, value) event attributes
        intent_id: Content-addressable hash of the intent (auto-computed)
    """
    moves: Tuple[Move, ...]
    storage_changes: Tuple[StorageChange, ...]
    origin: TransactionOrigin
    height: int
    attributes: Tuple[Tuple[str, str], ...] = ()
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(
                self.moves, self.storage_changes, self.origin, self.height, self.attributes
            )
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """True if there is nothing to apply."""
        return not self.moves and not self.storage_changes

    def attribute(self, key: str) -> Optional[str]:
        for k, v in self.attributes:
            if k == key:
                return v
        return None

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {len(self.storage_changes)} writes, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    storage_changes: Optional[List[StorageChange]] = None,
    origin: Optional[TransactionOrigin] = None,
    attributes: Optional[List[Tuple[str, str]]] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves and storage changes.

    Args:
        view: Read-only ledger view (provides current_height)
        moves: Moves to include, in execution order
        storage_changes: Optional contract storage writes
        origin: Transaction origin (defaults to a USER_ACTION origin)
        attributes: Optional observable event attributes

    Example:
        tx = build_transaction(ledger, [
            Move(Decimal("1"), "BTC", SYSTEM_WALLET, "alice", "mint")
        ])
        ledger.execute(tx)
    """
    if origin is None:
        origin = TransactionOrigin(
            origin_type=OriginType.USER_ACTION,
            source_id="user",
        )

    return PendingTransaction(
        moves=tuple(moves),
        storage_changes=tuple(storage_changes or ()),
        origin=origin,
        height=view.current_height,
        attributes=tuple(attributes or ()),
    )


def empty_pending_transaction(view: LedgerView) -> PendingTransaction:
    """An empty PendingTransaction, for contract functions that have nothing to do."""
    return PendingTransaction(
        moves=(),
        storage_changes=(),
        origin=TransactionOrigin(OriginType.CONTRACT, "noop"),
        height=view.current_height,
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Attributes:
        moves: Value transfers applied
        storage_changes: Contract storage writes applied
        origin: Who/what created this transaction and why
        height: Block height the PendingTransaction was built at
        intent_id: Content hash from PendingTransaction
        exec_id: Unique execution identifier (ledger + sequence + height)
        ledger_name: Name of the ledger that executed this
        execution_height: Block height at execution
        sequence_number: Monotonic sequence within the ledger
        attributes: Observable event attributes
        contract_ids: Set of contract IDs from moves (auto-populated)
    """
    moves: Tuple[Move, ...]
    storage_changes: Tuple[StorageChange, ...]
    origin: TransactionOrigin
    height: int
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_height: int
    sequence_number: int
    attributes: Tuple[Tuple[str, str], ...] = ()
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves and not self.storage_changes:
            raise ValueError("Transaction must have moves or storage_changes")
        if self.contract_ids is None:
            object.__setattr__(
                self, 'contract_ids',
                frozenset(m.contract_id for m in self.moves)
            )

    def __repr__(self) -> str:
        w = 100  # Inner content width
        bar = "─" * w

        def pad(text: str) -> str:
            """Pad or truncate text to exactly w characters."""
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Transaction: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   intent_id      : ' + self.intent_id)}│",
            f"│{pad('   height         : ' + str(self.height))}│",
            f"│{pad('   ledger_name    : ' + self.ledger_name)}│",
            f"│{pad('   sequence       : ' + str(self.sequence_number))}│",
            f"│{pad('   origin         : ' + str(self.origin))}│",
        ]
        if self.attributes:
            attrs = ", ".join(f"{k}={v}" for k, v in self.attributes)
            lines.append(f"│{pad('   attributes     : ' + attrs)}│")
        lines.append(f"├{bar}┤")
        lines.append(f"│{pad(' Moves (' + str(len(self.moves)) + '):')}│")
        for i, move in enumerate(self.moves):
            move_str = f"   [{i}] {move.quantity} {move.unit_symbol}: {move.source} → {move.dest}"
            lines.append(f"│{pad(move_str)}│")
        if self.storage_changes:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' Storage (' + str(len(self.storage_changes)) + '):')}│")
            for sc in self.storage_changes:
                verb = "removed" if sc.is_removal else "written"
                lines.append(f"│{pad('   [' + sc.contract + '.' + sc.key + '] ' + verb)}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of a denomination held in the ledger.

    Attributes:
        symbol: Denomination identifier (e.g., "BTC", "ETH").
        name: Human-readable name for the unit.
        unit_type: Category of the unit (CRYPTO).
        min_balance: Minimum allowed balance in any wallet (never negative).
        max_balance: Maximum allowed balance in any wallet.
        decimal_places: Number of decimal places for rounding (None = no rounding).
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = Decimal("0")
    max_balance: Decimal = Decimal("Infinity")
    decimal_places: Optional[int] = None

    def __post_init__(self):
        # Attached funds must be held: no overdraft for any unit
        if self.min_balance < 0:
            raise ValueError(f"Unit {self.symbol} min_balance cannot be negative, got {self.min_balance}")

    def is_exact(self, value: Decimal) -> bool:
        """True if value needs no rounding at this unit's precision."""
        return self.round(value) == value

    def round(self, value: Decimal) -> Decimal:
        """
        Round a value to this unit's decimal precision using quantize.

        Returns the value unchanged if decimal_places is None.
        """
        if self.decimal_places is None:
            return value
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        quantizer = Decimal(10) ** -self.decimal_places
        rounding_mode = DECIMAL_ROUNDING.get(self.unit_type, ROUND_HALF_EVEN)
        return value.quantize(quantizer, rounding=rounding_mode)


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def native_token(symbol: str, name: str, decimal_places: int = DECIMAL_PRECISION['CRYPTO']) -> Unit:
    """
    Create an on-chain denomination. Balances cannot go negative, so a wallet
    can only attach funds it actually holds.
    """
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_CRYPTO,
        decimal_places=decimal_places,
        min_balance=Decimal("0"),
    )
