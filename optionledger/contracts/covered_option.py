"""
covered_option.py - Pure Functions for the Covered Option Contract

A creator locks collateral and names a counter offer and an expiry height.
The owner of the option may exercise it (finalize) before expiry by paying
exactly the counter offer: the creator receives the counter offer and the
owner receives the collateral. Once expired, anyone may burn the option,
returning the collateral to the creator. Ownership can be transferred any
number of times while the option is active.

States:
    NonExistent --instantiate--> Active --finalize--> (removed)
                                  |  ^
                                  |  transfer
                                  +--burn--> (removed)

All functions take a LedgerView (read-only) and return a PendingTransaction,
or raise a ContractError before anything is built. The funds attached to an
invocation are always delivered to the contract wallet as the first moves of
the returned transaction, so delivery, storage writes and outgoing sends
commit together.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

from ..core import (
    LedgerView, Move, PendingTransaction, StorageChange,
    TransactionOrigin, OriginType, Funds,
    Expired, NotYetExpired, Unauthorized, FundsMismatch, FundsNotEmpty, NotFound,
    SYSTEM_WALLET,
    bank_send, build_transaction, empty_pending_transaction,
    funds_equal, normalize_funds,
)
from ..msg import (
    MessageInfo, InstantiateMsg, ExecuteMsg, QueryMsg,
    Transfer, Finalize, Burn, Config,
    funds_to_json, funds_from_json,
)


CONTRACT_NAME = "optionledger:covered-option"
CONTRACT_VERSION = "0.1.0"

# Storage slots
STATE_KEY = "state"
CONTRACT_INFO_KEY = "contract_info"


@dataclass(frozen=True, slots=True)
class OptionState:
    """
    The option record. Only owner changes after instantiation.

    Attributes:
        creator: Address that created the option and locked the collateral
        owner: Address currently entitled to exercise
        collateral: Funds locked at creation, paid out on exercise or burn
        counter_offer: Funds the owner must pay to exercise
        expires: Block height at which exercise closes and burn opens
    """
    creator: str
    owner: str
    collateral: Funds
    counter_offer: Funds
    expires: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'creator': self.creator,
            'owner': self.owner,
            'collateral': funds_to_json(self.collateral),
            'counter_offer': funds_to_json(self.counter_offer),
            'expires': self.expires,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> OptionState:
        return cls(
            creator=data['creator'],
            owner=data['owner'],
            collateral=funds_from_json(data['collateral']),
            counter_offer=funds_from_json(data['counter_offer']),
            expires=data['expires'],
        )


def _load_state(view: LedgerView, contract: str) -> OptionState:
    state = view.get_storage(contract, STATE_KEY)
    if state is None:
        raise NotFound(contract, STATE_KEY)
    return state


def _origin(info: MessageInfo, contract: str, action: str,
            origin_type: OriginType = OriginType.CONTRACT) -> TransactionOrigin:
    return TransactionOrigin(
        origin_type=origin_type,
        source_id=info.sender,
        contract=contract,
        action=action,
    )


def _deliver_funds(info: MessageInfo, contract: str) -> List[Move]:
    return bank_send(info.sender, contract, info.funds, f"{contract}:funds")


# ============================================================================
# ENTRY POINTS
# ============================================================================

def instantiate(
    view: LedgerView,
    contract: str,
    info: MessageInfo,
    msg: InstantiateMsg,
) -> PendingTransaction:
    """
    Create the option. The attached funds become the collateral and the
    sender becomes both creator and owner.

    Raises:
        Expired: If msg.expires is not strictly above the current height
    """
    height = view.current_height
    if msg.expires <= height:
        raise Expired(msg.expires, height)

    state = OptionState(
        creator=info.sender,
        owner=info.sender,
        collateral=info.funds,
        counter_offer=normalize_funds(msg.counter_offer),
        expires=msg.expires,
    )

    # old_value None on both slots: a contract address is instantiated once
    changes = [
        StorageChange(
            contract=contract,
            key=CONTRACT_INFO_KEY,
            old_value=None,
            new_value={'contract': CONTRACT_NAME, 'version': CONTRACT_VERSION},
        ),
        StorageChange(contract=contract, key=STATE_KEY, old_value=None, new_value=state),
    ]

    return build_transaction(
        view,
        _deliver_funds(info, contract),
        changes,
        origin=_origin(info, contract, "instantiate"),
    )


def transfer(
    view: LedgerView,
    contract: str,
    info: MessageInfo,
    recipient: str,
) -> PendingTransaction:
    """
    Hand ownership of the option to recipient. Only the current owner may
    transfer. Allowed at any height while the option is active.

    Raises:
        NotFound: If the option is not active
        Unauthorized: If the sender is not the owner
    """
    state = _load_state(view, contract)
    if info.sender != state.owner:
        raise Unauthorized(info.sender)

    change = StorageChange(
        contract=contract,
        key=STATE_KEY,
        old_value=state,
        new_value=replace(state, owner=recipient),
    )

    return build_transaction(
        view,
        _deliver_funds(info, contract),
        [change],
        origin=_origin(info, contract, "transfer"),
        attributes=[("action", "transfer"), ("owner", recipient)],
    )


def finalize(
    view: LedgerView,
    contract: str,
    info: MessageInfo,
) -> PendingTransaction:
    """
    Exercise the option.

    Checks, in order: the sender is the owner, the current height is below
    expires, and the attached funds equal the counter offer as a multiset.
    On success the record is removed, the counter offer goes to the creator
    and the collateral goes to the owner.

    Raises:
        NotFound: If the option is not active
        Unauthorized: If the sender is not the owner
        Expired: If the current height is at or past expires
        FundsMismatch: If the attached funds differ from the counter offer
    """
    state = _load_state(view, contract)
    height = view.current_height

    if info.sender != state.owner:
        raise Unauthorized(info.sender)
    if height >= state.expires:
        raise Expired(state.expires, height)
    if not funds_equal(info.funds, state.counter_offer):
        raise FundsMismatch(state.counter_offer, info.funds)

    moves = _deliver_funds(info, contract)
    moves += bank_send(contract, state.creator, state.counter_offer, f"{contract}:counter_offer")
    moves += bank_send(contract, state.owner, state.collateral, f"{contract}:collateral")

    change = StorageChange(contract=contract, key=STATE_KEY, old_value=state, new_value=None)

    return build_transaction(
        view,
        moves,
        [change],
        origin=_origin(info, contract, "finalize"),
        attributes=[("action", "execute")],
    )


def _burn(
    view: LedgerView,
    contract: str,
    info: MessageInfo,
    origin_type: OriginType,
    height: int,
) -> PendingTransaction:
    state = _load_state(view, contract)

    if state.expires > height:
        raise NotYetExpired(state.expires, height)
    if info.funds:
        raise FundsNotEmpty(info.funds)

    moves = bank_send(contract, state.creator, state.collateral, f"{contract}:refund")
    change = StorageChange(contract=contract, key=STATE_KEY, old_value=state, new_value=None)

    return build_transaction(
        view,
        moves,
        [change],
        origin=_origin(info, contract, "burn", origin_type),
        attributes=[("action", "burn")],
    )


def burn(
    view: LedgerView,
    contract: str,
    info: MessageInfo,
) -> PendingTransaction:
    """
    Close an expired option and refund the collateral to the creator.

    Any sender may burn; no funds may be attached.

    Raises:
        NotFound: If the option is not active
        NotYetExpired: If the current height is below expires
        FundsNotEmpty: If funds are attached
    """
    return _burn(view, contract, info, OriginType.CONTRACT, view.current_height)


def query_config(view: LedgerView, contract: str) -> OptionState:
    """
    Return the active option record.

    Raises:
        NotFound: If the option was never created, or was finalized or burned
    """
    return _load_state(view, contract)


def execute(
    view: LedgerView,
    contract: str,
    info: MessageInfo,
    msg: ExecuteMsg,
) -> PendingTransaction:
    """Dispatch an execute message to its handler."""
    if isinstance(msg, Transfer):
        return transfer(view, contract, info, msg.recipient)
    if isinstance(msg, Finalize):
        return finalize(view, contract, info)
    if isinstance(msg, Burn):
        return burn(view, contract, info)
    raise ValueError(f"Unknown execute message: {msg!r}")


def query(view: LedgerView, contract: str, msg: QueryMsg) -> Dict[str, Any]:
    """Dispatch a query message; results are JSON-ready dicts."""
    if isinstance(msg, Config):
        return query_config(view, contract).to_dict()
    raise ValueError(f"Unknown query message: {msg!r}")


# ============================================================================
# CONVENIENCE
# ============================================================================

def is_active(view: LedgerView, contract: str) -> bool:
    """True while the option exists (created, neither finalized nor burned)."""
    return view.get_storage(contract, STATE_KEY) is not None


def blocks_until_expiry(view: LedgerView, contract: str) -> int:
    """
    Remaining blocks in which the option can be exercised (0 once expired).

    Raises:
        NotFound: If the option is not active
    """
    state = _load_state(view, contract)
    return max(0, state.expires - view.current_height)


def option_contract(
    view: LedgerView,
    contract: str,
    height: int,
    keeper: str = SYSTEM_WALLET,
) -> PendingTransaction:
    """
    SmartContract function for covered options.

    Called by the LifecycleEngine after every height change. Burns the option
    on behalf of keeper once it has expired; otherwise does nothing.
    """
    state: Optional[OptionState] = view.get_storage(contract, STATE_KEY)
    if state is None or height < state.expires:
        return empty_pending_transaction(view)

    return _burn(view, contract, MessageInfo(sender=keeper), OriginType.LIFECYCLE, height)
