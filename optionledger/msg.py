"""
msg.py - Invocation and message types for the covered option contract

Messages are small frozen dataclasses. The parse_* functions accept the
JSON-shaped payloads a host receives (dicts, or bare strings for unit
variants) and return the typed message; funds_to_json / funds_from_json
convert coin lists to and from their wire form.

Wire shapes:
    instantiate: {"counter_offer": [{"amount": "40", "denom": "ETH"}], "expires": 100000}
    execute:     {"transfer": {"recipient": "bob"}} | {"finalize": {}} | {"burn": {}}
    query:       {"config": {}}
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Union

from .core import Funds, normalize_funds, _normalize_decimal


@dataclass(frozen=True, slots=True)
class MessageInfo:
    """Caller address and the funds attached to one invocation."""
    sender: str
    funds: Funds = ()

    def __post_init__(self):
        if not self.sender or not self.sender.strip():
            raise ValueError("MessageInfo sender cannot be empty")
        object.__setattr__(self, 'funds', normalize_funds(self.funds))


@dataclass(frozen=True, slots=True)
class InstantiateMsg:
    counter_offer: Funds
    expires: int

    def __post_init__(self):
        object.__setattr__(self, 'counter_offer', normalize_funds(self.counter_offer))
        if isinstance(self.expires, bool) or not isinstance(self.expires, int):
            raise ValueError(f"expires must be an integer block height, got {self.expires!r}")


@dataclass(frozen=True, slots=True)
class Transfer:
    recipient: str

    def __post_init__(self):
        if not self.recipient or not self.recipient.strip():
            raise ValueError("Transfer recipient cannot be empty")


@dataclass(frozen=True, slots=True)
class Finalize:
    pass


@dataclass(frozen=True, slots=True)
class Burn:
    pass


@dataclass(frozen=True, slots=True)
class Config:
    pass


ExecuteMsg = Union[Transfer, Finalize, Burn]
QueryMsg = Config


# ============================================================================
# WIRE CONVERSION
# ============================================================================

def funds_to_json(funds: Funds) -> List[Dict[str, str]]:
    return [{'amount': _normalize_decimal(c.amount), 'denom': c.denom} for c in funds]


def funds_from_json(payload: Any) -> Funds:
    if payload is None:
        return ()
    if not isinstance(payload, list):
        raise ValueError(f"funds must be a list, got {type(payload).__name__}")
    return normalize_funds(payload)


def _variant(payload: Union[str, Mapping[str, Any]]) -> tuple:
    """Split a message into (name, body) for bare-string or single-key dict forms."""
    if isinstance(payload, str):
        return payload, {}
    if isinstance(payload, Mapping) and len(payload) == 1:
        (name, body), = payload.items()
        return name, body or {}
    raise ValueError(f"Malformed message: {payload!r}")


def parse_instantiate_msg(payload: Mapping[str, Any]) -> InstantiateMsg:
    try:
        counter_offer = payload['counter_offer']
        expires = payload['expires']
    except KeyError as e:
        raise ValueError(f"InstantiateMsg missing field {e.args[0]}") from e
    return InstantiateMsg(counter_offer=funds_from_json(counter_offer), expires=expires)


def parse_execute_msg(payload: Union[str, Mapping[str, Any]]) -> ExecuteMsg:
    name, body = _variant(payload)
    if name == 'transfer':
        if 'recipient' not in body:
            raise ValueError("transfer missing field recipient")
        return Transfer(recipient=body['recipient'])
    if name == 'finalize':
        return Finalize()
    if name == 'burn':
        return Burn()
    raise ValueError(f"Unknown execute message: {name}")


def parse_query_msg(payload: Union[str, Mapping[str, Any]]) -> QueryMsg:
    name, _ = _variant(payload)
    if name == 'config':
        return Config()
    raise ValueError(f"Unknown query message: {name}")
