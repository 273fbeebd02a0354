"""
test_covered_option.py - Unit tests for contracts/covered_option.py

Tests:
- instantiate: expiry check, record contents, collateral delivery
- transfer: owner-only, attributes, allowed after expiry
- finalize: check ordering, multiset fund matching, payout moves
- burn: expiry gate, no attached funds, caller-agnostic refund
- query_config / query / execute dispatch
- option_contract: lifecycle poller
"""

import pytest
from decimal import Decimal

from optionledger import (
    OptionState, MessageInfo, InstantiateMsg, Transfer, Finalize, Burn, Config,
    OriginType,
    Expired, NotYetExpired, Unauthorized, FundsMismatch, FundsNotEmpty, NotFound,
    instantiate, transfer, finalize, burn, query_config, query, execute,
    is_active, blocks_until_expiry, option_contract,
    coins, normalize_funds,
    STATE_KEY, CONTRACT_INFO_KEY, CONTRACT_NAME, CONTRACT_VERSION, SYSTEM_WALLET,
)
from .fake_view import FakeView


OPTION = "option"


def _state(owner="creator", collateral=None, counter_offer=None, expires=100_000):
    return OptionState(
        creator="creator",
        owner=owner,
        collateral=collateral if collateral is not None else coins(1, "BTC"),
        counter_offer=counter_offer if counter_offer is not None else coins(40, "ETH"),
        expires=expires,
    )


def _view(state=None, height=12_345):
    storage = {OPTION: {STATE_KEY: state}} if state is not None else {}
    return FakeView(storage=storage, height=height)


class TestInstantiate:
    """Tests for instantiate."""

    def test_creates_record_owned_by_creator(self):
        view = _view()
        info = MessageInfo("creator", coins(1, "BTC"))
        msg = InstantiateMsg(counter_offer=coins(40, "ETH"), expires=100_000)

        result = instantiate(view, OPTION, info, msg)

        writes = {sc.key: sc for sc in result.storage_changes}
        state = writes[STATE_KEY].new_value
        assert writes[STATE_KEY].old_value is None
        assert state.creator == "creator"
        assert state.owner == "creator"
        assert state.collateral == coins(1, "BTC")
        assert state.counter_offer == coins(40, "ETH")
        assert state.expires == 100_000
        assert writes[CONTRACT_INFO_KEY].new_value == {
            'contract': CONTRACT_NAME, 'version': CONTRACT_VERSION,
        }

    def test_collateral_is_delivered_to_contract(self):
        view = _view()
        info = MessageInfo("creator", [(1, "BTC"), (2, "ATOM")])
        msg = InstantiateMsg(counter_offer=coins(40, "ETH"), expires=100_000)

        result = instantiate(view, OPTION, info, msg)

        assert [(m.quantity, m.unit_symbol, m.source, m.dest) for m in result.moves] == [
            (Decimal("1"), "BTC", "creator", OPTION),
            (Decimal("2"), "ATOM", "creator", OPTION),
        ]

    def test_emits_no_attributes(self):
        result = instantiate(
            _view(), OPTION, MessageInfo("creator", coins(1, "BTC")),
            InstantiateMsg(counter_offer=coins(40, "ETH"), expires=100_000),
        )
        assert result.attributes == ()
        assert not any(m.source == OPTION for m in result.moves)

    def test_empty_collateral_allowed(self):
        result = instantiate(
            _view(), OPTION, MessageInfo("creator"),
            InstantiateMsg(counter_offer=coins(40, "ETH"), expires=100_000),
        )
        assert result.moves == ()
        state = next(sc.new_value for sc in result.storage_changes if sc.key == STATE_KEY)
        assert state.collateral == ()

    @pytest.mark.parametrize("expires", [12_345, 12_344, 0])
    def test_expiry_not_above_height_raises(self, expires):
        with pytest.raises(Expired) as exc_info:
            instantiate(
                _view(height=12_345), OPTION, MessageInfo("creator", coins(1, "BTC")),
                InstantiateMsg(counter_offer=coins(40, "ETH"), expires=expires),
            )
        assert exc_info.value.expires == expires
        assert exc_info.value.height == 12_345
        assert "Option expired" in str(exc_info.value)

    def test_expiry_one_block_ahead_succeeds(self):
        result = instantiate(
            _view(height=12_345), OPTION, MessageInfo("creator"),
            InstantiateMsg(counter_offer=coins(40, "ETH"), expires=12_346),
        )
        assert not result.is_empty()


class TestTransfer:
    """Tests for transfer."""

    def test_non_owner_is_unauthorized(self):
        with pytest.raises(Unauthorized) as exc_info:
            transfer(_view(_state()), OPTION, MessageInfo("anyone"), "anyone")
        assert exc_info.value.sender == "anyone"

    def test_owner_transfers(self):
        state = _state()
        result = transfer(_view(state), OPTION, MessageInfo("creator"), "someone")

        (change,) = result.storage_changes
        assert change.old_value == state
        assert change.new_value.owner == "someone"
        assert change.new_value.creator == "creator"
        assert change.new_value.collateral == state.collateral
        assert change.new_value.counter_offer == state.counter_offer
        assert change.new_value.expires == state.expires
        assert result.attributes == (("action", "transfer"), ("owner", "someone"))
        assert result.moves == ()

    def test_previous_owner_loses_rights(self):
        view = _view(_state(owner="someone"))
        with pytest.raises(Unauthorized):
            transfer(view, OPTION, MessageInfo("creator"), "creator")

    def test_transfer_allowed_after_expiry(self):
        result = transfer(_view(_state(), height=200_000), OPTION, MessageInfo("creator"), "someone")
        assert result.attribute("owner") == "someone"

    def test_no_record_raises_not_found(self):
        with pytest.raises(NotFound):
            transfer(_view(), OPTION, MessageInfo("creator"), "someone")


class TestFinalize:
    """Tests for finalize (exercise)."""

    def test_successful_exercise_pays_both_sides(self):
        state = _state(owner="someone")
        result = finalize(_view(state), OPTION, MessageInfo("someone", coins(40, "ETH")))

        assert [(m.quantity, m.unit_symbol, m.source, m.dest) for m in result.moves] == [
            (Decimal("40"), "ETH", "someone", OPTION),
            (Decimal("40"), "ETH", OPTION, "creator"),
            (Decimal("1"), "BTC", OPTION, "someone"),
        ]
        (change,) = result.storage_changes
        assert change.key == STATE_KEY
        assert change.old_value == state
        assert change.is_removal
        assert result.attributes == (("action", "execute"),)

    def test_non_owner_is_unauthorized(self):
        with pytest.raises(Unauthorized):
            finalize(_view(_state(owner="someone")), OPTION, MessageInfo("creator", coins(40, "ETH")))

    def test_expired_at_expiry_height(self):
        with pytest.raises(Expired) as exc_info:
            finalize(_view(_state(), height=100_000), OPTION, MessageInfo("creator", coins(40, "ETH")))
        assert exc_info.value.expires == 100_000
        assert exc_info.value.height == 100_000

    def test_last_block_before_expiry_succeeds(self):
        result = finalize(_view(_state(), height=99_999), OPTION, MessageInfo("creator", coins(40, "ETH")))
        assert result.attribute("action") == "execute"

    def test_underpayment_is_mismatch(self):
        with pytest.raises(FundsMismatch) as exc_info:
            finalize(_view(_state()), OPTION, MessageInfo("creator", coins(39, "ETH")))
        assert exc_info.value.expected == coins(40, "ETH")
        assert exc_info.value.received == coins(39, "ETH")
        assert "Counter offer mismatch" in str(exc_info.value)

    def test_overpayment_is_mismatch(self):
        with pytest.raises(FundsMismatch):
            finalize(_view(_state()), OPTION, MessageInfo("creator", coins(41, "ETH")))

    def test_wrong_denom_is_mismatch(self):
        with pytest.raises(FundsMismatch):
            finalize(_view(_state()), OPTION, MessageInfo("creator", coins(40, "ATOM")))

    def test_no_funds_is_mismatch(self):
        with pytest.raises(FundsMismatch):
            finalize(_view(_state()), OPTION, MessageInfo("creator"))

    def test_reordered_multi_denom_payment_matches(self):
        state = _state(owner="someone", counter_offer=normalize_funds([(40, "ETH"), (5, "ATOM")]))
        info = MessageInfo("someone", [(5, "ATOM"), (40, "ETH")])

        result = finalize(_view(state), OPTION, info)

        # Creator receives the counter offer as recorded, not as attached
        sends = [(m.quantity, m.unit_symbol) for m in result.moves if m.dest == "creator"]
        assert sends == [(Decimal("40"), "ETH"), (Decimal("5"), "ATOM")]

    def test_partially_overlapping_payment_is_mismatch(self):
        state = _state(counter_offer=normalize_funds([(40, "ETH"), (5, "ATOM")]))
        with pytest.raises(FundsMismatch):
            finalize(_view(state), OPTION, MessageInfo("creator", [(40, "ETH"), (5, "OSMO")]))

    def test_subset_payment_is_mismatch(self):
        state = _state(counter_offer=normalize_funds([(40, "ETH"), (5, "ATOM")]))
        with pytest.raises(FundsMismatch):
            finalize(_view(state), OPTION, MessageInfo("creator", coins(40, "ETH")))

    def test_authorization_checked_before_expiry(self):
        view = _view(_state(owner="someone"), height=200_000)
        with pytest.raises(Unauthorized):
            finalize(view, OPTION, MessageInfo("anyone", coins(1, "ATOM")))

    def test_expiry_checked_before_funds(self):
        view = _view(_state(owner="someone"), height=200_000)
        with pytest.raises(Expired):
            finalize(view, OPTION, MessageInfo("someone", coins(1, "ATOM")))

    def test_creator_can_exercise_own_option(self):
        result = finalize(_view(_state()), OPTION, MessageInfo("creator", coins(40, "ETH")))
        received = [(m.quantity, m.unit_symbol) for m in result.moves if m.dest == "creator"]
        assert received == [(Decimal("40"), "ETH"), (Decimal("1"), "BTC")]

    def test_no_record_raises_not_found(self):
        with pytest.raises(NotFound):
            finalize(_view(), OPTION, MessageInfo("creator", coins(40, "ETH")))


class TestBurn:
    """Tests for burn (expiry refund)."""

    def test_before_expiry_raises(self):
        with pytest.raises(NotYetExpired) as exc_info:
            burn(_view(_state(), height=99_999), OPTION, MessageInfo("creator"))
        assert exc_info.value.expires == 100_000
        assert exc_info.value.height == 99_999
        assert "Option not yet expired" in str(exc_info.value)

    def test_at_expiry_height_refunds(self):
        result = burn(_view(_state(), height=100_000), OPTION, MessageInfo("creator"))
        assert [(m.quantity, m.unit_symbol, m.source, m.dest) for m in result.moves] == [
            (Decimal("1"), "BTC", OPTION, "creator"),
        ]
        (change,) = result.storage_changes
        assert change.is_removal
        assert result.attributes == (("action", "burn"),)

    def test_attached_funds_rejected(self):
        with pytest.raises(FundsNotEmpty) as exc_info:
            burn(_view(_state(), height=200_000), OPTION, MessageInfo("creator", coins(40, "ETH")))
        assert exc_info.value.funds == coins(40, "ETH")
        assert "Funds not empty" in str(exc_info.value)

    def test_expiry_checked_before_funds(self):
        with pytest.raises(NotYetExpired):
            burn(_view(_state(), height=50_000), OPTION, MessageInfo("creator", coins(40, "ETH")))

    @pytest.mark.parametrize("caller", ["creator", "someone", "anyone", SYSTEM_WALLET])
    def test_any_caller_may_burn(self, caller):
        result = burn(_view(_state(owner="someone"), height=200_000), OPTION, MessageInfo(caller))
        # Refund goes to the creator regardless of caller or owner
        assert [m.dest for m in result.moves] == ["creator"]

    def test_no_record_raises_not_found(self):
        with pytest.raises(NotFound):
            burn(_view(height=200_000), OPTION, MessageInfo("creator"))


class TestQuery:
    """Tests for query_config, query and helpers."""

    def test_query_config_returns_record(self):
        state = _state()
        assert query_config(_view(state), OPTION) == state

    def test_query_config_dict(self):
        result = query(_view(_state()), OPTION, Config())
        assert result == {
            'creator': 'creator',
            'owner': 'creator',
            'collateral': [{'amount': '1', 'denom': 'BTC'}],
            'counter_offer': [{'amount': '40', 'denom': 'ETH'}],
            'expires': 100_000,
        }

    def test_query_without_record_raises(self):
        with pytest.raises(NotFound):
            query_config(_view(), OPTION)

    def test_state_dict_round_trip(self):
        state = _state(counter_offer=normalize_funds([(40, "ETH"), ("0.5", "ATOM")]))
        assert OptionState.from_dict(state.to_dict()) == state

    def test_is_active(self):
        assert is_active(_view(_state()), OPTION)
        assert not is_active(_view(), OPTION)

    def test_blocks_until_expiry(self):
        assert blocks_until_expiry(_view(_state(), height=99_000), OPTION) == 1_000
        assert blocks_until_expiry(_view(_state(), height=150_000), OPTION) == 0


class TestExecuteDispatch:
    """execute() routes each message to its handler."""

    def test_transfer_message(self):
        result = execute(_view(_state()), OPTION, MessageInfo("creator"), Transfer("someone"))
        assert result.attribute("action") == "transfer"

    def test_finalize_message(self):
        result = execute(_view(_state()), OPTION, MessageInfo("creator", coins(40, "ETH")), Finalize())
        assert result.attribute("action") == "execute"

    def test_burn_message(self):
        result = execute(_view(_state(), height=100_000), OPTION, MessageInfo("anyone"), Burn())
        assert result.attribute("action") == "burn"

    def test_unknown_message_raises(self):
        with pytest.raises(ValueError, match="Unknown execute message"):
            execute(_view(_state()), OPTION, MessageInfo("creator"), Config())


class TestOptionContract:
    """Tests for the lifecycle poller."""

    def test_nothing_due_before_expiry(self):
        result = option_contract(_view(_state(), height=99_999), OPTION, 99_999)
        assert result.is_empty()

    def test_burns_on_expiry(self):
        result = option_contract(_view(_state(), height=100_000), OPTION, 100_000)
        assert result.attribute("action") == "burn"
        assert result.origin.origin_type == OriginType.LIFECYCLE
        assert result.origin.source_id == SYSTEM_WALLET

    def test_inactive_option_is_ignored(self):
        assert option_contract(_view(height=200_000), OPTION, 200_000).is_empty()

    def test_poll_height_decides_expiry(self):
        # The view lags behind the height being polled
        result = option_contract(_view(_state(), height=99_999), OPTION, 100_000)
        assert result.attribute("action") == "burn"

    def test_poll_height_before_expiry_ignores_view(self):
        assert option_contract(_view(_state(), height=100_000), OPTION, 99_999).is_empty()
