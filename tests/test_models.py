"""
cipherbet/tests/test_models.py

Tests for data structures, unit conversion and round state.
"""

import pytest
from decimal import Decimal

from cipherbet.config import ZERO_HANDLE
from cipherbet.errors import (
    AlreadyClaimed,
    AuthorizationDenied,
    BackendUnreachable,
    InvalidEndTime,
    MESSAGE_FUNDS_SAFE,
    MESSAGE_NOT_POSSIBLE,
)
from cipherbet.models import (
    LocalBetRecord,
    Round,
    RoundResult,
    RoundState,
    Winner,
    is_zero_handle,
    native_to_units,
    native_to_wei,
    round_state,
    wei_to_native,
)


class TestRoundState:
    """Test the derived lifecycle state."""

    def test_open_before_end(self):
        assert round_state(False, 99, 100) is RoundState.OPEN

    def test_ended_at_end_time(self):
        assert round_state(False, 100, 100) is RoundState.ENDED

    def test_resolved_wins_over_time(self):
        assert round_state(True, 50, 100) is RoundState.RESOLVED
        assert round_state(True, 500, 100) is RoundState.RESOLVED

    def test_round_helpers(self):
        round_ = Round(id=0, creator="0xabc", name="Test", end_time=1000)
        assert round_.state(now=999) is RoundState.OPEN
        assert round_.time_remaining(now=400) == 600
        assert round_.time_remaining(now=2000) == 0


class TestUnits:
    """Test native/unit/wei conversion."""

    def test_native_to_units_floors(self):
        assert native_to_units("0.1") == 100
        assert native_to_units("0.1239") == 123
        assert native_to_units("0.0009") == 0

    def test_float_input(self):
        assert native_to_units(0.1) == 100
        assert native_to_wei(0.1) == 10 ** 17

    def test_wei_round_trip(self):
        assert wei_to_native(875 * 10 ** 15) == Decimal("0.875")


class TestZeroHandle:
    """Test empty handle detection."""

    @pytest.mark.parametrize("handle", [ZERO_HANDLE, "0x", "0x0", "0", "", None])
    def test_empty_forms(self, handle):
        assert is_zero_handle(handle)

    def test_real_handle(self):
        assert not is_zero_handle("0x" + "ab" * 32)


class TestLocalBetRecord:
    """Test accumulation of a participant's bets."""

    def test_single_side(self):
        record = LocalBetRecord(round_id=1, participant="0xabc")
        record.add(100, True, 10 ** 17)
        record.add(50, True, 5 * 10 ** 16)

        assert record.yes_units == 150
        assert record.value_wei == 15 * 10 ** 16
        assert record.choice is True

    def test_both_sides_has_no_single_choice(self):
        record = LocalBetRecord(round_id=1, participant="0xabc")
        record.add(100, True, 0)
        record.add(40, False, 0)

        assert record.choice is None
        assert record.units_on(False) == 40
        assert record.total_units == 140

    def test_from_dict_fills_defaults(self):
        record = LocalBetRecord.from_dict({"round_id": 2, "participant": "0xabc", "updated_at": 1.0})
        assert record.yes_units == 0
        assert record.no_units == 0


class TestRoundResult:
    """Test the immutable result record."""

    def _result(self, **kwargs):
        values = dict(
            round_id=0, yes_amount=2000, no_amount=1500, total_amount=3500,
            winner=Winner.YES, user_bet_units=500, user_choice=True, user_won=True,
            reward_wei=875 * 10 ** 15, winning_side_total_units=2000,
            total_pool_wei=35 * 10 ** 17,
        )
        values.update(kwargs)
        return RoundResult(**values)

    def test_with_claimed_returns_new_instance(self):
        result = self._result()
        claimed = result.with_claimed()

        assert claimed.has_claimed
        assert not result.has_claimed
        assert not claimed.can_claim

    def test_only_resolved_result_can_claim(self):
        assert not self._result().can_claim
        assert self._result(resolved=True).can_claim

    def test_claim_assertion(self):
        assertion = self._result().claim_assertion()
        assert assertion.reward_wei == 875 * 10 ** 15
        assert assertion.bet_units == 500
        assert assertion.choice is True
        assert assertion.winning_side is True
        assert assertion.winning_side_total_units == 2000

    def test_mixed_bettor_claims_on_winning_side(self):
        assertion = self._result(user_choice=None, winner=Winner.NO).claim_assertion()
        assert assertion.choice is False
        assert assertion.winning_side is False

    def test_to_dict(self):
        data = self._result().to_dict()
        assert data["winner"] == "yes"
        assert data["reward_wei"] == 875 * 10 ** 15


class TestErrors:
    """Test the error taxonomy surface."""

    def test_state_conflict_not_retryable(self):
        error = AlreadyClaimed("Reward already claimed", round_id=3)
        assert not error.retryable
        assert error.round_id == 3
        assert error.user_message.startswith(MESSAGE_NOT_POSSIBLE)

    def test_network_failure_retryable(self):
        error = BackendUnreachable("relayer down")
        assert error.retryable
        assert error.user_message.startswith(MESSAGE_FUNDS_SAFE)

    def test_authorization_retryable(self):
        assert AuthorizationDenied().retryable

    def test_validation_message(self):
        error = InvalidEndTime("too early")
        assert error.kind == "InvalidEndTime"
        assert "too early" in error.user_message
