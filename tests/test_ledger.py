"""
cipherbet/tests/test_ledger.py

Tests for the in-process reference ledger:
- Round creation and bet placement
- Resolution and public aggregates
- Participant authorization
- Server-side settlement and claim idempotence
"""

import logging

import pytest

from cipherbet.config import ZERO_HANDLE
from cipherbet.errors import (
    AlreadyClaimed,
    AlreadyResolved,
    AuthorizationDenied,
    InvalidEndTime,
    InvalidName,
    NotAParticipant,
    RoundEnded,
    RoundNotFound,
    RoundNotResolved,
    RoundResolved,
    RoundStillOpen,
)
from cipherbet.models import ClaimAssertion, is_zero_handle


ETH = 10 ** 18
HOUR = 3600


# ============================================================================
# Fixtures
# ============================================================================

async def bet(ledger, wallet, round_id, units, choice, value_wei):
    encrypted = await ledger.backend.encrypt_input(ledger.contract_address, wallet.address, units, choice)
    await ledger.place_bet(round_id, wallet.address, encrypted, value_wei)


@pytest.fixture
async def round_id(ledger, clock, alice):
    return await ledger.create_round(alice.address, "Test", int(clock()) + HOUR)


# ============================================================================
# Creation
# ============================================================================

class TestCreateRound:
    """Test round allocation."""

    @pytest.mark.trio
    async def test_ids_are_sequential(self, ledger, clock, alice):
        first = await ledger.create_round(alice.address, "One", int(clock()) + HOUR)
        second = await ledger.create_round(alice.address, "Two", int(clock()) + HOUR)

        assert (first, second) == (0, 1)
        assert await ledger.round_counter() == 2

    @pytest.mark.trio
    async def test_new_round_is_open_and_empty(self, ledger, clock, alice, round_id):
        info = await ledger.get_round_info(round_id)

        assert info.creator == alice.address
        assert info.name == "Test"
        assert info.resolved is False
        assert info.participant_count == 0
        assert is_zero_handle(await ledger.get_yes_amount(round_id))
        assert await ledger.get_round_total_pool(round_id) == 0

    @pytest.mark.trio
    async def test_end_time_must_be_future(self, ledger, clock, alice):
        with pytest.raises(InvalidEndTime):
            await ledger.create_round(alice.address, "Late", int(clock()))

    @pytest.mark.trio
    async def test_name_required(self, ledger, clock, alice):
        with pytest.raises(InvalidName):
            await ledger.create_round(alice.address, "   ", int(clock()) + HOUR)

    @pytest.mark.trio
    async def test_unknown_round(self, ledger):
        with pytest.raises(RoundNotFound):
            await ledger.get_round_info(7)


# ============================================================================
# Betting
# ============================================================================

class TestPlaceBet:
    """Test bet placement and aggregation."""

    @pytest.mark.trio
    async def test_two_participants(self, ledger, alice, bob, round_id):
        """create -> A bets 100 yes -> B bets 50 no."""
        await bet(ledger, alice, round_id, 100, True, ETH // 10)
        await bet(ledger, bob, round_id, 50, False, ETH // 10)

        info = await ledger.get_round_info(round_id)
        assert info.participant_count == 2
        assert await ledger.has_participated(round_id, alice.address)
        assert await ledger.has_participated(round_id, bob.address)
        assert await ledger.get_round_total_pool(round_id) == ETH // 5

        backend = ledger.backend
        assert backend.oracle_decrypt(await ledger.get_yes_amount(round_id)) == 100
        assert backend.oracle_decrypt(await ledger.get_no_amount(round_id)) == 50
        assert backend.oracle_decrypt(await ledger.get_total_amount(round_id)) == 150

    @pytest.mark.trio
    async def test_info_hides_handles(self, ledger, alice, round_id):
        await bet(ledger, alice, round_id, 100, True, ETH // 10)
        info = await ledger.get_round_info(round_id)
        assert info.yes_amount == ZERO_HANDLE

    @pytest.mark.trio
    async def test_each_bet_counts_once(self, ledger, alice, round_id):
        await bet(ledger, alice, round_id, 100, True, ETH // 10)
        await bet(ledger, alice, round_id, 20, False, ETH // 50)

        info = await ledger.get_round_info(round_id)
        user_bet = await ledger.get_user_bet(round_id, alice.address)
        assert info.participant_count == 2
        assert user_bet.value_wei == ETH // 10 + ETH // 50
        assert user_bet.has_claimed is False

    @pytest.mark.trio
    async def test_after_end_time(self, ledger, clock, alice, round_id):
        clock.advance(HOUR)
        with pytest.raises(RoundEnded):
            await bet(ledger, alice, round_id, 100, True, ETH // 10)
        assert (await ledger.get_round_info(round_id)).participant_count == 0

    @pytest.mark.trio
    async def test_after_resolution(self, ledger, clock, alice, round_id):
        clock.advance(HOUR)
        await ledger.resolve_round(round_id, alice.address)
        with pytest.raises(RoundResolved):
            await bet(ledger, alice, round_id, 100, True, ETH // 10)

    @pytest.mark.trio
    async def test_unknown_round(self, ledger, alice):
        with pytest.raises(RoundNotFound):
            await bet(ledger, alice, 3, 100, True, ETH // 10)

    @pytest.mark.trio
    async def test_input_replayed_by_other_account(self, ledger, alice, bob, round_id):
        encrypted = await ledger.backend.encrypt_input(ledger.contract_address, alice.address, 100, True)
        with pytest.raises(AuthorizationDenied):
            await ledger.place_bet(round_id, bob.address, encrypted, ETH // 10)
        assert not await ledger.has_participated(round_id, bob.address)


# ============================================================================
# Resolution & authorization
# ============================================================================

class TestResolveRound:
    """Test resolution rules."""

    @pytest.mark.trio
    async def test_before_end_time(self, ledger, alice, round_id):
        with pytest.raises(RoundStillOpen):
            await ledger.resolve_round(round_id, alice.address)

    @pytest.mark.trio
    async def test_resolve_once(self, ledger, clock, alice, bob, round_id):
        await bet(ledger, alice, round_id, 100, True, ETH // 10)
        clock.advance(HOUR)

        await ledger.resolve_round(round_id, bob.address)
        info = await ledger.get_round_info(round_id)
        assert info.resolved

        for getter in (ledger.get_yes_amount, ledger.get_no_amount, ledger.get_total_amount):
            assert ledger.backend.is_public(await getter(round_id))

        with pytest.raises(AlreadyResolved):
            await ledger.resolve_round(round_id, alice.address)


class TestAuthorizeParticipant:
    """Test decrypt grants on unresolved aggregates."""

    @pytest.mark.trio
    async def test_participant_granted(self, ledger, alice, round_id):
        await bet(ledger, alice, round_id, 100, True, ETH // 10)
        await ledger.authorize_participant(round_id, alice.address)
        # Idempotent
        await ledger.authorize_participant(round_id, alice.address)

        handle = await ledger.get_total_amount(round_id)
        assert ledger.backend.is_allowed(handle, alice.address)

    @pytest.mark.trio
    async def test_non_participant_rejected(self, ledger, alice, bob, round_id):
        await bet(ledger, alice, round_id, 100, True, ETH // 10)
        with pytest.raises(NotAParticipant):
            await ledger.authorize_participant(round_id, bob.address)


# ============================================================================
# Settlement
# ============================================================================

class TestClaimReward:
    """Test server-side settlement."""

    @pytest.fixture
    async def settled_round(self, ledger, clock, alice, bob, carol, round_id):
        """yes=2000 (alice 500, carol 1500), no=1500 (bob), pool=3.5."""
        await bet(ledger, alice, round_id, 500, True, ETH // 2)
        await bet(ledger, bob, round_id, 1500, False, 3 * ETH // 2)
        await bet(ledger, carol, round_id, 1500, True, 3 * ETH // 2)
        clock.advance(HOUR)
        await ledger.resolve_round(round_id, alice.address)
        return round_id

    @pytest.mark.trio
    async def test_before_resolution(self, ledger, alice, round_id):
        await bet(ledger, alice, round_id, 100, True, ETH // 10)
        with pytest.raises(RoundNotResolved):
            await ledger.claim_reward(round_id, alice.address)

    @pytest.mark.trio
    async def test_winner_paid_proportionally(self, ledger, alice, settled_round):
        paid = await ledger.claim_reward(settled_round, alice.address)

        assert paid == 875 * 10 ** 15
        assert ledger.balances[alice.address] == paid
        assert (await ledger.get_user_bet(settled_round, alice.address)).has_claimed

    @pytest.mark.trio
    async def test_second_claim_pays_nothing(self, ledger, alice, settled_round):
        await ledger.claim_reward(settled_round, alice.address)
        with pytest.raises(AlreadyClaimed):
            await ledger.claim_reward(settled_round, alice.address)
        assert ledger.balances[alice.address] == 875 * 10 ** 15

    @pytest.mark.trio
    async def test_loser_paid_zero(self, ledger, bob, settled_round):
        assert await ledger.claim_reward(settled_round, bob.address) == 0

    @pytest.mark.trio
    async def test_non_participant(self, ledger, settled_round):
        outsider = "0x000000000000000000000000000000000000dead"
        with pytest.raises(NotAParticipant):
            await ledger.claim_reward(settled_round, outsider)

    @pytest.mark.trio
    async def test_asserted_amount_not_trusted(self, ledger, alice, settled_round, caplog):
        inflated = ClaimAssertion(
            reward_wei=35 * ETH // 10,
            bet_units=500,
            choice=True,
            winning_side=True,
            winning_side_total_units=500,
        )
        with caplog.at_level(logging.WARNING, logger="cipherbet.ledger.memory"):
            paid = await ledger.claim_reward(settled_round, alice.address, inflated)

        assert paid == 875 * 10 ** 15
        assert "asserted" in caplog.text

    @pytest.mark.trio
    async def test_payouts_never_exceed_pool(self, ledger, alice, bob, carol, settled_round):
        total = 0
        for wallet in (alice, bob, carol):
            total += await ledger.claim_reward(settled_round, wallet.address)

        assert total <= await ledger.get_round_total_pool(settled_round)
        assert ledger.escrow_balance(settled_round) >= 0

    @pytest.mark.trio
    async def test_tie_pays_nobody(self, ledger, clock, alice, bob, round_id):
        await bet(ledger, alice, round_id, 100, True, ETH)
        await bet(ledger, bob, round_id, 100, False, ETH)
        clock.advance(HOUR)
        await ledger.resolve_round(round_id, alice.address)

        assert await ledger.claim_reward(round_id, alice.address) == 0
        assert ledger.escrow_balance(round_id) == 2 * ETH
