"""
cipherbet/ledger/memory.py

In-process reference ledger.

Simulates the betting contract on top of MockEncryptionBackend: rounds,
escrow, encrypted aggregates, ACL grants and settlement. Each operation
runs to completion after a single checkpoint, so every transaction is
atomic with respect to other trio tasks.

Settlement is computed here from data the ledger owns (each participant's
encrypted position and the public aggregates). Client-asserted values are
compared and logged, never trusted.

Usage:
    backend = MockEncryptionBackend()
    ledger = InMemoryLedger(backend)
    round_id = await ledger.create_round(alice, "Will it rain?", now + 3600)
"""

import time
import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional

import trio

from ..config import CONTRACT_ADDRESSES, CHAIN_ID_HARDHAT, ZERO_HANDLE
from ..errors import (
    AlreadyClaimed,
    AlreadyResolved,
    InvalidEndTime,
    InvalidName,
    NotAParticipant,
    RoundEnded,
    RoundNotFound,
    RoundNotResolved,
    RoundResolved,
    RoundStillOpen,
    ValidationError,
)
from ..models import ClaimAssertion, EncryptedInput, Handle, Round, UserBet, Winner
from ..protocol.rewards import compute_reward_wei, winning_side_total
from ..signing import checksum_address
from ..backend.mock import MockEncryptionBackend
from .base import Ledger

logger = logging.getLogger("cipherbet.ledger.memory")


@dataclass
class _Position:
    """One participant's escrow in a round; units stay encrypted."""
    value_wei: int = 0
    yes_handle: Handle = ZERO_HANDLE
    no_handle: Handle = ZERO_HANDLE
    bets: int = 0
    has_claimed: bool = False


@dataclass
class _RoundRecord:
    round: Round
    pool_wei: int = 0
    paid_wei: int = 0
    positions: Dict[str, _Position] = field(default_factory=dict)


class InMemoryLedger(Ledger):
    """
    Deterministic, clock-injectable simulation of the betting contract.

    Args:
        backend: Mock coprocessor that holds the ciphertexts
        contract_address: Address the handles are bound to
        clock: Returns the current unix time (block timestamp)
    """

    def __init__(
        self,
        backend: MockEncryptionBackend,
        contract_address: str = CONTRACT_ADDRESSES[CHAIN_ID_HARDHAT],
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        self.contract_address = checksum_address(contract_address)
        self.clock = clock

        self._rounds: List[_RoundRecord] = []

        # Payouts received per address (wei)
        self.balances: Dict[str, int] = {}
        # Names of executed transactions, in order
        self.transactions: List[str] = []

    # ========================================================================
    # TRANSACTIONS
    # ========================================================================

    async def create_round(self, creator: str, name: str, end_time: int) -> int:
        await trio.lowlevel.checkpoint()
        creator = checksum_address(creator)
        if not name or not name.strip():
            raise InvalidName("Round name must not be empty")
        if end_time <= self.clock():
            raise InvalidEndTime("End time must be in the future")

        round_id = len(self._rounds)
        self._rounds.append(_RoundRecord(
            round=Round(id=round_id, creator=creator, name=name, end_time=int(end_time)),
        ))
        self.transactions.append("createRound")
        logger.info(f"Round {round_id} created by {creator[:10]}...: {name!r} ends {end_time}")
        return round_id

    async def place_bet(
        self,
        round_id: int,
        participant: str,
        encrypted: EncryptedInput,
        value_wei: int,
    ) -> None:
        await trio.lowlevel.checkpoint()
        participant = checksum_address(participant)
        record = self._get(round_id)
        current = record.round

        if current.resolved:
            raise RoundResolved("Round already resolved", round_id=round_id)
        if self.clock() >= current.end_time:
            raise RoundEnded("Round has ended", round_id=round_id)
        if value_wei < 0:
            raise ValidationError("Bet value must not be negative", round_id=round_id)

        amount, choice = self.backend.verify_input(encrypted, self.contract_address, participant)

        backend = self.backend
        zero = backend.trivial_encrypt(0)
        to_yes = backend.select(choice, amount, zero)
        to_no = backend.select(choice, zero, amount)

        current.yes_amount = backend.add(current.yes_amount, to_yes)
        current.no_amount = backend.add(current.no_amount, to_no)
        current.total_amount = backend.add(current.total_amount, amount)
        for handle in (current.yes_amount, current.no_amount, current.total_amount):
            backend.allow(handle, self.contract_address)

        position = record.positions.setdefault(participant, _Position())
        position.yes_handle = backend.add(position.yes_handle, to_yes)
        position.no_handle = backend.add(position.no_handle, to_no)
        position.value_wei += value_wei
        position.bets += 1

        record.pool_wei += value_wei
        current.participant_count += 1
        self.transactions.append("placeBet")
        logger.debug(f"Bet placed in round {round_id} by {participant[:10]}... ({value_wei} wei)")

    async def resolve_round(self, round_id: int, caller: str) -> None:
        await trio.lowlevel.checkpoint()
        checksum_address(caller)
        record = self._get(round_id)
        current = record.round

        if current.resolved:
            raise AlreadyResolved("Round already resolved", round_id=round_id)
        if self.clock() < current.end_time:
            raise RoundStillOpen("Round has not ended yet", round_id=round_id)

        current.resolved = True
        for handle in (current.yes_amount, current.no_amount, current.total_amount):
            self.backend.make_public(handle)
        self.transactions.append("resolveRound")
        logger.info(f"Round {round_id} resolved")

    async def authorize_participant(self, round_id: int, participant: str) -> None:
        await trio.lowlevel.checkpoint()
        participant = checksum_address(participant)
        record = self._get(round_id)
        if participant not in record.positions:
            raise NotAParticipant("Participant has not placed a bet", round_id=round_id)

        current = record.round
        for handle in (current.yes_amount, current.no_amount, current.total_amount):
            self.backend.allow(handle, participant)
        self.transactions.append("authorizeParticipant")

    async def claim_reward(
        self,
        round_id: int,
        claimant: str,
        assertion: Optional[ClaimAssertion] = None,
    ) -> int:
        await trio.lowlevel.checkpoint()
        claimant = checksum_address(claimant)
        record = self._get(round_id)

        if not record.round.resolved:
            raise RoundNotResolved("Round not resolved", round_id=round_id)
        position = record.positions.get(claimant)
        if position is None:
            raise NotAParticipant("No bet placed in this round", round_id=round_id)
        if position.has_claimed:
            raise AlreadyClaimed("Reward already claimed", round_id=round_id)

        reward = self._settle(record, position)
        if assertion is not None and assertion.reward_wei != reward:
            logger.warning(
                f"Claim for round {round_id} by {claimant[:10]}... asserted "
                f"{assertion.reward_wei} wei, ledger computed {reward} wei"
            )

        position.has_claimed = True
        record.paid_wei += reward
        self.balances[claimant] = self.balances.get(claimant, 0) + reward
        self.transactions.append("claimReward")
        logger.info(f"Round {round_id}: paid {reward} wei to {claimant[:10]}...")
        return reward

    # ========================================================================
    # VIEWS
    # ========================================================================

    async def get_round_info(self, round_id: int) -> Round:
        await trio.lowlevel.checkpoint()
        return replace(
            self._get(round_id).round,
            yes_amount=ZERO_HANDLE,
            no_amount=ZERO_HANDLE,
            total_amount=ZERO_HANDLE,
        )

    async def get_yes_amount(self, round_id: int) -> Handle:
        await trio.lowlevel.checkpoint()
        return self._get(round_id).round.yes_amount

    async def get_no_amount(self, round_id: int) -> Handle:
        await trio.lowlevel.checkpoint()
        return self._get(round_id).round.no_amount

    async def get_total_amount(self, round_id: int) -> Handle:
        await trio.lowlevel.checkpoint()
        return self._get(round_id).round.total_amount

    async def has_participated(self, round_id: int, address: str) -> bool:
        await trio.lowlevel.checkpoint()
        return checksum_address(address) in self._get(round_id).positions

    async def get_user_bet(self, round_id: int, address: str) -> UserBet:
        await trio.lowlevel.checkpoint()
        position = self._get(round_id).positions.get(checksum_address(address))
        if position is None:
            return UserBet(value_wei=0, has_claimed=False)
        return UserBet(value_wei=position.value_wei, has_claimed=position.has_claimed)

    async def get_round_total_pool(self, round_id: int) -> int:
        await trio.lowlevel.checkpoint()
        return self._get(round_id).pool_wei

    async def round_counter(self) -> int:
        await trio.lowlevel.checkpoint()
        return len(self._rounds)

    def escrow_balance(self, round_id: int) -> int:
        """Value still held for a round after payouts."""
        record = self._get(round_id)
        return record.pool_wei - record.paid_wei

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _get(self, round_id: int) -> _RoundRecord:
        if not isinstance(round_id, int) or not 0 <= round_id < len(self._rounds):
            raise RoundNotFound(f"Round {round_id} does not exist", round_id=round_id)
        return self._rounds[round_id]

    def _settle(self, record: _RoundRecord, position: _Position) -> int:
        backend = self.backend
        current = record.round
        yes_total = backend.oracle_decrypt(current.yes_amount)
        no_total = backend.oracle_decrypt(current.no_amount)

        winner = Winner.from_totals(yes_total, no_total)
        if winner is Winner.NONE:
            return 0

        units_handle = position.yes_handle if winner is Winner.YES else position.no_handle
        units = backend.oracle_decrypt(units_handle)
        total = winning_side_total(yes_total, no_total, winner)
        return compute_reward_wei(units, total, record.pool_wei)
