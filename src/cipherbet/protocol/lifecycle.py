"""
cipherbet/protocol/lifecycle.py

Round lifecycle: create, bet, resolve.

    OPEN ──(now >= end_time)──> ENDED ──resolve──> RESOLVED

State is derived from (resolved, now, end_time) on every read and never
stored. Parameters are validated before any ledger call; the ledger
re-checks everything, so a stale local view can only produce a rejected
transaction, never a wrong one.
"""

import time
import logging
from decimal import InvalidOperation
from typing import Callable, Optional

from ..config import UNITS_PER_NATIVE
from ..errors import (
    AlreadyResolved,
    InvalidEndTime,
    InvalidName,
    InvalidPlaintext,
    RoundEnded,
    RoundResolved,
)
from ..ledger.base import Ledger
from ..models import (
    EncryptedInput,
    LocalBetRecord,
    NativeAmount,
    Round,
    RoundState,
    native_to_units,
    native_to_wei,
    round_state,
)
from ..signing import checksum_address
from .encrypted_input import EncryptedInputBuilder
from .storage import BetRecordStore

logger = logging.getLogger("cipherbet.protocol.lifecycle")


class RoundLifecycleController:
    """
    Drives rounds through their lifecycle on behalf of one account.

    Args:
        ledger: Round storage
        builder: Encrypts bets for this ledger's contract
        address: Acting account
        store: Where placed bets are recorded locally
        clock: Returns the current unix time
    """

    def __init__(
        self,
        ledger: Ledger,
        builder: EncryptedInputBuilder,
        address: str,
        store: Optional[BetRecordStore] = None,
        clock: Callable[[], float] = time.time,
        units_per_native: int = UNITS_PER_NATIVE,
    ):
        self.ledger = ledger
        self.builder = builder
        self.address = checksum_address(address)
        self.store = store or BetRecordStore()
        self.clock = clock
        self.units_per_native = units_per_native

    # ========================================================================
    # CREATE
    # ========================================================================

    async def create(self, name: str, end_time: int) -> Round:
        """
        Create a round ending at `end_time` (unix seconds).

        Raises:
            InvalidName: blank name
            InvalidEndTime: end time not strictly in the future
        """
        if not isinstance(name, str) or not name.strip():
            raise InvalidName("Round name must not be empty")
        if int(end_time) <= self.clock():
            raise InvalidEndTime(f"End time {end_time} is not in the future")

        round_id = await self.ledger.create_round(self.address, name.strip(), int(end_time))
        logger.info(f"Created round {round_id}: {name.strip()!r}")
        return await self.ledger.get_round_info(round_id)

    # ========================================================================
    # BET
    # ========================================================================

    def to_units(self, amount_native: NativeAmount) -> int:
        """Bet units for a native amount (floored); must be positive."""
        try:
            units = native_to_units(amount_native, self.units_per_native)
        except (InvalidOperation, ValueError, TypeError, OverflowError) as e:
            raise InvalidPlaintext(f"Invalid bet amount {amount_native!r}") from e
        if units <= 0:
            raise InvalidPlaintext(
                f"Bet of {amount_native} is below the minimum of 1/{self.units_per_native}"
            )
        return units

    async def place_bet(self, round_id: int, amount_native: NativeAmount, choice: bool) -> LocalBetRecord:
        """
        Encrypt and place a bet, escrowing `amount_native`.

        Returns:
            The participant's accumulated local record for the round

        Raises:
            InvalidPlaintext, RoundNotFound, RoundEnded, RoundResolved,
            EncryptionBackendUnavailable, LedgerUnavailable
        """
        units = self.to_units(amount_native)
        value_wei = native_to_wei(amount_native)

        info = await self.ledger.get_round_info(round_id)
        state = round_state(info.resolved, self.clock(), info.end_time)
        if state is RoundState.RESOLVED:
            raise RoundResolved("Round already resolved", round_id=round_id)
        if state is RoundState.ENDED:
            raise RoundEnded("Round has ended", round_id=round_id)

        encrypted = await self.builder.build(self.ledger.contract_address, self.address, units, choice)
        await self.submit_bet(round_id, encrypted, value_wei)

        record = await self.store.record_bet(round_id, self.address, units, bool(choice), value_wei)
        logger.info(
            f"Bet placed in round {round_id}: {units} units on {'YES' if choice else 'NO'}"
        )
        return record

    async def submit_bet(self, round_id: int, encrypted: EncryptedInput, value_wei: int) -> None:
        """Submit an already-encrypted bet."""
        await self.ledger.place_bet(round_id, self.address, encrypted, value_wei)

    # ========================================================================
    # RESOLVE
    # ========================================================================

    async def resolve(self, round_id: int) -> Round:
        """
        Resolve an ended round. Resolving twice is a no-op.

        Raises:
            RoundNotFound, RoundStillOpen
        """
        try:
            await self.ledger.resolve_round(round_id, self.address)
            logger.info(f"Resolved round {round_id}")
        except AlreadyResolved:
            logger.info(f"Round {round_id} was already resolved")
        return await self.ledger.get_round_info(round_id)

    async def state(self, round_id: int) -> RoundState:
        info = await self.ledger.get_round_info(round_id)
        return round_state(info.resolved, self.clock(), info.end_time)

    async def get_record(self, round_id: int) -> Optional[LocalBetRecord]:
        return await self.store.get(round_id, self.address)
