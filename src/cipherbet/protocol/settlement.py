"""
cipherbet/protocol/settlement.py

Claim settlement.

The ledger decides the payout and flips hasClaimed exactly once; this
module pre-checks the claim against the cached result so obviously
impossible claims never become transactions, then keeps the cache in step
with the ledger.
"""

import logging
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Optional

from ..errors import AlreadyClaimed, NoBetRecord, NotAParticipant, NothingToClaim, RoundNotResolved
from ..ledger.base import Ledger
from ..models import ClaimAssertion, wei_to_native
from ..signing import checksum_address
from .result_cache import ResultCache

logger = logging.getLogger("cipherbet.protocol.settlement")


@dataclass
class ClaimReceipt:
    """Outcome of a successful claim."""
    round_id: int
    claimant: str
    paid_wei: int
    asserted_wei: int = 0

    @property
    def paid_native(self) -> Decimal:
        return wei_to_native(self.paid_wei)

    def to_dict(self) -> dict:
        return asdict(self)


class ClaimSettlement:
    """Submits reward claims for one claimant."""

    def __init__(self, ledger: Ledger, cache: ResultCache, claimant: str):
        self.ledger = ledger
        self.cache = cache
        self.claimant = checksum_address(claimant)

    async def claim(self, round_id: int) -> ClaimReceipt:
        """
        Claim the reward for a round using the cached (or freshly revealed) result.

        Raises:
            RoundNotResolved: round not resolved yet
            NotAParticipant: this account never bet in the round
            AlreadyClaimed: ledger or cache says the reward was paid
            NothingToClaim: lost, tied, or zero reward
            NoBetRecord: the bet is on the ledger but its units were never
                recorded here; ledgers that settle server-side still accept
                submit(round_id) without an assertion
        """
        info = await self.ledger.get_round_info(round_id)
        if not info.resolved:
            raise RoundNotResolved("Round not resolved", round_id=round_id)

        result = await self.cache.get(round_id)
        if not result.resolved:
            # Revealed before resolution; totals may have changed since
            self.cache.invalidate(round_id)
            result = await self.cache.get(round_id)

        if result.has_claimed:
            raise AlreadyClaimed("Reward already claimed", round_id=round_id)
        if result.user_bet_units == 0:
            if not await self.ledger.has_participated(round_id, self.claimant):
                raise NotAParticipant("No bet placed in this round", round_id=round_id)
            raise NoBetRecord("No local record of this bet", round_id=round_id)
        if not result.user_won or result.reward_wei <= 0:
            raise NothingToClaim("No reward to claim for this round", round_id=round_id)

        return await self.submit(round_id, result.claim_assertion())

    async def submit(self, round_id: int, assertion: Optional[ClaimAssertion] = None) -> ClaimReceipt:
        """
        Send the claim transaction and mark the cached result claimed.

        Raises:
            RoundNotResolved, NotAParticipant, AlreadyClaimed
        """
        try:
            paid = await self.ledger.claim_reward(round_id, self.claimant, assertion)
        except AlreadyClaimed:
            # Ledger is the source of truth; bring the cache in line
            await self.cache.mark_claimed(round_id)
            raise

        await self.cache.mark_claimed(round_id)
        asserted = assertion.reward_wei if assertion is not None else 0
        logger.info(f"Claimed {paid} wei from round {round_id} for {self.claimant[:10]}...")
        return ClaimReceipt(round_id=round_id, claimant=self.claimant, paid_wei=paid, asserted_wei=asserted)
