"""
cipherbet/protocol/rewards.py

Deterministic proportional reward calculation.

Winners split the whole pool in proportion to the units they put on the
winning side:

    reward = bet_units / winning_side_total_units * total_pool

The pool is the escrowed native value read from the ledger, never derived
from decrypted unit counts. Arithmetic is integer wei with floor division,
so the sum of all winners' rewards never exceeds the pool; what is left
over (strictly less than one wei per winner) stays in escrow.

Any two observers holding the same decrypted aggregates and the same
ledger pool value compute the same reward.

Usage:
    from cipherbet.protocol.rewards import RewardCalculator

    calculator = RewardCalculator()
    outcome = calculator.calculate_for_record(yes_amount, no_amount, total_pool_wei, record)
"""

import logging
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from ..models import LocalBetRecord, RoundResult, Winner, wei_to_native

logger = logging.getLogger("cipherbet.protocol.rewards")


# Upper bound on rounding loss per winner
ROUNDING_EPSILON_WEI = 1


def determine_winner(yes_amount: int, no_amount: int) -> Winner:
    """Larger side wins; equal sides (including 0/0) is a tie with no winner."""
    return Winner.from_totals(yes_amount, no_amount)


def winning_side_total(yes_amount: int, no_amount: int, winner: Winner) -> int:
    if winner is Winner.YES:
        return yes_amount
    if winner is Winner.NO:
        return no_amount
    return 0


def compute_reward_wei(bet_units: int, winning_total_units: int, total_pool_wei: int) -> int:
    """
    Proportional share of the pool, floored to whole wei.

    Returns 0 when the winning side is empty rather than dividing by zero.
    """
    if winning_total_units <= 0 or bet_units <= 0 or total_pool_wei <= 0:
        return 0
    # Never pay more than the whole pool, even for inconsistent inputs
    bet_units = min(bet_units, winning_total_units)
    return bet_units * total_pool_wei // winning_total_units


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class RewardOutcome:
    """Reward computation for one participant."""
    winner: Winner
    user_won: bool
    bet_units: int                  # units on the winning side (0 if lost)
    winning_side_total_units: int
    total_pool_wei: int
    reward_wei: int

    @property
    def reward_native(self) -> Decimal:
        return wei_to_native(self.reward_wei)

    def to_dict(self) -> dict:
        result = asdict(self)
        result['winner'] = self.winner.value
        return result


@dataclass
class RewardEntry:
    """A single payout in a full-round distribution."""
    address: str
    bet_units: int
    amount_wei: int

    def to_dict(self) -> dict:
        return asdict(self)


# ============================================================================
# CALCULATOR
# ============================================================================

class RewardCalculator:
    """
    Computes rewards from decrypted aggregates and the ledger pool value.

    Stateless; an instance exists so callers can swap in a subclass with a
    different payout policy.
    """

    def calculate(
        self,
        yes_amount: int,
        no_amount: int,
        total_pool_wei: int,
        bet_units: int,
        choice: Optional[bool],
    ) -> RewardOutcome:
        """
        Reward for one participant who put `bet_units` on `choice`.

        Args:
            yes_amount: Decrypted YES aggregate (units)
            no_amount: Decrypted NO aggregate (units)
            total_pool_wei: Escrowed pool as reported by the ledger
            bet_units: Participant's units on `choice`
            choice: True = YES, False = NO, None = unknown

        Returns:
            RewardOutcome (reward 0 for a tie, a loss, or an unknown choice)
        """
        winner = determine_winner(yes_amount, no_amount)
        winning_total = winning_side_total(yes_amount, no_amount, winner)

        if winner is Winner.NONE or choice is None or choice != winner.choice:
            return RewardOutcome(
                winner=winner,
                user_won=False,
                bet_units=0,
                winning_side_total_units=winning_total,
                total_pool_wei=total_pool_wei,
                reward_wei=0,
            )

        reward = compute_reward_wei(bet_units, winning_total, total_pool_wei)
        return RewardOutcome(
            winner=winner,
            user_won=bet_units > 0,
            bet_units=bet_units,
            winning_side_total_units=winning_total,
            total_pool_wei=total_pool_wei,
            reward_wei=reward,
        )

    def calculate_for_record(
        self,
        yes_amount: int,
        no_amount: int,
        total_pool_wei: int,
        record: Optional[LocalBetRecord],
    ) -> RewardOutcome:
        """
        Reward for a locally recorded position.

        A participant who backed both sides is paid on the units they put
        on the winning side.
        """
        if record is None:
            return self.calculate(yes_amount, no_amount, total_pool_wei, 0, None)

        winner = determine_winner(yes_amount, no_amount)
        if winner is Winner.NONE:
            return self.calculate(yes_amount, no_amount, total_pool_wei, 0, record.choice)

        units = record.units_on(winner.choice)
        choice = winner.choice if units > 0 else record.choice
        return self.calculate(yes_amount, no_amount, total_pool_wei, units, choice)

    def build_result(
        self,
        round_id: int,
        yes_amount: int,
        no_amount: int,
        total_amount: int,
        total_pool_wei: int,
        participant: Optional[str] = None,
        record: Optional[LocalBetRecord] = None,
        has_claimed: bool = False,
        resolved: bool = False,
    ) -> RoundResult:
        """Combine revealed aggregates and the caller's position into a RoundResult."""
        outcome = self.calculate_for_record(yes_amount, no_amount, total_pool_wei, record)
        if record is not None and outcome.user_won:
            user_units = outcome.bet_units
        else:
            user_units = record.total_units if record is not None else 0

        return RoundResult(
            round_id=round_id,
            yes_amount=yes_amount,
            no_amount=no_amount,
            total_amount=total_amount,
            winner=outcome.winner,
            participant=participant,
            user_bet_units=user_units,
            user_choice=record.choice if record is not None else None,
            user_won=outcome.user_won,
            reward_wei=outcome.reward_wei,
            winning_side_total_units=outcome.winning_side_total_units,
            total_pool_wei=total_pool_wei,
            has_claimed=has_claimed,
            resolved=resolved,
        )

    def calculate_round_rewards(
        self,
        yes_amount: int,
        no_amount: int,
        total_pool_wei: int,
        positions: Dict[str, Tuple[int, int]],
    ) -> Tuple[List[RewardEntry], int]:
        """
        Distribute a whole round.

        Args:
            positions: address -> (yes_units, no_units)

        Returns:
            (entries for every winner, undistributed dust in wei)
        """
        winner = determine_winner(yes_amount, no_amount)
        winning_total = winning_side_total(yes_amount, no_amount, winner)

        entries: List[RewardEntry] = []
        if winner is not Winner.NONE:
            for address in sorted(positions):
                yes_units, no_units = positions[address]
                units = yes_units if winner is Winner.YES else no_units
                if units <= 0:
                    continue
                amount = compute_reward_wei(units, winning_total, total_pool_wei)
                entries.append(RewardEntry(address=address, bet_units=units, amount_wei=amount))

        distributed = sum(e.amount_wei for e in entries)
        dust = total_pool_wei - distributed if entries else 0
        logger.debug(
            f"Round distribution: winner={winner.value} winners={len(entries)} "
            f"distributed={distributed} dust={dust}"
        )
        return entries, dust


def verify_reward(
    claimed_reward_wei: int,
    yes_amount: int,
    no_amount: int,
    total_pool_wei: int,
    bet_units: int,
    choice: bool,
) -> bool:
    """Independently recompute a reward and compare to a claimed amount."""
    outcome = RewardCalculator().calculate(yes_amount, no_amount, total_pool_wei, bet_units, choice)
    return outcome.reward_wei == claimed_reward_wei
