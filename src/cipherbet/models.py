"""
cipherbet/models.py

Data structures shared across the betting protocol.

Rounds and bets are owned by the ledger; everything here is a projection
of ledger state or a client-side record derived from it.
"""

import time
from dataclasses import dataclass, field, asdict, replace
from decimal import Decimal, ROUND_FLOOR
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .config import UNITS_PER_NATIVE, WEI_PER_NATIVE, ZERO_HANDLE


Handle = str  # 0x-prefixed bytes32 hex
NativeAmount = Union[Decimal, str, int, float]


# ============================================================================
# HANDLES & UNITS
# ============================================================================

def is_zero_handle(handle: Optional[Handle]) -> bool:
    """True for the uninitialized ("empty") ciphertext handle."""
    if not handle or handle in (ZERO_HANDLE, "0x", "0x0", "0"):
        return True
    try:
        return int(handle, 16) == 0
    except ValueError:
        return False


def to_decimal(amount: NativeAmount) -> Decimal:
    # str() first so floats like 0.1 don't drag binary noise along
    return amount if isinstance(amount, Decimal) else Decimal(str(amount))


def native_to_units(amount: NativeAmount, units_per_native: int = UNITS_PER_NATIVE) -> int:
    """Convert a native-currency amount to whole bet units (floored)."""
    units = to_decimal(amount) * units_per_native
    return int(units.to_integral_value(rounding=ROUND_FLOOR))


def native_to_wei(amount: NativeAmount) -> int:
    wei = to_decimal(amount) * WEI_PER_NATIVE
    return int(wei.to_integral_value(rounding=ROUND_FLOOR))


def wei_to_native(wei: int) -> Decimal:
    return Decimal(wei) / Decimal(WEI_PER_NATIVE)


# ============================================================================
# ROUND STATE
# ============================================================================

class RoundState(Enum):
    """Lifecycle state of a round, derived from time and the resolved flag."""
    OPEN = "open"           # Accepting bets
    ENDED = "ended"         # End time passed, awaiting resolution
    RESOLVED = "resolved"   # Aggregates public


def round_state(resolved: bool, now: float, end_time: int) -> RoundState:
    """
    Derive round state as a pure function.

    Never persisted, so client and ledger cannot disagree about a stored
    third state; they can only disagree about the clock.
    """
    if resolved:
        return RoundState.RESOLVED
    if now < end_time:
        return RoundState.OPEN
    return RoundState.ENDED


class Winner(Enum):
    """Winning side of a resolved round."""
    YES = "yes"
    NO = "no"
    NONE = "none"   # Tie, nobody is owed anything

    @classmethod
    def from_totals(cls, yes_amount: int, no_amount: int) -> "Winner":
        if yes_amount > no_amount:
            return cls.YES
        if no_amount > yes_amount:
            return cls.NO
        return cls.NONE

    @property
    def choice(self) -> Optional[bool]:
        """Winner as a bet choice (True = YES), None for a tie."""
        if self is Winner.YES:
            return True
        if self is Winner.NO:
            return False
        return None


# ============================================================================
# LEDGER PROJECTIONS
# ============================================================================

@dataclass
class Round:
    """A time-boxed YES/NO betting round as seen on the ledger."""
    id: int
    creator: str
    name: str
    end_time: int
    resolved: bool = False
    participant_count: int = 0
    yes_amount: Handle = ZERO_HANDLE
    no_amount: Handle = ZERO_HANDLE
    total_amount: Handle = ZERO_HANDLE

    def state(self, now: Optional[float] = None) -> RoundState:
        return round_state(self.resolved, time.time() if now is None else now, self.end_time)

    def time_remaining(self, now: Optional[float] = None) -> int:
        """Seconds until the round ends (0 once ended)."""
        now = time.time() if now is None else now
        return max(0, int(self.end_time - now))

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Round":
        return cls(**data)


@dataclass
class UserBet:
    """Per-participant escrow as reported by the ledger."""
    value_wei: int
    has_claimed: bool

    @property
    def value_native(self) -> Decimal:
        return wei_to_native(self.value_wei)


@dataclass
class EncryptedInput:
    """
    Ciphertext handles plus proof, bound to one contract and one submitter.

    Handle order follows the encryption call order: amount first, choice second.
    """
    contract_address: str
    submitter: str
    amount_handle: Handle
    choice_handle: Handle
    proof: bytes

    @property
    def handles(self) -> List[Handle]:
        return [self.amount_handle, self.choice_handle]

    def to_dict(self) -> dict:
        result = asdict(self)
        result['proof'] = self.proof.hex()
        return result


@dataclass
class HandleContractPair:
    """A ciphertext handle and the contract whose ACL governs it."""
    handle: Handle
    contract_address: str

    def to_dict(self) -> dict:
        return {"handle": self.handle, "contractAddress": self.contract_address}


@dataclass
class ClaimAssertion:
    """
    Settlement values computed client-side.

    Only forwarded to ledgers whose ABI requires them; a ledger that owns
    its bet records computes the payout itself.
    """
    reward_wei: int
    bet_units: int
    choice: bool
    winning_side: bool
    winning_side_total_units: int

    def to_dict(self) -> dict:
        return asdict(self)


# ============================================================================
# CLIENT-SIDE RECORDS
# ============================================================================

@dataclass
class LocalBetRecord:
    """
    What this client remembers about its own bets in a round.

    The ledger keeps only the escrowed value in the clear; units and choice
    exist solely here. Losing this record means the reward cannot be
    computed locally even though the ledger still knows the bet happened.
    """
    round_id: int
    participant: str
    yes_units: int = 0
    no_units: int = 0
    value_wei: int = 0
    updated_at: float = field(default_factory=time.time)

    def add(self, units: int, choice: bool, value_wei: int) -> None:
        """Accumulate another bet into this record."""
        if choice:
            self.yes_units += units
        else:
            self.no_units += units
        self.value_wei += value_wei
        self.updated_at = time.time()

    def units_on(self, choice: bool) -> int:
        return self.yes_units if choice else self.no_units

    @property
    def total_units(self) -> int:
        return self.yes_units + self.no_units

    @property
    def choice(self) -> Optional[bool]:
        """Single side this participant backed, None if both or neither."""
        if self.yes_units and not self.no_units:
            return True
        if self.no_units and not self.yes_units:
            return False
        return None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LocalBetRecord":
        data = dict(data)
        data.setdefault("yes_units", 0)
        data.setdefault("no_units", 0)
        data.setdefault("value_wei", 0)
        return cls(**data)


@dataclass(frozen=True)
class RoundResult:
    """
    Decrypted outcome of a round, plus the querying participant's position.

    Immutable: a claim produces a new instance via `with_claimed()`.
    """
    round_id: int
    yes_amount: int                 # units
    no_amount: int                  # units
    total_amount: int               # units
    winner: Winner
    participant: Optional[str] = None
    user_bet_units: int = 0
    user_choice: Optional[bool] = None
    user_won: bool = False
    reward_wei: int = 0
    winning_side_total_units: int = 0
    total_pool_wei: int = 0
    has_claimed: bool = False
    resolved: bool = False          # revealed after resolution

    @property
    def reward_native(self) -> Decimal:
        return wei_to_native(self.reward_wei)

    @property
    def total_pool_native(self) -> Decimal:
        return wei_to_native(self.total_pool_wei)

    @property
    def can_claim(self) -> bool:
        return self.resolved and self.user_won and self.reward_wei > 0 and not self.has_claimed

    def with_claimed(self) -> "RoundResult":
        return replace(self, has_claimed=True)

    def claim_assertion(self) -> ClaimAssertion:
        # Participants who backed both sides claim on the winning side
        choice = self.user_choice
        if choice is None:
            choice = self.winner is Winner.YES
        return ClaimAssertion(
            reward_wei=self.reward_wei,
            bet_units=self.user_bet_units,
            choice=choice,
            winning_side=self.winner is Winner.YES,
            winning_side_total_units=self.winning_side_total_units,
        )

    def to_dict(self) -> dict:
        result = asdict(self)
        result['winner'] = self.winner.value
        return result
