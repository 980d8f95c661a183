"""
cipherbet/ledger/base.py

Boundary to the ledger that owns rounds, bets and escrow.

Every operation is a suspension point. State-changing operations either
take effect atomically or raise; callers never assume success before the
call returns.
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..models import ClaimAssertion, EncryptedInput, Handle, Round, UserBet


class Ledger(ABC):
    """Abstract betting ledger."""

    #: Address of the contract whose ACL governs this ledger's handles
    contract_address: str

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @abstractmethod
    async def create_round(self, creator: str, name: str, end_time: int) -> int:
        """Allocate a new open round and return its id."""

    @abstractmethod
    async def place_bet(
        self,
        round_id: int,
        participant: str,
        encrypted: EncryptedInput,
        value_wei: int,
    ) -> None:
        """
        Escrow value_wei and fold the encrypted bet into the aggregates.

        Raises:
            RoundNotFound, RoundResolved, RoundEnded
        """

    @abstractmethod
    async def resolve_round(self, round_id: int, caller: str) -> None:
        """
        Flip the round to resolved and make its aggregates public.

        Raises:
            RoundNotFound, RoundStillOpen, AlreadyResolved
        """

    @abstractmethod
    async def authorize_participant(self, round_id: int, participant: str) -> None:
        """Grant a participant decrypt access to the current aggregates."""

    @abstractmethod
    async def claim_reward(
        self,
        round_id: int,
        claimant: str,
        assertion: Optional[ClaimAssertion] = None,
    ) -> int:
        """
        Pay out the claimant's reward and mark the bet claimed.

        Returns:
            Amount paid in wei

        Raises:
            RoundNotFound, RoundNotResolved, NotAParticipant, AlreadyClaimed
        """

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_round_info(self, round_id: int) -> Round:
        """Round metadata; handle fields are left empty."""

    @abstractmethod
    async def get_yes_amount(self, round_id: int) -> Handle:
        pass

    @abstractmethod
    async def get_no_amount(self, round_id: int) -> Handle:
        pass

    @abstractmethod
    async def get_total_amount(self, round_id: int) -> Handle:
        pass

    @abstractmethod
    async def has_participated(self, round_id: int, address: str) -> bool:
        pass

    @abstractmethod
    async def get_user_bet(self, round_id: int, address: str) -> UserBet:
        pass

    @abstractmethod
    async def get_round_total_pool(self, round_id: int) -> int:
        """Escrowed value of the round in wei."""

    @abstractmethod
    async def round_counter(self) -> int:
        """Number of rounds created so far."""
