"""
cipherbet/protocol/registry.py

Read-only client view of the rounds held by the ledger.
"""

import time
import logging
from typing import Callable, List, Optional

import trio

from ..ledger.base import Ledger
from ..models import Round, RoundState, round_state

logger = logging.getLogger("cipherbet.protocol.registry")


class RoundRegistry:
    """Queries rounds and derives their state from the clock."""

    def __init__(self, ledger: Ledger, clock: Callable[[], float] = time.time):
        self.ledger = ledger
        self.clock = clock

    async def get_round(self, round_id: int, with_handles: bool = False) -> Round:
        """
        Fetch a round; with_handles also reads the three aggregate handles.

        Raises:
            RoundNotFound
        """
        info = await self.ledger.get_round_info(round_id)
        if with_handles:
            info.yes_amount, info.no_amount, info.total_amount = await self.get_aggregate_handles(round_id)
        return info

    async def get_aggregate_handles(self, round_id: int):
        """(yes, no, total) handles, fetched concurrently."""
        results = {}

        async def fetch(name, getter):
            results[name] = await getter(round_id)

        async with trio.open_nursery() as nursery:
            nursery.start_soon(fetch, "yes", self.ledger.get_yes_amount)
            nursery.start_soon(fetch, "no", self.ledger.get_no_amount)
            nursery.start_soon(fetch, "total", self.ledger.get_total_amount)

        return results["yes"], results["no"], results["total"]

    async def state(self, round_id: int) -> RoundState:
        info = await self.ledger.get_round_info(round_id)
        return round_state(info.resolved, self.clock(), info.end_time)

    async def list_rounds(self, state: Optional[RoundState] = None) -> List[Round]:
        """All rounds, newest first, optionally filtered by state."""
        count = await self.ledger.round_counter()
        rounds = []
        for round_id in reversed(range(count)):
            info = await self.ledger.get_round_info(round_id)
            if state is None or info.state(self.clock()) is state:
                rounds.append(info)
        return rounds
