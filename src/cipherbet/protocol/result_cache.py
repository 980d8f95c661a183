"""
cipherbet/protocol/result_cache.py

Per-round memo of revealed results.

Each round id maps to a slot whose state is one of:
- IN_FLIGHT: a reveal is running; later callers wait on its event
- COMPLETE: the result is cached; callers get it with no network activity

A missing slot means not started. At most one reveal per round is ever
in flight. Reveals run in the cache's own nursery, so a caller that is
cancelled while waiting does not abort the reveal; the result still lands
in the cache for the next caller. A failed reveal is reported to every
waiter and the slot is dropped so the next call starts over.

Usage:
    cache = ResultCache(loader)
    async with cache.running():
        result = await cache.get(round_id)
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

import trio

from ..errors import NetworkFailure
from ..models import RoundResult

logger = logging.getLogger("cipherbet.protocol.result_cache")


Loader = Callable[[int], Awaitable[RoundResult]]


class SlotState(Enum):
    IN_FLIGHT = "in_flight"
    COMPLETE = "complete"


@dataclass
class _Slot:
    state: SlotState = SlotState.IN_FLIGHT
    done: trio.Event = field(default_factory=trio.Event)
    value: Optional[RoundResult] = None
    error: Optional[BaseException] = None
    waiters: int = 0


class ResultCache:
    """
    Single-flight cache of RoundResults keyed by round id.

    Args:
        loader: Async function producing the result for a round
        nursery: Nursery that owns reveal tasks; without one (and outside
            running()) reveals run in the calling task
    """

    def __init__(self, loader: Loader, nursery: Optional[trio.Nursery] = None):
        self._loader = loader
        self._nursery = nursery
        self._slots: Dict[int, _Slot] = {}
        self._lock = trio.Lock()

        # Number of reveals started
        self.loads = 0

    def start(self, nursery: trio.Nursery) -> None:
        """Run future reveals in the given nursery."""
        self._nursery = nursery

    @asynccontextmanager
    async def running(self):
        """Own a nursery for the lifetime of the block."""
        async with trio.open_nursery() as nursery:
            self._nursery = nursery
            try:
                yield self
            finally:
                self._nursery = None
                nursery.cancel_scope.cancel()

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def get(self, round_id: int) -> RoundResult:
        """
        Cached result, joining or starting a reveal as needed.

        Raises:
            Whatever the reveal raised, to every caller that joined it
        """
        slot = self._slots.get(round_id)
        if slot is not None and slot.state is SlotState.COMPLETE:
            return slot.value

        if slot is None:
            slot = _Slot()
            self._slots[round_id] = slot
            self.loads += 1
            if self._nursery is not None:
                self._nursery.start_soon(self._load, round_id, slot)
            else:
                await self._load(round_id, slot)
        else:
            slot.waiters += 1
            logger.debug(f"Joining in-flight reveal of round {round_id}")

        await slot.done.wait()
        if slot.error is not None:
            raise slot.error
        return slot.value

    def peek(self, round_id: int) -> Optional[RoundResult]:
        """Cached result without triggering a reveal."""
        slot = self._slots.get(round_id)
        if slot is not None and slot.state is SlotState.COMPLETE:
            return slot.value
        return None

    def is_in_flight(self, round_id: int) -> bool:
        slot = self._slots.get(round_id)
        return slot is not None and slot.state is SlotState.IN_FLIGHT

    async def put(self, round_id: int, result: RoundResult) -> None:
        """Replace the cached result of a round (no reveal in flight)."""
        async with self._lock:
            slot = self._slots.get(round_id)
            if slot is not None and slot.state is SlotState.IN_FLIGHT:
                logger.debug(f"Not overwriting in-flight reveal of round {round_id}")
                return
            completed = _Slot(state=SlotState.COMPLETE, value=result)
            completed.done.set()
            self._slots[round_id] = completed

    async def mark_claimed(self, round_id: int) -> Optional[RoundResult]:
        """Flip the cached entry to claimed; returns the updated result."""
        async with self._lock:
            slot = self._slots.get(round_id)
            if slot is None or slot.state is not SlotState.COMPLETE:
                return None
            slot.value = slot.value.with_claimed()
            return slot.value

    def invalidate(self, round_id: int) -> bool:
        """Drop a completed entry so the next get() reveals again."""
        slot = self._slots.get(round_id)
        if slot is None or slot.state is not SlotState.COMPLETE:
            return False
        del self._slots[round_id]
        return True

    def clear(self) -> None:
        for round_id in [r for r, s in self._slots.items() if s.state is SlotState.COMPLETE]:
            del self._slots[round_id]

    # ========================================================================
    # INTERNALS
    # ========================================================================

    async def _load(self, round_id: int, slot: _Slot) -> None:
        try:
            slot.value = await self._loader(round_id)
            slot.state = SlotState.COMPLETE
        except Exception as e:
            logger.warning(f"Reveal of round {round_id} failed ({slot.waiters} waiting): {e}")
            slot.error = e
        finally:
            if slot.state is not SlotState.COMPLETE:
                if slot.error is None:
                    slot.error = NetworkFailure("Reveal was cancelled", round_id=round_id)
                if self._slots.get(round_id) is slot:
                    del self._slots[round_id]
            slot.done.set()
