"""
cipherbet/client.py

BettingClient - one account's session against a betting ledger.

Wires the protocol components together:

    lifecycle (create / bet / resolve)
        -> reveal (authorize, sign, decrypt aggregates)
        -> result cache (single flight per round)
        -> reward calculator
        -> settlement (claim, mark claimed)

Usage:
    wallet = EthereumWallet.create()
    client = BettingClient.local(wallet)

    async with client.running():
        round_ = await client.create_round("Will it rain?", int(time.time()) + 3600)
        await client.place_bet(round_.id, "0.1", True)
        ...
        await client.resolve_round(round_.id)
        result = await client.view_results(round_.id)
        if result.can_claim:
            receipt = await client.claim_reward(round_.id)
"""

import time
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, List, Optional

import trio

from .backend.base import EncryptionBackend
from .backend.mock import MockEncryptionBackend
from .config import ClientConfig
from .ledger import ContractLedger, InMemoryLedger, Ledger
from .models import LocalBetRecord, NativeAmount, Round, RoundResult, RoundState
from .protocol.encrypted_input import EncryptedInputBuilder
from .protocol.lifecycle import RoundLifecycleController
from .protocol.registry import RoundRegistry
from .protocol.result_cache import ResultCache
from .protocol.reveal import RevealProtocol
from .protocol.rewards import RewardCalculator
from .protocol.settlement import ClaimReceipt, ClaimSettlement
from .protocol.storage import BetRecordStore
from .signing import checksum_address

logger = logging.getLogger("cipherbet.client")


class BettingClient:
    """
    High-level betting session for one account.

    Args:
        ledger: Round storage
        backend: Encryption/decryption backend
        wallet: Account that signs requests (needs .address, .sign_typed_data())
        signer: Optional custom typed-data signer, sync or async
        address: Acting address when no wallet is given
        store: Local bet records (default in-memory)
        config: Client settings
        clock: Returns the current unix time
    """

    def __init__(
        self,
        ledger: Ledger,
        backend: EncryptionBackend,
        wallet: Any = None,
        signer: Optional[Callable] = None,
        address: Optional[str] = None,
        store: Optional[BetRecordStore] = None,
        config: Optional[ClientConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        address = address or (wallet.address if wallet is not None else None)
        if not address:
            raise ValueError("BettingClient needs a wallet or an address")

        self.config = config or ClientConfig()
        self.ledger = ledger
        self.backend = backend
        self.address = checksum_address(address)
        self.clock = clock

        if store is None:
            if self.config.storage_dir is not None:
                store = BetRecordStore.on_disk(self.config.storage_dir)
            else:
                store = BetRecordStore()
        self.store = store

        self.registry = RoundRegistry(ledger, clock=clock)
        self.lifecycle = RoundLifecycleController(
            ledger,
            EncryptedInputBuilder(backend),
            self.address,
            store=store,
            clock=clock,
            units_per_native=self.config.units_per_native,
        )
        self.reveal = RevealProtocol(
            ledger,
            backend,
            wallet=wallet,
            signer=signer,
            user_address=self.address,
            clock=clock,
            duration_days=self.config.decrypt_duration_days,
            settle_seconds=self.config.authorization_settle_seconds,
        )
        self.calculator = RewardCalculator()
        self.cache = ResultCache(self._load_result)
        self.settlement = ClaimSettlement(ledger, self.cache, self.address)

    # ========================================================================
    # CONSTRUCTION
    # ========================================================================

    @classmethod
    def local(
        cls,
        wallet: Any,
        backend: Optional[MockEncryptionBackend] = None,
        ledger: Optional[InMemoryLedger] = None,
        **kwargs,
    ) -> "BettingClient":
        """Client on an in-process ledger; pass `ledger` to share it between clients."""
        if ledger is None:
            backend = backend or MockEncryptionBackend()
            ledger = InMemoryLedger(backend, clock=kwargs.get("clock", time.time))
        return cls(ledger, backend or ledger.backend, wallet=wallet, **kwargs)

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        wallet: Any,
        backend: EncryptionBackend,
        **kwargs,
    ) -> "BettingClient":
        """Client on the deployed contract described by `config.network`."""
        ledger = ContractLedger(config.network, wallet)
        return cls(ledger, backend, wallet=wallet, config=config, **kwargs)

    def start(self, nursery: trio.Nursery) -> None:
        """Run reveals in `nursery` so caller cancellation cannot abort them."""
        self.cache.start(nursery)

    @asynccontextmanager
    async def running(self):
        async with self.cache.running():
            yield self

    # ========================================================================
    # ROUNDS
    # ========================================================================

    async def create_round(self, name: str, end_time: int) -> Round:
        return await self.lifecycle.create(name, end_time)

    async def get_round(self, round_id: int) -> Round:
        return await self.registry.get_round(round_id)

    async def list_rounds(self, state: Optional[RoundState] = None) -> List[Round]:
        return await self.registry.list_rounds(state)

    async def place_bet(self, round_id: int, amount_native: NativeAmount, choice: bool) -> LocalBetRecord:
        record = await self.lifecycle.place_bet(round_id, amount_native, choice)
        # Aggregates changed; an earlier reveal is stale
        self.cache.invalidate(round_id)
        return record

    async def resolve_round(self, round_id: int) -> Round:
        round_ = await self.lifecycle.resolve(round_id)
        self.cache.invalidate(round_id)
        return round_

    # ========================================================================
    # RESULTS & CLAIMS
    # ========================================================================

    async def view_results(self, round_id: int) -> RoundResult:
        """Revealed result of a round with this account's reward (cached)."""
        cached = self.cache.peek(round_id)
        if cached is not None and not cached.resolved:
            # A reveal from before resolution is stale once the round resolves
            info = await self.ledger.get_round_info(round_id)
            if info.resolved:
                self.cache.invalidate(round_id)
        return await self.cache.get(round_id)

    async def refresh_results(self, round_id: int) -> RoundResult:
        self.cache.invalidate(round_id)
        return await self.cache.get(round_id)

    async def claim_reward(self, round_id: int) -> ClaimReceipt:
        return await self.settlement.claim(round_id)

    async def _load_result(self, round_id: int) -> RoundResult:
        aggregates = await self.reveal.reveal(round_id)
        total_pool = await self.ledger.get_round_total_pool(round_id)

        record = None
        has_claimed = False
        if await self.ledger.has_participated(round_id, self.address):
            user_bet = await self.ledger.get_user_bet(round_id, self.address)
            has_claimed = user_bet.has_claimed
            record = await self.store.get(round_id, self.address)
            if record is None:
                logger.warning(
                    f"Round {round_id}: bet of {user_bet.value_native} is on the ledger "
                    f"but not recorded locally, reward cannot be computed"
                )

        return self.calculator.build_result(
            round_id,
            aggregates.yes_amount,
            aggregates.no_amount,
            aggregates.total_amount,
            total_pool,
            participant=self.address,
            record=record,
            has_claimed=has_claimed,
            resolved=aggregates.resolved,
        )

    def __repr__(self) -> str:
        return f"BettingClient(address={self.address}, ledger={type(self.ledger).__name__})"
