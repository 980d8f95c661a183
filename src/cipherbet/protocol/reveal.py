"""
cipherbet/protocol/reveal.py

Decryption authorization and reveal.

Turns a round's three ciphertext aggregates into cleartext unit counts:

1. Empty handles decrypt to 0 locally; no signature, no backend call
2. Unresolved round + caller participated: ask the ledger to grant the
   caller access to the current aggregates (non-fatal), then wait for the
   grant to settle
3. Fresh ephemeral keypair + EIP-712 request over (public key, contracts,
   start, duration), signed by the caller
4. One backend user_decrypt per handle, all three run concurrently; any
   failure fails the whole reveal

A DecryptionGrant lives for one reveal attempt and is never persisted.

Usage:
    protocol = RevealProtocol(ledger, backend, wallet=wallet)
    aggregates = await protocol.reveal(round_id)
"""

import time
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import trio

from ..backend.base import EIP712_PRIMARY_TYPE, SECONDS_PER_DAY, EncryptionBackend, Keypair
from ..config import AUTHORIZATION_SETTLE_SECONDS, DECRYPT_DURATION_DAYS
from ..errors import AuthorizationDenied, BackendUnreachable, BetError, MalformedResponse
from ..ledger.base import Ledger
from ..models import Handle, HandleContractPair, is_zero_handle
from ..signing import checksum_address

logger = logging.getLogger("cipherbet.protocol.reveal")


@dataclass
class DecryptionGrant:
    """Signed authorization binding an ephemeral key to a request window."""
    keypair: Keypair
    user_address: str
    contract_addresses: List[str]
    start_timestamp: int
    duration_days: int
    signature: str = field(repr=False)

    @property
    def expires_at(self) -> int:
        return self.start_timestamp + self.duration_days * SECONDS_PER_DAY

    def is_valid(self, now: float) -> bool:
        return self.start_timestamp <= now <= self.expires_at

    def covers(self, contract_address: str) -> bool:
        return contract_address.lower() in (c.lower() for c in self.contract_addresses)


@dataclass(frozen=True)
class RevealedAggregates:
    """Cleartext aggregates of one round, in bet units."""
    round_id: int
    yes_amount: int
    no_amount: int
    total_amount: int
    resolved: bool = False


class RevealProtocol:
    """
    Runs the authorize -> sign -> decrypt workflow for one caller.

    Args:
        ledger: Round storage
        backend: Decryption backend (relayer)
        wallet: Signs requests; needs .address and .sign_typed_data()
        signer: Optional custom signing function (domain, types, message),
            sync or async; overrides the wallet's
        user_address: Requesting address when no wallet is given
        clock: Returns unix time for the request window
        duration_days: Request window length
        settle_seconds: Wait after a successful grant
    """

    def __init__(
        self,
        ledger: Ledger,
        backend: EncryptionBackend,
        wallet: Any = None,
        signer: Optional[Callable] = None,
        user_address: Optional[str] = None,
        clock: Callable[[], float] = time.time,
        duration_days: int = DECRYPT_DURATION_DAYS,
        settle_seconds: float = AUTHORIZATION_SETTLE_SECONDS,
    ):
        self.ledger = ledger
        self.backend = backend
        self._wallet = wallet
        self._signer = signer
        self.clock = clock
        self.duration_days = duration_days
        self.settle_seconds = settle_seconds

        address = user_address or (wallet.address if wallet is not None else None)
        self.user_address = checksum_address(address) if address else None

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def reveal(self, round_id: int) -> RevealedAggregates:
        """
        Decrypt the yes/no/total aggregates of a round.

        Raises:
            RoundNotFound
            AuthorizationDenied: signature rejected or no access
            BackendUnreachable: relayer down
            MalformedResponse: relayer omitted a requested handle
        """
        info = await self.ledger.get_round_info(round_id)
        if not info.resolved:
            await self.authorize(round_id)

        handles = await self._aggregate_handles(round_id)
        grant = None
        if any(not is_zero_handle(h) for h in handles.values()):
            grant = await self.request_grant([self.ledger.contract_address])

        values: Dict[str, int] = {}
        errors: List[BetError] = []

        async def decrypt_one(name: str, handle: Handle) -> None:
            try:
                values[name] = await self.decrypt(handle, grant)
            except BetError as e:
                errors.append(e)
                nursery.cancel_scope.cancel()

        async with trio.open_nursery() as nursery:
            for name, handle in handles.items():
                nursery.start_soon(decrypt_one, name, handle)

        if errors:
            logger.error(f"Reveal of round {round_id} failed: {errors[0]}")
            raise errors[0]

        logger.info(
            f"Round {round_id} revealed: yes={values['yes']} no={values['no']} total={values['total']}"
        )
        return RevealedAggregates(
            round_id=round_id,
            yes_amount=values["yes"],
            no_amount=values["no"],
            total_amount=values["total"],
            resolved=info.resolved,
        )

    async def authorize(self, round_id: int) -> bool:
        """
        Ask the ledger for decrypt access if this caller bet in the round.

        Failures are logged and swallowed; the aggregates may already be
        readable. Returns True if a grant was obtained.
        """
        if self.user_address is None:
            return False
        try:
            if not await self.ledger.has_participated(round_id, self.user_address):
                return False
            await self.ledger.authorize_participant(round_id, self.user_address)
        except BetError as e:
            logger.warning(f"Authorization for round {round_id} skipped: {e}")
            return False

        if self.settle_seconds > 0:
            await trio.sleep(self.settle_seconds)
        return True

    async def request_grant(self, contract_addresses: List[str]) -> DecryptionGrant:
        """Generate an ephemeral keypair and have the caller sign the request."""
        if self.user_address is None:
            raise AuthorizationDenied("No account to sign the decryption request")

        keypair = self.backend.generate_keypair()
        contracts = [checksum_address(c) for c in contract_addresses]
        start = int(self.clock())
        eip712 = self.backend.create_eip712(keypair.public_key, contracts, start, self.duration_days)

        types = {EIP712_PRIMARY_TYPE: eip712["types"][EIP712_PRIMARY_TYPE]}
        signature = await self._sign(eip712["domain"], types, eip712["message"])

        return DecryptionGrant(
            keypair=keypair,
            user_address=self.user_address,
            contract_addresses=contracts,
            start_timestamp=start,
            duration_days=self.duration_days,
            signature=signature,
        )

    async def decrypt(
        self,
        handle: Handle,
        grant: Optional[DecryptionGrant] = None,
        contract_address: Optional[str] = None,
    ) -> int:
        """
        Decrypt one handle, requesting a fresh grant if none is given.

        The empty handle is 0 without touching the backend.
        """
        if is_zero_handle(handle):
            return 0

        contract_address = contract_address or self.ledger.contract_address
        if grant is None:
            grant = await self.request_grant([contract_address])

        keypair = grant.keypair
        try:
            result = await self.backend.user_decrypt(
                [HandleContractPair(handle=handle, contract_address=contract_address)],
                keypair.private_key,
                keypair.public_key,
                grant.signature,
                grant.contract_addresses,
                grant.user_address,
                grant.start_timestamp,
                grant.duration_days,
            )
        except BetError:
            raise
        except Exception as e:
            logger.error(f"Backend decrypt of {handle[:18]}... failed: {e}")
            raise BackendUnreachable(f"Backend decrypt failed: {e}") from e
        if handle not in result:
            raise MalformedResponse(f"Backend response missing handle {handle[:18]}...")
        return int(result[handle])

    # ========================================================================
    # INTERNALS
    # ========================================================================

    async def _aggregate_handles(self, round_id: int) -> Dict[str, Handle]:
        return {
            "yes": await self.ledger.get_yes_amount(round_id),
            "no": await self.ledger.get_no_amount(round_id),
            "total": await self.ledger.get_total_amount(round_id),
        }

    async def _sign(self, domain: dict, types: dict, message: dict) -> str:
        if self._signer:
            result = self._signer(domain, types, message)
        elif self._wallet is not None and hasattr(self._wallet, "sign_typed_data"):
            result = self._wallet.sign_typed_data(domain, types, message)
        else:
            raise AuthorizationDenied("No signing method available")

        # Handle both sync and async signers
        if inspect.isawaitable(result):
            result = await result
        return result
