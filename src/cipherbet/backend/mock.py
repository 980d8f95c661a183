"""
cipherbet/backend/mock.py

In-process encryption backend for tests and local simulation.

Plays both roles of a real FHE deployment:
- Coprocessor: holds plaintexts behind opaque handles, evaluates add/select
  on them, tracks per-handle ACLs and public decryptability
- Relayer/KMS: verifies EIP-712 decryption requests and returns cleartexts
  sealed to the requester's ephemeral key

Plaintexts never leave this object except through user_decrypt (sealed,
ACL-checked) or oracle_decrypt (the ledger's privileged settlement path).

Usage:
    backend = MockEncryptionBackend(chain_id=31337)
    encrypted = await backend.encrypt_input(contract, alice, 100, True)
"""

import os
import hmac
import time
import hashlib
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Set, Tuple

import trio

from ..config import CHAIN_ID_HARDHAT, MAX_UINT32
from ..errors import (
    AuthorizationDenied,
    BackendUnreachable,
    EncryptionBackendUnavailable,
    InvalidPlaintext,
)
from ..models import EncryptedInput, Handle, HandleContractPair, is_zero_handle
from ..signing import checksum_address, verify_typed_data
from .base import (
    EIP712_TYPES,
    MAX_DURATION_DAYS,
    SECONDS_PER_DAY,
    EncryptionBackend,
    open_sealed_value,
    seal_value,
)

logger = logging.getLogger("cipherbet.backend.mock")


# Verifying contract for decryption requests on the mock chain
MOCK_DECRYPTION_VERIFIER = "0x5ffdaab0373e62e2ea2944776209aef29e631a64"

KIND_UINT32 = "euint32"
KIND_BOOL = "ebool"


@dataclass
class _Ciphertext:
    value: int
    kind: str


class MockEncryptionBackend(EncryptionBackend):
    """
    Deterministic stand-in for the FHE coprocessor and relayer.

    Set `available = False` to simulate an outage; set `latency` to make
    user_decrypt take (trio) time so concurrent callers overlap.
    """

    def __init__(
        self,
        chain_id: int = CHAIN_ID_HARDHAT,
        verifying_contract: str = MOCK_DECRYPTION_VERIFIER,
        clock: Callable[[], float] = time.time,
        latency: float = 0.0,
    ):
        self.chain_id = chain_id
        self.verifying_contract = checksum_address(verifying_contract)
        self.clock = clock
        self.latency = latency
        self.available = True

        self._secret = os.urandom(32)
        self._counter = 0
        self._ciphertexts: Dict[Handle, _Ciphertext] = {}
        self._acl: Dict[Handle, Set[str]] = {}
        self._public: Set[Handle] = set()

        # Observability for tests
        self.decrypt_requests = 0
        self.decrypted_handles: List[Handle] = []

    # ========================================================================
    # INPUT ENCRYPTION
    # ========================================================================

    async def encrypt_input(
        self,
        contract_address: str,
        submitter: str,
        amount: int,
        choice: bool,
    ) -> EncryptedInput:
        await trio.lowlevel.checkpoint()
        if not self.available:
            raise EncryptionBackendUnavailable("Encryption backend unreachable")
        if not isinstance(amount, int) or isinstance(amount, bool) or not 0 <= amount <= MAX_UINT32:
            raise InvalidPlaintext(f"Amount {amount!r} outside uint32 domain")

        contract_address = checksum_address(contract_address)
        submitter = checksum_address(submitter)

        amount_handle = self._new_handle(amount, KIND_UINT32)
        choice_handle = self._new_handle(int(bool(choice)), KIND_BOOL)
        proof = self._input_proof(contract_address, submitter, amount_handle, choice_handle)

        return EncryptedInput(
            contract_address=contract_address,
            submitter=submitter,
            amount_handle=amount_handle,
            choice_handle=choice_handle,
            proof=proof,
        )

    def verify_input(
        self,
        encrypted: EncryptedInput,
        contract_address: str,
        submitter: str,
    ) -> Tuple[Handle, Handle]:
        """
        Check an input proof against the contract and submitter using it.

        Returns:
            (amount_handle, choice_handle) ready for homomorphic ops

        Raises:
            AuthorizationDenied: proof does not bind to this contract/submitter
        """
        expected = self._input_proof(
            checksum_address(contract_address),
            checksum_address(submitter),
            encrypted.amount_handle,
            encrypted.choice_handle,
        )
        if not hmac.compare_digest(expected, encrypted.proof):
            raise AuthorizationDenied("Input proof does not match contract and submitter")
        if encrypted.amount_handle not in self._ciphertexts or encrypted.choice_handle not in self._ciphertexts:
            raise AuthorizationDenied("Unknown input handles")
        return encrypted.amount_handle, encrypted.choice_handle

    # ========================================================================
    # HOMOMORPHIC OPS (used by the ledger)
    # ========================================================================

    def add(self, left: Handle, right: Handle) -> Handle:
        total = (self._value(left) + self._value(right)) & MAX_UINT32
        return self._new_handle(total, KIND_UINT32)

    def select(self, condition: Handle, if_true: Handle, if_false: Handle) -> Handle:
        chosen = if_true if self._value(condition) else if_false
        return self._new_handle(self._value(chosen), KIND_UINT32)

    def trivial_encrypt(self, value: int) -> Handle:
        return self._new_handle(value, KIND_UINT32)

    def allow(self, handle: Handle, address: str) -> None:
        if is_zero_handle(handle):
            return
        self._acl.setdefault(handle, set()).add(address.lower())

    def is_allowed(self, handle: Handle, address: str) -> bool:
        return handle in self._public or address.lower() in self._acl.get(handle, set())

    def make_public(self, handle: Handle) -> None:
        if not is_zero_handle(handle):
            self._public.add(handle)

    def is_public(self, handle: Handle) -> bool:
        return handle in self._public

    def oracle_decrypt(self, handle: Handle) -> int:
        """Privileged decryption for ledger-side settlement logic."""
        return self._value(handle)

    # ========================================================================
    # USER DECRYPTION
    # ========================================================================

    def eip712_domain(self) -> dict:
        return {
            "name": "Decryption",
            "version": "1",
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }

    async def user_decrypt(
        self,
        pairs: List[HandleContractPair],
        private_key: str,
        public_key: str,
        signature: str,
        contract_addresses: List[str],
        user_address: str,
        start_timestamp: int,
        duration_days: int,
    ) -> Dict[Handle, int]:
        self.decrypt_requests += 1
        if self.latency:
            await trio.sleep(self.latency)
        else:
            await trio.lowlevel.checkpoint()
        if not self.available:
            raise BackendUnreachable("Relayer unreachable")

        sealed = self._relayer_decrypt(
            pairs, public_key, signature, contract_addresses,
            user_address, start_timestamp, duration_days,
        )
        # Client-side half: open each sealed value with the ephemeral key
        return {handle: open_sealed_value(blob, private_key) for handle, blob in sealed.items()}

    def _relayer_decrypt(
        self,
        pairs: List[HandleContractPair],
        public_key: str,
        signature: str,
        contract_addresses: List[str],
        user_address: str,
        start_timestamp: int,
        duration_days: int,
    ) -> Dict[Handle, str]:
        """Validate the request and seal each allowed cleartext to public_key."""
        if not 0 < duration_days <= MAX_DURATION_DAYS:
            raise AuthorizationDenied(f"Invalid grant duration: {duration_days} days")

        now = self.clock()
        if now < start_timestamp or now > start_timestamp + duration_days * SECONDS_PER_DAY:
            raise AuthorizationDenied("Decryption grant not valid at this time")

        payload = self.create_eip712(public_key, contract_addresses, start_timestamp, duration_days)
        if not verify_typed_data(payload["domain"], EIP712_TYPES, payload["message"], signature, user_address):
            raise AuthorizationDenied("Decryption request signature rejected")

        allowed_contracts = {c.lower() for c in contract_addresses}
        sealed: Dict[Handle, str] = {}
        for pair in pairs:
            if pair.contract_address.lower() not in allowed_contracts:
                raise AuthorizationDenied(f"Contract {pair.contract_address} not covered by signature")
            if pair.handle not in self._ciphertexts:
                # Unknown handles are silently left out of the response
                logger.debug(f"Unknown handle requested: {pair.handle[:18]}...")
                continue
            if not self.is_allowed(pair.handle, user_address):
                raise AuthorizationDenied(f"{user_address} may not decrypt {pair.handle[:18]}...")
            if not self.is_allowed(pair.handle, pair.contract_address):
                raise AuthorizationDenied(f"Contract may not decrypt {pair.handle[:18]}...")

            sealed[pair.handle] = seal_value(self._ciphertexts[pair.handle].value, public_key)
            self.decrypted_handles.append(pair.handle)

        return sealed

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _new_handle(self, value: int, kind: str) -> Handle:
        self._counter += 1
        digest = hashlib.sha256(self._secret + self._counter.to_bytes(8, "big")).hexdigest()
        handle = "0x" + digest
        self._ciphertexts[handle] = _Ciphertext(value=value, kind=kind)
        return handle

    def _value(self, handle: Handle) -> int:
        if is_zero_handle(handle):
            return 0
        ciphertext = self._ciphertexts.get(handle)
        if ciphertext is None:
            raise KeyError(f"Unknown handle {handle}")
        return ciphertext.value

    def _input_proof(
        self,
        contract_address: str,
        submitter: str,
        amount_handle: Handle,
        choice_handle: Handle,
    ) -> bytes:
        content = f"{contract_address.lower()}:{submitter.lower()}:{amount_handle}:{choice_handle}"
        return hmac.new(self._secret, content.encode(), hashlib.sha256).digest()

