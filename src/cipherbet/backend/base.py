"""
cipherbet/backend/base.py

Boundary to the encryption/decryption backend (FHE coprocessor + relayer).

The backend produces ciphertext handles for plaintext inputs and fulfills
authorized user-decryption requests. Its cryptographic scheme is out of
scope; this module fixes only the contract both sides honor:

1. encrypt_input: plaintext (amount, choice) -> two handles + proof,
   bound to one contract and one submitter
2. user_decrypt: (handle, contract) pairs + ephemeral public key + EIP-712
   signature over the request window -> handle -> cleartext mapping

Cleartexts travel back sealed to the caller's ephemeral X25519 key; only
the holder of the matching private key can open them.
"""

import os
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..models import EncryptedInput, Handle, HandleContractPair

logger = logging.getLogger("cipherbet.backend.base")


# ============================================================================
# CONSTANTS
# ============================================================================

EIP712_PRIMARY_TYPE = "UserDecryptRequestVerification"

EIP712_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    EIP712_PRIMARY_TYPE: [
        {"name": "publicKey", "type": "bytes"},
        {"name": "contractAddresses", "type": "address[]"},
        {"name": "startTimestamp", "type": "uint256"},
        {"name": "durationDays", "type": "uint256"},
    ],
}

# Longest grant a backend will honor
MAX_DURATION_DAYS = 365

SECONDS_PER_DAY = 86400

_SEAL_INFO = b"cipherbet-user-decrypt"


# ============================================================================
# KEYPAIRS & SEALING
# ============================================================================

@dataclass(frozen=True)
class Keypair:
    """Ephemeral X25519 keypair, hex encoded (raw 32-byte keys)."""
    public_key: str
    private_key: str

    def __repr__(self) -> str:
        # Never print the private half
        return f"Keypair(public_key={self.public_key[:16]}...)"


def generate_keypair() -> Keypair:
    """Generate a fresh ephemeral keypair for one decryption request."""
    private = X25519PrivateKey.generate()
    private_raw = private.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_raw = private.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return Keypair(public_key=public_raw.hex(), private_key=private_raw.hex())


def _derive_key(shared_secret: bytes) -> bytes:
    return HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=_SEAL_INFO,
    ).derive(shared_secret)


def seal_value(value: int, public_key: str) -> str:
    """
    Seal a cleartext to a recipient's X25519 public key (backend side).

    Returns:
        Hex of sender_public (32) + nonce (12) + AES-GCM ciphertext
    """
    sender = X25519PrivateKey.generate()
    recipient = X25519PublicKey.from_public_bytes(bytes.fromhex(public_key))
    aes_key = _derive_key(sender.exchange(recipient))

    nonce = os.urandom(12)
    plaintext = value.to_bytes(32, "big")
    ciphertext = AESGCM(aes_key).encrypt(nonce, plaintext, None)

    sender_public = sender.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return (sender_public + nonce + ciphertext).hex()


def open_sealed_value(sealed: str, private_key: str) -> int:
    """Open a value sealed with seal_value (client side)."""
    data = bytes.fromhex(sealed)
    sender_public, nonce, ciphertext = data[:32], data[32:44], data[44:]

    private = X25519PrivateKey.from_private_bytes(bytes.fromhex(private_key))
    aes_key = _derive_key(private.exchange(X25519PublicKey.from_public_bytes(sender_public)))

    plaintext = AESGCM(aes_key).decrypt(nonce, ciphertext, None)
    return int.from_bytes(plaintext, "big")


# ============================================================================
# BACKEND INTERFACE
# ============================================================================

class EncryptionBackend(ABC):
    """Abstract encryption/decryption backend."""

    @abstractmethod
    async def encrypt_input(
        self,
        contract_address: str,
        submitter: str,
        amount: int,
        choice: bool,
    ) -> EncryptedInput:
        """
        Encrypt a bet into handles bound to (contract, submitter).

        Raises:
            EncryptionBackendUnavailable: backend cannot be reached
        """

    @abstractmethod
    def eip712_domain(self) -> Dict[str, Any]:
        """Domain the backend expects decryption requests to be signed under."""

    @abstractmethod
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
        """
        Decrypt handles the signer is allowed to read.

        Raises:
            AuthorizationDenied: signature invalid, grant expired, or no ACL access
            BackendUnreachable: network failure
        """

    def generate_keypair(self) -> Keypair:
        return generate_keypair()

    def create_eip712(
        self,
        public_key: str,
        contract_addresses: List[str],
        start_timestamp: int,
        duration_days: int,
    ) -> Dict[str, Any]:
        """
        Build the EIP-712 payload a user signs to authorize decryption.

        Returns:
            {"domain", "types", "primaryType", "message"}
        """
        return {
            "domain": self.eip712_domain(),
            "types": EIP712_TYPES,
            "primaryType": EIP712_PRIMARY_TYPE,
            "message": {
                "publicKey": bytes.fromhex(public_key),
                "contractAddresses": list(contract_addresses),
                "startTimestamp": int(start_timestamp),
                "durationDays": int(duration_days),
            },
        }
