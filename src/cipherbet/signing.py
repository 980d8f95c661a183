"""
cipherbet/signing.py

Ethereum account signing and verification using eth_account directly.

Signs and verifies EIP-712 typed data, the format of user decryption
requests.

Usage:
    from cipherbet.signing import EthereumWallet, verify_typed_data

    wallet = EthereumWallet.create()
    # or
    wallet = EthereumWallet.from_private_key("0x...")

    signature = wallet.sign_typed_data(domain, types, message)

    is_valid = verify_typed_data(domain, types, message, signature, wallet.address)
"""

import os
import logging
from typing import Any, Dict, List, Optional, Union

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import is_address, to_checksum_address

from .errors import InvalidAddress

logger = logging.getLogger("cipherbet.signing")


TypedDataTypes = Dict[str, List[Dict[str, str]]]


def checksum_address(address: str) -> str:
    """Validate and checksum an address, raising InvalidAddress if malformed."""
    if not isinstance(address, str) or not is_address(address):
        raise InvalidAddress(f"Invalid address: {address!r}")
    return to_checksum_address(address)


def _strip_domain_type(types: TypedDataTypes) -> TypedDataTypes:
    # encode_typed_data derives EIP712Domain from domain_data itself
    return {name: fields for name, fields in types.items() if name != "EIP712Domain"}


def _signature_bytes(signature: Union[bytes, str]) -> bytes:
    if isinstance(signature, bytes):
        return signature
    return bytes.fromhex(signature[2:] if signature.startswith("0x") else signature)


class EthereumWallet:
    """
    Lightweight Ethereum wallet for signing operations.

    A thin wrapper around an eth_account LocalAccount that provides the
    signing surface the betting client needs without any node connection.
    """

    def __init__(self, account):
        """
        Initialize with an eth_account LocalAccount.

        Use the factory methods create(), from_entropy() or
        from_private_key() instead.
        """
        self._account = account

    @classmethod
    def create(cls) -> "EthereumWallet":
        """Create a wallet with a fresh random key."""
        return cls.from_entropy(os.urandom(32))

    @classmethod
    def from_entropy(cls, entropy: bytes) -> "EthereumWallet":
        """
        Create wallet from 32 bytes of entropy.

        Args:
            entropy: 32 bytes used directly as the private key

        Returns:
            EthereumWallet instance
        """
        if len(entropy) != 32:
            raise ValueError("Entropy must be exactly 32 bytes")
        return cls(Account.from_key(entropy))

    @classmethod
    def from_private_key(cls, private_key: str) -> "EthereumWallet":
        """Create wallet from a hex private key (with or without 0x)."""
        return cls(Account.from_key(private_key))

    @property
    def address(self) -> str:
        """Checksummed account address."""
        return self._account.address

    @property
    def account(self):
        """Underlying LocalAccount, for transaction signing."""
        return self._account

    def sign_typed_data(
        self,
        domain: Dict[str, Any],
        types: TypedDataTypes,
        message: Dict[str, Any],
    ) -> str:
        """
        Sign EIP-712 structured data.

        Args:
            domain: EIP-712 domain fields
            types: Type definitions (EIP712Domain entry optional)
            message: The structured message

        Returns:
            0x-prefixed 65-byte signature hex
        """
        signable = encode_typed_data(
            domain_data=domain,
            message_types=_strip_domain_type(types),
            message_data=message,
        )
        signed = self._account.sign_message(signable)
        return "0x" + bytes(signed.signature).hex()

    def __repr__(self) -> str:
        return f"EthereumWallet(address={self.address})"


def recover_typed_data_signer(
    domain: Dict[str, Any],
    types: TypedDataTypes,
    message: Dict[str, Any],
    signature: Union[bytes, str],
) -> Optional[str]:
    """
    Recover the address that signed EIP-712 data.

    Returns:
        Checksummed address, or None if the signature is unusable
    """
    try:
        signable = encode_typed_data(
            domain_data=domain,
            message_types=_strip_domain_type(types),
            message_data=message,
        )
        return Account.recover_message(signable, signature=_signature_bytes(signature))
    except Exception as e:
        logger.debug(f"Typed data recovery failed: {e}")
        return None


def verify_typed_data(
    domain: Dict[str, Any],
    types: TypedDataTypes,
    message: Dict[str, Any],
    signature: Union[bytes, str],
    address: str,
) -> bool:
    """Verify an EIP-712 signature against an expected signer address."""
    recovered = recover_typed_data_signer(domain, types, message, signature)
    if recovered is None:
        return False
    return recovered.lower() == address.lower()
