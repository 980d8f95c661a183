"""
cipherbet/protocol/encrypted_input.py

Builds encrypted bet inputs.

An input is a pair of ciphertext handles (amount, choice) plus a proof
binding both to one contract and one submitter. The ledger rejects the
proof anywhere else, so a captured input cannot be replayed into another
contract or by another account.

Parameters are validated before the backend is contacted.
"""

import logging

from ..backend.base import EncryptionBackend
from ..config import MAX_UINT32
from ..errors import InvalidPlaintext
from ..models import EncryptedInput
from ..signing import checksum_address

logger = logging.getLogger("cipherbet.protocol.encrypted_input")


class EncryptedInputBuilder:
    """
    Validates plaintext bets and encrypts them through the backend.

    Args:
        backend: Encryption backend
        require_positive: Reject zero amounts (default True)
    """

    def __init__(self, backend: EncryptionBackend, require_positive: bool = True):
        self.backend = backend
        self.require_positive = require_positive

    def validate_amount(self, amount: int) -> int:
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise InvalidPlaintext(f"Amount must be an integer, got {type(amount).__name__}")
        if amount > MAX_UINT32 or amount < 0:
            raise InvalidPlaintext(f"Amount {amount} outside 32-bit range")
        if self.require_positive and amount == 0:
            raise InvalidPlaintext("Amount must be positive")
        return amount

    async def build(
        self,
        contract_address: str,
        submitter: str,
        amount: int,
        choice: bool,
    ) -> EncryptedInput:
        """
        Encrypt (amount, choice) for submission by `submitter` to `contract_address`.

        Raises:
            InvalidAddress: malformed contract or submitter address
            InvalidPlaintext: amount outside the 32-bit domain or not positive
            EncryptionBackendUnavailable: backend unreachable
        """
        contract_address = checksum_address(contract_address)
        submitter = checksum_address(submitter)
        amount = self.validate_amount(amount)

        encrypted = await self.backend.encrypt_input(contract_address, submitter, amount, bool(choice))
        logger.debug(f"Encrypted bet input for {submitter[:10]}... -> {contract_address[:10]}...")
        return encrypted
