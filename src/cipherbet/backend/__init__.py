"""
cipherbet/backend/

Encryption/decryption backend boundary and its in-process reference.
"""

from .base import (
    EncryptionBackend,
    Keypair,
    generate_keypair,
    seal_value,
    open_sealed_value,
    EIP712_TYPES,
    EIP712_PRIMARY_TYPE,
)
from .mock import MockEncryptionBackend

__all__ = [
    "EncryptionBackend",
    "Keypair",
    "generate_keypair",
    "seal_value",
    "open_sealed_value",
    "EIP712_TYPES",
    "EIP712_PRIMARY_TYPE",
    "MockEncryptionBackend",
]
