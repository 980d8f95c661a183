"""
cipherbet.ledger - Round and escrow storage.

Ledger is the boundary; InMemoryLedger simulates the contract in-process,
ContractLedger talks to the deployed contract through web3.
"""

from .base import Ledger
from .memory import InMemoryLedger
from .contract import ContractLedger, map_revert
from .abi import CONTRACT_ABI

__all__ = [
    "Ledger",
    "InMemoryLedger",
    "ContractLedger",
    "map_revert",
    "CONTRACT_ABI",
]
