"""
cipherbet/protocol/

Round lifecycle, confidential aggregation and reward settlement.
"""

from .encrypted_input import EncryptedInputBuilder
from .registry import RoundRegistry
from .lifecycle import RoundLifecycleController
from .reveal import RevealProtocol, DecryptionGrant, RevealedAggregates
from .result_cache import ResultCache, SlotState
from .rewards import (
    RewardCalculator,
    RewardOutcome,
    RewardEntry,
    compute_reward_wei,
    determine_winner,
    verify_reward,
)
from .settlement import ClaimSettlement, ClaimReceipt
from .storage import (
    BetRecordStore,
    StorageBackend,
    MemoryBackend,
    FileBackend,
    bet_record_key,
)

__all__ = [
    "EncryptedInputBuilder",
    "RoundRegistry",
    "RoundLifecycleController",
    "RevealProtocol",
    "DecryptionGrant",
    "RevealedAggregates",
    "ResultCache",
    "SlotState",
    # Rewards
    "RewardCalculator",
    "RewardOutcome",
    "RewardEntry",
    "compute_reward_wei",
    "determine_winner",
    "verify_reward",
    # Settlement
    "ClaimSettlement",
    "ClaimReceipt",
    # Storage
    "BetRecordStore",
    "StorageBackend",
    "MemoryBackend",
    "FileBackend",
    "bet_record_key",
]
