"""
cipherbet - Confidential YES/NO betting rounds

Participants place encrypted bets into timed rounds. Only aggregate totals
are ever revealed, and winners split the escrowed pool in proportion to
their stake on the winning side.

Built on:
- trio for structured concurrency
- eth_account for EIP-712 decryption requests
- cryptography for ephemeral X25519 keys sealing decrypted values
- web3 for the deployed-contract ledger

Usage:
    from cipherbet import BettingClient, EthereumWallet

    wallet = EthereumWallet.create()
    client = BettingClient.local(wallet)

    async with client.running():
        round_ = await client.create_round("Will it rain?", end_time)
        await client.place_bet(round_.id, "0.1", True)

        # after end_time
        await client.resolve_round(round_.id)
        result = await client.view_results(round_.id)
        if result.can_claim:
            await client.claim_reward(round_.id)

Network Usage:
    from cipherbet import BettingClient, ClientConfig

    config = ClientConfig.from_env()
    client = BettingClient.from_config(config, wallet, backend)
"""

from .client import BettingClient
from .config import ClientConfig, NetworkConfig, UNITS_PER_NATIVE, WEI_PER_NATIVE
from .errors import (
    BetError,
    ValidationError,
    StateConflict,
    NetworkFailure,
    AuthorizationFailure,
)
from .models import (
    Round,
    RoundState,
    RoundResult,
    LocalBetRecord,
    UserBet,
    Winner,
    round_state,
)
from .signing import EthereumWallet
from .backend import EncryptionBackend, MockEncryptionBackend
from .ledger import Ledger, InMemoryLedger, ContractLedger

__version__ = "0.1.0"
__all__ = [
    "BettingClient",
    "ClientConfig",
    "NetworkConfig",
    "UNITS_PER_NATIVE",
    "WEI_PER_NATIVE",
    # Errors
    "BetError",
    "ValidationError",
    "StateConflict",
    "NetworkFailure",
    "AuthorizationFailure",
    # Models
    "Round",
    "RoundState",
    "RoundResult",
    "LocalBetRecord",
    "UserBet",
    "Winner",
    "round_state",
    # Collaborators
    "EthereumWallet",
    "EncryptionBackend",
    "MockEncryptionBackend",
    "Ledger",
    "InMemoryLedger",
    "ContractLedger",
]
