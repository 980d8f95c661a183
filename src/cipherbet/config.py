"""
cipherbet/config.py

Configuration constants and data classes for cipherbet.
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional


logger = logging.getLogger("cipherbet.config")


# Bet units per native currency unit (1 ETH = 1000 units)
UNITS_PER_NATIVE = 1000

# Wei per native currency unit
WEI_PER_NATIVE = 10 ** 18

# Encrypted amounts are euint32
MAX_UINT32 = 2 ** 32 - 1

# Uninitialized ciphertext handle (bytes32 zero)
ZERO_HANDLE = "0x" + "0" * 64

# User decryption request window
DECRYPT_DURATION_DAYS = 10

# Seconds to wait after authorizeParticipant for the grant to land
AUTHORIZATION_SETTLE_SECONDS = 2.0

# Key prefix for locally recorded bets: bet_{round_id}_{address}
BET_RECORD_PREFIX = "bet_"

# Known chains
CHAIN_ID_HARDHAT = 31337
CHAIN_ID_LOCALHOST = 1337
CHAIN_ID_SEPOLIA = 11155111

# Deployed contract addresses (update after deployment)
CONTRACT_ADDRESSES: Dict[int, str] = {
    CHAIN_ID_HARDHAT: "0x5FbDB2315678afecb367f032d93F642f64180aa3",
    CHAIN_ID_LOCALHOST: "0x5FbDB2315678afecb367f032d93F642f64180aa3",
    CHAIN_ID_SEPOLIA: "0xD503e539e1250e13006446dAbBFe461998FB285f",
}

DEFAULT_RPC_URLS: Dict[int, str] = {
    CHAIN_ID_HARDHAT: "http://localhost:8545",
    CHAIN_ID_LOCALHOST: "http://localhost:8545",
    CHAIN_ID_SEPOLIA: "https://ethereum-sepolia-rpc.publicnode.com",
}

# Default local storage for bet records
DEFAULT_STORAGE_DIR = Path.home() / ".cipherbet" / "bets"

# Environment variables
ENV_CHAIN_ID = "CIPHERBET_CHAIN_ID"
ENV_RPC_URL = "CIPHERBET_RPC_URL"
ENV_CONTRACT_ADDRESS = "CIPHERBET_CONTRACT_ADDRESS"
ENV_STORAGE_DIR = "CIPHERBET_STORAGE_DIR"


def get_contract_address(chain_id: int) -> str:
    """Get the deployed contract address for a chain."""
    if chain_id not in CONTRACT_ADDRESSES:
        raise ValueError(f"Unsupported chain ID: {chain_id}")
    return CONTRACT_ADDRESSES[chain_id]


def is_local_chain(chain_id: int) -> bool:
    return chain_id in (CHAIN_ID_HARDHAT, CHAIN_ID_LOCALHOST)


@dataclass
class NetworkConfig:
    """Where the betting contract lives."""

    chain_id: int = CHAIN_ID_HARDHAT
    rpc_url: str = DEFAULT_RPC_URLS[CHAIN_ID_HARDHAT]
    contract_address: str = CONTRACT_ADDRESSES[CHAIN_ID_HARDHAT]

    # Transaction settings
    tx_timeout: float = 120.0  # seconds to wait for a receipt
    gas_limit: Optional[int] = None  # None = estimate

    @classmethod
    def for_chain(cls, chain_id: int) -> "NetworkConfig":
        """Preset for a known chain."""
        return cls(
            chain_id=chain_id,
            rpc_url=DEFAULT_RPC_URLS.get(chain_id, DEFAULT_RPC_URLS[CHAIN_ID_HARDHAT]),
            contract_address=get_contract_address(chain_id),
        )

    @classmethod
    def sepolia(cls) -> "NetworkConfig":
        return cls.for_chain(CHAIN_ID_SEPOLIA)

    @classmethod
    def local(cls) -> "NetworkConfig":
        return cls.for_chain(CHAIN_ID_HARDHAT)


@dataclass
class ClientConfig:
    """
    Complete configuration for a betting session.

    Usage:
        config = ClientConfig.from_env()
        config = ClientConfig(network=NetworkConfig.sepolia())
    """

    network: NetworkConfig = field(default_factory=NetworkConfig)

    # Decryption
    decrypt_duration_days: int = DECRYPT_DURATION_DAYS
    authorization_settle_seconds: float = AUTHORIZATION_SETTLE_SECONDS

    # Local bet records (None = memory only)
    storage_dir: Optional[Path] = None

    # Units
    units_per_native: int = UNITS_PER_NATIVE

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "ClientConfig":
        """
        Build configuration from environment variables.

        CIPHERBET_CHAIN_ID picks the preset; CIPHERBET_RPC_URL,
        CIPHERBET_CONTRACT_ADDRESS and CIPHERBET_STORAGE_DIR override it.
        """
        env = os.environ if environ is None else environ

        chain_id = int(env.get(ENV_CHAIN_ID, CHAIN_ID_HARDHAT))
        if chain_id in CONTRACT_ADDRESSES:
            network = NetworkConfig.for_chain(chain_id)
        else:
            network = NetworkConfig(chain_id=chain_id, contract_address="")
            logger.warning(f"Unknown chain {chain_id}, contract address must be set explicitly")

        if env.get(ENV_RPC_URL):
            network.rpc_url = env[ENV_RPC_URL]
        if env.get(ENV_CONTRACT_ADDRESS):
            network.contract_address = env[ENV_CONTRACT_ADDRESS]

        storage_dir = Path(env[ENV_STORAGE_DIR]) if env.get(ENV_STORAGE_DIR) else None

        return cls(network=network, storage_dir=storage_dir)
