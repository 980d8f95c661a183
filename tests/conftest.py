"""
cipherbet/tests/conftest.py

Shared fixtures: a controllable clock, wallets, and an in-process ledger.
"""

import pytest

from cipherbet.backend import MockEncryptionBackend
from cipherbet.config import ClientConfig
from cipherbet.ledger import InMemoryLedger
from cipherbet.signing import EthereumWallet


START_TIME = 1_700_000_000


class FakeClock:
    """Unix-time clock that only moves when told to."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend(clock):
    return MockEncryptionBackend(clock=clock)


@pytest.fixture
def ledger(backend, clock):
    return InMemoryLedger(backend, clock=clock)


@pytest.fixture
def alice():
    return EthereumWallet.from_entropy(bytes([1]) * 32)


@pytest.fixture
def bob():
    return EthereumWallet.from_entropy(bytes([2]) * 32)


@pytest.fixture
def carol():
    return EthereumWallet.from_entropy(bytes([3]) * 32)


@pytest.fixture
def config():
    """Client config without the post-authorization settle delay."""
    return ClientConfig(authorization_settle_seconds=0)
