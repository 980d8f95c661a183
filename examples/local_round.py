"""
cipherbet/examples/local_round.py

A complete betting round on the in-process ledger.

Three accounts bet on one question, the round ends and is resolved, then
every account reveals the aggregates and the winners claim. Shows:
1. Sharing one ledger between several clients
2. Encrypted bets (only the escrowed value is visible on the ledger)
3. Reveal + reward calculation
4. Claims and the errors a loser gets

Usage:
    python examples/local_round.py
"""

import time
import logging

import trio

from cipherbet import BettingClient, ClientConfig, EthereumWallet
from cipherbet.backend import MockEncryptionBackend
from cipherbet.errors import BetError
from cipherbet.ledger import InMemoryLedger

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [BET] %(levelname)s: %(message)s'
)
logger = logging.getLogger(__name__)


class Clock:
    """Wall clock that can be pushed forward so the round ends quickly."""

    def __init__(self):
        self.offset = 0.0

    def __call__(self) -> float:
        return time.time() + self.offset


async def main():
    clock = Clock()
    backend = MockEncryptionBackend(clock=clock)
    ledger = InMemoryLedger(backend, clock=clock)
    config = ClientConfig(authorization_settle_seconds=0)

    names = ["alice", "bob", "carol"]
    clients = {
        name: BettingClient.local(EthereumWallet.create(), ledger=ledger, config=config, clock=clock)
        for name in names
    }
    alice, bob, carol = (clients[n] for n in names)

    round_ = await alice.create_round("Will it rain tomorrow?", int(clock()) + 3600)
    logger.info(f"Round {round_.id} open: {round_.name}")

    await alice.place_bet(round_.id, "0.5", True)
    await bob.place_bet(round_.id, "1.5", False)
    await carol.place_bet(round_.id, "1.5", True)

    # Let the round end
    clock.offset += 3600
    await bob.resolve_round(round_.id)

    for name, client in clients.items():
        async with client.running():
            result = await client.view_results(round_.id)
        logger.info(
            f"{name}: yes={result.yes_amount} no={result.no_amount} winner={result.winner.value} "
            f"reward={result.reward_native}"
        )
        try:
            receipt = await client.claim_reward(round_.id)
            logger.info(f"{name} claimed {receipt.paid_native}")
        except BetError as e:
            logger.info(f"{name}: {e.user_message}")

    logger.info(f"Left in escrow: {ledger.escrow_balance(round_.id)} wei")


if __name__ == "__main__":
    trio.run(main)
