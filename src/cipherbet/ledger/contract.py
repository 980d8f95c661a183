"""
cipherbet/ledger/contract.py

Ledger adapter for the deployed EncryptedBet contract via web3.

web3's HTTP provider is blocking, so every call runs in a worker thread
(trio.to_thread.run_sync). Transactions are signed locally with the
wallet's key and sent raw; no node-managed accounts are needed.

Revert reasons are mapped to the typed state conflicts; transport and
RPC failures become LedgerUnavailable.

Usage:
    wallet = EthereumWallet.from_private_key(key)
    ledger = ContractLedger(NetworkConfig.sepolia(), wallet)
    round_id = await ledger.create_round(wallet.address, "Will it rain?", end_time)
"""

import logging
from functools import partial
from typing import Any, Callable, List, Optional, Tuple, Type

import trio
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from ..config import NetworkConfig
from ..errors import (
    AlreadyClaimed,
    AlreadyResolved,
    AuthorizationDenied,
    BetError,
    InvalidEndTime,
    LedgerUnavailable,
    NotAParticipant,
    RoundEnded,
    RoundNotFound,
    RoundNotResolved,
    RoundResolved,
    RoundStillOpen,
    StateConflict,
    ValidationError,
)
from ..models import ClaimAssertion, EncryptedInput, Handle, Round, UserBet
from ..signing import EthereumWallet, checksum_address
from .abi import CONTRACT_ABI
from .base import Ledger

logger = logging.getLogger("cipherbet.ledger.contract")


# Gas estimate headroom (numerator / denominator)
GAS_HEADROOM = (12, 10)

# Substring of a revert reason -> error; first match wins
REVERT_REASONS: List[Tuple[str, Type[StateConflict]]] = [
    ("does not exist", RoundNotFound),
    ("invalid round", RoundNotFound),
    ("has not ended", RoundStillOpen),
    ("not ended", RoundStillOpen),
    ("has ended", RoundEnded),
    ("already resolved", RoundResolved),
    ("not resolved", RoundNotResolved),
    ("already claimed", AlreadyClaimed),
    ("not participate", NotAParticipant),
    ("not a participant", NotAParticipant),
    ("no bet", NotAParticipant),
]


def map_revert(reason: str, function_name: str = "", round_id: Optional[int] = None) -> BetError:
    """Translate a contract revert reason into a typed error."""
    lowered = (reason or "").lower()
    if "end time" in lowered:
        return InvalidEndTime(reason, round_id=round_id)
    for needle, error_cls in REVERT_REASONS:
        if needle in lowered:
            # Resolving twice is its own conflict; betting into a resolved round is another
            if error_cls is RoundResolved and function_name == "resolveRound":
                error_cls = AlreadyResolved
            return error_cls(reason, round_id=round_id)
    return StateConflict(reason or "Transaction reverted", round_id=round_id)


def _to_bytes32(handle: Handle) -> bytes:
    raw = handle[2:] if handle.startswith("0x") else handle
    return bytes.fromhex(raw.rjust(64, "0"))


class ContractLedger(Ledger):
    """
    Ledger backed by the deployed contract.

    Args:
        network: Chain, RPC endpoint and contract address
        wallet: Signs transactions; views work without one
        web3: Pre-built Web3 instance (tests, custom providers)
    """

    def __init__(
        self,
        network: NetworkConfig,
        wallet: Optional[EthereumWallet] = None,
        web3: Optional[Web3] = None,
    ):
        self.network = network
        self.wallet = wallet
        self.contract_address = checksum_address(network.contract_address)
        self.w3 = web3 or Web3(Web3.HTTPProvider(network.rpc_url))
        self.contract = self.w3.eth.contract(address=self.contract_address, abi=CONTRACT_ABI)

    # ========================================================================
    # TRANSACTIONS
    # ========================================================================

    async def create_round(self, creator: str, name: str, end_time: int) -> int:
        self._require_sender(creator)
        receipt = await self._transact("createRound", name, int(end_time))

        events = self.contract.events.RoundCreated().process_receipt(receipt)
        if events:
            round_id = int(events[0]["args"]["roundId"])
        else:
            # No decodable event; the new round is the last one
            round_id = await self.round_counter() - 1
        logger.info(f"Round {round_id} created: {name!r}")
        return round_id

    async def place_bet(
        self,
        round_id: int,
        participant: str,
        encrypted: EncryptedInput,
        value_wei: int,
    ) -> None:
        self._require_sender(participant)
        await self._transact(
            "placeBet",
            round_id,
            _to_bytes32(encrypted.choice_handle),
            _to_bytes32(encrypted.amount_handle),
            encrypted.proof,
            value=value_wei,
            round_id=round_id,
        )

    async def resolve_round(self, round_id: int, caller: str) -> None:
        self._require_sender(caller)
        await self._transact("resolveRound", round_id, round_id=round_id)

    async def authorize_participant(self, round_id: int, participant: str) -> None:
        await self._transact(
            "authorizeParticipant", round_id, checksum_address(participant), round_id=round_id,
        )

    async def claim_reward(
        self,
        round_id: int,
        claimant: str,
        assertion: Optional[ClaimAssertion] = None,
    ) -> int:
        self._require_sender(claimant)
        if assertion is None:
            raise ValidationError("The deployed contract requires claim values", round_id=round_id)

        await self._transact(
            "claimReward",
            round_id,
            assertion.reward_wei,
            assertion.bet_units,
            assertion.choice,
            assertion.winning_side,
            assertion.winning_side_total_units,
            round_id=round_id,
        )
        return assertion.reward_wei

    # ========================================================================
    # VIEWS
    # ========================================================================

    async def get_round_info(self, round_id: int) -> Round:
        rid, creator, name, end_time, resolved, count = await self._call(
            "getRoundInfo", round_id, round_id=round_id,
        )
        return Round(
            id=int(rid),
            creator=creator,
            name=name,
            end_time=int(end_time),
            resolved=bool(resolved),
            participant_count=int(count),
        )

    async def get_yes_amount(self, round_id: int) -> Handle:
        return Web3.to_hex(await self._call("getYesAmount", round_id, round_id=round_id))

    async def get_no_amount(self, round_id: int) -> Handle:
        return Web3.to_hex(await self._call("getNoAmount", round_id, round_id=round_id))

    async def get_total_amount(self, round_id: int) -> Handle:
        return Web3.to_hex(await self._call("getTotalAmount", round_id, round_id=round_id))

    async def has_participated(self, round_id: int, address: str) -> bool:
        return bool(await self._call(
            "hasParticipated", round_id, checksum_address(address), round_id=round_id,
        ))

    async def get_user_bet(self, round_id: int, address: str) -> UserBet:
        value, claimed = await self._call(
            "getUserBet", round_id, checksum_address(address), round_id=round_id,
        )
        return UserBet(value_wei=int(value), has_claimed=bool(claimed))

    async def get_round_total_pool(self, round_id: int) -> int:
        return int(await self._call("getRoundTotalPool", round_id, round_id=round_id))

    async def round_counter(self) -> int:
        return int(await self._call("roundCounter"))

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _require_sender(self, address: str) -> None:
        if self.wallet is None:
            raise AuthorizationDenied("No wallet configured for transactions")
        if checksum_address(address) != self.wallet.address:
            raise AuthorizationDenied(f"Wallet {self.wallet.address} cannot act for {address}")

    async def _run(self, fn: Callable[[], Any], function_name: str, round_id: Optional[int]) -> Any:
        try:
            return await trio.to_thread.run_sync(fn)
        except BetError:
            raise
        except ContractLogicError as e:
            reason = getattr(e, "message", None) or str(e)
            error = map_revert(reason.replace("execution reverted:", "").strip(), function_name, round_id)
            logger.warning(f"{function_name} reverted: {reason}")
            raise error from e
        except TimeExhausted as e:
            logger.error(f"{function_name} not mined within {self.network.tx_timeout}s")
            raise LedgerUnavailable(f"{function_name} timed out", round_id=round_id) from e
        except Exception as e:
            logger.error(f"{function_name} failed: {e}")
            raise LedgerUnavailable(f"{function_name} failed: {e}", round_id=round_id) from e

    async def _call(self, function_name: str, *args, round_id: Optional[int] = None) -> Any:
        fn = getattr(self.contract.functions, function_name)(*args)
        return await self._run(fn.call, function_name, round_id)

    async def _transact(
        self,
        function_name: str,
        *args,
        value: int = 0,
        round_id: Optional[int] = None,
    ):
        if self.wallet is None:
            raise AuthorizationDenied("No wallet configured for transactions")
        fn = getattr(self.contract.functions, function_name)(*args)
        receipt = await self._run(partial(self._send, fn, value), function_name, round_id)
        if receipt["status"] != 1:
            raise StateConflict(f"{function_name} reverted on chain", round_id=round_id)
        logger.debug(f"{function_name} mined in block {receipt['blockNumber']}")
        return receipt

    def _send(self, fn, value: int):
        """Build, sign, send and wait (worker thread)."""
        sender = self.wallet.address
        if self.network.gas_limit:
            gas = self.network.gas_limit
        else:
            estimate = fn.estimate_gas({"from": sender, "value": value})
            gas = estimate * GAS_HEADROOM[0] // GAS_HEADROOM[1]

        tx = fn.build_transaction({
            "from": sender,
            "value": value,
            "gas": gas,
            "nonce": self.w3.eth.get_transaction_count(sender, "pending"),
            "chainId": self.network.chain_id,
        })
        signed = self.wallet.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.network.tx_timeout)
