"""
cipherbet/ledger/abi.py

ABI of the deployed EncryptedBet contract.

Encrypted values (euint32 / ebool) cross the ABI as bytes32 handles.
"""

from typing import Any, Dict, List


def _input(name: str, type_: str, internal: str = None, indexed: bool = None) -> Dict[str, Any]:
    entry = {"internalType": internal or type_, "name": name, "type": type_}
    if indexed is not None:
        entry["indexed"] = indexed
    return entry


def _round_id() -> Dict[str, Any]:
    return _input("roundId", "uint256")


def _participant() -> Dict[str, Any]:
    return _input("participant", "address")


def _view(name: str, inputs: List[dict], outputs: List[dict], mutability: str = "view") -> Dict[str, Any]:
    return {
        "inputs": inputs,
        "name": name,
        "outputs": outputs,
        "stateMutability": mutability,
        "type": "function",
    }


def _tx(name: str, inputs: List[dict], payable: bool = False) -> Dict[str, Any]:
    return _view(name, inputs, [], "payable" if payable else "nonpayable")


def _event(name: str, inputs: List[dict]) -> Dict[str, Any]:
    return {"anonymous": False, "inputs": inputs, "name": name, "type": "event"}


_HANDLE_OUT = [_input("", "bytes32", "euint32")]

CONTRACT_ABI: List[Dict[str, Any]] = [
    # Events
    _event("BetPlaced", [
        _input("roundId", "uint256", indexed=True),
        _input("participant", "address", indexed=True),
    ]),
    _event("RoundCreated", [
        _input("roundId", "uint256", indexed=True),
        _input("creator", "address", indexed=True),
        _input("name", "string", indexed=False),
        _input("endTime", "uint256", indexed=False),
    ]),
    _event("RoundResolved", [
        _input("roundId", "uint256", indexed=True),
        _input("winner", "bool", indexed=False),
        _input("yesAmount", "uint256", indexed=False),
        _input("noAmount", "uint256", indexed=False),
    ]),

    # Transactions
    _tx("createRound", [_input("name", "string"), _input("endTime", "uint256")]),
    _tx("placeBet", [
        _round_id(),
        _input("choice", "bytes32", "externalEbool"),
        _input("encryptedAmount", "bytes32", "externalEuint32"),
        _input("inputProof", "bytes"),
    ], payable=True),
    _tx("resolveRound", [_round_id()]),
    _tx("authorizeParticipant", [_round_id(), _participant()]),
    _tx("makeAmountsPublic", [_round_id()]),
    _tx("claimReward", [
        _round_id(),
        _input("rewardAmount", "uint256"),
        _input("userBetAmountInUnits", "uint256"),
        _input("userChoice", "bool"),
        _input("winningSide", "bool"),
        _input("winningSideTotalInUnits", "uint256"),
    ]),

    # Views
    _view("getRoundInfo", [_round_id()], [
        _input("id", "uint256"),
        _input("creator", "address"),
        _input("name", "string"),
        _input("endTime", "uint256"),
        _input("resolved", "bool"),
        _input("participantCount", "uint256"),
    ]),
    _view("getYesAmount", [_round_id()], _HANDLE_OUT),
    _view("getNoAmount", [_round_id()], _HANDLE_OUT),
    _view("getTotalAmount", [_round_id()], _HANDLE_OUT),
    _view("hasParticipated", [_round_id(), _participant()], [_input("", "bool")]),
    _view("getUserBet", [_round_id(), _participant()], [
        _input("ethAmount", "uint256"),
        _input("hasClaimed", "bool"),
    ]),
    _view("getRoundTotalPool", [_round_id()], [_input("", "uint256")]),
    _view("roundCounter", [], [_input("", "uint256")]),
    _view("protocolId", [], [_input("", "uint256")], mutability="pure"),
]
