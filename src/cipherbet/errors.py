"""
cipherbet/errors.py

Error taxonomy for the betting protocol.

Four families, each telling the user something different:
- ValidationError: bad caller input, rejected before any network call
- StateConflict: the action is not possible in the round's current state
- NetworkFailure: ledger or backend unreachable, safe to retry
- AuthorizationFailure: signature rejected or grant denied, safe to retry

Every error exposes `retryable` and a human-readable `user_message`.
"""

from typing import Optional


MESSAGE_NOT_POSSIBLE = "This action is not possible"
MESSAGE_FUNDS_SAFE = "Your funds are safe, try again"


class BetError(Exception):
    """Base class for all cipherbet errors."""

    retryable: bool = False
    summary: str = MESSAGE_NOT_POSSIBLE

    def __init__(self, message: str = "", round_id: Optional[int] = None):
        super().__init__(message or self.__class__.__name__)
        self.round_id = round_id

    @property
    def kind(self) -> str:
        """Name of the concrete error, stable across releases."""
        return self.__class__.__name__

    @property
    def user_message(self) -> str:
        return f"{self.summary}: {self}"


# ============================================================================
# VALIDATION
# ============================================================================

class ValidationError(BetError):
    """Caller-supplied parameters are invalid."""
    summary = "Invalid input"


class InvalidPlaintext(ValidationError):
    """Amount outside the 32-bit domain, or non-positive where required."""


class InvalidEndTime(ValidationError):
    """Round end time is not strictly in the future."""


class InvalidName(ValidationError):
    """Round name is blank."""


class InvalidAddress(ValidationError):
    """Address is not a well-formed account or contract address."""


# ============================================================================
# STATE CONFLICTS
# ============================================================================

class StateConflict(BetError):
    """The round is not in a state that allows the action."""


class RoundNotFound(StateConflict):
    pass


class RoundEnded(StateConflict):
    pass


class RoundResolved(StateConflict):
    pass


class RoundStillOpen(StateConflict):
    pass


class AlreadyResolved(StateConflict):
    pass


class RoundNotResolved(StateConflict):
    pass


class NotAParticipant(StateConflict):
    pass


class AlreadyClaimed(StateConflict):
    pass


class NothingToClaim(StateConflict):
    """The caller is not on the winning side, or the round was a tie."""


class NoBetRecord(StateConflict):
    """No local record of the caller's bet, so no reward can be computed."""


# ============================================================================
# NETWORK / BACKEND
# ============================================================================

class NetworkFailure(BetError):
    """A ledger or backend call did not complete."""
    retryable = True
    summary = MESSAGE_FUNDS_SAFE


class EncryptionBackendUnavailable(NetworkFailure):
    pass


class BackendUnreachable(NetworkFailure):
    pass


class LedgerUnavailable(NetworkFailure):
    pass


class MalformedResponse(NetworkFailure):
    """Backend answered but the mapping is missing a requested handle."""


# ============================================================================
# AUTHORIZATION
# ============================================================================

class AuthorizationFailure(BetError):
    retryable = True
    summary = MESSAGE_FUNDS_SAFE


class AuthorizationDenied(AuthorizationFailure):
    """Signature rejected, grant expired, or caller lacks ACL access."""
