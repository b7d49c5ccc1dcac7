"""Rejection taxonomy shared by the draw core and the public workflows."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class DrawRejection(str, Enum):
    """Stable, machine-readable codes for every way an operation can fail."""

    NOT_AUTHENTICATED = "not_authenticated"
    NOT_AUTHORIZED = "not_authorized"
    INVALID_IDENTIFIER = "invalid_identifier"
    INVALID_INPUT = "invalid_input"
    RAFFLE_NOT_FOUND = "raffle_not_found"
    PRIZE_NOT_FOUND = "prize_not_found"
    PRIZE_MISMATCH = "prize_mismatch"
    ALREADY_AWARDED = "already_awarded"
    NO_ELIGIBLE_PARTICIPANTS = "no_eligible_participants"
    RAFFLE_STATE = "raffle_state"
    JOIN_CLOSED = "join_closed"
    PERSISTENCE_FAILURE = "persistence_failure"
    LOOKUP_FAILURE = "lookup_failure"


class RaffleError(Exception):
    """Base class for expected, user-distinguishable failures.

    Attributes
    ----------
    code : DrawRejection
        Stable code callers branch on.
    message : str
        Message safe to show to the end user.
    """

    code: DrawRejection = DrawRejection.PERSISTENCE_FAILURE
    default_message: str = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def is_business_rule(self) -> bool:
        """``True`` for expected outcomes, ``False`` for infrastructure failures."""
        return self.code not in (
            DrawRejection.PERSISTENCE_FAILURE,
            DrawRejection.LOOKUP_FAILURE,
        )


class NotAuthenticatedError(RaffleError):
    code = DrawRejection.NOT_AUTHENTICATED
    default_message = "Not authenticated"


class NotAuthorizedError(RaffleError):
    code = DrawRejection.NOT_AUTHORIZED
    default_message = "Unauthorized: Admin access required"


class InvalidIdentifierError(RaffleError):
    code = DrawRejection.INVALID_IDENTIFIER
    default_message = "Invalid identifier"


class InvalidInputError(RaffleError):
    code = DrawRejection.INVALID_INPUT
    default_message = "Invalid input"


class RaffleNotFoundError(RaffleError):
    code = DrawRejection.RAFFLE_NOT_FOUND
    default_message = "Raffle not found"


class PrizeNotFoundError(RaffleError):
    code = DrawRejection.PRIZE_NOT_FOUND
    default_message = "Prize not found"


class PrizeMismatchError(RaffleError):
    code = DrawRejection.PRIZE_MISMATCH
    default_message = "Prize does not belong to this raffle"


class PrizeAlreadyAwardedError(RaffleError):
    code = DrawRejection.ALREADY_AWARDED
    default_message = "Prize already awarded"


class NoEligibleParticipantsError(RaffleError):
    code = DrawRejection.NO_ELIGIBLE_PARTICIPANTS
    default_message = "No eligible participants"


class RaffleStateError(RaffleError):
    code = DrawRejection.RAFFLE_STATE
    default_message = "Raffle is not in a valid state for this operation"


class JoinClosedError(RaffleError):
    code = DrawRejection.JOIN_CLOSED
    default_message = "This raffle is no longer accepting participants"


class PersistenceError(RaffleError):
    code = DrawRejection.PERSISTENCE_FAILURE
    default_message = "Failed to award prize. Please try again."


class TicketLookupError(RaffleError):
    """Raised when ticket or winner history cannot be read.

    Distinguishes "lookup failed" from "zero tickets" so a draw never runs
    against an incomplete pool.
    """

    code = DrawRejection.LOOKUP_FAILURE
    default_message = "Failed to get eligible participants"


__all__ = [
    "DrawRejection",
    "RaffleError",
    "NotAuthenticatedError",
    "NotAuthorizedError",
    "InvalidIdentifierError",
    "InvalidInputError",
    "RaffleNotFoundError",
    "PrizeNotFoundError",
    "PrizeMismatchError",
    "PrizeAlreadyAwardedError",
    "NoEligibleParticipantsError",
    "RaffleStateError",
    "JoinClosedError",
    "PersistenceError",
    "TicketLookupError",
]
